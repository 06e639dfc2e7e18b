# -*- coding: utf-8 -*-
"""Meta Queries Exception Hierarchy.

Exception Hierarchy:
    MetaQueriesException (base)
    ├── ResolutionError
    │   └── NotFoundError
    ├── DependencyOrderError
    ├── TargetValidationError
    ├── EvaluationError
    └── AveragingError

Structural errors (resolution, dependency order, target validation) abort
the enclosing request. Evaluation and averaging errors are raised per data
point and absorbed by the transform that triggered them. Backend errors are
never wrapped; they propagate to the caller as raised by the backend.

All exceptions include rich context:
- error_code: Unique error identifier
- ref_id: refId of the target that raised the error (when known)
- context: Dictionary with error-specific details
- timestamp: When the error occurred

Example:
    >>> from metaqueries.exceptions import DependencyOrderError
    >>> raise DependencyOrderError(
    ...     message="Target 'C' depends on 'Z' which is not yet scheduled",
    ...     ref_id="C",
    ...     dependency="Z",
    ... )

Author: Meta Queries Team
Date: October 2026
Status: Production Ready
"""

import re
from datetime import datetime
from typing import Any, Dict, Optional


# ==============================================================================
# Base Exception
# ==============================================================================

class MetaQueriesException(Exception):
    """Base exception for all Meta Queries errors.

    Attributes:
        message: Human-readable error message
        error_code: Unique error identifier (e.g., "MQ_DEPENDENCY_ORDER_ERROR")
        ref_id: refId of the target involved (optional)
        context: Dictionary with error-specific details
        timestamp: When the error occurred
    """

    ERROR_PREFIX = "MQ"

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        ref_id: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        """Initialize exception with rich context.

        Args:
            message: Human-readable error message
            error_code: Unique error identifier (auto-generated if not provided)
            ref_id: refId of the target involved
            context: Dictionary with error-specific details
        """
        super().__init__(message)
        self.message = message
        self.error_code = error_code or self._generate_error_code()
        self.ref_id = ref_id
        self.context = context or {}
        self.timestamp = datetime.now()

    def _generate_error_code(self) -> str:
        """Generate error code based on exception class.

        Returns:
            Error code like "MQ_NOT_FOUND_ERROR"
        """
        error_type = re.sub(r'(?<!^)(?=[A-Z])', '_', self.__class__.__name__).upper()
        return f"{self.ERROR_PREFIX}_{error_type}"

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for serialization.

        Returns:
            Dictionary with all error details
        """
        return {
            "error_type": self.__class__.__name__,
            "error_code": self.error_code,
            "message": self.message,
            "ref_id": self.ref_id,
            "context": self.context,
            "timestamp": self.timestamp.isoformat(),
        }

    def __str__(self) -> str:
        parts = [f"[{self.error_code}]"]
        if self.ref_id:
            parts.append(f"Target: {self.ref_id}")
        parts.append(self.message)
        return " - ".join(parts)

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"message='{self.message}', "
            f"error_code='{self.error_code}', "
            f"ref_id='{self.ref_id}')"
        )


# ==============================================================================
# Structural Errors
# ==============================================================================

class ResolutionError(MetaQueriesException):
    """A backend name could not be resolved at dispatch time.

    Example:
        >>> raise ResolutionError(
        ...     message="No backend registered under 'graphite-prod'",
        ...     backend="graphite-prod",
        ... )
    """

    def __init__(
        self,
        message: str,
        ref_id: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
        backend: Optional[str] = None,
        error_code: Optional[str] = None,
    ):
        context = context or {}
        if backend is not None:
            context["backend"] = backend
        super().__init__(
            message, error_code=error_code, ref_id=ref_id, context=context,
        )
        self.backend = backend


class NotFoundError(ResolutionError):
    """Raised by the backend gateway when no backend has the requested name."""


class DependencyOrderError(MetaQueriesException):
    """A derived target references a refId that is not yet resolvable.

    Raised for forward references and typos alike; the referenced refId must
    appear earlier in the request's target list.
    """

    def __init__(
        self,
        message: str,
        ref_id: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
        dependency: Optional[str] = None,
        error_code: Optional[str] = None,
    ):
        context = context or {}
        if dependency is not None:
            context["dependency"] = dependency
        super().__init__(
            message, error_code=error_code, ref_id=ref_id, context=context,
        )
        self.dependency = dependency


class TargetValidationError(MetaQueriesException):
    """A target or request is malformed.

    Example:
        >>> raise TargetValidationError(
        ...     message="MovingAverage requires periods >= 1",
        ...     ref_id="B",
        ...     invalid_fields={"periods": "must be >= 1"},
        ... )
    """

    def __init__(
        self,
        message: str,
        ref_id: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
        invalid_fields: Optional[Dict[str, str]] = None,
        error_code: Optional[str] = None,
    ):
        if invalid_fields:
            context = context or {}
            context["invalid_fields"] = invalid_fields
        super().__init__(
            message, error_code=error_code, ref_id=ref_id, context=context,
        )


# ==============================================================================
# Per-point Errors
# ==============================================================================

class EvaluationError(MetaQueriesException):
    """An arithmetic expression failed for a single timestamp."""

    def __init__(
        self,
        message: str,
        ref_id: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
        expression: Optional[str] = None,
        cause: Optional[Exception] = None,
        error_code: Optional[str] = None,
    ):
        context = context or {}
        if expression is not None:
            context["expression"] = expression
        if cause is not None:
            context["cause"] = str(cause)
            context["cause_type"] = type(cause).__name__
        super().__init__(
            message, error_code=error_code, ref_id=ref_id, context=context,
        )


class AveragingError(MetaQueriesException):
    """A ring averager was asked to average an empty window."""


__all__ = [
    "MetaQueriesException",
    "ResolutionError",
    "NotFoundError",
    "DependencyOrderError",
    "TargetValidationError",
    "EvaluationError",
    "AveragingError",
]
