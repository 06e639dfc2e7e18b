# -*- coding: utf-8 -*-
"""
Meta Queries Data Models

Pydantic v2 data models for the query-orchestration layer. A caller submits
a panel-level ``QueryRequest`` whose targets are each tagged with the
datasource that should answer them; the layer answers with a single
``QueryResponse`` shaped like one backend's response.

Wire names follow the panel protocol (``refId``, ``queryType``,
``outputMetricName``, ``from``); Python attribute names are snake_case and
both spellings are accepted on input. Unknown fields on requests, ranges
and targets are preserved so that foreign backends receive their own query
fields untouched.

Models:
    - Enumerations: QueryType, TargetState
    - Core models: TimeRange, Target, Series
    - Envelopes: QueryRequest, QueryResponse, HealthCheckResult

Author: Meta Queries Team
Date: October 2026
Status: Production Ready
"""

from __future__ import annotations

from collections.abc import Mapping
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


# =============================================================================
# Enumerations
# =============================================================================


class QueryType(str, Enum):
    """Derived-target transform kinds.

    A target without a query type is a plain backend query.
    """

    TIME_SHIFT = "TimeShift"
    MOVING_AVERAGE = "MovingAverage"
    ARITHMETIC = "Arithmetic"


class TargetState(str, Enum):
    """Lifecycle status of a target within one request."""

    PENDING = "pending"
    DISPATCHED = "dispatched"
    RESOLVED = "resolved"
    FAILED = "failed"


# =============================================================================
# Core Data Models
# =============================================================================


class TimeRange(BaseModel):
    """Query window of a request.

    Attributes:
        from_: Start of the window (wire name ``from``).
        to: End of the window.
    """

    from_: datetime = Field(
        ..., alias="from", description="Start of the query window",
    )
    to: datetime = Field(
        ..., description="End of the query window",
    )

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    @field_validator("from_", "to")
    @classmethod
    def validate_timezone(cls, v: datetime) -> datetime:
        """Interpret naive datetimes as UTC."""
        if v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v

    @model_validator(mode="after")
    def validate_order(self) -> TimeRange:
        """Validate the window is not inverted."""
        if self.from_ > self.to:
            raise ValueError("range 'from' must not be after 'to'")
        return self

    def shifted(self, days: int) -> TimeRange:
        """Return a copy of this range moved by ``days`` calendar days.

        The receiver is left untouched; other targets of the same request
        keep reading the original window.
        """
        delta = timedelta(days=days)
        return self.model_copy(
            update={"from_": self.from_ + delta, "to": self.to + delta},
            deep=True,
        )


class Target(BaseModel):
    """One requested series specification.

    Attributes:
        ref_id: Identifier of the target, unique within a request.
        datasource: Name of the backend that answers this target.
        hide: Suppress this target's series from the final response.
        query_type: Transform kind; ``None`` for a plain backend query.
        periods: Shift in days (TimeShift) or window size (MovingAverage).
        query: refId of the target this one depends on.
        metric: Series name selected from the dependency's output.
        expression: Arithmetic formula over refIds.
        output_metric_name: Name given to the produced series.
    """

    ref_id: str = Field(
        ..., alias="refId", description="Target identifier, unique per request",
    )
    datasource: str = Field(
        ..., description="Backend name that answers this target",
    )
    hide: bool = Field(
        default=False,
        description="Suppress this target's series from the final response",
    )
    query_type: Optional[QueryType] = Field(
        None, alias="queryType",
        description="Transform kind; absent for plain backend queries",
    )
    periods: Optional[int] = Field(
        None, description="Shift in days or moving-average window size",
    )
    query: Optional[str] = Field(
        None, description="refId of the dependency target",
    )
    metric: Optional[str] = Field(
        None, description="Series name picked from the dependency output",
    )
    expression: Optional[str] = Field(
        None, description="Arithmetic formula over refIds",
    )
    output_metric_name: Optional[str] = Field(
        None, alias="outputMetricName",
        description="Name assigned to the produced series",
    )

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    @field_validator("ref_id")
    @classmethod
    def validate_ref_id(cls, v: str) -> str:
        """Validate refId is non-empty."""
        if not v or not v.strip():
            raise ValueError("refId must be non-empty")
        return v

    @field_validator("query_type", mode="before")
    @classmethod
    def validate_query_type(cls, v: Any) -> Any:
        """Treat an empty query type as a plain backend query."""
        if v == "":
            return None
        return v

    @property
    def is_derived(self) -> bool:
        """Whether this target is computed by a transform."""
        return self.query_type is not None


class Series(BaseModel):
    """A named, time-ordered sequence of ``(value, timestampMillis)`` points."""

    target: str = Field(..., description="Series name")
    datapoints: List[Tuple[Optional[float], int]] = Field(
        default_factory=list,
        description="Ordered (value, timestamp in milliseconds) pairs",
    )
    hide: bool = Field(
        default=False,
        description="Suppress this series from the final response",
    )

    model_config = ConfigDict(extra="allow")


# =============================================================================
# Envelopes
# =============================================================================


class QueryRequest(BaseModel):
    """Panel-level query request.

    Attributes:
        range: Query window shared by every target.
        targets: Ordered target specifications.
    """

    range: TimeRange = Field(..., description="Query window")
    targets: List[Target] = Field(
        default_factory=list, description="Ordered target specifications",
    )

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    @field_validator("targets")
    @classmethod
    def validate_unique_ref_ids(cls, v: List[Target]) -> List[Target]:
        """Validate refIds are unique within the request."""
        seen = set()
        for target in v:
            if target.ref_id in seen:
                raise ValueError(f"duplicate refId '{target.ref_id}'")
            seen.add(target.ref_id)
        return v


class QueryResponse(BaseModel):
    """Response envelope: ``{"data": [Series, ...]}``."""

    data: List[Series] = Field(
        default_factory=list, description="Ordered result series",
    )

    model_config = ConfigDict(extra="allow")

    @classmethod
    def coerce(cls, raw: Any) -> Optional[QueryResponse]:
        """Normalize whatever a backend returned.

        Args:
            raw: A QueryResponse, a mapping with a ``data`` key, or None.

        Returns:
            QueryResponse, or None when the backend produced no data.

        Raises:
            TypeError: If ``raw`` has an unsupported shape.
        """
        if raw is None:
            return None
        if isinstance(raw, cls):
            return raw
        if isinstance(raw, Mapping):
            if raw.get("data") is None:
                return None
            return cls.model_validate(dict(raw))
        raise TypeError(
            f"backend returned unsupported result type {type(raw).__name__}"
        )


class HealthCheckResult(BaseModel):
    """Result of a connectivity test."""

    status: str = Field(..., description="success or error")
    message: str = Field(..., description="Human-readable status message")
    title: str = Field(..., description="Short status title")


__all__ = [
    "QueryType",
    "TargetState",
    "TimeRange",
    "Target",
    "Series",
    "QueryRequest",
    "QueryResponse",
    "HealthCheckResult",
]
