# -*- coding: utf-8 -*-
"""
Backend Gateway - Meta Queries

Registry that resolves a backend name to a queryable handle. The scheduler
only needs ``resolve(name)`` and ``handle.query(request)``; hosts register
their own handles (HTTP clients, in-process adapters, test stubs) under the
names that panel targets use in their ``datasource`` field.

A handle must tolerate being called concurrently for different target
subsets of the same original request.

Example:
    >>> from metaqueries.backend_gateway import BackendGateway
    >>> gateway = BackendGateway()
    >>> gateway.register("graphite", GraphiteHandle())
    >>> handle = gateway.resolve("graphite")

Author: Meta Queries Team
Date: October 2026
Status: Production Ready
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Any, Dict, List, Optional, Protocol, runtime_checkable

from metaqueries.config import MetaQueriesConfig
from metaqueries.exceptions import NotFoundError
from metaqueries.metrics import record_backend_request
from metaqueries.models import QueryRequest, QueryResponse

logger = logging.getLogger(__name__)


@runtime_checkable
class BackendHandle(Protocol):
    """Queryable backend handle.

    ``query`` returns a ``QueryResponse``, a ``{"data": [...]}`` mapping, or
    ``None`` when the backend has nothing to report.
    """

    async def query(self, request: QueryRequest) -> Any:
        ...


class BackendGateway:
    """In-memory backend registry.

    Attributes:
        _backends: Registered handles keyed by backend name.
        _resolutions: Number of successful resolutions per backend.
    """

    def __init__(self, backends: Optional[Dict[str, BackendHandle]] = None) -> None:
        """Initialize BackendGateway.

        Args:
            backends: Optional initial name -> handle mapping.
        """
        self._backends: Dict[str, BackendHandle] = {}
        self._resolutions: Dict[str, int] = {}
        self._lock = threading.Lock()

        for name, handle in (backends or {}).items():
            self.register(name, handle)

        logger.info("BackendGateway initialized with %d backend(s)", len(self._backends))

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def register(self, name: str, handle: BackendHandle) -> None:
        """Register ``handle`` under ``name``, replacing any previous handle.

        Raises:
            ValueError: If name is empty.
            TypeError: If handle has no ``query`` method.
        """
        if not name or not name.strip():
            raise ValueError("backend name must be non-empty")
        if not isinstance(handle, BackendHandle):
            raise TypeError(
                f"backend handle for '{name}' must define an async query() method"
            )
        with self._lock:
            replaced = name in self._backends
            self._backends[name] = handle
            self._resolutions.setdefault(name, 0)
        logger.info("%s backend: %s", "Replaced" if replaced else "Registered", name)

    def unregister(self, name: str) -> bool:
        """Remove a backend.

        Returns:
            True if a backend was removed.
        """
        with self._lock:
            removed = self._backends.pop(name, None) is not None
            self._resolutions.pop(name, None)
        if removed:
            logger.info("Unregistered backend: %s", name)
        return removed

    # ------------------------------------------------------------------
    # Resolution
    # ------------------------------------------------------------------

    def resolve(self, name: str) -> BackendHandle:
        """Return the handle registered under ``name``.

        Raises:
            NotFoundError: If no backend is registered under ``name``.
        """
        with self._lock:
            handle = self._backends.get(name)
            if handle is not None:
                self._resolutions[name] += 1
        if handle is None:
            raise NotFoundError(
                f"No backend registered under '{name}'",
                backend=name,
                context={"available": sorted(self._backends)},
            )
        return handle

    def list_backends(self) -> List[str]:
        """Return registered backend names in registration order."""
        with self._lock:
            return list(self._backends)

    def __contains__(self, name: object) -> bool:
        return name in self._backends

    def __len__(self) -> int:
        return len(self._backends)

    def get_statistics(self) -> Dict[str, Any]:
        """Return registry statistics."""
        with self._lock:
            return {
                "total_backends": len(self._backends),
                "resolutions": dict(self._resolutions),
            }


# ---------------------------------------------------------------------------
# Dispatch
# ---------------------------------------------------------------------------


async def query_backend(
    name: str,
    handle: BackendHandle,
    request: QueryRequest,
    config: Optional[MetaQueriesConfig] = None,
) -> Optional[QueryResponse]:
    """Send ``request`` to ``handle`` and normalize its answer.

    Backend exceptions propagate unchanged.

    Args:
        name: Backend name (for logs and metrics).
        handle: Resolved backend handle.
        request: Sub-request carrying the targets this backend answers.
        config: Configuration deciding whether metrics are recorded.

    Returns:
        QueryResponse, or None when the backend produced no data.
    """
    start_time = time.monotonic()
    ref_ids = [target.ref_id for target in request.targets]
    logger.debug("Dispatching %s to backend %s", ref_ids, name)

    try:
        raw = await handle.query(request)
        response = QueryResponse.coerce(raw)
    except Exception:
        elapsed = time.monotonic() - start_time
        record_backend_request(name, "error", elapsed, config=config)
        logger.error(
            "Backend %s failed for %s after %.1f ms",
            name, ref_ids, elapsed * 1000,
        )
        raise

    elapsed = time.monotonic() - start_time
    record_backend_request(name, "success", elapsed, config=config)
    logger.debug(
        "Backend %s answered %s with %d series (%.1f ms)",
        name, ref_ids,
        len(response.data) if response is not None else 0,
        elapsed * 1000,
    )
    return response


__all__ = ["BackendHandle", "BackendGateway", "query_backend"]
