# -*- coding: utf-8 -*-
"""Per-request store of pending target results.

Each refId is assigned exactly one pending result (an ``asyncio`` future
resolving to a ``QueryResponse``) and may be awaited any number of times by
later derived targets. Lookups of refIds that have not been registered yet
raise :class:`DependencyOrderError`: dependencies resolve strictly by
position in the target list.
"""

from __future__ import annotations

import asyncio
import functools
import logging
from typing import Dict, List, Set, Tuple

from metaqueries.exceptions import DependencyOrderError, TargetValidationError
from metaqueries.models import Target, TargetState

logger = logging.getLogger(__name__)

_TRANSITIONS: Dict[TargetState, Set[TargetState]] = {
    TargetState.PENDING: {TargetState.DISPATCHED, TargetState.FAILED},
    TargetState.DISPATCHED: {TargetState.RESOLVED, TargetState.FAILED},
    TargetState.RESOLVED: set(),
    TargetState.FAILED: set(),
}


class PendingResultStore:
    """Write-once refId -> pending result map for one request."""

    def __init__(self) -> None:
        self._targets: Dict[str, Target] = {}
        self._results: Dict[str, asyncio.Future] = {}
        self._states: Dict[str, TargetState] = {}

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def mark_pending(self, target: Target) -> None:
        """Record that ``target`` is being scheduled."""
        ref_id = target.ref_id
        if ref_id in self._states:
            raise TargetValidationError(
                f"Target '{ref_id}' is already scheduled", ref_id=ref_id,
            )
        self._targets[ref_id] = target
        self._states[ref_id] = TargetState.PENDING

    def register(self, target: Target, result: asyncio.Future) -> None:
        """Assign ``result`` as the pending result of ``target``.

        Raises:
            TargetValidationError: If the refId already has a result.
        """
        ref_id = target.ref_id
        if ref_id in self._results:
            raise TargetValidationError(
                f"Target '{ref_id}' already has a pending result", ref_id=ref_id,
            )
        if ref_id not in self._states:
            self.mark_pending(target)
        self._transition(ref_id, TargetState.DISPATCHED)
        self._results[ref_id] = result
        result.add_done_callback(functools.partial(self._on_done, ref_id))

    def fail(self, ref_id: str) -> None:
        """Mark a target that could not be dispatched as failed."""
        if self._states.get(ref_id) is TargetState.PENDING:
            self._transition(ref_id, TargetState.FAILED)

    def _on_done(self, ref_id: str, result: asyncio.Future) -> None:
        if result.cancelled() or result.exception() is not None:
            self._transition(ref_id, TargetState.FAILED)
        else:
            self._transition(ref_id, TargetState.RESOLVED)

    def _transition(self, ref_id: str, state: TargetState) -> None:
        current = self._states[ref_id]
        if state not in _TRANSITIONS[current]:
            raise RuntimeError(
                f"Illegal state transition for '{ref_id}': {current.value} -> {state.value}"
            )
        self._states[ref_id] = state
        logger.debug("Target %s: %s -> %s", ref_id, current.value, state.value)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_target(self, ref_id: str, requested_by: str) -> Target:
        """Return the registered target ``ref_id``.

        Raises:
            DependencyOrderError: If ``ref_id`` is not registered yet.
        """
        self._require(ref_id, requested_by)
        return self._targets[ref_id]

    def get_result(self, ref_id: str, requested_by: str) -> asyncio.Future:
        """Return the pending result of ``ref_id``.

        Raises:
            DependencyOrderError: If ``ref_id`` is not registered yet.
        """
        self._require(ref_id, requested_by)
        return self._results[ref_id]

    def _require(self, ref_id: str, requested_by: str) -> None:
        if ref_id not in self._results:
            raise DependencyOrderError(
                f"Target '{requested_by}' depends on '{ref_id}', which is not "
                f"defined earlier in the request",
                ref_id=requested_by,
                dependency=ref_id,
            )

    def snapshot(self) -> List[Tuple[str, asyncio.Future]]:
        """Registered ``(refId, result)`` pairs in registration order."""
        return list(self._results.items())

    def state(self, ref_id: str) -> TargetState:
        return self._states[ref_id]

    def states(self) -> Dict[str, TargetState]:
        return dict(self._states)

    def futures(self) -> List[asyncio.Future]:
        """Distinct registered results (a shared group result appears once)."""
        unique: Dict[int, asyncio.Future] = {}
        for result in self._results.values():
            unique.setdefault(id(result), result)
        return list(unique.values())

    def __contains__(self, ref_id: object) -> bool:
        return ref_id in self._results

    def __len__(self) -> int:
        return len(self._results)


__all__ = ["PendingResultStore"]
