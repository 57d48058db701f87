"""Run-scoped cooperative cancellation flags."""

from __future__ import annotations

from reconcile_engine.exceptions import RunCancelled
from reconcile_engine.observability.logger import get_logger

logger = get_logger("cancellation")


class CancellationRegistry:
    def __init__(self) -> None:
        self._cancelled: set[str] = set()

    def cancel(self, run_id: str) -> None:
        self._cancelled.add(run_id)
        logger.info("run_cancel_requested", run_id=run_id)

    def is_cancelled(self, run_id: str) -> bool:
        return run_id in self._cancelled

    def clear(self, run_id: str) -> None:
        self._cancelled.discard(run_id)

    def check(self, run_id: str, partial_atoms: list | None = None) -> None:
        """Raise RunCancelled if the run has been flagged."""
        if run_id in self._cancelled:
            raise RunCancelled(run_id, partial_atoms)
