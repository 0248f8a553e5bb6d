"""
Lifecycle controller: user-triggered batch state transitions.

    processing --pause--> paused --resume--> processing
    processing | paused --cancel--> cancelled

completed and cancelled are absorbing. The controller does not ask for
confirmation; callers gate destructive actions (see presentation.ActionConfirmation).
"""

from datetime import datetime
from enum import Enum
from typing import Dict, FrozenSet, List, Optional

from config.logging_config import get_logger

from .batch_job import BatchJob, BatchState
from .batch_store import BatchStateStore
from .exceptions import BatchNotFoundError, InvalidTransitionError

logger = get_logger(__name__)


class LifecycleAction(Enum):
    """Actions a user can take on batches"""
    PAUSE = "pause"
    RESUME = "resume"
    CANCEL = "cancel"
    CLEAR = "clear"
    CLEAR_ALL = "clear_all"

    @property
    def is_destructive(self) -> bool:
        return self in DESTRUCTIVE_ACTIONS

    @property
    def targets_batch(self) -> bool:
        return self != LifecycleAction.CLEAR_ALL


DESTRUCTIVE_ACTIONS: FrozenSet[LifecycleAction] = frozenset({
    LifecycleAction.CANCEL,
    LifecycleAction.CLEAR,
    LifecycleAction.CLEAR_ALL,
})

# States each state-changing action may start from
ALLOWED_FROM: Dict[LifecycleAction, FrozenSet[BatchState]] = {
    LifecycleAction.PAUSE: frozenset({BatchState.PROCESSING}),
    LifecycleAction.RESUME: frozenset({BatchState.PAUSED}),
    LifecycleAction.CANCEL: frozenset({BatchState.PROCESSING, BatchState.PAUSED}),
}


class LifecycleController:
    """Applies guarded pause/resume/cancel/clear transitions to the store"""

    def __init__(self, store: BatchStateStore):
        self.store = store

    def _require(self, batch_id: str) -> BatchJob:
        job = self.store.get_batch(batch_id)
        if job is None:
            raise BatchNotFoundError(batch_id)
        return job

    def _check(self, job: BatchJob, action: LifecycleAction):
        if job.state not in ALLOWED_FROM[action]:
            raise InvalidTransitionError(job.id, action.value, job.state.value)

    def allowed_actions(self, batch_id: str) -> List[LifecycleAction]:
        """Actions currently valid for a batch, for enabling UI controls"""
        job = self._require(batch_id)
        actions = [
            action for action, states in ALLOWED_FROM.items()
            if job.state in states
        ]
        actions.append(LifecycleAction.CLEAR)
        return actions

    def pause(self, batch_id: str) -> BatchJob:
        """
        Stop advancing new items of a processing batch.

        An item the worker is already processing is not aborted.
        """
        job = self._require(batch_id)
        self._check(job, LifecycleAction.PAUSE)
        logger.info(f"[Batch:{batch_id}] Paused at {job.resolved_count}/{job.total_count}")
        return self.store.update_batch(
            batch_id,
            state=BatchState.PAUSED,
            paused_at=datetime.now(),
        )

    def resume(self, batch_id: str) -> BatchJob:
        """Return a paused batch to processing; polling picks it up on its next check."""
        job = self._require(batch_id)
        self._check(job, LifecycleAction.RESUME)
        logger.info(f"[Batch:{batch_id}] Resumed")
        return self.store.update_batch(
            batch_id,
            state=BatchState.PROCESSING,
            paused_at=None,
        )

    def cancel(self, batch_id: str) -> BatchJob:
        """
        Cancel a batch for good.

        Completed and failed items keep their results; pending and processing
        items stay as they are and are never advanced again.
        """
        job = self._require(batch_id)
        self._check(job, LifecycleAction.CANCEL)
        logger.info(
            f"[Batch:{batch_id}] Cancelled "
            f"({job.completed_count} completed, {job.pending_count + job.processing_count} not processed)"
        )
        return self.store.update_batch(batch_id, state=BatchState.CANCELLED)

    def clear(self, batch_id: str):
        """Remove a batch from the store. Irreversible."""
        self._require(batch_id)
        self.store.remove_batch(batch_id)

    def clear_all(self) -> int:
        """Remove every batch. Irreversible."""
        return self.store.clear_all_batches()

    def clear_completed(self) -> int:
        """Remove batches that are finished or cancelled."""
        return self.store.clear_completed_batches()

    def apply(self, action: LifecycleAction, batch_id: Optional[str] = None):
        """Dispatch an action by enum value"""
        if action == LifecycleAction.PAUSE:
            return self.pause(batch_id)
        if action == LifecycleAction.RESUME:
            return self.resume(batch_id)
        if action == LifecycleAction.CANCEL:
            return self.cancel(batch_id)
        if action == LifecycleAction.CLEAR:
            return self.clear(batch_id)
        return self.clear_all()
