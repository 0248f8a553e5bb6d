"""
Presentation-facing surfaces.

Nothing here holds job state: views are rebuilt from the store, actions go
through the lifecycle controller, and toasts are derived from bus events.
"""

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from config.logging_config import get_logger

from .batch_job import BatchJob, ItemStatus
from .batch_store import BatchStateStore
from .events import EventBus, ItemCompleted, ItemFailed, BatchCompleted, BatchTimedOut
from .exceptions import BatchNotFoundError, ConfirmationRequiredError
from .lifecycle import LifecycleAction, LifecycleController

logger = get_logger(__name__)


# ==================== ACTION CONFIRMATION ====================

ACTION_TEXT = {
    LifecycleAction.PAUSE: {
        "title": "Pause Batch",
        "message": "Processing will pause. You can continue where you left off.",
        "confirm_text": "Pause",
    },
    LifecycleAction.RESUME: {
        "title": "Resume Batch",
        "message": "Processing will continue where it stopped.",
        "confirm_text": "Resume",
    },
    LifecycleAction.CANCEL: {
        "title": "Cancel Batch",
        "message": (
            "The batch will be cancelled. Completed images are kept, "
            "pending images will not be processed."
        ),
        "confirm_text": "Cancel Batch",
    },
    LifecycleAction.CLEAR: {
        "title": "Clear Batch",
        "message": "This batch and its results will be removed. This cannot be undone.",
        "confirm_text": "Clear",
    },
    LifecycleAction.CLEAR_ALL: {
        "title": "Clear All Batches",
        "message": "All batch data will be removed. This cannot be undone.",
        "confirm_text": "Clear All",
    },
}


@dataclass
class ActionPrompt:
    """What the confirmation modal shows for a pending action"""
    action: LifecycleAction
    batch_id: Optional[str]
    title: str
    message: str
    confirm_text: str
    destructive: bool
    progress: Optional[Dict[str, int]] = None


class ActionConfirmation:
    """
    Two-step gate in front of the lifecycle controller.

    Usage:
        prompt = confirmation.request(LifecycleAction.CANCEL, batch_id)
        # ... show prompt.title / prompt.message, wait for the user ...
        confirmation.confirm()      # or confirmation.dismiss()

    The controller is only invoked from confirm(), and confirm() without a
    pending request raises ConfirmationRequiredError.
    """

    def __init__(self, controller: LifecycleController, store: BatchStateStore):
        self.controller = controller
        self.store = store
        self._pending: Optional[ActionPrompt] = None

    @property
    def pending(self) -> Optional[ActionPrompt]:
        return self._pending

    def request(self, action: LifecycleAction, batch_id: Optional[str] = None) -> ActionPrompt:
        """Open the confirmation step for an action (replaces any open one)"""
        progress = None
        if action.targets_batch:
            job = self.store.get_batch(batch_id) if batch_id else None
            if job is None:
                raise BatchNotFoundError(batch_id)
            progress = {
                "completed": job.completed_count,
                "total": job.total_count,
                "processing": job.processing_count,
            }

        text = ACTION_TEXT[action]
        self._pending = ActionPrompt(
            action=action,
            batch_id=batch_id if action.targets_batch else None,
            title=text["title"],
            message=text["message"],
            confirm_text=text["confirm_text"],
            destructive=action.is_destructive,
            progress=progress,
        )
        return self._pending

    def confirm(self) -> Any:
        """Run the pending action through the controller"""
        prompt = self._pending
        if prompt is None:
            raise ConfirmationRequiredError("No action is awaiting confirmation")
        self._pending = None
        logger.debug(f"Confirmed {prompt.action.value} for {prompt.batch_id or 'all batches'}")
        return self.controller.apply(prompt.action, prompt.batch_id)

    def dismiss(self):
        """Close the confirmation step without acting"""
        self._pending = None


# ==================== PROGRESS VIEW ====================

@dataclass
class ProgressRow:
    filename: str
    status: ItemStatus
    progress: int
    error: Optional[str] = None
    result_url: Optional[str] = None


@dataclass
class ProgressView:
    """Snapshot rendered by the progress modal"""
    batch_id: str
    name: str
    state: str
    completed: int
    failed: int
    processing: int
    total: int
    percentage: int
    is_complete: bool
    timed_out: bool
    rows: List[ProgressRow] = field(default_factory=list)

    @property
    def headline(self) -> str:
        return "Batch Completed" if self.is_complete else "Processing Batch"

    @property
    def subtitle(self) -> str:
        if self.is_complete:
            return f"{self.completed} succeeded, {self.failed} failed"
        if self.timed_out:
            return "Processing did not finish within the expected time"
        return "Please wait while we process your images"

    @property
    def summary_line(self) -> str:
        """Text for the minimized modal"""
        return f"{self.completed}/{self.total} completed"

    @property
    def can_cancel(self) -> bool:
        return self.state in ("processing", "paused") and not self.is_complete

    @classmethod
    def from_job(cls, job: BatchJob) -> "ProgressView":
        total = job.total_count
        percentage = round(job.completed_count / total * 100) if total else 0
        return cls(
            batch_id=job.id,
            name=job.name,
            state=job.state.value,
            completed=job.completed_count,
            failed=job.failed_count,
            processing=job.processing_count,
            total=total,
            percentage=percentage,
            is_complete=total > 0 and job.is_resolved,
            timed_out=job.timed_out,
            rows=[
                ProgressRow(
                    filename=item.filename,
                    status=item.status,
                    progress=item.progress,
                    error=item.error,
                    result_url=item.result_url,
                )
                for item in job.items
            ],
        )


# ==================== TOASTS ====================

@dataclass
class Toast:
    level: str  # success | error | warning
    message: str
    description: Optional[str] = None
    batch_id: Optional[str] = None


ToastSink = Callable[[Toast], None]


def _log_sink(toast: Toast):
    log = logger.warning if toast.level != "success" else logger.info
    log(f"[toast:{toast.level}] {toast.message}")


class ToastNotifier:
    """
    Turns engine events into toast messages.

    Usage:
        notifier = ToastNotifier(bus, sink=ui.show_toast)
        ...
        notifier.close()
    """

    def __init__(self, bus: EventBus, sink: Optional[ToastSink] = None, enabled: bool = True):
        self.sink = sink or _log_sink
        self.enabled = enabled
        self._unsubscribers = [
            bus.subscribe(ItemCompleted, self._on_item_completed),
            bus.subscribe(ItemFailed, self._on_item_failed),
            bus.subscribe(BatchCompleted, self._on_batch_completed),
            bus.subscribe(BatchTimedOut, self._on_batch_timed_out),
        ]

    def close(self):
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers = []

    def _emit(self, toast: Toast):
        if self.enabled:
            self.sink(toast)

    def _on_item_completed(self, event: ItemCompleted):
        self._emit(Toast(
            level="success",
            message=f"Image completed: {event.item.filename}",
            description="Click to view result",
            batch_id=event.batch_id,
        ))

    def _on_item_failed(self, event: ItemFailed):
        self._emit(Toast(
            level="error",
            message=f"Image failed: {event.item.filename}",
            description=event.item.error,
            batch_id=event.batch_id,
        ))

    def _on_batch_completed(self, event: BatchCompleted):
        if event.failed_count > 0:
            message = (
                f"Batch completed! {event.completed_count} successful, "
                f"{event.failed_count} failed"
            )
        else:
            message = f"Batch completed! All {event.completed_count} images processed"
        self._emit(Toast(level="success", message=message, batch_id=event.batch_id))

    def _on_batch_timed_out(self, event: BatchTimedOut):
        self._emit(Toast(
            level="warning",
            message="Batch did not finish within the expected time",
            description=(
                f"{event.completed_count + event.failed_count}/{event.total_count} "
                f"images processed"
            ),
            batch_id=event.batch_id,
        ))
