"""
Batch Engine
Batch image-job orchestration

Track multi-image AI jobs submitted to the worker service with:
- Persistent batch state (survives restarts)
- Background polling of the worker's advance endpoint
- Pause/resume/cancel/clear lifecycle control
- Per-image completion and failure events
- Output file naming

Usage:
    from batch_engine import create_runtime, BatchJob, BatchItem

    runtime = create_runtime()
    runtime.submit(BatchJob(id=batch_id, name="Rings", items=[
        BatchItem(id="img-1", filename="ring.jpg"),
    ]))
    await runtime.run_until_idle()
"""

from .batch_job import (
    BatchJob,
    BatchItem,
    BatchState,
    ItemStatus,
    NamingConfig,
    NamingPattern,
)

from .batch_store import BatchStateStore

from .events import (
    EventBus,
    BatchEvent,
    ItemCompleted,
    ItemFailed,
    BatchCompleted,
    BatchTimedOut,
)

from .exceptions import (
    BatchEngineError,
    BatchNotFoundError,
    InvalidTransitionError,
    ConfirmationRequiredError,
    WorkerRequestError,
)

from .item_merge import resolve_item_index, merge_items
from .lifecycle import LifecycleAction, LifecycleController
from .naming import format_filename, preview_filenames
from .polling import PollingEngine
from .presentation import ActionConfirmation, ActionPrompt, ProgressView, Toast, ToastNotifier
from .runtime import BatchRuntime, create_runtime
from .worker_client import AdvanceResponse, WorkerClient

__all__ = [
    # Model
    "BatchJob",
    "BatchItem",
    "BatchState",
    "ItemStatus",
    "NamingConfig",
    "NamingPattern",

    # State
    "BatchStateStore",
    "resolve_item_index",
    "merge_items",

    # Events
    "EventBus",
    "BatchEvent",
    "ItemCompleted",
    "ItemFailed",
    "BatchCompleted",
    "BatchTimedOut",

    # Errors
    "BatchEngineError",
    "BatchNotFoundError",
    "InvalidTransitionError",
    "ConfirmationRequiredError",
    "WorkerRequestError",

    # Engine
    "PollingEngine",
    "WorkerClient",
    "AdvanceResponse",
    "LifecycleAction",
    "LifecycleController",

    # Presentation
    "ActionConfirmation",
    "ActionPrompt",
    "ProgressView",
    "Toast",
    "ToastNotifier",

    # Naming
    "format_filename",
    "preview_filenames",

    # Runtime
    "BatchRuntime",
    "create_runtime",
]

__version__ = "1.0.0"
