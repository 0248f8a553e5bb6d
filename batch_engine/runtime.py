"""
Application root: builds and owns one set of engine components.
"""

from dataclasses import dataclass
from typing import Optional

import httpx

from config.logging_config import get_logger, set_level
from config.settings import Settings

from .batch_job import BatchJob
from .batch_store import BatchStateStore
from .events import EventBus
from .lifecycle import LifecycleController
from .polling import PollingEngine
from .presentation import ActionConfirmation, ToastNotifier, ToastSink
from .worker_client import WorkerClient

logger = get_logger(__name__)


@dataclass
class BatchRuntime:
    """Every engine component, wired to one shared store"""
    settings: Settings
    store: BatchStateStore
    bus: EventBus
    worker: WorkerClient
    engine: PollingEngine
    controller: LifecycleController
    confirmation: ActionConfirmation
    notifier: ToastNotifier

    def submit(self, job: BatchJob) -> BatchJob:
        """Track a batch the worker service has accepted and start polling it."""
        self.store.add_batch(job)
        self.engine.ensure_polling()
        return job

    def resume(self, batch_id: str) -> BatchJob:
        """Resume a paused batch and make sure the loop is running for it."""
        job = self.controller.resume(batch_id)
        self.engine.ensure_polling()
        return job

    async def run_until_idle(self):
        """Poll until nothing is drivable or the ceiling is reached."""
        if self.engine.ensure_polling():
            await self.engine.wait_stopped()
        await self.engine.drain()

    async def aclose(self):
        """Stop polling, let requests land, persist state, release the HTTP client."""
        await self.engine.shutdown()
        self.notifier.close()
        await self.worker.aclose()
        self.store.save()


def create_runtime(
    settings: Optional[Settings] = None,
    http_client: Optional[httpx.AsyncClient] = None,
    toast_sink: Optional[ToastSink] = None,
) -> BatchRuntime:
    """
    Create the engine with settings defaults and restore persisted batches.

    Args:
        settings: Settings instance; read from the environment when None
        http_client: Optional shared httpx client for the worker
        toast_sink: Where toast messages go; logged when None
    """
    settings = settings or Settings()
    set_level(settings.log_level)

    store = BatchStateStore(settings.state_path, auto_save=settings.auto_save)
    store.load()

    bus = EventBus()
    worker = WorkerClient(
        settings.worker_base_url,
        http_client=http_client,
        timeout=settings.request_timeout_seconds,
        api_token=settings.worker_api_token,
    )
    engine = PollingEngine(
        store,
        worker,
        bus,
        poll_interval=settings.poll_interval_seconds,
        max_poll_seconds=settings.max_poll_seconds,
    )
    controller = LifecycleController(store)

    return BatchRuntime(
        settings=settings,
        store=store,
        bus=bus,
        worker=worker,
        engine=engine,
        controller=controller,
        confirmation=ActionConfirmation(controller, store),
        notifier=ToastNotifier(bus, sink=toast_sink, enabled=settings.show_toasts),
    )
