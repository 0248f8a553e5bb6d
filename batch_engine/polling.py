"""
Polling engine.

Drives every batch in PROCESSING forward by calling the worker's advance
endpoint on a fixed interval, merges responses into the store and publishes
item/batch events.

Phases:
    Idle -> Polling   ensure_polling() finds a drivable batch (boot, resume,
                      visibility regain)
    Polling -> Idle   nothing left to drive, the global ceiling elapsed, or
                      stop() was called
"""

import asyncio
import time
from datetime import datetime
from typing import Callable, Dict, List, Optional

from config.constants import POLL_INTERVAL_SECONDS, MAX_POLL_SECONDS
from config.logging_config import get_logger

from .batch_job import BatchState, ItemStatus
from .batch_store import BatchStateStore
from .events import EventBus, ItemCompleted, ItemFailed, BatchCompleted, BatchTimedOut
from .exceptions import WorkerRequestError
from .item_merge import resolve_item_index
from .worker_client import AdvanceResponse, WorkerClient

logger = get_logger(__name__)


class PollingEngine:
    """
    Timer-driven advance loop over the batch store.

    Usage:
        engine = PollingEngine(store, worker, bus)
        engine.ensure_polling()          # from inside the running event loop
        ...
        await engine.shutdown()

    Each drivable batch gets its own request task per tick, so a slow or
    failing batch never holds up the others. A batch whose previous request
    is still in flight is skipped until that request settles.
    """

    def __init__(
        self,
        store: BatchStateStore,
        worker: WorkerClient,
        bus: Optional[EventBus] = None,
        poll_interval: float = POLL_INTERVAL_SECONDS,
        max_poll_seconds: float = MAX_POLL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.store = store
        self.worker = worker
        self.bus = bus or EventBus()
        self.poll_interval = poll_interval
        self.max_poll_seconds = max_poll_seconds
        self._clock = clock

        self._ticker: Optional[asyncio.Task] = None
        self._started_at: Optional[float] = None
        self._in_flight: Dict[str, asyncio.Task] = {}
        self.timed_out = False

        logger.info(
            f"PollingEngine initialized: interval={poll_interval}s, "
            f"ceiling={max_poll_seconds}s"
        )

    # =========================================
    # Loop control
    # =========================================

    @property
    def is_polling(self) -> bool:
        return self._ticker is not None and not self._ticker.done()

    @property
    def in_flight(self) -> List[str]:
        """Batch ids with an advance request outstanding"""
        return list(self._in_flight)

    def ensure_polling(self) -> bool:
        """
        Start the loop if it is idle and some batch needs polling.

        Must be called while the event loop is running.

        Returns:
            True if the loop is running afterwards
        """
        if self.is_polling:
            return True
        if not self.store.get_drivable():
            return False

        self._started_at = self._clock()
        self.timed_out = False
        self._ticker = asyncio.get_running_loop().create_task(self._run())
        logger.info("Starting batch polling")
        return True

    def on_visibility_change(self, visible: bool) -> bool:
        """
        React to the host view becoming visible or hidden.

        Polling continues in the background either way; regaining visibility
        re-checks drivability right away instead of waiting for a tick.
        """
        if not visible:
            return self.is_polling
        if not self.is_polling:
            logger.debug("View became visible, re-checking drivable batches")
        return self.ensure_polling()

    def stop(self):
        """
        Stop scheduling ticks.

        Requests already in flight are left to finish; their responses are
        still merged.
        """
        if self._ticker is not None and not self._ticker.done():
            self._ticker.cancel()
            logger.info("Batch polling stopped")

    async def wait_stopped(self):
        """Wait until the loop goes idle on its own (or is stopped)."""
        ticker = self._ticker
        if ticker is None:
            return
        try:
            await ticker
        except asyncio.CancelledError:
            pass

    async def drain(self):
        """Wait for every in-flight advance request to settle."""
        while self._in_flight:
            await asyncio.gather(*list(self._in_flight.values()), return_exceptions=True)

    async def shutdown(self):
        """Stop the loop and let outstanding requests land."""
        self.stop()
        await self.wait_stopped()
        await self.drain()

    async def _run(self):
        """Main polling loop"""
        current = asyncio.current_task()
        try:
            while True:
                if self._ceiling_reached():
                    logger.warning("Polling timeout reached, stopping...")
                    self._report_timeout()
                    break

                if not self.store.get_drivable():
                    logger.debug("No processing batches, stopping polling")
                    break

                self.tick()
                await asyncio.sleep(self.poll_interval)
        finally:
            if self._ticker is current:
                self._ticker = None
                self._started_at = None

    def _ceiling_reached(self) -> bool:
        if self._started_at is None:
            return False
        return self._clock() - self._started_at > self.max_poll_seconds

    def _report_timeout(self):
        """Flag every undone processing batch and tell subscribers; nothing is cancelled."""
        self.timed_out = True
        for job in self.store.get_all():
            if job.state != BatchState.PROCESSING or job.is_resolved or job.timed_out:
                continue
            self.store.update_batch(job.id, timed_out=True)
            logger.warning(
                f"[Batch:{job.id}] Not finished within {self.max_poll_seconds:.0f}s "
                f"({job.resolved_count}/{job.total_count} resolved)"
            )
            self.bus.publish(BatchTimedOut(
                batch_id=job.id,
                completed_count=job.completed_count,
                failed_count=job.failed_count,
                total_count=job.total_count,
            ))

    # =========================================
    # Tick
    # =========================================

    def tick(self) -> List[asyncio.Task]:
        """
        Issue one advance request per drivable batch.

        Returns:
            The request tasks started on this tick
        """
        loop = asyncio.get_running_loop()
        tasks = []
        for job in self.store.get_drivable():
            if job.id in self._in_flight:
                logger.debug(f"[Batch:{job.id}] Previous advance still in flight, skipping")
                continue

            task = loop.create_task(self.poll_batch(job.id))
            self._in_flight[job.id] = task
            task.add_done_callback(
                lambda t, batch_id=job.id: self._request_finished(batch_id, t)
            )
            tasks.append(task)
        return tasks

    def _request_finished(self, batch_id: str, task: asyncio.Task):
        if self._in_flight.get(batch_id) is task:
            del self._in_flight[batch_id]
        if not task.cancelled() and task.exception() is not None:
            logger.error(f"[Batch:{batch_id}] Unexpected polling error: {task.exception()!r}")

    async def poll_batch(self, batch_id: str) -> bool:
        """
        Advance one batch and merge the result.

        Transport and worker errors are logged and treated as "no news";
        they never mark items failed.

        Returns:
            True if the worker reported the batch done
        """
        try:
            response = await self.worker.advance(batch_id)
        except WorkerRequestError as e:
            logger.error(f"Poll failed for batch {batch_id}: {e}")
            return False

        return self.apply_response(batch_id, response)

    def apply_response(self, batch_id: str, response: AdvanceResponse) -> bool:
        """
        Merge one advance response into the store and publish events.

        Safe to call at any time, including after the loop stopped or the
        batch was cancelled; applying the same response twice changes
        nothing the second time.
        """
        job = self.store.get_batch(batch_id)
        if job is None:
            logger.info(f"[Batch:{batch_id}] Response for a removed batch, dropping")
            return response.done

        updates = [item.to_item_fields() for item in response.items]

        # Items already terminal in the store never announce again; merges
        # keep existing items at their index and only append into an empty batch
        already_terminal = {i for i, item in enumerate(job.items) if item.is_terminal}

        batch_fields = {}
        if response.progress is not None:
            batch_fields["reported_progress"] = response.progress.to_dict()
        if response.credits is not None:
            if response.credits.balance is not None:
                batch_fields["credit_balance"] = response.credits.balance
            if response.credits.refunded is not None:
                batch_fields["credits_refunded"] = response.credits.refunded

        if batch_fields:
            self.store.update_batch(batch_id, **batch_fields)
        if updates:
            job = self.store.update_batch_items(batch_id, updates)

        announced = set()
        for fields in updates:
            if fields.get("status") not in (ItemStatus.COMPLETED, ItemStatus.FAILED):
                continue
            index = resolve_item_index(job.items, fields.get("id"), fields.get("local_id"))
            if index is None or index in already_terminal or index in announced:
                continue
            announced.add(index)
            item = job.items[index]
            if item.status == ItemStatus.COMPLETED:
                logger.info(f"[Batch:{batch_id}] Image completed: {item.filename}")
                self.bus.publish(ItemCompleted(batch_id=batch_id, item=item))
            elif item.status == ItemStatus.FAILED:
                logger.warning(f"[Batch:{batch_id}] Image failed: {item.filename} - {item.error}")
                self.bus.publish(ItemFailed(batch_id=batch_id, item=item))

        if response.done:
            self._complete_batch(batch_id, response)
        return response.done

    def _complete_batch(self, batch_id: str, response: AdvanceResponse):
        job = self.store.get_batch(batch_id)
        if job.state == BatchState.CANCELLED:
            logger.info(f"[Batch:{batch_id}] Done reported for a cancelled batch, state kept")
            return
        if job.state == BatchState.COMPLETED:
            return

        self.store.update_batch(
            batch_id,
            state=BatchState.COMPLETED,
            completed_at=datetime.now(),
            paused_at=None,
        )

        if response.progress is not None:
            completed, failed = response.progress.completed, response.progress.failed
        else:
            completed, failed = job.completed_count, job.failed_count

        logger.info(f"[Batch:{batch_id}] Completed: {completed} successful, {failed} failed")
        self.bus.publish(BatchCompleted(
            batch_id=batch_id,
            completed_count=completed,
            failed_count=failed,
        ))
