"""
Batch State Store
Batch Engine

Single owner of every BatchJob in the session. All other components read
from it or call its mutation methods; derived counts are recomputed here
after every mutation.
"""

import json
import os
from datetime import datetime
from pathlib import Path
from typing import Callable, Dict, List, Optional, Union

from config.constants import STATE_VERSION
from config.logging_config import get_logger

from .batch_job import BatchJob, BatchState, DERIVED_COUNT_FIELDS
from .exceptions import BatchNotFoundError
from .item_merge import ItemUpdate, merge_items, resolve_item_index, merge_item, update_fields

logger = get_logger(__name__)

# Called with the id of the batch that changed (None for bulk changes)
StoreListener = Callable[[Optional[str]], None]

_PROTECTED_FIELDS = DERIVED_COUNT_FIELDS | {"id", "items"}


class BatchStateStore:
    """
    In-memory batch registry with an explicit JSON persistence boundary.

    Usage:
        store = BatchStateStore("data/batch_state.json")
        store.load()
        store.add_batch(job)
        store.update_batch_items(job.id, items)
        store.save()

    Only the batch list and the current batch pointer are persisted; polling
    liveness is always re-derived from get_drivable() on boot.
    """

    def __init__(
        self,
        storage_path: Optional[Union[str, Path]] = None,
        auto_save: bool = True,
    ):
        self.storage_path = Path(storage_path) if storage_path else None
        self.auto_save = auto_save and self.storage_path is not None

        self._batches: Dict[str, BatchJob] = {}
        self._current_batch_id: Optional[str] = None
        self._listeners: List[StoreListener] = []

    # =========================================
    # Persistence
    # =========================================

    def load(self) -> int:
        """
        Restore batches from storage.

        Returns:
            Number of batches loaded (0 when nothing usable is stored)
        """
        if not self.storage_path or not self.storage_path.exists():
            return 0

        try:
            with open(self.storage_path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.error(f"Error loading batch state from {self.storage_path}: {e}")
            return 0

        if data.get("version") != STATE_VERSION:
            logger.warning(
                f"Batch state version mismatch ({data.get('version')} != {STATE_VERSION}), ignoring"
            )
            return 0

        batches: Dict[str, BatchJob] = {}
        for batch_data in data.get("batches", []):
            try:
                job = BatchJob.from_dict(batch_data)
            except (KeyError, TypeError, ValueError) as e:
                logger.warning(f"Skipping unreadable batch record: {e}")
                continue
            batches[job.id] = job

        self._batches = batches
        current = data.get("current_batch_id")
        self._current_batch_id = current if current in batches else None

        logger.info(f"Batch state loaded: {len(batches)} batches")
        self._notify(None)
        return len(batches)

    def save(self):
        """Write batches and the current pointer to storage"""
        if not self.storage_path:
            return

        data = {
            "version": STATE_VERSION,
            "saved_at": datetime.now().isoformat(),
            "batches": [job.to_dict() for job in self._batches.values()],
            "current_batch_id": self._current_batch_id,
        }

        try:
            self.storage_path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path = self.storage_path.with_suffix(self.storage_path.suffix + ".tmp")
            with open(tmp_path, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2)
            os.replace(tmp_path, self.storage_path)
        except OSError as e:
            logger.error(f"Error saving batch state: {e}")

    def _changed(self, batch_id: Optional[str]):
        if self.auto_save:
            self.save()
        self._notify(batch_id)

    # =========================================
    # Listeners
    # =========================================

    def add_listener(self, listener: StoreListener):
        """Register a change listener."""
        self._listeners.append(listener)

    def remove_listener(self, listener: StoreListener):
        """Remove a change listener."""
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _notify(self, batch_id: Optional[str]):
        for listener in self._listeners:
            try:
                listener(batch_id)
            except Exception as e:
                logger.error(f"Store listener error: {e}")

    # =========================================
    # Mutations
    # =========================================

    def _require(self, batch_id: str) -> BatchJob:
        job = self._batches.get(batch_id)
        if job is None:
            raise BatchNotFoundError(batch_id)
        return job

    def add_batch(self, job: BatchJob) -> BatchJob:
        """
        Insert a newly submitted batch.

        The batch starts in PROCESSING with counts derived from its items.
        A batch with the same id is replaced, and the new batch becomes the
        current one.
        """
        job.state = BatchState.PROCESSING
        job.paused_at = None
        job.completed_at = None
        job.timed_out = False
        job.recount()

        self._batches.pop(job.id, None)
        self._batches[job.id] = job
        self._current_batch_id = job.id

        logger.info(f"[Batch:{job.id}] Added '{job.name}' with {job.total_count} items")
        self._changed(job.id)
        return job

    def update_batch(self, batch_id: str, **fields) -> BatchJob:
        """
        Shallow-merge batch fields.

        ``items`` and the derived counts cannot be set here; count values are
        dropped and recomputed from the items.
        """
        job = self._require(batch_id)

        for name, value in fields.items():
            if name in _PROTECTED_FIELDS:
                logger.debug(f"[Batch:{batch_id}] update_batch ignores '{name}'")
                continue
            if not hasattr(job, name):
                raise ValueError(f"Unknown batch field: {name}")
            setattr(job, name, value)

        job.recount()
        self._changed(batch_id)
        return job

    def update_batch_item(self, batch_id: str, item_key: str, **fields) -> BatchJob:
        """Merge fields into the item whose id or local_id equals item_key"""
        job = self._require(batch_id)

        index = resolve_item_index(job.items, item_key, item_key)
        if index is None:
            logger.warning(f"[Batch:{batch_id}] No item matches '{item_key}'")
            return job

        job.items[index] = merge_item(job.items[index], update_fields(fields))
        job.recount()
        self._changed(batch_id)
        return job

    def update_batch_items(self, batch_id: str, new_items: List[ItemUpdate]) -> BatchJob:
        """
        Merge a (possibly partial) item list into the batch.

        Items not mentioned keep their current values.
        """
        job = self._require(batch_id)
        job.items = merge_items(job.items, list(new_items))
        job.recount()
        self._changed(batch_id)
        return job

    def remove_batch(self, batch_id: str) -> bool:
        """Remove a batch. Returns False when it was not present."""
        if batch_id not in self._batches:
            return False

        del self._batches[batch_id]
        if self._current_batch_id == batch_id:
            self._current_batch_id = None

        logger.info(f"[Batch:{batch_id}] Removed")
        self._changed(batch_id)
        return True

    def set_current_batch(self, batch_id: Optional[str]):
        """Point the UI focus at a batch (or nothing)"""
        if batch_id is not None:
            self._require(batch_id)
        self._current_batch_id = batch_id
        self._changed(batch_id)

    def clear_completed_batches(self) -> int:
        """
        Drop batches that need no more polling: fully resolved, completed,
        or cancelled.

        Returns:
            Number of batches removed
        """
        to_remove = [
            batch_id for batch_id, job in self._batches.items()
            if job.is_resolved or job.state.is_terminal
        ]
        for batch_id in to_remove:
            del self._batches[batch_id]
        if self._current_batch_id in to_remove:
            self._current_batch_id = None

        if to_remove:
            logger.info(f"Cleared {len(to_remove)} finished batches")
            self._changed(None)
        return len(to_remove)

    def clear_all_batches(self) -> int:
        """Drop every batch. Returns the number removed."""
        count = len(self._batches)
        self._batches.clear()
        self._current_batch_id = None
        logger.info(f"Cleared all batches ({count})")
        self._changed(None)
        return count

    # =========================================
    # Queries
    # =========================================

    @property
    def current_batch_id(self) -> Optional[str]:
        return self._current_batch_id

    def get_current_batch(self) -> Optional[BatchJob]:
        if self._current_batch_id is None:
            return None
        return self._batches.get(self._current_batch_id)

    def get_batch(self, batch_id: str) -> Optional[BatchJob]:
        """Get batch by ID"""
        return self._batches.get(batch_id)

    def get_all(self) -> List[BatchJob]:
        """Get all batches in insertion order"""
        return list(self._batches.values())

    def get_by_state(self, state: BatchState) -> List[BatchJob]:
        return [job for job in self._batches.values() if job.state == state]

    def get_drivable(self) -> List[BatchJob]:
        """Batches the polling engine should advance on this tick"""
        return [job for job in self._batches.values() if job.is_drivable]

    def _needs_polling(self, job: BatchJob) -> bool:
        return not job.state.is_terminal and not job.is_resolved

    def get_active_count(self) -> int:
        """Number of batches still in flight (processing or paused, unresolved)"""
        return sum(1 for job in self._batches.values() if self._needs_polling(job))

    def has_drivable_batches(self) -> bool:
        """True iff some non-terminal batch still has unresolved items"""
        return any(self._needs_polling(job) for job in self._batches.values())

    def __len__(self) -> int:
        return len(self._batches)

    def __contains__(self, batch_id: str) -> bool:
        return batch_id in self._batches
