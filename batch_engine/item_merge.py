"""
Item identity resolution and field merging.

Items are matched on two keys: the server ``id`` wins when the incoming
record carries one that is already known, otherwise ``local_id`` is used.
The worker only knows server ids, so an incoming id is also tried against
``local_id`` for items registered before their server id was learned.
"""

import dataclasses
from typing import Any, Dict, List, Mapping, Optional, Union

from config.logging_config import get_logger

from .batch_job import BatchItem, ItemStatus

logger = get_logger(__name__)

DEFAULT_FAILURE_MESSAGE = "Processing failed"

ItemUpdate = Union[BatchItem, Mapping[str, Any]]

_ITEM_FIELDS = frozenset(f.name for f in dataclasses.fields(BatchItem))


def resolve_item_index(
    items: List[BatchItem],
    item_id: Optional[str] = None,
    local_id: Optional[str] = None,
) -> Optional[int]:
    """
    Find the position of the item addressed by ``item_id`` / ``local_id``.

    Precedence: exact ``id`` match, then ``local_id`` match, then the
    incoming ``id`` against stored ``local_id``. First match wins.
    """
    if item_id:
        for index, item in enumerate(items):
            if item.id == item_id:
                return index
    if local_id:
        for index, item in enumerate(items):
            if item.local_id == local_id:
                return index
    if item_id and item_id != local_id:
        for index, item in enumerate(items):
            if item.local_id == item_id:
                return index
    return None


def update_fields(update: ItemUpdate) -> Dict[str, Any]:
    """Normalize an incoming update into a dict of BatchItem fields"""
    if isinstance(update, BatchItem):
        fields = update.to_dict()
    else:
        fields = {k: v for k, v in update.items() if k in _ITEM_FIELDS}

    status = fields.get("status")
    if status is not None and not isinstance(status, ItemStatus):
        fields["status"] = ItemStatus(status)
    return fields


def merge_item(existing: BatchItem, fields: Mapping[str, Any]) -> BatchItem:
    """
    Return ``existing`` with ``fields`` applied.

    ``local_id`` is never overwritten once set, and a terminal item never
    moves back to a non-terminal status (late responses may still carry an
    older status for it).
    """
    changes = dict(fields)
    changes.pop("local_id", None)
    if not changes.get("id"):
        changes.pop("id", None)

    status = changes.get("status")
    if status is not None and existing.is_terminal and not status.is_terminal:
        logger.debug(
            f"Ignoring status regression for item {existing.key}: "
            f"{existing.status.value} -> {status.value}"
        )
        for key in ("status", "progress", "error"):
            changes.pop(key, None)

    merged = dataclasses.replace(existing, **changes)

    # error is present iff the item failed
    if merged.status == ItemStatus.FAILED:
        if not merged.error:
            merged.error = DEFAULT_FAILURE_MESSAGE
    elif merged.error is not None:
        merged.error = None

    return merged


def new_item(fields: Mapping[str, Any]) -> BatchItem:
    """Build an item reported by the worker but not yet known locally"""
    data = dict(fields)
    if not data.get("local_id"):
        data["local_id"] = data.get("id") or BatchItem().local_id
    return merge_item(BatchItem(local_id=data["local_id"]), data)


def merge_items(items: List[BatchItem], updates: List[ItemUpdate]) -> List[BatchItem]:
    """
    Apply a list of updates to ``items`` and return the new list.

    Items without an update are kept as they are. Updates that match no
    item are dropped, unless the batch had no items at all, in which case
    they seed it in the order received.
    """
    merged = list(items)
    seeding = not merged
    for update in updates:
        fields = update_fields(update)
        index = resolve_item_index(merged, fields.get("id"), fields.get("local_id"))
        if index is None:
            if not seeding:
                logger.debug(
                    f"Dropping update for unknown item "
                    f"{fields.get('id') or fields.get('local_id')}"
                )
                continue
            merged.append(new_item(fields))
        else:
            merged[index] = merge_item(merged[index], fields)
    return merged
