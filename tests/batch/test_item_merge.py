"""
Unit tests for batch_engine.item_merge module.
"""

from batch_engine.batch_job import BatchItem, ItemStatus
from batch_engine.item_merge import (
    DEFAULT_FAILURE_MESSAGE,
    merge_item,
    merge_items,
    resolve_item_index,
    update_fields,
)


def _items():
    return [
        BatchItem(id="srv-1", local_id="loc-1", filename="a.jpg"),
        BatchItem(id="", local_id="loc-2", filename="b.jpg"),
        BatchItem(id="", local_id="srv-3", filename="c.jpg"),
    ]


class TestResolveItemIndex:
    """Tests for the dual-key resolver."""

    def test_matches_server_id(self):
        assert resolve_item_index(_items(), item_id="srv-1") == 0

    def test_matches_local_id(self):
        assert resolve_item_index(_items(), local_id="loc-2") == 1

    def test_server_id_matches_local_id_before_id_is_known(self):
        assert resolve_item_index(_items(), item_id="srv-3") == 2

    def test_id_takes_precedence_over_local_id(self):
        items = [
            BatchItem(id="", local_id="x", filename="first.jpg"),
            BatchItem(id="x", local_id="other", filename="second.jpg"),
        ]
        assert resolve_item_index(items, item_id="x", local_id="x") == 1

    def test_no_match(self):
        assert resolve_item_index(_items(), item_id="nope", local_id="nada") is None

    def test_empty_keys(self):
        assert resolve_item_index(_items()) is None


class TestMergeItem:
    """Tests for merge_item."""

    def test_merges_fields_and_keeps_local_id(self):
        item = BatchItem(id="", local_id="loc-1", filename="a.jpg")
        merged = merge_item(item, {"id": "srv-1", "local_id": "srv-1", "status": ItemStatus.PROCESSING})
        assert merged.id == "srv-1"
        assert merged.local_id == "loc-1"
        assert merged.status == ItemStatus.PROCESSING

    def test_does_not_mutate_original(self):
        item = BatchItem(local_id="loc-1")
        merge_item(item, {"status": ItemStatus.COMPLETED})
        assert item.status == ItemStatus.PENDING

    def test_terminal_status_never_regresses(self):
        item = BatchItem(local_id="loc-1", status=ItemStatus.COMPLETED, progress=100,
                         result_url="https://cdn/r.jpg")
        merged = merge_item(item, {"status": ItemStatus.PROCESSING, "progress": 50})
        assert merged.status == ItemStatus.COMPLETED
        assert merged.progress == 100
        assert merged.result_url == "https://cdn/r.jpg"

    def test_failed_without_message_gets_default_error(self):
        merged = merge_item(BatchItem(), {"status": ItemStatus.FAILED})
        assert merged.error == DEFAULT_FAILURE_MESSAGE

    def test_error_dropped_when_not_failed(self):
        item = BatchItem(error="stale")
        merged = merge_item(item, {"status": ItemStatus.PROCESSING})
        assert merged.error is None

    def test_empty_id_does_not_erase_known_id(self):
        item = BatchItem(id="srv-1")
        assert merge_item(item, {"id": ""}).id == "srv-1"


class TestMergeItems:
    """Tests for merge_items."""

    def test_untouched_items_kept(self):
        items = _items()
        merged = merge_items(items, [{"id": "srv-1", "status": "completed"}])
        assert merged[0].status == ItemStatus.COMPLETED
        assert merged[1] is items[1]
        assert merged[2] is items[2]

    def test_unknown_items_dropped(self):
        merged = merge_items(_items(), [{"id": "srv-9", "filename": "z.jpg", "status": "pending"}])
        assert len(merged) == 3
        assert [item.local_id for item in merged] == ["loc-1", "loc-2", "srv-3"]

    def test_server_ids_unrelated_to_local_ids(self):
        items = [BatchItem(filename=f"{i}.jpg") for i in range(3)]
        updates = [{"id": f"srv-{i}", "status": "completed"} for i in range(3)]

        merged = merge_items(items, updates)

        assert len(merged) == 3
        assert all(item.status == ItemStatus.PENDING for item in merged)
        assert all(item.id == "" for item in merged)

    def test_empty_batch_is_seeded(self):
        merged = merge_items([], [
            {"id": "srv-1", "filename": "a.jpg", "status": "pending"},
            {"id": "srv-2", "filename": "b.jpg", "status": "completed"},
        ])
        assert [item.id for item in merged] == ["srv-1", "srv-2"]
        assert merged[1].local_id == "srv-2"
        assert merged[1].status == ItemStatus.COMPLETED

    def test_accepts_batch_items(self):
        update = BatchItem(id="srv-1", local_id="ignored", filename="a.jpg", status=ItemStatus.FAILED,
                           error="nope")
        merged = merge_items(_items(), [update])
        assert merged[0].status == ItemStatus.FAILED
        assert merged[0].local_id == "loc-1"

    def test_idempotent(self):
        updates = [
            {"id": "srv-1", "status": "completed", "result_url": "https://cdn/1.jpg"},
            {"id": "srv-3", "status": "failed", "error": "bad"},
        ]
        once = merge_items(_items(), updates)
        twice = merge_items(once, updates)
        assert [i.to_dict() for i in once] == [i.to_dict() for i in twice]

    def test_update_fields_filters_unknown_keys(self):
        fields = update_fields({"id": "a", "status": "pending", "resultUrl": "x", "bogus": 1})
        assert fields == {"id": "a", "status": ItemStatus.PENDING}
