"""
Unit tests for batch_engine.lifecycle module.
"""

import pytest

from batch_engine.batch_job import BatchState, ItemStatus
from batch_engine.exceptions import BatchNotFoundError, InvalidTransitionError
from batch_engine.lifecycle import LifecycleAction, LifecycleController


@pytest.fixture
def controller(store):
    return LifecycleController(store)


@pytest.fixture
def batch(store, job_factory, filenames):
    return store.add_batch(job_factory("b1", filenames))


class TestTransitions:
    """Tests for pause/resume/cancel."""

    def test_pause_and_resume(self, controller, store, batch):
        job = controller.pause("b1")
        assert job.state == BatchState.PAUSED
        assert job.paused_at is not None
        assert store.get_drivable() == []

        job = controller.resume("b1")
        assert job.state == BatchState.PROCESSING
        assert job.paused_at is None
        assert [j.id for j in store.get_drivable()] == ["b1"]

    def test_pause_keeps_items(self, controller, store, batch):
        store.update_batch_items("b1", [{"id": "b1-img-0", "status": "processing"}])
        job = controller.pause("b1")
        assert job.items[0].status == ItemStatus.PROCESSING

    def test_cancel_from_paused(self, controller, batch):
        controller.pause("b1")
        assert controller.cancel("b1").state == BatchState.CANCELLED

    def test_resume_requires_paused(self, controller, batch):
        with pytest.raises(InvalidTransitionError) as exc_info:
            controller.resume("b1")
        assert exc_info.value.state == "processing"

    def test_pause_twice_rejected(self, controller, batch):
        controller.pause("b1")
        with pytest.raises(InvalidTransitionError):
            controller.pause("b1")

    @pytest.mark.parametrize("terminal", [BatchState.COMPLETED, BatchState.CANCELLED])
    @pytest.mark.parametrize("action", [
        LifecycleAction.PAUSE, LifecycleAction.RESUME, LifecycleAction.CANCEL,
    ])
    def test_terminal_states_absorb(self, controller, store, batch, terminal, action):
        store.update_batch("b1", state=terminal)

        with pytest.raises(InvalidTransitionError):
            controller.apply(action, "b1")

        assert store.get_batch("b1").state == terminal

    def test_unknown_batch(self, controller):
        with pytest.raises(BatchNotFoundError):
            controller.pause("missing")


class TestClear:
    """Tests for clear operations."""

    def test_clear_any_state(self, controller, store, batch):
        store.update_batch("b1", state=BatchState.COMPLETED)
        controller.clear("b1")
        assert "b1" not in store

    def test_clear_unknown(self, controller):
        with pytest.raises(BatchNotFoundError):
            controller.clear("missing")

    def test_clear_all(self, controller, store, job_factory, batch):
        store.add_batch(job_factory("b2", ["a.jpg"]))
        assert controller.apply(LifecycleAction.CLEAR_ALL) == 2
        assert len(store) == 0

    def test_clear_completed(self, controller, store, job_factory, batch):
        store.add_batch(job_factory("b2", ["a.jpg"]))
        controller.cancel("b2")
        assert controller.clear_completed() == 1
        assert "b1" in store


class TestAllowedActions:
    """Tests for allowed_actions and action metadata."""

    def test_processing(self, controller, batch):
        assert set(controller.allowed_actions("b1")) == {
            LifecycleAction.PAUSE, LifecycleAction.CANCEL, LifecycleAction.CLEAR,
        }

    def test_paused(self, controller, batch):
        controller.pause("b1")
        assert set(controller.allowed_actions("b1")) == {
            LifecycleAction.RESUME, LifecycleAction.CANCEL, LifecycleAction.CLEAR,
        }

    def test_cancelled(self, controller, batch):
        controller.cancel("b1")
        assert controller.allowed_actions("b1") == [LifecycleAction.CLEAR]

    def test_destructive_flags(self):
        assert LifecycleAction.CANCEL.is_destructive
        assert LifecycleAction.CLEAR_ALL.is_destructive
        assert not LifecycleAction.PAUSE.is_destructive
        assert not LifecycleAction.CLEAR_ALL.targets_batch
