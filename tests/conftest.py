"""
Pytest configuration and shared fixtures for batch engine tests.
"""
import sys
import pytest
from pathlib import Path
from typing import Dict, List, Optional, Set

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from batch_engine.batch_job import BatchItem, BatchJob
from batch_engine.batch_store import BatchStateStore
from batch_engine.events import EventBus, BatchEvent
from batch_engine.exceptions import WorkerRequestError
from batch_engine.worker_client import AdvanceResponse


# ============================================================================
# Fake worker
# ============================================================================

class SimulatedWorker:
    """
    Stand-in for the worker service.

    Each advance() completes (or fails) the next pending image of the batch,
    like the real endpoint, and reports every image plus aggregate progress.
    """

    def __init__(self):
        self.batches: Dict[str, List[dict]] = {}
        self.failures: Dict[str, Set[str]] = {}
        self.errors: Dict[str, List[Exception]] = {}
        self.calls: List[str] = []

    def add_batch(self, batch_id: str, filenames: List[str], fail: Optional[Set[str]] = None):
        self.batches[batch_id] = [
            {"id": f"{batch_id}-img-{i}", "filename": name, "status": "pending"}
            for i, name in enumerate(filenames)
        ]
        self.failures[batch_id] = set(fail or ())

    def fail_next(self, batch_id: str, error: Exception):
        self.errors.setdefault(batch_id, []).append(error)

    def build_response(self, batch_id: str) -> AdvanceResponse:
        images = self.batches[batch_id]
        pending = [img for img in images if img["status"] == "pending"]
        return AdvanceResponse.model_validate({
            "progress": {
                "total": len(images),
                "completed": sum(1 for img in images if img["status"] == "completed"),
                "failed": sum(1 for img in images if img["status"] == "failed"),
                "processing": sum(1 for img in images if img["status"] == "processing"),
            },
            "items": [dict(img) for img in images],
            "done": not pending,
        })

    async def advance(self, batch_id: str) -> AdvanceResponse:
        self.calls.append(batch_id)
        queued = self.errors.get(batch_id)
        if queued:
            raise queued.pop(0)

        images = self.batches[batch_id]
        for img in images:
            if img["status"] == "pending":
                if img["filename"] in self.failures[batch_id]:
                    img["status"] = "failed"
                    img["error"] = f"AI generation failed for {img['filename']}"
                else:
                    img["status"] = "completed"
                    img["resultUrl"] = f"https://cdn.example.com/results/{img['id']}.jpg"
                break
        return self.build_response(batch_id)

    def calls_for(self, batch_id: str) -> int:
        return self.calls.count(batch_id)


# ============================================================================
# Fixtures: Sample Data
# ============================================================================

@pytest.fixture
def filenames():
    return ["ring.jpg", "necklace.png", "earring.jpg", "bracelet.webp", "pendant.jpg"]


def make_job(batch_id: str, filenames: List[str], **kwargs) -> BatchJob:
    """Batch whose local ids match the simulated worker's image ids"""
    return BatchJob(
        id=batch_id,
        name=kwargs.pop("name", f"Batch {batch_id}"),
        items=[
            BatchItem(local_id=f"{batch_id}-img-{i}", filename=name)
            for i, name in enumerate(filenames)
        ],
        **kwargs,
    )


@pytest.fixture
def job_factory():
    return make_job


# ============================================================================
# Fixtures: Core Components
# ============================================================================

@pytest.fixture
def store() -> BatchStateStore:
    """In-memory store (no persistence)"""
    return BatchStateStore()


@pytest.fixture
def state_file(tmp_path: Path) -> Path:
    return tmp_path / "state" / "batch_state.json"


@pytest.fixture
def worker() -> SimulatedWorker:
    return SimulatedWorker()


@pytest.fixture
def bus() -> EventBus:
    return EventBus()


@pytest.fixture
def recorded_events(bus: EventBus) -> List[BatchEvent]:
    """Every event published on the bus, in order"""
    events: List[BatchEvent] = []
    bus.subscribe(BatchEvent, events.append)
    return events


@pytest.fixture
def transport_error():
    return WorkerRequestError("b1", "ConnectError: connection refused")


# ============================================================================
# Session-level Setup/Teardown
# ============================================================================

def pytest_configure(config):
    """Register markers used below."""
    config.addinivalue_line("markers", "unit: fast isolated tests")
    config.addinivalue_line("markers", "integration: multi-component scenarios")


def pytest_collection_modifyitems(config, items):
    """Modify test collection to add markers."""
    for item in items:
        # Auto-add 'unit' marker to test files in tests/batch/
        if "tests/batch/" in str(item.fspath):
            item.add_marker(pytest.mark.unit)
        # Auto-add 'integration' marker to test files in tests/integration/
        elif "integration" in str(item.fspath):
            item.add_marker(pytest.mark.integration)
