"""
Batch Job Definitions
Batch Engine

Defines batch/item structure, states, and serialization.
"""

import uuid
from datetime import datetime
from typing import Optional, List, Dict, Any
from dataclasses import dataclass, field
from enum import Enum

from config.constants import DEFAULT_SEPARATOR, DEFAULT_START_NUMBER


class BatchState(Enum):
    """Batch lifecycle states"""
    PROCESSING = "processing"     # Being advanced by the polling engine
    PAUSED = "paused"             # Paused by user, not advanced
    COMPLETED = "completed"       # Worker reported done
    CANCELLED = "cancelled"       # Cancelled by user

    @property
    def is_terminal(self) -> bool:
        return self in (BatchState.COMPLETED, BatchState.CANCELLED)


class ItemStatus(Enum):
    """Per-image status, written by the worker"""
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (ItemStatus.COMPLETED, ItemStatus.FAILED)


class NamingPattern(Enum):
    """Output filename patterns"""
    ORIGINAL_NUMBER = "original_number"
    NUMBER_ORIGINAL = "number_original"
    BATCH_NUMBER = "batch_number"
    CUSTOM = "custom"


def _parse_datetime(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


def _format_datetime(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


@dataclass
class NamingConfig:
    """How result files are named on export"""
    pattern: NamingPattern = NamingPattern.ORIGINAL_NUMBER
    prefix: str = ""
    suffix: str = ""
    separator: str = DEFAULT_SEPARATOR
    start_number: int = DEFAULT_START_NUMBER

    def to_dict(self) -> Dict[str, Any]:
        return {
            "pattern": self.pattern.value,
            "prefix": self.prefix,
            "suffix": self.suffix,
            "separator": self.separator,
            "start_number": self.start_number,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "NamingConfig":
        """Create from dictionary; unknown patterns fall back to original_number"""
        try:
            pattern = NamingPattern(data.get("pattern", NamingPattern.ORIGINAL_NUMBER.value))
        except ValueError:
            pattern = NamingPattern.ORIGINAL_NUMBER
        return cls(
            pattern=pattern,
            prefix=data.get("prefix") or "",
            suffix=data.get("suffix") or "",
            separator=data.get("separator") or DEFAULT_SEPARATOR,
            start_number=int(data.get("start_number", DEFAULT_START_NUMBER)),
        )


@dataclass
class BatchItem:
    """
    A single image within a batch.

    ``local_id`` is assigned on the client and never changes; ``id`` is the
    server identity and may be empty until the worker reports it.
    """

    filename: str = ""
    id: str = ""
    local_id: str = field(default_factory=lambda: str(uuid.uuid4()))

    original_url: Optional[str] = None
    result_url: Optional[str] = None
    thumbnail_url: Optional[str] = None

    status: ItemStatus = ItemStatus.PENDING
    progress: int = 0
    error: Optional[str] = None

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    @property
    def key(self) -> str:
        """Identity used in events and lookups"""
        return self.id or self.local_id

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "local_id": self.local_id,
            "filename": self.filename,
            "original_url": self.original_url,
            "result_url": self.result_url,
            "thumbnail_url": self.thumbnail_url,
            "status": self.status.value,
            "progress": self.progress,
            "error": self.error,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BatchItem":
        return cls(
            id=data.get("id") or "",
            local_id=data.get("local_id") or data.get("id") or str(uuid.uuid4()),
            filename=data.get("filename", ""),
            original_url=data.get("original_url"),
            result_url=data.get("result_url"),
            thumbnail_url=data.get("thumbnail_url"),
            status=ItemStatus(data.get("status", "pending")),
            progress=int(data.get("progress", 0)),
            error=data.get("error"),
        )


# Fields on BatchJob that are produced by recount() only
DERIVED_COUNT_FIELDS = frozenset({
    "completed_count",
    "failed_count",
    "processing_count",
    "pending_count",
})


@dataclass
class BatchJob:
    """
    Represents one submitted batch of images.

    The four *_count fields partition ``items`` and are only ever written by
    recount().
    """

    # Identity
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    name: str = ""

    # Generation settings
    aspect_ratio: str = "auto"
    preset_name: Optional[str] = None
    jewelry_type: Optional[str] = None
    gender: Optional[str] = None
    naming_config: Optional[NamingConfig] = None

    # Status
    state: BatchState = BatchState.PROCESSING
    items: List[BatchItem] = field(default_factory=list)

    # Derived counts
    completed_count: int = 0
    failed_count: int = 0
    processing_count: int = 0
    pending_count: int = 0

    # Last aggregate snapshot from the worker (display only)
    reported_progress: Dict[str, int] = field(default_factory=dict)

    # Ledger values as received; never computed locally
    credit_balance: Optional[int] = None
    credits_refunded: Optional[int] = None

    # Timing
    started_at: datetime = field(default_factory=datetime.now)
    paused_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    timed_out: bool = False

    def __post_init__(self):
        if not self.name:
            self.name = f"Batch-{self.id[:8]}"
        self.recount()

    def recount(self):
        """Recompute the derived counts from the item list"""
        counts = {status: 0 for status in ItemStatus}
        for item in self.items:
            counts[item.status] += 1
        self.completed_count = counts[ItemStatus.COMPLETED]
        self.failed_count = counts[ItemStatus.FAILED]
        self.processing_count = counts[ItemStatus.PROCESSING]
        self.pending_count = counts[ItemStatus.PENDING]

    @property
    def total_count(self) -> int:
        return len(self.items)

    @property
    def resolved_count(self) -> int:
        return self.completed_count + self.failed_count

    @property
    def is_resolved(self) -> bool:
        """All items reached a terminal status"""
        return self.resolved_count >= self.total_count

    @property
    def is_drivable(self) -> bool:
        """Eligible for an advance request on the next tick"""
        return self.state == BatchState.PROCESSING and not self.is_resolved

    @property
    def progress_percent(self) -> float:
        if self.total_count == 0:
            return 0.0
        return (self.completed_count / self.total_count) * 100

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization"""
        return {
            "id": self.id,
            "name": self.name,
            "aspect_ratio": self.aspect_ratio,
            "preset_name": self.preset_name,
            "jewelry_type": self.jewelry_type,
            "gender": self.gender,
            "naming_config": self.naming_config.to_dict() if self.naming_config else None,
            "state": self.state.value,
            "items": [item.to_dict() for item in self.items],
            "completed_count": self.completed_count,
            "failed_count": self.failed_count,
            "processing_count": self.processing_count,
            "pending_count": self.pending_count,
            "reported_progress": dict(self.reported_progress),
            "credit_balance": self.credit_balance,
            "credits_refunded": self.credits_refunded,
            "started_at": _format_datetime(self.started_at),
            "paused_at": _format_datetime(self.paused_at),
            "completed_at": _format_datetime(self.completed_at),
            "timed_out": self.timed_out,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BatchJob":
        """Create from dictionary; stored counts are ignored and recomputed"""
        naming = data.get("naming_config")
        job = cls(
            id=data.get("id") or str(uuid.uuid4()),
            name=data.get("name", ""),
            aspect_ratio=data.get("aspect_ratio", "auto"),
            preset_name=data.get("preset_name"),
            jewelry_type=data.get("jewelry_type"),
            gender=data.get("gender"),
            naming_config=NamingConfig.from_dict(naming) if naming else None,
            state=BatchState(data.get("state", "processing")),
            items=[BatchItem.from_dict(item) for item in data.get("items", [])],
            reported_progress=dict(data.get("reported_progress") or {}),
            credit_balance=data.get("credit_balance"),
            credits_refunded=data.get("credits_refunded"),
            paused_at=_parse_datetime(data.get("paused_at")),
            completed_at=_parse_datetime(data.get("completed_at")),
            timed_out=bool(data.get("timed_out", False)),
        )

        # Restore timestamps
        if data.get("started_at"):
            job.started_at = datetime.fromisoformat(data["started_at"])

        return job
