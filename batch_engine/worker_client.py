"""
Job worker client.

Wraps the worker's advance endpoint (POST /batch/{id}/advance). Each call
asks the worker to process at most one pending item and returns the batch's
current per-item and aggregate status.
"""

from typing import Any, Dict, List, Optional

import httpx
from pydantic import BaseModel, Field, ValidationError

from config.constants import (
    ADVANCE_PATH,
    REQUEST_TIMEOUT_SECONDS,
    PROGRESS_COMPLETED,
    PROGRESS_PROCESSING,
    PROGRESS_PENDING,
)
from config.logging_config import get_logger

from .batch_job import ItemStatus
from .exceptions import WorkerRequestError

logger = get_logger(__name__)

_STATUS_PROGRESS = {
    ItemStatus.COMPLETED: PROGRESS_COMPLETED,
    ItemStatus.PROCESSING: PROGRESS_PROCESSING,
    ItemStatus.PENDING: PROGRESS_PENDING,
    ItemStatus.FAILED: PROGRESS_PENDING,
}


# ==================== RESPONSE MODELS ====================

class WorkerProgress(BaseModel):
    """Aggregate counts as reported by the worker"""
    total: int = 0
    completed: int = 0
    failed: int = 0
    processing: int = 0

    def to_dict(self) -> Dict[str, int]:
        return {
            "total": self.total,
            "completed": self.completed,
            "failed": self.failed,
            "processing": self.processing,
        }


class WorkerItem(BaseModel):
    """One image as reported by the worker"""
    id: str = Field(min_length=1)
    filename: str = ""
    status: str = ItemStatus.PENDING.value
    result_url: Optional[str] = Field(default=None, alias="resultUrl")
    original_url: Optional[str] = Field(default=None, alias="originalUrl")
    error: Optional[str] = None

    class Config:
        populate_by_name = True
        extra = "ignore"

    def to_item_fields(self) -> Dict[str, Any]:
        """
        Fields to merge into the stored BatchItem.

        URLs are only included when the worker sent them, so a sparse report
        never blanks out a known original. Unknown statuses leave the stored
        status untouched.
        """
        fields: Dict[str, Any] = {"id": self.id, "local_id": self.id}
        if self.filename:
            fields["filename"] = self.filename

        try:
            status = ItemStatus(self.status)
        except ValueError:
            logger.warning(f"Unknown item status '{self.status}' for item {self.id}")
            status = None

        if status is not None:
            fields["status"] = status
            fields["progress"] = _STATUS_PROGRESS[status]
            fields["error"] = (self.error or None) if status == ItemStatus.FAILED else None

        if self.result_url:
            fields["result_url"] = self.result_url
            fields["thumbnail_url"] = self.result_url
        if self.original_url:
            fields["original_url"] = self.original_url
        return fields


class CreditSnapshot(BaseModel):
    """Ledger values attached to a response; displayed, never computed"""
    balance: Optional[int] = None
    refunded: Optional[int] = None


class AdvanceResponse(BaseModel):
    """Body returned by the advance endpoint"""
    progress: Optional[WorkerProgress] = None
    items: List[WorkerItem] = Field(default_factory=list)
    done: bool = False
    credits: Optional[CreditSnapshot] = None

    class Config:
        populate_by_name = True
        extra = "ignore"


# ==================== CLIENT ====================

class WorkerClient:
    """
    Async client for the job worker service.

    Usage:
        async with WorkerClient("https://app.example.com/api") as worker:
            response = await worker.advance("batch-123")
            if response.done:
                ...

    A shared httpx.AsyncClient may be injected; it is then owned by the
    caller and not closed here.
    """

    def __init__(
        self,
        base_url: str,
        http_client: Optional[httpx.AsyncClient] = None,
        timeout: float = REQUEST_TIMEOUT_SECONDS,
        api_token: Optional[str] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._headers = {"Content-Type": "application/json"}
        if api_token:
            self._headers["Authorization"] = f"Bearer {api_token}"

        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(timeout=httpx.Timeout(timeout))

    def advance_url(self, batch_id: str) -> str:
        return self.base_url + ADVANCE_PATH.format(batch_id=batch_id)

    async def advance(self, batch_id: str) -> AdvanceResponse:
        """
        Ask the worker to advance one batch.

        Returns:
            Parsed AdvanceResponse

        Raises:
            WorkerRequestError: On transport errors, non-2xx responses, or
                bodies that do not match the response model.
        """
        url = self.advance_url(batch_id)
        try:
            response = await self._client.post(url, json={}, headers=self._headers)
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPStatusError as e:
            error_detail = f"HTTP {e.response.status_code}: {e.response.text[:200]}"
            raise WorkerRequestError(batch_id, error_detail, e.response.status_code) from e
        except httpx.HTTPError as e:
            raise WorkerRequestError(batch_id, f"{type(e).__name__}: {e}") from e
        except ValueError as e:
            raise WorkerRequestError(batch_id, f"Invalid JSON body: {e}") from e

        try:
            parsed = AdvanceResponse.model_validate(data)
        except ValidationError as e:
            raise WorkerRequestError(batch_id, f"Unexpected response shape: {e}") from e

        logger.debug(
            f"[Batch:{batch_id}] advance -> done={parsed.done}, "
            f"items={len(parsed.items)}"
        )
        return parsed

    async def aclose(self):
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> "WorkerClient":
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.aclose()
