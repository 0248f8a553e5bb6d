"""
Unit tests for batch_engine.worker_client module.
"""

import json

import httpx
import pytest
from pydantic import ValidationError

from batch_engine.batch_job import ItemStatus
from batch_engine.exceptions import WorkerRequestError
from batch_engine.worker_client import AdvanceResponse, WorkerClient, WorkerItem


BASE_URL = "https://worker.example.com/api"


def _client(handler, **kwargs) -> WorkerClient:
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return WorkerClient(BASE_URL, http_client=http_client, **kwargs)


def _body():
    return {
        "progress": {"total": 2, "completed": 1, "failed": 1, "processing": 0},
        "items": [
            {"id": "img-1", "filename": "ring.jpg", "status": "completed",
             "resultUrl": "https://cdn/r1.jpg", "originalUrl": "https://cdn/o1.jpg"},
            {"id": "img-2", "filename": "necklace.png", "status": "failed",
             "error": "Generation failed"},
        ],
        "done": True,
        "credits": {"balance": 38, "refunded": 1},
    }


class TestWorkerItem:
    """Tests for WorkerItem.to_item_fields."""

    def test_completed_item_fields(self):
        item = WorkerItem.model_validate(_body()["items"][0])
        fields = item.to_item_fields()

        assert fields["id"] == "img-1"
        assert fields["local_id"] == "img-1"
        assert fields["status"] == ItemStatus.COMPLETED
        assert fields["progress"] == 100
        assert fields["error"] is None
        assert fields["result_url"] == "https://cdn/r1.jpg"
        assert fields["thumbnail_url"] == "https://cdn/r1.jpg"
        assert fields["original_url"] == "https://cdn/o1.jpg"

    def test_failed_item_keeps_error(self):
        fields = WorkerItem.model_validate(_body()["items"][1]).to_item_fields()
        assert fields["status"] == ItemStatus.FAILED
        assert fields["error"] == "Generation failed"
        assert "result_url" not in fields

    def test_progress_mapping(self):
        processing = WorkerItem(id="a", status="processing").to_item_fields()
        pending = WorkerItem(id="b", status="pending").to_item_fields()
        assert processing["progress"] == 50
        assert pending["progress"] == 0

    def test_unknown_status_leaves_status_out(self):
        fields = WorkerItem(id="a", status="queued").to_item_fields()
        assert "status" not in fields
        assert "progress" not in fields


class TestAdvanceResponse:
    """Tests for response parsing."""

    def test_parses_full_body(self):
        response = AdvanceResponse.model_validate(_body())
        assert response.done is True
        assert response.progress.completed == 1
        assert len(response.items) == 2
        assert response.credits.balance == 38

    def test_minimal_body(self):
        response = AdvanceResponse.model_validate({"items": []})
        assert response.done is False
        assert response.progress is None
        assert response.credits is None

    def test_empty_item_id_rejected(self):
        with pytest.raises(ValidationError):
            AdvanceResponse.model_validate({"items": [{"id": "", "status": "completed"}]})


class TestWorkerClient:
    """Tests for WorkerClient.advance."""

    def test_advance_url(self):
        client = WorkerClient(BASE_URL + "/")
        assert client.advance_url("b1") == f"{BASE_URL}/batch/b1/advance"

    @pytest.mark.asyncio
    async def test_advance_posts_empty_json(self):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json=_body())

        async with _client(handler, api_token="secret") as client:
            response = await client.advance("b1")

        assert response.done is True
        request = seen[0]
        assert request.method == "POST"
        assert str(request.url) == f"{BASE_URL}/batch/b1/advance"
        assert json.loads(request.content) == {}
        assert request.headers["Authorization"] == "Bearer secret"

    @pytest.mark.asyncio
    async def test_http_error_status(self):
        client = _client(lambda request: httpx.Response(503, text="unavailable"))

        with pytest.raises(WorkerRequestError) as exc_info:
            await client.advance("b1")

        assert exc_info.value.status_code == 503
        assert exc_info.value.batch_id == "b1"

    @pytest.mark.asyncio
    async def test_transport_error(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(WorkerRequestError) as exc_info:
            await _client(handler).advance("b1")

        assert exc_info.value.status_code is None
        assert "ConnectError" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_invalid_json(self):
        client = _client(lambda request: httpx.Response(200, text="<html>oops</html>"))
        with pytest.raises(WorkerRequestError):
            await client.advance("b1")

    @pytest.mark.asyncio
    async def test_unexpected_shape(self):
        client = _client(lambda request: httpx.Response(200, json={"items": "nope"}))
        with pytest.raises(WorkerRequestError):
            await client.advance("b1")

    @pytest.mark.asyncio
    async def test_item_without_id(self):
        body = {"items": [{"id": "", "status": "completed"}], "done": False}
        client = _client(lambda request: httpx.Response(200, json=body))
        with pytest.raises(WorkerRequestError):
            await client.advance("b1")

    @pytest.mark.asyncio
    async def test_injected_client_not_closed(self):
        http_client = httpx.AsyncClient(transport=httpx.MockTransport(
            lambda request: httpx.Response(200, json={"done": False})
        ))
        client = WorkerClient(BASE_URL, http_client=http_client)

        await client.aclose()

        assert http_client.is_closed is False
        await http_client.aclose()
