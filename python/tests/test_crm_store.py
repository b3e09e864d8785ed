"""Tests for agenthub.crm (HTTP and in-memory stores)."""

import json

import httpx
import pytest

from agenthub.config import Settings
from agenthub.crm import HttpCRMStore, InMemoryCRMStore


class Recorder:
    def __init__(self, response=None, error=None):
        self.response = response or httpx.Response(200, json={"ok": True})
        self.error = error
        self.requests = []

    def __call__(self, request):
        self.requests.append(request)
        if self.error is not None:
            raise self.error
        return self.response


def _store(recorder):
    return HttpCRMStore(
        "https://crm.test/api/",
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(recorder)),
    )


class TestHttpStore:

    @pytest.mark.asyncio
    async def test_create_lead_sends_bypass_header(self):
        recorder = Recorder(httpx.Response(201, json={"id": 7, "name": "Acme"}))
        store = _store(recorder)

        result = await store.create("leads", {"name": "Acme"})

        assert result.success is True
        assert result.status == 201
        assert result.data == {"id": 7, "name": "Acme"}
        request = recorder.requests[0]
        assert request.method == "POST"
        assert str(request.url) == "https://crm.test/api/leads"
        assert request.headers["X-bypass-Auth"] == "true"
        assert json.loads(request.content) == {"name": "Acme"}

    @pytest.mark.asyncio
    async def test_other_entities_have_no_bypass_header(self):
        recorder = Recorder()
        await _store(recorder).create("deals", {"title": "Big"})
        assert "X-bypass-Auth" not in recorder.requests[0].headers

    @pytest.mark.asyncio
    async def test_get_by_id_and_list(self):
        recorder = Recorder()
        store = _store(recorder)

        await store.get("deals", {"id": 12})
        await store.get("deals", {"stage": "won"})
        await store.get("deals")

        assert str(recorder.requests[0].url) == "https://crm.test/api/deals/12"
        assert recorder.requests[1].url.params["stage"] == "won"
        assert str(recorder.requests[2].url) == "https://crm.test/api/deals"

    @pytest.mark.asyncio
    async def test_update_and_delete(self):
        recorder = Recorder()
        store = _store(recorder)

        await store.update("quotations", {"id": 3, "status": "sent"})
        await store.delete("quotations", {"id": 3})

        update, delete = recorder.requests
        assert update.method == "PUT"
        assert str(update.url) == "https://crm.test/api/quotations/3"
        assert json.loads(update.content) == {"status": "sent"}
        assert delete.method == "DELETE"

    @pytest.mark.asyncio
    async def test_update_without_id(self):
        recorder = Recorder()
        result = await _store(recorder).update("deals", {"title": "x"})
        assert result.success is False
        assert "requires an id" in result.error
        assert recorder.requests == []

    @pytest.mark.asyncio
    async def test_http_error_status(self):
        recorder = Recorder(httpx.Response(404, json={"message": "not found"}))
        result = await _store(recorder).get("leads", {"id": 99})
        assert result.success is False
        assert result.status == 404
        assert "not found" in result.error

    @pytest.mark.asyncio
    async def test_network_error(self):
        recorder = Recorder(error=httpx.ConnectError("refused"))
        result = await _store(recorder).create("leads", {"name": "Acme"})
        assert result.success is False
        assert "Network error - server unreachable" in result.error

    def test_from_settings(self):
        settings = Settings(crm_base_url="https://crm.example/api", crm_bypass_header="X-Test")
        store = HttpCRMStore.from_settings(settings)
        assert store.base_url == "https://crm.example/api"
        assert store.bypass_header == "X-Test"


class TestMemoryStore:

    @pytest.mark.asyncio
    async def test_crud(self):
        store = InMemoryCRMStore()

        created = await store.create("leads", {"name": "Acme", "source": "web"})
        assert created.status == 201
        lead_id = created.data["id"]

        fetched = await store.get("leads", {"id": lead_id})
        assert fetched.data["name"] == "Acme"

        updated = await store.update("leads", {"id": lead_id, "status": "qualified"})
        assert updated.data["status"] == "qualified"

        deleted = await store.delete("leads", {"id": lead_id})
        assert deleted.success is True
        assert store.count("leads") == 0

    @pytest.mark.asyncio
    async def test_missing_records(self):
        store = InMemoryCRMStore()
        assert (await store.get("deals", {"id": "1"})).status == 404
        assert (await store.update("deals", {"id": "1"})).status == 404
        assert (await store.delete("deals", {"id": "1"})).status == 404

    @pytest.mark.asyncio
    async def test_duplicate_id(self):
        store = InMemoryCRMStore()
        await store.create("deals", {"id": "d1"})
        assert (await store.create("deals", {"id": "d1"})).status == 409

    @pytest.mark.asyncio
    async def test_list_with_filters(self):
        store = InMemoryCRMStore()
        await store.create("deals", {"stage": "won"})
        await store.create("deals", {"stage": "lost"})

        assert len((await store.get("deals")).data) == 2
        won = (await store.get("deals", {"stage": "won"})).data
        assert [d["stage"] for d in won] == ["won"]

    @pytest.mark.asyncio
    async def test_returns_copies(self):
        store = InMemoryCRMStore()
        created = await store.create("leads", {"tags": ["a"]})
        created.data["tags"].append("b")
        fetched = await store.get("leads", {"id": created.data["id"]})
        assert fetched.data["tags"] == ["a"]
