"""
HTTP and WebSocket surface, served with FastAPI's TestClient over an
in-memory scheduling service.
"""

from __future__ import annotations

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from linearvue.infra.exceptions import StoreError
from linearvue.infra.settings import settings
from linearvue.runtime.block_store import InMemoryBlockStore
from linearvue.runtime.channel_source import SqlChannelSource
from linearvue.runtime.service import build_service
from linearvue.web.server import create_app


@pytest.fixture
def service(session_factory, clock, catalog, channels, store):
    return build_service(
        settings,
        session_factory,
        clock=clock,
        catalog=catalog,
        channel_source=channels,
        store=store,
    )


@pytest.fixture
def client(service):
    with TestClient(create_app(service, start_keeper=False)) as c:
        yield c


class TestSchedule:
    def test_empty_until_generated(self, client):
        assert client.get("/api/schedule/1").json() == []

        response = client.post("/api/schedule/1/regenerate")
        assert response.status_code == 200
        assert response.json() == {"channel_id": 1, "status": "ok", "blocks_written": 4, "error": None}

        programs = client.get("/api/schedule/1").json()
        assert programs[0]["title"] == "Alpha"
        assert programs[0]["kind"] == "program"
        assert programs[0]["content_type"] == "movie"
        assert programs[0]["start_time"].startswith("2026-01-05T00:00:00")
        assert programs[1]["start_time"].startswith("2026-01-05T00:30:00")

    def test_all_channels(self, client):
        client.post("/api/schedule/regenerate")
        body = client.get("/api/schedule").json()
        assert [(c["channel_id"], c["name"]) for c in body] == [(1, "One")]
        assert len(body[0]["programs"]) > 0

    def test_regenerate_all(self, client):
        body = client.post("/api/schedule/regenerate").json()
        assert body["blocks_written"] == 4
        assert body["results"][0]["status"] == "ok"
        assert client.post("/api/schedule/regenerate").json()["results"][0]["status"] == "unchanged"

    def test_unknown_channel(self, client):
        response = client.get("/api/schedule/99")
        assert response.status_code == 404
        assert response.json() == {"detail": "Channel 99 not found"}
        assert client.post("/api/schedule/99/regenerate").status_code == 404


class TestNow:
    def test_now_at_instant(self, client):
        client.post("/api/schedule/1/regenerate")
        body = client.get("/api/schedule/1/now", params={"at": "2026-01-05T00:40:00Z"}).json()
        assert body["program"]["title"] == "Bravo"
        assert body["seek_ms"] == 600_000
        assert body["next"]["title"] == "Alpha"
        assert body["at"].startswith("2026-01-05T00:40:00")

    def test_now_defaults_to_service_clock(self, client):
        client.post("/api/schedule/1/regenerate")
        body = client.get("/api/schedule/1/now").json()
        assert body["program"]["title"] == "Alpha"
        assert body["seek_ms"] == 600_000

    def test_naive_instant_is_utc(self, client):
        client.post("/api/schedule/1/regenerate")
        body = client.get("/api/schedule/1/now", params={"at": "2026-01-05T00:40:00"}).json()
        assert body["program"]["title"] == "Bravo"

    def test_nothing_scheduled(self, client):
        response = client.get("/api/schedule/1/now", params={"at": "2026-01-05T00:40:00Z"})
        assert response.status_code == 404
        assert response.json()["detail"] == {"message": "No program currently airing", "reason": "no_block"}


class _BrokenStore(InMemoryBlockStore):
    def get_block_at(self, channel_id, at):
        raise StoreError("database is locked")

    def get_blocks(self, channel_id, start=None, end=None):
        raise StoreError("database is locked")


def test_store_outage_is_503(session_factory, clock, catalog, channels):
    service = build_service(
        settings, session_factory, clock=clock, catalog=catalog, channel_source=channels, store=_BrokenStore()
    )
    with TestClient(create_app(service, start_keeper=False)) as client:
        now = client.get("/api/schedule/1/now")
        assert now.status_code == 503
        assert now.json()["detail"]["reason"] == "store_unavailable"

        schedule = client.get("/api/schedule/1")
        assert schedule.status_code == 503
        assert schedule.json() == {"detail": "Schedule store unavailable"}

        regen = client.post("/api/schedule/1/regenerate")
        assert regen.status_code == 503


def test_health(client):
    body = client.get("/api/health").json()
    assert body["status"] == "ok"
    assert body["websocket_clients"] == 0
    assert body["keeper"]["enabled"] is False
    assert body["keeper"]["last_pass"] is None


def test_websocket_receives_schedule_updates(client):
    with client.websocket_connect("/ws") as ws:
        assert ws.receive_json()["type"] == "connected"
        assert client.get("/api/health").json()["websocket_clients"] == 1

        client.post("/api/schedule/1/regenerate")
        message = ws.receive_json()
        assert message == {"type": "schedule_updated", "payload": {"channel_id": 1, "blocks_written": 4}}


def test_channel_table_outage_is_503(session_factory, clock, catalog, store):
    broken = create_engine("sqlite://", poolclass=StaticPool, future=True)
    service = build_service(
        settings,
        session_factory,
        clock=clock,
        catalog=catalog,
        channel_source=SqlChannelSource(sessionmaker(bind=broken, future=True)),
        store=store,
    )
    try:
        with TestClient(create_app(service, start_keeper=False)) as client:
            assert client.get("/api/schedule").status_code == 503
            assert client.get("/api/schedule/1").status_code == 503
            assert client.post("/api/schedule/1/regenerate").status_code == 503
    finally:
        broken.dispose()
