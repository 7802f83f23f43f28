import pytest
from httpx import AsyncClient

from autokudos.config import settings
from autokudos.main import app
from autokudos.services import pending_batch
from autokudos.services.strava import FeedEntry
from conftest import SELF_ID


async def _pending(session_factory) -> set[int]:
    async with session_factory() as db:
        return {p.activity_id for p in await pending_batch.list_pending(db)}


class TestWebhookEndpoint:
    @pytest.mark.asyncio
    async def test_acknowledges_and_queues(self, client: AsyncClient, session_factory):
        response = await client.post("/webhook", json={
            "object_type": "activity", "aspect_type": "create",
            "object_id": 321, "owner_id": 5, "subscription_id": 1, "event_time": 1700000000,
        })
        assert response.status_code == 200
        assert response.text == "FORWARD_RECEIVED"
        assert await _pending(session_factory) == {321}

    @pytest.mark.asyncio
    async def test_own_activity_fans_out(self, client: AsyncClient, session_factory, strava):
        strava.related = {900: [901, 902]}
        response = await client.post("/webhook", json={
            "object_type": "activity", "aspect_type": "create",
            "object_id": 900, "owner_id": SELF_ID,
        })
        assert response.status_code == 200
        assert await _pending(session_factory) == {901, 902}

    @pytest.mark.asyncio
    async def test_acknowledges_even_when_processing_fails(self, client: AsyncClient, strava, session_factory):
        strava.auth_fails = True
        response = await client.post("/webhook", json={
            "object_type": "activity", "aspect_type": "create",
            "object_id": 900, "owner_id": SELF_ID,
        })
        assert response.status_code == 200
        assert await _pending(session_factory) == set()

    @pytest.mark.asyncio
    async def test_acknowledged_before_engine_starts(self, client: AsyncClient, monkeypatch, strava):
        monkeypatch.delattr(app.state, "engine")
        response = await client.post("/webhook", json={
            "object_type": "activity", "aspect_type": "create",
            "object_id": 321, "owner_id": 5,
        })
        assert response.status_code == 200
        assert response.text == "FORWARD_RECEIVED"
        assert strava.token_calls == 0

    @pytest.mark.asyncio
    async def test_malformed_body_still_acknowledged(self, client: AsyncClient):
        response = await client.post("/webhook", json={"hello": "world"})
        assert response.status_code == 200

    @pytest.mark.asyncio
    async def test_subscription_challenge(self, client: AsyncClient, monkeypatch):
        monkeypatch.setattr(settings, "STRAVA_VERIFY_TOKEN", "s3cret")
        response = await client.get("/webhook", params={
            "hub.mode": "subscribe", "hub.challenge": "abc123", "hub.verify_token": "s3cret",
        })
        assert response.status_code == 200
        assert response.json() == {"hub.challenge": "abc123"}

    @pytest.mark.asyncio
    async def test_subscription_wrong_token(self, client: AsyncClient, monkeypatch):
        monkeypatch.setattr(settings, "STRAVA_VERIFY_TOKEN", "s3cret")
        response = await client.get("/webhook", params={
            "hub.mode": "subscribe", "hub.challenge": "abc123", "hub.verify_token": "nope",
        })
        assert response.status_code == 403


class TestManualControls:
    @pytest.mark.asyncio
    async def test_trawl_polls_and_redirects(self, client: AsyncClient, strava, session_factory):
        strava.feed = [FeedEntry(activity_id=12, owner_id=5)]
        response = await client.post("/trawl")
        assert response.status_code == 303
        assert response.headers["location"] == "/stats"
        assert strava.feed_calls == 1
        assert await _pending(session_factory) == {12}

    @pytest.mark.asyncio
    async def test_fire_flushes_below_threshold(self, client: AsyncClient, kudos_engine, strava, session_factory):
        await kudos_engine.enqueue([1, 2], source="webhook")
        response = await client.post("/fire")
        assert response.status_code == 303
        assert sorted(strava.kudos_attempts) == [1, 2]
        assert await _pending(session_factory) == set()

    @pytest.mark.asyncio
    async def test_fire_on_empty_batch(self, client: AsyncClient, strava):
        response = await client.post("/fire")
        assert response.status_code == 303
        assert strava.token_calls == 0


class TestStatusSurface:
    @pytest.mark.asyncio
    async def test_stats_page(self, client: AsyncClient):
        response = await client.get("/stats")
        assert response.status_code == 200
        assert b"Total Sent" in response.content
        assert b"Pending..." in response.content

    @pytest.mark.asyncio
    async def test_stats_json(self, client: AsyncClient, kudos_engine):
        await kudos_engine.enqueue([1, 2, 3], source="webhook")
        response = await client.get("/api/v1/stats")
        assert response.status_code == 200
        data = response.json()
        assert data["queue_size"] == 3
        assert data["total_sent"] == 0
        assert data["daily_average"] == 0.0

    @pytest.mark.asyncio
    async def test_index_redirects_to_stats(self, client: AsyncClient):
        response = await client.get("/")
        assert response.status_code == 302
        assert response.headers["location"] == "/stats"


class TestHealthEndpoint:
    @pytest.mark.asyncio
    async def test_health_has_required_keys(self, client: AsyncClient):
        response = await client.get("/health")
        assert response.status_code == 200
        required_keys = {"status", "db", "scheduler", "strava_auth", "queue_size", "seen_total"}
        assert required_keys.issubset(response.json().keys())

    @pytest.mark.asyncio
    async def test_health_db_ok(self, client: AsyncClient):
        response = await client.get("/health")
        assert response.json()["db"] == "ok"


class TestAdminActions:
    @pytest.mark.asyncio
    async def test_requires_admin_session(self, client: AsyncClient):
        for path in ("/admin/actions/status", "/admin/actions/activity", "/admin/actions/pending"):
            response = await client.get(path)
            assert response.status_code == 401
