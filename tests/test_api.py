"""
Integration tests for the FastAPI local service.
Uses httpx AsyncClient against a per-test app backed by temp SQLite files.
"""

from __future__ import annotations

from urllib.parse import parse_qs, urlparse

from limiter.models import UsageDelta

from conftest import INTERSTITIAL

YT = "https://www.youtube.com/watch?v=1"


def _evt(event_type: str, **data) -> dict:
    return {"type": event_type, "data": data}


async def _add_youtube(client, **limits) -> str:
    body = {"pattern": "youtube.com", "daily_time_limit_seconds": 3600, "daily_open_limit": 5}
    body.update(limits)
    r = await client.post("/sites", json=body)
    assert r.status_code == 201
    return r.json()["id"]


# ── Health ─────────────────────────────────────────────────────────────────

async def test_health(client):
    r = await client.get("/health")
    assert r.status_code == 200
    body = r.json()
    assert body["status"] == "ok"
    assert body["tracking"] == "idle"


async def test_timeout_page_echoes_parameters(client):
    r = await client.get("/timeout", params={"blockedUrl": YT, "siteId": "s", "limitType": "time"})
    assert r.status_code == 200
    assert r.json()["blocked_url"] == YT


# ── Sites ──────────────────────────────────────────────────────────────────

class TestSites:
    async def test_crud(self, client):
        site_id = await _add_youtube(client)

        r = await client.get("/sites")
        assert [s["id"] for s in r.json()] == [site_id]

        r = await client.patch(f"/sites/{site_id}", json={"daily_open_limit": 9})
        assert r.status_code == 200
        assert r.json()["daily_open_limit"] == 9

        r = await client.get(f"/sites/{site_id}")
        assert r.json()["daily_time_limit_seconds"] == 3600

        r = await client.delete(f"/sites/{site_id}")
        assert r.json() == {"status": "removed"}
        assert (await client.get(f"/sites/{site_id}")).status_code == 404

    async def test_pattern_is_normalised(self, client):
        r = await client.post("/sites", json={"pattern": "https://www.Reddit.com/r", "daily_open_limit": 2})
        assert r.json()["pattern"] == "reddit.com"

    async def test_rejects_site_without_ceiling(self, client):
        r = await client.post("/sites", json={"pattern": "youtube.com"})
        assert r.status_code == 422

    async def test_rejects_negative_ceiling(self, client):
        r = await client.post("/sites", json={"pattern": "youtube.com", "daily_open_limit": -1})
        assert r.status_code == 422

    async def test_missing_site(self, client):
        assert (await client.patch("/sites/nope", json={"daily_open_limit": 1})).status_code == 404
        assert (await client.delete("/sites/nope")).status_code == 404

    async def test_patch_cannot_clear_every_ceiling(self, client):
        site_id = await _add_youtube(client)
        r = await client.patch(
            f"/sites/{site_id}", json={"daily_time_limit_seconds": 0, "daily_open_limit": 0}
        )
        assert r.status_code == 422
        assert (await client.get(f"/sites/{site_id}")).json()["daily_open_limit"] == 5

    async def test_empty_patch(self, client):
        site_id = await _add_youtube(client)
        assert (await client.patch(f"/sites/{site_id}", json={})).status_code == 422


# ── Activity → ledger ──────────────────────────────────────────────────────

class TestActivity:
    async def test_session_is_timed_and_counted(self, client, clock):
        site_id = await _add_youtube(client)

        r = await client.post("/activity/event", json=_evt("TAB_ACTIVATED", tabId=1, url=YT))
        assert r.status_code == 202
        assert r.json()["tracking"] == "tracking"

        status = (await client.get("/status")).json()
        assert status["site_id"] == site_id
        assert status["tab_id"] == 1

        clock.advance(42)
        r = await client.post("/activity/event", json=_evt("FOCUS_LOST"))
        assert r.json()["tracking"] == "idle"

        usage = (await client.get("/usage")).json()
        assert usage["date"] == "2024-03-14"
        assert usage["entries"] == [{"site_id": site_id, "time_spent_seconds": 42, "opens": 1}]
        assert (await client.get("/usage/dates")).json() == ["2024-03-14"]

    async def test_unknown_event_type(self, client):
        r = await client.post("/activity/event", json=_evt("BOOKMARK_ADDED"))
        assert r.status_code == 422

    async def test_batch(self, client, clock):
        await _add_youtube(client)
        r = await client.post("/activity/batch", json=[
            _evt("TAB_ACTIVATED", tabId=1, url="https://docs.python.org/"),
            _evt("NOT_A_THING"),
            _evt("TAB_UPDATED", tabId=1, url=YT),
        ])
        assert r.json() == {"accepted": 2, "total": 3}
        assert (await client.get("/status")).json()["state"] == "tracking"

    async def test_disabling_a_site_stops_classification(self, client):
        site_id = await _add_youtube(client)
        await client.patch(f"/sites/{site_id}", json={"is_enabled": False})
        r = await client.post("/activity/event", json=_evt("TAB_ACTIVATED", tabId=1, url=YT))
        assert r.json()["tracking"] == "idle"

    async def test_invalid_usage_date(self, client):
        assert (await client.get("/usage", params={"date": "yesterday"})).status_code == 422

    async def test_explicit_usage_date(self, client):
        r = await client.get("/usage", params={"date": "2024-01-01"})
        assert r.json() == {"date": "2024-01-01", "entries": []}


# ── Gate ───────────────────────────────────────────────────────────────────

class TestGate:
    async def test_navigation_under_limit(self, client):
        await _add_youtube(client)
        r = await client.post("/gate/navigation", json={"tabId": 1, "url": YT, "frameId": 0})
        assert r.json() == {"redirected": False, "redirect_url": None}

    async def test_navigation_over_limit_redirects(self, client, app):
        site_id = await _add_youtube(client)
        app.state.usage.add(UsageDelta("2024-03-14", site_id, time_spent_seconds_delta=4000))

        r = await client.post("/gate/navigation", json={"tabId": 1, "url": YT, "frameId": 0})
        body = r.json()
        assert body["redirected"] is True
        assert body["redirect_url"].startswith(INTERSTITIAL)
        params = parse_qs(urlparse(body["redirect_url"]).query)
        assert params["siteId"] == [site_id]
        assert params["limitType"] == ["time"]
        # delivered inline, so nothing left to collect
        assert (await client.get("/gate/commands")).json() == []

    async def test_subframe_navigation_is_ignored(self, client, app):
        site_id = await _add_youtube(client)
        app.state.usage.add(UsageDelta("2024-03-14", site_id, time_spent_seconds_delta=4000))
        r = await client.post("/gate/navigation", json={"tabId": 1, "url": YT, "frameId": 3})
        assert r.json()["redirected"] is False

    async def test_session_start_block_is_queued_as_command(self, client, app):
        site_id = await _add_youtube(client)
        app.state.usage.add(UsageDelta("2024-03-14", site_id, opens_delta=5))

        r = await client.post("/activity/event", json=_evt("TAB_ACTIVATED", tabId=7, url=YT))
        assert r.json()["tracking"] == "idle"

        commands = (await client.get("/gate/commands")).json()
        assert len(commands) == 1
        assert commands[0]["tab_id"] == 7
        assert "limitType=opens" in commands[0]["url"]

    async def test_evaluate(self, client, app):
        site_id = await _add_youtube(client)
        app.state.usage.add(UsageDelta("2024-03-14", site_id, time_spent_seconds_delta=600, opens_delta=2))
        body = (await client.get(f"/gate/evaluate/{site_id}")).json()
        assert body["blocked"] is False
        assert body["remaining_seconds"] == 3000
        assert body["remaining_opens"] == 3

    async def test_evaluate_unknown_site(self, client):
        assert (await client.get("/gate/evaluate/nope")).status_code == 404

    async def test_open_check(self, client, app):
        site_id = await _add_youtube(client)
        app.state.usage.add(UsageDelta("2024-03-14", site_id, opens_delta=5))
        body = (await client.get(f"/gate/open-check/{site_id}")).json()
        assert body == {"site_id": site_id, "would_exceed": True, "current_opens": 5, "limit": 5}
