"""
Browsing Simulator: drives the limiter service with synthetic tab/window
events so you can watch sessions start, checkpoints accumulate and limits
trip without installing the browser extension.

Usage:
    # Make sure the service is running first:
    #   python -m limiter.main
    # Then in a separate terminal:
    python scripts/simulate.py                      # default: cycle all scenarios
    python scripts/simulate.py --scenario binge     # specific scenario
    python scripts/simulate.py --loop               # repeat forever
    python scripts/simulate.py --speed 2.0          # 2× faster
"""

from __future__ import annotations

import argparse
import json
import time
import urllib.error
import urllib.request
from typing import Iterator

API = "http://127.0.0.1:8765"

DEMO_SITE = {"pattern": "youtube.com", "daily_time_limit_seconds": 120, "daily_open_limit": 5}


# ---------------------------------------------------------------------------
# Low-level HTTP helper
# ---------------------------------------------------------------------------

def _request(method: str, path: str, body: list | dict | None = None) -> dict | list | None:
    data = json.dumps(body).encode() if body is not None else None
    req = urllib.request.Request(
        f"{API}{path}",
        data=data,
        headers={"Content-Type": "application/json"},
        method=method,
    )
    try:
        with urllib.request.urlopen(req, timeout=3) as r:
            return json.loads(r.read())
    except (urllib.error.URLError, OSError) as e:
        print(f"  [!] Service unreachable: {e}")
        return None


def _get(path: str) -> dict | list | None:
    return _request("GET", path)


def send_events(events: list[dict]) -> bool:
    return _request("POST", "/activity/batch", events) is not None


def navigate(tab_id: int, url: str) -> dict | None:
    return _request("POST", "/gate/navigation", {"tabId": tab_id, "url": url, "frameId": 0})


def _evt(event_type: str, data: dict | None = None) -> dict:
    return {"type": event_type, "timestamp": time.time(), "data": data or {}}


def ensure_demo_site() -> str | None:
    sites = _get("/sites") or []
    for site in sites:
        if site["pattern"] == DEMO_SITE["pattern"]:
            return site["id"]
    created = _request("POST", "/sites", DEMO_SITE)
    return created["id"] if created else None


# ---------------------------------------------------------------------------
# Scenario generators: each yields (description, events, pause)
# ---------------------------------------------------------------------------

def scenario_quick_checks(speed: float = 1.0) -> Iterator[tuple[str, list[dict], float]]:
    """Several short visits: each one counts as an open."""
    for i in range(3):
        yield (
            f"Quick check #{i + 1}: open video site",
            [_evt("TAB_ACTIVATED", {"tabId": 10, "url": "https://www.youtube.com/"})],
            3.0 / speed,
        )
        yield (
            "Back to work",
            [_evt("TAB_ACTIVATED", {"tabId": 11, "url": "https://docs.python.org/3/"})],
            2.0 / speed,
        )


def scenario_binge(speed: float = 1.0) -> Iterator[tuple[str, list[dict], float]]:
    """One long session that runs into the time ceiling."""
    yield (
        "Binge: open video site",
        [_evt("TAB_ACTIVATED", {"tabId": 20, "url": "https://www.youtube.com/watch?v=abc"})],
        10.0 / speed,
    )
    for i in range(12):
        yield (
            f"Binge: still watching ({i + 1})",
            [_evt("TAB_UPDATED", {"tabId": 20, "url": f"https://www.youtube.com/watch?v={i}"})],
            10.0 / speed,
        )


def scenario_focus_loss(speed: float = 1.0) -> Iterator[tuple[str, list[dict], float]]:
    """Window focus flips: time only accrues while the browser is focused."""
    yield (
        "Focus: video site in foreground",
        [_evt("TAB_ACTIVATED", {"tabId": 30, "url": "https://m.youtube.com/"})],
        4.0 / speed,
    )
    yield ("Focus: switched to another app", [_evt("FOCUS_LOST")], 4.0 / speed)
    yield ("Focus: back to the browser", [_evt("FOCUS_GAINED")], 4.0 / speed)
    yield ("Focus: tab closed", [_evt("TAB_REMOVED", {"tabId": 30})], 1.0 / speed)


SCENARIOS = {
    "quick_checks": scenario_quick_checks,
    "binge": scenario_binge,
    "focus_loss": scenario_focus_loss,
}

CYCLE = ["quick_checks", "focus_loss", "binge"]


# ---------------------------------------------------------------------------
# Runner
# ---------------------------------------------------------------------------

def run_scenario(name: str, site_id: str, speed: float) -> None:
    gen_fn = SCENARIOS[name]
    print(f"\n{'─' * 60}")
    print(f"  SCENARIO: {name.upper().replace('_', ' ')}")
    print(f"{'─' * 60}")

    for description, events, delay in gen_fn(speed):
        for event in events:
            data = event["data"]
            if event["type"] in ("TAB_ACTIVATED", "TAB_UPDATED"):
                nav = navigate(data["tabId"], data["url"])
                if nav and nav["redirected"]:
                    data["url"] = nav["redirect_url"]
        ok = send_events(events)
        verdict = _get(f"/gate/evaluate/{site_id}") or {}
        state = (_get("/status") or {}).get("state", "?")
        spent = verdict.get("time_spent_seconds", 0)
        opens = verdict.get("opens", 0)
        flag = "BLOCKED" if verdict.get("blocked") else "ok"

        status = "✓" if ok else "✗"
        print(
            f"  {status} {state:<9} {spent:4d}s {opens:2d} opens  {flag:<8} {description}"
        )
        time.sleep(delay)


def main() -> None:
    parser = argparse.ArgumentParser(description="Distracting Sites Limiter simulator")
    parser.add_argument(
        "--scenario",
        choices=list(SCENARIOS.keys()) + ["cycle"],
        default="cycle",
        help="Which scenario to run (default: cycle through all)",
    )
    parser.add_argument("--loop", action="store_true", help="Repeat indefinitely")
    parser.add_argument("--speed", type=float, default=1.0, help="Speed multiplier (default 1.0)")
    args = parser.parse_args()

    # Check service is up
    health = _get("/health")
    if not health:
        print(f"[!] Cannot reach service at {API}")
        print("    Start it first: python -m limiter.main")
        return
    print(f"[✓] Service connected: v{health.get('version', '?')}")

    site_id = ensure_demo_site()
    if not site_id:
        print("[!] Could not register the demo site")
        return
    print(f"    Demo site: {DEMO_SITE['pattern']} ({site_id})")
    print(f"    Speed: {args.speed}×  |  Scenario: {args.scenario}")

    sequence = CYCLE if args.scenario == "cycle" else [args.scenario]

    while True:
        for name in sequence:
            run_scenario(name, site_id, args.speed)
        if not args.loop:
            break
        print("\n[↺] Looping...\n")
        time.sleep(2.0)

    print("\n[✓] Simulation complete.")


if __name__ == "__main__":
    main()
