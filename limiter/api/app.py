"""
FastAPI application: local companion service for the browser extension.
Runs on http://127.0.0.1:8765 by default.

Singletons (stores, classifier, engine, gate) live on app.state so that each
call to create_app() produces a fully independent instance with no shared
module-level globals. This makes test isolation straightforward.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from ..clock import Clock, SystemClock
from ..config import Config, config as default_config
from ..limits.evaluator import LimitEvaluator
from ..limits.gate import EnforcementGate, RedirectOutbox
from ..storage.sites import SiteRegistry
from ..storage.usage import UsageStore
from ..tracking.activity import ActivityMonitor
from ..tracking.classifier import SiteClassifier
from ..tracking.engine import UsageAccountingEngine
from ..tracking.rollover import DailyRollover, retention_pruner


# ---------------------------------------------------------------------------
# Lifespan: initialises and tears down all per-app state
# ---------------------------------------------------------------------------

def _build_lifespan(cfg: Config, clock: Clock):

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        sites = SiteRegistry(cfg.sites_db_path)
        usage = UsageStore(cfg.usage_db_path)

        classifier = SiteClassifier(sites)
        outbox = RedirectOutbox()
        evaluator = LimitEvaluator(sites, usage, clock=clock)
        gate = EnforcementGate(classifier, evaluator, outbox, cfg.interstitial_url)
        engine = UsageAccountingEngine(
            classifier,
            usage,
            clock=clock,
            gate=gate,
            checkpoint_interval_s=cfg.checkpoint_interval_s,
        )
        monitor = ActivityMonitor()
        rollover = DailyRollover(clock=clock)

        app.state.clock = clock
        app.state.sites = sites
        app.state.usage = usage
        app.state.classifier = classifier
        app.state.outbox = outbox
        app.state.evaluator = evaluator
        app.state.gate = gate
        app.state.engine = engine
        app.state.monitor = monitor
        app.state.rollover = rollover

        await classifier.reload_rules()
        await engine.start()
        monitor.subscribe(engine.notify)

        rollover.register(engine.rollover)
        rollover.register(
            retention_pruner(usage.prune_before_async, clock, cfg.usage_retention_days)
        )
        rollover.start()

        yield

        await rollover.stop()
        await engine.shutdown()

    return lifespan


# ---------------------------------------------------------------------------
# App factory
# ---------------------------------------------------------------------------

def create_app(cfg: Optional[Config] = None, clock: Optional[Clock] = None) -> FastAPI:
    cfg = cfg or default_config
    app = FastAPI(
        title="Distracting Sites Limiter",
        description="Local usage accounting and limit enforcement for the browser extension",
        version="0.1.0",
        lifespan=_build_lifespan(cfg, clock or SystemClock()),
    )
    app.state.config = cfg

    app.add_middleware(
        CORSMiddleware,
        allow_origin_regex=r"^(moz-extension|chrome-extension)://.*$",
        allow_origins=["null"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    from .routers import activity, gate, sites, status, usage

    app.include_router(activity.router)
    app.include_router(gate.router)
    app.include_router(sites.router)
    app.include_router(usage.router)
    app.include_router(status.router)

    @app.get("/health")
    def health(request: Request):
        engine = getattr(request.app.state, "engine", None)
        state = engine.state.value if engine is not None else "unknown"
        return {"status": "ok", "version": "0.1.0", "tracking": state}

    @app.get("/timeout")
    def timeout_page(
        blockedUrl: str = "",
        siteId: str = "",
        reason: str = "",
        limitType: str = "",
    ):
        """Bare interstitial target; the extension ships its own styled page."""
        return {
            "blocked_url": blockedUrl,
            "site_id": siteId,
            "reason": reason,
            "limit_type": limitType,
        }

    return app


app = create_app()
