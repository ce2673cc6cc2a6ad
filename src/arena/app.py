from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Callable
from contextlib import AbstractAsyncContextManager, asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from arena.config import Settings, get_settings
from arena.db.session import get_sessionmaker
from arena.error_handling import register_error_handlers
from arena.modules.events.bus import InProcessEventBus
from arena.modules.events.handlers import PairingEventHandlers
from arena.modules.events.router import router as events_router
from arena.modules.games.gateway import SqlGameGateway
from arena.modules.health.router import router as health_router
from arena.modules.pairing.repository import PairingControlStore
from arena.modules.pairing.router import router as pairing_router
from arena.modules.pairing.schemas import PairingLoopConfig
from arena.modules.pairing.service import PairingLoopRegistry
from arena.modules.pairing.sweeper import ReclaimSweeper
from arena.modules.queue.repository import PairingQueue
from arena.observability import configure_logging, register_request_logging

logger = logging.getLogger("arena.app")


async def _resume_enabled_loops(registry: PairingLoopRegistry, controls: PairingControlStore) -> None:
    """Restart loops that were still enabled when the previous process exited."""
    for control in await controls.list_enabled():
        config = PairingLoopConfig.from_settings(
            registry.settings,
            batch_limit=control.batch_limit,
            tick_interval_s=control.tick_interval_s,
            claim_timeout_s=control.claim_timeout_s,
        )
        await registry.start_pairing_loop(control.tournament_id, config)
        logger.info("pairing_loop_resumed", extra={"tournament_id": control.tournament_id})


def _build_lifespan(
    cfg: Settings,
    sessionmaker: async_sessionmaker[AsyncSession] | None,
) -> Callable[[FastAPI], AbstractAsyncContextManager[None]]:
    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        maker = sessionmaker or get_sessionmaker()
        queue = PairingQueue(maker)
        controls = PairingControlStore(maker)
        bus = InProcessEventBus()
        registry = PairingLoopRegistry(
            settings=cfg,
            queue=queue,
            games=SqlGameGateway(maker),
            publisher=bus,
            controls=controls,
        )
        sweeper = ReclaimSweeper(
            queue=queue,
            controls=controls,
            interval_s=cfg.pairing_sweep_interval_s,
            default_claim_timeout_s=cfg.pairing_claim_timeout_s,
        )
        PairingEventHandlers(
            sessionmaker=maker,
            queue=queue,
            registry=registry,
            recent_opponents_limit=cfg.pairing_recent_opponents_limit,
        ).register(bus)

        if cfg.pairing_event_bus_enabled:
            await bus.start()
        if cfg.pairing_sweeper_enabled:
            sweeper.start()

        app.state.event_bus = bus
        app.state.pairing_registry = registry
        app.state.reclaim_sweeper = sweeper
        if cfg.pairing_resume_enabled_loops:
            await _resume_enabled_loops(registry, controls)
        logger.info("pairing_engine_ready", extra={"instance_id": registry.instance_id})
        try:
            yield
        finally:
            await registry.shutdown()
            await sweeper.stop()
            await bus.stop()
            app.state.pairing_registry = None
            app.state.reclaim_sweeper = None
            app.state.event_bus = None
            logger.info("pairing_engine_stopped", extra={"instance_id": registry.instance_id})

    return lifespan


def create_app(
    settings: Settings | None = None,
    sessionmaker: async_sessionmaker[AsyncSession] | None = None,
) -> FastAPI:
    cfg = settings or get_settings()
    configure_logging(cfg)
    app = FastAPI(
        title=cfg.app_name,
        debug=cfg.app_debug,
        docs_url=cfg.docs_url,
        redoc_url=cfg.redoc_url,
        lifespan=_build_lifespan(cfg, sessionmaker),
    )
    register_error_handlers(app)
    if cfg.app_log_requests:
        register_request_logging(app)
    if cfg.app_cors_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=cfg.app_cors_origins,
            allow_credentials=cfg.app_cors_allow_credentials,
            allow_methods=cfg.app_cors_allow_methods,
            allow_headers=cfg.app_cors_allow_headers,
        )
    app.state.settings = cfg
    app.state.sessionmaker = sessionmaker
    app.include_router(health_router)
    app.include_router(pairing_router, prefix="/api/v1")
    app.include_router(events_router, prefix="/api/v1")
    return app


app = create_app()
