from __future__ import annotations

from fastapi import HTTPException, Request, status

from arena.modules.events.bus import InProcessEventBus
from arena.modules.pairing.service import PairingLoopRegistry
from arena.modules.pairing.sweeper import ReclaimSweeper


def _engine_not_running() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        detail="Pairing engine is not running",
    )


def get_pairing_registry_dep(request: Request) -> PairingLoopRegistry:
    registry: PairingLoopRegistry | None = getattr(request.app.state, "pairing_registry", None)
    if registry is None:
        raise _engine_not_running()
    return registry


def get_event_bus_dep(request: Request) -> InProcessEventBus:
    bus: InProcessEventBus | None = getattr(request.app.state, "event_bus", None)
    if bus is None:
        raise _engine_not_running()
    return bus


def get_reclaim_sweeper_dep(request: Request) -> ReclaimSweeper:
    sweeper: ReclaimSweeper | None = getattr(request.app.state, "reclaim_sweeper", None)
    if sweeper is None:
        raise _engine_not_running()
    return sweeper
