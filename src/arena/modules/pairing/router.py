from __future__ import annotations

from fastapi import APIRouter, Body, Depends, HTTPException, Path, status
from pydantic import ValidationError

from arena.deps.pairing import get_pairing_registry_dep, get_reclaim_sweeper_dep
from arena.modules.pairing.schemas import (
    LoopStartResponse,
    LoopStatusResponse,
    LoopStopResponse,
    PairingLoopConfig,
    PairingLoopOverrides,
    ReclaimResponse,
)
from arena.modules.pairing.service import PairingLoopRegistry
from arena.modules.pairing.sweeper import ReclaimSweeper

router = APIRouter(prefix="/pairing", tags=["pairing"])
REGISTRY_DEP = Depends(get_pairing_registry_dep)
SWEEPER_DEP = Depends(get_reclaim_sweeper_dep)
TOURNAMENT_ID_PATH = Path(min_length=1, max_length=64)
OVERRIDES_BODY = Body(default=None)


@router.post(
    "/tournaments/{tournament_id}/start",
    response_model=LoopStartResponse,
    summary="Start Pairing Loop",
    description="Starts the pairing loop for a tournament. Starting a running loop is a no-op.",
)
async def post_start_loop(
    tournament_id: str = TOURNAMENT_ID_PATH,
    overrides: PairingLoopOverrides | None = OVERRIDES_BODY,
    registry: PairingLoopRegistry = REGISTRY_DEP,
) -> LoopStartResponse:
    values = overrides.model_dump(exclude_none=True) if overrides is not None else {}
    try:
        config = PairingLoopConfig.from_settings(registry.settings, **values)
    except ValidationError as exc:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=exc.errors(include_url=False, include_context=False),
        ) from exc
    scheduler, started = await registry.start_pairing_loop(tournament_id, config)
    return LoopStartResponse(
        tournament_id=tournament_id,
        started=started,
        state=scheduler.state,
        config=scheduler.config,
    )


@router.post(
    "/tournaments/{tournament_id}/stop",
    response_model=LoopStopResponse,
    summary="Stop Pairing Loop",
    description="Requests a stop. An in-flight commit finishes first; stopping twice is a no-op.",
)
async def post_stop_loop(
    tournament_id: str = TOURNAMENT_ID_PATH,
    registry: PairingLoopRegistry = REGISTRY_DEP,
) -> LoopStopResponse:
    stopped = await registry.stop_pairing_loop(tournament_id)
    return LoopStopResponse(tournament_id=tournament_id, stopped=stopped)


@router.get(
    "/tournaments/{tournament_id}",
    response_model=LoopStatusResponse,
    summary="Pairing Loop Status",
)
async def get_loop_status(
    tournament_id: str = TOURNAMENT_ID_PATH,
    registry: PairingLoopRegistry = REGISTRY_DEP,
) -> LoopStatusResponse:
    return await registry.status(tournament_id)


@router.post(
    "/tournaments/{tournament_id}/reclaim",
    response_model=ReclaimResponse,
    summary="Reclaim Stale Claims",
    description="Returns pending entries older than the claim timeout to the waiting queue.",
)
async def post_reclaim(
    tournament_id: str = TOURNAMENT_ID_PATH,
    sweeper: ReclaimSweeper = SWEEPER_DEP,
) -> ReclaimResponse:
    reclaimed = await sweeper.reclaim(tournament_id)
    return ReclaimResponse(tournament_id=tournament_id, reclaimed=reclaimed)
