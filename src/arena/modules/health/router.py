from __future__ import annotations

from fastapi import APIRouter, HTTPException, Request, status
from pydantic import BaseModel
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from arena.config import Settings, get_settings
from arena.db.session import get_sessionmaker

router = APIRouter(prefix="/health", tags=["health"])


class HealthResponse(BaseModel):
    status: str
    app: str
    env: str


class HealthReadyResponse(BaseModel):
    status: str
    app: str
    env: str
    checks: dict[str, bool]
    running_loops: list[str] = []


def _resolve_settings(request: Request) -> Settings:
    state_settings = getattr(request.app.state, "settings", None)
    if isinstance(state_settings, Settings):
        return state_settings
    return get_settings()


def _resolve_sessionmaker(request: Request) -> async_sessionmaker[AsyncSession]:
    state_sessionmaker = getattr(request.app.state, "sessionmaker", None)
    if isinstance(state_sessionmaker, async_sessionmaker):
        return state_sessionmaker
    return get_sessionmaker()


@router.get(
    "",
    response_model=HealthResponse,
    summary="Health Check",
    description="Liveness probe with application and environment metadata.",
    responses={
        200: {
            "description": "Service is alive.",
            "content": {
                "application/json": {
                    "example": {
                        "status": "ok",
                        "app": "Arena Pairing Service",
                        "env": "development",
                    }
                }
            },
        }
    },
)
def get_health(request: Request) -> HealthResponse:
    settings = _resolve_settings(request)
    return HealthResponse(status="ok", app=settings.app_name, env=settings.app_env)


async def _check_db_ready(sessionmaker: async_sessionmaker[AsyncSession]) -> bool:
    try:
        async with sessionmaker() as session:
            await session.execute(text("SELECT 1"))
    except (OSError, TimeoutError):
        return False
    return True


@router.get(
    "/ready",
    response_model=HealthReadyResponse,
    summary="Readiness Check",
    description="Checks store connectivity and that the pairing engine has been wired.",
    responses={
        200: {
            "description": "Service is ready.",
            "content": {
                "application/json": {
                    "example": {
                        "status": "ready",
                        "app": "Arena Pairing Service",
                        "env": "development",
                        "checks": {"db": True, "pairing_engine": True},
                        "running_loops": ["t-42"],
                    }
                }
            },
        },
        503: {
            "description": "Service is not ready.",
            "content": {
                "application/json": {
                    "example": {
                        "error_code": "service_unavailable",
                        "message": "Database not ready",
                        "detail": "Database not ready",
                        "request_id": "req-123",
                    }
                }
            },
        },
    },
)
async def get_ready(request: Request) -> HealthReadyResponse:
    settings = _resolve_settings(request)
    if not await _check_db_ready(_resolve_sessionmaker(request)):
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Database not ready",
        )
    registry = getattr(request.app.state, "pairing_registry", None)
    if registry is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Pairing engine not ready",
        )
    return HealthReadyResponse(
        status="ready",
        app=settings.app_name,
        env=settings.app_env,
        checks={"db": True, "pairing_engine": True},
        running_loops=registry.running_tournaments(),
    )
