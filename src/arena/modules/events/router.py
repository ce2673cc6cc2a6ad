from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Body, Depends, HTTPException, status
from pydantic import ValidationError

from arena.deps.pairing import get_event_bus_dep
from arena.modules.events.bus import InProcessEventBus
from arena.modules.events.schemas import EventAcceptedResponse

router = APIRouter(prefix="/events", tags=["events"])
EVENT_BUS_DEP = Depends(get_event_bus_dep)
PAYLOAD_BODY = Body(...)


@router.post(
    "/{topic}",
    response_model=EventAcceptedResponse,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Deliver Event",
    description="Publishes an inbound event (camelCase payload) onto the in-process bus.",
)
async def post_event(
    topic: str,
    payload: dict[str, Any] = PAYLOAD_BODY,
    bus: InProcessEventBus = EVENT_BUS_DEP,
) -> EventAcceptedResponse:
    try:
        await bus.deliver(topic, payload)
    except LookupError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except ValidationError as exc:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=exc.errors(include_url=False, include_context=False),
        ) from exc
    return EventAcceptedResponse(topic=topic, accepted=True)
