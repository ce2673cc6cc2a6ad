from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from time import perf_counter

from fastapi import FastAPI, Request
from starlette.middleware.base import RequestResponseEndpoint
from starlette.responses import Response

from arena.config import Settings

_RESERVED_RECORD_FIELDS = frozenset(
    logging.LogRecord("", logging.INFO, "", 0, "", None, None).__dict__
) | {"message", "asctime", "taskName"}

# Keys that tie a line to a tournament, a claim batch or a request. They lead
# every line so one grep follows a batch from claim to publish.
CORRELATION_FIELDS = ("tournament_id", "batch_id", "game_id", "instance_id", "request_id")


def _extra_fields(record: logging.LogRecord) -> dict[str, object]:
    extras = {
        key: value
        for key, value in record.__dict__.items()
        if key not in _RESERVED_RECORD_FIELDS and not key.startswith("_")
    }
    ordered = {key: extras.pop(key) for key in CORRELATION_FIELDS if key in extras}
    ordered.update(sorted(extras.items()))
    return ordered


class JsonFormatter(logging.Formatter):
    """One JSON object per line; correlation keys first, then other extras."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, object] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        payload.update(_extra_fields(record))
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=True, default=str)


class KeyValueFormatter(logging.Formatter):
    """Plain text for local runs; extras are appended as ``key=value``."""

    def __init__(self) -> None:
        super().__init__(fmt="%(asctime)s %(levelname)s %(name)s %(message)s", datefmt="%Y-%m-%dT%H:%M:%S")

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        pairs = " ".join(f"{key}={value}" for key, value in _extra_fields(record).items())
        if not pairs:
            return line
        head, sep, tail = line.partition("\n")
        return f"{head} {pairs}{sep}{tail}"


def configure_logging(settings: Settings) -> None:
    level = getattr(logging, settings.app_log_level.upper(), logging.INFO)
    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)

    stream_handler = logging.StreamHandler()
    stream_handler.setFormatter(JsonFormatter() if settings.app_log_json else KeyValueFormatter())
    root_logger.addHandler(stream_handler)


def register_request_logging(app: FastAPI) -> None:
    logger = logging.getLogger("arena.request")

    @app.middleware("http")
    async def request_timing_log(
        request: Request,
        call_next: RequestResponseEndpoint,
    ) -> Response:
        start = perf_counter()
        status_code = 500
        try:
            response = await call_next(request)
            status_code = response.status_code
            return response
        finally:
            extra: dict[str, object] = {
                "method": request.method,
                "path": request.url.path,
                "status_code": status_code,
                "duration_ms": round((perf_counter() - start) * 1000.0, 2),
                "request_id": getattr(request.state, "request_id", "")
                or request.headers.get("x-request-id", ""),
            }
            # Path params are only known once routing has matched.
            tournament_id = request.path_params.get("tournament_id")
            if tournament_id is not None:
                extra["tournament_id"] = tournament_id
            logger.info("request_completed", extra=extra)
