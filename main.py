from __future__ import annotations

import logging
from logging.config import dictConfig
from typing import Any, Dict

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from api.v1.router import api_router
from core.config import settings
from core.errors import (
    AvailabilityConflict,
    NotFoundError,
    PartialFailureError,
    PermissionDeniedError,
    SchedulingError,
    StoreError,
    ValidationError,
)
from db.database import close_database, get_store


def configure_logging() -> None:
    dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "json": {
                    "()": "pythonjsonlogger.jsonlogger.JsonFormatter",
                    "fmt": "%(asctime)s %(levelname)s %(name)s %(message)s",
                }
            },
            "handlers": {
                "console": {
                    "class": "logging.StreamHandler",
                    "formatter": "json",
                    "level": "INFO",
                }
            },
            "root": {"handlers": ["console"], "level": "INFO"},
            "loggers": {
                "scheduling": {"level": "INFO", "propagate": True},
                "services": {"level": "INFO", "propagate": True},
                "repositories": {"level": "INFO", "propagate": True},
            },
        }
    )


configure_logging()
logger = logging.getLogger(__name__)

# Most specific first; the first matching class wins
ERROR_STATUS_CODES = (
    (PartialFailureError, 500),
    (StoreError, 503),
    (AvailabilityConflict, 409),
    (ValidationError, 422),
    (NotFoundError, 404),
    (PermissionDeniedError, 403),
)


def status_code_for(exc: SchedulingError) -> int:
    for error_cls, code in ERROR_STATUS_CODES:
        if isinstance(exc, error_cls):
            return code
    return 400


async def scheduling_error_handler(request: Request, exc: SchedulingError) -> JSONResponse:
    code = status_code_for(exc)
    log = logger.error if code >= 500 else logger.info
    log(
        "api.scheduling_error",
        extra={"path": str(request.url.path), "error": type(exc).__name__, "status_code": code},
    )
    body: Dict[str, Any] = {"detail": exc.message, **exc.to_dict()}
    return JSONResponse(status_code=code, content=body)


def create_app() -> FastAPI:
    app = FastAPI(title="Clinic Scheduling Backend", version="0.1.0")

    origins_env = settings.allowed_origins.strip()
    allow_all_origins = origins_env in {"*", '"*"'}
    if allow_all_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=["*"],
            allow_credentials=False,
            allow_methods=["*"],
            allow_headers=["*"],
        )
    else:
        allowed_origins = [o.strip() for o in origins_env.split(",") if o.strip()]
        app.add_middleware(
            CORSMiddleware,
            allow_origins=allowed_origins,
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    app.add_exception_handler(SchedulingError, scheduling_error_handler)
    app.include_router(api_router, prefix="/api/v1")

    @app.on_event("startup")
    async def _watch_changes_start() -> None:
        if not settings.watch_changes:
            return

        async def log_change(change: Dict[str, Any]) -> None:
            # Clients re-fetch on their own; this only records that something changed
            logger.info("store.change", extra=change)

        store = await get_store()
        app.state.unsubscribe = [
            await store.subscribe("appointment_requests", log_change),
            await store.subscribe("appointments", log_change),
        ]

    @app.on_event("shutdown")
    async def _shutdown() -> None:
        for unsubscribe in getattr(app.state, "unsubscribe", []):
            unsubscribe()
        await close_database()

    @app.get("/")
    async def root_health() -> dict[str, str]:
        return {"status": "ok"}

    logger.info("Application initialized")
    return app


app = create_app()

if __name__ == "__main__":
    import uvicorn

    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=True)
