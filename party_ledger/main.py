"""
Party Ledger: FastAPI application.

This is the entry point for the application.
All routers are registered here.
"""

import uuid

from fastapi import FastAPI, Request

from party_ledger.config import get_settings
from party_ledger.logging_config import LogContext, configure_logging, get_logger
from party_ledger.api.health import router as health_router
from party_ledger.api.parties import router as parties_router
from party_ledger.api.entries import router as entries_router
from party_ledger.api.settlements import (
    bulk_router as bulk_settlements_router,
    router as settlements_router,
)
from party_ledger.api.reports import router as reports_router
from party_ledger.api.diagnostics import router as diagnostics_router
from party_ledger.api.settings import router as settings_router

settings = get_settings()

configure_logging(level=settings.LOG_LEVEL)
logger = get_logger("app")

app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Party-wise ledger with Monday Final settlements and trial balance",
)


@app.middleware("http")
async def bind_log_context(request: Request, call_next):
    """Tag every log line of a request with its user and a request id."""
    request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex
    with LogContext.bind(
        user_id=request.headers.get("X-User-Id"),
        request_id=request_id,
    ):
        response = await call_next(request)
        if response.status_code >= 500:
            logger.error(
                "request_failed",
                extra={"method": request.method, "path": request.url.path},
            )
    response.headers["X-Request-ID"] = request_id
    return response


# Register routers
app.include_router(health_router)
app.include_router(parties_router)
app.include_router(entries_router)
app.include_router(settlements_router)
app.include_router(bulk_settlements_router)
app.include_router(reports_router)
app.include_router(diagnostics_router)
app.include_router(settings_router)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "party_ledger.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG,
    )
