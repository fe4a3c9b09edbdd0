from fastapi import Depends, FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from carewatch.core.config import settings
from carewatch.core.errors import (
    CareWatchException,
    carewatch_exception_handler,
    unhandled_exception_handler,
    validation_exception_handler,
)
from carewatch.core.logging import configure_logging
from carewatch.db.base import get_db
from carewatch.routers import triage as triage_router

configure_logging(settings.LOG_LEVEL)

app = FastAPI(
    title="CareWatch Triage API",
    description=(
        "Ranks risk-worthy patient self-reports for counselors and center "
        "admins, and records the interventions taken on them.\n\n"
        "Callers identify themselves with the `X-Reviewer-Id` header. "
        "Errors use the `{code, message, details}` envelope."
    ),
    version="1.0.0",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["GET", "POST"],
    allow_headers=["*"],
)

# Most specific first
for exc_class, handler in (
    (CareWatchException, carewatch_exception_handler),
    (RequestValidationError, validation_exception_handler),
    (Exception, unhandled_exception_handler),
):
    app.add_exception_handler(exc_class, handler)

app.include_router(triage_router.router)


@app.get("/health", tags=["health"], summary="Liveness and database probe")
def health(db: Session = Depends(get_db)):
    """200 when the database answers `SELECT 1`, otherwise 503."""
    try:
        db.execute(text("SELECT 1"))
    except SQLAlchemyError:
        return JSONResponse(status_code=503, content={"status": "error", "db": "unreachable"})
    return {"status": "ok", "db": "ok", "env": settings.APP_ENV}
