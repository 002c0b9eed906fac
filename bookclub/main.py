from fastapi import FastAPI, Depends
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
import logging

from bookclub.db.base import get_db
from bookclub.core.config import settings
from bookclub.core.logging_config import configure_logging
from bookclub.routers import clubs as clubs_router
from bookclub.routers import voting as voting_router
from bookclub.routers import meetings as meetings_router
from bookclub.routers import achievements as achievements_router
from bookclub.routers import activity as activity_router
from bookclub.core.errors import (
    BookClubException,
    bookclub_exception_handler,
    validation_exception_handler,
    unhandled_exception_handler,
)

configure_logging()
logger = logging.getLogger(__name__)

app = FastAPI(
    title="Book Club API",
    description=(
        "**Book club lifecycle and reading achievements**\n\n"
        "Clubs vote on their next book, read it together, meet to discuss it and "
        "record how it went. Reading activity earns achievements.\n\n"
        "All endpoints except `/health` need an `Authorization: Bearer <token>` header. "
        "All error responses follow the `{code, message, details}` envelope."
    ),
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
)

# --- CORS ---
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# --- Exception handlers (most specific first) ---
app.add_exception_handler(BookClubException, bookclub_exception_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_exception_handler(Exception, unhandled_exception_handler)

# --- Routers ---
app.include_router(clubs_router.router)
app.include_router(voting_router.router)
app.include_router(meetings_router.router)
app.include_router(achievements_router.router)
app.include_router(activity_router.router)


@app.get("/health", tags=["health"], summary="Health check")
def health(db: Session = Depends(get_db)):
    """
    Returns `{"status": "ok", "db": "ok"}` when both the API and the database
    are reachable. Returns HTTP 503 if the DB is down.
    """
    try:
        db.execute(text("SELECT 1"))
        db_status = "ok"
    except SQLAlchemyError:
        logger.exception("Health check could not reach the database")
        db_status = "unreachable"

    if db_status != "ok":
        return JSONResponse(
            status_code=503,
            content={"status": "error", "db": db_status},
        )
    return {"status": "ok", "db": "ok", "env": settings.APP_ENV}
