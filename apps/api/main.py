"""
UnseenIndonesia - FastAPI Backend
Stories and traditional remedies from across the archipelago.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from config import settings, validate_security_settings
from database import engine, Base
import models  # noqa: F401
from routers import (
    health,
    auth,
    remedies,
    remedy_categories,
    search,
    testimonials,
    remedy_verifications,
    stories,
    locations,
    moderation,
)
from services.identity import AuthEvent, IdentityContext, SessionState

logger = logging.getLogger(__name__)


def _log_auth_event(event: AuthEvent, session: SessionState) -> None:
    logger.info("auth_event event=%s user=%s", event.value, session.user_id)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup/shutdown."""
    # Startup
    print("🚀 Starting UnseenIndonesia API...")
    validate_security_settings()
    if settings.AUTO_CREATE_DB_SCHEMA:
        try:
            async with engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
            print("🗄️ Database schema verified.")
        except Exception as e:
            print(f"⚠️ Database bootstrap skipped: {e}")
    unsubscribe = app.state.identity.subscribe(_log_auth_event)
    yield
    # Shutdown
    unsubscribe()
    await engine.dispose()
    print("👋 Shutting down API...")


app = FastAPI(
    title="UnseenIndonesia API",
    description="Crowdsourced stories and traditional remedies with community verification",
    version="0.1.0",
    lifespan=lifespan,
)
app.state.identity = IdentityContext()

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": str(exc.detail)},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    message = "Invalid request"
    if errors:
        first = errors[0]
        field = ".".join(str(part) for part in first.get("loc", ()) if part not in ("body", "query", "path"))
        message = f"{field}: {first.get('msg', 'invalid value')}" if field else str(first.get("msg", message))
    return JSONResponse(status_code=400, content={"error": message})


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception("unhandled_error method=%s path=%s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"error": "Internal server error"})


# Include routers; fixed /remedies/* paths go before /remedies/{remedy_id}
app.include_router(health.router, tags=["Health"])
app.include_router(auth.router, prefix="/auth", tags=["Authentication"])
app.include_router(remedy_categories.router, prefix="/remedies/categories", tags=["Remedy Categories"])
app.include_router(search.router, prefix="/remedies/search", tags=["Search"])
app.include_router(remedies.router, prefix="/remedies", tags=["Remedies"])
app.include_router(testimonials.router, prefix="/remedies", tags=["Testimonials"])
app.include_router(remedy_verifications.router, prefix="/remedies", tags=["Verifications"])
app.include_router(stories.router, prefix="/stories", tags=["Stories"])
app.include_router(locations.router, prefix="/locations", tags=["Locations"])
app.include_router(moderation.router, prefix="/moderation", tags=["Moderation"])


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "name": "UnseenIndonesia API",
        "version": "0.1.0",
        "status": "running"
    }
