"""
Contact Card - dictate notes about the people you meet
FastAPI Application Entry Point

Run with:

    uvicorn api.main:app --port 8000

The /api/relay endpoint is the thin proxy the client talks to in managed
mode; everything else is the local app surface (record, review, ask, roster).
"""
# Load environment variables from .env file first, before any imports
from dotenv import load_dotenv
load_dotenv()

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError

from api.routes import relay, people, record, ask, settings as settings_routes
from api.services.address_book import get_address_book
from api.services.credits import get_credit_ledger
from config.settings import settings

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage application lifespan - startup and shutdown."""
    # First launch gets the free credit grant (idempotent)
    try:
        if get_credit_ledger().grant_free_credits_if_needed():
            logger.info(f"Granted {settings.free_credits} free credits")
    except Exception as e:
        logger.error(f"Failed to initialize credits: {e}")

    contacts = get_address_book().snapshot()
    logger.info(f"Address book loaded: {len(contacts)} contacts")

    if not settings.server_key_configured:
        logger.warning("ANTHROPIC_API_KEY not set; relay will reject managed requests upstream")

    yield

    logger.info("Contact Card shutting down")


app = FastAPI(
    title="Contact Card",
    description="Dictate notes about people; extract, review and ask about them",
    version="0.1.0",
    lifespan=lifespan
)

# No global CORS middleware: the relay answers its own preflights and stamps
# permissive CORS headers on every response it produces.

# Include routers
app.include_router(relay.router)
app.include_router(people.router)
app.include_router(record.router)
app.include_router(ask.router)
app.include_router(settings_routes.router)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Convert validation errors to 400 with clear messages."""
    errors = exc.errors()

    # Sanitize errors for JSON serialization (bytes input, exception objects in ctx)
    sanitized_errors = []
    for error in errors:
        sanitized = dict(error)
        if "input" in sanitized and isinstance(sanitized["input"], bytes):
            sanitized["input"] = sanitized["input"].decode("utf-8", errors="replace")
        if "ctx" in sanitized:
            sanitized["ctx"] = {k: str(v) for k, v in sanitized["ctx"].items()}
        sanitized_errors.append(sanitized)

    message = "Validation error"
    if errors:
        first = errors[0].get("msg", "")
        message = first.removeprefix("Value error, ") or message

    return JSONResponse(
        status_code=400,
        content={"error": message, "details": sanitized_errors}
    )


@app.get("/health")
async def health_check():
    """Health check endpoint that verifies critical dependencies."""
    checks = {
        "api_key_configured": settings.server_key_configured,
    }

    all_healthy = all(checks.values())

    return {
        "status": "healthy" if all_healthy else "degraded",
        "service": "contactcard",
        "checks": checks,
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("api.main:app", host=settings.host, port=settings.port)
