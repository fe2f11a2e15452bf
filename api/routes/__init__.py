"""
Contact Card API Routes Package.

This package contains all FastAPI route handlers organized by domain.
Use this module to import routers for registration with the FastAPI app.

Example:
    from api.routes import relay_router, record_router

    app.include_router(relay_router)
    app.include_router(record_router)
"""

# ============================================================================
# Relay
# ============================================================================

from api.routes.relay import router as relay_router

# ============================================================================
# App Routers
# ============================================================================

from api.routes.record import router as record_router
from api.routes.ask import router as ask_router
from api.routes.people import router as people_router
from api.routes.settings import router as settings_router


__all__ = [
    "relay_router",
    "record_router",
    "ask_router",
    "people_router",
    "settings_router",
]
