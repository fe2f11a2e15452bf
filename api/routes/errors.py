"""
Mapping from service exceptions to HTTP errors.

Every failure reaches the caller as a readable message. Nothing is
swallowed here.
"""
import logging

from fastapi import HTTPException

from api.services.credits import InsufficientCredits
from api.services.pipeline import PipelineBusy
from api.services.reconciliation import ReviewAlreadyCommitted, ReviewNotResolved
from api.services.relay_client import MalformedResponse, RequestFailure, UpstreamFailure

logger = logging.getLogger(__name__)


def to_http_exception(exc: Exception) -> HTTPException:
    """Translate a known service exception into an HTTPException."""
    if isinstance(exc, RequestFailure):
        return HTTPException(status_code=503, detail=exc.user_message)
    if isinstance(exc, UpstreamFailure):
        return HTTPException(status_code=502, detail={
            "error": exc.user_message,
            "upstream_status": exc.status_code,
            "upstream_body": exc.body,
        })
    if isinstance(exc, MalformedResponse):
        return HTTPException(status_code=502, detail=exc.user_message)
    if isinstance(exc, (PipelineBusy, ReviewNotResolved, ReviewAlreadyCommitted)):
        return HTTPException(status_code=409, detail=str(exc))
    if isinstance(exc, InsufficientCredits):
        return HTTPException(status_code=402, detail=str(exc))
    if isinstance(exc, ValueError):
        return HTTPException(status_code=400, detail=str(exc))
    logger.error(f"Unhandled service error: {exc}")
    return HTTPException(status_code=500, detail="Internal error")


# Exceptions routes catch and translate
SERVICE_ERRORS = (
    RequestFailure,
    UpstreamFailure,
    MalformedResponse,
    PipelineBusy,
    ReviewNotResolved,
    ReviewAlreadyCommitted,
    InsufficientCredits,
    ValueError,
)
