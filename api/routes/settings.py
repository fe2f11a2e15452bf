"""
Settings API endpoints: credits and the bring-your-own API key.
"""
import logging

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, Field

from api.services.credential_store import get_credential_store
from api.services.credits import PurchaseTransaction, get_credit_ledger

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["settings"])


class CreditsResponse(BaseModel):
    """Credit balance."""
    balance: int
    is_low: bool
    using_own_key: bool


class ApiKeyRequest(BaseModel):
    """BYOK key to store."""
    api_key: str = Field(..., min_length=1)


class TransactionRequest(BaseModel):
    transaction_id: str
    product_id: str
    verified: bool = False


class RestoreRequest(BaseModel):
    transactions: list[TransactionRequest]


def _credits_response() -> CreditsResponse:
    ledger = get_credit_ledger()
    return CreditsResponse(
        balance=ledger.balance,
        is_low=ledger.is_low,
        using_own_key=get_credential_store().has_key(),
    )


@router.get("/credits", response_model=CreditsResponse)
async def get_credits() -> CreditsResponse:
    """Current credit balance."""
    return _credits_response()


@router.post("/credits/restore", response_model=CreditsResponse)
async def restore_credits(request: RestoreRequest) -> CreditsResponse:
    """Apply verified purchases. Unverified ones are skipped."""
    get_credit_ledger().restore_purchases(
        PurchaseTransaction(**t.model_dump()) for t in request.transactions
    )
    return _credits_response()


@router.put("/settings/api-key")
async def set_api_key(request: ApiKeyRequest) -> dict:
    """Store your own Anthropic API key in the system keyring."""
    try:
        get_credential_store().set(request.api_key)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {"stored": True}


@router.delete("/settings/api-key")
async def delete_api_key() -> dict:
    """Remove the stored API key."""
    return {"removed": get_credential_store().clear()}
