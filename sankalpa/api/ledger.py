from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from sankalpa.api.deps import get_services
from sankalpa.features.accounts.service import Services

router = APIRouter()


class LedgerMutation(BaseModel):
    amount: int
    reason: str = Field(..., min_length=1, max_length=64)


class ProgressUpdate(BaseModel):
    coin_delta: int = 0
    xp_delta: int = 0
    level: Optional[int] = None
    reason: str = Field("profile_update", min_length=1, max_length=64)


@router.get("/v1/accounts/{account_id}/ledger")
def get_ledger(
    account_id: str,
    limit: int = Query(20, ge=1, le=500),
    services: Services = Depends(get_services),
):
    entries = services.ledger.history(account_id, limit)
    return {
        "account_id": account_id,
        "balance": services.ledger.balance(account_id),
        "entries": [entry.to_dict() for entry in entries],
    }


@router.post("/v1/accounts/{account_id}/ledger/credit")
def credit(account_id: str, req: LedgerMutation, services: Services = Depends(get_services)):
    return services.ledger.credit(account_id, req.amount, req.reason).to_dict()


@router.post("/v1/accounts/{account_id}/ledger/debit")
def debit(account_id: str, req: LedgerMutation, services: Services = Depends(get_services)):
    return services.ledger.debit(account_id, req.amount, req.reason).to_dict()


@router.post("/v1/accounts/{account_id}/progress")
def apply_progress(account_id: str, req: ProgressUpdate, services: Services = Depends(get_services)):
    """Apply coin/XP/level changes; level-ups credit the bonus once."""
    result = services.ledger.apply_update(
        account_id,
        reason=req.reason,
        coin_delta=req.coin_delta,
        xp_delta=req.xp_delta,
        level=req.level,
    )
    return result.to_dict()
