from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from sankalpa.api.deps import get_services
from sankalpa.features.accounts.service import Services

router = APIRouter()


class ProvisionRequest(BaseModel):
    account_id: Optional[str] = Field(None, min_length=1, max_length=128)


@router.post("/v1/accounts", status_code=201)
def provision_account(req: ProvisionRequest, services: Services = Depends(get_services)):
    """Create an account with the starting balance and a fresh streak."""
    account = services.accounts.provision(req.account_id)
    return services.accounts.view(account)


@router.get("/v1/accounts/{account_id}")
def get_account(account_id: str, services: Services = Depends(get_services)):
    """Load an account: settles an expired contract and reconciles the badge first."""
    account, evaluation = services.accounts.load(account_id)
    payload = services.accounts.view(account)
    payload["contract_evaluation"] = evaluation.to_dict() if evaluation else None
    return payload


@router.post("/v1/accounts/{account_id}/restart")
def restart_streak(account_id: str, services: Services = Depends(get_services)):
    result = services.coordinator.restart(account_id)
    return result.to_dict()


@router.get("/v1/badges")
def list_badges(services: Services = Depends(get_services)):
    return {"badges": [tier.to_dict() for tier in services.tracker.resolver.tiers]}
