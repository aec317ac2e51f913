from __future__ import annotations

from fastapi import APIRouter, Depends

from sankalpa.api.deps import get_services
from sankalpa.features.accounts.service import Services

router = APIRouter()


@router.get("/v1/accounts/{account_id}/contract")
def get_contract(account_id: str, services: Services = Depends(get_services)):
    return services.contracts.status(account_id)


@router.post("/v1/accounts/{account_id}/contract/start", status_code=201)
def start_contract(account_id: str, services: Services = Depends(get_services)):
    """Stake coins on a seven-day streak."""
    contract = services.contracts.start(account_id)
    return {
        "contract": contract.to_dict(),
        "balance": services.ledger.balance(account_id),
    }


@router.post("/v1/accounts/{account_id}/contract/evaluate")
def evaluate_contract(account_id: str, services: Services = Depends(get_services)):
    return services.contracts.evaluate(account_id).to_dict()


@router.post("/v1/accounts/{account_id}/contract/forfeit")
def forfeit_contract(account_id: str, services: Services = Depends(get_services)):
    """Declare the commitment lost; resets the streak like a manual restart."""
    return services.contracts.declare_forfeit(account_id).to_dict()
