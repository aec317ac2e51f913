from __future__ import annotations

from fastapi import APIRouter, Depends

from sankalpa.api.deps import get_services
from sankalpa.features.accounts.service import Services

router = APIRouter()


@router.post("/v1/accounts/{account_id}/check-in")
def daily_check_in(account_id: str, services: Services = Depends(get_services)):
    """Award the daily check-in once per calendar day."""
    return services.activities.check_in(account_id).to_dict()


@router.post("/v1/accounts/{account_id}/activities/{activity_id}")
def complete_activity(account_id: str, activity_id: str, services: Services = Depends(get_services)):
    result = services.activities.complete_activity(account_id, activity_id)
    payload = result.to_dict()
    payload["activity_id"] = activity_id
    return payload


@router.post("/v1/accounts/{account_id}/rewards/{reward_id}/redeem")
def redeem_reward(account_id: str, reward_id: str, services: Services = Depends(get_services)):
    return services.activities.redeem(account_id, reward_id).to_dict()
