from fastapi import APIRouter, Depends

from time_tracking.core.authorization import Actor, Capability
from time_tracking.deps.auth import require_actor, require_capability
from time_tracking.schemas.time_entry import TimeSettingsResponse, TimeSettingsUpdate
from time_tracking.services import company_settings_service

router = APIRouter(prefix="/time-tracking/settings", tags=["Time Settings"])


@router.get("", response_model=TimeSettingsResponse)
def get_time_settings(actor: Actor = Depends(require_actor)):
    return TimeSettingsResponse.model_validate(company_settings_service.get_settings(actor))


@router.patch("", response_model=TimeSettingsResponse)
def update_time_settings(
    payload: TimeSettingsUpdate,
    actor: Actor = Depends(require_capability(Capability.MANAGE_ALL)),
):
    return TimeSettingsResponse.model_validate(company_settings_service.update_settings(payload, actor))
