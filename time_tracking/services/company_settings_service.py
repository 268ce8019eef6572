import logging
from dataclasses import asdict
from decimal import Decimal
from enum import Enum
from typing import Optional

from sqlalchemy.orm import Session

from time_tracking.core.authorization import Actor
from time_tracking.core.exceptions import ForbiddenAction, ValidationFailed
from time_tracking.schemas.time_entry import TimeSettingsUpdate
from time_tracking.services.collaborators import Collaborators, resolve_collaborators
from time_tracking.services.settings_service import CompanyTimeSettings, DbSettingsProvider

logger = logging.getLogger(__name__)

TIME_SETTINGS = "TimeSettings"


def _settings_snapshot(settings: CompanyTimeSettings) -> dict:
    out = {}
    for key, value in asdict(settings).items():
        if isinstance(value, Enum):
            value = value.value
        elif isinstance(value, Decimal):
            value = str(value)
        out[key] = value
    return out


def get_settings(
    actor: Actor,
    *,
    db: Optional[Session] = None,
    collaborators: Optional[Collaborators] = None,
) -> CompanyTimeSettings:
    deps = resolve_collaborators(collaborators)
    company_id = deps.tenant_resolver.resolve_company_id(actor)
    return deps.settings.get_settings(company_id, db=db)


def update_settings(
    payload: TimeSettingsUpdate,
    actor: Actor,
    *,
    db: Optional[Session] = None,
    collaborators: Optional[Collaborators] = None,
) -> CompanyTimeSettings:
    deps = resolve_collaborators(collaborators)
    if not deps.policy.can_manage_all(actor):
        raise ForbiddenAction("Only managers can change time tracking settings")

    provider = deps.settings
    if not isinstance(provider, DbSettingsProvider):
        raise ValidationFailed("Settings are read-only in this deployment")

    company_id = deps.tenant_resolver.resolve_company_id(actor)
    changes = {k: getattr(payload, k) for k in payload.model_fields_set}

    for field in ("rounding_method", "rounding_interval_minutes", "allow_overlapping_entries",
                  "lock_entries_after_days", "default_currency"):
        if field in changes and changes[field] is None:
            raise ValidationFailed(f"{field} cannot be null", {"field": field})

    before = provider.get_settings(company_id, db=db)
    after = provider.update_settings(company_id, changes, updated_by_id=actor.user_id, db=db)

    deps.audit.log_update(
        TIME_SETTINGS, str(company_id), _settings_snapshot(before), _settings_snapshot(after), actor, db=db
    )
    return after
