# services/profiles.py
# Sponsored account creation and profile prepare / record.

from __future__ import annotations

import json
import logging
from typing import Any, Dict, List, Optional

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.orm import Session

from .. import config
from ..Database.store import upsert_by_key
from ..errors import NotFoundError, ValidationError
from ..models import Profile
from .events import ProfileCreate

log = logging.getLogger("gigchain.profiles")


def _profile_event(payload: Dict[str, Any]) -> ProfileCreate:
    try:
        return ProfileCreate.model_validate(payload)
    except PydanticValidationError as e:
        raise ValidationError(
            "Invalid profile payload",
            errors=[{"loc": list(err["loc"]), "msg": err["msg"]} for err in e.errors()],
        ) from e


def create_account(ledger: Any, *, initial_balance: Optional[int] = None) -> Dict[str, Any]:
    """Platform pays: a fresh keypair funded from the platform account."""
    account = ledger.create_sponsored_account(initial_balance)
    log.info("sponsored account %s created", account.get("account_id"))
    return account


def prepare_profile(
    ledger: Any,
    *,
    account_id: str,
    name: str,
    skills: List[str],
    email: str,
    profile_type: str,
    portfolio_url: Optional[str] = None,
) -> Dict[str, Any]:
    if not account_id or not name or not email or not profile_type:
        raise ValidationError("account_id, name, email and profile_type are required")
    event = _profile_event({
        "userAccountId": account_id,
        "name": name,
        "skills": skills,
        "portfolioUrl": portfolio_url,
        "email": email,
        "profileType": profile_type,
    })
    payload = event.to_payload()
    tx = ledger.build_unsigned(
        config.channel_pallet(),
        "submit_message",
        {"channel_id": config.profile_channel_id(), "message": json.dumps(payload)},
    )
    return {"transaction": tx.as_dict(), "profile_data": payload}


def record_profile(session: Session, *, profile_data: Dict[str, Any]) -> Profile:
    event = _profile_event(profile_data)
    upsert_by_key(session, Profile, "user_account_id", [event.to_columns()])
    session.commit()
    log.info("profile %s recorded", event.user_account_id)
    return get_profile_or_404(session, event.user_account_id)


def get_profile_or_404(session: Session, account_id: str) -> Profile:
    profile = session.query(Profile).filter(Profile.user_account_id == account_id).first()
    if profile is None:
        raise NotFoundError("Profile not found for this account.", code="profile_not_found", entity_id=account_id)
    return profile
