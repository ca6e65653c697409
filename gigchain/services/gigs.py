# services/gigs.py
# Gig creation (prepare / record), marketplace queries and gig messages.

from __future__ import annotations

import json
import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import or_
from sqlalchemy.orm import Session

from .. import config
from ..Database.store import upsert_by_key
from ..errors import StateConflictError, ValidationError
from ..models import Gig, Invitation, Message
from .events import GigCreate, GigMessage, parse_budget
from .lifecycle import get_gig, get_profile, require_participant

log = logging.getLogger("gigchain.gigs")


def _event_or_400(model: Any, payload: Dict[str, Any]) -> Any:
    try:
        return model.model_validate(payload)
    except PydanticValidationError as e:
        raise ValidationError(
            f"Invalid {model.__name__} payload",
            errors=[{"loc": list(err["loc"]), "msg": err["msg"]} for err in e.errors()],
        ) from e


# ------------------------------ creation ------------------------------

def prepare_creation(
    ledger: Any,
    *,
    client_id: str,
    title: str,
    description: str,
    budget: Any,
    duration: Optional[str] = None,
    visibility: Optional[str] = None,
) -> Dict[str, Any]:
    if not client_id or not title or not description or budget in (None, ""):
        raise ValidationError("client_id, title, description and budget are required")
    try:
        parsed = parse_budget(budget)
    except ValueError as e:
        raise ValidationError(str(e), budget=str(budget)) from e

    event = _event_or_400(GigCreate, {
        "gigRefId": str(uuid.uuid4()),
        "clientId": client_id,
        "title": title,
        "description": description,
        "duration": duration,
        "budgetAmount": parsed["budget_amount"],
        "budgetCurrency": parsed["budget_currency"],
        "visibility": visibility or "PUBLIC",
    })
    payload = event.to_payload()
    tx = ledger.build_unsigned(
        config.channel_pallet(),
        "submit_message",
        {"channel_id": config.gigs_channel_id(), "message": json.dumps(payload)},
    )
    return {"gig_ref_id": event.gig_ref_id, "transaction": tx.as_dict(), "gig_data": payload}


def record_creation(session: Session, *, gig_data: Dict[str, Any], sequence_number: Optional[int] = None) -> Gig:
    event = _event_or_400(GigCreate, gig_data)
    existing = session.query(Gig).filter(Gig.gig_ref_id == event.gig_ref_id).first()
    if existing is not None:
        if existing.status != "OPEN":
            raise StateConflictError(
                f"Gig {event.gig_ref_id} already exists and is {existing.status}",
                entity_id=event.gig_ref_id,
                actual=existing.status,
            )
        # Re-recording the same create is a no-op
        return existing

    upsert_by_key(session, Gig, "gig_ref_id", [event.seed(sequence_number)])
    session.commit()
    log.info("gig %s recorded (seq=%s)", event.gig_ref_id, sequence_number)
    return get_gig(session, event.gig_ref_id)


# ------------------------------ queries ------------------------------

def open_public_gigs(session: Session, *, account_id: Optional[str] = None) -> List[Tuple[Gig, str]]:
    """Open public gigs, newest first, each with the caller's invitation status."""
    gigs = (
        session.query(Gig)
        .filter(Gig.status == "OPEN", Gig.visibility == "PUBLIC")
        .order_by(Gig.created_at.desc())
        .all()
    )
    statuses: Dict[str, str] = {}
    if account_id and gigs:
        rows = (
            session.query(Invitation.gig_ref_id, Invitation.status)
            .filter(
                Invitation.freelancer_id == account_id,
                Invitation.gig_ref_id.in_([g.gig_ref_id for g in gigs]),
            )
            .all()
        )
        statuses = {ref: status for ref, status in rows}
    return [(g, statuses.get(g.gig_ref_id, "NOT_INVITED")) for g in gigs]


def gig_detail(session: Session, gig_ref_id: str) -> Dict[str, Any]:
    gig = get_gig(session, gig_ref_id)
    invitation = None
    if gig.assigned_freelancer_id:
        invitation = (
            session.query(Invitation)
            .filter(Invitation.gig_ref_id == gig_ref_id, Invitation.freelancer_id == gig.assigned_freelancer_id)
            .first()
        )
    return {
        "gig": gig,
        "client": get_profile(session, gig.client_id),
        "freelancer": get_profile(session, gig.assigned_freelancer_id),
        "invitation_status": invitation.status if invitation else "NOT_INVITED",
    }


def gigs_for_client(session: Session, client_id: str) -> List[Gig]:
    return session.query(Gig).filter(Gig.client_id == client_id).order_by(Gig.created_at.desc()).all()


def gigs_for_freelancer(session: Session, freelancer_id: str) -> List[Gig]:
    return (
        session.query(Gig)
        .filter(Gig.assigned_freelancer_id == freelancer_id)
        .order_by(Gig.created_at.desc())
        .all()
    )


def gigs_for_user(session: Session, account_id: str) -> List[Gig]:
    """Every gig the account owns or is assigned to (dashboard view)."""
    return (
        session.query(Gig)
        .filter(or_(Gig.client_id == account_id, Gig.assigned_freelancer_id == account_id))
        .order_by(Gig.created_at.desc())
        .all()
    )


# ------------------------------ messages ------------------------------

def list_messages(session: Session, *, gig_ref_id: str, account_id: str) -> List[Message]:
    gig = get_gig(session, gig_ref_id)
    require_participant(gig, account_id)
    return (
        session.query(Message)
        .filter(Message.gig_ref_id == gig_ref_id)
        .order_by(Message.timestamp.asc())
        .all()
    )


def prepare_message(session: Session, ledger: Any, *, gig_ref_id: str, sender_id: str, content: str) -> Dict[str, Any]:
    if not (content or "").strip():
        raise ValidationError("content is required")
    gig = get_gig(session, gig_ref_id)
    require_participant(gig, sender_id)

    event = GigMessage(
        gig_ref_id=gig_ref_id,
        sender_id=sender_id,
        content=content,
        timestamp=datetime.now(timezone.utc),
    )
    payload = event.to_payload()
    tx = ledger.build_unsigned(
        config.channel_pallet(),
        "submit_message",
        {"channel_id": config.messages_channel_id(), "message": json.dumps(payload)},
    )
    return {"transaction": tx.as_dict(), "message_data": payload}


def record_message(session: Session, *, gig_ref_id: str, message_data: Dict[str, Any]) -> Message:
    event = _event_or_400(GigMessage, message_data)
    if event.gig_ref_id != gig_ref_id:
        raise ValidationError("message gigRefId does not match the path", entity_id=gig_ref_id)
    gig = get_gig(session, gig_ref_id)
    require_participant(gig, event.sender_id)

    msg = Message(
        gig_ref_id=gig_ref_id,
        sender_id=event.sender_id,
        content=event.content,
        timestamp=event.timestamp or datetime.now(timezone.utc),
    )
    session.add(msg)
    session.commit()
    session.refresh(msg)
    return msg
