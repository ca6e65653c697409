# services/events.py
# Typed channel events (the consensus-log wire format).
#
# Payloads on the ledger are camelCase JSON objects tagged by "type":
#   PROFILE_CREATE  (profiles channel)
#   GIG_CREATE / GIG_UPDATE  (gigs channel)
#   GIG_MESSAGE  (messages channel)
# Python field names match the ORM column names, aliases carry the wire names.

from __future__ import annotations

import base64
import binascii
import json
import logging
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Literal, Optional, Type

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from .. import config

log = logging.getLogger("gigchain.events")

PROFILE_CREATE = "PROFILE_CREATE"
GIG_CREATE = "GIG_CREATE"
GIG_UPDATE = "GIG_UPDATE"
GIG_MESSAGE = "GIG_MESSAGE"

Visibility = Literal["PUBLIC", "PRIVATE"]
GigStatus = Literal["OPEN", "IN_PROGRESS", "COMPLETED", "CANCELLED", "COMPLETED_BY_ARBITER", "CANCELLED_BY_ARBITER"]
EscrowStatus = Literal["IN_PROGRESS", "LOCKED", "RELEASED", "CANCELLED"]


def parse_budget(raw: Any) -> Dict[str, Any]:
    """
    Accept the legacy formatted budget ("100 HBAR", "100", 100) and return
    {"budget_amount": Decimal, "budget_currency": str}.
    """
    if isinstance(raw, dict):
        amount, currency = raw.get("amount"), raw.get("currency")
    elif isinstance(raw, (int, float, Decimal)):
        amount, currency = raw, None
    else:
        parts = str(raw).strip().split()
        if not parts or len(parts) > 2:
            raise ValueError(f"unparseable budget: {raw!r}")
        amount = parts[0]
        currency = parts[1] if len(parts) == 2 else None
    try:
        value = Decimal(str(amount))
    except InvalidOperation as e:
        raise ValueError(f"unparseable budget amount: {amount!r}") from e
    if value < 0:
        raise ValueError("budget must not be negative")
    return {"budget_amount": value, "budget_currency": currency or config.budget_currency()}


class _Event(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    type: str

    def to_payload(self) -> Dict[str, Any]:
        """camelCase wire payload with only the fields that were set."""
        payload = self.model_dump(by_alias=True, exclude_unset=True, mode="json")
        payload["type"] = self.type
        return payload

    def to_columns(self) -> Dict[str, Any]:
        return self.model_dump(exclude={"type"}, exclude_unset=True)


# ------------------------------ profiles ------------------------------

class ProfileCreate(_Event):
    type: Literal["PROFILE_CREATE"] = PROFILE_CREATE
    user_account_id: str = Field(alias="userAccountId", min_length=1)
    name: str = Field(min_length=1)
    skills: List[str] = Field(default_factory=list)
    portfolio_url: Optional[str] = Field(default=None, alias="portfolioUrl")
    email: Optional[str] = None
    profile_type: Literal["freelancer", "hirer"] = Field(default="freelancer", alias="profileType")

    @field_validator("skills", mode="before")
    @classmethod
    def _split_skills(cls, v: Any) -> Any:
        if isinstance(v, str):
            return [s.strip() for s in v.split(",") if s.strip()]
        return v

    def to_columns(self) -> Dict[str, Any]:
        # Replacement semantics: every column is written, set or not.
        return self.model_dump(exclude={"type"})


# ------------------------------ gigs ------------------------------

class _GigBudget(_Event):
    @model_validator(mode="before")
    @classmethod
    def _legacy_budget(cls, data: Any) -> Any:
        if isinstance(data, dict) and "budget" in data and "budgetAmount" not in data and "budget_amount" not in data:
            data = dict(data)
            parsed = parse_budget(data.pop("budget"))
            data["budgetAmount"] = parsed["budget_amount"]
            data.setdefault("budgetCurrency", parsed["budget_currency"])
        return data


class GigCreate(_GigBudget):
    type: Literal["GIG_CREATE"] = GIG_CREATE
    gig_ref_id: str = Field(alias="gigRefId", min_length=1)
    client_id: str = Field(alias="clientId", min_length=1)
    title: str = Field(min_length=1)
    description: str = Field(min_length=1)
    duration: Optional[str] = None
    budget_amount: Decimal = Field(alias="budgetAmount", ge=0)
    budget_currency: str = Field(default_factory=config.budget_currency, alias="budgetCurrency")
    visibility: Optional[Visibility] = None

    def seed(self, sequence_number: Optional[int] = None) -> Dict[str, Any]:
        """Initial folded record: OPEN, unassigned, PUBLIC unless stated."""
        record = self.model_dump(exclude={"type"})
        record.update(
            visibility=self.visibility or "PUBLIC",
            status="OPEN",
            escrow_status=None,
            escrow_contract_id=None,
            assigned_freelancer_id=None,
            locked_amount=None,
        )
        if sequence_number is not None:
            record["hcs_sequence_number"] = sequence_number
        return record


class GigUpdate(_GigBudget):
    type: Literal["GIG_UPDATE"] = GIG_UPDATE
    gig_ref_id: str = Field(alias="gigRefId", min_length=1)
    client_id: Optional[str] = Field(default=None, alias="clientId")
    title: Optional[str] = None
    description: Optional[str] = None
    duration: Optional[str] = None
    budget_amount: Optional[Decimal] = Field(default=None, alias="budgetAmount", ge=0)
    budget_currency: Optional[str] = Field(default=None, alias="budgetCurrency")
    visibility: Optional[Visibility] = None
    status: Optional[GigStatus] = None
    escrow_status: Optional[EscrowStatus] = Field(default=None, alias="escrowStatus")
    escrow_contract_id: Optional[str] = Field(default=None, alias="escrowContractId")
    assigned_freelancer_id: Optional[str] = Field(default=None, alias="assignedFreelancerId")
    locked_amount: Optional[Decimal] = Field(default=None, alias="lockedAmount", ge=0)
    timestamp: Optional[datetime] = None

    def to_columns(self) -> Dict[str, Any]:
        return self.model_dump(exclude={"type", "timestamp"}, exclude_unset=True)


# ------------------------------ messages ------------------------------

class GigMessage(_Event):
    type: Literal["GIG_MESSAGE"] = GIG_MESSAGE
    gig_ref_id: str = Field(alias="gigRefId", min_length=1)
    sender_id: str = Field(alias="senderId", min_length=1)
    content: str = Field(min_length=1)
    timestamp: Optional[datetime] = None


_EVENT_TYPES: Dict[str, Type[_Event]] = {
    PROFILE_CREATE: ProfileCreate,
    GIG_CREATE: GigCreate,
    GIG_UPDATE: GigUpdate,
    GIG_MESSAGE: GigMessage,
}


def decode_event(message_b64: str) -> Optional[_Event]:
    """
    base64 -> JSON -> typed event. Returns None for anything that is not a
    well-formed known event; such messages are skipped by the replicator.
    """
    try:
        raw = json.loads(base64.b64decode(message_b64, validate=True).decode("utf-8"))
    except (binascii.Error, UnicodeDecodeError, ValueError):
        return None
    if not isinstance(raw, dict):
        return None
    model = _EVENT_TYPES.get(raw.get("type"))
    if model is None:
        return None
    try:
        return model.model_validate(raw)
    except (ValidationError, ValueError) as e:
        log.debug("skipping malformed %s event: %s", raw.get("type"), e)
        return None


def encode_payload(event: _Event) -> str:
    """base64 wire form of a single event, as the indexer serves it back."""
    return base64.b64encode(json.dumps(event.to_payload()).encode("utf-8")).decode("ascii")
