# gigchain/schemas.py
# Response models shared by several routers. Request bodies live next to
# the route that accepts them.

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict


class ORMOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)


class AckOut(BaseModel):
    message: str


class UnsignedOut(BaseModel):
    module: str
    function: str
    params: Dict[str, Any]
    payload: str


class ProfileOut(ORMOut):
    user_account_id: str
    name: str
    skills: List[str] = []
    portfolio_url: Optional[str] = None
    email: Optional[str] = None
    profile_type: str


class GigOut(ORMOut):
    gig_ref_id: str
    client_id: str
    title: str
    description: str
    duration: Optional[str] = None
    budget_amount: Decimal
    budget_currency: str
    visibility: str
    status: str
    escrow_status: Optional[str] = None
    escrow_contract_id: Optional[str] = None
    assigned_freelancer_id: Optional[str] = None
    locked_amount: Optional[Decimal] = None
    hcs_sequence_number: Optional[int] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class ApplicationOut(ORMOut):
    id: str
    gig_ref_id: str
    freelancer_id: str
    cover_letter: str
    proposed_rate: Optional[str] = None
    status: str
    applied_at: Optional[datetime] = None


class InvitationOut(ORMOut):
    id: str
    gig_ref_id: str
    freelancer_id: str
    message: Optional[str] = None
    status: str
    invited_at: Optional[datetime] = None


class ReviewOut(ORMOut):
    id: str
    gig_ref_id: str
    reviewer_id: str
    reviewee_id: str
    rating: int
    comment: Optional[str] = None
    review_type: str
    created_at: Optional[datetime] = None


class MessageOut(ORMOut):
    id: str
    gig_ref_id: str
    sender_id: str
    content: str
    timestamp: datetime


class RewardOut(ORMOut):
    user_account_id: str
    reward_id: str
    token_id: Optional[str] = None
    serial_number: Optional[int] = None
    awarded_at: Optional[datetime] = None
