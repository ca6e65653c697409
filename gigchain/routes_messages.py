# routes_messages.py
# Gig chat. Messages are GIG_MESSAGE events on the messages channel; only the
# client and the assigned freelancer can read or post.

from __future__ import annotations

from typing import Any, Dict, List

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from .Database.db import get_db
from .schemas import MessageOut, UnsignedOut
from .services import gigs as gig_service
from .services.ledger import LedgerGateway, get_ledger

router = APIRouter(prefix="/gigs", tags=["messages"])


class PrepareMessageIn(BaseModel):
    sender_id: str = Field(min_length=1)
    content: str = Field(min_length=1)


class PrepareMessageOut(BaseModel):
    transaction: UnsignedOut
    message_data: Dict[str, Any]


class RecordMessageIn(BaseModel):
    message_data: Dict[str, Any]


@router.get("/{gig_ref_id}/messages", response_model=List[MessageOut])
def list_messages(gig_ref_id: str, account_id: str = Query(..., min_length=1), db: Session = Depends(get_db)):
    return gig_service.list_messages(db, gig_ref_id=gig_ref_id, account_id=account_id)


@router.post("/{gig_ref_id}/messages/prepare", response_model=PrepareMessageOut)
def prepare_message(
    gig_ref_id: str,
    body: PrepareMessageIn,
    db: Session = Depends(get_db),
    ledger: LedgerGateway = Depends(get_ledger),
):
    return gig_service.prepare_message(db, ledger, gig_ref_id=gig_ref_id, sender_id=body.sender_id, content=body.content)


@router.post("/{gig_ref_id}/messages/record", response_model=MessageOut, status_code=201)
def record_message(gig_ref_id: str, body: RecordMessageIn, db: Session = Depends(get_db)):
    return gig_service.record_message(db, gig_ref_id=gig_ref_id, message_data=body.message_data)
