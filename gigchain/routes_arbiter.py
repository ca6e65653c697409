# routes_arbiter.py
# Arbiter overrides. Single-phase: the platform holds the arbiter key, so the
# escrow call is signed and executed here, then the gig is updated.

from __future__ import annotations

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from .Database.db import get_db
from .schemas import GigOut
from .services import escrow
from .services.ledger import LedgerGateway, get_ledger

router = APIRouter(prefix="/arbiter", tags=["arbiter"])


class ArbiterIn(BaseModel):
    escrow_contract_id: str = Field(min_length=1)


@router.post("/release", response_model=GigOut)
def arbiter_release(body: ArbiterIn, db: Session = Depends(get_db), ledger: LedgerGateway = Depends(get_ledger)):
    return escrow.arbiter_release(db, ledger, escrow_contract_id=body.escrow_contract_id)


@router.post("/cancel", response_model=GigOut)
def arbiter_cancel(body: ArbiterIn, db: Session = Depends(get_db), ledger: LedgerGateway = Depends(get_ledger)):
    return escrow.arbiter_cancel(db, ledger, escrow_contract_id=body.escrow_contract_id)
