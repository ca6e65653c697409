# routes_escrow.py
# Escrow lifecycle endpoints (prepare / record pairs).
#
# - prepare-assignment: stages the escrow bytecode with the platform key and
#   returns two unsigned payloads for the client's wallet: the escrow
#   creation and the GIG_UPDATE status change.
# - record-assignment: resolves the escrow id from the submitted operation
#   (bounded polling), then commits gig IN_PROGRESS + escrow linkage.
# - lock: escrow LOCKED, gig stays IN_PROGRESS.
# - release: gig COMPLETED, escrow RELEASED, freelancer XP += XP_PER_RELEASE.

from __future__ import annotations

from decimal import Decimal
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from .Database.db import get_db
from .schemas import GigOut, UnsignedOut
from .services import escrow
from .services.ledger import LedgerGateway, get_ledger

router = APIRouter(prefix="/gigs", tags=["escrow"])


# -------------------------- Schemas --------------------------

class PrepareAssignmentIn(BaseModel):
    client_id: str = Field(min_length=1)
    freelancer_id: str = Field(min_length=1)


class PrepareAssignmentOut(BaseModel):
    gig_ref_id: str
    freelancer_id: str
    blob_id: str
    contract_create: UnsignedOut
    status_update: UnsignedOut
    update_payload: Dict[str, Any]


class RecordAssignmentIn(BaseModel):
    client_id: str = Field(min_length=1)
    freelancer_id: str = Field(min_length=1)
    # Submission id of the escrow creation; resolved to the escrow id.
    transaction_id: Optional[str] = None
    # Already known (e.g. read from the receipt): skips resolution.
    escrow_contract_id: Optional[str] = None
    update_payload: Optional[Dict[str, Any]] = None


class LockIn(BaseModel):
    client_id: str = Field(min_length=1)
    amount: Decimal = Field(gt=0)
    transaction_id: Optional[str] = None


class ReleaseIn(BaseModel):
    client_id: str = Field(min_length=1)
    transaction_id: Optional[str] = None


class PreparedEscrowCallOut(BaseModel):
    gig_ref_id: str
    escrow_contract_id: str
    amount: Optional[str] = None
    transaction: UnsignedOut


# -------------------------- Assignment --------------------------

@router.post("/{gig_ref_id}/prepare-assignment", response_model=PrepareAssignmentOut)
def prepare_assignment(
    gig_ref_id: str,
    body: PrepareAssignmentIn,
    db: Session = Depends(get_db),
    ledger: LedgerGateway = Depends(get_ledger),
):
    return escrow.prepare_assignment(
        db, ledger,
        gig_ref_id=gig_ref_id,
        client_id=body.client_id,
        freelancer_id=body.freelancer_id,
    )


@router.post("/{gig_ref_id}/record-assignment", response_model=GigOut)
def record_assignment(
    gig_ref_id: str,
    body: RecordAssignmentIn,
    db: Session = Depends(get_db),
    ledger: LedgerGateway = Depends(get_ledger),
):
    return escrow.record_assignment(
        db, ledger,
        gig_ref_id=gig_ref_id,
        client_id=body.client_id,
        freelancer_id=body.freelancer_id,
        transaction_id=body.transaction_id,
        escrow_contract_id=body.escrow_contract_id,
        update_payload=body.update_payload,
    )


# -------------------------- Lock --------------------------

@router.post("/{gig_ref_id}/prepare-lock-escrow", response_model=PreparedEscrowCallOut)
def prepare_lock_escrow(
    gig_ref_id: str,
    body: LockIn,
    db: Session = Depends(get_db),
    ledger: LedgerGateway = Depends(get_ledger),
):
    return escrow.prepare_lock(db, ledger, gig_ref_id=gig_ref_id, client_id=body.client_id, amount=body.amount)


@router.post("/{gig_ref_id}/record-lock-escrow", response_model=GigOut)
def record_lock_escrow(
    gig_ref_id: str,
    body: LockIn,
    db: Session = Depends(get_db),
    ledger: LedgerGateway = Depends(get_ledger),
):
    return escrow.record_lock(
        db, ledger,
        gig_ref_id=gig_ref_id,
        client_id=body.client_id,
        amount=body.amount,
        transaction_id=body.transaction_id,
    )


# -------------------------- Release --------------------------

@router.post("/{gig_ref_id}/prepare-release-escrow", response_model=PreparedEscrowCallOut)
def prepare_release_escrow(
    gig_ref_id: str,
    body: ReleaseIn,
    db: Session = Depends(get_db),
    ledger: LedgerGateway = Depends(get_ledger),
):
    return escrow.prepare_release(db, ledger, gig_ref_id=gig_ref_id, client_id=body.client_id)


@router.post("/{gig_ref_id}/record-release-escrow", response_model=GigOut)
def record_release_escrow(
    gig_ref_id: str,
    body: ReleaseIn,
    db: Session = Depends(get_db),
    ledger: LedgerGateway = Depends(get_ledger),
):
    return escrow.record_release(
        db, ledger,
        gig_ref_id=gig_ref_id,
        client_id=body.client_id,
        transaction_id=body.transaction_id,
    )
