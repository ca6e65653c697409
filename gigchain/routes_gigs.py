# routes_gigs.py
# Gig creation (prepare / record) and marketplace reads.

from __future__ import annotations

from decimal import Decimal
from typing import Any, Dict, List, Literal, Optional, Union

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from .Database.db import get_db
from .schemas import GigOut, ProfileOut, UnsignedOut
from .services import gigs as gig_service
from .services.ledger import LedgerGateway, get_ledger

router = APIRouter(tags=["gigs"])


# ------------------------------ Schemas ------------------------------

class PrepareGigIn(BaseModel):
    client_id: str = Field(min_length=1)
    title: str = Field(min_length=1)
    description: str = Field(min_length=1)
    # A number, or a legacy "100 UNIT" string
    budget: Union[Decimal, str]
    duration: Optional[str] = None
    visibility: Optional[Literal["PUBLIC", "PRIVATE"]] = None


class PrepareGigOut(BaseModel):
    gig_ref_id: str
    transaction: UnsignedOut
    gig_data: Dict[str, Any]


class RecordGigIn(BaseModel):
    gig_data: Dict[str, Any]
    sequence_number: Optional[int] = None


class OpenGigOut(GigOut):
    invitation_status: str = "NOT_INVITED"


class GigDetailOut(BaseModel):
    gig: GigOut
    client: Optional[ProfileOut] = None
    freelancer: Optional[ProfileOut] = None
    invitation_status: str


# ------------------------------ Creation ------------------------------

@router.post("/gigs/prepare-creation", response_model=PrepareGigOut)
def prepare_creation(body: PrepareGigIn, ledger: LedgerGateway = Depends(get_ledger)):
    return gig_service.prepare_creation(
        ledger,
        client_id=body.client_id,
        title=body.title,
        description=body.description,
        budget=body.budget,
        duration=body.duration,
        visibility=body.visibility,
    )


@router.post("/gigs/record-creation", response_model=GigOut, status_code=201)
def record_creation(body: RecordGigIn, db: Session = Depends(get_db)):
    return gig_service.record_creation(db, gig_data=body.gig_data, sequence_number=body.sequence_number)


# ------------------------------ Reads ------------------------------

@router.get("/gigs", response_model=List[OpenGigOut])
def list_open_gigs(account_id: Optional[str] = Query(default=None), db: Session = Depends(get_db)):
    """Open public gigs, each annotated with the caller's invitation status."""
    out = []
    for gig, invitation_status in gig_service.open_public_gigs(db, account_id=account_id):
        item = OpenGigOut.model_validate(gig)
        item.invitation_status = invitation_status
        out.append(item)
    return out


@router.get("/gigs/{gig_ref_id}", response_model=GigDetailOut)
def get_gig(gig_ref_id: str, db: Session = Depends(get_db)):
    return gig_service.gig_detail(db, gig_ref_id)


@router.get("/myGigs", response_model=List[GigOut])
def my_gigs(client_id: str = Query(..., min_length=1), db: Session = Depends(get_db)):
    return gig_service.gigs_for_client(db, client_id)


@router.get("/myGigs/freelancer", response_model=List[GigOut])
def my_gigs_as_freelancer(freelancer_id: str = Query(..., min_length=1), db: Session = Depends(get_db)):
    return gig_service.gigs_for_freelancer(db, freelancer_id)
