# routes_applications.py
# Applications to PUBLIC gigs. At most one per (gig, freelancer); accepting
# one rejects every other pending application for the gig.

from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from .Database.db import get_db
from .schemas import ApplicationOut, GigOut, ProfileOut
from .services import lifecycle

router = APIRouter(prefix="/applications", tags=["applications"])


class ApplyIn(BaseModel):
    gig_ref_id: str = Field(min_length=1)
    freelancer_id: str = Field(min_length=1)
    cover_letter: str = Field(min_length=1)
    proposed_rate: Optional[str] = None


class OwnerActionIn(BaseModel):
    client_id: str = Field(min_length=1)


class ApplicationWithFreelancerOut(BaseModel):
    application: ApplicationOut
    freelancer: Optional[ProfileOut] = None


class ApplicationWithGigOut(BaseModel):
    application: ApplicationOut
    gig: Optional[GigOut] = None


@router.post("/apply", response_model=ApplicationOut, status_code=201)
def apply(body: ApplyIn, db: Session = Depends(get_db)):
    return lifecycle.apply(
        db,
        gig_ref_id=body.gig_ref_id,
        freelancer_id=body.freelancer_id,
        cover_letter=body.cover_letter,
        proposed_rate=body.proposed_rate,
    )


@router.get("/gig/{gig_ref_id}", response_model=List[ApplicationWithFreelancerOut])
def applications_for_gig(gig_ref_id: str, client_id: str = Query(..., min_length=1), db: Session = Depends(get_db)):
    """Owner-only view of every application for a gig."""
    rows = lifecycle.applications_for_gig(db, gig_ref_id=gig_ref_id, client_id=client_id)
    return [{"application": a, "freelancer": p} for a, p in rows]


@router.get("/freelancer/{freelancer_id}", response_model=List[ApplicationWithGigOut])
def applications_for_freelancer(freelancer_id: str, db: Session = Depends(get_db)):
    rows = lifecycle.applications_for_freelancer(db, freelancer_id=freelancer_id)
    return [{"application": a, "gig": g} for a, g in rows]


@router.post("/{application_id}/accept", response_model=ApplicationOut)
def accept(application_id: str, body: OwnerActionIn, db: Session = Depends(get_db)):
    return lifecycle.accept_application(db, application_id=application_id, client_id=body.client_id)


@router.post("/{application_id}/reject", response_model=ApplicationOut)
def reject(application_id: str, body: OwnerActionIn, db: Session = Depends(get_db)):
    return lifecycle.reject_application(db, application_id=application_id, client_id=body.client_id)
