# routes_invitations.py
# Invitations to PRIVATE gigs: sent by the owner, answered by the invitee.

from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from .Database.db import get_db
from .schemas import GigOut, InvitationOut, ProfileOut
from .services import lifecycle

router = APIRouter(prefix="/invitations", tags=["invitations"])


class SendInvitationIn(BaseModel):
    gig_ref_id: str = Field(min_length=1)
    client_id: str = Field(min_length=1)
    freelancer_id: str = Field(min_length=1)
    message: Optional[str] = None


class InviteeActionIn(BaseModel):
    freelancer_id: str = Field(min_length=1)


class InvitationWithFreelancerOut(BaseModel):
    invitation: InvitationOut
    freelancer: Optional[ProfileOut] = None


class InvitationWithGigOut(BaseModel):
    invitation: InvitationOut
    gig: Optional[GigOut] = None


@router.post("/send", response_model=InvitationOut, status_code=201)
def send(body: SendInvitationIn, db: Session = Depends(get_db)):
    return lifecycle.send_invitation(
        db,
        gig_ref_id=body.gig_ref_id,
        client_id=body.client_id,
        freelancer_id=body.freelancer_id,
        message=body.message,
    )


@router.get("/gig/{gig_ref_id}", response_model=List[InvitationWithFreelancerOut])
def invitations_for_gig(gig_ref_id: str, client_id: str = Query(..., min_length=1), db: Session = Depends(get_db)):
    rows = lifecycle.invitations_for_gig(db, gig_ref_id=gig_ref_id, client_id=client_id)
    return [{"invitation": i, "freelancer": p} for i, p in rows]


@router.get("/freelancer/{freelancer_id}", response_model=List[InvitationWithGigOut])
def invitations_for_freelancer(freelancer_id: str, db: Session = Depends(get_db)):
    rows = lifecycle.invitations_for_freelancer(db, freelancer_id=freelancer_id)
    return [{"invitation": i, "gig": g} for i, g in rows]


@router.post("/{invitation_id}/accept", response_model=InvitationOut)
def accept(invitation_id: str, body: InviteeActionIn, db: Session = Depends(get_db)):
    return lifecycle.accept_invitation(db, invitation_id=invitation_id, freelancer_id=body.freelancer_id)


@router.post("/{invitation_id}/reject", response_model=InvitationOut)
def reject(invitation_id: str, body: InviteeActionIn, db: Session = Depends(get_db)):
    return lifecycle.reject_invitation(db, invitation_id=invitation_id, freelancer_id=body.freelancer_id)
