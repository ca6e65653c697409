# routes_users.py
# Accounts and profiles.
# - /users/create-account: platform-sponsored account (platform key pays)
# - prepare/record profile creation: the PROFILE_CREATE event is signed by the
#   user's wallet and submitted through /ledger/submit in between

from __future__ import annotations

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from .Database.db import get_db
from .schemas import GigOut, ProfileOut, UnsignedOut
from .services import gigs as gig_service
from .services import profiles as profile_service
from .services.ledger import LedgerGateway, get_ledger

router = APIRouter(prefix="/users", tags=["users"])


# ------------------------------ Schemas ------------------------------

class CreateAccountIn(BaseModel):
    initial_balance: Optional[int] = Field(default=None, ge=0)


class CreateAccountOut(BaseModel):
    message: str
    account_id: str
    public_key: str
    mnemonic: str
    funding_operation_id: Optional[str] = None


class PrepareProfileIn(BaseModel):
    account_id: str = Field(min_length=1)
    name: str = Field(min_length=1)
    skills: List[str] = Field(default_factory=list)
    portfolio_url: Optional[str] = None
    email: str = Field(min_length=3)
    profile_type: str = Field(pattern="^(freelancer|hirer)$")


class PrepareProfileOut(BaseModel):
    transaction: UnsignedOut
    profile_data: Dict[str, Any]


class RecordProfileIn(BaseModel):
    profile_data: Dict[str, Any]


# ------------------------------ Routes ------------------------------

@router.post("/create-account", response_model=CreateAccountOut, status_code=201)
def create_account(body: Optional[CreateAccountIn] = None, ledger: LedgerGateway = Depends(get_ledger)):
    account = profile_service.create_account(ledger, initial_balance=body.initial_balance if body else None)
    return {"message": "Account created! Securely store the mnemonic.", **account}


@router.post("/prepare-profile-creation", response_model=PrepareProfileOut)
def prepare_profile_creation(body: PrepareProfileIn, ledger: LedgerGateway = Depends(get_ledger)):
    return profile_service.prepare_profile(
        ledger,
        account_id=body.account_id,
        name=body.name,
        skills=body.skills,
        portfolio_url=body.portfolio_url,
        email=body.email,
        profile_type=body.profile_type,
    )


@router.post("/record-profile-creation", response_model=ProfileOut, status_code=201)
def record_profile_creation(body: RecordProfileIn, db: Session = Depends(get_db)):
    return profile_service.record_profile(db, profile_data=body.profile_data)


@router.get("/profile/{account_id}", response_model=ProfileOut)
def get_profile(account_id: str, db: Session = Depends(get_db)):
    return profile_service.get_profile_or_404(db, account_id)


@router.get("/{account_id}/gigs", response_model=List[GigOut])
def user_gigs(account_id: str, db: Session = Depends(get_db)):
    """Every gig the account owns or is assigned to."""
    return gig_service.gigs_for_user(db, account_id)
