# routes_rewards.py
# XP-gated reward tiers.

from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from .Database.db import get_db
from .schemas import RewardOut
from .services import rewards

router = APIRouter(prefix="/rewards", tags=["rewards"])


class TierOut(BaseModel):
    reward_id: str
    name: str
    xp_required: int
    claimed: bool
    eligible: bool


class RewardOverviewOut(BaseModel):
    account_id: str
    xp_points: int
    tiers: List[TierOut]


class ClaimIn(BaseModel):
    account_id: str = Field(min_length=1)
    reward_id: str = Field(min_length=1)
    serial_number: Optional[int] = None


@router.get("/{account_id}", response_model=RewardOverviewOut)
def overview(account_id: str, db: Session = Depends(get_db)):
    return rewards.reward_overview(db, account_id)


@router.post("/claim", response_model=RewardOut, status_code=201)
def claim(body: ClaimIn, db: Session = Depends(get_db)):
    return rewards.claim_reward(
        db,
        account_id=body.account_id,
        reward_id=body.reward_id,
        serial_number=body.serial_number,
    )
