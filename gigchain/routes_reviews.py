# routes_reviews.py
# Reviews between the client and the assigned freelancer of a finished gig.

from __future__ import annotations

from typing import Dict, List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from .Database.db import get_db
from .schemas import ReviewOut
from .services import lifecycle

router = APIRouter(prefix="/reviews", tags=["reviews"])


class SubmitReviewIn(BaseModel):
    gig_ref_id: str = Field(min_length=1)
    reviewer_id: str = Field(min_length=1)
    rating: int = Field(ge=1, le=5)
    comment: Optional[str] = None


class RoleStatsOut(BaseModel):
    count: int
    average_rating: float


class ReviewStatsOut(BaseModel):
    total_reviews: int
    average_rating: float
    rating_distribution: Dict[str, int]
    as_freelancer: RoleStatsOut
    as_client: RoleStatsOut


class ReviewCheckOut(BaseModel):
    has_reviewed: bool
    review: Optional[ReviewOut] = None


@router.post("/submit", response_model=ReviewOut, status_code=201)
def submit(body: SubmitReviewIn, db: Session = Depends(get_db)):
    return lifecycle.submit_review(
        db,
        gig_ref_id=body.gig_ref_id,
        reviewer_id=body.reviewer_id,
        rating=body.rating,
        comment=body.comment,
    )


@router.get("/gig/{gig_ref_id}", response_model=List[ReviewOut])
def reviews_for_gig(gig_ref_id: str, db: Session = Depends(get_db)):
    return lifecycle.reviews_for_gig(db, gig_ref_id)


@router.get("/user/{account_id}", response_model=List[ReviewOut])
def reviews_for_user(account_id: str, db: Session = Depends(get_db)):
    return lifecycle.reviews_for_user(db, account_id)


@router.get("/user/{account_id}/stats", response_model=ReviewStatsOut)
def review_stats(account_id: str, db: Session = Depends(get_db)):
    return lifecycle.review_stats(db, account_id)


@router.get("/check/{gig_ref_id}/{account_id}", response_model=ReviewCheckOut)
def check(gig_ref_id: str, account_id: str, db: Session = Depends(get_db)):
    review = lifecycle.review_for(db, gig_ref_id, account_id)
    return {"has_reviewed": review is not None, "review": review}
