# services/lifecycle.py
# Gig lifecycle around an OPEN gig and after it terminates:
#   - applications (PUBLIC gigs) and invitations (PRIVATE gigs), each resolving
#     to at most one ACCEPTED counterpart per gig
#   - reviews once the gig is COMPLETED / COMPLETED_BY_ARBITER
#
# Accepting is a conditional UPDATE (still PENDING, no accepted sibling) plus a
# bulk reject of the PENDING siblings, committed together. Uniqueness per
# (gig, freelancer) and (gig, reviewer) is enforced by table constraints; the
# IntegrityError on flush is what callers see as a conflict.

from __future__ import annotations

import logging
from collections import Counter
from typing import Any, Dict, List, Optional, Tuple, Type

from sqlalchemy import select, update
from sqlalchemy.orm import Session, aliased

from ..Database.store import add_unique
from ..errors import (
    AuthorizationError,
    NotFoundError,
    StateConflictError,
    ValidationError,
    expect_status,
)
from ..models import REVIEWABLE_GIG_STATUSES, Application, Gig, Invitation, Profile, Review
from . import email

log = logging.getLogger("gigchain.lifecycle")

PENDING = "PENDING"
ACCEPTED = "ACCEPTED"
REJECTED = "REJECTED"


# ------------------------------ lookups ------------------------------

def get_gig(session: Session, gig_ref_id: str, *, for_update: bool = False) -> Gig:
    q = session.query(Gig).filter(Gig.gig_ref_id == gig_ref_id)
    if for_update:
        q = q.with_for_update()
    gig = q.first()
    if gig is None:
        raise NotFoundError(f"Gig {gig_ref_id} not found", code="gig_not_found", entity_id=gig_ref_id)
    return gig


def get_profile(session: Session, account_id: Optional[str]) -> Optional[Profile]:
    if not account_id:
        return None
    return session.query(Profile).filter(Profile.user_account_id == account_id).first()


def require_owner(gig: Gig, client_id: Optional[str], action: str) -> None:
    if not client_id or gig.client_id != client_id:
        raise AuthorizationError(
            f"Only the gig owner can {action}",
            code="not_gig_owner",
            entity_id=gig.gig_ref_id,
        )


def require_participant(gig: Gig, account_id: Optional[str]) -> None:
    if not account_id or account_id not in {gig.client_id, gig.assigned_freelancer_id}:
        raise AuthorizationError(
            "Only participants of this gig can do that",
            code="not_gig_participant",
            entity_id=gig.gig_ref_id,
        )


def accepted_freelancer(session: Session, gig: Gig) -> Optional[str]:
    """The freelancer whose application / invitation was accepted, if any."""
    model = Application if gig.visibility == "PUBLIC" else Invitation
    row = (
        session.query(model.freelancer_id)
        .filter(model.gig_ref_id == gig.gig_ref_id, model.status == ACCEPTED)
        .first()
    )
    return row[0] if row else None


def _accept(session: Session, model: Type[Any], row: Any) -> Any:
    """
    PENDING -> ACCEPTED only if no sibling for the same gig is ACCEPTED yet,
    then every other PENDING sibling -> REJECTED. One transaction.
    """
    sibling = aliased(model)
    accepted_sibling = (
        select(sibling.id)
        .where(sibling.gig_ref_id == row.gig_ref_id, sibling.status == ACCEPTED)
        .exists()
    )
    accepted = session.execute(
        update(model)
        .where(model.id == row.id, model.status == PENDING, ~accepted_sibling)
        .values(status=ACCEPTED)
        .execution_options(synchronize_session=False)
    ).rowcount
    if not accepted:
        session.rollback()
        raise StateConflictError(
            "Already responded to, or another offer for this gig was accepted",
            code="accept_conflict",
            entity_id=row.id,
        )

    rejected = session.execute(
        update(model)
        .where(model.gig_ref_id == row.gig_ref_id, model.status == PENDING, model.id != row.id)
        .values(status=REJECTED)
        .execution_options(synchronize_session=False)
    ).rowcount
    session.commit()
    session.refresh(row)
    log.info("%s %s accepted for gig %s (%s siblings rejected)", model.__tablename__, row.id, row.gig_ref_id, rejected)
    return row


# ------------------------------ applications ------------------------------

def apply(
    session: Session,
    *,
    gig_ref_id: str,
    freelancer_id: str,
    cover_letter: str,
    proposed_rate: Optional[str] = None,
) -> Application:
    if not freelancer_id or not (cover_letter or "").strip():
        raise ValidationError("freelancer_id and cover_letter are required")

    gig = get_gig(session, gig_ref_id)
    if gig.visibility != "PUBLIC":
        raise AuthorizationError(
            "This is a private gig. You must be invited to apply.",
            code="gig_private",
            entity_id=gig_ref_id,
        )
    expect_status("Gig", gig_ref_id, gig.status, "OPEN")
    if freelancer_id == gig.client_id:
        raise AuthorizationError("Gig owners cannot apply to their own gig", entity_id=gig_ref_id)

    app = Application(
        gig_ref_id=gig_ref_id,
        freelancer_id=freelancer_id,
        cover_letter=cover_letter,
        proposed_rate=proposed_rate,
        status=PENDING,
    )
    add_unique(session, app, "You have already applied to this gig.", entity_id=gig_ref_id)
    session.commit()
    session.refresh(app)

    client, freelancer = get_profile(session, gig.client_id), get_profile(session, freelancer_id)
    if client and freelancer:
        email.application_received(
            client.email,
            client_name=client.name,
            freelancer_name=freelancer.name,
            gig_title=gig.title,
            gig_ref_id=gig_ref_id,
        )
    return app


def applications_for_gig(session: Session, *, gig_ref_id: str, client_id: str) -> List[Tuple[Application, Optional[Profile]]]:
    gig = get_gig(session, gig_ref_id)
    require_owner(gig, client_id, "view applications")
    apps = (
        session.query(Application)
        .filter(Application.gig_ref_id == gig_ref_id)
        .order_by(Application.applied_at.desc())
        .all()
    )
    return [(a, get_profile(session, a.freelancer_id)) for a in apps]


def applications_for_freelancer(session: Session, *, freelancer_id: str) -> List[Tuple[Application, Optional[Gig]]]:
    apps = (
        session.query(Application)
        .filter(Application.freelancer_id == freelancer_id)
        .order_by(Application.applied_at.desc())
        .all()
    )
    return [(a, session.query(Gig).filter(Gig.gig_ref_id == a.gig_ref_id).first()) for a in apps]


def _load_application(session: Session, application_id: str) -> Application:
    app = session.get(Application, application_id)
    if app is None:
        raise NotFoundError("Application not found", code="application_not_found", entity_id=application_id)
    return app


def accept_application(session: Session, *, application_id: str, client_id: str) -> Application:
    app = _load_application(session, application_id)
    gig = get_gig(session, app.gig_ref_id)
    require_owner(gig, client_id, "accept applications")
    expect_status("Gig", gig.gig_ref_id, gig.status, "OPEN")
    expect_status("Application", app.id, app.status, PENDING)

    app = _accept(session, Application, app)

    freelancer = get_profile(session, app.freelancer_id)
    if freelancer:
        email.application_accepted(
            freelancer.email,
            freelancer_name=freelancer.name,
            gig_title=gig.title,
            gig_ref_id=gig.gig_ref_id,
        )
    return app


def reject_application(session: Session, *, application_id: str, client_id: str) -> Application:
    app = _load_application(session, application_id)
    gig = get_gig(session, app.gig_ref_id)
    require_owner(gig, client_id, "reject applications")
    expect_status("Application", app.id, app.status, PENDING)
    app.status = REJECTED
    session.commit()
    session.refresh(app)
    return app


# ------------------------------ invitations ------------------------------

def send_invitation(
    session: Session,
    *,
    gig_ref_id: str,
    client_id: str,
    freelancer_id: str,
    message: Optional[str] = None,
) -> Invitation:
    if not freelancer_id:
        raise ValidationError("freelancer_id is required")

    gig = get_gig(session, gig_ref_id)
    require_owner(gig, client_id, "send invitations")
    if gig.visibility != "PRIVATE":
        raise AuthorizationError(
            "This is a public gig. Freelancers can apply directly.",
            code="gig_public",
            entity_id=gig_ref_id,
        )
    expect_status("Gig", gig_ref_id, gig.status, "OPEN")

    freelancer = get_profile(session, freelancer_id)
    if freelancer is None:
        raise NotFoundError("Freelancer not found", code="profile_not_found", entity_id=freelancer_id)

    inv = Invitation(gig_ref_id=gig_ref_id, freelancer_id=freelancer_id, message=message, status=PENDING)
    add_unique(session, inv, "Invitation already sent to this freelancer.", entity_id=gig_ref_id)
    session.commit()
    session.refresh(inv)

    client = get_profile(session, client_id)
    email.invitation_received(
        freelancer.email,
        freelancer_name=freelancer.name,
        client_name=client.name if client else client_id,
        gig_title=gig.title,
        gig_ref_id=gig_ref_id,
    )
    return inv


def invitations_for_gig(session: Session, *, gig_ref_id: str, client_id: str) -> List[Tuple[Invitation, Optional[Profile]]]:
    gig = get_gig(session, gig_ref_id)
    require_owner(gig, client_id, "view invitations")
    invs = (
        session.query(Invitation)
        .filter(Invitation.gig_ref_id == gig_ref_id)
        .order_by(Invitation.invited_at.desc())
        .all()
    )
    return [(i, get_profile(session, i.freelancer_id)) for i in invs]


def invitations_for_freelancer(session: Session, *, freelancer_id: str) -> List[Tuple[Invitation, Optional[Gig]]]:
    invs = (
        session.query(Invitation)
        .filter(Invitation.freelancer_id == freelancer_id)
        .order_by(Invitation.invited_at.desc())
        .all()
    )
    return [(i, session.query(Gig).filter(Gig.gig_ref_id == i.gig_ref_id).first()) for i in invs]


def _load_invitation(session: Session, invitation_id: str, freelancer_id: str) -> Invitation:
    inv = session.get(Invitation, invitation_id)
    if inv is None:
        raise NotFoundError("Invitation not found", code="invitation_not_found", entity_id=invitation_id)
    if inv.freelancer_id != freelancer_id:
        raise AuthorizationError("This invitation is not for you.", entity_id=invitation_id)
    return inv


def accept_invitation(session: Session, *, invitation_id: str, freelancer_id: str) -> Invitation:
    inv = _load_invitation(session, invitation_id, freelancer_id)
    expect_status("Invitation", inv.id, inv.status, PENDING)
    gig = get_gig(session, inv.gig_ref_id)
    expect_status("Gig", gig.gig_ref_id, gig.status, "OPEN")

    inv = _accept(session, Invitation, inv)

    client, freelancer = get_profile(session, gig.client_id), get_profile(session, freelancer_id)
    if client and freelancer:
        email.invitation_accepted(
            client.email,
            client_name=client.name,
            freelancer_name=freelancer.name,
            gig_title=gig.title,
            gig_ref_id=gig.gig_ref_id,
        )
    return inv


def reject_invitation(session: Session, *, invitation_id: str, freelancer_id: str) -> Invitation:
    inv = _load_invitation(session, invitation_id, freelancer_id)
    expect_status("Invitation", inv.id, inv.status, PENDING)
    inv.status = REJECTED
    session.commit()
    session.refresh(inv)
    return inv


# ------------------------------ reviews ------------------------------

def submit_review(
    session: Session,
    *,
    gig_ref_id: str,
    reviewer_id: str,
    rating: int,
    comment: Optional[str] = None,
) -> Review:
    if not reviewer_id:
        raise ValidationError("reviewer_id is required")
    if not isinstance(rating, int) or not 1 <= rating <= 5:
        raise ValidationError("Rating must be between 1 and 5.", rating=rating)

    gig = get_gig(session, gig_ref_id)
    expect_status("Gig", gig_ref_id, gig.status, *sorted(REVIEWABLE_GIG_STATUSES))

    if reviewer_id == gig.client_id:
        reviewee_id, review_type = gig.assigned_freelancer_id, "CLIENT_TO_FREELANCER"
    elif reviewer_id == gig.assigned_freelancer_id:
        reviewee_id, review_type = gig.client_id, "FREELANCER_TO_CLIENT"
    else:
        raise AuthorizationError(
            "Only participants of this gig can submit reviews.",
            code="not_gig_participant",
            entity_id=gig_ref_id,
        )
    if not reviewee_id:
        raise StateConflictError("Gig has no assigned freelancer to review", entity_id=gig_ref_id)

    review = Review(
        gig_ref_id=gig_ref_id,
        reviewer_id=reviewer_id,
        reviewee_id=reviewee_id,
        rating=rating,
        comment=comment,
        review_type=review_type,
    )
    add_unique(session, review, "You have already reviewed this gig.", entity_id=gig_ref_id)
    session.commit()
    session.refresh(review)
    return review


def reviews_for_gig(session: Session, gig_ref_id: str) -> List[Review]:
    return (
        session.query(Review)
        .filter(Review.gig_ref_id == gig_ref_id)
        .order_by(Review.created_at.desc())
        .all()
    )


def reviews_for_user(session: Session, account_id: str) -> List[Review]:
    return (
        session.query(Review)
        .filter(Review.reviewee_id == account_id)
        .order_by(Review.created_at.desc())
        .all()
    )


def _average(ratings: List[int]) -> float:
    return round(sum(ratings) / len(ratings), 2) if ratings else 0


def review_stats(session: Session, account_id: str) -> Dict[str, Any]:
    reviews = reviews_for_user(session, account_id)
    counts = Counter(r.rating for r in reviews)
    as_freelancer = [r.rating for r in reviews if r.review_type == "CLIENT_TO_FREELANCER"]
    as_client = [r.rating for r in reviews if r.review_type == "FREELANCER_TO_CLIENT"]
    return {
        "total_reviews": len(reviews),
        "average_rating": _average([r.rating for r in reviews]),
        "rating_distribution": {str(i): counts.get(i, 0) for i in range(1, 6)},
        "as_freelancer": {"count": len(as_freelancer), "average_rating": _average(as_freelancer)},
        "as_client": {"count": len(as_client), "average_rating": _average(as_client)},
    }


def review_for(session: Session, gig_ref_id: str, reviewer_id: str) -> Optional[Review]:
    return (
        session.query(Review)
        .filter(Review.gig_ref_id == gig_ref_id, Review.reviewer_id == reviewer_id)
        .first()
    )
