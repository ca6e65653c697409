# gigchain/models.py
# SQLAlchemy ORM models for the materialized marketplace state.
#
# Uniqueness rules (one application / invitation per (gig, freelancer), one
# review per (gig, reviewer), one reward per (account, tier)) are table
# constraints; store.add_unique turns a violation into a 409.

from __future__ import annotations

import uuid
from sqlalchemy import (
    JSON,
    CheckConstraint,
    Column,
    DateTime,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    Enum as SAEnum,
    Index,
)
from sqlalchemy.orm import declarative_base
from sqlalchemy.sql import func


def _uuid_str() -> str:
    return str(uuid.uuid4())


# ------------------------------------------------------------------------------
# Base & ENUM types
# ------------------------------------------------------------------------------

Base = declarative_base()

GIG_STATUSES = (
    "OPEN",
    "IN_PROGRESS",
    "COMPLETED",
    "CANCELLED",
    "COMPLETED_BY_ARBITER",
    "CANCELLED_BY_ARBITER",
)
TERMINAL_GIG_STATUSES = {"COMPLETED", "CANCELLED", "COMPLETED_BY_ARBITER", "CANCELLED_BY_ARBITER"}
REVIEWABLE_GIG_STATUSES = {"COMPLETED", "COMPLETED_BY_ARBITER"}

ESCROW_STATUSES = ("IN_PROGRESS", "LOCKED", "RELEASED", "CANCELLED")
OFFER_STATUSES = ("PENDING", "ACCEPTED", "REJECTED")
REWARD_IDS = ("BRONZE_BADGE", "SILVER_BADGE", "GOLD_BADGE")

profile_type_enum   = SAEnum("freelancer", "hirer", name="profile_type")
visibility_enum     = SAEnum("PUBLIC", "PRIVATE", name="gig_visibility")
gig_status_enum     = SAEnum(*GIG_STATUSES, name="gig_status")
escrow_status_enum  = SAEnum(*ESCROW_STATUSES, name="escrow_status")
offer_status_enum   = SAEnum(*OFFER_STATUSES, name="offer_status")
review_type_enum    = SAEnum("CLIENT_TO_FREELANCER", "FREELANCER_TO_CLIENT", name="review_type")
reward_id_enum      = SAEnum(*REWARD_IDS, name="reward_id")

# ------------------------------------------------------------------------------
# Profiles
# ------------------------------------------------------------------------------

class Profiles(Base):
    __tablename__ = "profiles"

    id              = Column(String(36), primary_key=True, default=_uuid_str)
    user_account_id = Column(String, unique=True, nullable=False, index=True)
    name            = Column(String, nullable=False)
    skills          = Column(JSON, nullable=False, default=list)
    portfolio_url   = Column(Text)
    email           = Column(String)
    profile_type    = Column(profile_type_enum, nullable=False, default="freelancer", index=True)

    created_at      = Column(DateTime(timezone=True), server_default=func.now())
    updated_at      = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    def __repr__(self) -> str:
        return f"<Profile account={self.user_account_id} type={self.profile_type}>"

# ------------------------------------------------------------------------------
# Gigs
# ------------------------------------------------------------------------------

class Gigs(Base):
    __tablename__ = "gigs"
    __table_args__ = (
        Index("ix_gigs_client_status", "client_id", "status"),
        Index("ix_gigs_freelancer_status", "assigned_freelancer_id", "status"),
        Index("ix_gigs_visibility_status", "visibility", "status"),
    )

    id                     = Column(String(36), primary_key=True, default=_uuid_str)
    gig_ref_id             = Column(String, unique=True, nullable=False, index=True)
    client_id              = Column(String, nullable=False, index=True)
    title                  = Column(String, nullable=False)
    description            = Column(Text, nullable=False)
    duration               = Column(String)

    # Structured budget: never a formatted string
    budget_amount          = Column(Numeric(18, 2), nullable=False)
    budget_currency        = Column(String(16), nullable=False)

    visibility             = Column(visibility_enum, nullable=False, default="PUBLIC")
    status                 = Column(gig_status_enum, nullable=False, default="OPEN")

    # Escrow linkage, null while OPEN
    escrow_contract_id     = Column(String, index=True)
    escrow_status          = Column(escrow_status_enum)
    assigned_freelancer_id = Column(String, index=True)
    locked_amount          = Column(Numeric(18, 2))

    hcs_sequence_number    = Column(Integer)

    created_at             = Column(DateTime(timezone=True), server_default=func.now())
    updated_at             = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    def __repr__(self) -> str:
        return (
            f"<Gig ref={self.gig_ref_id} status={self.status} "
            f"escrow={self.escrow_contract_id} escrow_status={self.escrow_status}>"
        )

# ------------------------------------------------------------------------------
# Messages (append-only)
# ------------------------------------------------------------------------------

class Messages(Base):
    __tablename__ = "messages"
    __table_args__ = (
        Index("ix_messages_gig_timestamp", "gig_ref_id", "timestamp"),
    )

    id         = Column(String(36), primary_key=True, default=_uuid_str)
    gig_ref_id = Column(String, nullable=False, index=True)
    sender_id  = Column(String, nullable=False)
    content    = Column(Text, nullable=False)
    timestamp  = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    def __repr__(self) -> str:
        return f"<Message gig={self.gig_ref_id} sender={self.sender_id}>"

# ------------------------------------------------------------------------------
# XP (monotonic)
# ------------------------------------------------------------------------------

class XPs(Base):
    __tablename__ = "xp"
    __table_args__ = (
        CheckConstraint("xp_points >= 0", name="ck_xp_non_negative"),
    )

    id              = Column(String(36), primary_key=True, default=_uuid_str)
    user_account_id = Column(String, unique=True, nullable=False, index=True)
    xp_points       = Column(Integer, nullable=False, default=0)

    updated_at      = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

# ------------------------------------------------------------------------------
# Rewards
# ------------------------------------------------------------------------------

class Rewards(Base):
    __tablename__ = "rewards"
    __table_args__ = (
        UniqueConstraint("user_account_id", "reward_id", name="uq_rewards_account_tier"),
    )

    id              = Column(String(36), primary_key=True, default=_uuid_str)
    user_account_id = Column(String, nullable=False, index=True)
    reward_id       = Column(reward_id_enum, nullable=False)
    token_id        = Column(String)
    serial_number   = Column(Integer)
    awarded_at      = Column(DateTime(timezone=True), server_default=func.now())

# ------------------------------------------------------------------------------
# Applications (public gigs) / Invitations (private gigs)
# ------------------------------------------------------------------------------

class Applications(Base):
    __tablename__ = "applications"
    __table_args__ = (
        UniqueConstraint("gig_ref_id", "freelancer_id", name="uq_applications_gig_freelancer"),
        Index("ix_applications_gig_status", "gig_ref_id", "status"),
    )

    id            = Column(String(36), primary_key=True, default=_uuid_str)
    gig_ref_id    = Column(String, nullable=False, index=True)
    freelancer_id = Column(String, nullable=False, index=True)
    cover_letter  = Column(Text, nullable=False)
    proposed_rate = Column(String)
    status        = Column(offer_status_enum, nullable=False, default="PENDING")
    applied_at    = Column(DateTime(timezone=True), server_default=func.now())
    updated_at    = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    def __repr__(self) -> str:
        return f"<Application id={self.id} gig={self.gig_ref_id} freelancer={self.freelancer_id} status={self.status}>"


class Invitations(Base):
    __tablename__ = "invitations"
    __table_args__ = (
        UniqueConstraint("gig_ref_id", "freelancer_id", name="uq_invitations_gig_freelancer"),
        Index("ix_invitations_gig_status", "gig_ref_id", "status"),
    )

    id            = Column(String(36), primary_key=True, default=_uuid_str)
    gig_ref_id    = Column(String, nullable=False, index=True)
    freelancer_id = Column(String, nullable=False, index=True)
    message       = Column(Text)
    status        = Column(offer_status_enum, nullable=False, default="PENDING")
    invited_at    = Column(DateTime(timezone=True), server_default=func.now())
    updated_at    = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    def __repr__(self) -> str:
        return f"<Invitation id={self.id} gig={self.gig_ref_id} freelancer={self.freelancer_id} status={self.status}>"

# ------------------------------------------------------------------------------
# Reviews
# ------------------------------------------------------------------------------

class Reviews(Base):
    __tablename__ = "reviews"
    __table_args__ = (
        UniqueConstraint("gig_ref_id", "reviewer_id", name="uq_reviews_gig_reviewer"),
        CheckConstraint("rating >= 1 AND rating <= 5", name="ck_reviews_rating_range"),
    )

    id          = Column(String(36), primary_key=True, default=_uuid_str)
    gig_ref_id  = Column(String, nullable=False, index=True)
    reviewer_id = Column(String, nullable=False, index=True)
    reviewee_id = Column(String, nullable=False, index=True)
    rating      = Column(Integer, nullable=False)
    comment     = Column(Text)
    review_type = Column(review_type_enum, nullable=False)
    created_at  = Column(DateTime(timezone=True), server_default=func.now())

    def __repr__(self) -> str:
        return f"<Review gig={self.gig_ref_id} reviewer={self.reviewer_id} rating={self.rating}>"

# ------------------------------------------------------------------------------
# Singular aliases
# ------------------------------------------------------------------------------

Profile = Profiles
Gig = Gigs
Message = Messages
XP = XPs
Reward = Rewards
Application = Applications
Invitation = Invitations
Review = Reviews

__all__ = [
    "Base",
    "Profiles", "Gigs", "Messages", "XPs", "Rewards", "Applications", "Invitations", "Reviews",
    "Profile", "Gig", "Message", "XP", "Reward", "Application", "Invitation", "Review",
    "GIG_STATUSES", "TERMINAL_GIG_STATUSES", "REVIEWABLE_GIG_STATUSES",
    "ESCROW_STATUSES", "OFFER_STATUSES", "REWARD_IDS",
]
