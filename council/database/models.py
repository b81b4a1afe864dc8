"""
council.database.models — SQLAlchemy 2.0 Data Models
=====================================================

Tables:
- chapters               — Local membership groups ("tribes")
- professionals          — Members; status/expulsion fields owned here
- user_roles             — Role grants used for admin cross-checks
- user_behavior_events   — Append-only behavior event log
- user_activity_tracking — Last-seen timestamps per activity kind
- behavioral_risk_scores — Current risk snapshot per professional
- risk_score_runs        — Append-only ledger of every scoring run
- moderation_violations  — Append-only human follow-up flags
- committee_rotations    — Append-only ethics committee staffing
- expulsion_reviews      — Adjudication cases (pending → terminal)
- expulsion_votes        — Committee votes on a review
- user_penalties         — Sanctions; only ``is_active`` is mutated here
- penalty_appeals        — Appeals against a penalty
- inbox_messages         — In-app notification queue
- admin_log              — Append-only audit trail of reviewer decisions
"""

from __future__ import annotations

import enum
import uuid
from datetime import datetime

from sqlalchemy import (
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    Uuid,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


# ---------------------------------------------------------------------------
# Base
# ---------------------------------------------------------------------------
class Base(DeclarativeBase):
    """Shared base for all Council ORM models."""


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class BehaviorEventType(enum.StrEnum):
    """Closed set of behavior events the risk scorer understands."""
    OFFER_VIEW = "offer_view"
    OFFER_CONTACT = "offer_contact"
    MESSAGE_SENT = "message_sent"
    PROFILE_VIEW = "profile_view"
    CONTACT_INFO_SHARED = "contact_info_shared"
    PRICE_DISCUSSED = "price_discussed"
    RAPID_MESSAGING = "rapid_messaging"
    EXTERNAL_LINK_SHARED = "external_link_shared"


class RiskSeverity(enum.StrEnum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class ProfessionalStatus(enum.StrEnum):
    PENDING = "pending"
    APPROVED = "approved"
    INACTIVE = "inactive"
    BANNED = "banned"


class ReviewStatus(enum.StrEnum):
    """Expulsion review lifecycle.  Transitions only leave PENDING."""
    PENDING = "pending"
    AUTO_EXPIRED = "auto_expired"
    RESOLVED = "resolved"


class VoteChoice(enum.StrEnum):
    EXPEL = "expel"
    ABSOLVE = "absolve"
    EXTEND = "extend"


class AppealStatus(enum.StrEnum):
    PENDING = "pending"
    UNDER_REVIEW = "under_review"
    APPROVED = "approved"
    REJECTED = "rejected"


OPEN_APPEAL_STATUSES = (AppealStatus.PENDING.value, AppealStatus.UNDER_REVIEW.value)


# ---------------------------------------------------------------------------
# Chapters — local membership groups
# ---------------------------------------------------------------------------
class Chapter(Base):
    __tablename__ = "chapters"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(120), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    members: Mapped[list[Professional]] = relationship(back_populates="chapter")

    def __repr__(self) -> str:
        return f"<Chapter id={self.id} name={self.name!r}>"


# ---------------------------------------------------------------------------
# Professionals — one row per member
# ---------------------------------------------------------------------------
class Professional(Base):
    __tablename__ = "professionals"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    chapter_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("chapters.id", ondelete="SET NULL"), nullable=True
    )
    full_name: Mapped[str] = mapped_column(String(200), nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=ProfessionalStatus.PENDING.value
    )
    moderation_blocked: Mapped[bool] = mapped_column(Boolean, default=False)
    total_points: Mapped[int] = mapped_column(Integer, default=0)
    expulsion_count: Mapped[int] = mapped_column(Integer, default=0)
    last_expulsion_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), default=None
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    chapter: Mapped[Chapter | None] = relationship(back_populates="members")

    __table_args__ = (
        Index("ix_professionals_chapter_points", "chapter_id", "total_points"),
    )

    def __repr__(self) -> str:
        return f"<Professional id={self.id} name={self.full_name!r} status={self.status}>"


# ---------------------------------------------------------------------------
# UserRole — role grants (admin, moderator, …)
# ---------------------------------------------------------------------------
class UserRole(Base):
    __tablename__ = "user_roles"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    role: Mapped[str] = mapped_column(String(30), nullable=False)

    __table_args__ = (
        UniqueConstraint("user_id", "role", name="uq_user_roles_user_role"),
    )


# ---------------------------------------------------------------------------
# BehaviorEvent — append-only behavior log
# ---------------------------------------------------------------------------
class BehaviorEvent(Base):
    __tablename__ = "user_behavior_events"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    professional_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("professionals.id", ondelete="CASCADE"), nullable=False
    )
    event_type: Mapped[str] = mapped_column(String(40), nullable=False)
    context_id: Mapped[str | None] = mapped_column(String(100), default=None)
    metadata_: Mapped[dict | None] = mapped_column("metadata", JSONB, nullable=True)
    risk_score: Mapped[int] = mapped_column(Integer, default=0)
    occurred_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    __table_args__ = (
        Index("ix_behavior_events_prof_time", "professional_id", "occurred_at"),
    )

    def __repr__(self) -> str:
        return f"<BehaviorEvent prof={self.professional_id} type={self.event_type}>"


# ---------------------------------------------------------------------------
# ActivityTracking — last-seen timestamps, updated on ingestion
# ---------------------------------------------------------------------------
class ActivityTracking(Base):
    __tablename__ = "user_activity_tracking"

    professional_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("professionals.id", ondelete="CASCADE"), primary_key=True
    )
    last_offer_contact: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), default=None
    )
    last_comment: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), default=None
    )
    last_login: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), default=None
    )


# ---------------------------------------------------------------------------
# RiskSnapshot — materialized "current" risk view
# ---------------------------------------------------------------------------
class RiskSnapshot(Base):
    """Latest scoring run per professional.

    Overwritten on every run; the full history lives in ``risk_score_runs``.
    """
    __tablename__ = "behavioral_risk_scores"

    professional_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("professionals.id", ondelete="CASCADE"), primary_key=True
    )
    overall_risk_score: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    risk_factors: Mapped[list] = mapped_column(JSONB, nullable=False, default=list)
    last_updated: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    alert_threshold_reached: Mapped[bool] = mapped_column(Boolean, default=False)
    last_alert_sent: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), default=None
    )

    def __repr__(self) -> str:
        return f"<RiskSnapshot prof={self.professional_id} score={self.overall_risk_score}>"


# ---------------------------------------------------------------------------
# RiskScoreRun — append-only scoring ledger
# ---------------------------------------------------------------------------
class RiskScoreRun(Base):
    __tablename__ = "risk_score_runs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    professional_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("professionals.id", ondelete="CASCADE"), nullable=False
    )
    overall_risk_score: Mapped[int] = mapped_column(Integer, nullable=False)
    risk_factors: Mapped[list] = mapped_column(JSONB, nullable=False, default=list)
    events_analyzed: Mapped[int] = mapped_column(Integer, default=0)
    alert_triggered: Mapped[bool] = mapped_column(Boolean, default=False)
    computed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        Index("ix_risk_score_runs_prof_time", "professional_id", "computed_at"),
    )


# ---------------------------------------------------------------------------
# ModerationViolation — append-only human follow-up flags
# ---------------------------------------------------------------------------
class ModerationViolation(Base):
    __tablename__ = "moderation_violations"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    professional_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("professionals.id", ondelete="CASCADE"), nullable=False
    )
    violation_type: Mapped[str] = mapped_column(String(50), nullable=False)
    severity: Mapped[str] = mapped_column(String(10), nullable=False)
    reason: Mapped[str] = mapped_column(Text, nullable=False)
    categories: Mapped[list] = mapped_column(JSONB, nullable=False, default=list)
    content_context: Mapped[str | None] = mapped_column(Text, default=None)
    auto_detected: Mapped[bool] = mapped_column(Boolean, default=False)
    detection_confidence: Mapped[int] = mapped_column(Integer, default=0)
    blocked: Mapped[bool] = mapped_column(Boolean, default=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    __table_args__ = (
        Index("ix_violations_prof_time", "professional_id", "created_at"),
    )


# ---------------------------------------------------------------------------
# CommitteeRotation — append-only ethics committee staffing
# ---------------------------------------------------------------------------
class CommitteeRotation(Base):
    """One staffing of a chapter's 3-person committee.

    Rows are never updated; the row with the latest ``next_rotation_at``
    is the chapter's current committee.
    """
    __tablename__ = "committee_rotations"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    chapter_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("chapters.id", ondelete="CASCADE"), nullable=False
    )
    member_1_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("professionals.id"), nullable=False
    )
    member_2_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("professionals.id"), nullable=False
    )
    member_3_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("professionals.id"), nullable=False
    )
    is_founding: Mapped[bool] = mapped_column(Boolean, default=False)
    next_rotation_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    __table_args__ = (
        Index("ix_committee_rotations_chapter_next", "chapter_id", "next_rotation_at"),
    )

    @property
    def member_ids(self) -> list[uuid.UUID]:
        return [self.member_1_id, self.member_2_id, self.member_3_id]

    def __repr__(self) -> str:
        return f"<CommitteeRotation chapter={self.chapter_id} next={self.next_rotation_at}>"


# ---------------------------------------------------------------------------
# ExpulsionReview — adjudication cases
# ---------------------------------------------------------------------------
class ExpulsionReview(Base):
    __tablename__ = "expulsion_reviews"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    professional_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("professionals.id", ondelete="CASCADE"), nullable=False
    )
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=ReviewStatus.PENDING.value
    )
    trigger_details: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    auto_expire_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )
    decided_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), default=None
    )

    professional: Mapped[Professional] = relationship()
    votes: Mapped[list[ExpulsionVote]] = relationship(
        back_populates="review", cascade="all, delete-orphan"
    )

    __table_args__ = (
        Index("ix_expulsion_reviews_status_expire", "status", "auto_expire_at"),
        Index("ix_expulsion_reviews_status_created", "status", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<ExpulsionReview id={self.id} status={self.status}>"


class ExpulsionVote(Base):
    """A committee member's vote.  (review_id, voter_id) is not unique."""
    __tablename__ = "expulsion_votes"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    review_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("expulsion_reviews.id", ondelete="CASCADE"), nullable=False
    )
    voter_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("professionals.id", ondelete="CASCADE"), nullable=False
    )
    vote: Mapped[str] = mapped_column(String(10), nullable=False)
    reasoning: Mapped[str | None] = mapped_column(Text, default=None)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    review: Mapped[ExpulsionReview] = relationship(back_populates="votes")

    __table_args__ = (
        Index("ix_expulsion_votes_review", "review_id"),
    )


# ---------------------------------------------------------------------------
# UserPenalty / PenaltyAppeal
# ---------------------------------------------------------------------------
class UserPenalty(Base):
    __tablename__ = "user_penalties"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    professional_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("professionals.id", ondelete="CASCADE"), nullable=False
    )
    penalty_type: Mapped[str] = mapped_column(String(50), nullable=False)
    severity: Mapped[str] = mapped_column(String(10), nullable=False)
    reason: Mapped[str] = mapped_column(Text, nullable=False)
    points_deducted: Mapped[int] = mapped_column(Integer, default=0)
    restriction_until: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), default=None
    )
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    def __repr__(self) -> str:
        return f"<UserPenalty id={self.id} type={self.penalty_type} active={self.is_active}>"


class PenaltyAppeal(Base):
    __tablename__ = "penalty_appeals"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    penalty_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("user_penalties.id", ondelete="CASCADE"), nullable=False
    )
    professional_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("professionals.id", ondelete="CASCADE"), nullable=False
    )
    appeal_reason: Mapped[str] = mapped_column(Text, nullable=False)
    additional_context: Mapped[str | None] = mapped_column(Text, default=None)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=AppealStatus.PENDING.value
    )
    admin_response: Mapped[str | None] = mapped_column(Text, default=None)
    reviewed_by: Mapped[uuid.UUID | None] = mapped_column(Uuid, default=None)
    reviewed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), default=None
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    penalty: Mapped[UserPenalty] = relationship()

    __table_args__ = (
        Index("ix_penalty_appeals_penalty", "penalty_id"),
        Index("ix_penalty_appeals_status", "status"),
    )

    def __repr__(self) -> str:
        return f"<PenaltyAppeal id={self.id} status={self.status}>"


# ---------------------------------------------------------------------------
# InboxMessage — in-app notification queue
# ---------------------------------------------------------------------------
class InboxMessage(Base):
    __tablename__ = "inbox_messages"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    professional_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("professionals.id", ondelete="CASCADE"), nullable=False
    )
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    message_type: Mapped[str] = mapped_column(String(20), nullable=False)
    tone: Mapped[str] = mapped_column(String(20), nullable=False)
    trigger_state: Mapped[str] = mapped_column(String(40), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    __table_args__ = (
        Index("ix_inbox_messages_prof_time", "professional_id", "created_at"),
    )


# ---------------------------------------------------------------------------
# AdminLog — append-only audit trail
# ---------------------------------------------------------------------------
class AdminLog(Base):
    __tablename__ = "admin_log"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    actor_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    action_type: Mapped[str] = mapped_column(String(30), nullable=False)
    target_table: Mapped[str] = mapped_column(String(50), nullable=False)
    target_id: Mapped[str | None] = mapped_column(String(64), default=None)
    before_snapshot: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
    after_snapshot: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
    reason: Mapped[str | None] = mapped_column(Text, default=None)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    __table_args__ = (
        Index("ix_admin_log_created", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<AdminLog id={self.id} action={self.action_type} table={self.target_table}>"
