"""Initial governance schema

Revision ID: 0a1c4e7b9d21
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from collections.abc import Sequence

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "0a1c4e7b9d21"
down_revision: str | Sequence[str] | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def _created_at(name: str = "created_at") -> sa.Column:
    return sa.Column(
        name, sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()
    )


def _professional_fk(name: str = "professional_id", **kw) -> sa.Column:
    return sa.Column(
        name,
        sa.Uuid(),
        sa.ForeignKey("professionals.id", ondelete="CASCADE"),
        nullable=False,
        **kw,
    )


def upgrade() -> None:
    """Create chapters, members, scoring, committee, review and appeal tables."""
    op.create_table(
        "chapters",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("name", sa.String(120), nullable=False),
        _created_at(),
    )

    op.create_table(
        "professionals",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column(
            "chapter_id",
            sa.Uuid(),
            sa.ForeignKey("chapters.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("full_name", sa.String(200), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("moderation_blocked", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("total_points", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("expulsion_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_expulsion_at", sa.DateTime(timezone=True), nullable=True),
        _created_at(),
    )
    op.create_index(
        "ix_professionals_chapter_points", "professionals", ["chapter_id", "total_points"]
    )

    op.create_table(
        "user_roles",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.Uuid(), nullable=False),
        sa.Column("role", sa.String(30), nullable=False),
        sa.UniqueConstraint("user_id", "role", name="uq_user_roles_user_role"),
    )

    # --- Behavior & scoring -------------------------------------------------
    op.create_table(
        "user_behavior_events",
        sa.Column("id", sa.Uuid(), primary_key=True),
        _professional_fk(),
        sa.Column("event_type", sa.String(40), nullable=False),
        sa.Column("context_id", sa.String(100), nullable=True),
        sa.Column("metadata", postgresql.JSONB(), nullable=True),
        sa.Column("risk_score", sa.Integer(), nullable=False, server_default="0"),
        _created_at("occurred_at"),
    )
    op.create_index(
        "ix_behavior_events_prof_time",
        "user_behavior_events",
        ["professional_id", "occurred_at"],
    )

    op.create_table(
        "user_activity_tracking",
        _professional_fk(primary_key=True),
        sa.Column("last_offer_contact", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_comment", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_login", sa.DateTime(timezone=True), nullable=True),
    )

    op.create_table(
        "behavioral_risk_scores",
        _professional_fk(primary_key=True),
        sa.Column("overall_risk_score", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("risk_factors", postgresql.JSONB(), nullable=False, server_default="[]"),
        sa.Column("last_updated", sa.DateTime(timezone=True), nullable=False),
        sa.Column("alert_threshold_reached", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("last_alert_sent", sa.DateTime(timezone=True), nullable=True),
    )

    op.create_table(
        "risk_score_runs",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        _professional_fk(),
        sa.Column("overall_risk_score", sa.Integer(), nullable=False),
        sa.Column("risk_factors", postgresql.JSONB(), nullable=False, server_default="[]"),
        sa.Column("events_analyzed", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("alert_triggered", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("computed_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index(
        "ix_risk_score_runs_prof_time", "risk_score_runs", ["professional_id", "computed_at"]
    )

    op.create_table(
        "moderation_violations",
        sa.Column("id", sa.Uuid(), primary_key=True),
        _professional_fk(),
        sa.Column("violation_type", sa.String(50), nullable=False),
        sa.Column("severity", sa.String(10), nullable=False),
        sa.Column("reason", sa.Text(), nullable=False),
        sa.Column("categories", postgresql.JSONB(), nullable=False, server_default="[]"),
        sa.Column("content_context", sa.Text(), nullable=True),
        sa.Column("auto_detected", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("detection_confidence", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("blocked", sa.Boolean(), nullable=False, server_default=sa.false()),
        _created_at(),
    )
    op.create_index(
        "ix_violations_prof_time", "moderation_violations", ["professional_id", "created_at"]
    )

    # --- Committees & expulsion reviews --------------------------------------
    op.create_table(
        "committee_rotations",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column(
            "chapter_id",
            sa.Uuid(),
            sa.ForeignKey("chapters.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("member_1_id", sa.Uuid(), sa.ForeignKey("professionals.id"), nullable=False),
        sa.Column("member_2_id", sa.Uuid(), sa.ForeignKey("professionals.id"), nullable=False),
        sa.Column("member_3_id", sa.Uuid(), sa.ForeignKey("professionals.id"), nullable=False),
        sa.Column("is_founding", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("next_rotation_at", sa.DateTime(timezone=True), nullable=False),
        _created_at(),
    )
    op.create_index(
        "ix_committee_rotations_chapter_next",
        "committee_rotations",
        ["chapter_id", "next_rotation_at"],
    )

    op.create_table(
        "expulsion_reviews",
        sa.Column("id", sa.Uuid(), primary_key=True),
        _professional_fk(),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("trigger_details", postgresql.JSONB(), nullable=True),
        _created_at(),
        sa.Column("auto_expire_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("decided_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index(
        "ix_expulsion_reviews_status_expire", "expulsion_reviews", ["status", "auto_expire_at"]
    )
    op.create_index(
        "ix_expulsion_reviews_status_created", "expulsion_reviews", ["status", "created_at"]
    )

    op.create_table(
        "expulsion_votes",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column(
            "review_id",
            sa.Uuid(),
            sa.ForeignKey("expulsion_reviews.id", ondelete="CASCADE"),
            nullable=False,
        ),
        _professional_fk("voter_id"),
        sa.Column("vote", sa.String(10), nullable=False),
        sa.Column("reasoning", sa.Text(), nullable=True),
        _created_at(),
    )
    op.create_index("ix_expulsion_votes_review", "expulsion_votes", ["review_id"])

    # --- Penalties & appeals -------------------------------------------------
    op.create_table(
        "user_penalties",
        sa.Column("id", sa.Uuid(), primary_key=True),
        _professional_fk(),
        sa.Column("penalty_type", sa.String(50), nullable=False),
        sa.Column("severity", sa.String(10), nullable=False),
        sa.Column("reason", sa.Text(), nullable=False),
        sa.Column("points_deducted", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("restriction_until", sa.DateTime(timezone=True), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        _created_at(),
    )

    op.create_table(
        "penalty_appeals",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column(
            "penalty_id",
            sa.Uuid(),
            sa.ForeignKey("user_penalties.id", ondelete="CASCADE"),
            nullable=False,
        ),
        _professional_fk(),
        sa.Column("appeal_reason", sa.Text(), nullable=False),
        sa.Column("additional_context", sa.Text(), nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("admin_response", sa.Text(), nullable=True),
        sa.Column("reviewed_by", sa.Uuid(), nullable=True),
        sa.Column("reviewed_at", sa.DateTime(timezone=True), nullable=True),
        _created_at(),
    )
    op.create_index("ix_penalty_appeals_penalty", "penalty_appeals", ["penalty_id"])
    op.create_index("ix_penalty_appeals_status", "penalty_appeals", ["status"])

    # --- Messaging & audit ---------------------------------------------------
    op.create_table(
        "inbox_messages",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        _professional_fk(),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("message_type", sa.String(20), nullable=False),
        sa.Column("tone", sa.String(20), nullable=False),
        sa.Column("trigger_state", sa.String(40), nullable=False),
        _created_at(),
    )
    op.create_index(
        "ix_inbox_messages_prof_time", "inbox_messages", ["professional_id", "created_at"]
    )

    op.create_table(
        "admin_log",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("actor_id", sa.Uuid(), nullable=False),
        sa.Column("action_type", sa.String(30), nullable=False),
        sa.Column("target_table", sa.String(50), nullable=False),
        sa.Column("target_id", sa.String(64), nullable=True),
        sa.Column("before_snapshot", postgresql.JSONB(), nullable=True),
        sa.Column("after_snapshot", postgresql.JSONB(), nullable=True),
        sa.Column("reason", sa.Text(), nullable=True),
        _created_at(),
    )
    op.create_index("ix_admin_log_created", "admin_log", ["created_at"])


def downgrade() -> None:
    """Drop every governance table, children first."""
    for table in (
        "admin_log",
        "inbox_messages",
        "penalty_appeals",
        "user_penalties",
        "expulsion_votes",
        "expulsion_reviews",
        "committee_rotations",
        "moderation_violations",
        "risk_score_runs",
        "behavioral_risk_scores",
        "user_activity_tracking",
        "user_behavior_events",
        "user_roles",
        "professionals",
        "chapters",
    ):
        op.drop_table(table)
