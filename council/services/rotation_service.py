"""
council.services.rotation_service — Ethics Committee Rotation
==============================================================

Staffs each chapter's 3-person ethics committee with its top-ranked
members.  Runs on a schedule; safe to run more often than the rotation
period because chapters with a current, not-yet-due rotation are never
candidates.

Candidates:
    * chapters whose current rotation (latest ``next_rotation_at``) is due;
    * chapters with at least three members that were never staffed.

Ranking: approved, non-blocked members by ``total_points`` desc, then
earliest join date, then id — the tie-break is explicit so re-runs are
deterministic.

Rotations are appended, never updated.  Two *concurrent* runs can still
staff the same chapter twice; see DESIGN.md.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timedelta

from sqlalchemy import Engine, exists, func, select
from sqlalchemy.orm import Session

from council.constants import COMMITTEE_SIZE, DEFAULT_ROTATION_PERIOD, utcnow
from council.database.engine import get_session
from council.database.models import (
    CommitteeRotation,
    Professional,
    ProfessionalStatus,
)
from council.engine.results import BatchReport, ItemResult

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------
def get_current_rotation(
    session: Session, chapter_id: uuid.UUID
) -> CommitteeRotation | None:
    """Return the chapter's current committee (latest ``next_rotation_at``)."""
    return session.scalar(
        select(CommitteeRotation)
        .where(CommitteeRotation.chapter_id == chapter_id)
        .order_by(
            CommitteeRotation.next_rotation_at.desc(),
            CommitteeRotation.created_at.desc(),
        )
        .limit(1)
    )


def find_rotation_candidates(session: Session, now: datetime) -> list[uuid.UUID]:
    """Chapters due for rotation, oldest due first, then never-staffed ones."""
    due = session.scalars(
        select(CommitteeRotation.chapter_id)
        .group_by(CommitteeRotation.chapter_id)
        .having(func.max(CommitteeRotation.next_rotation_at) <= now)
        .order_by(func.max(CommitteeRotation.next_rotation_at).asc())
    ).all()

    has_rotation = exists().where(
        CommitteeRotation.chapter_id == Professional.chapter_id
    )
    never_staffed = session.scalars(
        select(Professional.chapter_id)
        .where(Professional.chapter_id.isnot(None), ~has_rotation)
        .group_by(Professional.chapter_id)
        .having(func.count(Professional.id) >= COMMITTEE_SIZE)
    ).all()

    ordered: list[uuid.UUID] = []
    for chapter_id in [*due, *never_staffed]:
        if chapter_id not in ordered:
            ordered.append(chapter_id)
    return ordered


def rank_eligible_members(
    session: Session, chapter_id: uuid.UUID, limit: int = COMMITTEE_SIZE
) -> list[Professional]:
    """Top *limit* approved, non-blocked members by points."""
    return list(session.scalars(
        select(Professional)
        .where(
            Professional.chapter_id == chapter_id,
            Professional.status == ProfessionalStatus.APPROVED.value,
            Professional.moderation_blocked.is_(False),
        )
        .order_by(
            Professional.total_points.desc(),
            Professional.created_at.asc(),
            Professional.id.asc(),
        )
        .limit(limit)
    ).all())


# ---------------------------------------------------------------------------
# Batch job
# ---------------------------------------------------------------------------
def _rotate_chapter(
    engine: Engine,
    chapter_id: uuid.UUID,
    now: datetime,
    rotation_period: timedelta,
) -> ItemResult:
    with get_session(engine) as session:
        top = rank_eligible_members(session, chapter_id)
        if len(top) < COMMITTEE_SIZE:
            return ItemResult.skipped(
                chapter_id, f"less than {COMMITTEE_SIZE} eligible members"
            )

        rotation = CommitteeRotation(
            chapter_id=chapter_id,
            member_1_id=top[0].id,
            member_2_id=top[1].id,
            member_3_id=top[2].id,
            is_founding=False,
            next_rotation_at=now + rotation_period,
            created_at=now,
        )
        session.add(rotation)
        committee = [
            {"id": str(m.id), "name": m.full_name, "points": m.total_points}
            for m in top
        ]

    return ItemResult.succeeded(chapter_id, "rotated", committee=committee)


def rotate_committees(
    engine: Engine,
    *,
    now: datetime | None = None,
    rotation_period: timedelta = DEFAULT_ROTATION_PERIOD,
) -> BatchReport:
    """Staff every candidate chapter.  Returns one result per chapter."""
    now = now or utcnow()
    report = BatchReport(job="rotate-committee", started_at=now)

    with Session(engine) as session:
        candidates = find_rotation_candidates(session, now)
    logger.info("Committee rotation: %d candidate chapters", len(candidates))

    for chapter_id in candidates:
        try:
            result = _rotate_chapter(engine, chapter_id, now, rotation_period)
        except Exception as exc:
            logger.exception("Rotation failed for chapter %s", chapter_id)
            result = ItemResult.failed(chapter_id, str(exc))
        report.add(result)
        if result.label == "rotated":
            logger.info(
                "Chapter %s committee: %s",
                chapter_id, [m["name"] for m in result.data["committee"]],
            )

    logger.info("Committee rotation complete: %s", report.summary())
    return report
