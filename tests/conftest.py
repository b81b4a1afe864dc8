"""
tests/conftest.py — Shared Test Fixtures
=========================================
"""

from __future__ import annotations

import os

# ---------------------------------------------------------------------------
# JWT_SECRET must be set before council.api.deps is imported; the module
# validates it at load time.
# ---------------------------------------------------------------------------
_TEST_JWT_SECRET = "test-secret-for-pytest-only-" + "x" * 40  # > 32 chars
os.environ.setdefault("JWT_SECRET", _TEST_JWT_SECRET)

import uuid  # noqa: E402
from datetime import UTC, datetime, timedelta  # noqa: E402

import pytest  # noqa: E402
from sqlalchemy import Engine, create_engine  # noqa: E402
from sqlalchemy.dialects.postgresql import JSONB as PG_JSONB  # noqa: E402
from sqlalchemy.ext.compiler import compiles  # noqa: E402
from sqlalchemy.orm import Session  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from council.database.models import (  # noqa: E402
    Base,
    Chapter,
    CommitteeRotation,
    ExpulsionReview,
    Professional,
    ProfessionalStatus,
    UserPenalty,
    UserRole,
)

# Fixed clock for every time-dependent test.
NOW = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)


# ---------------------------------------------------------------------------
# SQLite has no JSONB; render it as TEXT (the JSON bind/result processors
# still serialize dicts and lists).
# ---------------------------------------------------------------------------
@compiles(PG_JSONB, "sqlite")
def _compile_jsonb_as_text(type_, compiler, **kw):
    return "TEXT"


@pytest.fixture
def db_engine() -> Engine:
    """In-memory SQLite engine with every Council table.

    StaticPool shares the one in-memory database across threads, which
    ``run_db`` (asyncio.to_thread) and the TestClient both need.
    """
    engine = create_engine(
        "sqlite://",
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    return engine


# ---------------------------------------------------------------------------
# Seed helpers (plain functions so tests can call them with arguments)
# ---------------------------------------------------------------------------
def add_chapter(engine: Engine, name: str = "Lisbon") -> uuid.UUID:
    with Session(engine) as session:
        chapter = Chapter(name=name)
        session.add(chapter)
        session.commit()
        return chapter.id


def add_professional(
    engine: Engine,
    chapter_id: uuid.UUID | None = None,
    *,
    name: str = "Member",
    points: int = 0,
    status: ProfessionalStatus = ProfessionalStatus.APPROVED,
    blocked: bool = False,
    expulsion_count: int = 0,
    joined_at: datetime | None = None,
) -> uuid.UUID:
    with Session(engine) as session:
        prof = Professional(
            chapter_id=chapter_id,
            full_name=name,
            total_points=points,
            status=status.value,
            moderation_blocked=blocked,
            expulsion_count=expulsion_count,
        )
        if joined_at is not None:
            prof.created_at = joined_at
        session.add(prof)
        session.commit()
        return prof.id


def add_rotation(
    engine: Engine,
    chapter_id: uuid.UUID,
    member_ids: list[uuid.UUID],
    *,
    next_rotation_at: datetime,
    created_at: datetime | None = None,
) -> uuid.UUID:
    with Session(engine) as session:
        rotation = CommitteeRotation(
            chapter_id=chapter_id,
            member_1_id=member_ids[0],
            member_2_id=member_ids[1],
            member_3_id=member_ids[2],
            is_founding=False,
            next_rotation_at=next_rotation_at,
            created_at=created_at or next_rotation_at - timedelta(days=180),
        )
        session.add(rotation)
        session.commit()
        return rotation.id


def add_review(
    engine: Engine,
    professional_id: uuid.UUID,
    *,
    created_at: datetime,
    auto_expire_at: datetime,
    trigger_details: dict | list | None = None,
) -> uuid.UUID:
    with Session(engine) as session:
        review = ExpulsionReview(
            professional_id=professional_id,
            created_at=created_at,
            auto_expire_at=auto_expire_at,
            trigger_details=trigger_details,
        )
        session.add(review)
        session.commit()
        return review.id


def add_penalty(
    engine: Engine,
    professional_id: uuid.UUID,
    *,
    points: int = 50,
    created_at: datetime | None = None,
) -> uuid.UUID:
    with Session(engine) as session:
        penalty = UserPenalty(
            professional_id=professional_id,
            penalty_type="late_cancellation",
            severity="medium",
            reason="Cancelled three jobs without notice",
            points_deducted=points,
            created_at=created_at or NOW,
        )
        session.add(penalty)
        session.commit()
        return penalty.id


def grant_role(engine: Engine, user_id: uuid.UUID, role: str = "admin") -> None:
    with Session(engine) as session:
        session.add(UserRole(user_id=user_id, role=role))
        session.commit()


def make_token(sub: uuid.UUID | str) -> str:
    """Sign a bearer token for *sub* with the test secret."""
    import jwt

    from council.api.deps import JWT_ALGORITHM, JWT_SECRET

    return jwt.encode({"sub": str(sub)}, JWT_SECRET, algorithm=JWT_ALGORITHM)


class RecordingPush:
    """Stand-in for PushDispatcher that records every send."""

    def __init__(self, fail: bool = False) -> None:
        self.sent: list[dict] = []
        self.fail = fail

    def send(self, professional_id, *, title, body, url=None) -> bool:
        if self.fail:
            raise ConnectionError("push service unreachable")
        self.sent.append({
            "professional_id": professional_id,
            "title": title,
            "body": body,
            "url": url,
        })
        return True


@pytest.fixture
def push() -> RecordingPush:
    return RecordingPush()
