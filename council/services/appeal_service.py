"""
council.services.appeal_service — Penalty Appeals
==================================================

Penalized professionals contest a penalty; an admin reviewer moves the
appeal to ``under_review`` and finally ``approved`` or ``rejected``.
Approval deactivates the linked penalty.  Deducted points are NOT
restored.

Persistence failures are reported as ``False`` (and logged) so the
caller can show a friendly error.  Domain problems (unknown appeal,
appeal already decided) raise.  Every reviewer decision is written to
``admin_log`` with before/after snapshots in the same transaction.

Nothing in the store prevents two open appeals against one penalty;
:func:`has_open_appeal` is the advisory check clients run first.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime
from typing import Any

from sqlalchemy import Engine, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from council.constants import utcnow
from council.database.engine import get_session
from council.database.models import (
    OPEN_APPEAL_STATUSES,
    AdminLog,
    AppealStatus,
    PenaltyAppeal,
    UserPenalty,
)

logger = logging.getLogger(__name__)


class AppealNotFoundError(LookupError):
    """No appeal with that id."""


class AppealClosedError(ValueError):
    """The appeal was already approved or rejected."""


# ---------------------------------------------------------------------------
# Audit helpers
# ---------------------------------------------------------------------------
def _row_to_dict(obj: Any) -> dict | None:
    """Convert a model instance to a JSON-serializable dict."""
    if obj is None:
        return None
    result = {}
    for col in obj.__table__.columns:
        val = getattr(obj, col.key if col.key != "metadata" else "metadata_", None)
        if isinstance(val, datetime):
            val = val.isoformat()
        elif isinstance(val, uuid.UUID):
            val = str(val)
        result[col.name] = val
    return result


def _log_admin_action(
    session: Session,
    *,
    actor_id: uuid.UUID,
    action_type: str,
    target_table: str,
    target_id: str | None,
    before: dict | None,
    after: dict | None,
    reason: str | None = None,
) -> None:
    """Insert a row into admin_log within the current transaction."""
    session.add(AdminLog(
        actor_id=actor_id,
        action_type=action_type,
        target_table=target_table,
        target_id=target_id,
        before_snapshot=before,
        after_snapshot=after,
        reason=reason,
    ))


# ---------------------------------------------------------------------------
# User side
# ---------------------------------------------------------------------------
def get_penalty_owner(engine: Engine, penalty_id: uuid.UUID) -> uuid.UUID | None:
    """Professional a penalty belongs to, or None if the penalty is unknown."""
    with Session(engine) as session:
        return session.scalar(
            select(UserPenalty.professional_id).where(UserPenalty.id == penalty_id)
        )


def has_open_appeal(engine: Engine, penalty_id: uuid.UUID) -> bool:
    """True if the penalty already has a pending or under-review appeal."""
    with Session(engine) as session:
        count = session.scalar(
            select(func.count())
            .select_from(PenaltyAppeal)
            .where(
                PenaltyAppeal.penalty_id == penalty_id,
                PenaltyAppeal.status.in_(OPEN_APPEAL_STATUSES),
            )
        )
    return bool(count)


def create_appeal(
    engine: Engine,
    penalty_id: uuid.UUID,
    professional_id: uuid.UUID,
    reason: str,
    context: str | None = None,
) -> bool:
    """File a pending appeal.  Returns False if it could not be stored."""
    try:
        with get_session(engine) as session:
            session.add(PenaltyAppeal(
                penalty_id=penalty_id,
                professional_id=professional_id,
                appeal_reason=reason,
                additional_context=context,
                status=AppealStatus.PENDING.value,
            ))
    except SQLAlchemyError:
        logger.exception("Error creating appeal for penalty %s", penalty_id)
        return False

    logger.info("Appeal filed by %s against penalty %s", professional_id, penalty_id)
    return True


# ---------------------------------------------------------------------------
# Reviewer side
# ---------------------------------------------------------------------------
def update_appeal(
    engine: Engine,
    appeal_id: uuid.UUID,
    status: AppealStatus | str,
    admin_response: str,
    reviewed_by: uuid.UUID,
    *,
    now: datetime | None = None,
) -> bool:
    """Record a reviewer decision.

    ``approved`` also sets the linked penalty's ``is_active`` to False.
    Returns False if the change could not be stored.

    Raises
    ------
    ValueError
        If *status* is ``pending`` or not an appeal status.
    AppealNotFoundError
        If the appeal doesn't exist.
    AppealClosedError
        If the appeal was already approved or rejected.
    """
    status = AppealStatus(status)
    if status == AppealStatus.PENDING:
        raise ValueError("Reviewers cannot move an appeal back to pending")
    now = now or utcnow()

    try:
        with get_session(engine) as session:
            appeal = session.get(PenaltyAppeal, appeal_id)
            if appeal is None:
                raise AppealNotFoundError(str(appeal_id))
            if appeal.status not in OPEN_APPEAL_STATUSES:
                raise AppealClosedError(f"Appeal {appeal_id} is already {appeal.status}")

            before = _row_to_dict(appeal)
            appeal.status = status.value
            appeal.admin_response = admin_response
            appeal.reviewed_by = reviewed_by
            appeal.reviewed_at = now

            if status == AppealStatus.APPROVED:
                penalty = session.get(UserPenalty, appeal.penalty_id)
                if penalty is not None:
                    penalty.is_active = False
                else:
                    logger.warning(
                        "Approved appeal %s points at missing penalty %s",
                        appeal_id, appeal.penalty_id,
                    )

            session.flush()
            _log_admin_action(
                session,
                actor_id=reviewed_by,
                action_type=f"APPEAL_{status.value.upper()}",
                target_table="penalty_appeals",
                target_id=str(appeal.id),
                before=before,
                after=_row_to_dict(appeal),
                reason=admin_response,
            )
    except SQLAlchemyError:
        logger.exception("Error updating appeal %s", appeal_id)
        return False

    logger.info("Appeal %s → %s by %s", appeal_id, status.value, reviewed_by)
    return True


def list_appeals(
    engine: Engine,
    *,
    status: str | None = None,
    professional_id: uuid.UUID | None = None,
) -> list[dict]:
    """Appeals with their penalty details, newest first."""
    with Session(engine) as session:
        query = (
            select(PenaltyAppeal, UserPenalty)
            .join(UserPenalty, UserPenalty.id == PenaltyAppeal.penalty_id, isouter=True)
            .order_by(PenaltyAppeal.created_at.desc())
        )
        if status:
            query = query.where(PenaltyAppeal.status == status)
        if professional_id:
            query = query.where(PenaltyAppeal.professional_id == professional_id)

        rows = session.execute(query).all()

        return [
            {
                "id": str(appeal.id),
                "penalty_id": str(appeal.penalty_id),
                "professional_id": str(appeal.professional_id),
                "appeal_reason": appeal.appeal_reason,
                "additional_context": appeal.additional_context,
                "status": appeal.status,
                "admin_response": appeal.admin_response,
                "reviewed_by": str(appeal.reviewed_by) if appeal.reviewed_by else None,
                "reviewed_at": appeal.reviewed_at.isoformat() if appeal.reviewed_at else None,
                "created_at": appeal.created_at.isoformat() if appeal.created_at else None,
                "penalty": {
                    "penalty_type": penalty.penalty_type,
                    "severity": penalty.severity,
                    "reason": penalty.reason,
                    "points_deducted": penalty.points_deducted,
                    "is_active": penalty.is_active,
                } if penalty else None,
            }
            for appeal, penalty in rows
        ]
