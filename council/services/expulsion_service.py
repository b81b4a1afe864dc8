"""
council.services.expulsion_service — Expulsion Review State Machine
====================================================================

Reviews move strictly forward::

    pending ──(auto_expire_at passed)──▶ auto_expired
    pending ──(committee majority)─────▶ resolved      (external, not here)

This module owns the timeout path and the reminder path:

* **Auto-expire** — the committee failed to act in time, so the accused
  is expelled: ``expulsion_count`` += 1, status ``inactive`` (first time)
  or ``banned`` (second time), review ``auto_expired``, urgent inbox
  message.  One transaction per review.
* **Reminders** — reviews pending longer than the reminder delay nag
  every current committee member who has not voted, never the accused
  themself: one inbox message plus a best-effort push, per member.

Both scans cover the whole due set in one invocation and handle every
review/member independently.  Re-running before the next window simply
recomputes the same due set; duplicate reminders are possible.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta

from sqlalchemy import Engine, func, select
from sqlalchemy.orm import Session

from council.constants import (
    BAN_AFTER_EXPULSIONS,
    COMMITTEE_URL,
    DEFAULT_REMINDER_AFTER,
    REENTRY_WAIT_MONTHS,
    utcnow,
)
from council.database.engine import get_session
from council.database.models import (
    ExpulsionReview,
    ExpulsionVote,
    Professional,
    ProfessionalStatus,
    ReviewStatus,
    VoteChoice,
)
from council.engine.results import BatchReport, ItemResult
from council.services.notification_service import PushDispatcher, enqueue_message
from council.services.rotation_service import get_current_rotation

logger = logging.getLogger(__name__)


class ReviewNotFoundError(LookupError):
    """No expulsion review with that id."""


class ReviewClosedError(ValueError):
    """The review already left ``pending``."""


class AlreadyVotedError(ValueError):
    """The committee member already voted on this review."""


class NotCommitteeMemberError(PermissionError):
    """The voter is not on the accused's current chapter committee."""


@dataclass
class ExpulsionRunResult:
    expirations: BatchReport
    reminders: BatchReport

    @property
    def auto_expulsions(self) -> int:
        return len(self.expirations.succeeded)

    @property
    def reminders_sent(self) -> int:
        return len(self.reminders.succeeded)

    def to_dict(self) -> dict:
        return {
            "message": (
                f"Process complete. {self.auto_expulsions} auto-expulsions, "
                f"{self.reminders_sent} reminders sent."
            ),
            "auto_expulsions": self.auto_expulsions,
            "reminders_sent": self.reminders_sent,
            "failures": [
                {"item": r.item_id, "reason": r.reason}
                for r in (*self.expirations.failed, *self.reminders.failed)
            ],
        }


# ---------------------------------------------------------------------------
# Committee lookup
# ---------------------------------------------------------------------------
def get_committee_members(
    session: Session, chapter_id: uuid.UUID | None
) -> list[Professional]:
    """Members of the chapter's current committee, in seat order."""
    if chapter_id is None:
        return []
    rotation = get_current_rotation(session, chapter_id)
    if rotation is None:
        return []
    members = {
        p.id: p
        for p in session.scalars(
            select(Professional).where(Professional.id.in_(rotation.member_ids))
        )
    }
    return [members[m] for m in rotation.member_ids if m in members]


# ---------------------------------------------------------------------------
# Auto-expire transition
# ---------------------------------------------------------------------------
def _expulsion_message(banned: bool) -> tuple[str, str]:
    if banned:
        return (
            "Account permanently suspended",
            "Your account has been permanently suspended after your second "
            "expulsion.",
        )
    return (
        "Account deactivated",
        "Your account has been deactivated. The Council did not reach a "
        f"verdict in time. You can request re-entry in {REENTRY_WAIT_MONTHS} "
        "months.",
    )


def _expire_review(engine: Engine, review_id: uuid.UUID, now: datetime) -> ItemResult:
    with get_session(engine) as session:
        review = session.get(ExpulsionReview, review_id)
        # Re-checked inside the transaction: an overlapping run may have won.
        if review is None or review.status != ReviewStatus.PENDING.value:
            return ItemResult.skipped(review_id, "review no longer pending")

        professional = session.get(Professional, review.professional_id)
        if professional is None:
            return ItemResult.skipped(review_id, "professional not found")

        new_count = (professional.expulsion_count or 0) + 1
        banned = new_count >= BAN_AFTER_EXPULSIONS
        new_status = ProfessionalStatus.BANNED if banned else ProfessionalStatus.INACTIVE

        professional.status = new_status.value
        professional.expulsion_count = new_count
        professional.last_expulsion_at = now

        review.status = ReviewStatus.AUTO_EXPIRED.value
        review.decided_at = now

        title, content = _expulsion_message(banned)
        enqueue_message(
            session,
            professional.id,
            title=title,
            content=content,
            message_type="critical",
            tone="urgent",
            trigger_state="expulsion",
        )

    logger.info(
        "Review %s auto-expired: %s is now %s (expulsions=%d)",
        review_id, professional.id, new_status.value, new_count,
    )
    return ItemResult.succeeded(
        review_id,
        "auto_expired",
        professional_id=str(professional.id),
        new_status=new_status.value,
        expulsion_count=new_count,
    )


def expire_overdue_reviews(
    engine: Engine, *, now: datetime | None = None
) -> BatchReport:
    """Auto-expire every pending review whose ``auto_expire_at`` has passed."""
    now = now or utcnow()
    report = BatchReport(job="auto-expire", started_at=now)

    with Session(engine) as session:
        review_ids = session.scalars(
            select(ExpulsionReview.id)
            .where(
                ExpulsionReview.status == ReviewStatus.PENDING.value,
                ExpulsionReview.auto_expire_at < now,
            )
            .order_by(ExpulsionReview.auto_expire_at.asc())
        ).all()

    for review_id in review_ids:
        try:
            report.add(_expire_review(engine, review_id, now))
        except Exception as exc:
            logger.exception("Auto-expire failed for review %s", review_id)
            report.add(ItemResult.failed(review_id, str(exc)))

    return report


# ---------------------------------------------------------------------------
# Reminder transition (side effects only)
# ---------------------------------------------------------------------------
def _push_quietly(push: PushDispatcher, member_id: uuid.UUID) -> None:
    try:
        push.send(
            member_id,
            title="Pending vote on the Council",
            body="Unresolved case. Your vote is needed.",
            url=COMMITTEE_URL,
        )
    except Exception as exc:
        logger.debug("Push reminder to %s dropped: %s", member_id, exc)


def _silent_members(
    session: Session, review_id: uuid.UUID, accused_id: uuid.UUID
) -> tuple[list[Professional] | None, str]:
    """Committee members who haven't voted, plus the accused's display name.

    The accused never counts as a voter on their own review, even when they
    hold a committee seat.  Returns ``None`` for the member list when the
    chapter has no committee.
    """
    accused = session.get(Professional, accused_id)
    committee = get_committee_members(session, accused.chapter_id if accused else None)
    name = accused.full_name if accused else "User"
    if not committee:
        return None, name

    voted = set(session.scalars(
        select(ExpulsionVote.voter_id).where(ExpulsionVote.review_id == review_id)
    ))
    return [m for m in committee if m.id not in voted and m.id != accused_id], name


def _display_name(trigger_details: object, fallback: str) -> str:
    # trigger_details is written by other systems; anything but a dict is ignored.
    if isinstance(trigger_details, dict):
        return trigger_details.get("full_name") or fallback
    return fallback


def send_vote_reminders(
    engine: Engine,
    push: PushDispatcher,
    *,
    now: datetime | None = None,
    reminder_after: timedelta = DEFAULT_REMINDER_AFTER,
) -> BatchReport:
    """Remind silent committee members on reviews older than *reminder_after*."""
    now = now or utcnow()
    report = BatchReport(job="vote-reminders", started_at=now)

    with Session(engine) as session:
        reviews = session.execute(
            select(
                ExpulsionReview.id,
                ExpulsionReview.professional_id,
                ExpulsionReview.trigger_details,
            )
            .where(
                ExpulsionReview.status == ReviewStatus.PENDING.value,
                ExpulsionReview.created_at < now - reminder_after,
            )
            .order_by(ExpulsionReview.created_at.asc())
        ).all()

    for review in reviews:
        try:
            with Session(engine) as session:
                silent, accused_name = _silent_members(
                    session, review.id, review.professional_id
                )
            display_name = _display_name(review.trigger_details, accused_name)
        except Exception as exc:
            logger.exception("Reminder lookup failed for review %s", review.id)
            report.add(ItemResult.failed(review.id, str(exc)))
            continue

        if silent is None:
            report.add(ItemResult.skipped(review.id, "chapter has no committee"))
            continue

        for member in silent:
            item_id = f"{review.id}:{member.id}"
            try:
                with get_session(engine) as session:
                    enqueue_message(
                        session,
                        member.id,
                        title="Reminder: pending vote on the Council",
                        content=(
                            f"You have an unvoted expulsion case: {display_name}. "
                            "Your vote is needed before it expires automatically."
                        ),
                        message_type="warning",
                        tone="urgent",
                        trigger_state="council_reminder",
                    )
            except Exception as exc:
                logger.exception("Reminder failed for %s", item_id)
                report.add(ItemResult.failed(item_id, str(exc)))
                continue

            _push_quietly(push, member.id)
            report.add(ItemResult.succeeded(
                item_id,
                "reminded",
                review_id=str(review.id),
                member_id=str(member.id),
            ))

    return report


def process_expulsion_votes(
    engine: Engine,
    push: PushDispatcher,
    *,
    now: datetime | None = None,
    reminder_after: timedelta = DEFAULT_REMINDER_AFTER,
) -> ExpulsionRunResult:
    """Run the auto-expire scan, then the reminder scan."""
    now = now or utcnow()
    expirations = expire_overdue_reviews(engine, now=now)
    reminders = send_vote_reminders(
        engine, push, now=now, reminder_after=reminder_after
    )
    result = ExpulsionRunResult(expirations=expirations, reminders=reminders)
    logger.info(
        "Expulsion processing complete: %d auto-expulsions, %d reminders "
        "(%d failures)",
        result.auto_expulsions,
        result.reminders_sent,
        len(expirations.failed) + len(reminders.failed),
    )
    return result


# ---------------------------------------------------------------------------
# Votes & dashboard views
# ---------------------------------------------------------------------------
def cast_vote(
    engine: Engine,
    review_id: uuid.UUID,
    voter_id: uuid.UUID,
    vote: VoteChoice | str,
    reasoning: str | None = None,
    *,
    now: datetime | None = None,
) -> ExpulsionVote:
    """Record a committee member's vote on a pending review.

    Tallying votes into a ``resolved`` decision is not done here.
    """
    vote = VoteChoice(vote)
    now = now or utcnow()

    with get_session(engine) as session:
        review = session.get(ExpulsionReview, review_id)
        if review is None:
            raise ReviewNotFoundError(str(review_id))
        if review.status != ReviewStatus.PENDING.value:
            raise ReviewClosedError(f"Review {review_id} is {review.status}")
        if voter_id == review.professional_id:
            raise NotCommitteeMemberError(f"{voter_id} cannot vote on their own review")

        accused = session.get(Professional, review.professional_id)
        committee = get_committee_members(session, accused.chapter_id if accused else None)
        if voter_id not in {m.id for m in committee}:
            raise NotCommitteeMemberError(str(voter_id))

        already = session.scalar(
            select(func.count())
            .select_from(ExpulsionVote)
            .where(ExpulsionVote.review_id == review_id, ExpulsionVote.voter_id == voter_id)
        )
        if already:
            raise AlreadyVotedError(f"{voter_id} already voted on {review_id}")

        row = ExpulsionVote(
            review_id=review_id,
            voter_id=voter_id,
            vote=vote.value,
            reasoning=reasoning,
            created_at=now,
        )
        session.add(row)
        session.flush()

    logger.info("Vote %s recorded on review %s by %s", vote.value, review_id, voter_id)
    return row


def list_reviews(engine: Engine, status: str | None = None) -> list[dict]:
    """Reviews with vote tallies, newest first."""
    with Session(engine) as session:
        query = select(ExpulsionReview).order_by(ExpulsionReview.created_at.desc())
        if status:
            query = query.where(ExpulsionReview.status == status)
        reviews = session.scalars(query).all()

        tallies: dict[tuple[uuid.UUID, str], int] = {
            (row.review_id, row.vote): row.cnt
            for row in session.execute(
                select(
                    ExpulsionVote.review_id,
                    ExpulsionVote.vote,
                    func.count().label("cnt"),
                ).group_by(ExpulsionVote.review_id, ExpulsionVote.vote)
            )
        }

        return [
            {
                "id": str(r.id),
                "professional_id": str(r.professional_id),
                "status": r.status,
                "trigger_details": r.trigger_details,
                "created_at": r.created_at.isoformat() if r.created_at else None,
                "auto_expire_at": r.auto_expire_at.isoformat(),
                "decided_at": r.decided_at.isoformat() if r.decided_at else None,
                "votes_for_expulsion": tallies.get((r.id, VoteChoice.EXPEL.value), 0),
                "votes_against": tallies.get((r.id, VoteChoice.ABSOLVE.value), 0),
                "votes_extend": tallies.get((r.id, VoteChoice.EXTEND.value), 0),
            }
            for r in reviews
        ]
