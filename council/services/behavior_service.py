"""
council.services.behavior_service — Event Ingestion & Risk Scoring
===================================================================

Shared service module callable by the API and the job runner.

Scoring is "compute fully, then write once":

    1. Read the last 7 days of events (the 24h window is a suffix of it).
    2. Run the pure rule pipeline (:func:`council.engine.risk_rules.assess_risk`).
    3. In ONE transaction: append a ``risk_score_runs`` ledger row,
       overwrite the ``behavioral_risk_scores`` snapshot and, when the
       alert threshold is reached, append a ``moderation_violations`` row.

A read failure raises before anything is written.  Re-running over the
same window yields the same snapshot; violations are not de-duplicated
across runs.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import Engine, select
from sqlalchemy.orm import Session

from council.constants import (
    RECENT_WINDOW,
    SEQUENCE_WINDOW,
    VIOLATION_TYPE_PAYMENT_EVASION,
    utcnow,
)
from council.database.engine import get_session
from council.database.models import (
    ActivityTracking,
    BehaviorEvent,
    BehaviorEventType,
    ModerationViolation,
    Professional,
    RiskScoreRun,
    RiskSnapshot,
)
from council.engine.events import BehaviorSignal, parse_event_type
from council.engine.results import BatchReport, ItemResult
from council.engine.risk_rules import RiskAssessment, assess_risk

logger = logging.getLogger(__name__)

# Which last-seen column each event type refreshes
_ACTIVITY_FIELDS: dict[BehaviorEventType, str] = {
    BehaviorEventType.OFFER_VIEW: "last_offer_contact",
    BehaviorEventType.OFFER_CONTACT: "last_offer_contact",
    BehaviorEventType.MESSAGE_SENT: "last_comment",
    BehaviorEventType.PROFILE_VIEW: "last_login",
}


class ProfessionalNotFoundError(LookupError):
    """Raised when an operation targets an unknown professional."""


@dataclass(frozen=True, slots=True)
class AnalysisResult:
    professional_id: uuid.UUID
    risk_score: int
    risk_factors: list[dict]
    alert_triggered: bool
    events_analyzed: int

    def to_dict(self) -> dict:
        return {
            "professionalId": str(self.professional_id),
            "riskScore": self.risk_score,
            "riskFactors": self.risk_factors,
            "alertTriggered": self.alert_triggered,
            "eventsAnalyzed": self.events_analyzed,
        }


# ---------------------------------------------------------------------------
# Ingestion
# ---------------------------------------------------------------------------
def track_event(
    engine: Engine,
    professional_id: uuid.UUID,
    event_type: BehaviorEventType | str,
    *,
    context_id: str | None = None,
    metadata: dict | None = None,
    risk_score: int = 0,
    now: datetime | None = None,
) -> BehaviorEvent:
    """Append a behavior event and refresh the matching last-seen column.

    Raises ``ValueError`` for an unknown event type and
    :class:`ProfessionalNotFoundError` for an unknown professional.
    """
    event_type = parse_event_type(event_type)
    now = now or utcnow()

    with get_session(engine) as session:
        if session.get(Professional, professional_id) is None:
            raise ProfessionalNotFoundError(str(professional_id))

        row = BehaviorEvent(
            professional_id=professional_id,
            event_type=event_type.value,
            context_id=context_id,
            metadata_=metadata or {},
            risk_score=risk_score,
            occurred_at=now,
        )
        session.add(row)

        field_name = _ACTIVITY_FIELDS.get(event_type)
        if field_name:
            tracking = session.get(ActivityTracking, professional_id)
            if tracking is None:
                tracking = ActivityTracking(professional_id=professional_id)
                session.add(tracking)
            setattr(tracking, field_name, now)

        session.flush()

    logger.debug("Tracked %s for %s", event_type.value, professional_id)
    return row


# ---------------------------------------------------------------------------
# Scoring
# ---------------------------------------------------------------------------
def _load_signals(
    session: Session, professional_id: uuid.UUID, since: datetime
) -> list[BehaviorSignal]:
    rows = session.scalars(
        select(BehaviorEvent)
        .where(
            BehaviorEvent.professional_id == professional_id,
            BehaviorEvent.occurred_at >= since,
        )
        .order_by(BehaviorEvent.occurred_at.asc(), BehaviorEvent.id.asc())
    ).all()
    return [BehaviorSignal.from_row(r) for r in rows]


def _persist_assessment(
    engine: Engine,
    professional_id: uuid.UUID,
    assessment: RiskAssessment,
    now: datetime,
) -> None:
    """Write ledger row, snapshot and (maybe) violation in one transaction."""
    factors = assessment.factors_as_dicts()

    with get_session(engine) as session:
        session.add(RiskScoreRun(
            professional_id=professional_id,
            overall_risk_score=assessment.score,
            risk_factors=factors,
            events_analyzed=assessment.events_analyzed,
            alert_triggered=assessment.alert_triggered,
            computed_at=now,
        ))

        snapshot = session.get(RiskSnapshot, professional_id)
        if snapshot is None:
            snapshot = RiskSnapshot(professional_id=professional_id)
            session.add(snapshot)
        snapshot.overall_risk_score = assessment.score
        snapshot.risk_factors = factors
        snapshot.last_updated = now
        snapshot.alert_threshold_reached = assessment.alert_triggered
        snapshot.last_alert_sent = now if assessment.alert_triggered else None

        if assessment.needs_violation:
            # The scorer only flags; blocking is a human decision.
            session.add(ModerationViolation(
                professional_id=professional_id,
                violation_type=VIOLATION_TYPE_PAYMENT_EVASION,
                severity=assessment.violation_severity.value,
                reason="Suspicious behavior detected automatically",
                categories=[f.type for f in assessment.factors],
                content_context=f"Behavior analysis - Score: {assessment.score}/100",
                auto_detected=True,
                detection_confidence=assessment.score,
                blocked=False,
                created_at=now,
            ))


def analyze_behavior(
    engine: Engine,
    professional_id: uuid.UUID,
    *,
    now: datetime | None = None,
) -> AnalysisResult:
    """Score *professional_id* and persist the result.

    Raises :class:`ProfessionalNotFoundError` for an unknown professional;
    any database error propagates to the caller.
    """
    now = now or utcnow()

    with Session(engine) as session:
        if session.get(Professional, professional_id) is None:
            raise ProfessionalNotFoundError(str(professional_id))
        week = _load_signals(session, professional_id, now - SEQUENCE_WINDOW)

    recent_cutoff = now - RECENT_WINDOW
    recent = [s for s in week if s.occurred_at >= recent_cutoff]

    assessment = assess_risk(recent, week)
    _persist_assessment(engine, professional_id, assessment, now)

    logger.info(
        "Analyzed %s: score=%d factors=%s events=%d",
        professional_id,
        assessment.score,
        [f.type for f in assessment.factors],
        assessment.events_analyzed,
    )
    return AnalysisResult(
        professional_id=professional_id,
        risk_score=assessment.score,
        risk_factors=assessment.factors_as_dicts(),
        alert_triggered=assessment.alert_triggered,
        events_analyzed=assessment.events_analyzed,
    )


def analyze_recent_activity(
    engine: Engine,
    *,
    now: datetime | None = None,
) -> BatchReport:
    """Score every professional with at least one event in the last 24h.

    One professional failing does not stop the batch.
    """
    now = now or utcnow()
    report = BatchReport(job="analyze-behavior", started_at=now)

    with Session(engine) as session:
        professional_ids = session.scalars(
            select(BehaviorEvent.professional_id)
            .where(BehaviorEvent.occurred_at >= now - RECENT_WINDOW)
            .distinct()
        ).all()

    for professional_id in professional_ids:
        try:
            result = analyze_behavior(engine, professional_id, now=now)
        except Exception as exc:
            logger.exception("Scoring failed for %s", professional_id)
            report.add(ItemResult.failed(professional_id, str(exc)))
            continue
        report.add(ItemResult.succeeded(
            professional_id,
            "analyzed",
            risk_score=result.risk_score,
            alert_triggered=result.alert_triggered,
        ))

    logger.info("Behavior batch complete: %s", report.summary())
    return report


# ---------------------------------------------------------------------------
# Dashboard reads
# ---------------------------------------------------------------------------
def list_risk_snapshots(engine: Engine, *, min_score: int = 0) -> list[dict]:
    """Current snapshots at or above *min_score*, riskiest first."""
    with Session(engine) as session:
        rows = session.scalars(
            select(RiskSnapshot)
            .where(RiskSnapshot.overall_risk_score >= min_score)
            .order_by(RiskSnapshot.overall_risk_score.desc())
        ).all()
        return [
            {
                "professional_id": str(r.professional_id),
                "overall_risk_score": r.overall_risk_score,
                "risk_factors": r.risk_factors,
                "alert_threshold_reached": r.alert_threshold_reached,
                "last_updated": r.last_updated.isoformat(),
            }
            for r in rows
        ]


def get_risk_history(
    engine: Engine, professional_id: uuid.UUID, *, limit: int = 50
) -> list[dict]:
    """Most recent ledger entries for one professional, newest first."""
    with Session(engine) as session:
        rows = session.scalars(
            select(RiskScoreRun)
            .where(RiskScoreRun.professional_id == professional_id)
            .order_by(RiskScoreRun.computed_at.desc(), RiskScoreRun.id.desc())
            .limit(limit)
        ).all()
        return [
            {
                "overall_risk_score": r.overall_risk_score,
                "risk_factors": r.risk_factors,
                "events_analyzed": r.events_analyzed,
                "alert_triggered": r.alert_triggered,
                "computed_at": r.computed_at.isoformat(),
            }
            for r in rows
        ]


def list_violations(
    engine: Engine,
    *,
    professional_id: uuid.UUID | None = None,
    limit: int = 100,
) -> list[dict]:
    with Session(engine) as session:
        query = (
            select(ModerationViolation)
            .order_by(ModerationViolation.created_at.desc())
            .limit(limit)
        )
        if professional_id:
            query = query.where(ModerationViolation.professional_id == professional_id)
        return [
            {
                "id": str(v.id),
                "professional_id": str(v.professional_id),
                "violation_type": v.violation_type,
                "severity": v.severity,
                "reason": v.reason,
                "categories": v.categories,
                "detection_confidence": v.detection_confidence,
                "auto_detected": v.auto_detected,
                "blocked": v.blocked,
                "created_at": v.created_at.isoformat() if v.created_at else None,
            }
            for v in session.scalars(query)
        ]
