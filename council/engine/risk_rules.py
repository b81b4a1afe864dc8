"""
council.engine.risk_rules — Behavior Risk Rules
================================================

Pure scoring pipeline.  No DB I/O inside the engine.

Each rule is a data record rather than a branch:

* :class:`TieredRule` counts one event type inside the 24h window and
  emits the factor of the first tier whose threshold is exceeded.  Tiers
  are listed highest first and are mutually exclusive.
* :class:`SequenceRule` walks the 7-day window chronologically and counts
  adjacent ``price_discussed`` → ``contact_info_shared`` pairs that happen
  within five minutes of each other.

Pipeline::

    recent signals (24h) ─┬─ TieredRule × 4 ─┐
    week signals (7d) ────┴─ SequenceRule ───┴─ sum → clamp → RiskAssessment
"""

from __future__ import annotations

import logging
from collections import Counter
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import timedelta

from council.constants import (
    ALERT_THRESHOLD,
    HIGH_SEVERITY_SCORE,
    MAX_RISK_SCORE,
    SEQUENCE_MAX_GAP,
)
from council.database.models import BehaviorEventType, RiskSeverity
from council.engine.events import BehaviorSignal

logger = logging.getLogger(__name__)

__all__ = [
    "DEFAULT_RULES",
    "DEFAULT_SEQUENCE_RULE",
    "RiskAssessment",
    "RiskFactor",
    "SequenceRule",
    "Tier",
    "TieredRule",
    "assess_risk",
]


# ---------------------------------------------------------------------------
# RiskFactor — one named, scored signal
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class RiskFactor:
    type: str
    severity: RiskSeverity
    description: str
    score: int

    def to_dict(self) -> dict:
        return {
            "type": self.type,
            "severity": self.severity.value,
            "description": self.description,
            "score": self.score,
        }


# ---------------------------------------------------------------------------
# Rule records
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class Tier:
    """Fires when the observed count is strictly greater than ``threshold``.

    ``description`` may reference ``{count}``.
    """

    threshold: int
    factor_type: str
    severity: RiskSeverity
    score: int
    description: str

    def factor(self, count: int) -> RiskFactor:
        return RiskFactor(
            type=self.factor_type,
            severity=self.severity,
            description=self.description.format(count=count),
            score=self.score,
        )


@dataclass(frozen=True, slots=True)
class TieredRule:
    event_type: BehaviorEventType
    tiers: tuple[Tier, ...]  # Highest threshold first

    def evaluate(self, counts: Counter) -> RiskFactor | None:
        count = counts.get(self.event_type, 0)
        for tier in self.tiers:
            if count > tier.threshold:
                return tier.factor(count)
        return None


@dataclass(frozen=True, slots=True)
class SequenceRule:
    leading: BehaviorEventType
    trailing: BehaviorEventType
    max_gap: timedelta
    tier: Tier

    def count_pairs(self, signals: Sequence[BehaviorSignal]) -> int:
        """Count adjacent (leading, trailing) pairs closer than ``max_gap``.

        *signals* must already be in chronological order.
        """
        pairs = 0
        for current, following in zip(signals, signals[1:]):
            if current.event_type != self.leading or following.event_type != self.trailing:
                continue
            if following.occurred_at - current.occurred_at < self.max_gap:
                pairs += 1
        return pairs

    def evaluate(self, signals: Sequence[BehaviorSignal]) -> RiskFactor | None:
        pairs = self.count_pairs(signals)
        if pairs > self.tier.threshold:
            return self.tier.factor(pairs)
        return None


# ---------------------------------------------------------------------------
# Default rule table
# ---------------------------------------------------------------------------
DEFAULT_RULES: tuple[TieredRule, ...] = (
    TieredRule(
        BehaviorEventType.OFFER_CONTACT,
        (
            Tier(15, "excessive_contacts", RiskSeverity.HIGH, 30,
                 "{count} contacts in 24h (normal: <10)"),
            Tier(10, "high_contacts", RiskSeverity.MEDIUM, 15,
                 "{count} contacts in 24h"),
        ),
    ),
    TieredRule(
        BehaviorEventType.RAPID_MESSAGING,
        (
            Tier(5, "rapid_messaging", RiskSeverity.HIGH, 25,
                 "Very fast messaging pattern detected"),
        ),
    ),
    TieredRule(
        BehaviorEventType.CONTACT_INFO_SHARED,
        (
            Tier(8, "frequent_contact_sharing", RiskSeverity.HIGH, 35,
                 "Contact information shared {count} times"),
            Tier(5, "contact_sharing", RiskSeverity.MEDIUM, 20,
                 "Frequent contact information sharing"),
        ),
    ),
    TieredRule(
        BehaviorEventType.EXTERNAL_LINK_SHARED,
        (
            Tier(5, "external_links", RiskSeverity.MEDIUM, 20,
                 "External links shared repeatedly"),
        ),
    ),
)

DEFAULT_SEQUENCE_RULE = SequenceRule(
    leading=BehaviorEventType.PRICE_DISCUSSED,
    trailing=BehaviorEventType.CONTACT_INFO_SHARED,
    max_gap=SEQUENCE_MAX_GAP,
    tier=Tier(3, "suspicious_sequence", RiskSeverity.HIGH, 40,
              "{count} suspicious sequences: price → immediate contact"),
)


# ---------------------------------------------------------------------------
# RiskAssessment — output of the pipeline
# ---------------------------------------------------------------------------
@dataclass
class RiskAssessment:
    score: int = 0
    factors: list[RiskFactor] = field(default_factory=list)
    events_analyzed: int = 0
    raw_score: int = 0

    @property
    def alert_triggered(self) -> bool:
        return self.score >= ALERT_THRESHOLD

    @property
    def needs_violation(self) -> bool:
        return self.alert_triggered and bool(self.factors)

    @property
    def violation_severity(self) -> RiskSeverity:
        return RiskSeverity.HIGH if self.score >= HIGH_SEVERITY_SCORE else RiskSeverity.MEDIUM

    def factors_as_dicts(self) -> list[dict]:
        return [f.to_dict() for f in self.factors]


# ---------------------------------------------------------------------------
# Full calculation
# ---------------------------------------------------------------------------
def assess_risk(
    recent: Sequence[BehaviorSignal],
    week: Sequence[BehaviorSignal],
    *,
    rules: Sequence[TieredRule] = DEFAULT_RULES,
    sequence_rule: SequenceRule | None = DEFAULT_SEQUENCE_RULE,
) -> RiskAssessment:
    """Score one professional.

    This is a PURE function.  *recent* holds the last 24h of signals and
    drives the tiered rules; *week* holds the last 7 days and drives the
    sequence rule.  Order of *recent* is irrelevant; *week* is sorted here.
    """
    counts = Counter(s.event_type for s in recent)

    factors: list[RiskFactor] = []
    for rule in rules:
        factor = rule.evaluate(counts)
        if factor is not None:
            factors.append(factor)

    if sequence_rule is not None:
        ordered = sorted(week, key=lambda s: s.occurred_at)
        factor = sequence_rule.evaluate(ordered)
        if factor is not None:
            factors.append(factor)

    raw = sum(f.score for f in factors)
    score = max(0, min(raw, MAX_RISK_SCORE))
    if raw != score:
        logger.debug("Risk score clamped from %d to %d", raw, score)

    return RiskAssessment(
        score=score,
        factors=factors,
        events_analyzed=len(recent),
        raw_score=raw,
    )
