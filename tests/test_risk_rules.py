"""
tests/test_risk_rules.py — Pure Risk Rule Pipeline
====================================================
No database.  Exercises tier boundaries, the price → contact sequence
rule, clamping and the alert/severity thresholds.
"""

from __future__ import annotations

import uuid
from datetime import timedelta

import pytest

from conftest import NOW
from council.database.models import BehaviorEventType as E
from council.database.models import RiskSeverity
from council.engine.events import BehaviorSignal, parse_event_type
from council.engine.risk_rules import (
    RiskAssessment,
    RiskFactor,
    assess_risk,
)

PID = uuid.uuid4()


def _signals(event_type: E, count: int, *, start=NOW, step=timedelta(minutes=1)):
    return [
        BehaviorSignal(PID, event_type, start - step * i)
        for i in range(count)
    ]


def _types(assessment: RiskAssessment) -> list[str]:
    return [f.type for f in assessment.factors]


# ---------------------------------------------------------------------------
# Tiered rules
# ---------------------------------------------------------------------------
class TestContactTiers:
    def test_sixteen_contacts_is_excessive(self):
        recent = _signals(E.OFFER_CONTACT, 16)
        result = assess_risk(recent, recent)
        assert _types(result) == ["excessive_contacts"]
        assert result.score == 30
        assert result.factors[0].severity == RiskSeverity.HIGH
        assert result.factors[0].description == "16 contacts in 24h (normal: <10)"

    def test_fifteen_contacts_is_only_high(self):
        recent = _signals(E.OFFER_CONTACT, 15)
        assert _types(assess_risk(recent, recent)) == ["high_contacts"]

    def test_eleven_contacts_is_high(self):
        recent = _signals(E.OFFER_CONTACT, 11)
        result = assess_risk(recent, recent)
        assert _types(result) == ["high_contacts"]
        assert result.score == 15

    def test_ten_contacts_is_clean(self):
        recent = _signals(E.OFFER_CONTACT, 10)
        result = assess_risk(recent, recent)
        assert result.factors == []
        assert result.score == 0
        assert result.events_analyzed == 10


class TestContactSharingTiers:
    def test_nine_shares_is_frequent(self):
        recent = _signals(E.CONTACT_INFO_SHARED, 9)
        result = assess_risk(recent, [])
        assert _types(result) == ["frequent_contact_sharing"]
        assert result.score == 35

    def test_six_shares_is_contact_sharing(self):
        recent = _signals(E.CONTACT_INFO_SHARED, 6)
        result = assess_risk(recent, [])
        assert _types(result) == ["contact_sharing"]
        assert result.score == 20

    def test_four_shares_is_clean(self):
        assert assess_risk(_signals(E.CONTACT_INFO_SHARED, 4), []).factors == []


class TestSingleTierRules:
    def test_rapid_messaging_over_five(self):
        assert _types(assess_risk(_signals(E.RAPID_MESSAGING, 6), [])) == ["rapid_messaging"]
        assert assess_risk(_signals(E.RAPID_MESSAGING, 5), []).factors == []

    def test_external_links_over_five(self):
        result = assess_risk(_signals(E.EXTERNAL_LINK_SHARED, 6), [])
        assert _types(result) == ["external_links"]
        assert result.score == 20

    def test_views_never_score(self):
        recent = _signals(E.OFFER_VIEW, 200) + _signals(E.PROFILE_VIEW, 200)
        assert assess_risk(recent, recent).score == 0


# ---------------------------------------------------------------------------
# Sequence rule
# ---------------------------------------------------------------------------
def _pairs(count: int, gap: timedelta) -> list[BehaviorSignal]:
    """*count* price → contact pairs, one per day, *gap* apart."""
    out = []
    for i in range(count):
        base = NOW - timedelta(days=i + 1)
        out.append(BehaviorSignal(PID, E.PRICE_DISCUSSED, base))
        out.append(BehaviorSignal(PID, E.CONTACT_INFO_SHARED, base + gap))
    return out


class TestSequenceRule:
    def test_four_quick_pairs_fire(self):
        week = _pairs(4, timedelta(minutes=2))
        result = assess_risk([], week)
        assert _types(result) == ["suspicious_sequence"]
        assert result.score == 40
        assert result.factors[0].description.startswith("4 suspicious sequences")

    def test_three_pairs_do_not_fire(self):
        assert assess_risk([], _pairs(3, timedelta(minutes=2))).factors == []

    def test_pairs_at_five_minutes_do_not_count(self):
        assert assess_risk([], _pairs(4, timedelta(minutes=5))).factors == []

    def test_input_order_is_irrelevant(self):
        week = list(reversed(_pairs(4, timedelta(minutes=1))))
        assert _types(assess_risk([], week)) == ["suspicious_sequence"]

    def test_interleaved_event_breaks_adjacency(self):
        week = []
        for i in range(4):
            base = NOW - timedelta(days=i + 1)
            week += [
                BehaviorSignal(PID, E.PRICE_DISCUSSED, base),
                BehaviorSignal(PID, E.MESSAGE_SENT, base + timedelta(seconds=30)),
                BehaviorSignal(PID, E.CONTACT_INFO_SHARED, base + timedelta(minutes=1)),
            ]
        assert assess_risk([], week).factors == []


# ---------------------------------------------------------------------------
# Aggregation
# ---------------------------------------------------------------------------
class TestAggregation:
    def test_every_rule_firing_is_clamped_to_100(self):
        recent = (
            _signals(E.OFFER_CONTACT, 16)
            + _signals(E.RAPID_MESSAGING, 6)
            + _signals(E.CONTACT_INFO_SHARED, 9)
            + _signals(E.EXTERNAL_LINK_SHARED, 6)
        )
        week = _pairs(4, timedelta(minutes=1))
        result = assess_risk(recent, week)
        assert result.raw_score == 150
        assert result.score == 100
        assert len(result.factors) == 5

    def test_alert_threshold_is_inclusive_at_60(self):
        assert RiskAssessment(score=60).alert_triggered is True
        assert RiskAssessment(score=59).alert_triggered is False

    def test_violation_severity_escalates_at_80(self):
        assert RiskAssessment(score=80).violation_severity == RiskSeverity.HIGH
        assert RiskAssessment(score=79).violation_severity == RiskSeverity.MEDIUM

    def test_violation_needs_factors(self):
        factor = RiskFactor("x", RiskSeverity.HIGH, "x", 60)
        assert RiskAssessment(score=60, factors=[factor]).needs_violation
        assert not RiskAssessment(score=60).needs_violation

    def test_sixty_point_mix_triggers_alert(self):
        # contact_sharing (20) + rapid_messaging (25) + high_contacts (15)
        recent = (
            _signals(E.CONTACT_INFO_SHARED, 6)
            + _signals(E.RAPID_MESSAGING, 6)
            + _signals(E.OFFER_CONTACT, 11)
        )
        result = assess_risk(recent, [])
        assert result.score == 60
        assert result.alert_triggered
        assert result.violation_severity == RiskSeverity.MEDIUM


class TestParseEventType:
    def test_known_value(self):
        assert parse_event_type("offer_contact") is E.OFFER_CONTACT

    def test_unknown_value_raises(self):
        with pytest.raises(ValueError, match="Unknown behavior event type"):
            parse_event_type("teleported")
