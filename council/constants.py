"""
council.constants — Shared Constants & Helpers
================================================

Single source of truth for the governance windows, score thresholds and
the UTC time helpers.  Import from here instead of duplicating in
services, the job runner and the API.
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

# ---------------------------------------------------------------------------
# Risk scoring
# ---------------------------------------------------------------------------
RECENT_WINDOW = timedelta(hours=24)      # Tiered count rules
SEQUENCE_WINDOW = timedelta(days=7)      # price → contact sequence rule
SEQUENCE_MAX_GAP = timedelta(minutes=5)

MAX_RISK_SCORE = 100
ALERT_THRESHOLD = 60       # Snapshot alert + violation record
HIGH_SEVERITY_SCORE = 80   # Violation severity escalates to "high"

VIOLATION_TYPE_PAYMENT_EVASION = "payment_evasion_attempt"

# ---------------------------------------------------------------------------
# Committees & expulsions
# ---------------------------------------------------------------------------
COMMITTEE_SIZE = 3
DEFAULT_ROTATION_PERIOD = timedelta(days=180)
DEFAULT_REMINDER_AFTER = timedelta(hours=48)

BAN_AFTER_EXPULSIONS = 2   # The second expulsion is permanent
REENTRY_WAIT_MONTHS = 6

COMMITTEE_URL = "/ethics-committee"


# ---------------------------------------------------------------------------
# Time helpers
# ---------------------------------------------------------------------------
def utcnow() -> datetime:
    """Timezone-aware current time in UTC."""
    return datetime.now(UTC)


def as_utc(value: datetime) -> datetime:
    """Treat naive datetimes (as returned by SQLite) as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)
