"""
council.engine.events — BehaviorSignal envelope
================================================

Every behavior event read from the store is normalized into a
:class:`BehaviorSignal` before the risk rules see it, so the rules stay
pure and never touch the ORM.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime

from council.constants import as_utc
from council.database.models import BehaviorEvent, BehaviorEventType

__all__ = ["BehaviorSignal", "parse_event_type"]


def parse_event_type(value: str) -> BehaviorEventType:
    """Return the enum member for *value*.

    Raises ``ValueError`` for anything outside the closed set.
    """
    try:
        return BehaviorEventType(value)
    except ValueError:
        raise ValueError(f"Unknown behavior event type: {value!r}") from None


@dataclass(frozen=True, slots=True)
class BehaviorSignal:
    """Immutable view of one behavior event."""

    professional_id: uuid.UUID
    event_type: BehaviorEventType
    occurred_at: datetime
    metadata: dict = field(default_factory=dict)

    @classmethod
    def from_row(cls, row: BehaviorEvent) -> BehaviorSignal:
        return cls(
            professional_id=row.professional_id,
            event_type=parse_event_type(row.event_type),
            occurred_at=as_utc(row.occurred_at),
            metadata=row.metadata_ or {},
        )
