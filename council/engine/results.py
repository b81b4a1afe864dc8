"""
council.engine.results — Per-item outcomes for batch jobs
==========================================================

Batch jobs never abort on a single bad item.  Each item produces an
:class:`ItemResult`; the job returns a :class:`BatchReport` that callers
serialize into API responses, job-runner output and log lines.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import datetime

from council.constants import utcnow


class ItemOutcome(enum.StrEnum):
    SUCCEEDED = "succeeded"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass(slots=True)
class ItemResult:
    """Outcome of one item (chapter, review, committee member, …).

    ``label`` is the job-specific status word (``rotated``, ``expired``,
    ``reminded``); ``data`` carries job-specific payload.
    """

    item_id: str
    outcome: ItemOutcome
    label: str
    reason: str | None = None
    data: dict = field(default_factory=dict)

    @classmethod
    def succeeded(cls, item_id: object, label: str, **data) -> ItemResult:
        return cls(str(item_id), ItemOutcome.SUCCEEDED, label, data=data)

    @classmethod
    def skipped(cls, item_id: object, reason: str, label: str = "skipped") -> ItemResult:
        return cls(str(item_id), ItemOutcome.SKIPPED, label, reason=reason)

    @classmethod
    def failed(cls, item_id: object, reason: str, label: str = "error") -> ItemResult:
        return cls(str(item_id), ItemOutcome.FAILED, label, reason=reason)


@dataclass
class BatchReport:
    job: str
    started_at: datetime = field(default_factory=utcnow)
    results: list[ItemResult] = field(default_factory=list)

    def add(self, result: ItemResult) -> ItemResult:
        self.results.append(result)
        return result

    def _with(self, outcome: ItemOutcome) -> list[ItemResult]:
        return [r for r in self.results if r.outcome == outcome]

    @property
    def succeeded(self) -> list[ItemResult]:
        return self._with(ItemOutcome.SUCCEEDED)

    @property
    def skipped(self) -> list[ItemResult]:
        return self._with(ItemOutcome.SKIPPED)

    @property
    def failed(self) -> list[ItemResult]:
        return self._with(ItemOutcome.FAILED)

    def summary(self) -> dict:
        return {
            "job": self.job,
            "started_at": self.started_at.isoformat(),
            "succeeded": len(self.succeeded),
            "skipped": len(self.skipped),
            "failed": len(self.failed),
        }
