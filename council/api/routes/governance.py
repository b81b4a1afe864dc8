"""
council.api.routes.governance — Scheduler endpoints, ingestion & voting
=========================================================================

``/analyze-behavior``, ``/rotate-committee`` and ``/process-expulsion-votes``
are invoked by the platform scheduler and carry no caller identity.
``/events`` and the vote endpoint act as the bearer user.
"""

from __future__ import annotations

import logging
import uuid
from datetime import timedelta

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy import Engine

from council.api.deps import (
    get_config,
    get_current_user,
    get_engine,
    get_push_dispatcher,
)
from council.config import CouncilConfig
from council.database.engine import run_db
from council.database.models import BehaviorEventType, VoteChoice
from council.engine.results import ItemOutcome, ItemResult
from council.services import behavior_service, expulsion_service, rotation_service
from council.services.notification_service import PushDispatcher

logger = logging.getLogger(__name__)

router = APIRouter(tags=["governance"])


# ---------------------------------------------------------------------------
# Pydantic schemas
# ---------------------------------------------------------------------------
class AnalyzeRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    professional_id: uuid.UUID = Field(alias="professionalId")


class EventCreate(BaseModel):
    event_type: BehaviorEventType
    context_id: str | None = None
    metadata: dict = Field(default_factory=dict)


class VoteCreate(BaseModel):
    vote: VoteChoice
    reasoning: str | None = None


def _rotation_entry(result: ItemResult) -> dict:
    entry = {"chapterId": result.item_id, "status": result.label}
    if result.outcome == ItemOutcome.SUCCEEDED:
        entry["committee"] = result.data.get("committee", [])
    elif result.outcome == ItemOutcome.SKIPPED:
        entry["reason"] = result.reason
    else:
        entry["error"] = result.reason
    return entry


# ---------------------------------------------------------------------------
# Scheduler endpoints
# ---------------------------------------------------------------------------
@router.post("/analyze-behavior")
async def analyze_behavior(
    body: AnalyzeRequest,
    engine: Engine = Depends(get_engine),
):
    try:
        result = await run_db(
            behavior_service.analyze_behavior, engine, body.professional_id
        )
    except behavior_service.ProfessionalNotFoundError:
        raise HTTPException(404, "Professional not found")
    return result.to_dict()


@router.post("/rotate-committee")
async def rotate_committee(
    engine: Engine = Depends(get_engine),
    cfg: CouncilConfig = Depends(get_config),
):
    report = await run_db(
        rotation_service.rotate_committees,
        engine,
        rotation_period=timedelta(days=cfg.rotation_period_days),
    )
    return {
        "success": True,
        "rotations": [_rotation_entry(r) for r in report.results],
    }


@router.post("/process-expulsion-votes")
async def process_expulsion_votes(
    engine: Engine = Depends(get_engine),
    cfg: CouncilConfig = Depends(get_config),
    push: PushDispatcher = Depends(get_push_dispatcher),
):
    result = await run_db(
        expulsion_service.process_expulsion_votes,
        engine,
        push,
        reminder_after=timedelta(hours=cfg.reminder_after_hours),
    )
    return result.to_dict()


# ---------------------------------------------------------------------------
# Bearer-user endpoints
# ---------------------------------------------------------------------------
@router.post("/events", status_code=201)
async def track_event(
    body: EventCreate,
    user_id: uuid.UUID = Depends(get_current_user),
    engine: Engine = Depends(get_engine),
):
    try:
        row = await run_db(
            behavior_service.track_event,
            engine,
            user_id,
            body.event_type,
            context_id=body.context_id,
            metadata=body.metadata,
        )
    except behavior_service.ProfessionalNotFoundError:
        raise HTTPException(404, "Professional not found")
    except ValueError as exc:
        raise HTTPException(400, str(exc))
    return {"id": str(row.id), "event_type": row.event_type}


@router.post("/expulsion-reviews/{review_id}/votes", status_code=201)
async def cast_vote(
    review_id: uuid.UUID,
    body: VoteCreate,
    user_id: uuid.UUID = Depends(get_current_user),
    engine: Engine = Depends(get_engine),
):
    try:
        vote = await run_db(
            expulsion_service.cast_vote,
            engine,
            review_id,
            user_id,
            body.vote,
            body.reasoning,
        )
    except expulsion_service.ReviewNotFoundError:
        raise HTTPException(404, "Review not found")
    except expulsion_service.NotCommitteeMemberError:
        raise HTTPException(403, "Only current committee members can vote")
    except (expulsion_service.ReviewClosedError, expulsion_service.AlreadyVotedError) as exc:
        raise HTTPException(409, str(exc))
    return {"id": str(vote.id), "review_id": str(review_id), "vote": vote.vote}
