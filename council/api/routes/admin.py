"""
council.api.routes.admin — Reviewer dashboard endpoints (admin role)
======================================================================
"""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel
from sqlalchemy import Engine

from council.api.deps import get_current_admin, get_engine
from council.database.engine import run_db
from council.database.models import AppealStatus, ReviewStatus
from council.services import appeal_service, behavior_service, expulsion_service

router = APIRouter(prefix="/admin", tags=["admin"])


class AppealDecision(BaseModel):
    status: AppealStatus
    admin_response: str = ""


# ---------------------------------------------------------------------------
# Appeals
# ---------------------------------------------------------------------------
@router.get("/appeals")
async def list_appeals(
    status: AppealStatus | None = None,
    admin_id: uuid.UUID = Depends(get_current_admin),
    engine: Engine = Depends(get_engine),
):
    appeals = await run_db(
        appeal_service.list_appeals,
        engine,
        status=status.value if status else None,
    )
    return {"appeals": appeals}


@router.patch("/appeals/{appeal_id}")
async def decide_appeal(
    appeal_id: uuid.UUID,
    body: AppealDecision,
    admin_id: uuid.UUID = Depends(get_current_admin),
    engine: Engine = Depends(get_engine),
):
    try:
        ok = await run_db(
            appeal_service.update_appeal,
            engine,
            appeal_id,
            body.status,
            body.admin_response,
            admin_id,
        )
    except appeal_service.AppealNotFoundError:
        raise HTTPException(404, "Appeal not found")
    except appeal_service.AppealClosedError as exc:
        raise HTTPException(409, str(exc))
    except ValueError as exc:
        raise HTTPException(400, str(exc))
    if not ok:
        raise HTTPException(500, "Could not update the appeal. Please try again later.")
    return {"success": True, "id": str(appeal_id), "status": body.status.value}


# ---------------------------------------------------------------------------
# Risk scores & violations
# ---------------------------------------------------------------------------
@router.get("/risk-scores")
async def list_risk_scores(
    min_score: int = Query(0, ge=0, le=100),
    admin_id: uuid.UUID = Depends(get_current_admin),
    engine: Engine = Depends(get_engine),
):
    scores = await run_db(behavior_service.list_risk_snapshots, engine, min_score=min_score)
    return {"risk_scores": scores}


@router.get("/risk-scores/{professional_id}/history")
async def risk_history(
    professional_id: uuid.UUID,
    limit: int = Query(50, ge=1, le=500),
    admin_id: uuid.UUID = Depends(get_current_admin),
    engine: Engine = Depends(get_engine),
):
    history = await run_db(
        behavior_service.get_risk_history, engine, professional_id, limit=limit
    )
    return {"professional_id": str(professional_id), "history": history}


@router.get("/violations")
async def list_violations(
    professional_id: uuid.UUID | None = None,
    limit: int = Query(100, ge=1, le=500),
    admin_id: uuid.UUID = Depends(get_current_admin),
    engine: Engine = Depends(get_engine),
):
    violations = await run_db(
        behavior_service.list_violations,
        engine,
        professional_id=professional_id,
        limit=limit,
    )
    return {"violations": violations}


# ---------------------------------------------------------------------------
# Expulsion reviews
# ---------------------------------------------------------------------------
@router.get("/expulsion-reviews")
async def list_expulsion_reviews(
    status: ReviewStatus | None = None,
    admin_id: uuid.UUID = Depends(get_current_admin),
    engine: Engine = Depends(get_engine),
):
    reviews = await run_db(
        expulsion_service.list_reviews,
        engine,
        status.value if status else None,
    )
    return {"reviews": reviews}
