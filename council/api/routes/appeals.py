"""
council.api.routes.appeals — Penalty appeals for the signed-in professional
=============================================================================
"""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy import Engine

from council.api.deps import get_current_user, get_engine
from council.database.engine import run_db
from council.services import appeal_service

router = APIRouter(prefix="/appeals", tags=["appeals"])


class AppealCreate(BaseModel):
    penalty_id: uuid.UUID
    reason: str = Field(min_length=1)
    context: str | None = None


@router.post("", status_code=201)
async def create_appeal(
    body: AppealCreate,
    user_id: uuid.UUID = Depends(get_current_user),
    engine: Engine = Depends(get_engine),
):
    owner = await run_db(appeal_service.get_penalty_owner, engine, body.penalty_id)
    if owner is None:
        raise HTTPException(404, "Penalty not found")
    if owner != user_id:
        raise HTTPException(403, "You can only appeal your own penalties")
    if await run_db(appeal_service.has_open_appeal, engine, body.penalty_id):
        raise HTTPException(409, "This penalty already has an open appeal")

    ok = await run_db(
        appeal_service.create_appeal,
        engine,
        body.penalty_id,
        user_id,
        body.reason,
        body.context,
    )
    if not ok:
        raise HTTPException(500, "Could not submit your appeal. Please try again later.")
    return {"success": True}


@router.get("/mine")
async def my_appeals(
    user_id: uuid.UUID = Depends(get_current_user),
    engine: Engine = Depends(get_engine),
):
    appeals = await run_db(appeal_service.list_appeals, engine, professional_id=user_id)
    return {"appeals": appeals}
