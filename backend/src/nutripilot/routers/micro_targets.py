from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlmodel.ext.asyncio.session import AsyncSession

from nutripilot.core.database import get_session
from nutripilot.schemas import MicroTargetsResponse, MicroTargetsUpdate
from nutripilot.services.micro_targets import micro_targets, set_micro_target_mode

router = APIRouter(prefix="/micro-targets", tags=["micro-targets"])


@router.get("", response_model=MicroTargetsResponse)
async def get_micro_targets(user_id: str = Query(..., min_length=1), session: AsyncSession = Depends(get_session)):
    return await micro_targets(session, user_id)


@router.put("", response_model=MicroTargetsResponse)
async def put_micro_targets(req: MicroTargetsUpdate, session: AsyncSession = Depends(get_session)):
    return await set_micro_target_mode(session, req.user_id, req.mode, req.overrides)
