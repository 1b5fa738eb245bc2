from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlmodel.ext.asyncio.session import AsyncSession

from nutripilot.core.database import get_session
from nutripilot.models.targets import DayType
from nutripilot.schemas import DayTargetOut, InitRequest, InitResponse, RatiosUpdate, TargetFieldUpdate
from nutripilot.services.day_targets import apply_ratios, initialize, set_target_field

router = APIRouter(prefix="/nutrition", tags=["nutrition"])


@router.post("/init", response_model=InitResponse)
async def nutrition_init(req: InitRequest, session: AsyncSession = Depends(get_session)):
    return {"ok": True, **await initialize(session, req.user_id)}


@router.put("/targets/{day_type}", response_model=DayTargetOut)
async def update_target(day_type: DayType, req: TargetFieldUpdate, session: AsyncSession = Depends(get_session)):
    return await set_target_field(session, req.user_id, day_type, req.field, req.value)


@router.put("/targets/{day_type}/ratios", response_model=DayTargetOut)
async def update_ratios(day_type: DayType, req: RatiosUpdate, session: AsyncSession = Depends(get_session)):
    ratios = req.model_dump(exclude={"user_id"}, exclude_none=True)
    return await apply_ratios(session, req.user_id, day_type, ratios)
