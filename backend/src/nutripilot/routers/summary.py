from __future__ import annotations

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlmodel.ext.asyncio.session import AsyncSession

from nutripilot.core.database import get_session
from nutripilot.models.targets import DayType
from nutripilot.schemas import DaySummaryResponse
from nutripilot.services.summary import day_summary

router = APIRouter(prefix="/summary", tags=["summary"])


@router.get("/day", response_model=DaySummaryResponse)
async def summary_day(
    user_id: str = Query(..., min_length=1),
    day: date = Query(..., description="YYYY-MM-DD"),
    day_type: Optional[DayType] = Query(None, description="compare against this day type's target"),
    session: AsyncSession = Depends(get_session),
):
    return await day_summary(session, user_id, day, day_type.value if day_type else None)
