from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import async_sessionmaker

from nutripilot.core.capabilities import Capabilities, get_capabilities
from nutripilot.core.database import get_session_factory
from nutripilot.dependencies import get_estimator
from nutripilot.schemas import DayLogRequest, DayLogResponse
from nutripilot.services.day_log import LogItemIn, resolve_day_log
from nutripilot.services.estimation import EstimationClient

router = APIRouter(prefix="/nutrition", tags=["nutrition"])


@router.post("/day-log", response_model=DayLogResponse)
async def save_day_log(
    req: DayLogRequest,
    factory: async_sessionmaker = Depends(get_session_factory),
    estimator: EstimationClient = Depends(get_estimator),
    capabilities: Capabilities = Depends(get_capabilities),
):
    """Resolve every item (stored food or estimate) and replace the stored day."""
    items = [
        LogItemIn(
            food_name=(it.food_name or "").strip(),
            amount=it.amount,
            unit=it.unit or "",
            preparation_state=it.preparation_state,
            food_id=it.food_id,
            user_food_id=it.user_food_id,
        )
        for it in req.items
    ]
    result = await resolve_day_log(
        factory,
        estimator,
        capabilities,
        user_id=req.user_id,
        log_date=req.log_date,
        items=items,
        notes=req.notes,
        water_ml=req.water_ml,
        salt_g=req.salt_g,
    )
    return {"ok": True, **result.to_dict()}
