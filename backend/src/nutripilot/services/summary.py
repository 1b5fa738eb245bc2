from __future__ import annotations

from datetime import date
from typing import Dict, List, Optional

from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from nutripilot.core.database import datastore_errors
from nutripilot.core.errors import ValidationError
from nutripilot.models.logs import FoodDayLog, FoodLogItem, FoodLogItemNutrient
from nutripilot.nutrients import NUTRIENTS, sort_key
from nutripilot.services.day_targets import day_target
from nutripilot.services.taxonomy import display_group
from nutripilot.utils.nutrition import Macros, NutrientRow, merge_rows, round2, sum_macros


def _item_macros(it: FoodLogItem) -> Macros:
    return Macros(
        calories=it.calories,
        protein_g=it.protein_g,
        carbs_g=it.carbs_g,
        fats_g=it.fats_g,
        alcohol_g=it.alcohol_g,
    )


def nutrient_breakdown(rows: List[NutrientRow]) -> List[dict]:
    """Per-code day amounts with display metadata, sorted by group then order."""
    out = []
    for code, amount in sorted(merge_rows(rows).items(), key=lambda kv: sort_key(kv[0])):
        info = NUTRIENTS.get(code)
        out.append(
            {
                "code": code,
                "label": info.label if info else code,
                "unit": info.unit if info else "",
                "group": display_group(code),
                "amount": round2(amount),
            }
        )
    return out


def remaining(target: Dict[str, int], totals: Macros) -> Dict[str, float]:
    return {
        "calories": target["calories"] - totals.calories,
        "protein_g": target["protein_g"] - totals.protein_g,
        "carbs_g": target["carbs_g"] - totals.carbs_g,
        "fats_g": target["fats_g"] - totals.fats_g,
    }


@datastore_errors("load day summary")
async def day_summary(
    session: AsyncSession, user_id: str, log_date: date, day_type: Optional[str] = None
) -> dict:
    if not (user_id or "").strip():
        raise ValidationError("user_id is required")

    day = (
        await session.exec(select(FoodDayLog).where(FoodDayLog.user_id == user_id, FoodDayLog.log_date == log_date))
    ).first()
    items = (
        await session.exec(
            select(FoodLogItem)
            .where(FoodLogItem.user_id == user_id, FoodLogItem.log_date == log_date)
            .order_by(FoodLogItem.position.asc(), FoodLogItem.id.asc())
        )
    ).all()

    rows: List[NutrientRow] = []
    ids = [it.id for it in items]
    if ids:
        stored = (await session.exec(select(FoodLogItemNutrient).where(FoodLogItemNutrient.item_id.in_(ids)))).all()
        rows = [NutrientRow(code=r.code, amount=r.amount) for r in stored]

    totals = sum_macros(_item_macros(it) for it in items)
    summary = {
        "user_id": user_id,
        "date": log_date.isoformat(),
        "totals": totals.to_dict(),
        "nutrient_breakdown": nutrient_breakdown(rows),
        "items": [
            {
                "id": it.id,
                "food_name": it.food_name,
                "amount": it.amount,
                "unit": it.unit,
                "preparation_state": it.preparation_state,
                "food_id": it.food_id,
                "user_food_id": it.user_food_id,
                "auto_matched": it.auto_matched,
                "grams": it.grams,
                "source": it.source.value if hasattr(it.source, "value") else it.source,
                **_item_macros(it).to_dict(),
            }
            for it in items
        ],
        "notes": day.notes if day else None,
        "water_ml": day.water_ml if day else None,
        "salt_g": day.salt_g if day else None,
    }

    if day_type:
        target = await day_target(session, user_id, day_type)
        summary["day_type"] = day_type
        summary["target"] = target
        summary["remaining"] = remaining(target, totals) if target else None
    return summary
