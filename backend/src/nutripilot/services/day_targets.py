"""Calorie/macro targets per day type and the weekly flex-meal rule."""

from __future__ import annotations

import logging
from datetime import date, timedelta
from typing import Dict, Optional

from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from nutripilot.core.database import datastore_errors
from nutripilot.core.errors import ValidationError
from nutripilot.models.targets import DayType, NutritionDayTarget, Profile, WeeklyFlexRule
from nutripilot.utils.nutrition import KCAL_PER_G_CARBS, KCAL_PER_G_FAT, KCAL_PER_G_PROTEIN, round0
from nutripilot.utils.validators import safe_float

logger = logging.getLogger(__name__)

LB_PER_KG = 2.2046226218
KCAL_PER_KG_MAINTENANCE = 33
KCAL_PER_KG_BODY_MASS = 7700
MIN_CALORIES = 1200
REST_DAY_DELTA = -250
HIGH_DAY_DELTA = 200

# grams per lb body weight
DEFAULT_RATIOS: Dict[DayType, Dict[str, float]] = {
    DayType.training: {"protein": 1.0, "carbs": 1.0, "fats": 0.3},
    DayType.rest: {"protein": 1.0, "carbs": 0.8, "fats": 0.3},
    DayType.high: {"protein": 1.0, "carbs": 1.2, "fats": 0.3},
}

MACRO_FIELDS = ("protein_g", "carbs_g", "fats_g")
TARGET_FIELDS = ("calories",) + MACRO_FIELDS


def start_of_week(d: date) -> date:
    return d - timedelta(days=d.weekday())


def suggest_calories(goal_type: Optional[str], weekly_rate_kg: Optional[float], weight_kg: float) -> int:
    maintenance = round0(weight_kg * KCAL_PER_KG_MAINTENANCE)
    goal = (goal_type or "maintain").strip().lower()
    if goal == "maintain":
        return maintenance

    delta = round0(abs(safe_float(weekly_rate_kg)) * KCAL_PER_KG_BODY_MASS / 7)
    if goal in ("lose", "cut"):
        return max(MIN_CALORIES, maintenance - delta)
    if goal in ("gain", "bulk"):
        return maintenance + delta
    return maintenance


def macro_calories(protein_g: float, carbs_g: float, fats_g: float) -> int:
    return round0(protein_g * KCAL_PER_G_PROTEIN + carbs_g * KCAL_PER_G_CARBS + fats_g * KCAL_PER_G_FAT)


def macros_from_calories(calories: int, weight_kg: float) -> Dict[str, int]:
    weight_lb = weight_kg * LB_PER_KG
    protein = round0(weight_lb * 0.8)
    fats = max(50, round0(weight_lb * 0.3))
    remaining = max(0, calories - protein * KCAL_PER_G_PROTEIN - fats * KCAL_PER_G_FAT)
    carbs = round0(remaining / KCAL_PER_G_CARBS)
    return {"calories": int(calories), "protein_g": protein, "carbs_g": carbs, "fats_g": fats}


def targets_from_ratios(weight_kg: float, ratios: Dict[str, float]) -> Dict[str, int]:
    weight_lb = weight_kg * LB_PER_KG
    p = round0(safe_float(ratios.get("protein")) * weight_lb)
    c = round0(safe_float(ratios.get("carbs")) * weight_lb)
    f = round0(safe_float(ratios.get("fats")) * weight_lb)
    return {"calories": macro_calories(p, c, f), "protein_g": p, "carbs_g": c, "fats_g": f}


def _target_dict(row: NutritionDayTarget) -> Dict[str, int]:
    return {"calories": row.calories, "protein_g": row.protein_g, "carbs_g": row.carbs_g, "fats_g": row.fats_g}


def _require_user(user_id: Optional[str]) -> str:
    if not (user_id or "").strip():
        raise ValidationError("user_id is required")
    return user_id


def _parse_day_type(day_type) -> DayType:
    try:
        return DayType(day_type)
    except ValueError:
        raise ValidationError(f"Unknown day type: {day_type!r}")


async def _profile_weight(session: AsyncSession, user_id: str) -> tuple:
    profile = (await session.exec(select(Profile).where(Profile.user_id == user_id))).first()
    weight = safe_float(profile.current_weight_kg) if profile else 0.0
    if weight <= 0:
        raise ValidationError("current_weight_kg missing in profiles")
    return profile, weight


async def _upsert_target(session: AsyncSession, user_id: str, day_type: DayType, values: Dict[str, int]) -> NutritionDayTarget:
    row = (
        await session.exec(
            select(NutritionDayTarget).where(
                NutritionDayTarget.user_id == user_id, NutritionDayTarget.day_type == day_type
            )
        )
    ).first()
    if row is None:
        row = NutritionDayTarget(user_id=user_id, day_type=day_type)
    for field in TARGET_FIELDS:
        setattr(row, field, int(values[field]))
    session.add(row)
    return row


async def _roll_flex_rule(session: AsyncSession, user_id: str, today: date) -> WeeklyFlexRule:
    week_start = start_of_week(today)
    rule = (await session.exec(select(WeeklyFlexRule).where(WeeklyFlexRule.user_id == user_id))).first()
    if rule is None:
        rule = WeeklyFlexRule(user_id=user_id, week_start=week_start)
    elif rule.week_start != week_start:
        unused = max(0, rule.base_cheat_meals + rule.banked_cheat_meals - rule.used_cheat_meals)
        rule.banked_cheat_meals = 1 if unused > 0 else 0
        rule.used_cheat_meals = 0
        rule.alcohol_units_week = 0.0
        rule.week_start = week_start
    session.add(rule)
    return rule


@datastore_errors("initialize day targets")
async def initialize(session: AsyncSession, user_id: str, today: Optional[date] = None) -> dict:
    """Derive training/rest/high targets from the profile and reset the flex week."""
    user_id = _require_user(user_id)
    profile, weight = await _profile_weight(session, user_id)

    base = suggest_calories(profile.goal_type, profile.weekly_weight_change_target_kg, weight)
    per_type = {
        DayType.training: macros_from_calories(base, weight),
        DayType.rest: macros_from_calories(max(MIN_CALORIES, base + REST_DAY_DELTA), weight),
        DayType.high: macros_from_calories(base + HIGH_DAY_DELTA, weight),
    }
    for day_type, values in per_type.items():
        await _upsert_target(session, user_id, day_type, values)
    rule = await _roll_flex_rule(session, user_id, today or date.today())
    await session.commit()

    logger.info("initialized day targets for %s (base %d kcal)", user_id, base)
    return {
        "targets": {dt.value: values for dt, values in per_type.items()},
        "flex": {
            "week_start": rule.week_start.isoformat(),
            "base_cheat_meals": rule.base_cheat_meals,
            "banked_cheat_meals": rule.banked_cheat_meals,
            "used_cheat_meals": rule.used_cheat_meals,
            "alcohol_units_week": rule.alcohol_units_week,
        },
    }


@datastore_errors("store day target")
async def set_target_field(session: AsyncSession, user_id: str, day_type, field: str, value) -> Dict[str, int]:
    user_id = _require_user(user_id)
    dt = _parse_day_type(day_type)
    if field not in TARGET_FIELDS:
        raise ValidationError(f"Unknown target field: {field}")

    row = (
        await session.exec(
            select(NutritionDayTarget).where(NutritionDayTarget.user_id == user_id, NutritionDayTarget.day_type == dt)
        )
    ).first()
    values = _target_dict(row) if row else {f: 0 for f in TARGET_FIELDS}
    values[field] = round0(value)
    if field in MACRO_FIELDS:
        values["calories"] = macro_calories(values["protein_g"], values["carbs_g"], values["fats_g"])

    await _upsert_target(session, user_id, dt, values)
    await session.commit()
    return values


@datastore_errors("store day target")
async def apply_ratios(session: AsyncSession, user_id: str, day_type, ratios: Optional[Dict[str, float]] = None) -> Dict[str, int]:
    user_id = _require_user(user_id)
    dt = _parse_day_type(day_type)
    _, weight = await _profile_weight(session, user_id)

    merged = dict(DEFAULT_RATIOS[dt])
    for k, v in (ratios or {}).items():
        if k not in merged:
            raise ValidationError(f"Unknown ratio: {k}")
        if v is not None:
            if safe_float(v) < 0:
                raise ValidationError(f"Ratio {k} must be non-negative")
            merged[k] = round(safe_float(v), 2)

    values = targets_from_ratios(weight, merged)
    await _upsert_target(session, user_id, dt, values)
    await session.commit()
    return values


@datastore_errors("load day target")
async def day_target(session: AsyncSession, user_id: str, day_type) -> Optional[Dict[str, int]]:
    dt = _parse_day_type(day_type)
    row = (
        await session.exec(
            select(NutritionDayTarget).where(NutritionDayTarget.user_id == user_id, NutritionDayTarget.day_type == dt)
        )
    ).first()
    return _target_dict(row) if row else None
