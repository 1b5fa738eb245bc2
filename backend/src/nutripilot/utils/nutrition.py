from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Dict, Iterable, List

from nutripilot.nutrients import (
    ALCOHOL_CODE,
    CARBS_CODE,
    ENERGY_CODE,
    FAT_CODE,
    PROTEIN_CODE,
)
from nutripilot.utils.validators import safe_float

KCAL_PER_G_PROTEIN = 4
KCAL_PER_G_CARBS = 4
KCAL_PER_G_FAT = 9
KCAL_PER_G_ALCOHOL = 7


@dataclass
class NutrientRow:
    code: str
    amount: float


@dataclass
class Macros:
    calories: float = 0.0
    protein_g: float = 0.0
    carbs_g: float = 0.0
    fats_g: float = 0.0
    alcohol_g: float = 0.0

    def to_dict(self) -> Dict[str, float]:
        return {
            "calories": self.calories,
            "protein_g": self.protein_g,
            "carbs_g": self.carbs_g,
            "fats_g": self.fats_g,
            "alcohol_g": self.alcohol_g,
        }


def round0(x) -> int:
    """Half-up rounding to a non-negative integer."""
    try:
        v = float(x or 0.0)
    except (TypeError, ValueError):
        return 0
    if not math.isfinite(v):
        return 0
    return max(0, int(math.floor(v + 0.5)))


def round1(x) -> float:
    return round0(float(x or 0.0) * 10) / 10


def round2(x) -> float:
    """Half-up rounding to 2 decimals."""
    v = safe_float(x)
    return math.floor(v * 100 + 0.5) / 100


def calories_from_macros(protein_g: float, carbs_g: float, fats_g: float, alcohol_g: float = 0.0) -> float:
    return (
        protein_g * KCAL_PER_G_PROTEIN
        + carbs_g * KCAL_PER_G_CARBS
        + fats_g * KCAL_PER_G_FAT
        + alcohol_g * KCAL_PER_G_ALCOHOL
    )


def scale_rows(rows: Iterable[NutrientRow], grams: float) -> List[NutrientRow]:
    """Scale per-100g rows to the given amount. Negative grams are clamped to 0."""
    factor = max(0.0, float(grams or 0.0)) / 100.0
    return [NutrientRow(code=r.code, amount=float(r.amount or 0.0) * factor) for r in rows]


def macro_totals(rows: Iterable[NutrientRow]) -> Macros:
    """Macro totals for a set of (already scaled) nutrient rows.

    Calories come from the energy row when there is one, otherwise they are
    derived with 4/4/9/7 kcal per gram.
    """
    sums = {ENERGY_CODE: 0.0, PROTEIN_CODE: 0.0, CARBS_CODE: 0.0, FAT_CODE: 0.0, ALCOHOL_CODE: 0.0}
    has_energy = False
    for r in rows:
        if r.code in sums:
            sums[r.code] += float(r.amount or 0.0)
            if r.code == ENERGY_CODE:
                has_energy = True

    calories = sums[ENERGY_CODE]
    if not has_energy:
        calories = calories_from_macros(
            sums[PROTEIN_CODE], sums[CARBS_CODE], sums[FAT_CODE], sums[ALCOHOL_CODE]
        )

    return Macros(
        calories=round0(calories),
        protein_g=round0(sums[PROTEIN_CODE]),
        carbs_g=round0(sums[CARBS_CODE]),
        fats_g=round0(sums[FAT_CODE]),
        alcohol_g=round1(sums[ALCOHOL_CODE]),
    )


def sum_macros(items: Iterable[Macros]) -> Macros:
    """Day totals from item macros that are already rounded."""
    total = Macros()
    for it in items:
        total.calories += getattr(it, "calories", 0) or 0
        total.protein_g += getattr(it, "protein_g", 0) or 0
        total.carbs_g += getattr(it, "carbs_g", 0) or 0
        total.fats_g += getattr(it, "fats_g", 0) or 0
        total.alcohol_g += getattr(it, "alcohol_g", 0) or 0
    total.alcohol_g = round1(total.alcohol_g)
    return total


def merge_rows(rows: Iterable[NutrientRow]) -> Dict[str, float]:
    merged: Dict[str, float] = {}
    for r in rows:
        merged[r.code] = merged.get(r.code, 0.0) + float(r.amount or 0.0)
    return merged
