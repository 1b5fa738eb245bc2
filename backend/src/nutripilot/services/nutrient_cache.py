from __future__ import annotations

from typing import Dict, Iterable, List, Tuple

from nutripilot.nutrients import MICRO_CODES
from nutripilot.services.food_store import FoodRef, FoodStore
from nutripilot.utils.nutrition import NutrientRow


def micro_row_count(rows: Iterable[NutrientRow]) -> int:
    return sum(1 for r in rows if r.code in MICRO_CODES)


def has_micronutrients(rows: Iterable[NutrientRow]) -> bool:
    return micro_row_count(rows) > 0


class FoodNutrientCache:
    """Per-100g nutrient rows per food, fetched at most once per request."""

    def __init__(self, store: FoodStore):
        self.store = store
        self._rows: Dict[Tuple[str, int], List[NutrientRow]] = {}

    async def get(self, ref: FoodRef) -> List[NutrientRow]:
        if ref.key not in self._rows:
            self._rows[ref.key] = await self.store.nutrient_rows(ref)
        return list(self._rows[ref.key])
