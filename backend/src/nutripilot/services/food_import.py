from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import async_sessionmaker
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from nutripilot.core.database import datastore_errors
from nutripilot.core.errors import ValidationError
from nutripilot.models.foods import GlobalFood, GlobalFoodNutrient, GlobalFoodUnit
from nutripilot.services.food_data import FDC_SOURCE, ExternalFood, FoodDataClient
from nutripilot.services.taxonomy import normalize_food

logger = logging.getLogger(__name__)


@dataclass
class ImportResult:
    food_id: int
    reused: bool
    name: str
    nutrient_count: int = 0

    def to_dict(self) -> dict:
        return {
            "food_id": self.food_id,
            "reused": self.reused,
            "name": self.name,
            "nutrient_count": self.nutrient_count,
        }


async def _existing(session: AsyncSession, external_id: str) -> Optional[GlobalFood]:
    stmt = select(GlobalFood).where(GlobalFood.source == FDC_SOURCE, GlobalFood.external_id == external_id)
    return (await session.exec(stmt)).first()


async def _replace_children(
    session: AsyncSession, food_id: int, rows: Dict[str, float], portions: List[Tuple[str, float]]
) -> None:
    for model in (GlobalFoodNutrient, GlobalFoodUnit):
        old = (await session.exec(select(model).where(model.food_id == food_id))).all()
        for r in old:
            await session.delete(r)
    await session.flush()

    for code, amount in sorted(rows.items()):
        session.add(GlobalFoodNutrient(food_id=food_id, code=code, amount_per_100g=float(amount)))
    for unit, grams in portions:
        if grams > 0:
            session.add(GlobalFoodUnit(food_id=food_id, unit=unit, grams_per_unit=float(grams)))


@datastore_errors("store imported food")
async def store_external_food(
    factory: async_sessionmaker[AsyncSession], ext: ExternalFood, refresh: bool = False
) -> ImportResult:
    """Persist one normalized external food; all-or-nothing."""
    rows = normalize_food(ext.observations)
    try:
        async with factory() as session:
            async with session.begin():
                food = await _existing(session, ext.external_id)
                if food is not None and not refresh:
                    return ImportResult(food_id=food.id, reused=True, name=food.name)

                reused = food is not None
                if food is None:
                    food = GlobalFood(
                        name=ext.name, brand=ext.brand, source=FDC_SOURCE, external_id=ext.external_id
                    )
                    session.add(food)
                    await session.flush()
                else:
                    food.name = ext.name
                    food.brand = ext.brand
                    session.add(food)

                await _replace_children(session, food.id, rows, ext.portions)
                result = ImportResult(food_id=food.id, reused=reused, name=food.name, nutrient_count=len(rows))
    except IntegrityError:
        # Concurrent import of the same external id won the insert.
        async with factory() as session:
            food = await _existing(session, ext.external_id)
        if food is None:
            raise
        return ImportResult(food_id=food.id, reused=True, name=food.name)
    logger.info("imported FDC %s as food %s (%d nutrients)", ext.external_id, result.food_id, result.nutrient_count)
    return result


@datastore_errors("import food")
async def import_external_food(
    factory: async_sessionmaker[AsyncSession],
    client: FoodDataClient,
    external_id: str,
    refresh: bool = False,
) -> ImportResult:
    external_id = str(external_id or "").strip()
    if not external_id:
        raise ValidationError("external_id is required")

    if not refresh:
        async with factory() as session:
            food = await _existing(session, external_id)
        if food is not None:
            return ImportResult(food_id=food.id, reused=True, name=food.name)

    ext = await client.fetch_food(external_id)
    ext.external_id = external_id
    return await store_external_food(factory, ext, refresh=refresh)
