"""Async read access to the user-private and global food stores.

Every method opens its own short-lived session, so independent lookups can
run concurrently under ``asyncio.gather``.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator, List, Optional, Tuple

from sqlalchemy import func, or_
from sqlalchemy.exc import OperationalError, ProgrammingError, SQLAlchemyError
from sqlalchemy.ext.asyncio import async_sessionmaker
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from nutripilot.core.capabilities import GLOBAL_UNIT_LOOKUP, USER_UNIT_LOOKUP, Capabilities
from nutripilot.core.errors import UpstreamError
from nutripilot.models.foods import (
    GlobalFood,
    GlobalFoodNutrient,
    GlobalFoodUnit,
    Provenance,
    UserFood,
    UserFoodNutrient,
    UserFoodUnit,
)
from nutripilot.nutrients import KEY_NUTRIENT_CODES
from nutripilot.utils.nutrition import NutrientRow
from nutripilot.utils.units import normalize_unit

logger = logging.getLogger(__name__)

SEARCH_LIMIT = 25


@dataclass(frozen=True)
class FoodRef:
    food_id: Optional[int] = None
    user_food_id: Optional[int] = None

    @property
    def provenance(self) -> Provenance:
        return Provenance.user if self.user_food_id is not None else Provenance.global_

    @property
    def key(self) -> Tuple[str, int]:
        if self.user_food_id is not None:
            return ("user", self.user_food_id)
        return ("global", int(self.food_id or 0))


@dataclass
class FoodCandidate:
    ref: FoodRef
    name: str
    brand: Optional[str] = None
    coverage: int = 0

    @property
    def is_user_food(self) -> bool:
        return self.ref.provenance is Provenance.user


def _is_missing_table(exc: Exception) -> bool:
    msg = str(getattr(exc, "orig", None) or exc).lower()
    return "no such table" in msg or ("relation" in msg and "does not exist" in msg)


class FoodStore:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._factory = session_factory

    @asynccontextmanager
    async def _session(self) -> AsyncIterator[AsyncSession]:
        async with self._factory() as session:
            try:
                yield session
            except SQLAlchemyError as exc:
                raise UpstreamError(f"Datastore query failed: {exc}", upstream="datastore") from exc

    # ---------- search ----------
    async def search_user_foods(self, user_id: str, pattern: str) -> List[FoodCandidate]:
        stmt = (
            select(UserFood)
            .where(UserFood.user_id == user_id)
            .where(or_(func.lower(UserFood.name).like(pattern), func.lower(UserFood.brand).like(pattern)))
            .order_by(UserFood.id.asc())
            .limit(SEARCH_LIMIT)
        )
        async with self._session() as session:
            rows = (await session.exec(stmt)).all()
        return [FoodCandidate(ref=FoodRef(user_food_id=r.id), name=r.name, brand=r.brand) for r in rows]

    async def search_global_foods(self, pattern: str) -> List[FoodCandidate]:
        stmt = (
            select(GlobalFood)
            .where(or_(func.lower(GlobalFood.name).like(pattern), func.lower(GlobalFood.brand).like(pattern)))
            .order_by(GlobalFood.id.asc())
            .limit(SEARCH_LIMIT)
        )
        async with self._session() as session:
            rows = (await session.exec(stmt)).all()
        return [FoodCandidate(ref=FoodRef(food_id=r.id), name=r.name, brand=r.brand) for r in rows]

    async def get_food(self, ref: FoodRef, user_id: Optional[str] = None) -> Optional[FoodCandidate]:
        """Load a referenced food. User foods only resolve for their owner."""
        async with self._session() as session:
            if ref.user_food_id is not None:
                row = await session.get(UserFood, ref.user_food_id)
                if row is not None and row.user_id != user_id:
                    row = None
            else:
                row = await session.get(GlobalFood, ref.food_id)
        if row is None:
            return None
        return FoodCandidate(ref=ref, name=row.name, brand=row.brand)

    # ---------- nutrients ----------
    async def key_nutrient_count(self, ref: FoodRef) -> int:
        if ref.user_food_id is not None:
            stmt = (
                select(func.count())
                .select_from(UserFoodNutrient)
                .where(UserFoodNutrient.user_food_id == ref.user_food_id)
                .where(UserFoodNutrient.code.in_(KEY_NUTRIENT_CODES))
            )
        else:
            stmt = (
                select(func.count())
                .select_from(GlobalFoodNutrient)
                .where(GlobalFoodNutrient.food_id == ref.food_id)
                .where(GlobalFoodNutrient.code.in_(KEY_NUTRIENT_CODES))
            )
        async with self._session() as session:
            count = (await session.exec(stmt)).one()
        return int(count or 0)

    async def nutrient_rows(self, ref: FoodRef) -> List[NutrientRow]:
        if ref.user_food_id is not None:
            stmt = select(UserFoodNutrient).where(UserFoodNutrient.user_food_id == ref.user_food_id)
        else:
            stmt = select(GlobalFoodNutrient).where(GlobalFoodNutrient.food_id == ref.food_id)
        async with self._session() as session:
            rows = (await session.exec(stmt)).all()
        return [NutrientRow(code=r.code, amount=float(r.amount_per_100g or 0.0)) for r in rows]

    # ---------- units ----------
    async def grams_per_unit(self, ref: FoodRef, unit: str, capabilities: Capabilities) -> Optional[float]:
        """Food-specific grams for one ``unit``; None when unknown or unavailable."""
        flag = USER_UNIT_LOOKUP if ref.user_food_id is not None else GLOBAL_UNIT_LOOKUP
        if not capabilities.enabled(flag):
            return None

        u = normalize_unit(unit)
        if ref.user_food_id is not None:
            stmt = select(UserFoodUnit).where(
                UserFoodUnit.user_food_id == ref.user_food_id, UserFoodUnit.unit == u
            )
        else:
            stmt = select(GlobalFoodUnit).where(GlobalFoodUnit.food_id == ref.food_id, GlobalFoodUnit.unit == u)

        async with self._session() as session:
            try:
                row = (await session.exec(stmt)).first()
            except (OperationalError, ProgrammingError) as exc:
                if not _is_missing_table(exc):
                    raise
                capabilities.disable(flag, reason=str(getattr(exc, "orig", exc)))
                return None

        if row is None or not row.grams_per_unit or row.grams_per_unit <= 0:
            return None
        return float(row.grams_per_unit)
