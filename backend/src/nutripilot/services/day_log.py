"""Resolve a submitted day of food into macros and persist it.

Resolution runs in two passes. Pass one partitions every item into either
``Deterministic`` (a stored food with nutrient rows and a gram amount) or
``Estimated`` (everything else). Pass two sends all ``Estimated`` items to the
estimation service in a single call.

Items are partitioned in submission order and share the request-scoped match
and nutrient caches, so a later item reuses lookups an earlier one filled.
The caches hold the same data the store would return, so reuse changes the
number of queries, not the resolved values.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from datetime import date
from typing import Dict, List, Optional, Sequence, Union

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import async_sessionmaker
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from nutripilot.core.capabilities import Capabilities
from nutripilot.core.errors import DataQualityWarning, UpstreamError, ValidationError
from nutripilot.models.foods import utc_now
from nutripilot.models.logs import FoodDayLog, FoodLogItem, FoodLogItemNutrient, ItemSource
from nutripilot.nutrients import CARBS_CODE, ENERGY_CODE, FAT_CODE, PROTEIN_CODE
from nutripilot.services.estimation import CACHED_ESTIMATE_WARNING, EstimateRequestItem, EstimationClient
from nutripilot.services.food_store import FoodRef, FoodStore
from nutripilot.services.matcher import FoodMatcher
from nutripilot.services.nutrient_cache import FoodNutrientCache, has_micronutrients, micro_row_count
from nutripilot.utils.nutrition import Macros, NutrientRow, macro_totals, merge_rows, round1, scale_rows, sum_macros
from nutripilot.utils.text import normalize_name
from nutripilot.utils.units import is_valid_quantity, normalize_unit, to_grams
from nutripilot.utils.validators import non_negative

logger = logging.getLogger(__name__)


@dataclass
class LogItemIn:
    food_name: str
    amount: float
    unit: str
    preparation_state: Optional[str] = None
    food_id: Optional[int] = None
    user_food_id: Optional[int] = None


@dataclass
class Deterministic:
    ref: FoodRef
    grams: float
    rows: List[NutrientRow]
    auto_matched: bool = False


@dataclass
class Estimated:
    reason: str
    ref: Optional[FoodRef] = None
    auto_matched: bool = False


Resolution = Union[Deterministic, Estimated]


@dataclass
class ResolvedItem:
    index: int
    item: LogItemIn
    source: ItemSource
    macros: Macros
    rows: List[NutrientRow]
    grams: Optional[float] = None
    ref: Optional[FoodRef] = None
    auto_matched: bool = False

    def to_dict(self) -> dict:
        return {
            "index": self.index,
            "food_name": self.item.food_name,
            "amount": self.item.amount,
            "unit": self.item.unit,
            "preparation_state": self.item.preparation_state,
            "food_id": self.ref.food_id if self.ref else None,
            "user_food_id": self.ref.user_food_id if self.ref else None,
            "auto_matched": self.auto_matched,
            "grams": self.grams,
            "source": self.source.value,
            **self.macros.to_dict(),
        }


@dataclass
class DayLogResult:
    totals: Macros
    items: List[ResolvedItem] = field(default_factory=list)
    warnings: List[DataQualityWarning] = field(default_factory=list)

    @property
    def per_item_debug_counts(self) -> List[dict]:
        return [
            {
                "index": r.index,
                "food_name": r.item.food_name,
                "source": r.source.value,
                "nutrient_rows": len(r.rows),
                "micro_rows": micro_row_count(r.rows),
                "grams": r.grams,
            }
            for r in self.items
        ]

    def to_dict(self) -> dict:
        return {
            "totals": self.totals.to_dict(),
            "warnings": [w.to_dict() for w in self.warnings],
            "per_item_debug_counts": self.per_item_debug_counts,
            "items": [r.to_dict() for r in self.items],
        }


class DayLogResolver:
    """One instance per request: owns the request-scoped match and nutrient caches."""

    def __init__(self, store: FoodStore, estimator: EstimationClient, capabilities: Capabilities):
        self.store = store
        self.estimator = estimator
        self.capabilities = capabilities
        self.matcher = FoodMatcher(store, cache={})
        self.nutrients = FoodNutrientCache(store)

    # ---------- pass 1 ----------
    async def _grams(self, ref: FoodRef, item: LogItemIn) -> Optional[float]:
        grams = to_grams(item.amount, item.unit)
        if grams is not None:
            return grams
        per_unit = await self.store.grams_per_unit(ref, item.unit, self.capabilities)
        if per_unit is None:
            return None
        return float(item.amount) * per_unit

    async def _bound_ref(
        self, user_id: str, index: int, item: LogItemIn, warnings: List[DataQualityWarning]
    ) -> Optional[FoodRef]:
        ref = FoodRef(food_id=item.food_id, user_food_id=item.user_food_id)
        if await self.store.get_food(ref, user_id) is not None:
            return ref
        warnings.append(
            DataQualityWarning("invalid_item", f"Referenced food for '{item.food_name}' is not available; matching by name", index)
        )
        return None

    async def _substitute(
        self, user_id: str, index: int, item: LogItemIn, current: FoodRef, warnings: List[DataQualityWarning]
    ) -> Optional[Deterministic]:
        match = await self.matcher.match(user_id, item.food_name, exclude=current)
        if match is None:
            return None
        rows = await self.nutrients.get(match.ref)
        if not has_micronutrients(rows):
            return None
        grams = await self._grams(match.ref, item)
        if grams is None:
            return None
        logger.warning("'%s' has no micronutrient data; substituted %s", item.food_name, match.name)
        warnings.append(
            DataQualityWarning(
                "substituted",
                f"'{item.food_name}' had no micronutrient data; used '{match.name}' instead",
                index,
            )
        )
        return Deterministic(ref=match.ref, grams=grams, rows=rows, auto_matched=True)

    async def partition(
        self, user_id: str, index: int, item: LogItemIn, warnings: List[DataQualityWarning]
    ) -> Resolution:
        ref: Optional[FoodRef] = None
        auto = False
        if item.food_id is not None or item.user_food_id is not None:
            ref = await self._bound_ref(user_id, index, item, warnings)

        if ref is None:
            match = await self.matcher.match(user_id, item.food_name)
            if match is None:
                return Estimated(reason="no_match")
            ref, auto = match.ref, True
            if normalize_name(match.name) != normalize_name(item.food_name):
                logger.warning("auto-matched '%s' to '%s'", item.food_name, match.name)
                warnings.append(
                    DataQualityWarning("auto_matched", f"'{item.food_name}' was matched to '{match.name}'", index)
                )

        grams = await self._grams(ref, item)
        if grams is None:
            return Estimated(reason="unit", ref=ref, auto_matched=auto)

        rows = await self.nutrients.get(ref)
        if not rows:
            return Estimated(reason="no_rows", ref=ref, auto_matched=auto)

        if not has_micronutrients(rows):
            substitute = await self._substitute(user_id, index, item, ref, warnings)
            if substitute is not None:
                return substitute
            warnings.append(
                DataQualityWarning(
                    "low_coverage", f"'{item.food_name}' has macros only; micronutrient totals are incomplete", index
                )
            )

        return Deterministic(ref=ref, grams=grams, rows=rows, auto_matched=auto)

    # ---------- pass 2 ----------
    async def _estimate(
        self,
        pending: Sequence[tuple],
        notes: Optional[str],
        warnings: List[DataQualityWarning],
    ) -> List[ResolvedItem]:
        requests = [
            EstimateRequestItem(
                food_name=item.food_name,
                quantity=float(item.amount),
                unit=item.unit,
                preparation_state=item.preparation_state,
            )
            for _, item, _ in pending
        ]
        result = await self.estimator.estimate(requests, notes)

        for w in result.warnings:
            kind = "cached_estimate" if w == CACHED_ESTIMATE_WARNING else "estimated"
            if w.startswith("No estimate returned"):
                kind = "missing_estimate"
            warnings.append(DataQualityWarning(kind, w))

        out: List[ResolvedItem] = []
        for (index, item, resolution), est in zip(pending, result.per_item):
            warnings.append(
                DataQualityWarning("estimated", f"'{item.food_name}' was estimated ({resolution.reason})", index)
            )
            macros = Macros(
                calories=est.calories,
                protein_g=est.protein_g,
                carbs_g=est.carbs_g,
                fats_g=est.fats_g,
                alcohol_g=0.0,
            )
            rows = [
                NutrientRow(ENERGY_CODE, float(est.calories)),
                NutrientRow(PROTEIN_CODE, float(est.protein_g)),
                NutrientRow(CARBS_CODE, float(est.carbs_g)),
                NutrientRow(FAT_CODE, float(est.fats_g)),
            ]
            out.append(
                ResolvedItem(
                    index=index,
                    item=item,
                    source=ItemSource.ai,
                    macros=macros,
                    rows=rows,
                    grams=est.grams,
                    ref=resolution.ref,
                    auto_matched=resolution.auto_matched,
                )
            )
        return out

    async def resolve(self, user_id: str, items: Sequence[LogItemIn], notes: Optional[str] = None) -> DayLogResult:
        warnings: List[DataQualityWarning] = []
        resolved: Dict[int, ResolvedItem] = {}
        pending: List[tuple] = []

        for index, item in enumerate(items):
            if not (item.food_name or "").strip():
                warnings.append(DataQualityWarning("invalid_item", "Item without a food name was skipped", index))
                continue
            if not is_valid_quantity(item.amount):
                warnings.append(
                    DataQualityWarning("invalid_item", f"'{item.food_name}' has no positive quantity; skipped", index)
                )
                continue
            if not normalize_unit(item.unit):
                warnings.append(DataQualityWarning("unit_assumed", f"No unit for '{item.food_name}'; assumed grams", index))
            item = replace(item, unit=normalize_unit(item.unit) or "g")

            resolution = await self.partition(user_id, index, item, warnings)
            if isinstance(resolution, Estimated):
                pending.append((index, item, resolution))
                continue

            scaled = scale_rows(resolution.rows, resolution.grams)
            resolved[index] = ResolvedItem(
                index=index,
                item=item,
                source=ItemSource.db,
                macros=macro_totals(scaled),
                rows=scaled,
                grams=round1(resolution.grams),
                ref=resolution.ref,
                auto_matched=resolution.auto_matched,
            )

        if pending:
            for r in await self._estimate(pending, notes, warnings):
                resolved[r.index] = r

        ordered = [resolved[i] for i in sorted(resolved)]
        return DayLogResult(
            totals=sum_macros(r.macros for r in ordered),
            items=ordered,
            warnings=sorted(warnings, key=lambda w: -1 if w.item_index is None else w.item_index),
        )


# ---------- persistence ----------
async def save_day_log(
    factory: async_sessionmaker[AsyncSession],
    user_id: str,
    log_date: date,
    result: DayLogResult,
    notes: Optional[str] = None,
    water_ml: Optional[float] = None,
    salt_g: Optional[float] = None,
) -> None:
    """Replace the stored day (header, items, item nutrients) in one transaction."""
    try:
        async with factory() as session:
            async with session.begin():
                day = (
                    await session.exec(
                        select(FoodDayLog).where(FoodDayLog.user_id == user_id, FoodDayLog.log_date == log_date)
                    )
                ).first()
                if day is None:
                    day = FoodDayLog(user_id=user_id, log_date=log_date)
                day.calories = int(result.totals.calories)
                day.protein_g = int(result.totals.protein_g)
                day.carbs_g = int(result.totals.carbs_g)
                day.fats_g = int(result.totals.fats_g)
                day.alcohol_g = float(result.totals.alcohol_g)
                day.notes = notes
                day.water_ml = None if water_ml is None else non_negative(water_ml)
                day.salt_g = None if salt_g is None else non_negative(salt_g)
                day.updated_at = utc_now()
                session.add(day)

                old_items = (
                    await session.exec(
                        select(FoodLogItem).where(FoodLogItem.user_id == user_id, FoodLogItem.log_date == log_date)
                    )
                ).all()
                old_ids = [it.id for it in old_items]
                if old_ids:
                    old_rows = (
                        await session.exec(select(FoodLogItemNutrient).where(FoodLogItemNutrient.item_id.in_(old_ids)))
                    ).all()
                    for row in old_rows:
                        await session.delete(row)
                    await session.flush()
                for it in old_items:
                    await session.delete(it)
                await session.flush()

                for position, r in enumerate(result.items):
                    item = FoodLogItem(
                        user_id=user_id,
                        log_date=log_date,
                        position=position,
                        food_name=r.item.food_name,
                        amount=float(r.item.amount),
                        unit=r.item.unit,
                        preparation_state=r.item.preparation_state,
                        food_id=r.ref.food_id if r.ref else None,
                        user_food_id=r.ref.user_food_id if r.ref else None,
                        auto_matched=r.auto_matched,
                        grams=r.grams,
                        source=r.source,
                        calories=int(r.macros.calories),
                        protein_g=int(r.macros.protein_g),
                        carbs_g=int(r.macros.carbs_g),
                        fats_g=int(r.macros.fats_g),
                        alcohol_g=float(r.macros.alcohol_g),
                    )
                    session.add(item)
                    await session.flush()
                    for code, amount in merge_rows(r.rows).items():
                        session.add(FoodLogItemNutrient(item_id=item.id, code=code, amount=amount))
    except SQLAlchemyError as exc:
        raise UpstreamError(f"Could not save day log: {exc}", upstream="datastore") from exc


async def resolve_day_log(
    factory: async_sessionmaker[AsyncSession],
    estimator: EstimationClient,
    capabilities: Capabilities,
    user_id: Optional[str],
    log_date: Optional[date],
    items: Sequence[LogItemIn],
    notes: Optional[str] = None,
    water_ml: Optional[float] = None,
    salt_g: Optional[float] = None,
) -> DayLogResult:
    if not (user_id or "").strip():
        raise ValidationError("user_id is required")
    if log_date is None:
        raise ValidationError("date is required")

    resolver = DayLogResolver(FoodStore(factory), estimator, capabilities)
    result = await resolver.resolve(user_id, items, notes)
    await save_day_log(factory, user_id, log_date, result, notes=notes, water_ml=water_ml, salt_g=salt_g)
    logger.info(
        "saved day log %s/%s: %d items, %d kcal, %d warnings",
        user_id,
        log_date.isoformat(),
        len(result.items),
        result.totals.calories,
        len(result.warnings),
    )
    return result
