from __future__ import annotations

from datetime import date
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


class MacroTotals(BaseModel):
    calories: float = 0
    protein_g: float = 0
    carbs_g: float = 0
    fats_g: float = 0
    alcohol_g: float = 0.0


class WarningOut(BaseModel):
    kind: str
    message: str
    item_index: Optional[int] = None


# ---------- day log ----------
class LogItemPayload(BaseModel):
    food_name: str = ""
    amount: Optional[float] = None
    unit: Optional[str] = None
    preparation_state: Optional[str] = None
    food_id: Optional[int] = None
    user_food_id: Optional[int] = None


class DayLogRequest(BaseModel):
    user_id: Optional[str] = None
    # 'date' would shadow the type inside the model; alias it
    log_date: Optional[date] = Field(None, alias="date")
    items: List[LogItemPayload] = Field(default_factory=list)
    notes: Optional[str] = None
    water_ml: Optional[float] = Field(None, ge=0)
    salt_g: Optional[float] = Field(None, ge=0)
    model_config = ConfigDict(populate_by_name=True)


class ItemDebugCounts(BaseModel):
    index: int
    food_name: str
    source: Literal["db", "ai"]
    nutrient_rows: int
    micro_rows: int
    grams: Optional[float] = None


class ResolvedItemOut(MacroTotals):
    index: int
    food_name: str
    amount: Optional[float] = None
    unit: str
    preparation_state: Optional[str] = None
    food_id: Optional[int] = None
    user_food_id: Optional[int] = None
    auto_matched: bool = False
    grams: Optional[float] = None
    source: Literal["db", "ai"]


class DayLogResponse(BaseModel):
    ok: bool = True
    totals: MacroTotals
    warnings: List[WarningOut] = []
    per_item_debug_counts: List[ItemDebugCounts] = []
    items: List[ResolvedItemOut] = []


# ---------- foods ----------
class ImportRequest(BaseModel):
    external_id: str = Field(..., min_length=1, description="FoodData Central id, e.g. '1105314'")
    refresh: bool = False


class ImportResponse(BaseModel):
    food_id: int
    reused: bool
    name: str
    nutrient_count: int = 0


class LookupRequest(BaseModel):
    query: str = Field(..., min_length=2, description="Free text, e.g. 'greek yogurt 2%'")
    limit: int = Field(5, ge=1, le=25)


class LookupCandidate(BaseModel):
    provider: Literal["fdc"] = "fdc"
    provider_id: str
    name: str
    brand: Optional[str] = None
    data_type: Optional[str] = None
    kcal_100g: Optional[float] = None
    protein_g_100g: Optional[float] = None
    carbs_g_100g: Optional[float] = None
    fat_g_100g: Optional[float] = None


class LookupResponse(BaseModel):
    candidates: List[LookupCandidate] = []


# ---------- micro targets ----------
class MicroTargetOut(BaseModel):
    code: str
    label: str
    unit: str
    group: str
    target: float
    overridden: bool = False


class MicroTargetsResponse(BaseModel):
    user_id: str
    mode: Literal["rdi", "bodyweight", "custom"]
    sex: str
    weight_kg: Optional[float] = None
    targets: List[MicroTargetOut] = []


class MicroTargetsUpdate(BaseModel):
    user_id: Optional[str] = None
    mode: str = "rdi"
    # code -> amount; null removes a stored override
    overrides: Dict[str, Optional[float]] = Field(default_factory=dict)


# ---------- day targets ----------
class InitRequest(BaseModel):
    user_id: Optional[str] = None


class DayTargetOut(BaseModel):
    calories: int
    protein_g: int
    carbs_g: int
    fats_g: int


class FlexRuleOut(BaseModel):
    week_start: date
    base_cheat_meals: int
    banked_cheat_meals: int
    used_cheat_meals: int
    alcohol_units_week: float


class InitResponse(BaseModel):
    ok: bool = True
    targets: Dict[str, DayTargetOut]
    flex: FlexRuleOut


class TargetFieldUpdate(BaseModel):
    user_id: Optional[str] = None
    field: Literal["calories", "protein_g", "carbs_g", "fats_g"]
    value: float = Field(..., ge=0)


class RatiosUpdate(BaseModel):
    user_id: Optional[str] = None
    protein: Optional[float] = Field(None, ge=0, description="g per lb body weight")
    carbs: Optional[float] = Field(None, ge=0)
    fats: Optional[float] = Field(None, ge=0)


# ---------- summary ----------
class BreakdownRow(BaseModel):
    code: str
    label: str
    unit: str
    group: str
    amount: float


class SummaryItem(MacroTotals):
    id: int
    food_name: str
    amount: float
    unit: str
    preparation_state: Optional[str] = None
    food_id: Optional[int] = None
    user_food_id: Optional[int] = None
    auto_matched: bool = False
    grams: Optional[float] = None
    source: Literal["db", "ai"]


class DaySummaryResponse(BaseModel):
    user_id: str
    log_date: date = Field(..., alias="date")
    totals: MacroTotals
    nutrient_breakdown: List[BreakdownRow] = []
    items: List[SummaryItem] = []
    notes: Optional[str] = None
    water_ml: Optional[float] = None
    salt_g: Optional[float] = None
    day_type: Optional[str] = None
    target: Optional[DayTargetOut] = None
    remaining: Optional[MacroTotals] = None
    model_config = ConfigDict(populate_by_name=True)
