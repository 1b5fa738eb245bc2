"""Estimated macros for foods that have no verified nutrient data.

The external model is asked for a strict JSON document (per-item macros plus a
batch total). Answers are cached process-wide by content hash so repeating
the same request never calls the service twice within the TTL.
"""

from __future__ import annotations

import copy
import hashlib
import json
import logging
import time
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

import httpx

from nutripilot.core.config import Settings
from nutripilot.core.errors import ConfigurationError, EstimationError
from nutripilot.utils.llm import chat_completion_json
from nutripilot.utils.nutrition import round0, round1
from nutripilot.utils.text import normalize_name
from nutripilot.utils.units import normalize_unit
from nutripilot.utils.validators import non_negative, safe_float

logger = logging.getLogger(__name__)

CACHED_ESTIMATE_WARNING = "Used cached estimate"
EMPTY_REQUEST_WARNING = "No items to estimate"

SYSTEM_PROMPT = (
    "You are a nutrition estimator. For every food item you receive, estimate the "
    "edible weight in grams and the calories, protein, carbohydrate and fat for the "
    "given quantity, taking the preparation state into account. Echo each item's "
    "food, quantity, unit and state exactly as given. Use whole numbers for macros. "
    "Put any assumption you had to make into warnings."
)

_NUM = {"type": "number"}
_MACRO_PROPS = {"calories": _NUM, "protein_g": _NUM, "carbs_g": _NUM, "fats_g": _NUM}

ESTIMATE_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "additionalProperties": False,
    "required": ["items", "totals", "warnings"],
    "properties": {
        "items": {
            "type": "array",
            "items": {
                "type": "object",
                "additionalProperties": False,
                "required": ["food", "quantity", "unit", "state", "grams", *_MACRO_PROPS],
                "properties": {
                    "food": {"type": "string"},
                    "quantity": _NUM,
                    "unit": {"type": "string"},
                    "state": {"type": "string"},
                    "grams": _NUM,
                    **_MACRO_PROPS,
                },
            },
        },
        "totals": {
            "type": "object",
            "additionalProperties": False,
            "required": list(_MACRO_PROPS),
            "properties": dict(_MACRO_PROPS),
        },
        "warnings": {"type": "array", "items": {"type": "string"}},
    },
}


@dataclass
class EstimateRequestItem:
    food_name: str
    quantity: float
    unit: str
    preparation_state: Optional[str] = None

    def to_payload(self) -> Dict[str, Any]:
        return {
            "food": self.food_name,
            "quantity": self.quantity,
            "unit": self.unit,
            "state": self.preparation_state or "",
        }


@dataclass
class EstimatedItem:
    food_name: str
    quantity: float
    unit: str
    preparation_state: Optional[str] = None
    grams: Optional[float] = None
    calories: int = 0
    protein_g: int = 0
    carbs_g: int = 0
    fats_g: int = 0
    missing: bool = False


@dataclass
class EstimateResult:
    calories: int = 0
    protein_g: int = 0
    carbs_g: int = 0
    fats_g: int = 0
    per_item: List[EstimatedItem] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    cached: bool = False


# ---------- caching ----------
class EstimateCache:
    """Bounded LRU with a per-entry TTL."""

    def __init__(self, max_entries: int = 256, ttl_s: float = 21600.0, clock: Callable[[], float] = time.monotonic):
        self.max_entries = max(1, int(max_entries))
        self.ttl_s = float(ttl_s)
        self._clock = clock
        self._entries: "OrderedDict[str, Tuple[float, EstimateResult]]" = OrderedDict()

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, key: str) -> Optional[EstimateResult]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        expires_at, value = entry
        if self._clock() >= expires_at:
            del self._entries[key]
            return None
        self._entries.move_to_end(key)
        return copy.deepcopy(value)

    def put(self, key: str, value: EstimateResult) -> None:
        self._entries[key] = (self._clock() + self.ttl_s, copy.deepcopy(value))
        self._entries.move_to_end(key)
        while len(self._entries) > self.max_entries:
            self._entries.popitem(last=False)


def item_key(food_name: str, quantity: Any, unit: Optional[str], state: Optional[str]) -> Tuple[str, float, str, str]:
    return (
        normalize_name(food_name),
        round(safe_float(quantity), 3),
        normalize_unit(unit),
        (state or "").strip().lower(),
    )


def content_hash(items: Sequence[EstimateRequestItem], notes: Optional[str] = None) -> str:
    keyed = [list(item_key(i.food_name, i.quantity, i.unit, i.preparation_state)) for i in items]
    raw = json.dumps({"items": keyed, "notes": (notes or "").strip()}, sort_keys=True)
    return hashlib.sha1(raw.encode("utf-8")).hexdigest()


# ---------- validation ----------
def _estimated_item(raw: Any) -> Optional[EstimatedItem]:
    if not isinstance(raw, dict) or not isinstance(raw.get("food"), str):
        return None
    grams = non_negative(raw.get("grams"))
    return EstimatedItem(
        food_name=raw["food"],
        quantity=safe_float(raw.get("quantity")),
        unit=str(raw.get("unit") or ""),
        preparation_state=str(raw.get("state") or "") or None,
        grams=round1(grams) if grams > 0 else None,
        calories=round0(non_negative(raw.get("calories"))),
        protein_g=round0(non_negative(raw.get("protein_g"))),
        carbs_g=round0(non_negative(raw.get("carbs_g"))),
        fats_g=round0(non_negative(raw.get("fats_g"))),
    )


def validate_estimate(payload: Dict[str, Any]) -> EstimateResult:
    """Coerce a parsed answer into an EstimateResult; missing sections are fatal."""
    items = payload.get("items")
    totals = payload.get("totals")
    if not isinstance(items, list) or not isinstance(totals, dict):
        raise EstimationError("Estimation incomplete: items or totals missing")

    parsed = [it for it in (_estimated_item(raw) for raw in items) if it is not None]
    warnings = [w for w in (payload.get("warnings") or []) if isinstance(w, str) and w.strip()]
    return EstimateResult(
        calories=round0(non_negative(totals.get("calories"))),
        protein_g=round0(non_negative(totals.get("protein_g"))),
        carbs_g=round0(non_negative(totals.get("carbs_g"))),
        fats_g=round0(non_negative(totals.get("fats_g"))),
        per_item=parsed,
        warnings=warnings,
    )


def align_items(
    requested: Sequence[EstimateRequestItem], estimated: Sequence[EstimatedItem]
) -> List[EstimatedItem]:
    """One estimate per requested item, in request order.

    Matching is on (normalized name, quantity, unit, state). Each estimate is
    consumed at most once; requests without a counterpart get zero macros.
    """
    pool: Dict[tuple, List[EstimatedItem]] = {}
    for est in estimated:
        pool.setdefault(item_key(est.food_name, est.quantity, est.unit, est.preparation_state), []).append(est)

    aligned: List[EstimatedItem] = []
    for req in requested:
        bucket = pool.get(item_key(req.food_name, req.quantity, req.unit, req.preparation_state))
        if bucket:
            est = bucket.pop(0)
            aligned.append(
                EstimatedItem(
                    food_name=req.food_name,
                    quantity=req.quantity,
                    unit=req.unit,
                    preparation_state=req.preparation_state,
                    grams=est.grams,
                    calories=est.calories,
                    protein_g=est.protein_g,
                    carbs_g=est.carbs_g,
                    fats_g=est.fats_g,
                )
            )
        else:
            aligned.append(
                EstimatedItem(
                    food_name=req.food_name,
                    quantity=req.quantity,
                    unit=req.unit,
                    preparation_state=req.preparation_state,
                    missing=True,
                )
            )
    return aligned


# ---------- client ----------
class EstimationClient:
    def __init__(
        self,
        api_key: Optional[str],
        base_url: str,
        model: str,
        cache: EstimateCache,
        timeout_s: float = 60.0,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.model = model
        self.cache = cache
        self.timeout_s = timeout_s
        self._http = http_client

    @classmethod
    def from_settings(cls, settings: Settings, cache: Optional[EstimateCache] = None) -> "EstimationClient":
        return cls(
            api_key=settings.openai_api_key,
            base_url=settings.estimation_base_url,
            model=settings.estimation_model,
            cache=cache or EstimateCache(settings.estimate_cache_max_entries, settings.estimate_cache_ttl_s),
            timeout_s=settings.estimation_timeout_s,
        )

    def _payload(self, items: Sequence[EstimateRequestItem], notes: Optional[str]) -> Dict[str, Any]:
        user = {"items": [i.to_payload() for i in items], "notes": notes or ""}
        return {
            "model": self.model,
            "temperature": 0.2,
            "messages": [
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": json.dumps(user, ensure_ascii=False)},
            ],
            "response_format": {
                "type": "json_schema",
                "json_schema": {"name": "nutrition_estimate", "strict": True, "schema": ESTIMATE_SCHEMA},
            },
        }

    async def _request(self, items: Sequence[EstimateRequestItem], notes: Optional[str]) -> Dict[str, Any]:
        url = f"{self.base_url}/chat/completions"
        payload = self._payload(items, notes)
        if self._http is not None:
            return await chat_completion_json(self._http, url, self.api_key or "", payload, timeout=self.timeout_s)
        async with httpx.AsyncClient(timeout=self.timeout_s) as client:
            return await chat_completion_json(client, url, self.api_key or "", payload, timeout=self.timeout_s)

    async def estimate(self, items: Sequence[EstimateRequestItem], notes: Optional[str] = None) -> EstimateResult:
        if not items:
            return EstimateResult(warnings=[EMPTY_REQUEST_WARNING])

        key = content_hash(items, notes)
        cached = self.cache.get(key)
        if cached is not None:
            logger.info("estimate cache hit for %d item(s)", len(items))
            cached.warnings.append(CACHED_ESTIMATE_WARNING)
            cached.cached = True
            return cached

        if not self.api_key:
            raise ConfigurationError("OPENAI_API_KEY is not configured; cannot estimate unmatched foods")

        logger.info("requesting estimate for %d item(s) from %s", len(items), self.model)
        result = validate_estimate(await self._request(items, notes))
        result.per_item = align_items(items, result.per_item)
        for est in result.per_item:
            if est.missing:
                result.warnings.append(f"No estimate returned for '{est.food_name}'")

        self.cache.put(key, result)
        return copy.deepcopy(result)
