"""Async client for USDA FoodData Central (FDC)."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

import httpx

from nutripilot.core.config import Settings
from nutripilot.core.errors import ConfigurationError, UpstreamError
from nutripilot.services.taxonomy import NutrientObservation, normalize_food
from nutripilot.utils.units import SERVING_UNIT, normalize_unit, to_grams
from nutripilot.utils.validators import safe_float

logger = logging.getLogger(__name__)

FDC_SOURCE = "fdc"
_HEADERS = {"Accept": "application/json", "User-Agent": "PhysiquePilot/0.1"}


@dataclass
class ExternalFood:
    external_id: str
    name: str
    brand: Optional[str] = None
    observations: List[NutrientObservation] = field(default_factory=list)
    portions: List[Tuple[str, float]] = field(default_factory=list)


@dataclass
class ExternalCandidate:
    external_id: str
    name: str
    brand: Optional[str] = None
    data_type: Optional[str] = None
    per_100g: Dict[str, float] = field(default_factory=dict)


def _str_or_none(v: Any) -> Optional[str]:
    return str(v) if v is not None and str(v).strip() else None


# -------------------- parsing --------------------
def observations_from_details(food_json: Dict[str, Any]) -> List[NutrientObservation]:
    """Details endpoint: ``foodNutrients[].nutrient`` + ``amount``; abridged rows are flat."""
    out: List[NutrientObservation] = []
    for n in food_json.get("foodNutrients") or []:
        meta = n.get("nutrient") or n
        amount = n.get("amount")
        if amount is None:
            amount = n.get("value")
        if amount is None:
            continue
        out.append(
            NutrientObservation(
                external_id=_str_or_none(meta.get("id")),
                external_number=_str_or_none(meta.get("number")),
                name=str(meta.get("name") or ""),
                unit=meta.get("unitName"),
                amount_per_100g=safe_float(amount),
            )
        )
    return out


def observations_from_search(food_json: Dict[str, Any]) -> List[NutrientObservation]:
    out: List[NutrientObservation] = []
    for n in food_json.get("foodNutrients") or []:
        if n.get("value") is None:
            continue
        out.append(
            NutrientObservation(
                external_id=_str_or_none(n.get("nutrientId")),
                external_number=_str_or_none(n.get("nutrientNumber")),
                name=str(n.get("nutrientName") or ""),
                unit=n.get("unitName"),
                amount_per_100g=safe_float(n.get("value")),
            )
        )
    return out


def portions_from_details(food_json: Dict[str, Any]) -> List[Tuple[str, float]]:
    """(unit, grams per unit) pairs. The first usable portion also defines ``serv``."""
    units: Dict[str, float] = {}
    for p in food_json.get("foodPortions") or []:
        grams = safe_float(p.get("gramWeight"))
        amount = safe_float(p.get("amount")) or 1.0
        if grams <= 0:
            continue
        per_unit = grams / amount
        units.setdefault(SERVING_UNIT, per_unit)
        measure = normalize_unit((p.get("measureUnit") or {}).get("name"))
        if measure and measure != "undetermined" and to_grams(1, measure) is None:
            units.setdefault(measure, per_unit)

    # Branded foods carry a single label serving instead of portions.
    size = safe_float(food_json.get("servingSize"))
    size_unit = normalize_unit(food_json.get("servingSizeUnit"))
    if size_unit == "grm":
        size_unit = "g"
    if size > 0 and SERVING_UNIT not in units:
        grams = to_grams(size, size_unit)
        if grams:
            units[SERVING_UNIT] = grams

    return list(units.items())


# -------------------- client --------------------
class FoodDataClient:
    def __init__(
        self,
        api_key: Optional[str],
        base_url: str = "https://api.nal.usda.gov/fdc",
        timeout_s: float = 10.0,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        # Keys pasted into .env often keep their quotes.
        self.api_key = (api_key or "").strip().strip('"').strip("'")
        self.base_url = base_url.strip().rstrip("/")
        self.timeout_s = timeout_s
        self._http = http_client

    @classmethod
    def from_settings(cls, settings: Settings) -> "FoodDataClient":
        return cls(api_key=settings.fdc_api_key, base_url=settings.fdc_base_url)

    async def _get(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        if not self.api_key:
            raise ConfigurationError("FDC_API_KEY not configured")
        url = f"{self.base_url}{path}"
        query = {"api_key": self.api_key, **(params or {})}

        try:
            if self._http is not None:
                r = await self._http.get(url, params=query, headers=_HEADERS, timeout=self.timeout_s)
            else:
                async with httpx.AsyncClient(timeout=self.timeout_s, trust_env=False) as client:
                    r = await client.get(url, params=query, headers=_HEADERS)
        except httpx.HTTPError as exc:
            raise UpstreamError(f"FDC request error: {exc}", upstream=FDC_SOURCE) from exc

        logger.debug("FDC GET %s -> %s", path, r.status_code)
        if r.status_code != 200:
            raise UpstreamError(f"FDC request failed: HTTP {r.status_code}", upstream=FDC_SOURCE)
        try:
            return r.json()
        except ValueError as exc:
            raise UpstreamError("FDC invalid JSON", upstream=FDC_SOURCE) from exc

    async def fetch_food(self, fdc_id: str) -> ExternalFood:
        data = await self._get(f"/v1/food/{fdc_id}")
        return ExternalFood(
            external_id=str(data.get("fdcId") or fdc_id),
            name=str(data.get("description") or "unknown"),
            brand=_str_or_none(data.get("brandOwner") or data.get("brandName")),
            observations=observations_from_details(data),
            portions=portions_from_details(data),
        )

    async def search(self, query: str, limit: int = 5) -> List[ExternalCandidate]:
        data = await self._get("/v1/foods/search", {"query": query, "pageSize": limit})
        out: List[ExternalCandidate] = []
        for f in (data.get("foods") or [])[:limit]:
            out.append(
                ExternalCandidate(
                    external_id=str(f.get("fdcId")),
                    name=str(f.get("description") or f.get("lowercaseDescription") or "unknown"),
                    brand=_str_or_none(f.get("brandOwner") or f.get("brandName")),
                    data_type=_str_or_none(f.get("dataType")),
                    per_100g=normalize_food(observations_from_search(f)),
                )
            )
        return out
