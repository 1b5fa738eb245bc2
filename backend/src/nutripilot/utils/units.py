from __future__ import annotations

import math
from typing import Optional

# Volumes are treated as water-equivalent mass.
GRAMS_PER_UNIT = {
    "g": 1.0,
    "kg": 1000.0,
    "oz": 28.349523125,
    "lb": 453.59237,
    "ml": 1.0,
    "l": 1000.0,
}

_ALIASES = {
    "gram": "g",
    "grams": "g",
    "kilogram": "kg",
    "kilograms": "kg",
    "ounce": "oz",
    "ounces": "oz",
    "lbs": "lb",
    "pound": "lb",
    "pounds": "lb",
    "millilitre": "ml",
    "milliliter": "ml",
    "litre": "l",
    "liter": "l",
}

SERVING_UNIT = "serv"


def normalize_unit(unit: Optional[str]) -> str:
    u = (unit or "").strip().lower()
    return _ALIASES.get(u, u)


def is_valid_quantity(quantity) -> bool:
    try:
        q = float(quantity)
    except (TypeError, ValueError):
        return False
    return math.isfinite(q) and q > 0


def to_grams(quantity, unit: Optional[str]) -> Optional[float]:
    """Convert a mass/volume quantity to grams.

    Returns None for anything that is not a fixed conversion (servings,
    pieces, empty units) or for a non-positive / non-finite quantity.
    """
    if not is_valid_quantity(quantity):
        return None
    factor = GRAMS_PER_UNIT.get(normalize_unit(unit))
    if factor is None:
        return None
    return float(quantity) * factor
