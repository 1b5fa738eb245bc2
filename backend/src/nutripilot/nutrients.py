"""Canonical nutrient codes and their presentation metadata.

Every stored nutrient amount carries one of the codes in ``NUTRIENTS``.
Anything else is dropped before it reaches the datastore.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, FrozenSet, Tuple

GROUP_ORDER: Dict[str, int] = {
    "macros": 1,
    "fats": 2,
    "vitamins": 3,
    "minerals": 4,
    "amino_acids": 5,
    "other": 6,
}


@dataclass(frozen=True)
class NutrientInfo:
    code: str
    label: str
    unit: str
    group: str
    order: int


def _group(group: str, *entries: Tuple[str, str, str]) -> Dict[str, NutrientInfo]:
    return {
        code: NutrientInfo(code=code, label=label, unit=unit, group=group, order=i)
        for i, (code, label, unit) in enumerate(entries, start=1)
    }


NUTRIENTS: Dict[str, NutrientInfo] = {
    **_group(
        "macros",
        ("energy_kcal", "Energy", "kcal"),
        ("protein_g", "Protein", "g"),
        ("carbs_g", "Carbohydrates", "g"),
        ("fiber_g", "Fiber", "g"),
        ("net_carbs_g", "Net carbs", "g"),
        ("sugars_g", "Sugars", "g"),
        ("fat_g", "Fat", "g"),
        ("alcohol_g", "Alcohol", "g"),
        ("water_g", "Water", "g"),
    ),
    **_group(
        "fats",
        ("saturated_fat_g", "Saturated fat", "g"),
        ("monounsaturated_fat_g", "Monounsaturated fat", "g"),
        ("polyunsaturated_fat_g", "Polyunsaturated fat", "g"),
        ("trans_fat_g", "Trans fat", "g"),
        ("omega3_g", "Omega-3", "g"),
        ("omega6_g", "Omega-6", "g"),
        ("cholesterol_mg", "Cholesterol", "mg"),
    ),
    **_group(
        "vitamins",
        ("vitamin_a_ug", "Vitamin A", "ug"),
        ("vitamin_c_mg", "Vitamin C", "mg"),
        ("vitamin_d_ug", "Vitamin D", "ug"),
        ("vitamin_e_mg", "Vitamin E", "mg"),
        ("vitamin_k_ug", "Vitamin K", "ug"),
        ("thiamin_mg", "Thiamin (B1)", "mg"),
        ("riboflavin_mg", "Riboflavin (B2)", "mg"),
        ("niacin_mg", "Niacin (B3)", "mg"),
        ("pantothenic_acid_mg", "Pantothenic acid (B5)", "mg"),
        ("vitamin_b6_mg", "Vitamin B6", "mg"),
        ("biotin_ug", "Biotin (B7)", "ug"),
        ("folate_ug", "Folate", "ug"),
        ("vitamin_b12_ug", "Vitamin B12", "ug"),
        ("choline_mg", "Choline", "mg"),
    ),
    **_group(
        "minerals",
        ("calcium_mg", "Calcium", "mg"),
        ("iron_mg", "Iron", "mg"),
        ("magnesium_mg", "Magnesium", "mg"),
        ("phosphorus_mg", "Phosphorus", "mg"),
        ("potassium_mg", "Potassium", "mg"),
        ("sodium_mg", "Sodium", "mg"),
        ("zinc_mg", "Zinc", "mg"),
        ("copper_mg", "Copper", "mg"),
        ("manganese_mg", "Manganese", "mg"),
        ("selenium_ug", "Selenium", "ug"),
        ("iodine_ug", "Iodine", "ug"),
    ),
    **_group(
        "amino_acids",
        ("histidine_g", "Histidine", "g"),
        ("isoleucine_g", "Isoleucine", "g"),
        ("leucine_g", "Leucine", "g"),
        ("lysine_g", "Lysine", "g"),
        ("methionine_g", "Methionine", "g"),
        ("phenylalanine_g", "Phenylalanine", "g"),
        ("threonine_g", "Threonine", "g"),
        ("tryptophan_g", "Tryptophan", "g"),
        ("valine_g", "Valine", "g"),
    ),
    **_group(
        "other",
        ("caffeine_mg", "Caffeine", "mg"),
    ),
}

ALLOWED_CODES: FrozenSet[str] = frozenset(NUTRIENTS)

# Codes that feed macro totals
ENERGY_CODE = "energy_kcal"
PROTEIN_CODE = "protein_g"
CARBS_CODE = "carbs_g"
FAT_CODE = "fat_g"
ALCOHOL_CODE = "alcohol_g"
FIBER_CODE = "fiber_g"
NET_CARBS_CODE = "net_carbs_g"

MACRO_CODES: FrozenSet[str] = frozenset(
    code for code, info in NUTRIENTS.items() if info.group in ("macros", "fats")
)

# Sodium is on nearly every nutrition label, so it says nothing about
# whether a food was imported with full micronutrient data.
MICRO_CODES: FrozenSet[str] = frozenset(
    code
    for code, info in NUTRIENTS.items()
    if info.group in ("vitamins", "minerals") and code != "sodium_mg"
)

# Used to estimate how complete a food record is
KEY_NUTRIENT_CODES: Tuple[str, ...] = (
    "energy_kcal", "protein_g", "carbs_g", "fat_g", "fiber_g", "sugars_g",
    "saturated_fat_g", "monounsaturated_fat_g", "polyunsaturated_fat_g",
    "trans_fat_g", "cholesterol_mg", "omega3_g", "omega6_g",
    "vitamin_a_ug", "vitamin_c_mg", "vitamin_d_ug", "vitamin_e_mg",
    "vitamin_k_ug", "thiamin_mg", "riboflavin_mg", "niacin_mg",
    "pantothenic_acid_mg", "vitamin_b6_mg", "biotin_ug", "folate_ug",
    "vitamin_b12_ug", "choline_mg",
    "calcium_mg", "iron_mg", "magnesium_mg", "phosphorus_mg", "potassium_mg",
    "sodium_mg", "zinc_mg", "copper_mg", "manganese_mg", "selenium_ug",
    "iodine_ug",
    "histidine_g", "isoleucine_g", "leucine_g", "lysine_g", "methionine_g",
    "phenylalanine_g", "threonine_g", "tryptophan_g", "valine_g",
    "water_g", "alcohol_g", "caffeine_mg",
)


def sort_key(code: str) -> Tuple[int, int, str]:
    info = NUTRIENTS.get(code)
    if info is None:
        return (len(GROUP_ORDER) + 1, 0, code)
    return (GROUP_ORDER[info.group], info.order, code)
