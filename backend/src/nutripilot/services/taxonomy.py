"""Map FoodData Central style nutrient observations onto canonical codes.

Precedence for a single observation:

1. exact external nutrient id (or nutrient number) in ``ID_TABLE``/``NUMBER_TABLE``
2. name fragments in ``NAME_RULES``, evaluated in order; first hit wins

Omega-3/omega-6 sub-species (ALA, EPA, DHA, ...) are recognised but are not
canonical codes themselves. They are only used to derive the totals when a
food does not report them.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Tuple

from nutripilot.nutrients import (
    ALLOWED_CODES,
    CARBS_CODE,
    FIBER_CODE,
    NET_CARBS_CODE,
    NUTRIENTS,
)

OMEGA3_PART = "_omega3_part"
OMEGA6_PART = "_omega6_part"


@dataclass
class NutrientObservation:
    external_id: Optional[str]
    external_number: Optional[str]
    name: str
    unit: str
    amount_per_100g: Optional[float]


# (nutrient id, nutrient number, code)
_FDC_IDS: Tuple[Tuple[str, str, str], ...] = (
    ("1008", "208", "energy_kcal"),
    ("2047", "957", "energy_kcal"),
    ("2048", "958", "energy_kcal"),
    ("1003", "203", "protein_g"),
    ("1004", "204", "fat_g"),
    ("1005", "205", "carbs_g"),
    ("1079", "291", "fiber_g"),
    ("2000", "269", "sugars_g"),
    ("1063", "269.3", "sugars_g"),
    ("1018", "221", "alcohol_g"),
    ("1051", "255", "water_g"),
    ("1057", "262", "caffeine_mg"),
    ("1258", "606", "saturated_fat_g"),
    ("1292", "645", "monounsaturated_fat_g"),
    ("1293", "646", "polyunsaturated_fat_g"),
    ("1257", "605", "trans_fat_g"),
    ("1253", "601", "cholesterol_mg"),
    ("1106", "320", "vitamin_a_ug"),
    ("1162", "401", "vitamin_c_mg"),
    ("1114", "328", "vitamin_d_ug"),
    ("1110", "324", "vitamin_d_ug"),
    ("1109", "323", "vitamin_e_mg"),
    ("1185", "430", "vitamin_k_ug"),
    ("1165", "404", "thiamin_mg"),
    ("1166", "405", "riboflavin_mg"),
    ("1167", "406", "niacin_mg"),
    ("1170", "410", "pantothenic_acid_mg"),
    ("1175", "415", "vitamin_b6_mg"),
    ("1176", "416", "biotin_ug"),
    ("1177", "417", "folate_ug"),
    ("1190", "435", "folate_ug"),
    ("1178", "418", "vitamin_b12_ug"),
    ("1180", "421", "choline_mg"),
    ("1087", "301", "calcium_mg"),
    ("1089", "303", "iron_mg"),
    ("1090", "304", "magnesium_mg"),
    ("1091", "305", "phosphorus_mg"),
    ("1092", "306", "potassium_mg"),
    ("1093", "307", "sodium_mg"),
    ("1095", "309", "zinc_mg"),
    ("1098", "312", "copper_mg"),
    ("1101", "315", "manganese_mg"),
    ("1103", "317", "selenium_ug"),
    ("1100", "314", "iodine_ug"),
    ("1221", "512", "histidine_g"),
    ("1212", "503", "isoleucine_g"),
    ("1213", "504", "leucine_g"),
    ("1214", "505", "lysine_g"),
    ("1215", "506", "methionine_g"),
    ("1217", "508", "phenylalanine_g"),
    ("1211", "502", "threonine_g"),
    ("1210", "501", "tryptophan_g"),
    ("1219", "510", "valine_g"),
    # omega sub-species
    ("1404", "851", OMEGA3_PART),  # 18:3 n-3 (ALA)
    ("1270", "619", OMEGA3_PART),  # 18:3 undifferentiated
    ("1278", "629", OMEGA3_PART),  # 20:5 n-3 (EPA)
    ("1280", "631", OMEGA3_PART),  # 22:5 n-3 (DPA)
    ("1272", "621", OMEGA3_PART),  # 22:6 n-3 (DHA)
    ("1316", "675", OMEGA6_PART),  # 18:2 n-6 c,c (LA)
    ("1269", "618", OMEGA6_PART),  # 18:2 undifferentiated
    ("1321", "685", OMEGA6_PART),  # 18:3 n-6 (GLA)
    ("1271", "620", OMEGA6_PART),  # 20:4 undifferentiated (AA)
)

ID_TABLE: Dict[str, str] = {nid: code for nid, _, code in _FDC_IDS}
NUMBER_TABLE: Dict[str, str] = {num: code for _, num, code in _FDC_IDS}


@dataclass(frozen=True)
class NameRule:
    code: str
    prefixes: Tuple[str, ...] = ()
    contains: Tuple[str, ...] = ()
    units: Tuple[str, ...] = ()

    def matches(self, name: str, unit: str) -> bool:
        if self.units and unit not in self.units:
            return False
        return name.startswith(self.prefixes) or any(c in name for c in self.contains)


NAME_RULES: Tuple[NameRule, ...] = (
    NameRule("energy_kcal", prefixes=("energy", "calories"), units=("kcal",)),
    NameRule("protein_g", prefixes=("protein", "adjusted protein")),
    NameRule("fat_g", prefixes=("total lipid", "total fat", "fat, total")),
    NameRule("carbs_g", prefixes=("carbohydrate", "total carbohydrate")),
    NameRule("fiber_g", contains=("fiber", "fibre")),
    NameRule("sugars_g", prefixes=("sugars, total", "total sugars", "sugars")),
    NameRule("sodium_mg", prefixes=("sodium",)),
    NameRule("potassium_mg", prefixes=("potassium",)),
    NameRule("calcium_mg", prefixes=("calcium",)),
    NameRule("iron_mg", prefixes=("iron",)),
    NameRule("magnesium_mg", prefixes=("magnesium",)),
    NameRule("phosphorus_mg", prefixes=("phosphorus",)),
    NameRule("zinc_mg", prefixes=("zinc",)),
    NameRule("copper_mg", prefixes=("copper",)),
    NameRule("manganese_mg", prefixes=("manganese",)),
    NameRule("selenium_ug", prefixes=("selenium",)),
    NameRule("iodine_ug", prefixes=("iodine",)),
    NameRule("vitamin_a_ug", prefixes=("vitamin a, rae", "vitamin a (rae)")),
    NameRule("vitamin_c_mg", prefixes=("vitamin c",)),
    NameRule("vitamin_d_ug", prefixes=("vitamin d (d2 + d3)", "vitamin d")),
    NameRule("vitamin_e_mg", prefixes=("vitamin e (alpha-tocopherol)", "vitamin e")),
    NameRule("vitamin_k_ug", prefixes=("vitamin k (phylloquinone)", "vitamin k")),
    NameRule("thiamin_mg", prefixes=("thiamin", "vitamin b-1", "vitamin b1")),
    NameRule("riboflavin_mg", prefixes=("riboflavin", "vitamin b-2", "vitamin b2")),
    NameRule("niacin_mg", prefixes=("niacin", "vitamin b-3", "vitamin b3")),
    NameRule("pantothenic_acid_mg", prefixes=("pantothenic acid", "vitamin b-5", "vitamin b5")),
    NameRule("vitamin_b6_mg", prefixes=("vitamin b-6", "vitamin b6")),
    NameRule("biotin_ug", prefixes=("biotin", "vitamin b-7", "vitamin b7")),
    NameRule("folate_ug", prefixes=("folate",)),
    NameRule("vitamin_b12_ug", prefixes=("vitamin b-12", "vitamin b12")),
    NameRule("choline_mg", prefixes=("choline",)),
    NameRule("cholesterol_mg", prefixes=("cholesterol",)),
    NameRule("saturated_fat_g", prefixes=("saturated",), contains=("total saturated",)),
    NameRule("monounsaturated_fat_g", contains=("monounsaturated",)),
    NameRule("polyunsaturated_fat_g", contains=("polyunsaturated",)),
    NameRule("trans_fat_g", contains=("total trans", "trans fat")),
    NameRule("water_g", prefixes=("water",)),
    NameRule("caffeine_mg", prefixes=("caffeine",)),
    NameRule("histidine_g", prefixes=("histidine",)),
    NameRule("isoleucine_g", prefixes=("isoleucine",)),
    NameRule("leucine_g", prefixes=("leucine",)),
    NameRule("lysine_g", prefixes=("lysine",)),
    NameRule("methionine_g", prefixes=("methionine",)),
    NameRule("phenylalanine_g", prefixes=("phenylalanine",)),
    NameRule("threonine_g", prefixes=("threonine",)),
    NameRule("tryptophan_g", prefixes=("tryptophan",)),
    NameRule("valine_g", prefixes=("valine",)),
    NameRule("omega3_g", prefixes=("omega-3", "omega 3", "fatty acids, total omega-3")),
    NameRule("omega6_g", prefixes=("omega-6", "omega 6", "fatty acids, total omega-6")),
    NameRule(OMEGA3_PART, contains=("n-3",)),
    NameRule(OMEGA6_PART, contains=("n-6",)),
    NameRule("alcohol_g", prefixes=("alcohol",)),
)

_UNIT_ALIASES = {
    "µg": "ug",
    "μg": "ug",
    "mcg": "ug",
    "kcal": "kcal",
    "kj": "kj",
}

_MASS_IN_GRAMS = {"g": 1.0, "mg": 1e-3, "ug": 1e-6}
_IU_PER_UG_VITAMIN_D = 40.0


def _norm_unit(unit: Optional[str]) -> str:
    u = (unit or "").strip().lower()
    return _UNIT_ALIASES.get(u, u)


def _target_unit(code: str) -> str:
    if code in (OMEGA3_PART, OMEGA6_PART):
        return "g"
    return NUTRIENTS[code].unit


def match_code(obs: NutrientObservation) -> Optional[str]:
    """Return the (possibly internal) code for an observation, or None."""
    for key, table in ((obs.external_id, ID_TABLE), (obs.external_number, NUMBER_TABLE)):
        if key is None:
            continue
        code = table.get(str(key).strip())
        if code:
            return code

    name = " ".join((obs.name or "").lower().split())
    if not name:
        return None
    unit = _norm_unit(obs.unit)
    for rule in NAME_RULES:
        if rule.matches(name, unit):
            return rule.code
    return None


def normalize_observation(obs: NutrientObservation) -> Optional[str]:
    """Canonical code for one observation; None for unmapped nutrients."""
    code = match_code(obs)
    return code if code in ALLOWED_CODES else None


def display_group(code: str) -> str:
    info = NUTRIENTS.get(code)
    return info.group if info else "other"


def convert_amount(amount: float, unit: Optional[str], code: str) -> Optional[float]:
    """Express ``amount`` in the unit of ``code``; None if that is impossible."""
    src = _norm_unit(unit)
    dst = _target_unit(code)
    if not src or src == dst:
        return amount
    if src in _MASS_IN_GRAMS and dst in _MASS_IN_GRAMS:
        return amount * _MASS_IN_GRAMS[src] / _MASS_IN_GRAMS[dst]
    if code == "vitamin_d_ug" and src == "iu":
        return amount / _IU_PER_UG_VITAMIN_D
    return None


def normalize_food(observations: Iterable[NutrientObservation]) -> Dict[str, float]:
    """Normalize every observation of one food into ``{code: amount_per_100g}``.

    The first observation that maps to a code wins. Derived values
    (net carbs, omega totals) are only filled in when the food does not
    supply them itself. The result only contains allow-listed codes.
    """
    rows: Dict[str, float] = {}
    parts: Dict[str, List[float]] = {OMEGA3_PART: [], OMEGA6_PART: []}
    seen_parts = set()

    for obs in observations:
        if obs.amount_per_100g is None:
            continue
        try:
            amount = float(obs.amount_per_100g)
        except (TypeError, ValueError):
            continue
        if amount < 0:
            continue
        code = match_code(obs)
        if code is None:
            continue
        converted = convert_amount(amount, obs.unit, code)
        if converted is None:
            continue
        if code in parts:
            part_key = obs.external_id or obs.external_number or obs.name
            if part_key in seen_parts:
                continue
            seen_parts.add(part_key)
            parts[code].append(converted)
            continue
        if code not in rows:
            rows[code] = converted

    derive_rows(rows, parts.get(OMEGA3_PART, ()), parts.get(OMEGA6_PART, ()))
    return {code: amount for code, amount in rows.items() if code in ALLOWED_CODES}


def derive_rows(
    rows: Dict[str, float],
    omega3_parts: Iterable[float] = (),
    omega6_parts: Iterable[float] = (),
) -> Dict[str, float]:
    if NET_CARBS_CODE not in rows and (CARBS_CODE in rows or FIBER_CODE in rows):
        rows[NET_CARBS_CODE] = max(0.0, rows.get(CARBS_CODE, 0.0) - rows.get(FIBER_CODE, 0.0))

    for code, values in (("omega3_g", list(omega3_parts)), ("omega6_g", list(omega6_parts))):
        if values and not rows.get(code):
            rows[code] = sum(values)
    return rows

