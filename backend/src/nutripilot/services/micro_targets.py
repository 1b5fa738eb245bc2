"""Daily micronutrient (and amino acid) targets.

Three modes per user:

* ``rdi``        - adult reference intakes by sex (unspecified = average)
* ``bodyweight`` - per-kg coefficient where one exists, otherwise the
                   reference intake scaled by weight/70 kg, clamped to 0.6-1.8x
* ``custom``     - a user override where one is stored, otherwise ``rdi``
"""

from __future__ import annotations

import logging
import math
from typing import Dict, Iterable, List, Optional, Tuple

from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from nutripilot.core.database import datastore_errors
from nutripilot.core.errors import ValidationError
from nutripilot.models.foods import utc_now
from nutripilot.models.targets import MicroTargetMode, MicroTargetOverride, MicroTargetSetting, Profile, Sex
from nutripilot.nutrients import ALLOWED_CODES, NUTRIENTS, sort_key
from nutripilot.utils.nutrition import round2
from nutripilot.utils.validators import clamp, safe_float

logger = logging.getLogger(__name__)

REFERENCE_WEIGHT_KG = 70.0
MIN_SCALE = 0.6
MAX_SCALE = 1.8

# WHO/FAO essential amino acid requirements, mg per kg body weight
_AMINO_MG_PER_KG = {
    "histidine_g": 10.0,
    "isoleucine_g": 20.0,
    "leucine_g": 39.0,
    "lysine_g": 30.0,
    "methionine_g": 15.0,
    "phenylalanine_g": 25.0,
    "threonine_g": 15.0,
    "tryptophan_g": 4.0,
    "valine_g": 26.0,
}

# (male, female); units follow the nutrient catalogue
RDI_BASELINES: Dict[str, Tuple[float, float]] = {
    "protein_g": (56, 46),
    "carbs_g": (130, 130),
    "fiber_g": (38, 25),
    "omega3_g": (1.6, 1.1),
    "omega6_g": (17, 12),
    "water_g": (3700, 2700),
    "vitamin_a_ug": (900, 700),
    "vitamin_c_mg": (90, 75),
    "vitamin_d_ug": (15, 15),
    "vitamin_e_mg": (15, 15),
    "vitamin_k_ug": (120, 90),
    "thiamin_mg": (1.2, 1.1),
    "riboflavin_mg": (1.3, 1.1),
    "niacin_mg": (16, 14),
    "pantothenic_acid_mg": (5, 5),
    "vitamin_b6_mg": (1.3, 1.3),
    "biotin_ug": (30, 30),
    "folate_ug": (400, 400),
    "vitamin_b12_ug": (2.4, 2.4),
    "choline_mg": (550, 425),
    "calcium_mg": (1000, 1000),
    "iron_mg": (8, 18),
    "magnesium_mg": (420, 320),
    "phosphorus_mg": (700, 700),
    "potassium_mg": (3400, 2600),
    "sodium_mg": (1500, 1500),
    "zinc_mg": (11, 8),
    "copper_mg": (0.9, 0.9),
    "manganese_mg": (2.3, 1.8),
    "selenium_ug": (55, 55),
    "iodine_ug": (150, 150),
    **{
        code: (mg * REFERENCE_WEIGHT_KG / 1000.0,) * 2
        for code, mg in _AMINO_MG_PER_KG.items()
    },
}

# Amount per kg body weight, in the nutrient's own unit
PER_KG_COEFFICIENTS: Dict[str, float] = {
    "protein_g": 0.8,
    "magnesium_mg": 6.0,
    **{code: mg / 1000.0 for code, mg in _AMINO_MG_PER_KG.items()},
}

TARGET_CODES: Tuple[str, ...] = tuple(sorted(RDI_BASELINES, key=sort_key))


def normalize_sex(value: Optional[str]) -> Sex:
    v = (value or "").strip().lower()
    if v in ("m", "male", "man"):
        return Sex.male
    if v in ("f", "female", "woman"):
        return Sex.female
    return Sex.unspecified


def rdi_baseline(code: str, sex: Optional[Sex] = None) -> Optional[float]:
    pair = RDI_BASELINES.get(code)
    if pair is None:
        return None
    male, female = pair
    if sex is Sex.male:
        return float(male)
    if sex is Sex.female:
        return float(female)
    return (male + female) / 2.0


def target(
    code: str,
    mode: MicroTargetMode,
    sex: Optional[Sex] = None,
    weight_kg: Optional[float] = None,
    override: Optional[float] = None,
) -> Optional[float]:
    """Daily target for one code, rounded to 2 decimals; None if there is none."""
    if mode is MicroTargetMode.custom and override is not None and safe_float(override) >= 0:
        return round2(safe_float(override))

    baseline = rdi_baseline(code, sex)
    if mode is not MicroTargetMode.bodyweight:
        return None if baseline is None else round2(baseline)

    weight = safe_float(weight_kg)
    if weight <= 0:
        return None if baseline is None else round2(baseline)

    coef = PER_KG_COEFFICIENTS.get(code)
    if coef is not None:
        return round2(coef * weight)
    if baseline is None:
        return None
    return round2(baseline * clamp(weight / REFERENCE_WEIGHT_KG, MIN_SCALE, MAX_SCALE))


def _valid_amount(amount) -> bool:
    try:
        v = float(amount)
    except (TypeError, ValueError):
        return False
    return math.isfinite(v) and v >= 0


def _parse_mode(mode) -> MicroTargetMode:
    try:
        return MicroTargetMode(mode)
    except ValueError:
        raise ValidationError(f"Unknown micro target mode: {mode!r}")


# ---------- persistence ----------
async def _load(session: AsyncSession, user_id: str):
    setting = (await session.exec(select(MicroTargetSetting).where(MicroTargetSetting.user_id == user_id))).first()
    profile = (await session.exec(select(Profile).where(Profile.user_id == user_id))).first()
    overrides = (
        await session.exec(select(MicroTargetOverride).where(MicroTargetOverride.user_id == user_id))
    ).all()
    return setting, profile, {o.code: o.amount for o in overrides}


def build_targets(
    mode: MicroTargetMode,
    sex: Sex,
    weight_kg: Optional[float],
    overrides: Dict[str, float],
    codes: Iterable[str] = TARGET_CODES,
) -> List[dict]:
    out: List[dict] = []
    for code in codes:
        override = overrides.get(code)
        value = target(code, mode, sex, weight_kg, override)
        if value is None:
            continue
        info = NUTRIENTS[code]
        out.append(
            {
                "code": code,
                "label": info.label,
                "unit": info.unit,
                "group": info.group,
                "target": value,
                "overridden": mode is MicroTargetMode.custom and override is not None,
            }
        )
    return out


@datastore_errors("load micro targets")
async def micro_targets(session: AsyncSession, user_id: str) -> dict:
    if not (user_id or "").strip():
        raise ValidationError("user_id is required")
    setting, profile, overrides = await _load(session, user_id)
    mode = setting.mode if setting else MicroTargetMode.rdi
    mode = _parse_mode(mode)
    sex = normalize_sex(profile.sex if profile else None)
    weight = profile.current_weight_kg if profile else None

    codes = list(TARGET_CODES) + sorted((c for c in overrides if c not in RDI_BASELINES), key=sort_key)
    return {
        "user_id": user_id,
        "mode": mode.value,
        "sex": sex.value,
        "weight_kg": weight,
        "targets": build_targets(mode, sex, weight, overrides, codes),
    }


@datastore_errors("store micro targets")
async def set_micro_target_mode(
    session: AsyncSession,
    user_id: str,
    mode,
    overrides: Optional[Dict[str, Optional[float]]] = None,
) -> dict:
    """Store the mode and any overrides. An override of None removes it."""
    if not (user_id or "").strip():
        raise ValidationError("user_id is required")
    parsed = _parse_mode(mode)
    overrides = overrides or {}
    for code, amount in overrides.items():
        if code not in ALLOWED_CODES:
            raise ValidationError(f"Unknown nutrient code: {code}")
        if amount is not None and not _valid_amount(amount):
            raise ValidationError(f"Override for {code} must be a non-negative number")

    setting = (await session.exec(select(MicroTargetSetting).where(MicroTargetSetting.user_id == user_id))).first()
    if setting is None:
        setting = MicroTargetSetting(user_id=user_id, mode=parsed)
    else:
        setting.mode = parsed
        setting.updated_at = utc_now()
    session.add(setting)

    for code, amount in overrides.items():
        row = (
            await session.exec(
                select(MicroTargetOverride).where(
                    MicroTargetOverride.user_id == user_id, MicroTargetOverride.code == code
                )
            )
        ).first()
        if amount is None:
            if row is not None:
                await session.delete(row)
            continue
        if row is None:
            row = MicroTargetOverride(user_id=user_id, code=code, amount=float(amount))
        else:
            row.amount = float(amount)
        session.add(row)

    await session.commit()
    logger.info("micro target mode for %s set to %s (%d override changes)", user_id, parsed.value, len(overrides))
    return await micro_targets(session, user_id)
