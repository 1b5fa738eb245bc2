import pytest

from nutripilot.models.targets import MicroTargetMode, Sex
from nutripilot.services.micro_targets import (
    MAX_SCALE,
    MIN_SCALE,
    build_targets,
    normalize_sex,
    rdi_baseline,
    target,
)


def test_rdi_by_sex_and_unspecified_average():
    assert target("iron_mg", MicroTargetMode.rdi, Sex.male) == 8
    assert target("iron_mg", MicroTargetMode.rdi, Sex.female) == 18
    assert target("iron_mg", MicroTargetMode.rdi, Sex.unspecified) == 13


def test_total_fat_has_no_rdi():
    assert target("fat_g", MicroTargetMode.rdi, Sex.male) is None
    assert target("fat_g", MicroTargetMode.bodyweight, Sex.male, 80) is None


def test_custom_override_and_fallthrough():
    assert target("vitamin_c_mg", MicroTargetMode.custom, Sex.male, override=250) == 250
    assert target("vitamin_c_mg", MicroTargetMode.custom, Sex.male, override=None) == 90
    assert target("vitamin_c_mg", MicroTargetMode.custom, Sex.male, override=-1) == 90
    # overrides are ignored outside custom mode
    assert target("vitamin_c_mg", MicroTargetMode.rdi, Sex.male, override=250) == 90


def test_bodyweight_per_kg_coefficient():
    assert target("protein_g", MicroTargetMode.bodyweight, Sex.male, 80) == 64
    assert target("leucine_g", MicroTargetMode.bodyweight, Sex.female, 60) == 2.34


@pytest.mark.parametrize("weight", [10, 35, 70, 100, 150, 400])
def test_bodyweight_scaling_is_clamped(weight):
    baseline = rdi_baseline("zinc_mg", Sex.male)
    value = target("zinc_mg", MicroTargetMode.bodyweight, Sex.male, weight)
    assert MIN_SCALE * baseline - 0.01 <= value <= MAX_SCALE * baseline + 0.01


def test_bodyweight_scaling_values():
    assert target("zinc_mg", MicroTargetMode.bodyweight, Sex.male, 140) == 19.8
    assert target("zinc_mg", MicroTargetMode.bodyweight, Sex.male, 35) == 6.6
    assert target("zinc_mg", MicroTargetMode.bodyweight, Sex.male, 84) == 13.2


def test_bodyweight_without_weight_returns_baseline():
    assert target("zinc_mg", MicroTargetMode.bodyweight, Sex.male, None) == 11
    assert target("protein_g", MicroTargetMode.bodyweight, Sex.female, 0) == 46


def test_values_are_rounded_to_two_decimals():
    value = target("vitamin_b12_ug", MicroTargetMode.bodyweight, Sex.male, 77.7)
    assert value == round(value, 2)


def test_normalize_sex():
    assert normalize_sex("M") is Sex.male
    assert normalize_sex("female") is Sex.female
    assert normalize_sex(None) is Sex.unspecified
    assert normalize_sex("other") is Sex.unspecified


def test_build_targets_marks_overrides():
    rows = build_targets(MicroTargetMode.custom, Sex.male, None, {"iron_mg": 20.0}, codes=["iron_mg", "zinc_mg"])
    assert rows[0]["code"] == "iron_mg" and rows[0]["target"] == 20.0 and rows[0]["overridden"] is True
    assert rows[1]["code"] == "zinc_mg" and rows[1]["overridden"] is False
