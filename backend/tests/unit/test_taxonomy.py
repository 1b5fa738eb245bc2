import pytest

from nutripilot.nutrients import ALLOWED_CODES, KEY_NUTRIENT_CODES, sort_key
from nutripilot.services.taxonomy import (
    NutrientObservation,
    convert_amount,
    display_group,
    match_code,
    normalize_food,
    normalize_observation,
)


def obs(name, amount=1.0, unit="g", nid=None, number=None):
    return NutrientObservation(external_id=nid, external_number=number, name=name, unit=unit, amount_per_100g=amount)


def test_identifier_wins_regardless_of_name():
    assert normalize_observation(obs("Totally misleading protein text", 89, "kcal", nid="1008")) == "energy_kcal"


def test_nutrient_number_is_second_lookup():
    assert match_code(obs("whatever", number="203")) == "protein_g"


@pytest.mark.parametrize(
    "name, unit, code",
    [
        ("Energy", "kcal", "energy_kcal"),
        ("Protein", "g", "protein_g"),
        ("Total lipid (fat)", "g", "fat_g"),
        ("Carbohydrate, by difference", "g", "carbs_g"),
        ("Fiber, total dietary", "g", "fiber_g"),
        ("Sodium, Na", "mg", "sodium_mg"),
        ("Vitamin C, total ascorbic acid", "mg", "vitamin_c_mg"),
        ("Fatty acids, total saturated", "g", "saturated_fat_g"),
        ("Fatty acids, total monounsaturated", "g", "monounsaturated_fat_g"),
        ("Fatty acids, total polyunsaturated", "g", "polyunsaturated_fat_g"),
        ("Leucine", "g", "leucine_g"),
        ("Alcohol, ethyl", "g", "alcohol_g"),
    ],
)
def test_name_rules(name, unit, code):
    assert normalize_observation(obs(name, unit=unit)) == code


def test_energy_in_kj_is_not_taken_by_name():
    assert match_code(obs("Energy", 372, "kJ")) is None


def test_unmapped_nutrients_are_dropped():
    assert normalize_observation(obs("Beta-sitosterol", unit="mg")) is None


def test_omega_parts_are_not_canonical():
    # recognised for derivation only
    assert match_code(obs("PUFA 18:3 n-3 c,c,c (ALA)", nid="1404")) == "_omega3_part"
    assert normalize_observation(obs("PUFA 18:3 n-3 c,c,c (ALA)", nid="1404")) is None


def test_convert_amount_between_mass_units():
    assert convert_amount(0.5, "g", "calcium_mg") == pytest.approx(500)
    assert convert_amount(2000, "µg", "iron_mg") == pytest.approx(2)
    assert convert_amount(400, "IU", "vitamin_d_ug") == pytest.approx(10)
    assert convert_amount(1, "IU", "vitamin_a_ug") is None


def test_normalize_food_first_observation_wins_and_filters():
    rows = normalize_food(
        [
            obs("Energy", 89, "kcal", nid="1008"),
            obs("Energy (Atwater General Factors)", 95, "kcal", nid="2047"),
            obs("Protein", 1.09, "g", nid="1003"),
            obs("Something unknown", 3, "g"),
            obs("Iron, Fe", None, "mg"),
            obs("Zinc, Zn", -1, "mg"),
        ]
    )
    assert rows["energy_kcal"] == 89
    assert rows["protein_g"] == 1.09
    assert "zinc_mg" not in rows and "iron_mg" not in rows
    assert set(rows) <= ALLOWED_CODES


def test_net_carbs_derived_when_missing():
    rows = normalize_food([obs("Carbohydrate, by difference", 22.8), obs("Fiber, total dietary", 2.6)])
    assert rows["net_carbs_g"] == pytest.approx(20.2)

    only_fiber = normalize_food([obs("Fiber, total dietary", 5)])
    assert only_fiber["net_carbs_g"] == 0


def test_omega_totals_derived_from_parts_once_per_part():
    rows = normalize_food(
        [
            obs("PUFA 18:3 n-3 c,c,c (ALA)", 0.2, nid="1404"),
            obs("PUFA 18:3 n-3 c,c,c (ALA)", 0.2, nid="1404"),
            obs("PUFA 22:6 n-3 (DHA)", 0.5, nid="1272"),
            obs("PUFA 18:2 n-6 c,c", 1.5, nid="1316"),
        ]
    )
    assert rows["omega3_g"] == pytest.approx(0.7)
    assert rows["omega6_g"] == pytest.approx(1.5)


def test_supplied_omega_total_is_kept():
    rows = normalize_food([obs("Fatty acids, total omega-3", 2.0), obs("PUFA 22:6 n-3 (DHA)", 0.5, nid="1272")])
    assert rows["omega3_g"] == 2.0


def test_display_groups_and_sort_order():
    assert display_group("vitamin_c_mg") == "vitamins"
    assert display_group("unknown_code") == "other"
    codes = ["iron_mg", "vitamin_c_mg", "protein_g", "saturated_fat_g", "energy_kcal", "leucine_g"]
    assert sorted(codes, key=sort_key) == [
        "energy_kcal",
        "protein_g",
        "saturated_fat_g",
        "vitamin_c_mg",
        "iron_mg",
        "leucine_g",
    ]


def test_key_codes_are_allow_listed():
    assert set(KEY_NUTRIENT_CODES) <= ALLOWED_CODES
    assert len(KEY_NUTRIENT_CODES) == 50
