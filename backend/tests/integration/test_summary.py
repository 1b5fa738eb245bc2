import pytest

from nutripilot.models.targets import DayType, NutritionDayTarget

DAY = "2026-10-19"


async def log_day(client, *items):
    r = await client.post("/nutrition/day-log", json={"user_id": "u1", "date": DAY, "items": list(items)})
    assert r.status_code == 200, r.text
    return r.json()


@pytest.mark.asyncio
async def test_summary_totals_and_breakdown(client, seed_food):
    await seed_food("Banana", {"energy_kcal": 89, "protein_g": 1.1, "vitamin_c_mg": 8.7, "potassium_mg": 358})
    await log_day(client, {"food_name": "banana", "amount": 120, "unit": "g"})

    r = await client.get("/summary/day", params={"user_id": "u1", "day": DAY})
    assert r.status_code == 200, r.text
    body = r.json()

    assert body["date"] == DAY
    assert body["totals"]["calories"] == 107
    assert len(body["items"]) == 1 and body["items"][0]["source"] == "db"

    breakdown = {row["code"]: row for row in body["nutrient_breakdown"]}
    assert breakdown["energy_kcal"]["amount"] == pytest.approx(106.8)
    assert breakdown["vitamin_c_mg"]["amount"] == pytest.approx(10.44)
    assert breakdown["potassium_mg"]["unit"] == "mg"
    codes = [row["code"] for row in body["nutrient_breakdown"]]
    assert codes.index("energy_kcal") < codes.index("vitamin_c_mg")
    assert "target" not in body or body["target"] is None


@pytest.mark.asyncio
async def test_summary_includes_estimated_items(client):
    await log_day(client, {"food_name": "street tacos", "amount": 3, "unit": "pc", "preparation_state": "fried"})
    body = (await client.get("/summary/day", params={"user_id": "u1", "day": DAY})).json()

    assert body["items"][0]["source"] == "ai"
    assert body["totals"]["calories"] == 150
    assert {row["code"] for row in body["nutrient_breakdown"]} >= {"energy_kcal", "protein_g"}


@pytest.mark.asyncio
async def test_summary_remaining_against_day_target(client, seed_food, db_session):
    await seed_food("Banana", {"energy_kcal": 89, "protein_g": 1.1, "vitamin_c_mg": 8.7})
    db_session.add(
        NutritionDayTarget(user_id="u1", day_type=DayType.training, calories=2000, protein_g=150, carbs_g=200, fats_g=60)
    )
    await db_session.commit()
    await log_day(client, {"food_name": "banana", "amount": 120, "unit": "g"})

    body = (await client.get("/summary/day", params={"user_id": "u1", "day": DAY, "day_type": "training"})).json()
    assert body["day_type"] == "training"
    assert body["target"]["calories"] == 2000
    assert body["remaining"]["calories"] == 1893
    assert body["remaining"]["protein_g"] == 149


@pytest.mark.asyncio
async def test_empty_day_summary(client):
    body = (await client.get("/summary/day", params={"user_id": "nobody", "day": DAY})).json()
    assert body["items"] == []
    assert body["totals"]["calories"] == 0
    assert body["nutrient_breakdown"] == []
