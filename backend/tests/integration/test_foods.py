import pytest
from sqlmodel import select

from nutripilot.core.errors import UpstreamError
from nutripilot.dependencies import get_food_data_client
from nutripilot.models.foods import GlobalFood, GlobalFoodNutrient, GlobalFoodUnit
from nutripilot.services.food_data import ExternalFood, FoodDataClient
from nutripilot.services.food_import import store_external_food


@pytest.mark.asyncio
async def test_lookup_returns_per_100g_macros(client):
    r = await client.post("/foods/lookup", json={"query": "banana"})
    assert r.status_code == 200, r.text
    cand = r.json()["candidates"][0]
    assert cand["provider"] == "fdc"
    assert cand["provider_id"] == "1105314"
    assert cand["kcal_100g"] == 89
    assert cand["protein_g_100g"] == pytest.approx(1.09)


@pytest.mark.asyncio
async def test_import_stores_food_units_and_nutrients(client, db_session):
    r = await client.post("/foods/import", json={"external_id": "1105314"})
    assert r.status_code == 200, r.text
    body = r.json()
    assert body["reused"] is False
    assert body["name"].startswith("Bananas")

    food = await db_session.get(GlobalFood, body["food_id"])
    assert (food.source, food.external_id) == ("fdc", "1105314")

    rows = {
        n.code: n.amount_per_100g
        for n in (await db_session.exec(select(GlobalFoodNutrient).where(GlobalFoodNutrient.food_id == food.id))).all()
    }
    assert rows["energy_kcal"] == 89
    assert rows["potassium_mg"] == 358
    assert rows["net_carbs_g"] == pytest.approx(20.2)
    assert body["nutrient_count"] == len(rows)

    units = {
        u.unit: u.grams_per_unit
        for u in (await db_session.exec(select(GlobalFoodUnit).where(GlobalFoodUnit.food_id == food.id))).all()
    }
    assert units == {"serv": 118.0, "cup": 150.0}


@pytest.mark.asyncio
async def test_second_import_reuses_without_fetching(client, fdc_requests):
    first = (await client.post("/foods/import", json={"external_id": "1105314"})).json()
    second = (await client.post("/foods/import", json={"external_id": "1105314"})).json()

    assert second["reused"] is True
    assert second["food_id"] == first["food_id"]
    assert len(fdc_requests) == 1


@pytest.mark.asyncio
async def test_refresh_refetches_into_same_row(client, fdc_requests, db_session):
    first = (await client.post("/foods/import", json={"external_id": "1105314"})).json()
    again = (await client.post("/foods/import", json={"external_id": "1105314", "refresh": True})).json()

    assert again["food_id"] == first["food_id"]
    assert len(fdc_requests) == 2
    assert len((await db_session.exec(select(GlobalFood))).all()) == 1


@pytest.mark.asyncio
async def test_imported_food_serves_day_log_portions(client, estimation_calls):
    await client.post("/foods/import", json={"external_id": "1105314"})
    r = await client.post(
        "/nutrition/day-log",
        json={
            "user_id": "u1",
            "date": "2026-10-19",
            "items": [{"food_name": "banana", "amount": 1, "unit": "serv", "preparation_state": "raw"}],
        },
    )
    assert r.status_code == 200, r.text
    resolved = r.json()["items"][0]
    assert resolved["grams"] == 118
    assert resolved["calories"] == 105
    assert estimation_calls == []


@pytest.mark.asyncio
async def test_unknown_external_id_is_upstream_error(client):
    r = await client.post("/foods/import", json={"external_id": "42"})
    assert r.status_code == 502
    assert r.json()["ok"] is False


@pytest.mark.asyncio
async def test_missing_provider_key_is_configuration_error(client, test_app):
    test_app.dependency_overrides[get_food_data_client] = lambda: FoodDataClient(api_key=None)
    r = await client.post("/foods/lookup", json={"query": "banana"})
    assert r.status_code == 503


@pytest.mark.asyncio
async def test_constraint_failure_without_existing_row_is_upstream_error(session_factory, db_session):
    ext = ExternalFood(external_id="777", name="Cup noodles", portions=[("cup", 64.0), ("cup", 70.0)])

    with pytest.raises(UpstreamError) as info:
        await store_external_food(session_factory, ext)

    assert info.value.upstream == "datastore"
    assert (await db_session.exec(select(GlobalFood))).all() == []
