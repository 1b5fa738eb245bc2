import json
from typing import AsyncIterator, Dict, List, Optional

import httpx
import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

from nutripilot.core.capabilities import Capabilities, get_capabilities
from nutripilot.core.database import build_engine, build_session_factory, get_session_factory, init_db
from nutripilot.dependencies import get_estimator, get_food_data_client
from nutripilot.main import create_app
from nutripilot.models.foods import GlobalFood, GlobalFoodNutrient, GlobalFoodUnit, UserFood, UserFoodNutrient
from nutripilot.services.estimation import EstimateCache, EstimationClient
from nutripilot.services.food_data import FoodDataClient

ESTIMATE_PER_ITEM = {"grams": 100, "calories": 150, "protein_g": 5, "carbs_g": 20, "fats_g": 4}


@pytest.fixture(scope="session")
def anyio_backend():
    return "asyncio"


# ---------- database ----------
@pytest.fixture
async def engine(tmp_path):
    # Fresh SQLite file per test for isolation
    eng = build_engine(f"sqlite+aiosqlite:///{(tmp_path / 'test.db').as_posix()}")
    await init_db(eng)
    try:
        yield eng
    finally:
        await eng.dispose()


@pytest.fixture
def session_factory(engine):
    return build_session_factory(engine)


@pytest.fixture
async def db_session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def seed_food(session_factory):
    """Insert a food with per-100g nutrients; returns its id."""

    async def _seed(
        name: str,
        nutrients: Dict[str, float],
        brand: Optional[str] = None,
        user_id: Optional[str] = None,
        units: Optional[Dict[str, float]] = None,
    ) -> int:
        async with session_factory() as session:
            if user_id:
                food = UserFood(user_id=user_id, name=name, brand=brand)
                session.add(food)
                await session.flush()
                session.add_all(
                    [UserFoodNutrient(user_food_id=food.id, code=c, amount_per_100g=a) for c, a in nutrients.items()]
                )
            else:
                food = GlobalFood(name=name, brand=brand)
                session.add(food)
                await session.flush()
                session.add_all(
                    [GlobalFoodNutrient(food_id=food.id, code=c, amount_per_100g=a) for c, a in nutrients.items()]
                )
                for unit, grams in (units or {}).items():
                    session.add(GlobalFoodUnit(food_id=food.id, unit=unit, grams_per_unit=grams))
            await session.commit()
            return food.id

    return _seed


# ---------- fake external services ----------
def chat_reply(content: str, finish_reason: str = "stop", refusal: Optional[str] = None) -> dict:
    message = {"role": "assistant", "content": content}
    if refusal:
        message = {"role": "assistant", "content": None, "refusal": refusal}
    return {"choices": [{"index": 0, "message": message, "finish_reason": finish_reason}]}


@pytest.fixture
def estimation_calls() -> List[dict]:
    return []


@pytest.fixture
async def estimator(estimation_calls) -> AsyncIterator[EstimationClient]:
    """Echoes every requested item back with fixed macros."""

    def handler(request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        estimation_calls.append(body)
        asked = json.loads(body["messages"][1]["content"])["items"]
        items = [
            {"food": it["food"], "quantity": it["quantity"], "unit": it["unit"], "state": it["state"], **ESTIMATE_PER_ITEM}
            for it in asked
        ]
        totals = {k: ESTIMATE_PER_ITEM[k] * len(items) for k in ("calories", "protein_g", "carbs_g", "fats_g")}
        content = json.dumps({"items": items, "totals": totals, "warnings": []})
        return httpx.Response(200, json=chat_reply(content))

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http:
        yield EstimationClient(
            api_key="test-key",
            base_url="https://llm.test/v1",
            model="test-model",
            cache=EstimateCache(max_entries=16, ttl_s=3600),
            http_client=http,
        )


FDC_BANANA = {
    "fdcId": 1105314,
    "description": "Bananas, ripe and slightly ripe, raw",
    "dataType": "Foundation",
    "foodNutrients": [
        {"nutrient": {"id": 1008, "number": "208", "name": "Energy", "unitName": "kcal"}, "amount": 89},
        {"nutrient": {"id": 1003, "number": "203", "name": "Protein", "unitName": "g"}, "amount": 1.09},
        {"nutrient": {"id": 1004, "number": "204", "name": "Total lipid (fat)", "unitName": "g"}, "amount": 0.33},
        {"nutrient": {"id": 1005, "number": "205", "name": "Carbohydrate, by difference", "unitName": "g"}, "amount": 22.8},
        {"nutrient": {"id": 1079, "number": "291", "name": "Fiber, total dietary", "unitName": "g"}, "amount": 2.6},
        {"nutrient": {"id": 1092, "number": "306", "name": "Potassium, K", "unitName": "mg"}, "amount": 358},
        {"nutrient": {"id": 1162, "number": "401", "name": "Vitamin C, total ascorbic acid", "unitName": "mg"}, "amount": 8.7},
        {"nutrient": {"id": 9999, "number": "999", "name": "Something unmapped", "unitName": "g"}, "amount": 1.0},
    ],
    "foodPortions": [
        {"amount": 1.0, "gramWeight": 118.0, "modifier": "medium", "measureUnit": {"name": "undetermined"}},
        {"amount": 1.0, "gramWeight": 150.0, "measureUnit": {"name": "cup"}},
    ],
}

FDC_SEARCH = {
    "foods": [
        {
            "fdcId": 1105314,
            "description": "Bananas, ripe and slightly ripe, raw",
            "dataType": "Foundation",
            "foodNutrients": [
                {"nutrientId": 1008, "nutrientNumber": "208", "nutrientName": "Energy", "unitName": "KCAL", "value": 89},
                {"nutrientId": 1003, "nutrientNumber": "203", "nutrientName": "Protein", "unitName": "G", "value": 1.09},
            ],
        }
    ]
}


@pytest.fixture
def fdc_requests() -> List[httpx.Request]:
    return []


@pytest.fixture
async def food_data_client(fdc_requests) -> AsyncIterator[FoodDataClient]:
    def handler(request: httpx.Request) -> httpx.Response:
        fdc_requests.append(request)
        if request.url.path == "/fdc/v1/food/1105314":
            return httpx.Response(200, json=FDC_BANANA)
        if request.url.path == "/fdc/v1/foods/search":
            return httpx.Response(200, json=FDC_SEARCH)
        return httpx.Response(404, json={"error": "not found"})

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http:
        yield FoodDataClient(api_key="fdc-test", base_url="https://fdc.test/fdc", http_client=http)


# ---------- app ----------
@pytest.fixture
def capabilities() -> Capabilities:
    return Capabilities()


@pytest.fixture
def test_app(session_factory, estimator, food_data_client, capabilities) -> FastAPI:
    app = create_app()
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.dependency_overrides[get_estimator] = lambda: estimator
    app.dependency_overrides[get_food_data_client] = lambda: food_data_client
    app.dependency_overrides[get_capabilities] = lambda: capabilities
    try:
        yield app
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
async def client(test_app: FastAPI) -> AsyncIterator[AsyncClient]:
    transport = ASGITransport(app=test_app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
