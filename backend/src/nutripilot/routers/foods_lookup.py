from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import async_sessionmaker

from nutripilot.core.database import get_session_factory
from nutripilot.dependencies import get_food_data_client
from nutripilot.nutrients import CARBS_CODE, ENERGY_CODE, FAT_CODE, PROTEIN_CODE
from nutripilot.schemas import ImportRequest, ImportResponse, LookupCandidate, LookupRequest, LookupResponse
from nutripilot.services.food_data import FoodDataClient
from nutripilot.services.food_import import import_external_food

router = APIRouter(prefix="/foods", tags=["foods"])


@router.post("/lookup", response_model=LookupResponse)
async def foods_lookup(req: LookupRequest, client: FoodDataClient = Depends(get_food_data_client)):
    found = await client.search(req.query.strip(), limit=req.limit)
    return LookupResponse(
        candidates=[
            LookupCandidate(
                provider_id=c.external_id,
                name=c.name,
                brand=c.brand,
                data_type=c.data_type,
                kcal_100g=c.per_100g.get(ENERGY_CODE),
                protein_g_100g=c.per_100g.get(PROTEIN_CODE),
                carbs_g_100g=c.per_100g.get(CARBS_CODE),
                fat_g_100g=c.per_100g.get(FAT_CODE),
            )
            for c in found
        ]
    )


@router.post("/import", response_model=ImportResponse)
async def foods_import(
    req: ImportRequest,
    factory: async_sessionmaker = Depends(get_session_factory),
    client: FoodDataClient = Depends(get_food_data_client),
):
    result = await import_external_food(factory, client, req.external_id, refresh=req.refresh)
    return result.to_dict()
