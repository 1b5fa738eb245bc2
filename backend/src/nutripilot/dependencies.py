from __future__ import annotations

from functools import lru_cache

from nutripilot.core.config import get_settings
from nutripilot.services.estimation import EstimationClient
from nutripilot.services.food_data import FoodDataClient


@lru_cache
def get_estimator() -> EstimationClient:
    # One client per process so the estimate cache is shared across requests.
    return EstimationClient.from_settings(get_settings())


def get_food_data_client() -> FoodDataClient:
    return FoodDataClient.from_settings(get_settings())
