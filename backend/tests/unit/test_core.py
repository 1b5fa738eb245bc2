import logging
from datetime import date, timedelta

import pytest
from sqlalchemy.exc import OperationalError

from nutripilot.core.capabilities import GLOBAL_UNIT_LOOKUP, USER_UNIT_LOOKUP, Capabilities
from nutripilot.core.database import _sqlite_connect_args, datastore_errors
from nutripilot.core.errors import ConfigurationError, DataQualityWarning, EstimationError, UpstreamError, ValidationError
from nutripilot.models.foods import GlobalFood
from nutripilot.models.logs import FoodDayLog
from nutripilot.models.targets import MicroTargetSetting


def test_sqlite_connect_args_returns_thread_check_flag():
    assert _sqlite_connect_args("sqlite+aiosqlite:///foo.db") == {"check_same_thread": False}


def test_non_sqlite_connect_args_returns_empty_dict():
    assert _sqlite_connect_args("postgresql+asyncpg://example") == {}


def test_capability_downgrade_is_one_way(caplog):
    caps = Capabilities()
    assert caps.enabled(USER_UNIT_LOOKUP)
    with caplog.at_level(logging.WARNING):
        caps.disable(USER_UNIT_LOOKUP, "no such table: user_food_units")
        caps.disable(USER_UNIT_LOOKUP, "again")
    assert not caps.enabled(USER_UNIT_LOOKUP)
    assert caps.enabled(GLOBAL_UNIT_LOOKUP)
    assert len([r for r in caplog.records if "Disabling" in r.getMessage()]) == 1


def test_error_status_codes():
    assert ConfigurationError("x").status_code == 503
    assert ValidationError("x").status_code == 400
    assert UpstreamError("x").status_code == 502
    assert EstimationError("x").upstream == "estimation"


def test_warning_to_dict():
    w = DataQualityWarning("estimated", "'soup' was estimated", 2)
    assert w.to_dict() == {"kind": "estimated", "message": "'soup' was estimated", "item_index": 2}


def test_row_timestamps_are_timezone_aware():
    day = FoodDayLog(user_id="u1", log_date=date(2026, 10, 19))
    food = GlobalFood(name="Banana")
    setting = MicroTargetSetting(user_id="u1")
    for stamp in (day.updated_at, food.created_at, setting.updated_at):
        assert stamp.tzinfo is not None
        assert stamp.utcoffset() == timedelta(0)


@pytest.mark.asyncio
async def test_datastore_errors_become_upstream_errors():
    @datastore_errors("load things")
    async def failing():
        raise OperationalError("SELECT 1", {}, Exception("disk I/O error"))

    with pytest.raises(UpstreamError) as info:
        await failing()
    assert info.value.upstream == "datastore"
    assert info.value.message.startswith("Could not load things")


@pytest.mark.asyncio
async def test_datastore_errors_leave_domain_errors_alone():
    @datastore_errors("load things")
    async def invalid():
        raise ValidationError("user_id is required")

    with pytest.raises(ValidationError):
        await invalid()
