from datetime import date, datetime
from enum import Enum
from typing import Optional

from sqlmodel import Field, SQLModel, UniqueConstraint

from nutripilot.models.foods import utc_now


class ItemSource(str, Enum):
    db = "db"
    ai = "ai"


class FoodDayLog(SQLModel, table=True):
    """One row per (user, date); upserted on every save of that day."""

    __tablename__ = "food_day_logs"
    __table_args__ = (UniqueConstraint("user_id", "log_date", name="uq_day_log_user_date"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: str = Field(index=True)
    log_date: date = Field(index=True)

    calories: int = 0
    protein_g: int = 0
    carbs_g: int = 0
    fats_g: int = 0
    alcohol_g: float = 0.0

    notes: Optional[str] = None
    water_ml: Optional[float] = Field(default=None, ge=0)
    salt_g: Optional[float] = Field(default=None, ge=0)

    updated_at: datetime = Field(default_factory=utc_now, index=True)


class FoodLogItem(SQLModel, table=True):
    __tablename__ = "food_log_items"

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: str = Field(index=True)
    log_date: date = Field(index=True)
    position: int = 0

    food_name: str
    amount: float
    unit: str
    preparation_state: Optional[str] = None

    food_id: Optional[int] = Field(default=None, foreign_key="global_foods.id", index=True)
    user_food_id: Optional[int] = Field(default=None, foreign_key="user_foods.id", index=True)
    auto_matched: bool = False

    grams: Optional[float] = None
    source: ItemSource = Field(default=ItemSource.db, index=True)

    calories: int = 0
    protein_g: int = 0
    carbs_g: int = 0
    fats_g: int = 0
    alcohol_g: float = 0.0


class FoodLogItemNutrient(SQLModel, table=True):
    """Snapshot of an item's nutrients at save time."""

    __tablename__ = "food_log_item_nutrients"
    __table_args__ = (UniqueConstraint("item_id", "code", name="uq_log_item_code"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    item_id: int = Field(foreign_key="food_log_items.id", index=True)
    code: str = Field(index=True)
    amount: float = 0.0
