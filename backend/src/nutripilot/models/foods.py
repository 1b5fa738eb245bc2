from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from sqlmodel import Field, SQLModel, UniqueConstraint


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class Provenance(str, Enum):
    user = "user"
    global_ = "global"


class UserFood(SQLModel, table=True):
    __tablename__ = "user_foods"

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: str = Field(index=True)
    name: str = Field(index=True)
    brand: Optional[str] = Field(default=None, index=True)
    locale: str = "en"
    created_at: datetime = Field(default_factory=utc_now, index=True)


class GlobalFood(SQLModel, table=True):
    __tablename__ = "global_foods"
    __table_args__ = (UniqueConstraint("source", "external_id", name="uq_global_food_source"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    name: str = Field(index=True)
    brand: Optional[str] = Field(default=None, index=True)
    locale: str = "en"
    source: str = Field(default="manual", index=True)  # "fdc" | "manual"
    external_id: Optional[str] = Field(default=None, index=True)
    created_at: datetime = Field(default_factory=utc_now, index=True)


class UserFoodNutrient(SQLModel, table=True):
    __tablename__ = "user_food_nutrients"
    __table_args__ = (UniqueConstraint("user_food_id", "code", name="uq_user_food_code"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    user_food_id: int = Field(foreign_key="user_foods.id", index=True)
    code: str = Field(index=True)
    amount_per_100g: float = 0.0


class GlobalFoodNutrient(SQLModel, table=True):
    __tablename__ = "global_food_nutrients"
    __table_args__ = (UniqueConstraint("food_id", "code", name="uq_global_food_code"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    food_id: int = Field(foreign_key="global_foods.id", index=True)
    code: str = Field(index=True)
    amount_per_100g: float = 0.0


class UserFoodUnit(SQLModel, table=True):
    """Grams per non-mass unit (e.g. one "serv") for a user food."""

    __tablename__ = "user_food_units"
    __table_args__ = (UniqueConstraint("user_food_id", "unit", name="uq_user_food_unit"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    user_food_id: int = Field(foreign_key="user_foods.id", index=True)
    unit: str = Field(index=True)
    grams_per_unit: float = Field(gt=0)


class GlobalFoodUnit(SQLModel, table=True):
    __tablename__ = "global_food_units"
    __table_args__ = (UniqueConstraint("food_id", "unit", name="uq_global_food_unit"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    food_id: int = Field(foreign_key="global_foods.id", index=True)
    unit: str = Field(index=True)
    grams_per_unit: float = Field(gt=0)
