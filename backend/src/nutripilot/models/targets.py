from datetime import date, datetime
from enum import Enum
from typing import Optional

from sqlmodel import Field, SQLModel, UniqueConstraint

from nutripilot.models.foods import utc_now


class Sex(str, Enum):
    male = "male"
    female = "female"
    unspecified = "unspecified"


class MicroTargetMode(str, Enum):
    rdi = "rdi"
    bodyweight = "bodyweight"
    custom = "custom"


class DayType(str, Enum):
    training = "training"
    rest = "rest"
    high = "high"


class Profile(SQLModel, table=True):
    __tablename__ = "profiles"

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: str = Field(index=True, unique=True)
    sex: Optional[str] = None
    current_weight_kg: Optional[float] = Field(default=None, ge=0)
    goal_type: Optional[str] = None  # maintain | lose | cut | gain | bulk
    weekly_weight_change_target_kg: Optional[float] = None


class MicroTargetSetting(SQLModel, table=True):
    __tablename__ = "micro_target_settings"

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: str = Field(index=True, unique=True)
    mode: MicroTargetMode = MicroTargetMode.rdi
    updated_at: datetime = Field(default_factory=utc_now)


class MicroTargetOverride(SQLModel, table=True):
    __tablename__ = "micro_target_overrides"
    __table_args__ = (UniqueConstraint("user_id", "code", name="uq_micro_override_user_code"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: str = Field(index=True)
    code: str = Field(index=True)
    amount: float = Field(ge=0)


class NutritionDayTarget(SQLModel, table=True):
    __tablename__ = "nutrition_day_targets"
    __table_args__ = (UniqueConstraint("user_id", "day_type", name="uq_day_target_user_type"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: str = Field(index=True)
    day_type: DayType = Field(index=True)
    calories: int = 0
    protein_g: int = 0
    carbs_g: int = 0
    fats_g: int = 0


class WeeklyFlexRule(SQLModel, table=True):
    __tablename__ = "weekly_flex_rules"

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: str = Field(index=True, unique=True)
    week_start: date
    base_cheat_meals: int = 1
    banked_cheat_meals: int = 0
    used_cheat_meals: int = 0
    alcohol_units_week: float = 0.0
