"""Domain records persisted in the record store.

Every record round-trips through ``model_dump(mode="json")`` so the store only
ever sees plain JSON values.
"""

from __future__ import annotations

import datetime
import uuid
from enum import Enum
from typing import Annotated, Literal, Union

from pydantic import BaseModel, Field, field_validator, model_validator

RESISTANCE_TRAINING = "resistance_training"

# Identifiers that always exist in the sport list and can never be deleted.
RESERVED_SPORT_IDS = frozenset({RESISTANCE_TRAINING})


def new_id(prefix: str) -> str:
    return f"{prefix}_{uuid.uuid4().hex[:12]}"


class Intensity(str, Enum):
    LIGHT = "light"
    MODERATE = "moderate"
    HIGH = "high"


class MealSlot(str, Enum):
    BREAKFAST = "breakfast"
    LUNCH = "lunch"
    DINNER = "dinner"
    SNACK = "snack"


class TrackingType(str, Enum):
    DAILY_CHECK = "daily_check"
    COUNTER = "counter"


class Sex(str, Enum):
    MALE = "male"
    FEMALE = "female"


class ActivityLevel(str, Enum):
    SEDENTARY = "sedentary"
    LIGHT = "light"
    MODERATE = "moderate"
    ACTIVE = "active"
    VERY_ACTIVE = "very_active"


class ResistanceDetails(BaseModel):
    kind: Literal["resistance"] = "resistance"
    plan_id: str
    performance: dict[str, float] = Field(default_factory=dict)
    duration_minutes: int = Field(60, gt=0)
    calories: float = Field(0.0, ge=0)


class SportDetails(BaseModel):
    kind: Literal["sport"] = "sport"
    duration_minutes: int = Field(gt=0)
    intensity: Intensity | None = None
    distance_km: float | None = Field(None, ge=0)
    calories: float = Field(0.0, ge=0)
    notes: str = ""


class ActivityEntry(BaseModel):
    id: str = Field(default_factory=lambda: new_id("act"))
    date: datetime.date
    category: str
    details: Annotated[
        Union[ResistanceDetails, SportDetails], Field(discriminator="kind")
    ]

    @model_validator(mode="after")
    def _category_matches_details(self) -> "ActivityEntry":
        is_resistance = self.details.kind == "resistance"
        if is_resistance != (self.category == RESISTANCE_TRAINING):
            raise ValueError("resistance details require the resistance category")
        return self

    @property
    def is_resistance(self) -> bool:
        return self.category == RESISTANCE_TRAINING

    @property
    def calories(self) -> float:
        return self.details.calories


class Nutrition(BaseModel):
    calories: float = Field(0.0, ge=0)
    protein: float = Field(0.0, ge=0)
    carbs: float = Field(0.0, ge=0)
    fat: float = Field(0.0, ge=0)


class FoodEntry(BaseModel):
    id: str = Field(default_factory=lambda: new_id("food"))
    date: datetime.date
    meal_slot: MealSlot
    description: str
    nutrition: Nutrition = Field(default_factory=Nutrition)


class Dose(BaseModel):
    amount: float = Field(gt=0)
    unit: str


class Supplement(BaseModel):
    id: str = Field(default_factory=lambda: new_id("supp"))
    name: str
    dose: Dose
    tracking_type: TrackingType = TrackingType.DAILY_CHECK

    @field_validator("name")
    @classmethod
    def _strip_name(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("name must not be empty")
        return value


class ReminderConfig(BaseModel):
    enabled: bool = False
    time_of_day: datetime.time = datetime.time(9, 0)

    @field_validator("time_of_day")
    @classmethod
    def _minute_precision(cls, value: datetime.time) -> datetime.time:
        return value.replace(second=0, microsecond=0, tzinfo=None)


class Exercise(BaseModel):
    id: str = Field(default_factory=lambda: new_id("ex"))
    name: str
    target_muscle: str = ""
    sets: int = Field(3, gt=0)
    reps: str = "10"
    notes: str = ""
    media_url: str | None = None


class WorkoutPlan(BaseModel):
    id: str = Field(default_factory=lambda: new_id("plan"))
    name: str
    muscle_groups: str = ""
    exercises: list[Exercise] = Field(default_factory=list)

    def exercise(self, exercise_id: str) -> Exercise | None:
        for ex in self.exercises:
            if ex.id == exercise_id:
                return ex
        return None


class IconRef(BaseModel):
    """Icon reference resolved by the client as ``library:name``."""

    library: str = "ionicons"
    name: str = "help-circle"

    @classmethod
    def parse(cls, ref: str) -> "IconRef":
        library, sep, name = ref.partition(":")
        if not sep:
            return cls(name=library)
        return cls(library=library, name=name)

    def __str__(self) -> str:
        return f"{self.library}:{self.name}"


class SportDefinition(BaseModel):
    id: str = Field(default_factory=lambda: new_id("sport"))
    name: str
    icon: IconRef = Field(default_factory=IconRef)

    @property
    def reserved(self) -> bool:
        return self.id in RESERVED_SPORT_IDS


class Goal(BaseModel):
    target_weight_kg: float | None = Field(None, gt=0)
    target_date: datetime.date | None = None


class UserProfile(BaseModel):
    name: str = ""
    weight_kg: float = Field(gt=0)
    height_cm: float = Field(gt=0)
    birth_date: datetime.date
    sex: Sex
    activity_level: ActivityLevel = ActivityLevel.MODERATE
    goal: Goal | None = None
