from typing import Literal

from pydantic import BaseModel, Field, ValidationError, field_validator

from config import APP_VERSION


class SettingsSchema(BaseModel):
    timezone: str = "UTC"
    body_weight: float = Field(80.0, gt=0)
    bmr_formula: Literal["mifflin_st_jeor", "harris_benedict"] = "mifflin_st_jeor"
    resistance_session_minutes: int = Field(60, gt=0)
    default_reminder_time: str = "09:00"
    reminder_reinforcements: int = Field(5, ge=0, le=23)
    reminder_interval_minutes: int = Field(60, gt=0)
    notifications_enabled: bool = True
    webhook_url: str = ""
    series_window: int = Field(5, gt=0)
    app_version: str = APP_VERSION

    @field_validator("default_reminder_time")
    @classmethod
    def _check_time(cls, value: str) -> str:
        hour, _, minute = value.partition(":")
        if not (hour.isdigit() and minute.isdigit()):
            raise ValueError("time must be HH:MM")
        if not (0 <= int(hour) < 24 and 0 <= int(minute) < 60):
            raise ValueError("time must be HH:MM")
        return value


BOOL_KEYS = {
    name
    for name, field in SettingsSchema.model_fields.items()
    if field.annotation is bool
}


def validate_settings(data: dict) -> None:
    try:
        SettingsSchema(**data)
    except ValidationError as e:
        raise ValueError(str(e))
