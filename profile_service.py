import datetime

from algorithms import EnergyTools
from db import ProfileRepository, SettingsRepository
from models import UserProfile
from tools import DateTools


class ProfileService:
    """Stores the user profile and derives daily energy targets from it."""

    def __init__(
        self, profile_repo: ProfileRepository, settings_repo: SettingsRepository
    ) -> None:
        self.profiles = profile_repo
        self.settings = settings_repo

    async def get_profile(self) -> UserProfile | None:
        return await self.profiles.profile()

    async def save_profile(self, profile: UserProfile) -> UserProfile:
        await self.profiles.save_profile(profile)
        return profile

    async def body_weight(self) -> float:
        """Profile weight, or the ``body_weight`` setting without a profile."""
        profile = await self.profiles.profile()
        if profile is not None:
            return profile.weight_kg
        return self.settings.get_float("body_weight", 80.0)

    def energy_targets_for(
        self, profile: UserProfile, today: datetime.date
    ) -> dict[str, object]:
        formula = self.settings.get_text("bmr_formula", "mifflin_st_jeor")
        age = DateTools.age_on(profile.birth_date, today)
        bmr = EnergyTools.bmr(
            profile.weight_kg, profile.height_cm, age, profile.sex, formula
        )
        tdee = EnergyTools.tdee(bmr, profile.activity_level)
        bmi = EnergyTools.bmi(profile.weight_kg, profile.height_cm)
        return {
            "age": age,
            "bmi": bmi,
            "bmi_category": EnergyTools.bmi_category(bmi),
            "bmr": round(bmr),
            "tdee": round(tdee),
            "daily_target": EnergyTools.daily_target(profile, today, formula),
            "formula": formula,
        }

    async def energy_targets(self, today: datetime.date) -> dict[str, object]:
        profile = await self.profiles.profile()
        if profile is None:
            raise ValueError("profile not configured")
        return self.energy_targets_for(profile, today)
