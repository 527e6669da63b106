"""Activity and food ledgers.

At most one resistance-training entry exists per calendar day. Logging a
different plan on a day that already has one replaces it only once the caller
confirms.
"""

from __future__ import annotations

import datetime
import logging
from dataclasses import dataclass
from enum import Enum

from algorithms import EnergyTools
from algorithms.met_data import CONTINUOUS_METS
from db import ActivityRepository, FoodRepository, SettingsRepository
from models import (
    RESISTANCE_TRAINING,
    ActivityEntry,
    FoodEntry,
    Intensity,
    MealSlot,
    Nutrition,
    ResistanceDetails,
    SportDetails,
    new_id,
)
from planner_service import PlannerService
from profile_service import ProfileService
from sport_service import SportService
from tools import DateTools

logger = logging.getLogger(__name__)


class LogStatus(str, Enum):
    INSERTED = "inserted"
    REPLACED = "replaced"
    ALREADY_LOGGED = "already_logged"
    NEEDS_CONFIRMATION = "needs_confirmation"


@dataclass
class LogResult:
    status: LogStatus
    entry: ActivityEntry
    previous: ActivityEntry | None = None

    @property
    def written(self) -> bool:
        return self.status in (LogStatus.INSERTED, LogStatus.REPLACED)


class LedgerService:
    """Append, reconcile and edit activity and food entries."""

    def __init__(
        self,
        activity_repo: ActivityRepository,
        food_repo: FoodRepository,
        planner: PlannerService,
        sports: SportService,
        profiles: ProfileService,
        settings_repo: SettingsRepository,
    ) -> None:
        self.activities = activity_repo
        self.foods_repo = food_repo
        self.planner = planner
        self.sports = sports
        self.profiles = profiles
        self.settings = settings_repo

    # activities -----------------------------------------------------------

    async def append(self, entry: ActivityEntry, confirm: bool = False) -> LogResult:
        entries = await self.activities.entries()
        if not entry.is_resistance:
            entries.append(entry)
            await self.activities.save_entries(entries)
            return LogResult(LogStatus.INSERTED, entry)

        existing = next(
            (e for e in entries if e.is_resistance and e.date == entry.date), None
        )
        if existing is None:
            entries.append(entry)
            await self.activities.save_entries(entries)
            await self.planner.advance_rotation(entry.details.plan_id)
            logger.debug("resistance session %s logged for %s", entry.details.plan_id, entry.date)
            return LogResult(LogStatus.INSERTED, entry)

        if existing.details.plan_id == entry.details.plan_id:
            logger.debug("plan %s already logged on %s", entry.details.plan_id, entry.date)
            return LogResult(LogStatus.ALREADY_LOGGED, existing)

        if not confirm:
            logger.debug(
                "plan %s conflicts with %s on %s",
                entry.details.plan_id,
                existing.details.plan_id,
                entry.date,
            )
            return LogResult(LogStatus.NEEDS_CONFIRMATION, entry, previous=existing)

        replacement = entry.model_copy(update={"id": existing.id})
        entries = [replacement if e.id == existing.id else e for e in entries]
        await self.activities.save_entries(entries)
        await self.planner.advance_rotation(entry.details.plan_id)
        logger.debug(
            "replaced plan %s with %s on %s",
            existing.details.plan_id,
            entry.details.plan_id,
            entry.date,
        )
        return LogResult(LogStatus.REPLACED, replacement, previous=existing)

    async def log_resistance(
        self,
        plan_id: str,
        performance: dict[str, float] | None = None,
        day: datetime.date | None = None,
        confirm: bool = False,
        duration_minutes: int | None = None,
    ) -> LogResult:
        plan = await self.planner.get_plan(plan_id)
        performance = dict(performance or {})
        unknown = [ex_id for ex_id in performance if plan.exercise(ex_id) is None]
        if unknown:
            raise ValueError(f"exercises not in plan {plan_id}: {', '.join(unknown)}")
        if any(load < 0 for load in performance.values()):
            raise ValueError("loads must not be negative")
        minutes = duration_minutes or self.settings.get_int(
            "resistance_session_minutes", 60
        )
        weight = await self.profiles.body_weight()
        calories = EnergyTools.activity_calories(
            RESISTANCE_TRAINING, Intensity.MODERATE, weight, minutes
        )
        entry = ActivityEntry(
            id=new_id("act"),
            date=day or self._today(),
            category=RESISTANCE_TRAINING,
            details=ResistanceDetails(
                plan_id=plan_id,
                performance=performance,
                duration_minutes=minutes,
                calories=calories,
            ),
        )
        return await self.append(entry, confirm=confirm)

    async def log_sport(
        self,
        sport_id: str,
        duration_minutes: int,
        intensity: Intensity | str | None = None,
        distance_km: float | None = None,
        notes: str = "",
        day: datetime.date | None = None,
    ) -> LogResult:
        if sport_id == RESISTANCE_TRAINING:
            raise ValueError("use log_resistance for resistance training")
        if await self.sports.get_sport(sport_id) is None and sport_id not in CONTINUOUS_METS:
            raise ValueError(f"sport not found: {sport_id}")
        if duration_minutes <= 0:
            raise ValueError("duration must be positive")
        level = Intensity(intensity) if intensity is not None else None
        weight = await self.profiles.body_weight()
        if level is None:
            calories = EnergyTools.continuous_calories(
                sport_id, weight, duration_minutes / 60
            )
        else:
            calories = EnergyTools.activity_calories(
                sport_id, level, weight, duration_minutes
            )
        entry = ActivityEntry(
            id=new_id("act"),
            date=day or self._today(),
            category=sport_id,
            details=SportDetails(
                duration_minutes=duration_minutes,
                intensity=level,
                distance_km=distance_km,
                calories=calories,
                notes=notes,
            ),
        )
        return await self.append(entry)

    async def replace(self, entry: ActivityEntry) -> ActivityEntry:
        """Replace the entry with the same id as ``entry``."""
        entries = await self.activities.entries()
        if not any(e.id == entry.id for e in entries):
            raise ValueError(f"activity not found: {entry.id}")
        if entry.is_resistance and any(
            e.is_resistance and e.date == entry.date and e.id != entry.id
            for e in entries
        ):
            raise ValueError(f"a resistance session already exists on {entry.date}")
        await self.activities.save_entries(
            [entry if e.id == entry.id else e for e in entries]
        )
        return entry

    async def remove(self, entry_id: str) -> ActivityEntry:
        entries = await self.activities.entries()
        target = next((e for e in entries if e.id == entry_id), None)
        if target is None:
            raise ValueError(f"activity not found: {entry_id}")
        await self.activities.save_entries([e for e in entries if e.id != entry_id])
        return target

    async def entries(
        self,
        start: datetime.date | None = None,
        end: datetime.date | None = None,
    ) -> list[ActivityEntry]:
        """Entries between ``start`` and ``end`` inclusive, oldest first."""
        result = [
            e
            for e in await self.activities.entries()
            if (start is None or e.date >= start) and (end is None or e.date <= end)
        ]
        return sorted(result, key=lambda e: e.date)

    async def entries_on(self, day: datetime.date) -> list[ActivityEntry]:
        return await self.entries(day, day)

    async def clear_history(self) -> None:
        await self.activities.clear()
        await self.planner.reset_rotation()
        logger.info("activity history cleared")

    # food -----------------------------------------------------------------

    async def add_food(
        self,
        description: str,
        meal_slot: MealSlot | str,
        nutrition: Nutrition | dict | None = None,
        day: datetime.date | None = None,
    ) -> FoodEntry:
        if not description.strip():
            raise ValueError("description must not be empty")
        if isinstance(nutrition, dict):
            nutrition = Nutrition(**nutrition)
        entry = FoodEntry(
            id=new_id("food"),
            date=day or self._today(),
            meal_slot=MealSlot(meal_slot),
            description=description.strip(),
            nutrition=nutrition or Nutrition(),
        )
        foods = await self.foods_repo.entries()
        foods.append(entry)
        await self.foods_repo.save_entries(foods)
        return entry

    async def replace_food(self, entry: FoodEntry) -> FoodEntry:
        foods = await self.foods_repo.entries()
        if not any(f.id == entry.id for f in foods):
            raise ValueError(f"food entry not found: {entry.id}")
        await self.foods_repo.save_entries(
            [entry if f.id == entry.id else f for f in foods]
        )
        return entry

    async def remove_food(self, entry_id: str) -> None:
        foods = await self.foods_repo.entries()
        remaining = [f for f in foods if f.id != entry_id]
        if len(remaining) == len(foods):
            raise ValueError(f"food entry not found: {entry_id}")
        await self.foods_repo.save_entries(remaining)

    async def foods(
        self,
        start: datetime.date | None = None,
        end: datetime.date | None = None,
    ) -> list[FoodEntry]:
        return [
            f
            for f in await self.foods_repo.entries()
            if (start is None or f.date >= start) and (end is None or f.date <= end)
        ]

    def _today(self) -> datetime.date:
        return DateTools.today(self.settings.get_text("timezone", "UTC"))
