from __future__ import annotations

import datetime
from collections import Counter
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from db import Repositories, SettingsRepository
from models import (
    RESISTANCE_TRAINING,
    ActivityEntry,
    FoodEntry,
    SportDefinition,
    WorkoutPlan,
)
from profile_service import ProfileService
from tools import DateTools

WEEKDAYS = ("Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun")


@dataclass
class LedgerSnapshot:
    """Everything the aggregations read, loaded together."""

    activities: List[ActivityEntry] = field(default_factory=list)
    foods: List[FoodEntry] = field(default_factory=list)
    intake: Dict[str, Dict[str, bool | int]] = field(default_factory=dict)
    plans: List[WorkoutPlan] = field(default_factory=list)
    sports: List[SportDefinition] = field(default_factory=list)


class StatisticsService:
    """Compute rollups over the activity and food ledgers.

    Nothing is cached between calls: every public method loads a fresh
    snapshot and hands it to the static aggregation helpers.
    """

    def __init__(
        self,
        repos: Repositories,
        settings_repo: SettingsRepository,
        profiles: ProfileService | None = None,
    ) -> None:
        self.repos = repos
        self.settings = settings_repo
        self.profiles = profiles

    async def snapshot(self) -> LedgerSnapshot:
        return LedgerSnapshot(
            activities=await self.repos.activities.entries(),
            foods=await self.repos.foods.entries(),
            intake=await self.repos.intake.records(),
            plans=await self.repos.plans.plans(),
            sports=await self.repos.sports.sports(),
        )

    def cached_snapshot(self) -> LedgerSnapshot:
        """Snapshot built from the repositories' last good values."""
        return LedgerSnapshot(
            activities=self.repos.activities.cached_entries(),
            foods=self.repos.foods.cached_entries(),
            intake=self.repos.intake.cached({}),
            plans=self.repos.plans.cached_plans(),
            sports=self.repos.sports.cached_sports(),
        )

    # pure aggregations ----------------------------------------------------

    @staticmethod
    def _between(
        entries: list, start: datetime.date, end: datetime.date
    ) -> list:
        return [e for e in entries if start <= e.date <= end]

    @staticmethod
    def count_by_category(
        snap: LedgerSnapshot, ref: datetime.date, window: str
    ) -> Dict[str, int]:
        start, end = DateTools.window_bounds(ref, window)
        counts: Dict[str, int] = {s.id: 0 for s in snap.sports}
        for entry in StatisticsService._between(snap.activities, start, end):
            counts[entry.category] = counts.get(entry.category, 0) + 1
        return counts

    @staticmethod
    def count_by_plan(
        snap: LedgerSnapshot, ref: datetime.date, window: str
    ) -> Dict[str, int]:
        start, end = DateTools.window_bounds(ref, window)
        counts: Dict[str, int] = {p.id: 0 for p in snap.plans}
        for entry in StatisticsService._between(snap.activities, start, end):
            if entry.is_resistance and entry.details.plan_id in counts:
                counts[entry.details.plan_id] += 1
        return counts

    @staticmethod
    def weekday_counts(
        snap: LedgerSnapshot,
        category: str,
        start: Optional[datetime.date] = None,
        end: Optional[datetime.date] = None,
    ) -> Dict[str, int]:
        hist = Counter(
            e.date.weekday()
            for e in snap.activities
            if e.category == category
            and (start is None or e.date >= start)
            and (end is None or e.date <= end)
        )
        return {name: hist.get(idx, 0) for idx, name in enumerate(WEEKDAYS)}

    @staticmethod
    def consumed_on(snap: LedgerSnapshot, day: datetime.date) -> float:
        return round(sum(f.nutrition.calories for f in snap.foods if f.date == day), 1)

    @staticmethod
    def spent_on(snap: LedgerSnapshot, day: datetime.date) -> float:
        return round(sum(a.calories for a in snap.activities if a.date == day), 1)

    @staticmethod
    def macros_on(snap: LedgerSnapshot, day: datetime.date) -> Dict[str, float]:
        totals = {"calories": 0.0, "protein": 0.0, "carbs": 0.0, "fat": 0.0}
        for food in snap.foods:
            if food.date != day:
                continue
            for key in totals:
                totals[key] += getattr(food.nutrition, key)
        return {k: round(v, 1) for k, v in totals.items()}

    @staticmethod
    def loads(snap: LedgerSnapshot, exercise_id: str) -> List[Tuple[datetime.date, float]]:
        """All logged loads of ``exercise_id`` as date-ascending pairs."""
        result = [
            (e.date, e.details.performance[exercise_id])
            for e in snap.activities
            if e.is_resistance and exercise_id in e.details.performance
        ]
        return sorted(result, key=lambda r: r[0])

    @staticmethod
    def best_load(snap: LedgerSnapshot, exercise_id: str) -> Optional[float]:
        values = [load for _d, load in StatisticsService.loads(snap, exercise_id)]
        return max(values) if values else None

    @staticmethod
    def best_loads(snap: LedgerSnapshot) -> Dict[str, float]:
        records: Dict[str, float] = {}
        for entry in snap.activities:
            if not entry.is_resistance:
                continue
            for ex_id, load in entry.details.performance.items():
                if ex_id not in records or load > records[ex_id]:
                    records[ex_id] = load
        return records

    @staticmethod
    def recent_loads(
        snap: LedgerSnapshot, exercise_id: str, limit: int = 5
    ) -> List[Tuple[datetime.date, float]]:
        if limit <= 0:
            return []
        return StatisticsService.loads(snap, exercise_id)[-limit:]

    @staticmethod
    def calendar(
        snap: LedgerSnapshot, ref: datetime.date, window: str
    ) -> Dict[str, List[str]]:
        start, end = DateTools.window_bounds(ref, window)
        days: Dict[str, List[str]] = {}
        for entry in sorted(
            StatisticsService._between(snap.activities, start, end),
            key=lambda e: e.date,
        ):
            days.setdefault(entry.date.isoformat(), []).append(entry.category)
        return days

    @staticmethod
    def streak(snap: LedgerSnapshot, today: datetime.date) -> Dict[str, int]:
        """Return current and record runs of consecutive active days."""
        dates = sorted({e.date for e in snap.activities if e.date <= today})
        if not dates:
            return {"current": 0, "record": 0}
        record = 1
        current = 1
        for i in range(1, len(dates)):
            gap = (dates[i] - dates[i - 1]).days
            if gap == 1:
                current += 1
            else:
                record = max(record, current)
                current = 1
        record = max(record, current)
        if (today - dates[-1]).days > 1:
            current = 0
        return {"current": current, "record": record}

    @staticmethod
    def window_summary(
        snap: LedgerSnapshot, ref: datetime.date, window: str
    ) -> Dict[str, object]:
        start, end = DateTools.window_bounds(ref, window)
        activities = StatisticsService._between(snap.activities, start, end)
        foods = StatisticsService._between(snap.foods, start, end)
        calories_in = round(sum(f.nutrition.calories for f in foods), 1)
        calories_out = round(sum(a.calories for a in activities), 1)
        return {
            "window": window,
            "start": start.isoformat(),
            "end": end.isoformat(),
            "activities": len(activities),
            "resistance_sessions": sum(1 for a in activities if a.is_resistance),
            "active_days": len({a.date for a in activities}),
            "minutes": sum(a.details.duration_minutes for a in activities),
            "calories_in": calories_in,
            "calories_out": calories_out,
            "net": round(calories_in - calories_out, 1),
            "categories": StatisticsService.count_by_category(snap, ref, window),
            "plans": StatisticsService.count_by_plan(snap, ref, window),
        }

    # service API ----------------------------------------------------------

    async def category_counts(
        self, ref: datetime.date, window: str = "week"
    ) -> Dict[str, int]:
        return self.count_by_category(await self.snapshot(), ref, window)

    async def plan_counts(
        self, ref: datetime.date, window: str = "month"
    ) -> Dict[str, int]:
        return self.count_by_plan(await self.snapshot(), ref, window)

    async def weekday_histogram(
        self,
        category: str = RESISTANCE_TRAINING,
        start: Optional[datetime.date] = None,
        end: Optional[datetime.date] = None,
    ) -> Dict[str, int]:
        return self.weekday_counts(await self.snapshot(), category, start, end)

    async def energy_consumed(self, day: datetime.date) -> float:
        return self.consumed_on(await self.snapshot(), day)

    async def energy_spent(self, day: datetime.date) -> float:
        return self.spent_on(await self.snapshot(), day)

    async def net_energy_balance(self, day: datetime.date) -> float:
        """Food calories minus activity calories on ``day``."""
        snap = await self.snapshot()
        return round(self.consumed_on(snap, day) - self.spent_on(snap, day), 1)

    async def nutrition_totals(self, day: datetime.date) -> Dict[str, float]:
        return self.macros_on(await self.snapshot(), day)

    async def personal_record(self, exercise_id: str) -> Optional[float]:
        return self.best_load(await self.snapshot(), exercise_id)

    async def personal_records(self) -> Dict[str, float]:
        return self.best_loads(await self.snapshot())

    async def exercise_series(
        self, exercise_id: str, limit: int | None = None
    ) -> List[Tuple[datetime.date, float]]:
        if limit is None:
            limit = self.settings.get_int("series_window", 5)
        return self.recent_loads(await self.snapshot(), exercise_id, limit)

    async def activity_calendar(
        self, ref: datetime.date, window: str = "month"
    ) -> Dict[str, List[str]]:
        return self.calendar(await self.snapshot(), ref, window)

    async def activities_on(self, day: datetime.date) -> List[ActivityEntry]:
        snap = await self.snapshot()
        return [a for a in snap.activities if a.date == day]

    async def workout_streak(self, today: datetime.date) -> Dict[str, int]:
        return self.streak(await self.snapshot(), today)

    async def summary(
        self, ref: datetime.date, window: str = "week"
    ) -> Dict[str, object]:
        return self.window_summary(await self.snapshot(), ref, window)

    def report_for(
        self,
        snap: LedgerSnapshot,
        day: datetime.date,
        daily_target: int | None,
    ) -> Dict[str, object]:
        consumed = self.consumed_on(snap, day)
        spent = self.spent_on(snap, day)
        report: Dict[str, object] = {
            "date": day.isoformat(),
            "consumed": consumed,
            "spent": spent,
            "net": round(consumed - spent, 1),
            "daily_target": daily_target,
            "remaining": None,
            "over_target": None,
        }
        if daily_target is not None:
            remaining = round(daily_target - consumed, 1)
            report["remaining"] = remaining
            report["over_target"] = remaining < 0
        return report

    async def energy_report(self, day: datetime.date) -> Dict[str, object]:
        """Net balance for ``day`` against the profile's calorie target."""
        target = None
        if self.profiles is not None:
            profile = await self.profiles.get_profile()
            if profile is not None:
                target = self.profiles.energy_targets_for(profile, day)["daily_target"]
        return self.report_for(await self.snapshot(), day, target)
