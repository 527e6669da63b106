from __future__ import annotations

import datetime
import logging

from db import (
    IntakeRepository,
    ReminderConfigRepository,
    SettingsRepository,
    SupplementRepository,
)
from models import Dose, ReminderConfig, Supplement, TrackingType, new_id
from reminder_service import ReminderScheduler, is_satisfied
from tools import DateTools

logger = logging.getLogger(__name__)


class SupplementService:
    """Supplements, their daily intake records and reminder configuration.

    Every change that can alter which reminders are due re-arms the attached
    scheduler.
    """

    def __init__(
        self,
        supplement_repo: SupplementRepository,
        intake_repo: IntakeRepository,
        reminder_repo: ReminderConfigRepository,
        settings_repo: SettingsRepository,
        scheduler: ReminderScheduler | None = None,
    ) -> None:
        self.supplements = supplement_repo
        self.intake = intake_repo
        self.reminders = reminder_repo
        self.settings = settings_repo
        self.scheduler = scheduler

    async def _rearm(self, rearm: bool = True) -> None:
        if rearm and self.scheduler is not None:
            await self.scheduler.rearm()

    async def list_supplements(self) -> list[Supplement]:
        return await self.supplements.supplements()

    async def get_supplement(self, supplement_id: str) -> Supplement:
        for supp in await self.supplements.supplements():
            if supp.id == supplement_id:
                return supp
        raise ValueError(f"supplement not found: {supplement_id}")

    async def add_supplement(
        self,
        name: str,
        amount: float,
        unit: str,
        tracking_type: TrackingType | str = TrackingType.DAILY_CHECK,
    ) -> Supplement:
        supp = Supplement(
            id=new_id("supp"),
            name=name,
            dose=Dose(amount=amount, unit=unit),
            tracking_type=TrackingType(tracking_type),
        )
        items = await self.supplements.supplements()
        items.append(supp)
        await self.supplements.save_supplements(items)
        return supp

    async def update_supplement(self, supplement_id: str, **changes) -> Supplement:
        items = await self.supplements.supplements()
        for idx, supp in enumerate(items):
            if supp.id != supplement_id:
                continue
            changes.pop("id", None)
            updated = Supplement.model_validate(
                {**supp.model_dump(mode="json"), **changes}
            )
            items[idx] = updated
            await self.supplements.save_supplements(items)
            await self._rearm()
            return updated
        raise ValueError(f"supplement not found: {supplement_id}")

    async def delete_supplement(self, supplement_id: str) -> None:
        items = await self.supplements.supplements()
        remaining = [s for s in items if s.id != supplement_id]
        if len(remaining) == len(items):
            raise ValueError(f"supplement not found: {supplement_id}")
        await self.supplements.save_supplements(remaining)
        await self.reminders.drop_config(supplement_id)
        await self.intake.drop_supplement(supplement_id)
        await self._rearm()

    async def intake_for(self, day: datetime.date) -> dict[str, bool | int]:
        return await self.intake.for_day(day)

    async def set_taken(
        self,
        supplement_id: str,
        day: datetime.date,
        taken: bool,
        rearm: bool = True,
    ) -> bool:
        supp = await self.get_supplement(supplement_id)
        if supp.tracking_type is not TrackingType.DAILY_CHECK:
            raise ValueError(f"{supp.name} is tracked as a counter")
        await self.intake.set_value(day, supplement_id, bool(taken))
        await self._rearm(rearm)
        return bool(taken)

    async def _adjust(
        self, supplement_id: str, day: datetime.date, delta: int, rearm: bool
    ) -> int:
        supp = await self.get_supplement(supplement_id)
        if supp.tracking_type is not TrackingType.COUNTER:
            raise ValueError(f"{supp.name} is tracked as a daily check")
        current = int((await self.intake.for_day(day)).get(supplement_id, 0))
        value = max(current + delta, 0)
        await self.intake.set_value(day, supplement_id, value)
        await self._rearm(rearm)
        return value

    async def increment(
        self, supplement_id: str, day: datetime.date, rearm: bool = True
    ) -> int:
        return await self._adjust(supplement_id, day, 1, rearm)

    async def decrement(
        self, supplement_id: str, day: datetime.date, rearm: bool = True
    ) -> int:
        return await self._adjust(supplement_id, day, -1, rearm)

    async def is_satisfied(self, supplement_id: str, day: datetime.date) -> bool:
        supp = await self.get_supplement(supplement_id)
        return is_satisfied(supp, (await self.intake.for_day(day)).get(supplement_id))

    async def reminder_configs(self) -> dict[str, ReminderConfig]:
        """Return a config for every supplement, disabled when never set."""
        stored = await self.reminders.configs()
        default_time = DateTools.parse_time(
            self.settings.get_text("default_reminder_time", "09:00")
        )
        return {
            s.id: stored.get(s.id, ReminderConfig(enabled=False, time_of_day=default_time))
            for s in await self.supplements.supplements()
        }

    async def set_reminder(
        self,
        supplement_id: str,
        enabled: bool | None = None,
        time_of_day: datetime.time | str | None = None,
    ) -> ReminderConfig:
        await self.get_supplement(supplement_id)
        current = (await self.reminder_configs())[supplement_id]
        changes: dict[str, object] = {}
        if enabled is not None:
            changes["enabled"] = enabled
        if time_of_day is not None:
            changes["time_of_day"] = DateTools.parse_time(time_of_day)
        config = current.model_copy(update=changes)
        await self.reminders.put_config(supplement_id, config)
        logger.debug(
            "reminder for %s: enabled=%s at %s",
            supplement_id,
            config.enabled,
            config.time_of_day.strftime("%H:%M"),
        )
        await self._rearm()
        return config
