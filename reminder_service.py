"""Supplement reminders.

Trigger planning is a pure function of the supplements, their reminder
configuration, today's intake and the current time. ``ReminderScheduler``
applies a plan to a notification host by cancelling everything and arming
the plan again, so repeated re-arms converge on the same set of triggers.
"""

from __future__ import annotations

import asyncio
import datetime
import logging
from dataclasses import dataclass, field
from typing import Iterable, Mapping

from db import Repositories, SettingsRepository
from models import ReminderConfig, Supplement, TrackingType
from notification_host import NotificationHost
from tools import DateTools

logger = logging.getLogger(__name__)

REMINDER_SETTINGS = frozenset(
    {
        "notifications_enabled",
        "timezone",
        "reminder_reinforcements",
        "reminder_interval_minutes",
    }
)


@dataclass(frozen=True)
class ArmedTrigger:
    supplement_id: str
    fire_at: datetime.datetime
    sequence: int
    title: str
    body: str

    def payload(self) -> dict[str, object]:
        return {
            "supplement_id": self.supplement_id,
            "sequence": self.sequence,
            "title": self.title,
            "body": self.body,
        }


@dataclass
class SchedulerState:
    armed: frozenset[ArmedTrigger] = frozenset()
    handles: dict[ArmedTrigger, str] = field(default_factory=dict)
    armed_on: datetime.date | None = None
    permission_granted: bool | None = None

    def armed_for(self, supplement_id: str) -> frozenset[ArmedTrigger]:
        return frozenset(t for t in self.armed if t.supplement_id == supplement_id)


def is_satisfied(supplement: Supplement, value: bool | int | None) -> bool:
    """A daily check is satisfied when taken, a counter from one dose on."""
    if value is None:
        return False
    if supplement.tracking_type is TrackingType.COUNTER:
        return int(value) >= 1
    return bool(value)


def _texts(supplement: Supplement, sequence: int) -> tuple[str, str]:
    dose = f"{supplement.dose.amount:g} {supplement.dose.unit}"
    if sequence == 0:
        return "Supplement reminder", f"Time to take {supplement.name} ({dose})."
    return (
        f"Still pending: {supplement.name}",
        f"You have not logged {supplement.name} ({dose}) today.",
    )


def plan_triggers(
    supplements: Iterable[Supplement],
    configs: Mapping[str, ReminderConfig],
    intake_today: Mapping[str, bool | int],
    now: datetime.datetime,
    reinforcements: int = 5,
    interval: datetime.timedelta = datetime.timedelta(hours=1),
) -> frozenset[ArmedTrigger]:
    """Return the triggers that should be armed at ``now``.

    ``now`` must be timezone-aware; trigger times are expressed in its zone.
    Reinforcements falling on a later calendar day than their primary are
    dropped.
    """
    if now.tzinfo is None:
        raise ValueError("now must be timezone-aware")
    armed: set[ArmedTrigger] = set()
    for supplement in supplements:
        config = configs.get(supplement.id)
        if config is None or not config.enabled:
            continue
        if is_satisfied(supplement, intake_today.get(supplement.id)):
            continue
        primary = DateTools.at_time(now.date(), config.time_of_day, now.tzinfo)
        if primary <= now:
            primary = DateTools.at_time(
                now.date() + datetime.timedelta(days=1),
                config.time_of_day,
                now.tzinfo,
            )
        title, body = _texts(supplement, 0)
        armed.add(ArmedTrigger(supplement.id, primary, 0, title, body))
        for seq in range(1, reinforcements + 1):
            fire_at = primary + seq * interval
            if fire_at.date() != primary.date():
                break
            title, body = _texts(supplement, seq)
            armed.add(ArmedTrigger(supplement.id, fire_at, seq, title, body))
    return frozenset(armed)


class ReminderScheduler:
    """Keeps the host's triggers in line with the reminder configuration."""

    def __init__(
        self,
        host: NotificationHost,
        repos: Repositories,
        settings: SettingsRepository,
        state: SchedulerState | None = None,
    ) -> None:
        self.host = host
        self.repos = repos
        self.settings = settings
        self.state = state if state is not None else SchedulerState()
        self._lock = asyncio.Lock()

    def _local(self, now: datetime.datetime | None) -> datetime.datetime:
        tz = DateTools.zone(self.settings.get_text("timezone", "UTC"))
        if now is None:
            return datetime.datetime.now(tz)
        if now.tzinfo is None:
            return now.replace(tzinfo=tz)
        return now.astimezone(tz)

    async def plan(self, now: datetime.datetime | None = None) -> frozenset[ArmedTrigger]:
        now = self._local(now)
        supplements = await self.repos.supplements.supplements()
        configs = await self.repos.reminders.configs()
        intake = await self.repos.intake.for_day(now.date())
        return plan_triggers(
            supplements,
            configs,
            intake,
            now,
            reinforcements=self.settings.get_int("reminder_reinforcements", 5),
            interval=datetime.timedelta(
                minutes=self.settings.get_int("reminder_interval_minutes", 60)
            ),
        )

    async def rearm(self, now: datetime.datetime | None = None) -> SchedulerState:
        """Cancel every trigger on the host and arm the current plan.

        Re-arms are serialized so the host never holds two plans at once.
        """
        async with self._lock:
            return await self._rearm(self._local(now))

    async def _rearm(self, now: datetime.datetime) -> SchedulerState:
        await self.host.cancel_all()
        self.state.armed = frozenset()
        self.state.handles = {}
        self.state.armed_on = now.date()
        planned = await self.plan(now)
        if not planned:
            logger.info("no reminders to arm")
            return self.state
        granted = await self.host.request_permission()
        self.state.permission_granted = granted
        if not granted:
            logger.info("notification permission denied; %d trigger(s) skipped", len(planned))
            return self.state
        handles: dict[ArmedTrigger, str] = {}
        for trigger in sorted(planned, key=lambda t: (t.fire_at, t.supplement_id, t.sequence)):
            handles[trigger] = await self.host.schedule_at(trigger.fire_at, trigger.payload())
        self.state.armed = planned
        self.state.handles = handles
        logger.info(
            "armed %d trigger(s) for %d supplement(s)",
            len(planned),
            len({t.supplement_id for t in planned}),
        )
        return self.state

    async def reconcile(self, now: datetime.datetime | None = None) -> bool:
        """Re-arm when the local day changed since the last re-arm."""
        now = self._local(now)
        if self.state.armed_on == now.date():
            return False
        logger.info("day rollover to %s, re-arming reminders", now.date())
        await self.rearm(now)
        return True
