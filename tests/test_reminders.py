import os
import sys
import asyncio
import datetime
import pytest

sys.path.append(os.path.dirname(os.path.dirname(__file__)))
from db import Repositories, SettingsRepository
from models import ReminderConfig
from notification_host import NotificationHost
from reminder_service import ReminderScheduler, SchedulerState, plan_triggers
from seed_data import default_supplements
from supplement_service import SupplementService

UTC = datetime.timezone.utc
MORNING = datetime.datetime(2026, 10, 19, 8, 0, tzinfo=UTC)


class FakeHost(NotificationHost):
    def __init__(self, granted: bool = True) -> None:
        self.granted = granted
        self.scheduled: list[tuple[datetime.datetime, dict]] = []
        self.cancel_calls = 0
        self.permission_requests = 0

    async def request_permission(self) -> bool:
        self.permission_requests += 1
        return self.granted

    async def schedule_at(self, when, payload):
        self.scheduled.append((when, payload))
        return f"h{len(self.scheduled)}"

    async def cancel_all(self) -> None:
        self.cancel_calls += 1
        self.scheduled.clear()


def configs(**times):
    return {
        sid: ReminderConfig(enabled=True, time_of_day=datetime.time(*t))
        for sid, t in times.items()
    }


def test_primary_today_with_hourly_reinforcements():
    plan = plan_triggers(
        default_supplements(), configs(supp_creatine=(9, 0)), {}, MORNING
    )
    times = sorted(t.fire_at.hour for t in plan)
    assert times == [9, 10, 11, 12, 13, 14]
    primary = [t for t in plan if t.sequence == 0]
    assert len(primary) == 1
    assert primary[0].fire_at == datetime.datetime(2026, 10, 19, 9, 0, tzinfo=UTC)
    assert "Creatine" in primary[0].body


def test_primary_moves_to_tomorrow_once_time_passed():
    now = datetime.datetime(2026, 10, 19, 9, 0, tzinfo=UTC)
    plan = plan_triggers(default_supplements(), configs(supp_creatine=(9, 0)), {}, now)
    assert {t.fire_at.date() for t in plan} == {datetime.date(2026, 10, 20)}


def test_reinforcements_stop_at_day_end():
    now = datetime.datetime(2026, 10, 19, 20, 0, tzinfo=UTC)
    plan = plan_triggers(
        default_supplements(), configs(supp_creatine=(21, 30)), {}, now
    )
    assert sorted(t.sequence for t in plan) == [0, 1, 2]
    assert max(t.fire_at for t in plan).hour == 23


def test_satisfied_supplements_are_not_armed():
    both = configs(supp_creatine=(9, 0), supp_whey=(10, 0))
    plan = plan_triggers(
        default_supplements(), both, {"supp_creatine": True, "supp_whey": 1}, MORNING
    )
    assert plan == frozenset()
    plan = plan_triggers(
        default_supplements(), both, {"supp_creatine": False, "supp_whey": 0}, MORNING
    )
    assert {t.supplement_id for t in plan} == {"supp_creatine", "supp_whey"}


def test_disabling_one_leaves_others_identical():
    both = configs(supp_creatine=(9, 0), supp_whey=(10, 0))
    before = plan_triggers(default_supplements(), both, {}, MORNING)
    both["supp_whey"] = both["supp_whey"].model_copy(update={"enabled": False})
    after = plan_triggers(default_supplements(), both, {}, MORNING)
    assert after == frozenset(t for t in before if t.supplement_id == "supp_creatine")


def test_missing_supplement_or_naive_time():
    plan = plan_triggers([], configs(supp_creatine=(9, 0)), {}, MORNING)
    assert plan == frozenset()
    with pytest.raises(ValueError):
        plan_triggers(default_supplements(), {}, {}, MORNING.replace(tzinfo=None))


def make_scheduler(tmp_path, host):
    db_file = str(tmp_path / "reminders.db")
    settings = SettingsRepository(db_file, str(tmp_path / "settings.yaml"))
    repos = Repositories(db_file)
    scheduler = ReminderScheduler(host, repos, settings, SchedulerState())
    supplements = SupplementService(
        repos.supplements, repos.intake, repos.reminders, settings, scheduler
    )
    return scheduler, supplements


@pytest.mark.asyncio
async def test_rearm_cancels_then_schedules(tmp_path):
    host = FakeHost()
    scheduler, supplements = make_scheduler(tmp_path, host)
    await supplements.set_reminder("supp_creatine", True, "09:00")
    state = await scheduler.rearm(MORNING)
    assert len(state.armed) == 6
    assert len(host.scheduled) == 6
    assert set(state.handles.values()) == {f"h{i}" for i in range(1, 7)}
    cancels = host.cancel_calls
    await scheduler.rearm(MORNING)
    assert host.cancel_calls == cancels + 1
    assert len(host.scheduled) == 6


@pytest.mark.asyncio
async def test_permission_denied_arms_nothing(tmp_path):
    host = FakeHost(granted=False)
    scheduler, supplements = make_scheduler(tmp_path, host)
    await supplements.set_reminder("supp_creatine", True, "09:00")
    state = await scheduler.rearm(MORNING)
    assert state.permission_granted is False
    assert state.armed == frozenset()
    assert host.scheduled == []


@pytest.mark.asyncio
async def test_permission_only_requested_when_needed(tmp_path):
    host = FakeHost()
    scheduler, _supplements = make_scheduler(tmp_path, host)
    await scheduler.rearm(MORNING)
    assert host.permission_requests == 0
    assert host.cancel_calls == 1


@pytest.mark.asyncio
async def test_logging_intake_suppresses_reminders(tmp_path):
    host = FakeHost()
    scheduler, supplements = make_scheduler(tmp_path, host)
    await supplements.set_reminder("supp_creatine", True, "23:59")
    await supplements.set_reminder("supp_whey", True, "23:59")
    today = scheduler._local(None).date()
    await supplements.set_taken("supp_creatine", today, True)
    assert scheduler.state.armed_for("supp_creatine") == frozenset()
    assert all(p["supplement_id"] == "supp_whey" for _w, p in host.scheduled)

    assert await supplements.increment("supp_whey", today) == 1
    assert scheduler.state.armed == frozenset()
    assert await supplements.decrement("supp_whey", today) == 0
    assert await supplements.decrement("supp_whey", today) == 0
    assert scheduler.state.armed_for("supp_whey") != frozenset()


@pytest.mark.asyncio
async def test_reconcile_rearms_on_day_rollover(tmp_path):
    host = FakeHost()
    scheduler, supplements = make_scheduler(tmp_path, host)
    await supplements.set_reminder("supp_creatine", True, "09:00")
    await scheduler.rearm(MORNING)
    assert await scheduler.reconcile(MORNING + datetime.timedelta(hours=3)) is False

    await supplements.set_taken("supp_creatine", MORNING.date(), True, rearm=False)
    await scheduler.rearm(MORNING)
    assert scheduler.state.armed == frozenset()

    tomorrow = MORNING + datetime.timedelta(days=1)
    assert await scheduler.reconcile(tomorrow) is True
    assert scheduler.state.armed_on == tomorrow.date()
    assert {t.fire_at.date() for t in scheduler.state.armed} == {tomorrow.date()}


@pytest.mark.asyncio
async def test_deleting_supplement_drops_its_reminder(tmp_path):
    host = FakeHost()
    scheduler, supplements = make_scheduler(tmp_path, host)
    await supplements.set_reminder("supp_whey", True, "23:59")
    await supplements.increment("supp_whey", MORNING.date(), rearm=False)
    await supplements.set_taken("supp_creatine", MORNING.date(), True, rearm=False)
    await supplements.delete_supplement("supp_whey")
    assert "supp_whey" not in await supplements.reminder_configs()
    assert scheduler.state.armed_for("supp_whey") == frozenset()
    assert await supplements.intake_for(MORNING.date()) == {"supp_creatine": True}


@pytest.mark.asyncio
async def test_counter_and_check_are_not_interchangeable(tmp_path):
    scheduler, supplements = make_scheduler(tmp_path, FakeHost())
    day = MORNING.date()
    with pytest.raises(ValueError):
        await supplements.increment("supp_creatine", day)
    with pytest.raises(ValueError):
        await supplements.set_taken("supp_whey", day, True)
    with pytest.raises(ValueError):
        await supplements.set_reminder("supp_unknown", True)


@pytest.mark.asyncio
async def test_overlapping_rearms_leave_one_plan(tmp_path):
    host = FakeHost()
    scheduler, supplements = make_scheduler(tmp_path, host)
    await supplements.set_reminder("supp_creatine", True, "09:00")
    await asyncio.gather(scheduler.rearm(MORNING), scheduler.rearm(MORNING))
    assert len(scheduler.state.armed) == 6
    assert len(host.scheduled) == 6
