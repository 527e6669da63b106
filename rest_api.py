import asyncio
import contextlib
import datetime
import logging
from typing import Dict, List, Optional

from fastapi import Body, FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from db import Repositories, SettingsRepository, StoreError
from ledger_service import LedgerService, LogResult, LogStatus
from models import (
    Exercise,
    FoodEntry,
    Intensity,
    MealSlot,
    Nutrition,
    TrackingType,
    UserProfile,
)
from notification_host import DatabaseNotificationHost, NotificationHost
from planner_service import PlannerService
from profile_service import ProfileService
from reminder_service import REMINDER_SETTINGS, ReminderScheduler
from sport_service import ProtectedRecordError, SportService
from stats_service import LedgerSnapshot, StatisticsService
from supplement_service import SupplementService
from tools import DateTools

logger = logging.getLogger(__name__)


class ResistanceLog(BaseModel):
    plan_id: str
    performance: Dict[str, float] = Field(default_factory=dict)
    date: Optional[datetime.date] = None
    confirm: bool = False
    duration_minutes: Optional[int] = Field(None, gt=0)


class SportLog(BaseModel):
    sport_id: str
    duration_minutes: int = Field(gt=0)
    intensity: Optional[Intensity] = None
    distance_km: Optional[float] = Field(None, ge=0)
    notes: str = ""
    date: Optional[datetime.date] = None


class FoodLog(BaseModel):
    description: str
    meal_slot: MealSlot
    nutrition: Nutrition = Field(default_factory=Nutrition)
    date: Optional[datetime.date] = None


class SupplementIn(BaseModel):
    name: str
    amount: float = Field(gt=0)
    unit: str = "g"
    tracking_type: TrackingType = TrackingType.DAILY_CHECK


class ReminderIn(BaseModel):
    enabled: Optional[bool] = None
    time_of_day: Optional[str] = None


class PlanIn(BaseModel):
    name: str
    muscle_groups: str = ""


class SportIn(BaseModel):
    name: str
    icon: str = "ionicons:help-circle"


class ReminderLoop:
    """Delivers due reminders and re-arms on rollover from the server's loop."""

    def __init__(self, api: "TrackerAPI", interval_seconds: int = 60) -> None:
        self.api = api
        self.interval = interval_seconds
        self.task: asyncio.Task | None = None

    async def run(self) -> None:
        while True:
            try:
                await self.api.reminder_tick()
            except Exception:
                logger.exception("reminder tick failed")
            await asyncio.sleep(self.interval)

    def start(self) -> None:
        self.task = asyncio.create_task(self.run())

    async def stop(self) -> None:
        if self.task is None:
            return
        self.task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self.task
        self.task = None


class TrackerAPI:
    """Provides REST endpoints for activity, nutrition and supplement tracking."""

    def __init__(
        self,
        db_path: str = "fitledger.db",
        yaml_path: str = "settings.yaml",
        *,
        host: NotificationHost | None = None,
        start_reminder: bool = False,
        reminder_interval: int = 60,
    ) -> None:
        self.db_path = db_path
        self.settings = SettingsRepository(db_path, yaml_path)
        self.repos = Repositories(db_path)
        self.host = host or DatabaseNotificationHost(
            self.repos.triggers, self.repos.notifications, self.settings
        )
        self.scheduler = ReminderScheduler(self.host, self.repos, self.settings)
        self.planner = PlannerService(self.repos.plans)
        self.sports = SportService(self.repos.sports)
        self.profiles = ProfileService(self.repos.profile, self.settings)
        self.supplements = SupplementService(
            self.repos.supplements,
            self.repos.intake,
            self.repos.reminders,
            self.settings,
            scheduler=self.scheduler,
        )
        self.ledger = LedgerService(
            self.repos.activities,
            self.repos.foods,
            self.planner,
            self.sports,
            self.profiles,
            self.settings,
        )
        self.statistics = StatisticsService(self.repos, self.settings, self.profiles)
        self.reminder_loop: ReminderLoop | None = None
        if start_reminder:
            self.reminder_loop = ReminderLoop(self, reminder_interval)
        self.app = FastAPI(title="FitLedger API", lifespan=self._lifespan)
        self._setup_routes()

    @contextlib.asynccontextmanager
    async def _lifespan(self, app: FastAPI):
        if self.reminder_loop is not None:
            self.reminder_loop.start()
        try:
            yield
        finally:
            if self.reminder_loop is not None:
                await self.reminder_loop.stop()

    def _today(self) -> datetime.date:
        return DateTools.today(self.settings.get_text("timezone", "UTC"))

    async def reminder_tick(self, now: datetime.datetime | None = None) -> list:
        """Deliver due triggers and re-arm after a day rollover."""
        dispatched = []
        dispatch = getattr(self.host, "dispatch_due", None)
        if dispatch is not None:
            dispatched = await dispatch(now)
        await self.scheduler.reconcile(now)
        return dispatched

    @staticmethod
    def _log_response(result: LogResult):
        body = {
            "status": result.status.value,
            "entry": result.entry.model_dump(mode="json"),
            "previous": (
                result.previous.model_dump(mode="json") if result.previous else None
            ),
        }
        if result.status is LogStatus.NEEDS_CONFIRMATION:
            return JSONResponse(status_code=409, content=body)
        return body

    def _dashboard(
        self, snap: LedgerSnapshot, today: datetime.date, profile, stale: bool
    ) -> dict:
        target = None
        if profile is not None:
            target = self.profiles.energy_targets_for(profile, today)["daily_target"]
        next_plan = None
        if snap.plans:
            next_plan = snap.plans[0].id
        return {
            "date": today.isoformat(),
            "stale": stale,
            "week": StatisticsService.window_summary(snap, today, "week"),
            "energy": self.statistics.report_for(snap, today, target),
            "streak": StatisticsService.streak(snap, today),
            "intake": snap.intake.get(today.isoformat(), {}),
            "next_plan": next_plan,
        }

    def _setup_routes(self) -> None:
        @self.app.exception_handler(StoreError)
        async def store_error_handler(request: Request, exc: StoreError):
            logger.error("store failure on %s: %s", request.url.path, exc)
            return JSONResponse(status_code=503, content={"detail": str(exc)})

        @self.app.get(
            "/health",
            summary="Health check",
            description="Verify API and database connectivity.",
        )
        async def health():
            await self.repos.store.keys()
            return {"status": "ok"}

        # activities ---------------------------------------------------------

        @self.app.get("/activities")
        async def list_activities(
            start: Optional[datetime.date] = None,
            end: Optional[datetime.date] = None,
        ):
            return await self.ledger.entries(start, end)

        @self.app.post("/activities/resistance")
        async def log_resistance(payload: ResistanceLog):
            try:
                result = await self.ledger.log_resistance(
                    payload.plan_id,
                    payload.performance,
                    day=payload.date or self._today(),
                    confirm=payload.confirm,
                    duration_minutes=payload.duration_minutes,
                )
            except ValueError as e:
                raise HTTPException(status_code=400, detail=str(e))
            return self._log_response(result)

        @self.app.post("/activities/sport")
        async def log_sport(payload: SportLog):
            try:
                result = await self.ledger.log_sport(
                    payload.sport_id,
                    payload.duration_minutes,
                    payload.intensity,
                    payload.distance_km,
                    payload.notes,
                    day=payload.date or self._today(),
                )
            except ValueError as e:
                raise HTTPException(status_code=400, detail=str(e))
            return self._log_response(result)

        @self.app.delete("/activities/{entry_id}")
        async def delete_activity(entry_id: str):
            try:
                await self.ledger.remove(entry_id)
            except ValueError as e:
                raise HTTPException(status_code=404, detail=str(e))
            return {"status": "deleted"}

        @self.app.delete("/activities")
        async def clear_activities():
            await self.ledger.clear_history()
            return {"status": "cleared"}

        # food ---------------------------------------------------------------

        @self.app.get("/food")
        async def list_food(
            start: Optional[datetime.date] = None,
            end: Optional[datetime.date] = None,
        ):
            return await self.ledger.foods(start, end)

        @self.app.post("/food")
        async def add_food(payload: FoodLog):
            try:
                return await self.ledger.add_food(
                    payload.description,
                    payload.meal_slot,
                    payload.nutrition,
                    day=payload.date or self._today(),
                )
            except ValueError as e:
                raise HTTPException(status_code=400, detail=str(e))

        @self.app.put("/food/{entry_id}")
        async def replace_food(entry_id: str, payload: FoodLog):
            entry = FoodEntry(
                id=entry_id,
                date=payload.date or self._today(),
                meal_slot=payload.meal_slot,
                description=payload.description,
                nutrition=payload.nutrition,
            )
            try:
                return await self.ledger.replace_food(entry)
            except ValueError as e:
                raise HTTPException(status_code=404, detail=str(e))

        @self.app.delete("/food/{entry_id}")
        async def delete_food(entry_id: str):
            try:
                await self.ledger.remove_food(entry_id)
            except ValueError as e:
                raise HTTPException(status_code=404, detail=str(e))
            return {"status": "deleted"}

        # supplements & reminders --------------------------------------------

        @self.app.get("/supplements")
        async def list_supplements():
            return await self.supplements.list_supplements()

        @self.app.post("/supplements")
        async def add_supplement(payload: SupplementIn):
            try:
                return await self.supplements.add_supplement(
                    payload.name, payload.amount, payload.unit, payload.tracking_type
                )
            except ValueError as e:
                raise HTTPException(status_code=400, detail=str(e))

        @self.app.get("/supplements/intake")
        async def supplement_intake(date: Optional[datetime.date] = None):
            return await self.supplements.intake_for(date or self._today())

        @self.app.put("/supplements/{supplement_id}")
        async def update_supplement(supplement_id: str, changes: dict = Body(...)):
            try:
                return await self.supplements.update_supplement(
                    supplement_id, **changes
                )
            except ValueError as e:
                raise HTTPException(status_code=400, detail=str(e))

        @self.app.delete("/supplements/{supplement_id}")
        async def delete_supplement(supplement_id: str):
            try:
                await self.supplements.delete_supplement(supplement_id)
            except ValueError as e:
                raise HTTPException(status_code=404, detail=str(e))
            return {"status": "deleted"}

        @self.app.post("/supplements/{supplement_id}/taken")
        async def mark_taken(
            supplement_id: str,
            taken: bool = True,
            date: Optional[datetime.date] = None,
        ):
            try:
                value = await self.supplements.set_taken(
                    supplement_id, date or self._today(), taken
                )
            except ValueError as e:
                raise HTTPException(status_code=400, detail=str(e))
            return {"supplement_id": supplement_id, "value": value}

        @self.app.post("/supplements/{supplement_id}/increment")
        async def increment_supplement(
            supplement_id: str, date: Optional[datetime.date] = None
        ):
            try:
                value = await self.supplements.increment(
                    supplement_id, date or self._today()
                )
            except ValueError as e:
                raise HTTPException(status_code=400, detail=str(e))
            return {"supplement_id": supplement_id, "value": value}

        @self.app.post("/supplements/{supplement_id}/decrement")
        async def decrement_supplement(
            supplement_id: str, date: Optional[datetime.date] = None
        ):
            try:
                value = await self.supplements.decrement(
                    supplement_id, date or self._today()
                )
            except ValueError as e:
                raise HTTPException(status_code=400, detail=str(e))
            return {"supplement_id": supplement_id, "value": value}

        @self.app.get("/reminders")
        async def list_reminders():
            configs = await self.supplements.reminder_configs()
            return {
                sid: {
                    "enabled": c.enabled,
                    "time_of_day": c.time_of_day.strftime("%H:%M"),
                }
                for sid, c in configs.items()
            }

        @self.app.get("/reminders/armed")
        async def armed_reminders():
            state = self.scheduler.state
            return {
                "armed_on": state.armed_on.isoformat() if state.armed_on else None,
                "permission_granted": state.permission_granted,
                "triggers": [
                    {
                        "supplement_id": t.supplement_id,
                        "fire_at": t.fire_at.isoformat(),
                        "sequence": t.sequence,
                        "title": t.title,
                        "handle": state.handles.get(t),
                    }
                    for t in sorted(state.armed, key=lambda t: (t.fire_at, t.supplement_id))
                ],
            }

        @self.app.post("/reminders/rearm")
        async def rearm_reminders():
            state = await self.scheduler.rearm()
            return {"armed": len(state.armed)}

        @self.app.put("/reminders/{supplement_id}")
        async def set_reminder(supplement_id: str, payload: ReminderIn):
            try:
                config = await self.supplements.set_reminder(
                    supplement_id, payload.enabled, payload.time_of_day
                )
            except ValueError as e:
                raise HTTPException(status_code=400, detail=str(e))
            return {
                "enabled": config.enabled,
                "time_of_day": config.time_of_day.strftime("%H:%M"),
            }

        # plans --------------------------------------------------------------

        @self.app.get("/plans")
        async def list_plans():
            return await self.planner.list_plans()

        @self.app.post("/plans")
        async def create_plan(payload: PlanIn):
            try:
                return await self.planner.create_plan(
                    payload.name, payload.muscle_groups
                )
            except ValueError as e:
                raise HTTPException(status_code=400, detail=str(e))

        @self.app.get("/plans/next")
        async def next_plan():
            plan = await self.planner.next_plan()
            if plan is None:
                raise HTTPException(status_code=404, detail="no plans")
            return plan

        @self.app.post("/plans/reorder")
        async def reorder_plans(order: List[str] = Body(...)):
            try:
                plans = await self.planner.reorder_plans(order)
            except ValueError as e:
                raise HTTPException(status_code=400, detail=str(e))
            return [p.id for p in plans]

        @self.app.get("/plans/{plan_id}")
        async def get_plan(plan_id: str):
            try:
                return await self.planner.get_plan(plan_id)
            except ValueError as e:
                raise HTTPException(status_code=404, detail=str(e))

        @self.app.put("/plans/{plan_id}")
        async def update_plan(
            plan_id: str,
            name: Optional[str] = None,
            muscle_groups: Optional[str] = None,
        ):
            try:
                return await self.planner.update_plan(plan_id, name, muscle_groups)
            except ValueError as e:
                raise HTTPException(status_code=404, detail=str(e))

        @self.app.delete("/plans/{plan_id}")
        async def delete_plan(plan_id: str):
            try:
                await self.planner.delete_plan(plan_id)
            except ValueError as e:
                raise HTTPException(status_code=404, detail=str(e))
            return {"status": "deleted"}

        @self.app.post("/plans/{plan_id}/exercises")
        async def add_exercise(plan_id: str, exercise: Exercise):
            try:
                return await self.planner.add_exercise(plan_id, exercise)
            except ValueError as e:
                raise HTTPException(status_code=404, detail=str(e))

        @self.app.post("/plans/{plan_id}/exercises/reorder")
        async def reorder_exercises(plan_id: str, order: List[str] = Body(...)):
            try:
                plan = await self.planner.reorder_exercises(plan_id, order)
            except ValueError as e:
                raise HTTPException(status_code=400, detail=str(e))
            return [ex.id for ex in plan.exercises]

        @self.app.put("/plans/{plan_id}/exercises/{exercise_id}")
        async def update_exercise(
            plan_id: str, exercise_id: str, changes: dict = Body(...)
        ):
            try:
                return await self.planner.update_exercise(
                    plan_id, exercise_id, **changes
                )
            except ValueError as e:
                raise HTTPException(status_code=400, detail=str(e))

        @self.app.delete("/plans/{plan_id}/exercises/{exercise_id}")
        async def remove_exercise(plan_id: str, exercise_id: str):
            try:
                await self.planner.remove_exercise(plan_id, exercise_id)
            except ValueError as e:
                raise HTTPException(status_code=404, detail=str(e))
            return {"status": "deleted"}

        # sports -------------------------------------------------------------

        @self.app.get("/sports")
        async def list_sports():
            sports = await self.sports.list_sports()
            return [
                {"id": s.id, "name": s.name, "icon": str(s.icon), "reserved": s.reserved}
                for s in sports
            ]

        @self.app.post("/sports")
        async def add_sport(payload: SportIn):
            try:
                sport = await self.sports.add_sport(payload.name, payload.icon)
            except ValueError as e:
                raise HTTPException(status_code=400, detail=str(e))
            return {"id": sport.id, "name": sport.name, "icon": str(sport.icon)}

        @self.app.delete("/sports/{sport_id}")
        async def delete_sport(sport_id: str):
            try:
                await self.sports.delete_sport(sport_id)
            except ProtectedRecordError as e:
                raise HTTPException(status_code=403, detail=str(e))
            except ValueError as e:
                raise HTTPException(status_code=404, detail=str(e))
            return {"status": "deleted"}

        # profile ------------------------------------------------------------

        @self.app.get("/profile")
        async def get_profile():
            profile = await self.profiles.get_profile()
            if profile is None:
                raise HTTPException(status_code=404, detail="profile not configured")
            return profile

        @self.app.put("/profile")
        async def save_profile(profile: UserProfile):
            return await self.profiles.save_profile(profile)

        @self.app.get("/profile/energy")
        async def profile_energy(date: Optional[datetime.date] = None):
            try:
                return await self.profiles.energy_targets(date or self._today())
            except ValueError as e:
                raise HTTPException(status_code=404, detail=str(e))

        # statistics ---------------------------------------------------------

        @self.app.get("/stats/categories")
        async def stats_categories(
            date: Optional[datetime.date] = None, window: str = "week"
        ):
            try:
                return await self.statistics.category_counts(
                    date or self._today(), window
                )
            except ValueError as e:
                raise HTTPException(status_code=400, detail=str(e))

        @self.app.get("/stats/plans")
        async def stats_plans(
            date: Optional[datetime.date] = None, window: str = "month"
        ):
            try:
                return await self.statistics.plan_counts(date or self._today(), window)
            except ValueError as e:
                raise HTTPException(status_code=400, detail=str(e))

        @self.app.get("/stats/weekdays")
        async def stats_weekdays(category: str = "resistance_training"):
            return await self.statistics.weekday_histogram(category)

        @self.app.get("/stats/energy")
        async def stats_energy(date: Optional[datetime.date] = None):
            return await self.statistics.energy_report(date or self._today())

        @self.app.get("/stats/nutrition")
        async def stats_nutrition(date: Optional[datetime.date] = None):
            return await self.statistics.nutrition_totals(date or self._today())

        @self.app.get("/stats/records")
        async def stats_records():
            return await self.statistics.personal_records()

        @self.app.get("/stats/records/{exercise_id}")
        async def stats_record(exercise_id: str):
            return {
                "exercise_id": exercise_id,
                "record": await self.statistics.personal_record(exercise_id),
            }

        @self.app.get("/stats/series/{exercise_id}")
        async def stats_series(exercise_id: str, limit: Optional[int] = None):
            series = await self.statistics.exercise_series(exercise_id, limit)
            return [{"date": d.isoformat(), "load": load} for d, load in series]

        @self.app.get("/stats/calendar")
        async def stats_calendar(
            date: Optional[datetime.date] = None, window: str = "month"
        ):
            try:
                return await self.statistics.activity_calendar(
                    date or self._today(), window
                )
            except ValueError as e:
                raise HTTPException(status_code=400, detail=str(e))

        @self.app.get("/stats/streak")
        async def stats_streak():
            return await self.statistics.workout_streak(self._today())

        @self.app.get("/stats/summary")
        async def stats_summary(
            date: Optional[datetime.date] = None, window: str = "week"
        ):
            try:
                return await self.statistics.summary(date or self._today(), window)
            except ValueError as e:
                raise HTTPException(status_code=400, detail=str(e))

        @self.app.get("/dashboard")
        async def dashboard():
            today = self._today()
            try:
                snap = await self.statistics.snapshot()
                profile = await self.profiles.get_profile()
                stale = False
            except StoreError as e:
                logger.warning("dashboard served from cache: %s", e)
                snap = self.statistics.cached_snapshot()
                profile = self.repos.profile.cached_profile()
                stale = True
            data = self._dashboard(snap, today, profile, stale)
            if not stale:
                plan = await self.planner.next_plan()
                data["next_plan"] = plan.id if plan else None
            return data

        # notifications ------------------------------------------------------

        @self.app.get("/notifications")
        async def get_notifications(unread_only: bool = False):
            return await self.repos.notifications.fetch_notifications(unread_only)

        @self.app.put("/notifications/{nid}/read")
        async def mark_notification_read(nid: int):
            await self.repos.notifications.mark_read(nid)
            return {"status": "read"}

        @self.app.get("/notifications/unread_count")
        async def unread_count():
            return {"count": await self.repos.notifications.unread_count()}

        @self.app.get("/notifications/pending")
        async def pending_notifications():
            items = await self.repos.triggers.fetch_pending()
            return [{**i, "fire_at": i["fire_at"].isoformat()} for i in items]

        @self.app.post("/notifications/dispatch")
        async def dispatch_notifications():
            dispatched = await self.reminder_tick()
            return {"dispatched": len(dispatched)}

        # settings -----------------------------------------------------------

        @self.app.get("/settings")
        def get_settings():
            return self.settings.all_settings()

        @self.app.post("/settings")
        async def update_settings(values: dict = Body(...)):
            try:
                updated = self.settings.update(values)
            except ValueError as e:
                raise HTTPException(status_code=400, detail=str(e))
            if REMINDER_SETTINGS & values.keys():
                await self.scheduler.rearm()
            return updated


def create_app(db_path: str = "fitledger.db", yaml_path: str = "settings.yaml") -> FastAPI:
    return TrackerAPI(db_path, yaml_path).app


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(create_app())
