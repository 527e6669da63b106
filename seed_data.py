"""Default records written on first run and the demo history seeder."""

import datetime

from models import (
    RESISTANCE_TRAINING,
    Dose,
    Exercise,
    IconRef,
    SportDefinition,
    Supplement,
    TrackingType,
    WorkoutPlan,
)

DEFAULT_SPORTS = [
    SportDefinition(
        id=RESISTANCE_TRAINING,
        name="Gym",
        icon=IconRef(library="ionicons", name="barbell-outline"),
    ),
    SportDefinition(
        id="volleyball_court",
        name="Court Volleyball",
        icon=IconRef(library="material-community", name="volleyball"),
    ),
    SportDefinition(
        id="volleyball_beach",
        name="Beach Volleyball",
        icon=IconRef(library="ionicons", name="sunny-outline"),
    ),
    SportDefinition(
        id="society_football",
        name="Society Football",
        icon=IconRef(library="ionicons", name="football-outline"),
    ),
    SportDefinition(
        id="boxing",
        name="Boxing",
        icon=IconRef(library="material-community", name="boxing-glove"),
    ),
]

DEFAULT_SUPPLEMENTS = [
    Supplement(
        id="supp_creatine",
        name="Creatine",
        dose=Dose(amount=6, unit="g"),
        tracking_type=TrackingType.DAILY_CHECK,
    ),
    Supplement(
        id="supp_whey",
        name="Whey Protein",
        dose=Dose(amount=30, unit="g"),
        tracking_type=TrackingType.COUNTER,
    ),
]


def _ex(ex_id: str, name: str, muscle: str, sets: int, reps: str, notes: str = ""):
    return Exercise(
        id=ex_id, name=name, target_muscle=muscle, sets=sets, reps=reps, notes=notes
    )


DEFAULT_PLANS = [
    WorkoutPlan(
        id="A",
        name="Workout A",
        muscle_groups="Chest/Shoulders/Triceps",
        exercises=[
            _ex("A1", "Incline Dumbbell Press", "Chest", 4, "12/10/10/8", "45° bench"),
            _ex("A2", "Flat Dumbbell Press", "Chest", 3, "12/10/8", "30° bench"),
            _ex("A3", "Decline Machine Press", "Chest", 4, "12/10/10/8"),
            _ex("A4", "Machine Fly", "Chest", 3, "12/10/8"),
            _ex("A5", "Machine Shoulder Press", "Shoulders", 4, "12/10/10/8"),
            _ex("A6", "Dumbbell Lateral Raise", "Shoulders", 3, "12/10/8"),
            _ex("A7", "EZ Bar Skull Crusher", "Triceps", 3, "12/10/8", "EZ bar"),
            _ex("A8", "Dumbbell French Press", "Triceps", 3, "12/10/8"),
        ],
    ),
    WorkoutPlan(
        id="B",
        name="Workout B",
        muscle_groups="Back/Biceps",
        exercises=[
            _ex("B1", "Lat Pulldown", "Lats", 4, "12/10/8/6"),
            _ex("B2", "One-Arm Dumbbell Row", "Lats", 4, "12/10/8/6"),
            _ex("B3", "Wide Machine Row", "Lats", 3, "12/10/8"),
            _ex("B4", "45° Back Extension", "Lower back", 3, "12/10/8"),
            _ex("B5", "Low Pulley Upright Row", "Traps", 4, "12/10/10/8"),
            _ex("B6", "Dumbbell Curl", "Biceps", 3, "12/10/8", "45° bench"),
            _ex("B7", "Hammer Curl", "Biceps", 3, "12/10/8", "Cable rope"),
        ],
    ),
    WorkoutPlan(
        id="C",
        name="Workout C",
        muscle_groups="Legs",
        exercises=[
            _ex("C1", "Standing Calf Raise", "Legs", 4, "12/10/10/8", "Machine"),
            _ex("C2", "Smith Squat", "Legs", 4, "12/10/10/8"),
            _ex("C3", "Horizontal Leg Press", "Legs", 3, "8", "Single leg"),
            _ex("C4", "Leg Extension", "Legs", 4, "11/10/8/6"),
            _ex("C5", "Lying Leg Curl", "Legs", 3, "12/10/8"),
            _ex("C6", "Seated Leg Curl", "Legs", 4, "12/10/8/6"),
            _ex("C7", "Hip Abduction", "Glutes", 4, "12/10/10/8"),
            _ex("C8", "Hip Adduction", "Glutes", 4, "12/10/10/8"),
        ],
    ),
]


def default_sports() -> list[SportDefinition]:
    return [s.model_copy(deep=True) for s in DEFAULT_SPORTS]


def default_supplements() -> list[Supplement]:
    return [s.model_copy(deep=True) for s in DEFAULT_SUPPLEMENTS]


def default_plans() -> list[WorkoutPlan]:
    return [p.model_copy(deep=True) for p in DEFAULT_PLANS]


async def seed_demo(ledger, supplements, today: datetime.date, weeks: int = 2) -> int:
    """Populate a few weeks of plausible history. Returns the entries written."""
    if await ledger.entries():
        print("Ledger already contains activities")
        return 0
    written = 0
    start = today - datetime.timedelta(weeks=weeks)
    load = 20.0
    for offset, day in enumerate(
        start + datetime.timedelta(days=i) for i in range(weeks * 7)
    ):
        if day.weekday() in (0, 2, 4):
            plan = await ledger.planner.next_plan()
            if plan is None:
                continue
            performance = {ex.id: load + offset for ex in plan.exercises[:3]}
            await ledger.log_resistance(plan.id, performance, day=day)
            written += 1
        elif day.weekday() == 5:
            await ledger.log_sport("volleyball_beach", 90, "moderate", day=day)
            written += 1
        for supp in await supplements.list_supplements():
            if supp.tracking_type is TrackingType.COUNTER:
                await supplements.increment(supp.id, day, rearm=False)
            else:
                await supplements.set_taken(supp.id, day, True, rearm=False)
    print("Seed data inserted")
    return written
