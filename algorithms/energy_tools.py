import datetime

from tools import DateTools

from .met_data import CONTINUOUS_METS, DEFAULT_METS, MET_TABLE


class EnergyTools:
    """Energy expenditure formulas used by the ledger and the statistics."""

    KCAL_PER_KG: float = 7700.0
    ACTIVITY_MULTIPLIERS: dict[str, float] = {
        "sedentary": 1.2,
        "light": 1.375,
        "moderate": 1.55,
        "active": 1.725,
        "very_active": 1.9,
    }
    # (base, kg, cm, age) coefficients per sex.
    BMR_FORMULAS: dict[str, dict[str, tuple[float, float, float, float]]] = {
        "mifflin_st_jeor": {
            "male": (5.0, 10.0, 6.25, 5.0),
            "female": (-161.0, 10.0, 6.25, 5.0),
        },
        "harris_benedict": {
            "male": (88.362, 13.397, 4.799, 5.677),
            "female": (447.593, 9.247, 3.098, 4.330),
        },
    }
    BMI_CLASSES: tuple[tuple[float, str], ...] = (
        (18.5, "underweight"),
        (25.0, "normal"),
        (30.0, "overweight"),
    )

    @classmethod
    def bmr(
        cls,
        weight_kg: float,
        height_cm: float,
        age: int,
        sex: str,
        formula: str = "mifflin_st_jeor",
    ) -> float:
        """Return the basal metabolic rate in kcal/day."""
        if weight_kg <= 0 or height_cm <= 0 or age < 0:
            raise ValueError("invalid body metrics")
        table = cls.BMR_FORMULAS.get(formula)
        if table is None:
            raise ValueError(f"unknown BMR formula: {formula}")
        sex = getattr(sex, "value", sex)
        if sex not in table:
            raise ValueError(f"unknown sex: {sex}")
        base, kg, cm, years = table[sex]
        return base + kg * weight_kg + cm * height_cm - years * age

    @classmethod
    def tdee(cls, bmr: float, activity_level: str) -> float:
        """Scale ``bmr`` by the activity multiplier, moderate when unknown."""
        level = getattr(activity_level, "value", activity_level)
        multiplier = cls.ACTIVITY_MULTIPLIERS.get(
            level, cls.ACTIVITY_MULTIPLIERS["moderate"]
        )
        return bmr * multiplier

    @classmethod
    def goal_adjustment(
        cls,
        weight_kg: float,
        target_weight_kg: float | None,
        target_date: datetime.date | None,
        today: datetime.date,
    ) -> float:
        """Return the daily kcal delta to subtract from TDEE.

        Positive for a weight-loss goal, negative for a gain. Zero when the
        goal is incomplete or its date is not in the future.
        """
        if not target_weight_kg or target_date is None:
            return 0.0
        days = (target_date - today).days
        if days <= 0:
            return 0.0
        return (weight_kg - target_weight_kg) * cls.KCAL_PER_KG / days

    @classmethod
    def daily_target(
        cls,
        profile,
        today: datetime.date,
        formula: str = "mifflin_st_jeor",
    ) -> int:
        """Return the goal-adjusted TDEE for ``profile`` rounded to kcal."""
        age = DateTools.age_on(profile.birth_date, today)
        bmr = cls.bmr(profile.weight_kg, profile.height_cm, age, profile.sex, formula)
        tdee = cls.tdee(bmr, profile.activity_level)
        goal = profile.goal
        if goal is not None:
            tdee -= cls.goal_adjustment(
                profile.weight_kg, goal.target_weight_kg, goal.target_date, today
            )
        return int(round(tdee))

    @staticmethod
    def met_value(activity: str, intensity: str | None) -> float:
        """Return the MET for ``activity``; never fails on unknown names."""
        level = getattr(intensity, "value", intensity) or "moderate"
        if level not in DEFAULT_METS:
            level = "moderate"
        row = MET_TABLE.get(activity)
        if row is not None and level in row:
            return row[level]
        return DEFAULT_METS[level]

    @classmethod
    def activity_calories(
        cls,
        activity: str,
        intensity: str | None,
        weight_kg: float,
        minutes: float,
    ) -> float:
        """Return kcal as ``MET * kg * 3.5 / 200 * minutes``."""
        if minutes <= 0 or weight_kg <= 0:
            return 0.0
        met = cls.met_value(activity, intensity)
        return round(met * weight_kg * 3.5 / 200 * minutes, 1)

    @staticmethod
    def continuous_calories(activity: str, weight_kg: float, hours: float) -> float:
        """Return kcal as ``MET * kg * hours`` for continuous-effort activities."""
        if hours <= 0 or weight_kg <= 0:
            return 0.0
        met = CONTINUOUS_METS.get(activity, DEFAULT_METS["moderate"])
        return round(met * weight_kg * hours, 1)

    @staticmethod
    def bmi(weight_kg: float, height_cm: float) -> float:
        if weight_kg <= 0 or height_cm <= 0:
            return 0.0
        meters = height_cm / 100
        return round(weight_kg / (meters**2), 1)

    @classmethod
    def bmi_category(cls, bmi: float) -> str:
        for limit, label in cls.BMI_CLASSES:
            if bmi < limit:
                return label
        return "obese"
