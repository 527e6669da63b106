from __future__ import annotations

import logging

from db import PlanRepository
from models import Exercise, WorkoutPlan, new_id

logger = logging.getLogger(__name__)


class PlannerService:
    """Maintains the ordered workout plans and the rotation pointer."""

    def __init__(self, plan_repo: PlanRepository) -> None:
        self.plans = plan_repo

    async def list_plans(self) -> list[WorkoutPlan]:
        return await self.plans.plans()

    async def get_plan(self, plan_id: str) -> WorkoutPlan:
        for plan in await self.plans.plans():
            if plan.id == plan_id:
                return plan
        raise ValueError(f"plan not found: {plan_id}")

    async def create_plan(
        self,
        name: str,
        muscle_groups: str = "",
        exercises: list[Exercise] | None = None,
    ) -> WorkoutPlan:
        if not name.strip():
            raise ValueError("name must not be empty")
        plans = await self.plans.plans()
        plan = WorkoutPlan(
            id=new_id("plan"),
            name=name.strip(),
            muscle_groups=muscle_groups,
            exercises=exercises or [],
        )
        plans.append(plan)
        await self.plans.save_plans(plans)
        return plan

    async def update_plan(
        self,
        plan_id: str,
        name: str | None = None,
        muscle_groups: str | None = None,
    ) -> WorkoutPlan:
        plans = await self.plans.plans()
        for idx, plan in enumerate(plans):
            if plan.id != plan_id:
                continue
            changes = {}
            if name is not None:
                if not name.strip():
                    raise ValueError("name must not be empty")
                changes["name"] = name.strip()
            if muscle_groups is not None:
                changes["muscle_groups"] = muscle_groups
            plans[idx] = plan.model_copy(update=changes)
            await self.plans.save_plans(plans)
            return plans[idx]
        raise ValueError(f"plan not found: {plan_id}")

    async def delete_plan(self, plan_id: str) -> None:
        plans = await self.plans.plans()
        remaining = [p for p in plans if p.id != plan_id]
        if len(remaining) == len(plans):
            raise ValueError(f"plan not found: {plan_id}")
        await self.plans.save_plans(remaining)

    async def reorder_plans(self, order: list[str]) -> list[WorkoutPlan]:
        plans = await self.plans.plans()
        by_id = {p.id: p for p in plans}
        if sorted(order) != sorted(by_id):
            raise ValueError("order must list every plan exactly once")
        reordered = [by_id[pid] for pid in order]
        await self.plans.save_plans(reordered)
        return reordered

    async def _replace(self, plan: WorkoutPlan) -> WorkoutPlan:
        plans = await self.plans.plans()
        plans = [plan if p.id == plan.id else p for p in plans]
        await self.plans.save_plans(plans)
        return plan

    async def add_exercise(self, plan_id: str, exercise: Exercise) -> Exercise:
        plan = await self.get_plan(plan_id)
        if plan.exercise(exercise.id) is not None:
            exercise = exercise.model_copy(update={"id": new_id("ex")})
        plan.exercises.append(exercise)
        await self._replace(plan)
        return exercise

    async def update_exercise(
        self, plan_id: str, exercise_id: str, **changes
    ) -> Exercise:
        plan = await self.get_plan(plan_id)
        for idx, ex in enumerate(plan.exercises):
            if ex.id == exercise_id:
                changes.pop("id", None)
                updated = Exercise.model_validate({**ex.model_dump(), **changes})
                plan.exercises[idx] = updated
                await self._replace(plan)
                return updated
        raise ValueError(f"exercise not found: {exercise_id}")

    async def remove_exercise(self, plan_id: str, exercise_id: str) -> None:
        plan = await self.get_plan(plan_id)
        kept = [ex for ex in plan.exercises if ex.id != exercise_id]
        if len(kept) == len(plan.exercises):
            raise ValueError(f"exercise not found: {exercise_id}")
        plan.exercises = kept
        await self._replace(plan)

    async def reorder_exercises(self, plan_id: str, order: list[str]) -> WorkoutPlan:
        plan = await self.get_plan(plan_id)
        by_id = {ex.id: ex for ex in plan.exercises}
        if sorted(order) != sorted(by_id):
            raise ValueError("order must be a permutation of the plan's exercises")
        plan.exercises = [by_id[eid] for eid in order]
        return await self._replace(plan)

    async def next_plan(self) -> WorkoutPlan | None:
        """Return the plan the rotation pointer names.

        Falls back to the first plan when the pointer is unset or names a plan
        that no longer exists.
        """
        plans = await self.plans.plans()
        if not plans:
            return None
        pointer = await self.plans.next_plan_id()
        for plan in plans:
            if plan.id == pointer:
                return plan
        return plans[0]

    async def advance_rotation(self, logged_plan_id: str) -> str | None:
        """Point the rotation at the plan after ``logged_plan_id``."""
        plans = await self.plans.plans()
        if not plans:
            await self.plans.set_next_plan_id(None)
            return None
        ids = [p.id for p in plans]
        if logged_plan_id in ids:
            nxt = ids[(ids.index(logged_plan_id) + 1) % len(ids)]
        else:
            nxt = ids[0]
        await self.plans.set_next_plan_id(nxt)
        logger.debug("rotation advanced from %s to %s", logged_plan_id, nxt)
        return nxt

    async def reset_rotation(self) -> None:
        await self.plans.set_next_plan_id(None)
