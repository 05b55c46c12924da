"""
GTSD — Plan Generator
Profile → science engine → target snapshot → weekly plan.
An active plan for the current week is returned as-is unless a recompute is
forced.
"""

import logging
from dataclasses import asdict, dataclass
from datetime import date, datetime
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

import stores
from config import settings
from models import Plan, TargetsSnapshot
from science_engine import ComputedTargets, HealthProfile, ScienceEngine
from timestamps import now_utc, today_in, week_bounds

log = logging.getLogger(__name__)

# Fields whose change means a new targets version
_VERSIONED_FIELDS = (
    "bmr", "tdee", "bmi", "calorie_target", "protein_target", "water_target",
    "weekly_rate", "estimated_weeks", "calorie_floor_applied",
)


@dataclass
class PlanGenerationResult:
    plan: Plan
    targets: TargetsSnapshot
    why_it_works: dict
    recomputed: bool
    previous_targets: Optional[TargetsSnapshot] = None


def targets_differ(snapshot: TargetsSnapshot, targets: ComputedTargets, weight_kg: float) -> bool:
    if abs(snapshot.weight_kg - weight_kg) > 1e-6:
        return True
    return any(getattr(snapshot, name) != getattr(targets, name) for name in _VERSIONED_FIELDS)


def build_plan_description(why_it_works: dict, snapshot: TargetsSnapshot) -> str:
    parts = [
        why_it_works["calorie_target"]["explanation"],
        f"You'll consume {snapshot.protein_target}g of protein daily to support your goals.",
        f"Stay hydrated with {snapshot.water_target}ml of water throughout the day.",
    ]
    return " ".join(parts)


class PlanGenerator:

    def __init__(self, engine: Optional[ScienceEngine] = None, tz_name: Optional[str] = None):
        self.engine = engine or ScienceEngine(calorie_floor=settings.CALORIE_FLOOR)
        self.tz_name = tz_name or settings.REFERENCE_TIMEZONE

    async def compute_snapshot(
        self,
        db: AsyncSession,
        user_id: int,
        profile: HealthProfile,
        today: date,
        computed_at: datetime,
        previous: Optional[TargetsSnapshot],
        targets: Optional[ComputedTargets] = None,
    ) -> TargetsSnapshot:
        """Persist a new snapshot unless the numbers match the previous one."""
        if targets is None:
            targets = self.engine.compute_targets(profile, today)
        if previous is not None and not targets_differ(previous, targets, profile.weight_kg):
            return previous

        why = self.engine.generate_explanations(targets, profile, today)
        return await stores.save_targets(
            db, user_id, targets,
            weight_kg=profile.weight_kg,
            explanations=asdict(why),
            computed_at=computed_at,
        )

    async def supersede_week_plan(
        self,
        db: AsyncSession,
        user_id: int,
        snapshot: TargetsSnapshot,
        previous: Optional[TargetsSnapshot],
        now: datetime,
    ) -> tuple[Plan, bool]:
        """Archive this week's active plan (if any) and write its replacement."""
        week_start, week_end = week_bounds(self.tz_name, now)
        current = await stores.get_active_plan(db, user_id, week_start)
        if current is not None:
            await stores.archive_plan(db, current)

        previous_id = previous.id if previous is not None and previous.id != snapshot.id else None
        plan = Plan(
            user_id=user_id,
            name=f"Weekly Plan - week of {week_start:%b} {week_start.day}, {week_start.year}",
            description=build_plan_description(snapshot.explanations, snapshot),
            week_start=week_start,
            week_end=week_end,
            status="active",
            targets_id=snapshot.id,
            previous_targets_id=previous_id,
        )
        return await stores.create_plan(db, plan)

    async def generate(
        self,
        db: AsyncSession,
        user_id: int,
        force_recompute: bool = False,
        now: Optional[datetime] = None,
    ) -> PlanGenerationResult:
        now = now or now_utc()
        log.info(f"Generating weekly plan for user {user_id} (force_recompute={force_recompute})")

        profile = await stores.get_health_profile(db, user_id)
        week_start, _ = week_bounds(self.tz_name, now)

        if not force_recompute:
            existing = await stores.get_active_plan(db, user_id, week_start)
            if existing is not None:
                snapshot = await stores.get_targets(db, existing.targets_id)
                log.info(f"Returning existing plan {existing.id} for user {user_id}")
                return PlanGenerationResult(
                    plan=existing,
                    targets=snapshot,
                    why_it_works=snapshot.explanations,
                    recomputed=False,
                )

        previous = await stores.get_latest_targets(db, user_id)
        snapshot = await self.compute_snapshot(
            db, user_id, profile, today_in(self.tz_name, now), now, previous
        )
        plan, created = await self.supersede_week_plan(db, user_id, snapshot, previous, now)

        if not created:
            # Lost a race with a concurrent request; serve the winner's plan
            winner_targets = await stores.get_targets(db, plan.targets_id)
            return PlanGenerationResult(
                plan=plan,
                targets=winner_targets,
                why_it_works=winner_targets.explanations,
                recomputed=False,
            )

        log.info(
            f"Plan {plan.id} generated for user {user_id}: "
            f"{snapshot.calorie_target} kcal, {snapshot.protein_target}g protein, v{snapshot.version}"
        )
        return PlanGenerationResult(
            plan=plan,
            targets=snapshot,
            why_it_works=snapshot.explanations,
            recomputed=True,
            previous_targets=previous if previous is not None and previous.id != snapshot.id else None,
        )


plan_generator = PlanGenerator()
