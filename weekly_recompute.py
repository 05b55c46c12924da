"""
GTSD — Weekly Recompute Job
Recomputes every onboarded user's targets and persists only meaningful
drift. Each user runs in its own transaction; one user's failure never
aborts the batch. Logs carry numeric user ids and metric deltas only.

Run once from a scheduler with:  python weekly_recompute.py
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

import stores
from config import settings
from database import AsyncSessionLocal, dispose_db
from plan_generator import PlanGenerator
from timestamps import now_utc, today_in

log = logging.getLogger(__name__)


@dataclass
class RecomputeUpdate:
    user_id: int
    previous_calories: int
    new_calories: int
    previous_protein: int
    new_protein: int
    reason: str


@dataclass
class WeeklyRecomputeResult:
    total_users: int = 0
    success_count: int = 0
    error_count: int = 0
    updates: list[RecomputeUpdate] = field(default_factory=list)


class WeeklyRecomputeJob:
    """
    Significance policy: an update is written only if calories moved by more
    than the calorie threshold, protein by more than the protein threshold,
    or the user's weight changed since the last snapshot.
    """

    def __init__(
        self,
        session_factory: Optional[async_sessionmaker] = None,
        generator: Optional[PlanGenerator] = None,
        concurrency: Optional[int] = None,
        calorie_threshold: Optional[int] = None,
        protein_threshold: Optional[int] = None,
    ):
        self.session_factory = session_factory or AsyncSessionLocal
        self.generator = generator or PlanGenerator()
        self.concurrency = concurrency or settings.RECOMPUTE_CONCURRENCY
        self.calorie_threshold = (
            settings.RECOMPUTE_CALORIE_THRESHOLD if calorie_threshold is None else calorie_threshold
        )
        self.protein_threshold = (
            settings.RECOMPUTE_PROTEIN_THRESHOLD if protein_threshold is None else protein_threshold
        )

    async def recompute_for_user(
        self, db: AsyncSession, user_id: int, now: datetime
    ) -> Optional[RecomputeUpdate]:
        profile = await stores.get_health_profile(db, user_id)
        previous = await stores.get_latest_targets(db, user_id)
        today = today_in(self.generator.tz_name, now)
        targets = self.generator.engine.compute_targets(profile, today)

        if previous is None:
            previous_calories = previous_protein = 0
            reasons = ["Initial targets computed"]
        else:
            previous_calories = previous.calorie_target
            previous_protein = previous.protein_target
            calories_diff = abs(targets.calorie_target - previous_calories)
            protein_diff = abs(targets.protein_target - previous_protein)

            reasons = []
            if abs(previous.weight_kg - profile.weight_kg) > 1e-6:
                reasons.append(f"Weight changed from {previous.weight_kg:g}kg to {profile.weight_kg:g}kg")
            if calories_diff > self.calorie_threshold:
                reasons.append(f"calories changed by {calories_diff}kcal")
            if protein_diff > self.protein_threshold:
                reasons.append(f"protein changed by {protein_diff}g")

            if not reasons:
                log.info(
                    f"No significant change for user {user_id} "
                    f"(calories {calories_diff}kcal, protein {protein_diff}g)"
                )
                return None

        snapshot = await self.generator.compute_snapshot(
            db, user_id, profile, today, now, previous, targets=targets
        )
        await self.generator.supersede_week_plan(db, user_id, snapshot, previous, now)

        return RecomputeUpdate(
            user_id=user_id,
            previous_calories=previous_calories,
            new_calories=snapshot.calorie_target,
            previous_protein=previous_protein,
            new_protein=snapshot.protein_target,
            reason=", ".join(reasons),
        )

    async def _process(
        self, user_id: int, now: datetime, semaphore: asyncio.Semaphore
    ) -> tuple[int, Optional[RecomputeUpdate], bool]:
        async with semaphore:
            try:
                async with self.session_factory() as db:
                    async with db.begin():
                        update = await self.recompute_for_user(db, user_id, now)
            except Exception as e:
                log.error(f"Failed to recompute targets for user {user_id}: {type(e).__name__}: {e}", exc_info=True)
                return user_id, None, False
        return user_id, update, True

    async def run(self) -> WeeklyRecomputeResult:
        start = time.perf_counter()
        now = now_utc()
        log.info("Starting weekly recompute job")

        async with self.session_factory() as db:
            user_ids = await stores.list_onboarded_user_ids(db)

        result = WeeklyRecomputeResult(total_users=len(user_ids))
        log.info(f"Processing {result.total_users} users for recompute")

        semaphore = asyncio.Semaphore(self.concurrency)
        outcomes = await asyncio.gather(*(self._process(uid, now, semaphore) for uid in user_ids))

        for user_id, update, succeeded in sorted(outcomes, key=lambda o: o[0]):
            if not succeeded:
                result.error_count += 1
                continue
            result.success_count += 1
            if update is not None:
                result.updates.append(update)
                log.info(
                    f"User {user_id} targets updated: "
                    f"calories {update.new_calories - update.previous_calories:+d}kcal, "
                    f"protein {update.new_protein - update.previous_protein:+d}g"
                )

        elapsed = (time.perf_counter() - start) * 1000
        log.info(
            f"Weekly recompute job completed: total={result.total_users} success={result.success_count} "
            f"errors={result.error_count} updated={len(result.updates)} in {elapsed:.0f}ms"
        )
        return result


weekly_recompute_job = WeeklyRecomputeJob()


async def _run_once() -> WeeklyRecomputeResult:
    try:
        return await weekly_recompute_job.run()
    finally:
        await dispose_db()


def main() -> None:
    logging.basicConfig(level=settings.LOG_LEVEL, format="%(asctime)s | %(levelname)s | %(message)s")
    result = asyncio.run(_run_once())
    if result.error_count:
        raise SystemExit(1)


if __name__ == "__main__":
    main()
