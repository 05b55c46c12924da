"""
GTSD — Store Layer
Async persistence operations over profiles, target snapshots, plans and
acknowledgements. Plan lookups go through the database so every service
instance sees the same cache state.
"""

from datetime import date, datetime
from typing import Any, Optional

from sqlalchemy import select, desc, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
import logging

from errors import NotFoundError
from models import UserHealthProfile, TargetsSnapshot, Plan, MetricsAcknowledgement
from science_engine import ComputedTargets, HealthProfile

log = logging.getLogger(__name__)

REQUIRED_PROFILE_FIELDS = (
    "gender", "date_of_birth", "height_cm", "weight_kg", "activity_level", "primary_goal",
)


# ══════════════════════════════════════════════════════════════════════════════
# PROFILES
# ══════════════════════════════════════════════════════════════════════════════

def to_health_profile(row: UserHealthProfile) -> HealthProfile:
    return HealthProfile(
        gender=row.gender,
        date_of_birth=row.date_of_birth,
        height_cm=row.height_cm,
        weight_kg=row.weight_kg,
        activity_level=row.activity_level,
        primary_goal=row.primary_goal,
        target_weight_kg=row.target_weight_kg,
        target_date=row.target_date,
    )


async def get_health_profile(db: AsyncSession, user_id: int) -> HealthProfile:
    row = await db.get(UserHealthProfile, user_id)
    if row is None:
        raise NotFoundError("Health profile not found.", context={"user_id": user_id})
    if not row.onboarding_completed:
        raise NotFoundError(
            "Onboarding incomplete. Please complete your health profile first.",
            context={"user_id": user_id},
        )
    missing = [name for name in REQUIRED_PROFILE_FIELDS if getattr(row, name) is None]
    if missing:
        raise NotFoundError(
            "Health profile incomplete. Please complete onboarding.",
            context={"user_id": user_id, "missing": missing},
        )
    return to_health_profile(row)


async def upsert_health_profile(db: AsyncSession, user_id: int, values: dict[str, Any]) -> UserHealthProfile:
    row = await db.get(UserHealthProfile, user_id)
    if row is None:
        row = UserHealthProfile(
            user_id=user_id,
            target_weight_kg=None, target_date=None,
            bmr=None, tdee=None, calorie_target=None, protein_target=None, water_target=None,
        )
        db.add(row)
    for name, value in values.items():
        setattr(row, name, value)
    row.onboarding_completed = all(getattr(row, name) is not None for name in REQUIRED_PROFILE_FIELDS)
    await db.flush()
    return row


async def list_onboarded_user_ids(db: AsyncSession) -> list[int]:
    result = await db.execute(
        select(UserHealthProfile.user_id)
        .where(UserHealthProfile.onboarding_completed.is_(True))
        .order_by(UserHealthProfile.user_id)
    )
    return list(result.scalars().all())


# ══════════════════════════════════════════════════════════════════════════════
# TARGET SNAPSHOTS
# ══════════════════════════════════════════════════════════════════════════════

async def get_latest_targets(db: AsyncSession, user_id: int) -> Optional[TargetsSnapshot]:
    result = await db.execute(
        select(TargetsSnapshot)
        .where(TargetsSnapshot.user_id == user_id)
        .order_by(desc(TargetsSnapshot.version))
        .limit(1)
    )
    return result.scalar_one_or_none()


async def find_targets_by_version(db: AsyncSession, user_id: int, version: int) -> Optional[TargetsSnapshot]:
    result = await db.execute(
        select(TargetsSnapshot)
        .where(TargetsSnapshot.user_id == user_id, TargetsSnapshot.version == version)
    )
    return result.scalar_one_or_none()


async def get_targets(db: AsyncSession, targets_id: int) -> Optional[TargetsSnapshot]:
    return await db.get(TargetsSnapshot, targets_id)


async def save_targets(
    db: AsyncSession,
    user_id: int,
    targets: ComputedTargets,
    weight_kg: float,
    explanations: dict,
    computed_at: datetime,
) -> TargetsSnapshot:
    """
    Append the next snapshot version and mirror it onto the profile row.
    If a concurrent writer claimed the same version first, its snapshot is
    returned instead.
    """
    current = await db.execute(
        select(func.max(TargetsSnapshot.version)).where(TargetsSnapshot.user_id == user_id)
    )
    version = (current.scalar() or 0) + 1

    snapshot = TargetsSnapshot(
        user_id=user_id,
        version=version,
        bmr=targets.bmr,
        tdee=targets.tdee,
        bmi=targets.bmi,
        calorie_target=targets.calorie_target,
        protein_target=targets.protein_target,
        water_target=targets.water_target,
        weekly_rate=targets.weekly_rate,
        estimated_weeks=targets.estimated_weeks,
        projected_date=targets.projected_date,
        calorie_floor_applied=targets.calorie_floor_applied,
        weight_kg=weight_kg,
        explanations=explanations,
        computed_at=computed_at,
    )
    try:
        async with db.begin_nested():
            db.add(snapshot)
            await db.flush()
    except IntegrityError:
        winner = await find_targets_by_version(db, user_id, version)
        if winner is None:
            raise
        log.info(f"Targets v{version} for user {user_id} written concurrently; reusing it")
        return winner

    profile = await db.get(UserHealthProfile, user_id)
    if profile is not None:
        profile.bmr = targets.bmr
        profile.tdee = targets.tdee
        profile.calorie_target = targets.calorie_target
        profile.protein_target = targets.protein_target
        profile.water_target = targets.water_target

    await db.flush()
    return snapshot


# ══════════════════════════════════════════════════════════════════════════════
# PLANS
# ══════════════════════════════════════════════════════════════════════════════

async def get_active_plan(db: AsyncSession, user_id: int, week_start: date) -> Optional[Plan]:
    result = await db.execute(
        select(Plan)
        .where(Plan.user_id == user_id, Plan.week_start == week_start, Plan.status == "active")
        .limit(1)
    )
    return result.scalar_one_or_none()


async def create_plan(db: AsyncSession, plan: Plan) -> tuple[Plan, bool]:
    """
    Create-or-fetch. A concurrent writer that committed an active plan for
    the same week first wins; its row is returned with created=False.
    """
    try:
        async with db.begin_nested():
            db.add(plan)
            await db.flush()
    except IntegrityError:
        existing = await get_active_plan(db, plan.user_id, plan.week_start)
        if existing is None:
            raise
        log.info(f"Active plan already exists for user {plan.user_id} week {plan.week_start}; reusing {existing.id}")
        return existing, False
    return plan, True


async def archive_plan(db: AsyncSession, plan: Plan) -> None:
    plan.status = "archived"
    await db.flush()


# ══════════════════════════════════════════════════════════════════════════════
# ACKNOWLEDGEMENTS
# ══════════════════════════════════════════════════════════════════════════════

async def find_acknowledgement(db: AsyncSession, user_id: int, version: int) -> Optional[MetricsAcknowledgement]:
    result = await db.execute(
        select(MetricsAcknowledgement)
        .where(MetricsAcknowledgement.user_id == user_id, MetricsAcknowledgement.version == version)
    )
    return result.scalar_one_or_none()


async def upsert_acknowledgement(
    db: AsyncSession,
    user_id: int,
    snapshot: TargetsSnapshot,
    acknowledged_at: datetime,
) -> tuple[MetricsAcknowledgement, bool]:
    existing = await find_acknowledgement(db, user_id, snapshot.version)
    if existing is not None:
        return existing, False

    ack = MetricsAcknowledgement(
        user_id=user_id,
        version=snapshot.version,
        targets_id=snapshot.id,
        metrics_computed_at=snapshot.computed_at,
        acknowledged_at=acknowledged_at,
    )
    try:
        async with db.begin_nested():
            db.add(ack)
            await db.flush()
    except IntegrityError:
        existing = await find_acknowledgement(db, user_id, snapshot.version)
        if existing is None:
            raise
        return existing, False
    return ack, True
