"""
GTSD — API Routes
Profile, metrics acknowledgement and plan generation endpoints.
"""

from fastapi import APIRouter, Body, Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional
import logging

import stores
from acknowledgement import acknowledge, get_current_metrics
from auth_service import user_id_from_token
from config import settings
from database import get_db
from models import Plan, TargetsSnapshot
from plan_generator import plan_generator
from schemas import (
    HealthProfileInputSchema, HealthProfileSchema,
    ComputedTargetsSchema, WhyItWorksSchema,
    GeneratePlanRequest, PlanSchema, PlanGenerationSchema,
    AcknowledgeMetricsRequest, AcknowledgementSchema, CurrentMetricsSchema,
    ErrorSchema,
)
from science_engine import bmi_category
from timestamps import format_utc, week_window

log = logging.getLogger(__name__)
bearer_scheme = HTTPBearer()

ERROR_RESPONSES = {
    400: {"model": ErrorSchema},
    404: {"model": ErrorSchema},
    500: {"model": ErrorSchema},
}


# ══════════════════════════════════════════════════════════════════════════════
# AUTH DEPENDENCY
# ══════════════════════════════════════════════════════════════════════════════

async def current_user_id(
    credentials: HTTPAuthorizationCredentials = Depends(bearer_scheme),
) -> int:
    """FastAPI dependency: validate JWT and return the numeric user id."""
    try:
        return user_id_from_token(credentials.credentials)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=str(e))


# ══════════════════════════════════════════════════════════════════════════════
# SERIALIZATION
# ══════════════════════════════════════════════════════════════════════════════

def targets_to_schema(snapshot: TargetsSnapshot) -> ComputedTargetsSchema:
    return ComputedTargetsSchema(
        version=snapshot.version,
        bmr=snapshot.bmr,
        tdee=snapshot.tdee,
        bmi=snapshot.bmi,
        calorie_target=snapshot.calorie_target,
        protein_target=snapshot.protein_target,
        water_target=snapshot.water_target,
        weekly_rate=snapshot.weekly_rate,
        estimated_weeks=snapshot.estimated_weeks,
        projected_date=snapshot.projected_date,
        calorie_floor_applied=snapshot.calorie_floor_applied,
        computed_at=format_utc(snapshot.computed_at),
    )


def plan_to_schema(plan: Plan) -> PlanSchema:
    starts_at, ends_at = week_window(plan.week_start, settings.REFERENCE_TIMEZONE)
    return PlanSchema(
        id=plan.id,
        user_id=plan.user_id,
        name=plan.name,
        description=plan.description,
        week_start=plan.week_start,
        week_end=plan.week_end,
        starts_at=starts_at,
        ends_at=ends_at,
        status=plan.status,
    )


# ══════════════════════════════════════════════════════════════════════════════
# PROFILE ROUTER
# ══════════════════════════════════════════════════════════════════════════════

profile_router = APIRouter()


@profile_router.put("/health", response_model=HealthProfileSchema, responses=ERROR_RESPONSES)
async def put_health_profile(
    data: HealthProfileInputSchema,
    user_id: int = Depends(current_user_id),
    db: AsyncSession = Depends(get_db),
):
    """Create or replace the health profile. Completing it marks onboarding done."""
    values = data.model_dump()
    values["gender"] = data.gender.value
    values["activity_level"] = data.activity_level.value
    values["primary_goal"] = data.primary_goal.value
    row = await stores.upsert_health_profile(db, user_id, values)
    log.info(f"Health profile saved for user {user_id} (onboarded={row.onboarding_completed})")
    return row


@profile_router.get("/metrics", response_model=CurrentMetricsSchema, responses=ERROR_RESPONSES)
async def get_metrics(
    user_id: int = Depends(current_user_id),
    db: AsyncSession = Depends(get_db),
):
    """Latest computed targets and whether they still need acknowledging."""
    current = await get_current_metrics(db, user_id)
    ack = current.acknowledgement
    return CurrentMetricsSchema(
        targets=targets_to_schema(current.targets),
        bmi_category=bmi_category(current.targets.bmi),
        acknowledged=ack is not None,
        needs_acknowledgment=current.needs_acknowledgment,
        acknowledged_at=format_utc(ack.acknowledged_at) if ack else None,
    )


@profile_router.post("/metrics/acknowledge", response_model=AcknowledgementSchema, responses=ERROR_RESPONSES)
async def post_acknowledge(
    data: AcknowledgeMetricsRequest,
    user_id: int = Depends(current_user_id),
    db: AsyncSession = Depends(get_db),
):
    """
    Confirm the targets identified by version + computed_at. Timestamps match
    at whole-second resolution. 404 means the targets changed since the
    client fetched them; refetch /profile/metrics and retry.
    """
    result = await acknowledge(db, user_id, data)
    if not result.ok:
        raise result.error

    ack = result.value.acknowledgement
    return AcknowledgementSchema(
        success=True,
        version=ack.version,
        metrics_computed_at=format_utc(ack.metrics_computed_at),
        acknowledged_at=format_utc(ack.acknowledged_at),
        created=result.value.created,
    )


# ══════════════════════════════════════════════════════════════════════════════
# PLANS ROUTER
# ══════════════════════════════════════════════════════════════════════════════

plans_router = APIRouter()


@plans_router.post("/generate", response_model=PlanGenerationSchema, responses=ERROR_RESPONSES)
async def generate_plan(
    data: Optional[GeneratePlanRequest] = Body(None),
    user_id: int = Depends(current_user_id),
    db: AsyncSession = Depends(get_db),
):
    """Return this week's plan, generating it (and new targets) when needed."""
    force = data.force_recompute if data else False
    result = await plan_generator.generate(db, user_id, force_recompute=force)

    return PlanGenerationSchema(
        plan=plan_to_schema(result.plan),
        targets=targets_to_schema(result.targets),
        why_it_works=WhyItWorksSchema(**result.why_it_works),
        recomputed=result.recomputed,
        previous_targets=(
            targets_to_schema(result.previous_targets) if result.previous_targets is not None else None
        ),
    )
