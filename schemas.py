"""
GTSD — Pydantic Schemas
Request/response models for all API endpoints.
"""

from pydantic import BaseModel, Field, field_validator, model_validator
from typing import Optional, List
from datetime import date, datetime
from enum import Enum

from errors import DomainError
from timestamps import parse_utc_timestamp

# computed_targets.version is a 32-bit INTEGER column
MAX_VERSION = 2**31 - 1


# ══════════════════════════════════════════════════════════════════════════════
# ENUMS
# ══════════════════════════════════════════════════════════════════════════════

class Gender(str, Enum):
    male = "male"
    female = "female"
    non_binary = "non_binary"


class ActivityLevel(str, Enum):
    sedentary = "sedentary"                  # desk job, no exercise
    lightly_active = "lightly_active"        # 1–3 days/week
    moderately_active = "moderately_active"  # 3–5 days/week
    very_active = "very_active"              # 6–7 days/week
    extremely_active = "extremely_active"    # athlete / manual labor


class PrimaryGoal(str, Enum):
    lose_weight = "lose_weight"
    gain_muscle = "gain_muscle"
    maintain = "maintain"
    improve_health = "improve_health"


class PlanStatus(str, Enum):
    active = "active"
    completed = "completed"
    archived = "archived"
    draft = "draft"


# ══════════════════════════════════════════════════════════════════════════════
# PROFILE
# ══════════════════════════════════════════════════════════════════════════════

class HealthProfileInputSchema(BaseModel):
    gender: Gender
    date_of_birth: date
    height_cm: float = Field(..., ge=100, le=250)
    weight_kg: float = Field(..., ge=30, le=300)
    target_weight_kg: Optional[float] = Field(None, ge=30, le=300)
    activity_level: ActivityLevel
    primary_goal: PrimaryGoal
    target_date: Optional[date] = None

    @model_validator(mode="after")
    def check_target_date(self):
        if self.target_date is not None and self.target_date <= self.date_of_birth:
            raise ValueError("target_date must be after date_of_birth.")
        return self


class HealthProfileSchema(BaseModel):
    user_id: int
    gender: Optional[str] = None
    date_of_birth: Optional[date] = None
    height_cm: Optional[float] = None
    weight_kg: Optional[float] = None
    target_weight_kg: Optional[float] = None
    activity_level: Optional[str] = None
    primary_goal: Optional[str] = None
    target_date: Optional[date] = None
    onboarding_completed: bool

    bmr: Optional[int] = None
    tdee: Optional[int] = None
    calorie_target: Optional[int] = None
    protein_target: Optional[int] = None
    water_target: Optional[int] = None

    class Config:
        from_attributes = True


# ══════════════════════════════════════════════════════════════════════════════
# TARGETS & EXPLANATIONS
# ══════════════════════════════════════════════════════════════════════════════

class ComputedTargetsSchema(BaseModel):
    version: int = Field(..., ge=1)
    bmr: int
    tdee: int
    bmi: float
    calorie_target: int
    protein_target: int = Field(..., description="grams/day")
    water_target: int = Field(..., description="ml/day, nearest 100")
    weekly_rate: float = Field(..., description="kg/week; negative = loss")
    estimated_weeks: Optional[int] = None
    projected_date: Optional[date] = None
    calorie_floor_applied: bool = False
    computed_at: str   # UTC, millisecond precision, Z suffix


class MetricExplanationSchema(BaseModel):
    title: str
    explanation: str
    formula: Optional[str] = None
    metric: float


class WhyItWorksSchema(BaseModel):
    bmr: MetricExplanationSchema
    tdee: MetricExplanationSchema
    calorie_target: MetricExplanationSchema
    protein_target: MetricExplanationSchema
    water_target: MetricExplanationSchema
    timeline: MetricExplanationSchema
    notes: List[str] = []


# ══════════════════════════════════════════════════════════════════════════════
# PLANS
# ══════════════════════════════════════════════════════════════════════════════

class GeneratePlanRequest(BaseModel):
    force_recompute: bool = False


class PlanSchema(BaseModel):
    id: int
    user_id: int
    name: str
    description: Optional[str] = None
    week_start: date
    week_end: date
    starts_at: datetime
    ends_at: datetime
    status: PlanStatus


class PlanGenerationSchema(BaseModel):
    plan: PlanSchema
    targets: ComputedTargetsSchema
    why_it_works: WhyItWorksSchema
    recomputed: bool
    previous_targets: Optional[ComputedTargetsSchema] = None


# ══════════════════════════════════════════════════════════════════════════════
# METRICS ACKNOWLEDGEMENT
# ══════════════════════════════════════════════════════════════════════════════

class AcknowledgeMetricsRequest(BaseModel):
    version: int = Field(..., gt=0, le=MAX_VERSION, strict=True)
    metrics_computed_at: datetime = Field(
        ..., description='UTC ISO-8601, e.g. "2025-10-30T12:34:56Z" or "2025-10-30T12:34:56.789Z"'
    )

    @field_validator("metrics_computed_at", mode="before")
    @classmethod
    def parse_timestamp(cls, v):
        if not isinstance(v, str):
            raise ValueError("metrics_computed_at must be a string.")
        try:
            return parse_utc_timestamp(v)
        except DomainError as e:
            raise ValueError(e.message)


class AcknowledgementSchema(BaseModel):
    success: bool = True
    version: int
    metrics_computed_at: str
    acknowledged_at: str
    created: bool


class CurrentMetricsSchema(BaseModel):
    targets: ComputedTargetsSchema
    bmi_category: str
    acknowledged: bool
    needs_acknowledgment: bool
    acknowledged_at: Optional[str] = None


# ══════════════════════════════════════════════════════════════════════════════
# GENERIC
# ══════════════════════════════════════════════════════════════════════════════

class ErrorSchema(BaseModel):
    error: str
    detail: str
    field: Optional[str] = None
    context: Optional[dict] = None
