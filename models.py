"""
GTSD — ORM Models
SQLAlchemy mapped tables for health profiles, computed targets, weekly plans
and metrics acknowledgements.
"""

from sqlalchemy import (
    String, Integer, Float, Boolean, ForeignKey,
    Text, Date, DateTime, JSON, Index, UniqueConstraint, text
)
from sqlalchemy.orm import Mapped, mapped_column
from database import Base
import datetime


class UserHealthProfile(Base):
    __tablename__ = "health_profiles"

    # Numeric id issued by the identity provider
    user_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=False)

    gender: Mapped[str | None] = mapped_column(String(16), nullable=True)
    date_of_birth: Mapped[datetime.date | None] = mapped_column(Date, nullable=True)
    height_cm: Mapped[float | None] = mapped_column(Float, nullable=True)
    weight_kg: Mapped[float | None] = mapped_column(Float, nullable=True)
    target_weight_kg: Mapped[float | None] = mapped_column(Float, nullable=True)
    activity_level: Mapped[str | None] = mapped_column(String(32), nullable=True)
    primary_goal: Mapped[str | None] = mapped_column(String(32), nullable=True)
    target_date: Mapped[datetime.date | None] = mapped_column(Date, nullable=True)
    onboarding_completed: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    # Current targets, written by save_targets
    bmr: Mapped[int | None] = mapped_column(Integer, nullable=True)
    tdee: Mapped[int | None] = mapped_column(Integer, nullable=True)
    calorie_target: Mapped[int | None] = mapped_column(Integer, nullable=True)
    protein_target: Mapped[int | None] = mapped_column(Integer, nullable=True)
    water_target: Mapped[int | None] = mapped_column(Integer, nullable=True)


class TargetsSnapshot(Base):
    __tablename__ = "computed_targets"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("health_profiles.user_id"), nullable=False, index=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    bmr: Mapped[int] = mapped_column(Integer, nullable=False)
    tdee: Mapped[int] = mapped_column(Integer, nullable=False)
    bmi: Mapped[float] = mapped_column(Float, nullable=False)
    calorie_target: Mapped[int] = mapped_column(Integer, nullable=False)
    protein_target: Mapped[int] = mapped_column(Integer, nullable=False)
    water_target: Mapped[int] = mapped_column(Integer, nullable=False)
    weekly_rate: Mapped[float] = mapped_column(Float, nullable=False)
    estimated_weeks: Mapped[int | None] = mapped_column(Integer, nullable=True)
    projected_date: Mapped[datetime.date | None] = mapped_column(Date, nullable=True)
    calorie_floor_applied: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    # Profile weight the targets were derived from
    weight_kg: Mapped[float] = mapped_column(Float, nullable=False)
    explanations: Mapped[dict] = mapped_column(JSON, nullable=False)
    computed_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        UniqueConstraint("user_id", "version", name="uq_user_targets_version"),
    )


class Plan(Base):
    __tablename__ = "plans"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("health_profiles.user_id"), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    week_start: Mapped[datetime.date] = mapped_column(Date, nullable=False)
    week_end: Mapped[datetime.date] = mapped_column(Date, nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="active")

    targets_id: Mapped[int] = mapped_column(ForeignKey("computed_targets.id"), nullable=False)
    previous_targets_id: Mapped[int | None] = mapped_column(ForeignKey("computed_targets.id"), nullable=True)

    __table_args__ = (
        # At most one active plan per user per week
        Index(
            "uq_user_week_active_plan",
            "user_id", "week_start",
            unique=True,
            postgresql_where=text("status = 'active'"),
            sqlite_where=text("status = 'active'"),
        ),
    )


class MetricsAcknowledgement(Base):
    __tablename__ = "metrics_acknowledgements"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("health_profiles.user_id"), nullable=False, index=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False)
    targets_id: Mapped[int] = mapped_column(ForeignKey("computed_targets.id"), nullable=False)
    metrics_computed_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    acknowledged_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        UniqueConstraint("user_id", "version", name="uq_user_ack_version"),
    )
