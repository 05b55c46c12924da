"""
GTSD — Science Engine
Mifflin-St Jeor BMR → TDEE → calorie/protein/water targets → weekly rate and
timeline projection → "why it works" explanations.
Pure and deterministic: no I/O, no clock reads (callers pass `today`).
"""

import math
import logging
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Optional

from errors import ComputationFailedError, ValidationError
from units import (
    Calories, Centimeters, Grams, Kilograms, KilogramsPerWeek, Milliliters, Years,
)

log = logging.getLogger(__name__)


# ══════════════════════════════════════════════════════════════════════════════
# CONSTANTS
# ══════════════════════════════════════════════════════════════════════════════

# Mifflin-St Jeor sex constants; non-binary uses the mean of the two
GENDER_OFFSETS = {
    "male":       5.0,
    "female":     -161.0,
    "non_binary": (5.0 + -161.0) / 2,
}

ACTIVITY_MULTIPLIERS = {
    "sedentary":         1.2,
    "lightly_active":    1.375,
    "moderately_active": 1.55,
    "very_active":       1.725,
    "extremely_active":  1.9,
}

# Daily calorie adjustment per goal
GOAL_ADJUSTMENTS = {
    "lose_weight":    -500,
    "gain_muscle":    +400,
    "maintain":       0,
    "improve_health": 0,
}

PROTEIN_G_PER_KG = {
    "lose_weight":    2.2,
    "gain_muscle":    2.4,
    "maintain":       1.8,
    "improve_health": 1.8,
}

WATER_ML_PER_KG = 35

# kg/week; loss is deficit-implied (500 kcal/day), gain is anabolic-limited
LOSS_RATE_KG_PER_WEEK = 0.5
GAIN_RATE_KG_PER_WEEK = 0.4

DEFAULT_CALORIE_FLOOR = 1200

VALIDATION_RANGES = {
    "weight_kg":        (30.0, 300.0),
    "height_cm":        (100.0, 250.0),
    "age_years":        (13, 120),
    "target_weight_kg": (30.0, 300.0),
}


# ══════════════════════════════════════════════════════════════════════════════
# DATA STRUCTURES
# ══════════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class ScienceInputs:
    weight_kg: Kilograms
    height_cm: Centimeters
    age_years: Years
    gender: str
    activity_level: str
    primary_goal: str
    target_weight_kg: Optional[Kilograms] = None


@dataclass(frozen=True)
class HealthProfile:
    gender: str
    date_of_birth: date
    height_cm: Centimeters
    weight_kg: Kilograms
    activity_level: str
    primary_goal: str
    target_weight_kg: Optional[Kilograms] = None
    target_date: Optional[date] = None

    def to_inputs(self, today: date) -> ScienceInputs:
        return ScienceInputs(
            weight_kg=self.weight_kg,
            height_cm=self.height_cm,
            age_years=age_on(self.date_of_birth, today),
            gender=self.gender,
            activity_level=self.activity_level,
            primary_goal=self.primary_goal,
            target_weight_kg=self.target_weight_kg,
        )


@dataclass(frozen=True)
class CalorieTarget:
    calories: Calories
    floor_applied: bool


@dataclass(frozen=True)
class WeeklyProjection:
    weekly_rate: KilogramsPerWeek
    estimated_weeks: Optional[int]
    projected_date: Optional[date]


@dataclass
class ComputedTargets:
    bmr: Calories
    tdee: Calories
    calorie_target: Calories
    protein_target: Grams
    water_target: Milliliters
    weekly_rate: KilogramsPerWeek
    estimated_weeks: Optional[int]
    projected_date: Optional[date]
    bmi: float
    calorie_floor_applied: bool = False


@dataclass
class MetricExplanation:
    title: str
    explanation: str
    formula: Optional[str]
    metric: float


@dataclass
class WhyItWorks:
    bmr: MetricExplanation
    tdee: MetricExplanation
    calorie_target: MetricExplanation
    protein_target: MetricExplanation
    water_target: MetricExplanation
    timeline: MetricExplanation
    notes: list[str] = field(default_factory=list)


# ══════════════════════════════════════════════════════════════════════════════
# HELPERS
# ══════════════════════════════════════════════════════════════════════════════

def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _humanize(value: str) -> str:
    return value.replace("_", " ")


def age_on(date_of_birth: date, today: date) -> Years:
    """Whole years completed on `today`."""
    had_birthday = (today.month, today.day) >= (date_of_birth.month, date_of_birth.day)
    return Years(today.year - date_of_birth.year - (0 if had_birthday else 1))


def _check_range(name: str, value: float) -> None:
    lo, hi = VALIDATION_RANGES[name]
    if value is None or not (lo <= value <= hi):
        raise ValidationError(
            f"{name} must be between {lo} and {hi}, got {value}",
            field=name,
            context={"min": lo, "max": hi, "value": value},
        )


def _check_choice(name: str, value: str, choices) -> None:
    if value not in choices:
        raise ValidationError(
            f"{name} must be one of {sorted(choices)}, got {value!r}",
            field=name,
            context={"allowed": sorted(choices), "value": value},
        )


def validate_inputs(inputs: ScienceInputs) -> None:
    """Raise ValidationError on the first field outside its accepted range."""
    _check_range("weight_kg", inputs.weight_kg)
    _check_range("height_cm", inputs.height_cm)
    _check_range("age_years", inputs.age_years)
    if inputs.target_weight_kg is not None:
        _check_range("target_weight_kg", inputs.target_weight_kg)
    _check_choice("gender", inputs.gender, GENDER_OFFSETS)
    _check_choice("activity_level", inputs.activity_level, ACTIVITY_MULTIPLIERS)
    _check_choice("primary_goal", inputs.primary_goal, GOAL_ADJUSTMENTS)


# ══════════════════════════════════════════════════════════════════════════════
# METABOLIC CALCULATOR
# ══════════════════════════════════════════════════════════════════════════════

class MetabolicCalculator:
    """
    Mifflin-St Jeor BMR → TDEE → goal-adjusted calories, protein and water.
    """

    def __init__(self, calorie_floor: int = DEFAULT_CALORIE_FLOOR):
        self.calorie_floor = calorie_floor

    def compute_bmr(self, inputs: ScienceInputs) -> Calories:
        """BMR = 10·weight + 6.25·height − 5·age + sex constant"""
        validate_inputs(inputs)
        base = 10 * inputs.weight_kg + 6.25 * inputs.height_cm - 5 * inputs.age_years
        return Calories(_round_half_up(base + GENDER_OFFSETS[inputs.gender]))

    def compute_tdee(self, bmr: Calories, activity_level: str) -> Calories:
        _check_choice("activity_level", activity_level, ACTIVITY_MULTIPLIERS)
        return Calories(_round_half_up(bmr * ACTIVITY_MULTIPLIERS[activity_level]))

    def compute_calorie_target(self, tdee: Calories, goal: str) -> CalorieTarget:
        _check_choice("primary_goal", goal, GOAL_ADJUSTMENTS)
        raw = tdee + GOAL_ADJUSTMENTS[goal]
        if raw < self.calorie_floor:
            return CalorieTarget(calories=Calories(self.calorie_floor), floor_applied=True)
        return CalorieTarget(calories=Calories(raw), floor_applied=False)

    def compute_protein_target(self, weight_kg: Kilograms, goal: str) -> Grams:
        _check_choice("primary_goal", goal, PROTEIN_G_PER_KG)
        return Grams(_round_half_up(weight_kg * PROTEIN_G_PER_KG[goal]))

    def compute_water_target(self, weight_kg: Kilograms) -> Milliliters:
        """35 ml/kg, rounded to the nearest 100 ml with ties going up."""
        return Milliliters(_round_half_up(weight_kg * WATER_ML_PER_KG / 100) * 100)

    def compute_bmi(self, weight_kg: Kilograms, height_cm: Centimeters) -> float:
        height_m = height_cm / 100.0
        return round(weight_kg / (height_m * height_m), 2)


def bmi_category(bmi: float) -> str:
    if bmi < 18.5:
        return "underweight"
    if bmi < 25:
        return "normal weight"
    if bmi < 30:
        return "overweight"
    return "obese"


# ══════════════════════════════════════════════════════════════════════════════
# TIMELINE PROJECTOR
# ══════════════════════════════════════════════════════════════════════════════

class TimelineProjector:

    def compute_weekly_rate(
        self,
        current_weight_kg: Kilograms,
        target_weight_kg: Optional[Kilograms],
        goal: str,
        today: date,
    ) -> WeeklyProjection:
        """
        Maintenance goals and an already-reached target give a zero rate and
        no estimate. Otherwise the direction of the target sets the sign.
        """
        if goal in ("maintain", "improve_health"):
            return WeeklyProjection(KilogramsPerWeek(0.0), None, None)

        if target_weight_kg is None:
            rate = -LOSS_RATE_KG_PER_WEEK if goal == "lose_weight" else GAIN_RATE_KG_PER_WEEK
            return WeeklyProjection(KilogramsPerWeek(rate), None, None)

        difference = target_weight_kg - current_weight_kg
        if math.isclose(difference, 0.0, abs_tol=1e-9):
            return WeeklyProjection(KilogramsPerWeek(0.0), None, None)

        rate = -LOSS_RATE_KG_PER_WEEK if difference < 0 else GAIN_RATE_KG_PER_WEEK
        weeks = math.ceil(round(abs(difference) / abs(rate), 6))
        return WeeklyProjection(
            weekly_rate=KilogramsPerWeek(rate),
            estimated_weeks=weeks,
            projected_date=today + timedelta(weeks=weeks),
        )


# ══════════════════════════════════════════════════════════════════════════════
# EXPLANATION BUILDER
# ══════════════════════════════════════════════════════════════════════════════

class ExplanationBuilder:
    """Templating over already-computed numbers. Computes nothing new."""

    def generate_explanations(self, targets: ComputedTargets, inputs: ScienceInputs) -> WhyItWorks:
        multiplier = ACTIVITY_MULTIPLIERS[inputs.activity_level]
        grams_per_kg = PROTEIN_G_PER_KG[inputs.primary_goal]
        goal_text = _humanize(inputs.primary_goal)
        delta = targets.tdee - targets.calorie_target

        bmr = MetricExplanation(
            title="Your Basal Metabolic Rate (BMR)",
            explanation=(
                f"Your BMR is {targets.bmr} calories, the energy your body burns at complete rest. "
                f"It comes from the Mifflin-St Jeor equation using your weight ({inputs.weight_kg:g} kg), "
                f"height ({inputs.height_cm:g} cm), age ({inputs.age_years}) and a "
                f"{_humanize(inputs.gender)} offset of {GENDER_OFFSETS[inputs.gender]:g}."
            ),
            formula="BMR = (10 × weight in kg) + (6.25 × height in cm) − (5 × age) + gender offset",
            metric=float(targets.bmr),
        )

        tdee = MetricExplanation(
            title="Your Total Daily Energy Expenditure (TDEE)",
            explanation=(
                f"Your TDEE is {targets.tdee} calories. We multiply your BMR by {multiplier} "
                f"for your {_humanize(inputs.activity_level)} lifestyle. Eating this amount keeps "
                f"your weight stable."
            ),
            formula=f"TDEE = BMR × {multiplier}",
            metric=multiplier,
        )

        if delta > 0:
            calorie_text = (
                f"To {goal_text}, you eat {delta} calories below maintenance. At this deficit you can "
                f"expect about {abs(targets.weekly_rate):g} kg of loss per week."
            )
        elif delta < 0:
            calorie_text = (
                f"To {goal_text}, you eat {abs(delta)} calories above maintenance, giving your body "
                f"the extra energy needed for muscle protein synthesis."
            )
        else:
            calorie_text = (
                f"To {goal_text}, you eat at maintenance ({targets.calorie_target} calories) so your "
                f"weight stays stable."
            )
        calorie_target = MetricExplanation(
            title="Your Daily Calorie Target",
            explanation=calorie_text,
            formula=f"Calories = TDEE {GOAL_ADJUSTMENTS[inputs.primary_goal]:+d}",
            metric=float(delta),
        )

        if inputs.primary_goal == "lose_weight":
            protein_reason = "High protein preserves lean mass and keeps you full while in a deficit."
        elif inputs.primary_goal == "gain_muscle":
            protein_reason = "Extra protein supplies the amino acids needed to build new muscle."
        else:
            protein_reason = "Adequate protein supports muscle maintenance, satiety and overall health."
        protein_target = MetricExplanation(
            title="Your Daily Protein Target",
            explanation=(
                f"You need {targets.protein_target}g of protein daily ({grams_per_kg}g per kg of body "
                f"weight). {protein_reason}"
            ),
            formula=f"Protein = weight × {grams_per_kg} g/kg",
            metric=grams_per_kg,
        )

        water_target = MetricExplanation(
            title="Your Daily Hydration Target",
            explanation=(
                f"Aim for {targets.water_target}ml of water daily ({WATER_ML_PER_KG}ml per kg, rounded "
                f"to the nearest 100ml). Hydration supports performance, recovery and appetite control."
            ),
            formula=f"Water = weight × {WATER_ML_PER_KG} ml/kg",
            metric=float(WATER_ML_PER_KG),
        )

        if targets.estimated_weeks:
            timeline_text = (
                f"At {abs(targets.weekly_rate):g} kg per week you reach your goal in about "
                f"{targets.estimated_weeks} weeks. Progress is rarely linear, so expect some "
                f"fluctuation week to week."
            )
        else:
            timeline_text = (
                f"Since you're focused on {goal_text}, there's no specific weight timeline. "
                f"Focus on consistency with your daily habits."
            )
        timeline = MetricExplanation(
            title="Your Projected Timeline",
            explanation=timeline_text,
            formula="Weeks = |target weight − current weight| ÷ weekly rate",
            metric=float(targets.weekly_rate),
        )

        notes = []
        if targets.calorie_floor_applied:
            notes.append(
                f"Your calorie target was raised to the {targets.calorie_target} kcal safety minimum. "
                f"Going lower is not recommended without medical supervision."
            )

        return WhyItWorks(
            bmr=bmr,
            tdee=tdee,
            calorie_target=calorie_target,
            protein_target=protein_target,
            water_target=water_target,
            timeline=timeline,
            notes=notes,
        )


# ══════════════════════════════════════════════════════════════════════════════
# SCIENCE ENGINE FACADE
# ══════════════════════════════════════════════════════════════════════════════

class ScienceEngine:
    def __init__(self, calorie_floor: int = DEFAULT_CALORIE_FLOOR):
        self.calculator = MetabolicCalculator(calorie_floor=calorie_floor)
        self.projector = TimelineProjector()
        self.explainer = ExplanationBuilder()

    def compute_targets(self, profile: HealthProfile, today: date) -> ComputedTargets:
        inputs = profile.to_inputs(today)
        bmr = self.calculator.compute_bmr(inputs)
        tdee = self.calculator.compute_tdee(bmr, inputs.activity_level)
        if bmr <= 0 or tdee <= 0:
            raise ComputationFailedError(
                f"Non-positive energy estimate (bmr={bmr}, tdee={tdee})",
                context={"bmr": bmr, "tdee": tdee},
            )
        calories = self.calculator.compute_calorie_target(tdee, inputs.primary_goal)
        projection = self.projector.compute_weekly_rate(
            inputs.weight_kg, inputs.target_weight_kg, inputs.primary_goal, today
        )
        if calories.floor_applied:
            log.info(f"Calorie target clamped to floor {calories.calories} (tdee={tdee})")

        return ComputedTargets(
            bmr=bmr,
            tdee=tdee,
            calorie_target=calories.calories,
            protein_target=self.calculator.compute_protein_target(inputs.weight_kg, inputs.primary_goal),
            water_target=self.calculator.compute_water_target(inputs.weight_kg),
            weekly_rate=projection.weekly_rate,
            estimated_weeks=projection.estimated_weeks,
            projected_date=projection.projected_date,
            bmi=self.calculator.compute_bmi(inputs.weight_kg, inputs.height_cm),
            calorie_floor_applied=calories.floor_applied,
        )

    def generate_explanations(self, targets: ComputedTargets, profile: HealthProfile, today: date) -> WhyItWorks:
        return self.explainer.generate_explanations(targets, profile.to_inputs(today))


science_engine = ScienceEngine()
