"""
GTSD — Science Engine Tests
All target formulas must be numerically verified.
Run with: pytest test_science_engine.py -v
"""

import pytest
from dataclasses import replace
from datetime import date, timedelta

TODAY = date(2025, 10, 30)


def make_profile(**overrides):
    from science_engine import HealthProfile
    values = dict(
        gender="female",
        date_of_birth=date(1999, 1, 15),   # 26 on TODAY
        height_cm=165.0,
        weight_kg=75.0,
        activity_level="sedentary",
        primary_goal="lose_weight",
    )
    values.update(overrides)
    return HealthProfile(**values)


# ══════════════════════════════════════════════════════════════════════════════
# METABOLIC CALCULATOR
# ══════════════════════════════════════════════════════════════════════════════

class TestMetabolicCalculator:

    def setup_method(self):
        from science_engine import MetabolicCalculator, ScienceInputs
        self.calc = MetabolicCalculator()
        self.inputs = ScienceInputs(
            weight_kg=75.0, height_cm=165.0, age_years=26,
            gender="female", activity_level="sedentary", primary_goal="lose_weight",
        )

    def test_bmr_mifflin_st_jeor_female(self):
        """10·75 + 6.25·165 − 5·26 − 161 = 1490.25"""
        assert self.calc.compute_bmr(self.inputs) == 1490

    def test_bmr_male_offset(self):
        bmr = self.calc.compute_bmr(replace(self.inputs, gender="male"))
        assert bmr == 1656  # 1651.25 + 5, rounded

    def test_bmr_non_binary_uses_mean_offset(self):
        bmr = self.calc.compute_bmr(replace(self.inputs, gender="non_binary"))
        assert bmr == 1573  # 1651.25 − 78

    def test_bmr_increases_with_weight(self):
        lighter = self.calc.compute_bmr(self.inputs)
        heavier = self.calc.compute_bmr(replace(self.inputs, weight_kg=76.0))
        assert heavier > lighter

    def test_tdee_multipliers(self):
        assert self.calc.compute_tdee(1490, "sedentary") == 1788
        assert self.calc.compute_tdee(1490, "very_active") == 2570   # 2570.25
        assert self.calc.compute_tdee(1000, "lightly_active") == 1375

    def test_maintain_equals_tdee(self):
        target = self.calc.compute_calorie_target(2400, "maintain")
        assert target.calories == 2400
        assert not target.floor_applied

    def test_gain_adds_surplus(self):
        assert self.calc.compute_calorie_target(2400, "gain_muscle").calories == 2800

    def test_calorie_floor_enforced(self):
        target = self.calc.compute_calorie_target(1500, "lose_weight")
        assert target.calories == 1200
        assert target.floor_applied

    def test_custom_floor(self):
        from science_engine import MetabolicCalculator
        target = MetabolicCalculator(calorie_floor=1500).compute_calorie_target(1788, "lose_weight")
        assert target.calories == 1500

    def test_protein_per_goal(self):
        assert self.calc.compute_protein_target(75.0, "lose_weight") == 165
        assert self.calc.compute_protein_target(75.0, "gain_muscle") == 180
        assert self.calc.compute_protein_target(75.0, "maintain") == 135

    def test_water_rounds_to_nearest_100(self):
        assert self.calc.compute_water_target(75.0) == 2600   # 2625
        assert self.calc.compute_water_target(80.0) == 2800

    def test_water_tie_rounds_up(self):
        # 35 × 70 = 2450 sits exactly between 2400 and 2500
        assert self.calc.compute_water_target(70.0) == 2500

    def test_bmi(self):
        assert self.calc.compute_bmi(75.0, 165.0) == pytest.approx(27.55, abs=0.01)


class TestBmiCategory:

    def test_boundaries(self):
        from science_engine import bmi_category
        assert bmi_category(18.4) == "underweight"
        assert bmi_category(18.5) == "normal weight"
        assert bmi_category(27.55) == "overweight"
        assert bmi_category(30.0) == "obese"


# ══════════════════════════════════════════════════════════════════════════════
# VALIDATION
# ══════════════════════════════════════════════════════════════════════════════

class TestValidation:

    def setup_method(self):
        from science_engine import ScienceEngine
        self.engine = ScienceEngine()

    @pytest.mark.parametrize("overrides, field", [
        ({"weight_kg": 29.9}, "weight_kg"),
        ({"weight_kg": 300.1}, "weight_kg"),
        ({"height_cm": 99.0}, "height_cm"),
        ({"date_of_birth": date(2015, 1, 1)}, "age_years"),
        ({"target_weight_kg": 20.0}, "target_weight_kg"),
        ({"gender": "other"}, "gender"),
        ({"activity_level": "couch"}, "activity_level"),
        ({"primary_goal": "bulk"}, "primary_goal"),
    ])
    def test_out_of_range_inputs_raise_validation(self, overrides, field):
        from errors import ErrorKind, ValidationError
        with pytest.raises(ValidationError) as exc:
            self.engine.compute_targets(make_profile(**overrides), TODAY)
        assert exc.value.kind == ErrorKind.validation
        assert exc.value.field == field

    def test_range_edges_accepted(self):
        targets = self.engine.compute_targets(make_profile(weight_kg=30.0, height_cm=250.0), TODAY)
        assert targets.bmr > 0

    def test_age_counts_whole_years(self):
        from science_engine import age_on
        assert age_on(date(1999, 10, 31), TODAY) == 25
        assert age_on(date(1999, 10, 30), TODAY) == 26


# ══════════════════════════════════════════════════════════════════════════════
# TIMELINE PROJECTOR
# ══════════════════════════════════════════════════════════════════════════════

class TestTimelineProjector:

    def setup_method(self):
        from science_engine import TimelineProjector
        self.projector = TimelineProjector()

    def test_loss_towards_lower_target(self):
        proj = self.projector.compute_weekly_rate(75.0, 65.0, "lose_weight", TODAY)
        assert proj.weekly_rate == -0.5
        assert proj.estimated_weeks == 20
        assert proj.projected_date == TODAY + timedelta(weeks=20)

    def test_gain_towards_higher_target(self):
        proj = self.projector.compute_weekly_rate(70.0, 72.0, "gain_muscle", TODAY)
        assert proj.weekly_rate == 0.4
        assert proj.estimated_weeks == 5

    def test_partial_week_rounds_up(self):
        proj = self.projector.compute_weekly_rate(75.0, 74.2, "lose_weight", TODAY)
        assert proj.estimated_weeks == 2

    def test_maintain_has_no_timeline(self):
        proj = self.projector.compute_weekly_rate(75.0, 65.0, "maintain", TODAY)
        assert proj.weekly_rate == 0
        assert proj.estimated_weeks is None
        assert proj.projected_date is None

    def test_no_target_uses_goal_rate(self):
        proj = self.projector.compute_weekly_rate(75.0, None, "lose_weight", TODAY)
        assert proj.weekly_rate == -0.5
        assert proj.estimated_weeks is None

    def test_target_reached(self):
        proj = self.projector.compute_weekly_rate(75.0, 75.0, "lose_weight", TODAY)
        assert proj.weekly_rate == 0
        assert proj.estimated_weeks is None


# ══════════════════════════════════════════════════════════════════════════════
# ENGINE FACADE
# ══════════════════════════════════════════════════════════════════════════════

class TestScienceEngine:

    def setup_method(self):
        from science_engine import ScienceEngine
        self.engine = ScienceEngine()

    def test_literal_scenario(self):
        targets = self.engine.compute_targets(make_profile(), TODAY)
        assert targets.bmr == 1490
        assert targets.tdee == 1788
        assert targets.calorie_target == 1288
        assert targets.protein_target == 165
        assert targets.water_target == 2600
        assert targets.weekly_rate == -0.5
        assert not targets.calorie_floor_applied

    def test_literal_scenario_with_target_weight(self):
        targets = self.engine.compute_targets(make_profile(target_weight_kg=65.0), TODAY)
        assert targets.estimated_weeks == 20
        assert targets.projected_date == date(2026, 3, 19)

    def test_deterministic(self):
        a = self.engine.compute_targets(make_profile(target_weight_kg=65.0), TODAY)
        b = self.engine.compute_targets(make_profile(target_weight_kg=65.0), TODAY)
        assert a == b

    @pytest.mark.parametrize("activity", [
        "sedentary", "lightly_active", "moderately_active", "very_active", "extremely_active",
    ])
    def test_maintain_calories_equal_tdee(self, activity):
        targets = self.engine.compute_targets(
            make_profile(primary_goal="maintain", activity_level=activity), TODAY
        )
        assert targets.calorie_target == targets.tdee

    def test_floor_never_crossed(self):
        small = make_profile(weight_kg=45.0, height_cm=150.0, date_of_birth=date(1950, 1, 1))
        targets = self.engine.compute_targets(small, TODAY)
        assert targets.calorie_target == 1200
        assert targets.calorie_floor_applied

    def test_explanations_cover_every_metric(self):
        profile = make_profile(target_weight_kg=65.0)
        targets = self.engine.compute_targets(profile, TODAY)
        why = self.engine.generate_explanations(targets, profile, TODAY)
        assert "1490" in why.bmr.explanation
        assert why.tdee.metric == 1.2
        assert "500 calories below maintenance" in why.calorie_target.explanation
        assert "165g" in why.protein_target.explanation
        assert "2600ml" in why.water_target.explanation
        assert "20 weeks" in why.timeline.explanation
        assert why.notes == []

    def test_explanations_note_floor(self):
        small = make_profile(weight_kg=45.0, height_cm=150.0, date_of_birth=date(1950, 1, 1))
        targets = self.engine.compute_targets(small, TODAY)
        why = self.engine.generate_explanations(targets, small, TODAY)
        assert len(why.notes) == 1
        assert "1200 kcal" in why.notes[0]
