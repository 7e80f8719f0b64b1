"""
Tests for the macro calculator.

Harris-Benedict BMR, moderate activity (x1.55), goal-specific calorie
offsets and macro splits, rounded half away from zero.
"""
import math

import pytest

from core.exceptions import InvalidInput
from services.macro_calculator import (
    BodyMetrics,
    Goal,
    MacroTargets,
    Sex,
    calculate_bmr,
    calculate_macros,
    calculate_tdee,
    macros_for_profile,
    parse_goal,
    parse_sex,
    round_half_up,
)


MALE_75 = BodyMetrics(weight_kg=75, height_cm=175, age_years=28, sex=Sex.MALE)
FEMALE_60 = BodyMetrics(weight_kg=60, height_cm=165, age_years=30, sex=Sex.FEMALE)


class TestEnergy:
    def test_male_bmr(self):
        # 88.362 + 13.397*75 + 4.799*175 - 5.677*28
        assert calculate_bmr(MALE_75) == pytest.approx(1774.006)

    def test_female_bmr(self):
        # 447.593 + 9.247*60 + 3.098*165 - 4.330*30
        assert calculate_bmr(FEMALE_60) == pytest.approx(1383.683)

    def test_tdee_is_moderate_activity(self):
        assert calculate_tdee(MALE_75) == pytest.approx(1774.006 * 1.55)


class TestMacros:
    def test_male_hypertrophy(self):
        assert calculate_macros(MALE_75, Goal.HYPERTROPHY) == MacroTargets(
            calories=3050, protein_g=165, carbs_g=269, fats_g=66
        )

    def test_male_definition(self):
        # protein 75 * 2.5 = 187.5 rounds up
        assert calculate_macros(MALE_75, Goal.DEFINITION) == MacroTargets(
            calories=2550, protein_g=188, carbs_g=157, fats_g=60
        )

    def test_female_fat_loss(self):
        assert calculate_macros(FEMALE_60, Goal.FAT_LOSS) == MacroTargets(
            calories=1645, protein_g=120, carbs_g=87, fats_g=39
        )

    def test_goal_ordering_of_calories(self):
        hyp = calculate_macros(MALE_75, Goal.HYPERTROPHY).calories
        dfn = calculate_macros(MALE_75, Goal.DEFINITION).calories
        cut = calculate_macros(MALE_75, Goal.FAT_LOSS).calories
        assert hyp > dfn > cut

    @pytest.mark.parametrize("goal", list(Goal))
    def test_macro_energy_never_exceeds_calories(self, goal):
        t = calculate_macros(MALE_75, goal)
        assert t.protein_g * 4 + t.carbs_g * 4 + t.fats_g * 9 <= t.calories + 9

    def test_half_rounds_away_from_zero(self):
        tiny = BodyMetrics(weight_kg=1.25, height_cm=175, age_years=28, sex=Sex.MALE)
        assert calculate_macros(tiny, Goal.FAT_LOSS).protein_g == 3

    def test_deterministic(self):
        assert calculate_macros(FEMALE_60, Goal.DEFINITION) == calculate_macros(FEMALE_60, Goal.DEFINITION)

    def test_to_dict(self):
        assert calculate_macros(MALE_75, Goal.HYPERTROPHY).to_dict() == {
            "calories": 3050,
            "protein_g": 165,
            "carbs_g": 269,
            "fats_g": 66,
        }


class TestValidation:
    @pytest.mark.parametrize(
        "metrics,field",
        [
            (BodyMetrics(0, 175, 28, Sex.MALE), "weight_kg"),
            (BodyMetrics(-70, 175, 28, Sex.MALE), "weight_kg"),
            (BodyMetrics(75, 0, 28, Sex.MALE), "height_cm"),
            (BodyMetrics(75, 175, -1, Sex.MALE), "age_years"),
            (BodyMetrics(75, 175, 28.5, Sex.MALE), "age_years"),
            (BodyMetrics(math.nan, 175, 28, Sex.MALE), "weight_kg"),
            (BodyMetrics(75, math.inf, 28, Sex.MALE), "height_cm"),
            (BodyMetrics(True, 175, 28, Sex.MALE), "weight_kg"),
            (BodyMetrics("75", 175, 28, Sex.MALE), "weight_kg"),
        ],
    )
    def test_rejects_bad_metrics(self, metrics, field):
        with pytest.raises(InvalidInput) as exc:
            calculate_macros(metrics, Goal.HYPERTROPHY)
        assert exc.value.field == field

    def test_whole_float_age_is_accepted(self):
        as_float = BodyMetrics(weight_kg=75, height_cm=175, age_years=28.0, sex=Sex.MALE)
        assert calculate_macros(as_float, Goal.HYPERTROPHY) == calculate_macros(MALE_75, Goal.HYPERTROPHY)

    def test_rejects_unknown_sex(self):
        with pytest.raises(InvalidInput):
            calculate_macros(BodyMetrics(75, 175, 28, "x"), Goal.HYPERTROPHY)

    def test_rejects_non_goal(self):
        with pytest.raises(InvalidInput):
            calculate_macros(MALE_75, "hypertrophy")


class TestVocabulary:
    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("hipertrofia", Goal.HYPERTROPHY),
            ("muscle_gain", Goal.HYPERTROPHY),
            ("Ganhar Massa", Goal.HYPERTROPHY),
            ("definicao", Goal.DEFINITION),
            ("maintenance", Goal.DEFINITION),
            ("perda_gordura", Goal.FAT_LOSS),
            ("weight-loss", Goal.FAT_LOSS),
        ],
    )
    def test_goal_aliases(self, raw, expected):
        assert parse_goal(raw) is expected

    @pytest.mark.parametrize("raw", ["performance", "", None, "bulk"])
    def test_unknown_goal(self, raw):
        with pytest.raises(InvalidInput):
            parse_goal(raw)

    def test_sex_aliases(self):
        assert parse_sex("Masculino") is Sex.MALE
        assert parse_sex("f") is Sex.FEMALE
        with pytest.raises(InvalidInput):
            parse_sex("other")

    def test_macros_for_profile_uses_aliases(self):
        class _Profile:
            weight_kg = 75
            height_cm = 175
            age_years = 28
            sex = "masculino"
            goal = "hipertrofia"

        assert macros_for_profile(_Profile()) == calculate_macros(MALE_75, Goal.HYPERTROPHY)


def test_round_half_up():
    assert round_half_up(2.5) == 3
    assert round_half_up(3.5) == 4
    assert round_half_up(2.49) == 2
    assert round_half_up(-2.5) == -3
