"""
Macro Calculation Service

Daily calorie and macro targets from body metrics and goal.

BMR: Harris-Benedict (sex-specific)
TDEE: BMR x 1.55 (moderate activity; the only activity level offered)
Calories: TDEE adjusted per goal
Protein: grams per kg bodyweight; carbs/fats: share of the calories left
after protein.

Carbs and fats take 70/65/60% of the post-protein calories, so the macro
kcal total is intentionally below the calorie target.

Results are recomputed on demand and never stored.
"""
from __future__ import annotations

import math
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from enum import Enum
from typing import Any

from core.exceptions import InvalidInput


ACTIVITY_FACTOR = 1.55
KCAL_PER_G_PROTEIN = 4
KCAL_PER_G_CARB = 4
KCAL_PER_G_FAT = 9


class Sex(str, Enum):
    MALE = "male"
    FEMALE = "female"


class Goal(str, Enum):
    HYPERTROPHY = "hypertrophy"
    DEFINITION = "definition"
    FAT_LOSS = "fat_loss"


@dataclass(frozen=True)
class GoalProfile:
    calorie_offset: int
    protein_per_kg: float
    carb_share: float
    fat_share: float


GOAL_PROFILES: dict[Goal, GoalProfile] = {
    Goal.HYPERTROPHY: GoalProfile(calorie_offset=300, protein_per_kg=2.2, carb_share=0.45, fat_share=0.25),
    Goal.DEFINITION: GoalProfile(calorie_offset=-200, protein_per_kg=2.5, carb_share=0.35, fat_share=0.30),
    Goal.FAT_LOSS: GoalProfile(calorie_offset=-500, protein_per_kg=2.0, carb_share=0.30, fat_share=0.30),
}

# Both goal vocabularies used by the web app (plus English spellings) map
# onto the three canonical goals.
GOAL_ALIASES: dict[str, Goal] = {
    "hypertrophy": Goal.HYPERTROPHY,
    "hipertrofia": Goal.HYPERTROPHY,
    "muscle_gain": Goal.HYPERTROPHY,
    "ganhar_massa": Goal.HYPERTROPHY,
    "definition": Goal.DEFINITION,
    "definicao": Goal.DEFINITION,
    "maintenance": Goal.DEFINITION,
    "manter_peso": Goal.DEFINITION,
    "fat_loss": Goal.FAT_LOSS,
    "perda_gordura": Goal.FAT_LOSS,
    "weight_loss": Goal.FAT_LOSS,
    "perder_peso": Goal.FAT_LOSS,
}

SEX_ALIASES: dict[str, Sex] = {
    "male": Sex.MALE,
    "m": Sex.MALE,
    "masculino": Sex.MALE,
    "female": Sex.FEMALE,
    "f": Sex.FEMALE,
    "feminino": Sex.FEMALE,
}


@dataclass(frozen=True)
class BodyMetrics:
    weight_kg: float
    height_cm: float
    age_years: int
    sex: Sex


@dataclass(frozen=True)
class MacroTargets:
    calories: int
    protein_g: int
    carbs_g: int
    fats_g: int

    def to_dict(self) -> dict[str, int]:
        return {
            "calories": self.calories,
            "protein_g": self.protein_g,
            "carbs_g": self.carbs_g,
            "fats_g": self.fats_g,
        }


def round_half_up(value: float) -> int:
    """
    Round to the nearest integer, halves away from zero.

    Python's round() is banker's rounding (2.5 -> 2); targets use 2.5 -> 3.
    """
    return int(Decimal(str(value)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def _normalize_key(value: Any) -> str:
    return str(value).strip().lower().replace("-", "_").replace(" ", "_")


def parse_goal(value: Any) -> Goal:
    """Canonical goal for any accepted spelling; InvalidInput otherwise."""
    if isinstance(value, Goal):
        return value
    if value is None:
        raise InvalidInput("goal is required", field="goal")
    goal = GOAL_ALIASES.get(_normalize_key(value))
    if goal is None:
        raise InvalidInput(f"Unrecognized goal: {value!r}", field="goal")
    return goal


def parse_sex(value: Any) -> Sex:
    if isinstance(value, Sex):
        return value
    if value is None:
        raise InvalidInput("sex is required", field="sex")
    sex = SEX_ALIASES.get(_normalize_key(value))
    if sex is None:
        raise InvalidInput(f"Unrecognized sex: {value!r}", field="sex")
    return sex


def _require_positive(name: str, value: Any) -> None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise InvalidInput(f"{name} must be a number", field=name)
    if not math.isfinite(value) or value <= 0:
        raise InvalidInput(f"{name} must be positive", field=name)


def validate_metrics(metrics: BodyMetrics) -> None:
    _require_positive("weight_kg", metrics.weight_kg)
    _require_positive("height_cm", metrics.height_cm)
    _require_positive("age_years", metrics.age_years)
    if metrics.age_years != int(metrics.age_years):
        raise InvalidInput("age_years must be a whole number of years", field="age_years")
    if not isinstance(metrics.sex, Sex):
        raise InvalidInput(f"Unrecognized sex: {metrics.sex!r}", field="sex")


def calculate_bmr(metrics: BodyMetrics) -> float:
    """Harris-Benedict basal metabolic rate (kcal/day)."""
    validate_metrics(metrics)
    w, h, a = metrics.weight_kg, metrics.height_cm, metrics.age_years
    if metrics.sex is Sex.MALE:
        return 88.362 + (13.397 * w) + (4.799 * h) - (5.677 * a)
    return 447.593 + (9.247 * w) + (3.098 * h) - (4.330 * a)


def calculate_tdee(metrics: BodyMetrics) -> float:
    return calculate_bmr(metrics) * ACTIVITY_FACTOR


def calculate_macros(metrics: BodyMetrics, goal: Goal) -> MacroTargets:
    """
    Daily targets for `metrics` and `goal`.

    Raises:
        InvalidInput: non-positive metric, unknown sex or goal.

    Example:
        >>> calculate_macros(BodyMetrics(75, 175, 28, Sex.MALE), Goal.HYPERTROPHY)
        MacroTargets(calories=3050, protein_g=165, carbs_g=269, fats_g=66)
    """
    if not isinstance(goal, Goal):
        raise InvalidInput(f"Unrecognized goal: {goal!r}", field="goal")
    profile = GOAL_PROFILES[goal]

    calories = calculate_tdee(metrics) + profile.calorie_offset
    protein = metrics.weight_kg * profile.protein_per_kg
    remaining = calories - protein * KCAL_PER_G_PROTEIN
    carbs = remaining * profile.carb_share / KCAL_PER_G_CARB
    fats = remaining * profile.fat_share / KCAL_PER_G_FAT

    return MacroTargets(
        calories=round_half_up(calories),
        protein_g=round_half_up(protein),
        carbs_g=round_half_up(carbs),
        fats_g=round_half_up(fats),
    )


def macros_for_profile(profile: Any) -> MacroTargets:
    """Targets for a stored UserProfile row (or anything with the same attributes)."""
    metrics = BodyMetrics(
        weight_kg=profile.weight_kg,
        height_cm=profile.height_cm,
        age_years=profile.age_years,
        sex=parse_sex(profile.sex),
    )
    return calculate_macros(metrics, parse_goal(profile.goal))
