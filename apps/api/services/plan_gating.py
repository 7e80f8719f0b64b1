"""
Plan gating: how much generated content a user may see.

Free accounts see the first 3 meal days and 2 workout days; premium sees up
to 7 of each. Gating never invents days: with fewer days available than the
limit, all of them are visible.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, List, Tuple

FREE_MEAL_DAYS = 3
FREE_WORKOUT_DAYS = 2
PREMIUM_MEAL_DAYS = 7
PREMIUM_WORKOUT_DAYS = 7


@dataclass(frozen=True)
class PlanLimits:
    max_meal_days: int
    max_workout_days: int


@dataclass(frozen=True)
class VisiblePlanDays:
    meal_days: List[int]
    workout_days: List[int]
    locked_meal_days: int
    locked_workout_days: int


def plan_limits(is_premium: bool) -> PlanLimits:
    if is_premium:
        return PlanLimits(max_meal_days=PREMIUM_MEAL_DAYS, max_workout_days=PREMIUM_WORKOUT_DAYS)
    return PlanLimits(max_meal_days=FREE_MEAL_DAYS, max_workout_days=FREE_WORKOUT_DAYS)


def _first_days(days: Iterable[int], limit: int) -> Tuple[List[int], int]:
    ordered = sorted(set(days))
    return ordered[:limit], max(0, len(ordered) - limit)


def gate_plan_days(
    is_premium: bool,
    available_meal_days: Iterable[int],
    available_workout_days: Iterable[int],
) -> VisiblePlanDays:
    """Visible meal/workout day numbers (ascending) plus how many stay locked."""
    limits = plan_limits(is_premium)
    meal_days, locked_meals = _first_days(available_meal_days, limits.max_meal_days)
    workout_days, locked_workouts = _first_days(available_workout_days, limits.max_workout_days)
    return VisiblePlanDays(
        meal_days=meal_days,
        workout_days=workout_days,
        locked_meal_days=locked_meals,
        locked_workout_days=locked_workouts,
    )


def days_to_generate(is_premium: bool, training_days: int) -> Tuple[int, int]:
    """
    (meal_days, workout_days) to request from the plan generator.

    Premium users get a full week of meals and one workout per training day;
    free users only get what they are allowed to see.
    """
    limits = plan_limits(is_premium)
    workout_days = min(max(int(training_days), 1), limits.max_workout_days)
    return limits.max_meal_days, workout_days
