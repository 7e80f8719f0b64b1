"""
Meal and workout plan endpoints.

Plans are generated from the caller's profile and stored; reads always pass
through the gating policy so free accounts never see more than their limit.
"""
from collections import defaultdict
import logging

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from core.auth import get_current_user
from core.config import settings
from core.database import get_db
from core.exceptions import MalformedResponse
from models import MealPlanItem, User, WorkoutPlanItem
from routers.onboarding import get_profile_or_404
from schemas import PlansResponse
from services import audit_logger
from services.macro_calculator import macros_for_profile, parse_goal
from services.plan_gating import gate_plan_days, plan_limits
from services.plan_generation import (
    generate_meal_plan,
    generate_workout_plan,
    get_openai_client,
    parse_equipment,
    save_meal_plan,
    save_workout_plan,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/plans", tags=["plans"])


def _stored_plans(db: Session, user: User, is_premium: bool) -> dict:
    meals = (
        db.query(MealPlanItem)
        .filter(MealPlanItem.user_id == user.id)
        .order_by(MealPlanItem.day, MealPlanItem.position)
        .all()
    )
    exercises = (
        db.query(WorkoutPlanItem)
        .filter(WorkoutPlanItem.user_id == user.id)
        .order_by(WorkoutPlanItem.day, WorkoutPlanItem.position)
        .all()
    )

    meals_by_day = defaultdict(list)
    for m in meals:
        meals_by_day[m.day].append(m)
    exercises_by_day = defaultdict(list)
    for e in exercises:
        exercises_by_day[e.day].append(e)

    visible = gate_plan_days(is_premium, meals_by_day.keys(), exercises_by_day.keys())

    meal_plan = [
        {
            "day": day,
            "meals": [
                {
                    "name": m.meal_name,
                    "foods": m.foods,
                    "protein": m.protein,
                    "carbs": m.carbs,
                    "fats": m.fats,
                    "calories": m.calories,
                }
                for m in meals_by_day[day]
            ],
        }
        for day in visible.meal_days
    ]
    workout_plan = [
        {
            "day": day,
            "name": exercises_by_day[day][0].workout_name,
            "exercises": [
                {"name": e.exercise_name, "sets": e.sets, "reps": e.reps, "rest_s": e.rest_s, "notes": e.notes}
                for e in exercises_by_day[day]
            ],
        }
        for day in visible.workout_days
    ]

    limits = plan_limits(is_premium)
    return {
        "is_premium": is_premium,
        "max_meal_days": limits.max_meal_days,
        "max_workout_days": limits.max_workout_days,
        "meal_plan": meal_plan,
        "workout_plan": workout_plan,
        "locked_meal_days": visible.locked_meal_days,
        "locked_workout_days": visible.locked_workout_days,
    }


@router.get("", response_model=PlansResponse)
def get_plans(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    profile = get_profile_or_404(db, current_user)
    return _stored_plans(db, current_user, bool(profile.is_premium))


@router.post("/generate", response_model=PlansResponse)
def generate_plans(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    Generate (and replace) the caller's meal and workout plans.

    503 when OpenAI is not configured or unreachable, 502 when its output
    could not be decoded. Stored plans are untouched on failure.
    """
    profile = get_profile_or_404(db, current_user)
    is_premium = bool(profile.is_premium)
    goal = parse_goal(profile.goal)

    try:
        client = get_openai_client()
        meal_days = generate_meal_plan(
            macros_for_profile(profile), goal, profile.weekly_budget, is_premium, client=client
        )
        workout_days = generate_workout_plan(
            goal, profile.training_days, parse_equipment(profile.equipment), is_premium, client=client
        )
    except MalformedResponse as e:
        logger.error(f"Plan generation returned malformed output for user {current_user.id}: {e}")
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail="Plan generator returned an invalid plan")
    except RuntimeError as e:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(e))

    save_meal_plan(db, current_user.id, meal_days)
    save_workout_plan(db, current_user.id, workout_days)
    audit_logger.log_plan_generated(current_user.id, len(meal_days), len(workout_days), settings.OPENAI_PLAN_MODEL)

    return _stored_plans(db, current_user, is_premium)
