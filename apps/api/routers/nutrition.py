"""
Nutrition API Endpoints

Macro calculator (public) and the caller's daily targets.
"""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from core.database import get_db
from core.auth import get_current_user
from core.exceptions import InvalidInput, ValidationError
from models import User
from schemas import MacroCalculationRequest, MacroCalculationResponse, MacroTargetsResponse
from routers.onboarding import get_profile_or_404
from services.macro_calculator import (
    BodyMetrics,
    calculate_bmr,
    calculate_macros,
    calculate_tdee,
    macros_for_profile,
    parse_goal,
    parse_sex,
)

router = APIRouter(prefix="/v1", tags=["nutrition"])


@router.post("/nutrition/calculate", response_model=MacroCalculationResponse)
def calculate(payload: MacroCalculationRequest):
    """
    Daily calorie and macro targets for arbitrary body metrics.

    No auth required: the landing page uses it before signup.
    """
    try:
        metrics = BodyMetrics(
            weight_kg=payload.weight_kg,
            height_cm=payload.height_cm,
            age_years=payload.age_years,
            sex=parse_sex(payload.sex),
        )
        goal = parse_goal(payload.goal)
        targets = calculate_macros(metrics, goal)
        bmr = calculate_bmr(metrics)
    except InvalidInput as e:
        raise ValidationError(str(e), field=e.field)

    return {
        "bmr": round(bmr, 1),
        "tdee": round(calculate_tdee(metrics), 1),
        "targets": targets.to_dict(),
    }


@router.get("/nutrition/targets", response_model=MacroTargetsResponse)
def targets(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    profile = get_profile_or_404(db, current_user)
    return macros_for_profile(profile).to_dict()
