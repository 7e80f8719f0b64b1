"""
Onboarding and profile endpoints.

Goal, sex and equipment arrive in either the Portuguese or the English UI
vocabulary and are stored in canonical form.
"""
import logging

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from core.auth import get_current_user
from core.database import get_db
from core.exceptions import ConflictError, InvalidInput, NotFoundError, ValidationError
from models import User, UserProfile
from schemas import (
    ImageAnalysisRequest,
    ImageAnalysisResponse,
    ProfileCreate,
    ProfileUpdate,
    ProfileWithTargetsResponse,
)
from services.body_analysis import analyze_body_image
from services.macro_calculator import macros_for_profile, parse_goal, parse_sex
from services.payment_state_machine import has_premium_purchase
from services.plan_generation import parse_equipment

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1", tags=["onboarding"])


def _canonical(field: str, value):
    try:
        if field == "goal":
            return parse_goal(value).value
        if field == "sex":
            return parse_sex(value).value
        if field == "equipment":
            return parse_equipment(value).value
    except InvalidInput as e:
        raise ValidationError(str(e), field=e.field)
    return value


def _with_targets(profile: UserProfile) -> dict:
    return {"profile": profile, "targets": macros_for_profile(profile).to_dict()}


def get_profile_or_404(db: Session, user: User) -> UserProfile:
    profile = db.query(UserProfile).filter(UserProfile.user_id == user.id).first()
    if profile is None:
        raise NotFoundError("Profile", str(user.id))
    return profile


@router.post("/onboarding/profile", response_model=ProfileWithTargetsResponse, status_code=status.HTTP_201_CREATED)
def create_profile(
    request: ProfileCreate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    existing = db.query(UserProfile).filter(UserProfile.user_id == current_user.id).first()
    if existing:
        raise ConflictError("Profile already exists")

    data = request.model_dump()
    for field in ("goal", "sex", "equipment"):
        data[field] = _canonical(field, data[field])

    # A purchase completed before onboarding carries over.
    profile = UserProfile(user_id=current_user.id, is_premium=has_premium_purchase(db, current_user.id), **data)
    db.add(profile)
    db.flush()
    db.refresh(profile)
    logger.info(f"Created profile for user {current_user.id} (goal={profile.goal})")
    return _with_targets(profile)


@router.get("/profile", response_model=ProfileWithTargetsResponse)
def get_profile(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return _with_targets(get_profile_or_404(db, current_user))


@router.patch("/profile", response_model=ProfileWithTargetsResponse)
def update_profile(
    request: ProfileUpdate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Partial update. is_premium is not writable here."""
    profile = get_profile_or_404(db, current_user)
    for field, value in request.model_dump(exclude_unset=True).items():
        if value is None:
            continue
        setattr(profile, field, _canonical(field, value))
    db.flush()
    db.refresh(profile)
    return _with_targets(profile)


@router.post("/onboarding/analyze-image", response_model=ImageAnalysisResponse)
def analyze_image(
    request: ImageAnalysisRequest,
    current_user: User = Depends(get_current_user),
):
    """Estimate body metrics from a photo to pre-fill onboarding."""
    try:
        result = analyze_body_image(request.image_url)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except RuntimeError as e:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(e))
    return {"success": True, **result}
