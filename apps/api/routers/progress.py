"""
Daily progress log and the dashboard summary built on top of it.
"""
from datetime import date, timedelta
from typing import List

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from core.auth import get_current_user
from core.database import get_db
from models import ProgressEntry, User
from routers.onboarding import get_profile_or_404
from schemas import DashboardResponse, ProgressCreate, ProgressResponse
from services.macro_calculator import macros_for_profile
from services.progress_feedback import (
    MAX_WEEKS_LOOKBACK,
    completion_rate,
    motivational_message,
    percent_of_target,
    should_increase_intensity,
    weeks_consistent,
)

router = APIRouter(prefix="/v1", tags=["progress"])


@router.post("/progress", response_model=ProgressResponse)
def upsert_progress(
    payload: ProgressCreate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Create or replace the caller's entry for a date (default today)."""
    entry_date = payload.date or date.today()
    entry = (
        db.query(ProgressEntry)
        .filter(ProgressEntry.user_id == current_user.id, ProgressEntry.date == entry_date)
        .first()
    )
    if entry is None:
        entry = ProgressEntry(user_id=current_user.id, date=entry_date)
        db.add(entry)

    for field, value in payload.model_dump(exclude={"date"}).items():
        setattr(entry, field, value)

    db.flush()
    db.refresh(entry)
    return entry


@router.get("/progress", response_model=List[ProgressResponse])
def list_progress(
    days: int = Query(default=7, ge=1, le=365),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    since = date.today() - timedelta(days=days - 1)
    return (
        db.query(ProgressEntry)
        .filter(ProgressEntry.user_id == current_user.id, ProgressEntry.date >= since)
        .order_by(ProgressEntry.date.desc())
        .all()
    )


@router.get("/dashboard", response_model=DashboardResponse)
def dashboard(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    profile = get_profile_or_404(db, current_user)
    targets = macros_for_profile(profile)
    today = date.today()

    since = today - timedelta(days=7 * MAX_WEEKS_LOOKBACK)
    entries = (
        db.query(ProgressEntry)
        .filter(ProgressEntry.user_id == current_user.id, ProgressEntry.date >= since)
        .all()
    )
    today_entry = next((e for e in entries if e.date == today), None)
    workout_dates = [e.date for e in entries if e.workout_completed]

    rate = completion_rate(workout_dates, profile.training_days, today)
    weeks = weeks_consistent(workout_dates, profile.training_days, today)

    latest_weight = next(
        (e.weight_kg for e in sorted(entries, key=lambda e: e.date, reverse=True) if e.weight_kg is not None),
        profile.weight_kg,
    )

    return {
        "weight_kg": latest_weight,
        "targets": targets.to_dict(),
        "today": today_entry,
        "protein_percent": percent_of_target(today_entry.protein_intake if today_entry else None, targets.protein_g),
        "carbs_percent": percent_of_target(today_entry.carbs_intake if today_entry else None, targets.carbs_g),
        "fats_percent": percent_of_target(today_entry.fats_intake if today_entry else None, targets.fats_g),
        "week_completion_rate": rate,
        "weeks_consistent": weeks,
        "motivational_message": motivational_message(rate),
        "increase_intensity": should_increase_intensity(rate, weeks),
        "is_premium": bool(profile.is_premium),
    }
