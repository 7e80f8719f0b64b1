from pydantic import BaseModel, ConfigDict, Field
from datetime import datetime, date as Date
from uuid import UUID
from typing import Optional, List, Dict, Any


class ProfileCreate(BaseModel):
    """Onboarding answers. Goal/sex/equipment accept both UI vocabularies."""
    weight_kg: float = Field(ge=30, le=300)
    height_cm: float = Field(ge=100, le=250)
    age_years: int = Field(ge=10, le=120)
    sex: str
    goal: str
    training_days: int = Field(default=3, ge=1, le=7)
    equipment: str = "full_gym"
    weekly_budget: float = Field(default=300, ge=0)


class ProfileUpdate(BaseModel):
    weight_kg: Optional[float] = Field(default=None, ge=30, le=300)
    height_cm: Optional[float] = Field(default=None, ge=100, le=250)
    age_years: Optional[int] = Field(default=None, ge=10, le=120)
    sex: Optional[str] = None
    goal: Optional[str] = None
    training_days: Optional[int] = Field(default=None, ge=1, le=7)
    equipment: Optional[str] = None
    weekly_budget: Optional[float] = Field(default=None, ge=0)


class ProfileResponse(BaseModel):
    id: UUID
    user_id: UUID
    weight_kg: float
    height_cm: float
    age_years: int
    sex: str
    goal: str
    training_days: int
    equipment: str
    weekly_budget: float
    is_premium: bool
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class MacroTargetsResponse(BaseModel):
    calories: int
    protein_g: int
    carbs_g: int
    fats_g: int


class ProfileWithTargetsResponse(BaseModel):
    profile: ProfileResponse
    targets: MacroTargetsResponse


class MacroCalculationRequest(BaseModel):
    """Public calculator input; range checks happen in the calculator."""
    weight_kg: float
    height_cm: float
    age_years: float
    sex: str
    goal: str


class MacroCalculationResponse(BaseModel):
    bmr: float
    tdee: float
    targets: MacroTargetsResponse


class ImageAnalysisRequest(BaseModel):
    image_url: str


class ImageAnalysisResponse(BaseModel):
    success: bool = True
    analysis: Optional[Dict[str, Any]] = None
    raw_analysis: Optional[str] = None
    raw_text: str
    model_used: str
    tokens_used: int = 0
    suggested_profile: Dict[str, Any] = Field(default_factory=dict)


class MealResponse(BaseModel):
    name: str
    foods: str
    protein: float
    carbs: float
    fats: float
    calories: float


class MealDayResponse(BaseModel):
    day: int
    meals: List[MealResponse]


class ExerciseResponse(BaseModel):
    name: str
    sets: int
    reps: str
    rest_s: int
    notes: Optional[str] = None


class WorkoutDayResponse(BaseModel):
    day: int
    name: Optional[str] = None
    exercises: List[ExerciseResponse]


class PlansResponse(BaseModel):
    is_premium: bool
    max_meal_days: int
    max_workout_days: int
    meal_plan: List[MealDayResponse]
    workout_plan: List[WorkoutDayResponse]
    locked_meal_days: int = 0
    locked_workout_days: int = 0


class ProgressCreate(BaseModel):
    date: Optional[Date] = None  # defaults to today
    weight_kg: Optional[float] = Field(default=None, gt=0, le=500)
    workout_completed: bool = False
    protein_intake: Optional[float] = Field(default=None, ge=0)
    carbs_intake: Optional[float] = Field(default=None, ge=0)
    fats_intake: Optional[float] = Field(default=None, ge=0)
    notes: Optional[str] = None


class ProgressResponse(BaseModel):
    id: UUID
    date: Date
    weight_kg: Optional[float] = None
    workout_completed: bool
    protein_intake: Optional[float] = None
    carbs_intake: Optional[float] = None
    fats_intake: Optional[float] = None
    notes: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class DashboardResponse(BaseModel):
    weight_kg: Optional[float] = None
    targets: MacroTargetsResponse
    today: Optional[ProgressResponse] = None
    protein_percent: Optional[float] = None
    carbs_percent: Optional[float] = None
    fats_percent: Optional[float] = None
    week_completion_rate: float
    weeks_consistent: int
    motivational_message: str
    increase_intensity: bool
    is_premium: bool


class SubscriptionResponse(BaseModel):
    id: UUID
    status: str
    plan_id: str
    amount_cents: int
    payment_method: str
    created_at: Optional[datetime] = None
    paid_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class SubscriptionStatusResponse(BaseModel):
    success: bool = True
    is_premium: bool
    subscription: Optional[SubscriptionResponse] = None
