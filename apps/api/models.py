from sqlalchemy import Column, Integer, Boolean, CheckConstraint, Float, Date, DateTime, ForeignKey, Text, Index, UniqueConstraint, JSON, Uuid
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from core.database import Base
import uuid


class User(Base):
    __tablename__ = "app_user"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    email = Column(Text, unique=True, nullable=False)
    password_hash = Column(Text, nullable=False)
    display_name = Column(Text, nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)

    profile = relationship("UserProfile", back_populates="user", uselist=False)

    @property
    def is_premium(self) -> bool:
        return bool(self.profile is not None and self.profile.is_premium)


class UserProfile(Base):
    """
    Onboarding answers plus the premium entitlement flag.

    Goal/sex/equipment are stored in their canonical vocabulary
    (see services.macro_calculator / services.plan_generation).
    `is_premium` is only ever set to True by the payment state machine.
    """

    __tablename__ = "user_profile"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid(as_uuid=True), ForeignKey("app_user.id"), nullable=False, unique=True, index=True)

    weight_kg = Column(Float, nullable=False)
    height_cm = Column(Float, nullable=False)
    age_years = Column(Integer, nullable=False)
    sex = Column(Text, nullable=False)  # male | female
    goal = Column(Text, nullable=False)  # hypertrophy | definition | fat_loss
    training_days = Column(Integer, nullable=False, default=3)
    equipment = Column(Text, nullable=False, default="full_gym")
    weekly_budget = Column(Float, nullable=False, default=300)

    is_premium = Column(Boolean, default=False, nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    user = relationship("User", back_populates="profile")

    __table_args__ = (
        CheckConstraint("weight_kg > 0", name="ck_user_profile_weight_positive"),
        CheckConstraint("height_cm > 0", name="ck_user_profile_height_positive"),
        CheckConstraint("age_years > 0", name="ck_user_profile_age_positive"),
    )


class MealPlanItem(Base):
    """One meal of one generated plan day."""

    __tablename__ = "meal_plan_item"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid(as_uuid=True), ForeignKey("app_user.id"), nullable=False, index=True)
    day = Column(Integer, nullable=False)
    position = Column(Integer, nullable=False, default=0)
    meal_name = Column(Text, nullable=False)
    foods = Column(Text, nullable=False)
    protein = Column(Float, nullable=False, default=0)
    carbs = Column(Float, nullable=False, default=0)
    fats = Column(Float, nullable=False, default=0)
    calories = Column(Float, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    __table_args__ = (
        Index("ix_meal_plan_item_user_day", "user_id", "day"),
    )


class WorkoutPlanItem(Base):
    """One exercise of one generated workout day."""

    __tablename__ = "workout_plan_item"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid(as_uuid=True), ForeignKey("app_user.id"), nullable=False, index=True)
    day = Column(Integer, nullable=False)
    position = Column(Integer, nullable=False, default=0)
    workout_name = Column(Text, nullable=True)
    exercise_name = Column(Text, nullable=False)
    sets = Column(Integer, nullable=False)
    reps = Column(Text, nullable=False)
    rest_s = Column(Integer, nullable=False, default=60)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    __table_args__ = (
        Index("ix_workout_plan_item_user_day", "user_id", "day"),
    )


class ProgressEntry(Base):
    """Daily self-reported progress (one row per user per date)."""

    __tablename__ = "progress_entry"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid(as_uuid=True), ForeignKey("app_user.id"), nullable=False, index=True)
    date = Column(Date, nullable=False)
    weight_kg = Column(Float, nullable=True)
    workout_completed = Column(Boolean, default=False, nullable=False)
    protein_intake = Column(Float, nullable=True)
    carbs_intake = Column(Float, nullable=True)
    fats_intake = Column(Float, nullable=True)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    __table_args__ = (
        UniqueConstraint("user_id", "date", name="uq_progress_entry_user_date"),
    )


class Subscription(Base):
    """
    One payment attempt for a premium plan.

    A user accumulates many rows over time. `status` only moves through the
    payment state machine (services.payment_state_machine); the most recent
    `paid` row is the one reported by the entitlement query.
    """

    __tablename__ = "subscriptions"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid(as_uuid=True), ForeignKey("app_user.id"), nullable=False, index=True)

    plan_id = Column(Text, nullable=False)
    amount_cents = Column(Integer, nullable=False)
    payment_method = Column(Text, nullable=False)  # pix | credit_card | debit_card
    provider = Column(Text, nullable=False, default="mercadopago")
    provider_payment_id = Column(Text, nullable=False)
    # "{user_id}-{plan_id}-{epoch_ms}", echoed back by the gateway on payments.
    # Shared by every payment attempt made against one card checkout.
    external_reference = Column(Text, nullable=True)

    status = Column(Text, nullable=False, default="pending")  # pending|paid|failed|cancelled|refunded
    paid_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    user = relationship("User", lazy="joined")

    __table_args__ = (
        Index("ix_subscriptions_provider_payment_id", "provider_payment_id", unique=True),
        Index("ix_subscriptions_user_status", "user_id", "status"),
        Index("ix_subscriptions_external_reference", "external_reference"),
    )


class PaymentLog(Base):
    """
    Append-only payment audit trail.

    Every webhook delivery appends exactly one row; only rows with
    event='status_changed' represent state changes.
    """

    __tablename__ = "payment_logs"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid(as_uuid=True), ForeignKey("app_user.id"), nullable=True, index=True)
    subscription_id = Column(Uuid(as_uuid=True), ForeignKey("subscriptions.id"), nullable=True, index=True)
    event = Column(Text, nullable=False, index=True)
    payload = Column(JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
