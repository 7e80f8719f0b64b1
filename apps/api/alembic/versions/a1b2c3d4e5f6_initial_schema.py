"""initial_schema

Revision ID: a1b2c3d4e5f6
Revises:
Create Date: 2026-10-17

- app_user, user_profile (onboarding answers + premium flag)
- meal_plan_item, workout_plan_item (generated plans)
- progress_entry (one row per user per date)
- subscriptions (one row per payment attempt), payment_logs (audit trail)
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "a1b2c3d4e5f6"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "app_user",
        sa.Column("id", sa.Uuid(), primary_key=True, nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("email", sa.Text(), nullable=False),
        sa.Column("password_hash", sa.Text(), nullable=False),
        sa.Column("display_name", sa.Text(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.UniqueConstraint("email", name="uq_app_user_email"),
    )

    op.create_table(
        "user_profile",
        sa.Column("id", sa.Uuid(), primary_key=True, nullable=False),
        sa.Column("user_id", sa.Uuid(), sa.ForeignKey("app_user.id"), nullable=False),
        sa.Column("weight_kg", sa.Float(), nullable=False),
        sa.Column("height_cm", sa.Float(), nullable=False),
        sa.Column("age_years", sa.Integer(), nullable=False),
        sa.Column("sex", sa.Text(), nullable=False),
        sa.Column("goal", sa.Text(), nullable=False),
        sa.Column("training_days", sa.Integer(), nullable=False, server_default="3"),
        sa.Column("equipment", sa.Text(), nullable=False, server_default="full_gym"),
        sa.Column("weekly_budget", sa.Float(), nullable=False, server_default="300"),
        sa.Column("is_premium", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.CheckConstraint("weight_kg > 0", name="ck_user_profile_weight_positive"),
        sa.CheckConstraint("height_cm > 0", name="ck_user_profile_height_positive"),
        sa.CheckConstraint("age_years > 0", name="ck_user_profile_age_positive"),
    )
    op.create_index("ix_user_profile_user_id", "user_profile", ["user_id"], unique=True)

    op.create_table(
        "meal_plan_item",
        sa.Column("id", sa.Uuid(), primary_key=True, nullable=False),
        sa.Column("user_id", sa.Uuid(), sa.ForeignKey("app_user.id"), nullable=False),
        sa.Column("day", sa.Integer(), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("meal_name", sa.Text(), nullable=False),
        sa.Column("foods", sa.Text(), nullable=False),
        sa.Column("protein", sa.Float(), nullable=False, server_default="0"),
        sa.Column("carbs", sa.Float(), nullable=False, server_default="0"),
        sa.Column("fats", sa.Float(), nullable=False, server_default="0"),
        sa.Column("calories", sa.Float(), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("ix_meal_plan_item_user_id", "meal_plan_item", ["user_id"], unique=False)
    op.create_index("ix_meal_plan_item_user_day", "meal_plan_item", ["user_id", "day"], unique=False)

    op.create_table(
        "workout_plan_item",
        sa.Column("id", sa.Uuid(), primary_key=True, nullable=False),
        sa.Column("user_id", sa.Uuid(), sa.ForeignKey("app_user.id"), nullable=False),
        sa.Column("day", sa.Integer(), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("workout_name", sa.Text(), nullable=True),
        sa.Column("exercise_name", sa.Text(), nullable=False),
        sa.Column("sets", sa.Integer(), nullable=False),
        sa.Column("reps", sa.Text(), nullable=False),
        sa.Column("rest_s", sa.Integer(), nullable=False, server_default="60"),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("ix_workout_plan_item_user_id", "workout_plan_item", ["user_id"], unique=False)
    op.create_index("ix_workout_plan_item_user_day", "workout_plan_item", ["user_id", "day"], unique=False)

    op.create_table(
        "progress_entry",
        sa.Column("id", sa.Uuid(), primary_key=True, nullable=False),
        sa.Column("user_id", sa.Uuid(), sa.ForeignKey("app_user.id"), nullable=False),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("weight_kg", sa.Float(), nullable=True),
        sa.Column("workout_completed", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("protein_intake", sa.Float(), nullable=True),
        sa.Column("carbs_intake", sa.Float(), nullable=True),
        sa.Column("fats_intake", sa.Float(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.UniqueConstraint("user_id", "date", name="uq_progress_entry_user_date"),
    )
    op.create_index("ix_progress_entry_user_id", "progress_entry", ["user_id"], unique=False)

    op.create_table(
        "subscriptions",
        sa.Column("id", sa.Uuid(), primary_key=True, nullable=False),
        sa.Column("user_id", sa.Uuid(), sa.ForeignKey("app_user.id"), nullable=False),
        sa.Column("plan_id", sa.Text(), nullable=False),
        sa.Column("amount_cents", sa.Integer(), nullable=False),
        sa.Column("payment_method", sa.Text(), nullable=False),
        sa.Column("provider", sa.Text(), nullable=False, server_default="mercadopago"),
        sa.Column("provider_payment_id", sa.Text(), nullable=False),
        sa.Column("external_reference", sa.Text(), nullable=True),
        sa.Column("status", sa.Text(), nullable=False, server_default="pending"),
        sa.Column("paid_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("ix_subscriptions_user_id", "subscriptions", ["user_id"], unique=False)
    op.create_index("ix_subscriptions_provider_payment_id", "subscriptions", ["provider_payment_id"], unique=True)
    op.create_index("ix_subscriptions_user_status", "subscriptions", ["user_id", "status"], unique=False)
    op.create_index("ix_subscriptions_external_reference", "subscriptions", ["external_reference"], unique=False)

    op.create_table(
        "payment_logs",
        sa.Column("id", sa.Uuid(), primary_key=True, nullable=False),
        sa.Column("user_id", sa.Uuid(), sa.ForeignKey("app_user.id"), nullable=True),
        sa.Column("subscription_id", sa.Uuid(), sa.ForeignKey("subscriptions.id"), nullable=True),
        sa.Column("event", sa.Text(), nullable=False),
        sa.Column("payload", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("ix_payment_logs_user_id", "payment_logs", ["user_id"], unique=False)
    op.create_index("ix_payment_logs_subscription_id", "payment_logs", ["subscription_id"], unique=False)
    op.create_index("ix_payment_logs_event", "payment_logs", ["event"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_payment_logs_event", table_name="payment_logs")
    op.drop_index("ix_payment_logs_subscription_id", table_name="payment_logs")
    op.drop_index("ix_payment_logs_user_id", table_name="payment_logs")
    op.drop_table("payment_logs")

    op.drop_index("ix_subscriptions_external_reference", table_name="subscriptions")
    op.drop_index("ix_subscriptions_user_status", table_name="subscriptions")
    op.drop_index("ix_subscriptions_provider_payment_id", table_name="subscriptions")
    op.drop_index("ix_subscriptions_user_id", table_name="subscriptions")
    op.drop_table("subscriptions")

    op.drop_index("ix_progress_entry_user_id", table_name="progress_entry")
    op.drop_table("progress_entry")

    op.drop_index("ix_workout_plan_item_user_day", table_name="workout_plan_item")
    op.drop_index("ix_workout_plan_item_user_id", table_name="workout_plan_item")
    op.drop_table("workout_plan_item")

    op.drop_index("ix_meal_plan_item_user_day", table_name="meal_plan_item")
    op.drop_index("ix_meal_plan_item_user_id", table_name="meal_plan_item")
    op.drop_table("meal_plan_item")

    op.drop_index("ix_user_profile_user_id", table_name="user_profile")
    op.drop_table("user_profile")

    op.drop_table("app_user")
