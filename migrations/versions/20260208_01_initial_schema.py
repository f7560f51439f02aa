"""Initial workout coach schema."""
from __future__ import annotations

from alembic import op
import sqlalchemy as sa


revision = "20260208_01"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("email", sa.String(length=320), nullable=False, unique=True),
        sa.Column("garmin_connected", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("encrypted_credential", sa.LargeBinary(), nullable=True),
        sa.Column("last_sync_at", sa.DateTime(), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(),
            nullable=False,
            server_default=sa.text("CURRENT_TIMESTAMP"),
        ),
    )

    op.create_table(
        "activities",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("garmin_activity_id", sa.BigInteger(), nullable=True, unique=True),
        sa.Column("activity_date", sa.DateTime(), nullable=True),
        sa.Column("activity_name", sa.Text(), nullable=True),
        sa.Column("activity_type", sa.String(length=100), nullable=True),
        sa.Column("activity_description", sa.Text(), nullable=True),
        sa.Column("distance_meters", sa.Float(), nullable=True),
        sa.Column("duration_seconds", sa.Integer(), nullable=True),
        sa.Column("average_pace_seconds_per_km", sa.Integer(), nullable=True),
        sa.Column("split_summaries_json", sa.JSON(), nullable=True),
        sa.Column("average_hr_bpm", sa.Integer(), nullable=True),
        sa.Column("max_hr_bpm", sa.Integer(), nullable=True),
        sa.Column("hr_time_in_zone1", sa.Integer(), nullable=True),
        sa.Column("hr_time_in_zone2", sa.Integer(), nullable=True),
        sa.Column("hr_time_in_zone3", sa.Integer(), nullable=True),
        sa.Column("hr_time_in_zone4", sa.Integer(), nullable=True),
        sa.Column("hr_time_in_zone5", sa.Integer(), nullable=True),
        sa.Column("aerobic_training_effect", sa.Float(), nullable=True),
        sa.Column("anaerobic_training_effect", sa.Float(), nullable=True),
        sa.Column("training_effect_label", sa.String(length=100), nullable=True),
        sa.Column("elevation_gain", sa.Float(), nullable=True),
        sa.Column("elevation_loss", sa.Float(), nullable=True),
        sa.Column("location_name", sa.Text(), nullable=True),
    )
    op.create_index("idx_activities_user_date", "activities", ["user_id", "activity_date"], unique=False)

    op.create_table(
        "daily_health_readings",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("reading_date", sa.Date(), nullable=False),
        sa.Column("sleep_score", sa.Integer(), nullable=True),
        sa.Column("total_sleep_seconds", sa.Integer(), nullable=True),
        sa.Column("sleep_stress", sa.Integer(), nullable=True),
        sa.Column("sleep_score_garmin_feedback", sa.Text(), nullable=True),
        sa.Column("avg_overnight_hrv", sa.Float(), nullable=True),
        sa.Column("hrv_status", sa.String(length=50), nullable=True),
        sa.Column("hrv_7day_avg", sa.Float(), nullable=True),
        sa.Column("resting_hr", sa.Integer(), nullable=True),
        sa.Column("resting_hr_7day_avg", sa.Integer(), nullable=True),
        sa.Column("body_battery_start", sa.Integer(), nullable=True),
        sa.Column("body_battery_end", sa.Integer(), nullable=True),
        sa.Column(
            "data_synced_at",
            sa.DateTime(),
            nullable=False,
            server_default=sa.text("CURRENT_TIMESTAMP"),
        ),
        sa.UniqueConstraint("user_id", "reading_date", name="uq_daily_health_user_date"),
    )
    op.create_index(
        "idx_daily_health_user_date",
        "daily_health_readings",
        ["user_id", "reading_date"],
        unique=False,
    )

    op.create_table(
        "user_running_fitness",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "user_id",
            sa.Integer(),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
            unique=True,
        ),
        sa.Column("vo2_max", sa.Integer(), nullable=True),
        sa.Column("predicted_5k_seconds", sa.Integer(), nullable=True),
        sa.Column("predicted_10k_seconds", sa.Integer(), nullable=True),
        sa.Column("predicted_half_seconds", sa.Integer(), nullable=True),
        sa.Column("predicted_marathon_seconds", sa.Integer(), nullable=True),
        sa.Column("race_predictions_last_update", sa.Date(), nullable=True),
        sa.Column("easy_pace_low", sa.Integer(), nullable=True),
        sa.Column("easy_pace_high", sa.Integer(), nullable=True),
        sa.Column("tempo_pace", sa.Integer(), nullable=True),
        sa.Column("threshold_pace", sa.Integer(), nullable=True),
        sa.Column("interval_pace", sa.Integer(), nullable=True),
        sa.Column("repetition_pace", sa.Integer(), nullable=True),
        sa.Column("long_run_pace", sa.Integer(), nullable=True),
        sa.Column("weekly_volume_avg_km", sa.Float(), nullable=True),
        sa.Column("longest_run_km", sa.Float(), nullable=True),
        sa.Column("running_distance_avg_km", sa.Float(), nullable=True),
        sa.Column("last_updated", sa.DateTime(), nullable=True),
        sa.Column("data_source", sa.String(length=50), nullable=False, server_default="garmin"),
    )

    op.create_table(
        "workouts",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("workout_type", sa.String(length=50), nullable=False),
        sa.Column("title", sa.String(length=200), nullable=False),
        sa.Column("ai_description", sa.Text(), nullable=True),
        sa.Column("workout_json", sa.JSON(), nullable=False),
        sa.Column("total_distance_km", sa.Float(), nullable=True),
        sa.Column("estimated_duration_minutes", sa.Integer(), nullable=True),
        sa.Column("user_prompt", sa.Text(), nullable=True),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="generated"),
        sa.Column("scheduled_date", sa.Date(), nullable=True),
        sa.Column("garmin_workout_id", sa.BigInteger(), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(),
            nullable=False,
            server_default=sa.text("CURRENT_TIMESTAMP"),
        ),
    )
    op.create_index("ix_workouts_user_id", "workouts", ["user_id"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_workouts_user_id", table_name="workouts")
    op.drop_table("workouts")
    op.drop_table("user_running_fitness")
    op.drop_index("idx_daily_health_user_date", table_name="daily_health_readings")
    op.drop_table("daily_health_readings")
    op.drop_index("idx_activities_user_date", table_name="activities")
    op.drop_table("activities")
    op.drop_table("users")
