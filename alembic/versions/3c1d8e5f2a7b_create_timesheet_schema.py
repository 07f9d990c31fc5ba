"""Create timesheet schema.

Revision ID: 3c1d8e5f2a7b
Revises:
Create Date: 2026-03-02 09:00:00.000000
"""

from collections.abc import Sequence

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "3c1d8e5f2a7b"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

role_enum = sa.Enum("ADMIN", "EMPLOYEE", name="role")
status_enum = sa.Enum("DRAFT", "SUBMITTED", "APPROVED", "REJECTED", name="timesheetstatus")
day_of_week_enum = sa.Enum("MONDAY", "TUESDAY", "WEDNESDAY", "THURSDAY", "FRIDAY", name="dayofweek")
day_type_enum = sa.Enum("REGULAR", "VACATION", "SICK", "HOLIDAY", name="daytype")


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("full_name", sa.String(length=120), nullable=False),
        sa.Column("hashed_password", sa.String(length=255), nullable=False),
        sa.Column("role", role_enum, nullable=False),
        sa.Column("active", sa.Boolean(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)

    op.create_table(
        "pay_periods",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.Column("end_date", sa.Date(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.UniqueConstraint("start_date", "end_date", name="uq_pay_periods_range"),
    )
    op.create_index("ix_pay_periods_start_date", "pay_periods", ["start_date"])
    op.create_index("ix_pay_periods_end_date", "pay_periods", ["end_date"])

    op.create_table(
        "timesheets",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("pay_period_id", sa.Integer(), sa.ForeignKey("pay_periods.id"), nullable=False),
        sa.Column("status", status_enum, nullable=False),
        sa.Column("vacation_hours", sa.Float(), nullable=False),
        sa.Column("submitted_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=True),
        sa.UniqueConstraint("user_id", "pay_period_id", name="uq_timesheets_user_period"),
    )
    op.create_index("ix_timesheets_user_id", "timesheets", ["user_id"])
    op.create_index("ix_timesheets_pay_period_id", "timesheets", ["pay_period_id"])

    op.create_table(
        "timesheet_weeks",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("timesheet_id", sa.Integer(), sa.ForeignKey("timesheets.id"), nullable=False),
        sa.Column("week_number", sa.Integer(), nullable=False),
        sa.Column("extra_hours", sa.Float(), nullable=False),
        sa.UniqueConstraint("timesheet_id", "week_number", name="uq_timesheet_weeks_number"),
    )
    op.create_index("ix_timesheet_weeks_timesheet_id", "timesheet_weeks", ["timesheet_id"])

    op.create_table(
        "timesheet_days",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("week_id", sa.Integer(), sa.ForeignKey("timesheet_weeks.id"), nullable=False),
        sa.Column("day_of_week", day_of_week_enum, nullable=False),
        sa.Column("day_type", day_type_enum, nullable=False),
        sa.Column("start_time", sa.String(length=5), nullable=True),
        sa.Column("end_time", sa.String(length=5), nullable=True),
        sa.Column("lunch_start_time", sa.String(length=5), nullable=True),
        sa.Column("lunch_end_time", sa.String(length=5), nullable=True),
        sa.Column("total_hours", sa.Float(), nullable=False),
        sa.UniqueConstraint("week_id", "day_of_week", name="uq_timesheet_days_weekday"),
    )
    op.create_index("ix_timesheet_days_week_id", "timesheet_days", ["week_id"])

    op.create_table(
        "app_config",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("key", sa.String(length=80), nullable=False, unique=True),
        sa.Column("value", sa.Text(), nullable=False),
    )


def downgrade() -> None:
    op.drop_table("app_config")
    op.drop_index("ix_timesheet_days_week_id", table_name="timesheet_days")
    op.drop_table("timesheet_days")
    op.drop_index("ix_timesheet_weeks_timesheet_id", table_name="timesheet_weeks")
    op.drop_table("timesheet_weeks")
    op.drop_index("ix_timesheets_pay_period_id", table_name="timesheets")
    op.drop_index("ix_timesheets_user_id", table_name="timesheets")
    op.drop_table("timesheets")
    op.drop_index("ix_pay_periods_end_date", table_name="pay_periods")
    op.drop_index("ix_pay_periods_start_date", table_name="pay_periods")
    op.drop_table("pay_periods")
    op.drop_index("ix_users_email", table_name="users")
    op.drop_table("users")
