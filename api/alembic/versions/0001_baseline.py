"""baseline streak schema

Revision ID: 0001_baseline
Revises:
Create Date: 2026-10-19

Users, first-time accepted submissions and per-day streak history.
"""

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision = "0001_baseline"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.String(255), nullable=False),
        sa.Column("leetcode_username", sa.String(255), nullable=False),
        sa.Column("current_streak", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("longest_streak", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_problem_solved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("timezone", sa.String(64), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("leetcode_username", name="uq_users_leetcode_username"),
    )

    op.create_table(
        "user_submissions",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("user_id", sa.String(255), nullable=False),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("title_slug", sa.String(255), nullable=False),
        sa.Column("status_display", sa.String(50), nullable=False),
        sa.Column("submitted_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("language", sa.String(50), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("user_id", "title_slug", name="uq_user_submission_slug"),
    )
    op.create_index(
        "ix_user_submissions_user_submitted",
        "user_submissions",
        ["user_id", "submitted_at"],
    )

    op.create_table(
        "streak_history",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("user_id", sa.String(255), nullable=False),
        sa.Column("local_date", sa.Date(), nullable=False),
        sa.Column("problems_solved", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("first_problem_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("user_id", "local_date", name="uq_streak_history_user_date"),
    )


def downgrade() -> None:
    op.drop_table("streak_history")
    op.drop_index("ix_user_submissions_user_submitted", table_name="user_submissions")
    op.drop_table("user_submissions")
    op.drop_table("users")
