"""initial schema

Revision ID: 202610180001
Revises:
Create Date: 2026-10-18 00:00:01
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


revision: str = "202610180001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("username", sa.String(length=50), nullable=False),
        sa.Column("password_hash", sa.String(length=255), nullable=False),
        sa.Column("role", sa.String(length=20), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column("last_login", sa.DateTime(), nullable=True),
        sa.Column("failed_login_attempts", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("locked_until", sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("username"),
    )
    op.create_index("idx_users_role", "users", ["role"])
    op.create_index("idx_users_username", "users", ["username"])

    op.create_table(
        "contests",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("title", sa.String(length=200), nullable=False),
        sa.Column("description", sa.Text(), nullable=False, server_default=""),
        sa.Column("start_time", sa.DateTime(), nullable=False),
        sa.Column("end_time", sa.DateTime(), nullable=False),
        sa.Column("duration_minutes", sa.Integer(), nullable=False),
        sa.Column("max_participants", sa.Integer(), nullable=True),
        sa.Column("created_by", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.ForeignKeyConstraint(["created_by"], ["users.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint("end_time > start_time", name="chk_contest_window"),
    )
    op.create_index("idx_contests_start_time", "contests", ["start_time"])

    op.create_table(
        "contest_participants",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("contest_id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("score", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("problems_solved", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("rank", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("joined_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.ForeignKeyConstraint(["contest_id"], ["contests.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("contest_id", "user_id", name="uq_contest_participant"),
        sa.CheckConstraint("score >= 0", name="chk_participant_score"),
        sa.CheckConstraint("problems_solved >= 0", name="chk_participant_solved"),
    )
    op.create_index("idx_participants_contest_score", "contest_participants", ["contest_id", "score"])

    op.create_table(
        "problems",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("contest_id", sa.Integer(), nullable=True),
        sa.Column("title", sa.String(length=200), nullable=False),
        sa.Column("description", sa.Text(), nullable=False, server_default=""),
        sa.Column("difficulty", sa.String(length=10), nullable=False, server_default="Easy"),
        sa.Column("max_score", sa.Integer(), nullable=False, server_default=sa.text("100")),
        sa.Column("time_limit_ms", sa.Integer(), nullable=False, server_default=sa.text("2000")),
        sa.Column("memory_limit_mb", sa.Integer(), nullable=False, server_default=sa.text("256")),
        sa.Column("created_by", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.ForeignKeyConstraint(["contest_id"], ["contests.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["created_by"], ["users.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint("max_score > 0", name="chk_problem_max_score"),
        sa.CheckConstraint("time_limit_ms > 0", name="chk_problem_time_limit"),
        sa.CheckConstraint("memory_limit_mb > 0", name="chk_problem_memory_limit"),
        sa.CheckConstraint("difficulty IN ('Easy', 'Medium', 'Hard')", name="chk_problem_difficulty"),
    )
    op.create_index("idx_problems_contest", "problems", ["contest_id"])

    op.create_table(
        "test_cases",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("problem_id", sa.Integer(), nullable=False),
        sa.Column("input", sa.Text(), nullable=False, server_default=""),
        sa.Column("expected_output", sa.Text(), nullable=False, server_default=""),
        sa.Column("is_sample", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("points", sa.Integer(), nullable=False, server_default=sa.text("10")),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.ForeignKeyConstraint(["problem_id"], ["problems.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint("points >= 0", name="chk_test_case_points"),
    )
    op.create_index("idx_test_cases_problem", "test_cases", ["problem_id"])

    op.create_table(
        "submissions",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("problem_id", sa.Integer(), nullable=False),
        sa.Column("contest_id", sa.Integer(), nullable=True),
        sa.Column("language", sa.String(length=20), nullable=False),
        sa.Column("code", sa.Text(), nullable=False),
        sa.Column("state", sa.String(length=24), nullable=False, server_default="Pending"),
        sa.Column("score", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("passed_count", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("total_count", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("execution_time_ms", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("memory_kb", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("error_type", sa.String(length=40), nullable=True),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("needs_requeue", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("requeued_from_id", sa.Integer(), nullable=True),
        sa.Column("attempt", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.Column("submitted_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column("started_at", sa.DateTime(), nullable=True),
        sa.Column("decided_at", sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["problem_id"], ["problems.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["contest_id"], ["contests.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["requeued_from_id"], ["submissions.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint("score >= 0", name="chk_score_non_negative"),
        sa.CheckConstraint("execution_time_ms >= 0", name="chk_execution_time"),
        sa.CheckConstraint("memory_kb >= 0", name="chk_memory_kb"),
        sa.CheckConstraint("attempt >= 1", name="chk_attempt"),
        sa.CheckConstraint(
            "state IN ('Pending', 'Judging', 'Accepted', 'WrongAnswer', 'RuntimeError', "
            "'TimeLimitExceeded', 'CompileError', 'InternalError')",
            name="chk_state",
        ),
    )
    op.create_index("idx_submissions_user", "submissions", ["user_id"])
    op.create_index("idx_submissions_problem", "submissions", ["problem_id"])
    op.create_index("idx_submissions_contest_user", "submissions", ["contest_id", "user_id"])
    op.create_index("idx_submissions_state", "submissions", ["state"])
    op.create_index("idx_submissions_submitted_at", "submissions", ["submitted_at"])

    op.create_table(
        "test_results",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("submission_id", sa.Integer(), nullable=False),
        sa.Column("test_case_id", sa.Integer(), nullable=False),
        sa.Column("verdict", sa.String(length=24), nullable=False),
        sa.Column("passed", sa.Boolean(), nullable=False),
        sa.Column("time_ms", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("memory_kb", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.ForeignKeyConstraint(["submission_id"], ["submissions.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("idx_test_results_submission", "test_results", ["submission_id"])


def downgrade() -> None:
    op.drop_index("idx_test_results_submission", table_name="test_results")
    op.drop_table("test_results")

    for index in (
        "idx_submissions_submitted_at",
        "idx_submissions_state",
        "idx_submissions_contest_user",
        "idx_submissions_problem",
        "idx_submissions_user",
    ):
        op.drop_index(index, table_name="submissions")
    op.drop_table("submissions")

    op.drop_index("idx_test_cases_problem", table_name="test_cases")
    op.drop_table("test_cases")

    op.drop_index("idx_problems_contest", table_name="problems")
    op.drop_table("problems")

    op.drop_index("idx_participants_contest_score", table_name="contest_participants")
    op.drop_table("contest_participants")

    op.drop_index("idx_contests_start_time", table_name="contests")
    op.drop_table("contests")

    op.drop_index("idx_users_username", table_name="users")
    op.drop_index("idx_users_role", table_name="users")
    op.drop_table("users")
