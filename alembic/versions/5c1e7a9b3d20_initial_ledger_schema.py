"""Initial ledger schema: users, missions, submissions, rewards, redemptions, audit, settings

Revision ID: 5c1e7a9b3d20
Revises:
Create Date: 2026-10-17 12:00:00.000000

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = "5c1e7a9b3d20"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps(*names: str) -> list[sa.Column]:
    return [
        sa.Column(name, sa.DateTime(timezone=True), server_default=sa.func.now())
        for name in names
    ]


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), autoincrement=True, primary_key=True),
        sa.Column("email", sa.String(255), nullable=False, unique=True),
        sa.Column("name", sa.String(100), nullable=True),
        sa.Column("ze_tag", sa.String(20), nullable=True, unique=True),
        sa.Column("is_admin", sa.Boolean(), server_default=sa.false()),
        sa.Column("experience", sa.Integer(), server_default="0"),
        sa.Column("ze_coins", sa.Integer(), server_default="0"),
        sa.Column("rank", sa.String(30), server_default="Rookie"),
        sa.Column("rank_icon", sa.String(200), server_default="/images/ranks/rookie.png"),
        sa.Column("progress_to_next_rank", sa.Integer(), server_default="0"),
        sa.Column("next_rank_points", sa.Integer(), server_default="100"),
        sa.Column("current_rank_points", sa.Integer(), server_default="0"),
        *_timestamps("created_at", "updated_at"),
        sa.CheckConstraint("experience >= 0", name="ck_users_experience_nonneg"),
        sa.CheckConstraint("ze_coins >= 0", name="ck_users_ze_coins_nonneg"),
    )
    op.create_index("ix_users_experience_desc", "users", ["experience"])

    op.create_table(
        "missions",
        sa.Column("id", sa.Integer(), autoincrement=True, primary_key=True),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("instructions", sa.Text(), nullable=False, server_default=""),
        sa.Column("category", sa.String(50), nullable=False, server_default="General"),
        sa.Column("difficulty", sa.String(10), nullable=False, server_default="Easy"),
        sa.Column("required_proof_type", sa.String(10), nullable=False, server_default="image"),
        sa.Column("points", sa.Integer(), nullable=False),
        sa.Column("example_image_url", sa.String(500), nullable=True),
        sa.Column("is_time_limited", sa.Boolean(), server_default=sa.false()),
        sa.Column("start_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("end_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("active", sa.Boolean(), server_default=sa.true()),
        sa.Column("featured", sa.Boolean(), server_default=sa.false()),
        sa.Column("max_completions", sa.Integer(), nullable=True),
        sa.Column("current_completions", sa.Integer(), server_default="0"),
        sa.Column("is_deleted", sa.Boolean(), server_default=sa.false()),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("deleted_by", sa.Integer(), nullable=True),
        sa.Column("deactivated_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("deactivated_by", sa.Integer(), nullable=True),
        sa.Column("created_by", sa.Integer(), nullable=True),
        *_timestamps("created_at", "updated_at"),
        sa.CheckConstraint("points >= 0", name="ck_missions_points_nonneg"),
    )
    op.create_index("ix_missions_active_featured", "missions", ["active", "featured"])

    op.create_table(
        "mission_submissions",
        sa.Column("id", sa.Integer(), autoincrement=True, primary_key=True),
        sa.Column(
            "user_id", sa.Integer(),
            sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column(
            "mission_id", sa.Integer(),
            sa.ForeignKey("missions.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column("proof", sa.String(500), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        *_timestamps("submitted_at"),
        sa.Column("remarks", sa.Text(), nullable=True),
        sa.Column("reviewed_by", sa.Integer(), nullable=True),
        sa.Column("reviewed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("reverted_by", sa.Integer(), nullable=True),
        sa.Column("reverted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("revert_reason", sa.Text(), nullable=True),
    )
    op.create_index(
        "ix_submissions_one_open_per_mission",
        "mission_submissions",
        ["user_id", "mission_id"],
        unique=True,
        postgresql_where=sa.text("status IN ('pending', 'approved')"),
    )
    op.create_index(
        "ix_submissions_status_time", "mission_submissions", ["status", "submitted_at"]
    )

    op.create_table(
        "rewards",
        sa.Column("id", sa.Integer(), autoincrement=True, primary_key=True),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("cost", sa.Integer(), nullable=False),
        sa.Column("stock", sa.Integer(), nullable=False),
        sa.Column("required_rank", sa.String(30), server_default="Rookie"),
        sa.Column("exclusive_to_top3", sa.Boolean(), server_default=sa.false()),
        sa.Column("discountable", sa.Boolean(), server_default=sa.true()),
        *_timestamps("created_at"),
        sa.CheckConstraint("cost >= 0", name="ck_rewards_cost_nonneg"),
        sa.CheckConstraint("stock >= 0", name="ck_rewards_stock_nonneg"),
    )

    op.create_table(
        "redemption_requests",
        sa.Column("id", sa.Integer(), autoincrement=True, primary_key=True),
        sa.Column(
            "user_id", sa.Integer(),
            sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column("user_name", sa.String(255), nullable=False),
        sa.Column("user_email", sa.String(255), nullable=False),
        sa.Column(
            "reward_id", sa.Integer(),
            sa.ForeignKey("rewards.id", ondelete="SET NULL"), nullable=True,
        ),
        sa.Column("reward_name", sa.String(200), nullable=False),
        sa.Column("reward_cost", sa.Integer(), nullable=False),
        sa.Column("contact_name", sa.String(200), nullable=False),
        sa.Column("contact_email", sa.String(255), nullable=False),
        sa.Column("contact_phone", sa.String(40), nullable=False),
        sa.Column("address", sa.Text(), nullable=False),
        sa.Column("additional_notes", sa.Text(), nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("admin_notes", sa.Text(), nullable=True),
        sa.Column("processed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("processed_by", sa.Integer(), nullable=True),
        sa.Column("refunded_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("idempotency_key", sa.String(100), nullable=True),
        *_timestamps("created_at", "updated_at"),
        sa.UniqueConstraint("user_id", "idempotency_key", name="uq_redemptions_user_idem_key"),
    )
    op.create_index(
        "ix_redemptions_user_time", "redemption_requests", ["user_id", "created_at"]
    )
    op.create_index(
        "ix_redemptions_status_time", "redemption_requests", ["status", "created_at"]
    )

    op.create_table(
        "admin_log",
        sa.Column("id", sa.Integer(), autoincrement=True, primary_key=True),
        sa.Column("actor_id", sa.Integer(), nullable=False),
        sa.Column("action_type", sa.String(50), nullable=False),
        sa.Column("target_table", sa.String(50), nullable=False),
        sa.Column("target_id", sa.String(100), nullable=True),
        sa.Column("before_snapshot", postgresql.JSONB(), nullable=True),
        sa.Column("after_snapshot", postgresql.JSONB(), nullable=True),
        sa.Column("reason", sa.Text(), nullable=True),
        *_timestamps("timestamp"),
    )
    op.create_index("ix_admin_log_actor_time", "admin_log", ["actor_id", "timestamp"])
    op.create_index(
        "ix_admin_log_target", "admin_log", ["target_table", "target_id", "timestamp"]
    )

    op.create_table(
        "settings",
        sa.Column("key", sa.String(100), primary_key=True),
        sa.Column("value_json", sa.Text(), nullable=False),
        sa.Column("category", sa.String(50), nullable=False, server_default="general"),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("updated_by", sa.String(255), nullable=True),
        *_timestamps("updated_at"),
    )
    op.create_index("ix_settings_category", "settings", ["category"])


def downgrade() -> None:
    op.drop_table("settings")
    op.drop_table("admin_log")
    op.drop_table("redemption_requests")
    op.drop_table("rewards")
    op.drop_table("mission_submissions")
    op.drop_table("missions")
    op.drop_table("users")
