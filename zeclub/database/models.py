"""
zeclub.database.models — SQLAlchemy 2.0 Data Models
====================================================

Tables:
- users               — Members with their two ledgers (experience, ze_coins)
- missions            — Point-awarding task templates
- mission_submissions — A member's proof against a mission, verified by admins
- rewards             — Redeemable catalogue items
- redemption_requests — Fulfilment records created by a redemption
- admin_log           — Append-only audit trail
- settings            — Key-value site settings
"""

from __future__ import annotations

import enum
from datetime import datetime

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
    text,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


# ---------------------------------------------------------------------------
# Base
# ---------------------------------------------------------------------------
class Base(DeclarativeBase):
    """Shared base for all ZE Club ORM models."""


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class SubmissionStatus(enum.StrEnum):
    """Lifecycle of a mission submission."""
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class RedemptionStatus(enum.StrEnum):
    """Fulfilment lifecycle of a redemption request."""
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


# Requests in these states still hold coins the member has spent.
ACTIVE_REDEMPTION_STATUSES: tuple[str, ...] = (
    RedemptionStatus.PENDING.value,
    RedemptionStatus.PROCESSING.value,
    RedemptionStatus.COMPLETED.value,
)


class MissionDifficulty(enum.StrEnum):
    EASY = "Easy"
    MEDIUM = "Medium"
    HARD = "Hard"


class ProofType(enum.StrEnum):
    IMAGE = "image"
    VIDEO = "video"
    BOTH = "both"


class AdminActionType(enum.StrEnum):
    """Categories of admin mutations recorded in admin_log."""
    CREATE = "CREATE"
    UPDATE = "UPDATE"
    DELETE = "DELETE"
    APPROVE = "APPROVE"
    REJECT = "REJECT"
    REVERT = "REVERT"
    REFUND = "REFUND"
    ROLE_CHANGE = "ROLE_CHANGE"


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------
class User(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    name: Mapped[str | None] = mapped_column(String(100), default=None)
    ze_tag: Mapped[str | None] = mapped_column(String(20), unique=True, default=None)
    is_admin: Mapped[bool] = mapped_column(Boolean, default=False)

    # Lifetime points; drives rank and leaderboard, never spent
    experience: Mapped[int] = mapped_column(Integer, default=0)
    # Spendable balance
    ze_coins: Mapped[int] = mapped_column(Integer, default=0)

    rank: Mapped[str] = mapped_column(String(30), default="Rookie")
    rank_icon: Mapped[str] = mapped_column(
        String(200), default="/images/ranks/rookie.png"
    )
    progress_to_next_rank: Mapped[int] = mapped_column(Integer, default=0)
    next_rank_points: Mapped[int] = mapped_column(Integer, default=100)
    current_rank_points: Mapped[int] = mapped_column(Integer, default=0)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    submissions: Mapped[list[MissionSubmission]] = relationship(
        back_populates="user", cascade="all, delete-orphan"
    )

    __table_args__ = (
        CheckConstraint("experience >= 0", name="ck_users_experience_nonneg"),
        CheckConstraint("ze_coins >= 0", name="ck_users_ze_coins_nonneg"),
        Index("ix_users_experience_desc", "experience"),
    )

    @property
    def display_name(self) -> str:
        return self.name or self.ze_tag or self.email or "Unknown User"

    def __repr__(self) -> str:
        return f"<User id={self.id} tag={self.ze_tag!r} rank={self.rank!r}>"


# ---------------------------------------------------------------------------
# Missions
# ---------------------------------------------------------------------------
class Mission(Base):
    __tablename__ = "missions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    instructions: Mapped[str] = mapped_column(Text, nullable=False, default="")
    category: Mapped[str] = mapped_column(String(50), nullable=False, default="General")
    difficulty: Mapped[str] = mapped_column(
        String(10), nullable=False, default=MissionDifficulty.EASY.value
    )
    required_proof_type: Mapped[str] = mapped_column(
        String(10), nullable=False, default=ProofType.IMAGE.value
    )
    points: Mapped[int] = mapped_column(Integer, nullable=False)
    example_image_url: Mapped[str | None] = mapped_column(String(500), default=None)

    # Time limit
    is_time_limited: Mapped[bool] = mapped_column(Boolean, default=False)
    start_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), default=None)
    end_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), default=None)

    # Status
    active: Mapped[bool] = mapped_column(Boolean, default=True)
    featured: Mapped[bool] = mapped_column(Boolean, default=False)
    max_completions: Mapped[int | None] = mapped_column(Integer, default=None)
    current_completions: Mapped[int] = mapped_column(Integer, default=0)

    # Soft delete / deactivation audit
    is_deleted: Mapped[bool] = mapped_column(Boolean, default=False)
    deleted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), default=None)
    deleted_by: Mapped[int | None] = mapped_column(Integer, default=None)
    deactivated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), default=None
    )
    deactivated_by: Mapped[int | None] = mapped_column(Integer, default=None)

    created_by: Mapped[int | None] = mapped_column(Integer, default=None)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (
        CheckConstraint("points >= 0", name="ck_missions_points_nonneg"),
        Index("ix_missions_active_featured", "active", "featured"),
    )

    def __repr__(self) -> str:
        return f"<Mission id={self.id} name={self.name!r} points={self.points}>"


# ---------------------------------------------------------------------------
# MissionSubmission: one claim by a member against a mission
# ---------------------------------------------------------------------------
class MissionSubmission(Base):
    __tablename__ = "mission_submissions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    mission_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("missions.id", ondelete="CASCADE"), nullable=False
    )
    proof: Mapped[str] = mapped_column(String(500), nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=SubmissionStatus.PENDING.value
    )
    submitted_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    remarks: Mapped[str | None] = mapped_column(Text, default=None)
    reviewed_by: Mapped[int | None] = mapped_column(Integer, default=None)
    reviewed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), default=None)
    reverted_by: Mapped[int | None] = mapped_column(Integer, default=None)
    reverted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), default=None)
    revert_reason: Mapped[str | None] = mapped_column(Text, default=None)

    user: Mapped[User] = relationship(back_populates="submissions")
    mission: Mapped[Mission] = relationship()

    __table_args__ = (
        # At most one open (pending/approved) claim per member per mission
        Index(
            "ix_submissions_one_open_per_mission",
            "user_id",
            "mission_id",
            unique=True,
            postgresql_where=text("status IN ('pending', 'approved')"),
            sqlite_where=text("status IN ('pending', 'approved')"),
        ),
        Index("ix_submissions_status_time", "status", "submitted_at"),
    )

    def __repr__(self) -> str:
        return (
            f"<MissionSubmission id={self.id} user={self.user_id} "
            f"mission={self.mission_id} status={self.status}>"
        )


# ---------------------------------------------------------------------------
# Rewards
# ---------------------------------------------------------------------------
class Reward(Base):
    __tablename__ = "rewards"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    cost: Mapped[int] = mapped_column(Integer, nullable=False)
    stock: Mapped[int] = mapped_column(Integer, nullable=False)
    required_rank: Mapped[str] = mapped_column(String(30), default="Rookie")
    exclusive_to_top3: Mapped[bool] = mapped_column(Boolean, default=False)
    discountable: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    __table_args__ = (
        CheckConstraint("cost >= 0", name="ck_rewards_cost_nonneg"),
        CheckConstraint("stock >= 0", name="ck_rewards_stock_nonneg"),
    )

    def __repr__(self) -> str:
        return f"<Reward id={self.id} name={self.name!r} cost={self.cost} stock={self.stock}>"


# ---------------------------------------------------------------------------
# RedemptionRequest: snapshot taken at redemption time
# ---------------------------------------------------------------------------
class RedemptionRequest(Base):
    __tablename__ = "redemption_requests"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    user_name: Mapped[str] = mapped_column(String(255), nullable=False)
    user_email: Mapped[str] = mapped_column(String(255), nullable=False)
    reward_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("rewards.id", ondelete="SET NULL"), nullable=True
    )
    reward_name: Mapped[str] = mapped_column(String(200), nullable=False)
    reward_cost: Mapped[int] = mapped_column(Integer, nullable=False)

    # Fulfilment contact
    contact_name: Mapped[str] = mapped_column(String(200), nullable=False)
    contact_email: Mapped[str] = mapped_column(String(255), nullable=False)
    contact_phone: Mapped[str] = mapped_column(String(40), nullable=False)
    address: Mapped[str] = mapped_column(Text, nullable=False)
    additional_notes: Mapped[str | None] = mapped_column(Text, default=None)

    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=RedemptionStatus.PENDING.value
    )
    admin_notes: Mapped[str | None] = mapped_column(Text, default=None)
    processed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), default=None)
    processed_by: Mapped[int | None] = mapped_column(Integer, default=None)
    refunded_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), default=None)
    idempotency_key: Mapped[str | None] = mapped_column(String(100), default=None)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (
        UniqueConstraint("user_id", "idempotency_key", name="uq_redemptions_user_idem_key"),
        Index("ix_redemptions_user_time", "user_id", "created_at"),
        Index("ix_redemptions_status_time", "status", "created_at"),
    )

    def __repr__(self) -> str:
        return (
            f"<RedemptionRequest id={self.id} user={self.user_id} "
            f"reward={self.reward_name!r} status={self.status}>"
        )


# ---------------------------------------------------------------------------
# AdminLog: append-only audit trail
# ---------------------------------------------------------------------------
class AdminLog(Base):
    __tablename__ = "admin_log"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    actor_id: Mapped[int] = mapped_column(Integer, nullable=False)
    action_type: Mapped[str] = mapped_column(String(50), nullable=False)
    target_table: Mapped[str] = mapped_column(String(50), nullable=False)
    target_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    before_snapshot: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
    after_snapshot: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
    reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    timestamp: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    __table_args__ = (
        Index("ix_admin_log_actor_time", "actor_id", "timestamp"),
        Index("ix_admin_log_target", "target_table", "target_id", "timestamp"),
    )

    def __repr__(self) -> str:
        return f"<AdminLog id={self.id} actor={self.actor_id} action={self.action_type}>"


# ---------------------------------------------------------------------------
# Setting: key-value site settings
# ---------------------------------------------------------------------------
class Setting(Base):
    """Key-value configuration store.

    Site-wide values (hero media URLs and their previous values) live here
    so admins can change them without a redeploy.  Values are stored as
    JSON strings and seeded at startup by :mod:`zeclub.database.seed`.
    """
    __tablename__ = "settings"

    key: Mapped[str] = mapped_column(String(100), primary_key=True)
    value_json: Mapped[str] = mapped_column(Text, nullable=False)
    category: Mapped[str] = mapped_column(String(50), nullable=False, default="general")
    description: Mapped[str | None] = mapped_column(Text, default=None)
    updated_by: Mapped[str | None] = mapped_column(String(255), default=None)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (
        Index("ix_settings_category", "category"),
    )

    def __repr__(self) -> str:
        return f"<Setting key={self.key!r} category={self.category!r}>"
