"""
zeclub.api.routes.admin — Admin endpoints (JWT‑protected, admin role)
======================================================================

Every mutation here is written to the admin audit log by the service
layer.
"""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from fastapi import APIRouter, Depends, Query
from pydantic import Field

from zeclub.api.deps import get_current_admin, get_engine
from zeclub.api.schemas import CamelModel
from zeclub.database.engine import get_session, run_db
from zeclub.services import (
    admin_service,
    mission_service,
    redemption_service,
    reward_service,
    settings_service,
    user_service,
)

router = APIRouter(prefix="/admin", tags=["admin"])


# ---------------------------------------------------------------------------
# Pydantic schemas
# ---------------------------------------------------------------------------
class VerifyBody(CamelModel):
    submission_id: int
    status: Literal["approved", "rejected"]


class RevertBody(CamelModel):
    submission_id: int
    revert_reason: str | None = None


class RedemptionUpdate(CamelModel):
    status: Literal["pending", "processing", "completed", "cancelled"] | None = None
    admin_notes: str | None = None
    refund: bool = False


class MissionCreate(CamelModel):
    name: str
    description: str
    points: int
    instructions: str = ""
    category: str = "General"
    difficulty: str = "Easy"
    required_proof_type: str = "image"
    example_image_url: str | None = None
    is_time_limited: bool = False
    start_date: datetime | None = None
    end_date: datetime | None = None
    days_available: int | None = Field(default=None, ge=1)
    featured: bool = False
    max_completions: int | None = None


class MissionUpdate(CamelModel):
    name: str | None = None
    description: str | None = None
    points: int | None = None
    instructions: str | None = None
    category: str | None = None
    difficulty: str | None = None
    required_proof_type: str | None = None
    example_image_url: str | None = None
    is_time_limited: bool | None = None
    start_date: datetime | None = None
    end_date: datetime | None = None
    featured: bool | None = None
    max_completions: int | None = None


class MissionActive(CamelModel):
    active: bool


class RewardCreate(CamelModel):
    name: str
    description: str
    cost: int
    stock: int
    required_rank: str = "Rookie"
    exclusive_to_top3: bool = False
    discountable: bool = True


class RewardUpdate(CamelModel):
    name: str | None = None
    description: str | None = None
    cost: int | None = None
    stock: int | None = None
    required_rank: str | None = None
    exclusive_to_top3: bool | None = None
    discountable: bool | None = None


class RoleChange(CamelModel):
    action: Literal["add", "remove"]


class HeroUpdate(CamelModel):
    hero_video_url: str | None = None
    hero_poster_url: str | None = None


# ---------------------------------------------------------------------------
# Submissions
# ---------------------------------------------------------------------------
@router.get("/submissions")
def list_submissions(
    admin: dict = Depends(get_current_admin),
    engine=Depends(get_engine),
):
    return mission_service.list_pending_submissions(engine)


@router.patch("/submissions/verify")
async def verify_submission(
    body: VerifyBody,
    admin: dict = Depends(get_current_admin),
    engine=Depends(get_engine),
):
    result = await run_db(
        mission_service.verify_submission,
        engine,
        submission_id=body.submission_id,
        status=body.status,
        admin_id=admin["user_id"],
    )
    return {
        "message": f"Submission {result.status} successfully",
        "pointsAwarded": result.points_awarded,
        "newRank": result.new_rank,
    }


@router.post("/submissions/revert")
async def revert_submission(
    body: RevertBody,
    admin: dict = Depends(get_current_admin),
    engine=Depends(get_engine),
):
    result = await run_db(
        mission_service.revert_submission,
        engine,
        submission_id=body.submission_id,
        admin_id=admin["user_id"],
        reason=body.revert_reason,
    )
    return {
        "message": "Submission approval reverted successfully",
        "details": {
            "pointsDeducted": result.points_deducted,
            "newBalance": result.new_balance,
            "newExperience": result.new_experience,
            "oldRank": result.old_rank,
            "newRank": result.new_rank,
            "rankChanged": result.rank_changed,
        },
    }


# ---------------------------------------------------------------------------
# Redemption fulfilment
# ---------------------------------------------------------------------------
@router.get("/redemption-requests")
def list_redemption_requests(
    status: str | None = Query(default=None),
    admin: dict = Depends(get_current_admin),
    engine=Depends(get_engine),
):
    return redemption_service.list_redemptions(engine, status)


@router.patch("/redemption-requests/{request_id}")
async def update_redemption_request(
    request_id: int,
    body: RedemptionUpdate,
    admin: dict = Depends(get_current_admin),
    engine=Depends(get_engine),
):
    request = await run_db(
        redemption_service.update_redemption_status,
        engine,
        request_id,
        admin_id=admin["user_id"],
        status=body.status,
        admin_notes=body.admin_notes,
        refund=body.refund,
    )
    return {"message": "Redemption request updated successfully", "redemptionRequest": request}


# ---------------------------------------------------------------------------
# Missions
# ---------------------------------------------------------------------------
@router.post("/missions", status_code=201)
async def create_mission(
    body: MissionCreate,
    admin: dict = Depends(get_current_admin),
    engine=Depends(get_engine),
):
    return await run_db(
        mission_service.create_mission,
        engine,
        actor_id=admin["user_id"],
        **body.model_dump(),
    )


@router.patch("/missions/{mission_id}")
async def update_mission(
    mission_id: int,
    body: MissionUpdate,
    admin: dict = Depends(get_current_admin),
    engine=Depends(get_engine),
):
    return await run_db(
        mission_service.update_mission,
        engine,
        mission_id,
        actor_id=admin["user_id"],
        **body.model_dump(exclude_unset=True),
    )


@router.patch("/missions/{mission_id}/active")
async def set_mission_active(
    mission_id: int,
    body: MissionActive,
    admin: dict = Depends(get_current_admin),
    engine=Depends(get_engine),
):
    return await run_db(
        mission_service.set_mission_active,
        engine,
        mission_id,
        active=body.active,
        actor_id=admin["user_id"],
    )


@router.delete("/missions/{mission_id}")
async def delete_mission(
    mission_id: int,
    admin: dict = Depends(get_current_admin),
    engine=Depends(get_engine),
):
    return await run_db(
        mission_service.delete_mission, engine, mission_id, actor_id=admin["user_id"],
    )


# ---------------------------------------------------------------------------
# Rewards
# ---------------------------------------------------------------------------
@router.post("/rewards", status_code=201)
async def create_reward(
    body: RewardCreate,
    admin: dict = Depends(get_current_admin),
    engine=Depends(get_engine),
):
    return await run_db(
        reward_service.create_reward,
        engine,
        actor_id=admin["user_id"],
        **body.model_dump(),
    )


@router.patch("/rewards/{reward_id}")
async def update_reward(
    reward_id: int,
    body: RewardUpdate,
    admin: dict = Depends(get_current_admin),
    engine=Depends(get_engine),
):
    return await run_db(
        reward_service.update_reward,
        engine,
        reward_id,
        actor_id=admin["user_id"],
        **body.model_dump(exclude_unset=True),
    )


@router.delete("/rewards/{reward_id}")
async def delete_reward(
    reward_id: int,
    admin: dict = Depends(get_current_admin),
    engine=Depends(get_engine),
):
    await run_db(reward_service.delete_reward, engine, reward_id, actor_id=admin["user_id"])
    return {"message": "Reward deleted successfully"}


# ---------------------------------------------------------------------------
# Users, audit, site settings
# ---------------------------------------------------------------------------
@router.get("/users/search")
def search_users(
    q: str = Query(default=""),
    limit: int = Query(default=20, ge=1, le=100),
    admin: dict = Depends(get_current_admin),
    engine=Depends(get_engine),
):
    """Find members by name, email or ZE Tag."""
    return {"users": user_service.search_users(engine, q, limit=limit)}


@router.get("/users/admins")
def list_admins(
    admin: dict = Depends(get_current_admin),
    engine=Depends(get_engine),
):
    return {"admins": user_service.list_admins(engine)}


@router.patch("/users/{user_id}/admin")
async def change_admin_role(
    user_id: int,
    body: RoleChange,
    admin: dict = Depends(get_current_admin),
    engine=Depends(get_engine),
):
    user = await run_db(
        user_service.set_admin_role,
        engine,
        user_id=user_id,
        action=body.action,
        actor_id=admin["user_id"],
    )
    verb = "granted" if body.action == "add" else "removed"
    return {"message": f"Admin role {verb} successfully", "user": user}


@router.get("/audit")
def audit_log(
    target_table: str | None = Query(default=None, alias="targetTable"),
    limit: int = Query(default=100, ge=1, le=500),
    admin: dict = Depends(get_current_admin),
    engine=Depends(get_engine),
):
    with get_session(engine) as session:
        return admin_service.get_audit_log(session, target_table=target_table, limit=limit)


@router.patch("/site-settings/hero")
async def update_hero(
    body: HeroUpdate,
    admin: dict = Depends(get_current_admin),
    engine=Depends(get_engine),
):
    return await run_db(
        settings_service.update_hero_settings,
        engine,
        actor_id=admin["user_id"],
        actor_label=admin.get("email"),
        hero_video_url=body.hero_video_url,
        hero_poster_url=body.hero_poster_url,
    )
