"""
zeclub.api.routes.public — Read-only endpoints open to everyone
================================================================
"""

from __future__ import annotations

from fastapi import APIRouter, Depends

from zeclub.api.deps import get_config, get_engine, get_optional_user
from zeclub.config import ZeClubConfig
from zeclub.services import mission_service, reward_service, settings_service, user_service

router = APIRouter(tags=["public"])


@router.get("/ze-club/missions")
def list_missions(engine=Depends(get_engine)):
    """Missions a member can currently submit proof for."""
    return mission_service.list_available_missions(engine)


@router.get("/ze-club/rewards")
def list_rewards(
    viewer: dict | None = Depends(get_optional_user),
    engine=Depends(get_engine),
):
    """In-stock rewards annotated with lock state and final cost for the viewer."""
    viewer_id = viewer["user_id"] if viewer else None
    return reward_service.list_rewards(engine, viewer_id)


@router.get("/ze-club/leaderboard")
def leaderboard(
    engine=Depends(get_engine),
    cfg: ZeClubConfig = Depends(get_config),
):
    return user_service.get_leaderboard(engine, limit=cfg.leaderboard_size)


@router.get("/site-settings/hero")
def hero_settings(engine=Depends(get_engine)):
    return settings_service.get_hero_settings(engine)
