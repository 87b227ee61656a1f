"""
zeclub.services.reward_service — Reward Catalogue & Eligibility View
=====================================================================

Lists in-stock rewards annotated for the viewer (``isLocked``,
``lockedReason``, ``finalCost``) and provides the audited admin CRUD.
"""

from __future__ import annotations

import logging
from typing import Any

from sqlalchemy import Engine, select
from sqlalchemy.orm import Session

from zeclub.database.engine import get_session
from zeclub.database.models import AdminActionType, Reward, User
from zeclub.engine.eligibility import RewardEligibility, Viewer, evaluate_reward
from zeclub.engine.ranks import RANK_NAMES, is_rank_name
from zeclub.services.admin_service import log_admin_action, row_to_dict
from zeclub.services.errors import NotFound, ValidationFailed
from zeclub.services.user_service import viewer_for

logger = logging.getLogger(__name__)

REWARD_EDITABLE_FIELDS: frozenset[str] = frozenset({
    "name", "description", "cost", "stock",
    "required_rank", "exclusive_to_top3", "discountable",
})


def get_reward(session: Session, reward_id: int) -> Reward:
    reward = session.get(Reward, reward_id)
    if reward is None:
        raise NotFound("Reward not found")
    return reward


def eligibility_for(reward: Reward, viewer: Viewer | None) -> RewardEligibility:
    return evaluate_reward(
        cost=reward.cost,
        required_rank=reward.required_rank,
        exclusive_to_top3=reward.exclusive_to_top3,
        discountable=reward.discountable,
        viewer=viewer,
    )


def reward_dict(r: Reward) -> dict:
    return {
        "id": r.id,
        "name": r.name,
        "description": r.description,
        "cost": r.cost,
        "stock": r.stock,
        "requiredRank": r.required_rank,
        "exclusiveToTop3": r.exclusive_to_top3,
        "discountable": r.discountable,
    }


# ---------------------------------------------------------------------------
# Eligibility view
# ---------------------------------------------------------------------------
def list_rewards(engine: Engine, viewer_id: int | None = None) -> list[dict]:
    """In-stock rewards, cheapest first, annotated for *viewer_id*.

    An unknown *viewer_id* is treated as anonymous.
    """
    with get_session(engine) as session:
        viewer = None
        if viewer_id is not None:
            user = session.get(User, viewer_id)
            if user is not None:
                viewer = viewer_for(session, user)

        rewards = session.scalars(
            select(Reward).where(Reward.stock > 0).order_by(Reward.cost, Reward.id)
        ).all()

        listing = []
        for r in rewards:
            view = eligibility_for(r, viewer)
            listing.append({
                **reward_dict(r),
                "isLocked": view.is_locked,
                "lockedReason": view.locked_reason,
                "finalCost": view.final_cost,
            })
        return listing


# ---------------------------------------------------------------------------
# Admin CRUD
# ---------------------------------------------------------------------------
def _validate_reward_fields(fields: dict[str, Any]) -> None:
    cleared = sorted(k for k, v in fields.items() if v is None)
    if cleared:
        raise ValidationFailed("Fields cannot be null", {"fields": cleared})
    if fields.get("cost") is not None and fields["cost"] < 0:
        raise ValidationFailed("Cost must be a non-negative number")
    if fields.get("stock") is not None and fields["stock"] < 0:
        raise ValidationFailed("Stock must be a non-negative number")
    rank = fields.get("required_rank")
    if rank is not None and not is_rank_name(rank):
        raise ValidationFailed("Invalid requiredRank", {"allowed": list(RANK_NAMES)})


def create_reward(engine: Engine, *, actor_id: int, **fields: Any) -> dict:
    fields = {k: v for k, v in fields.items() if k in REWARD_EDITABLE_FIELDS}
    if not fields.get("name") or not fields.get("description") \
            or fields.get("cost") is None or fields.get("stock") is None:
        raise ValidationFailed("Missing required fields: name, description, cost, stock")
    _validate_reward_fields(fields)
    fields.setdefault("required_rank", "Rookie")

    with get_session(engine) as session:
        reward = Reward(**fields)
        session.add(reward)
        session.flush()
        log_admin_action(
            session,
            actor_id=actor_id,
            action_type=AdminActionType.CREATE,
            target_table="rewards",
            target_id=reward.id,
            before=None,
            after=row_to_dict(reward),
        )
        logger.info("Reward %d (%s) created by %d", reward.id, reward.name, actor_id)
        return reward_dict(reward)


def update_reward(engine: Engine, reward_id: int, *, actor_id: int, **fields: Any) -> dict:
    fields = {k: v for k, v in fields.items() if k in REWARD_EDITABLE_FIELDS}
    _validate_reward_fields(fields)

    with get_session(engine) as session:
        reward = get_reward(session, reward_id)
        before = row_to_dict(reward)
        for key, value in fields.items():
            setattr(reward, key, value)
        session.flush()
        log_admin_action(
            session,
            actor_id=actor_id,
            action_type=AdminActionType.UPDATE,
            target_table="rewards",
            target_id=reward.id,
            before=before,
            after=row_to_dict(reward),
        )
        return reward_dict(reward)


def delete_reward(engine: Engine, reward_id: int, *, actor_id: int) -> None:
    """Hard delete.  Past redemption requests keep their name/cost snapshot."""
    with get_session(engine) as session:
        reward = get_reward(session, reward_id)
        before = row_to_dict(reward)
        session.delete(reward)
        log_admin_action(
            session,
            actor_id=actor_id,
            action_type=AdminActionType.DELETE,
            target_table="rewards",
            target_id=reward_id,
            before=before,
            after=None,
        )
        logger.info("Reward %d deleted by %d", reward_id, actor_id)
