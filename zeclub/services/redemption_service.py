"""
zeclub.services.redemption_service — Redemption Settlement & Fulfilment
========================================================================

A redemption spends ZE Coins on a reward.  In one transaction it:

  1. Claims one unit of stock   (``stock = stock - 1 WHERE stock > 0``)
  2. Debits the member          (``ze_coins = ze_coins - cost WHERE ze_coins >= cost``)
  3. Inserts a pending RedemptionRequest snapshot

Both updates are compare-and-swap: if a concurrent redemption took the
last unit or the coins in between our read and our write, the UPDATE
matches no row and the whole transaction rolls back.  Experience is never
touched, so spending never costs a member their rank.

Cancelling a request does not refund anything by itself.  Refunds are an
explicit admin step (``refund=True`` with ``status="cancelled"``) and are
applied at most once.

Exclusive rewards are listed as open to the top three members; redeeming
one also needs the Errorless Legend tier.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import UTC, datetime

from sqlalchemy import Engine, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from zeclub.database.engine import get_session
from zeclub.database.models import AdminActionType, RedemptionRequest, RedemptionStatus, Reward
from zeclub.engine.eligibility import LOCK_LEGEND_ONLY, TOP_EXCLUSIVE_RANK
from zeclub.engine.ranks import resolve_rank
from zeclub.services.admin_service import log_admin_action, row_to_dict
from zeclub.services.errors import (
    Conflict,
    InsufficientBalance,
    InvalidState,
    NotFound,
    OutOfStock,
    RewardLocked,
    ValidationFailed,
)
from zeclub.services.reward_service import eligibility_for, get_reward
from zeclub.services.user_service import debit_coins, get_user, refund_coins, viewer_for

logger = logging.getLogger(__name__)

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
PHONE_RE = re.compile(r"^[+]?[(]?[0-9]{3}[)]?[-\s.]?[0-9]{3}[-\s.]?[0-9]{4,6}$")


@dataclass(frozen=True, slots=True)
class ContactDetails:
    name: str
    email: str
    phone: str
    address: str
    notes: str | None = None


@dataclass
class RedemptionReceipt:
    request_id: int
    reward_name: str
    cost: int
    new_balance: int
    replayed: bool = False


def validate_contact(contact: ContactDetails) -> None:
    if not all(
        (v or "").strip()
        for v in (contact.name, contact.email, contact.phone, contact.address)
    ):
        raise ValidationFailed("Missing required fields")
    if not EMAIL_RE.match(contact.email):
        raise ValidationFailed("Invalid email format")
    if not PHONE_RE.match(re.sub(r"\s", "", contact.phone)):
        raise ValidationFailed("Invalid phone number format")


def redemption_dict(r: RedemptionRequest) -> dict:
    def iso(value: datetime | None) -> str | None:
        return value.isoformat() if value else None

    return {
        "id": r.id,
        "userId": r.user_id,
        "userName": r.user_name,
        "userEmail": r.user_email,
        "rewardId": r.reward_id,
        "rewardName": r.reward_name,
        "rewardCost": r.reward_cost,
        "contactName": r.contact_name,
        "contactEmail": r.contact_email,
        "contactPhone": r.contact_phone,
        "address": r.address,
        "additionalNotes": r.additional_notes,
        "status": r.status,
        "adminNotes": r.admin_notes,
        "processedAt": iso(r.processed_at),
        "processedBy": r.processed_by,
        "refundedAt": iso(r.refunded_at),
        "createdAt": iso(r.created_at),
        "updatedAt": iso(r.updated_at),
    }


def _claim_stock(session: Session, reward_id: int) -> bool:
    result = session.execute(
        update(Reward)
        .where(Reward.id == reward_id, Reward.stock > 0)
        .values(stock=Reward.stock - 1)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


def _find_replay(session: Session, user_id: int, key: str) -> RedemptionRequest | None:
    return session.scalar(
        select(RedemptionRequest).where(
            RedemptionRequest.user_id == user_id,
            RedemptionRequest.idempotency_key == key,
        )
    )


# ---------------------------------------------------------------------------
# Settlement
# ---------------------------------------------------------------------------
def redeem(
    session: Session,
    *,
    user_id: int,
    reward_id: int,
    contact: ContactDetails,
    idempotency_key: str | None = None,
) -> RedemptionReceipt:
    """Settle a redemption inside the caller's transaction.

    The caller owns commit/rollback; any raised error must roll back.
    """
    if idempotency_key:
        previous = _find_replay(session, user_id, idempotency_key)
        if previous is not None:
            user = get_user(session, user_id)
            return RedemptionReceipt(
                request_id=previous.id,
                reward_name=previous.reward_name,
                cost=previous.reward_cost,
                new_balance=user.ze_coins,
                replayed=True,
            )

    user = get_user(session, user_id)
    reward = get_reward(session, reward_id)

    if reward.stock <= 0:
        raise OutOfStock(reward.name)

    view = eligibility_for(reward, viewer_for(session, user))
    if view.is_locked:
        raise RewardLocked(
            view.locked_reason or "Reward is locked",
            {"requiredRank": reward.required_rank, "userRank": user.rank},
        )
    if reward.exclusive_to_top3 and resolve_rank(user.experience).name != TOP_EXCLUSIVE_RANK:
        raise RewardLocked(
            LOCK_LEGEND_ONLY,
            {"requiredRank": TOP_EXCLUSIVE_RANK, "userRank": user.rank},
        )

    cost = view.final_cost
    if user.ze_coins < cost:
        raise InsufficientBalance(required=cost, current=user.ze_coins)

    if not _claim_stock(session, reward.id):
        raise OutOfStock(reward.name)
    if not debit_coins(session, user.id, cost):
        session.refresh(user)
        raise InsufficientBalance(required=cost, current=user.ze_coins)

    request = RedemptionRequest(
        user_id=user.id,
        user_name=user.display_name,
        user_email=user.email,
        reward_id=reward.id,
        reward_name=reward.name,
        reward_cost=cost,
        contact_name=contact.name.strip(),
        contact_email=contact.email.strip(),
        contact_phone=contact.phone.strip(),
        address=contact.address.strip(),
        additional_notes=contact.notes,
        status=RedemptionStatus.PENDING.value,
        idempotency_key=idempotency_key or None,
    )
    session.add(request)
    try:
        session.flush()
    except IntegrityError:
        # Same idempotency key raced in from a parallel retry
        raise Conflict("Duplicate redemption request") from None

    session.refresh(user)
    logger.info(
        "Redemption %d: user %d redeemed %s for %d coins (list price %d)",
        request.id, user.id, reward.name, cost, reward.cost,
    )
    return RedemptionReceipt(
        request_id=request.id,
        reward_name=reward.name,
        cost=cost,
        new_balance=user.ze_coins,
    )


def create_redemption(
    engine: Engine,
    *,
    user_id: int,
    reward_id: int,
    contact: ContactDetails,
    idempotency_key: str | None = None,
) -> RedemptionReceipt:
    """Validate contact details and settle a redemption in its own transaction."""
    validate_contact(contact)
    with get_session(engine) as session:
        return redeem(
            session,
            user_id=user_id,
            reward_id=reward_id,
            contact=contact,
            idempotency_key=idempotency_key,
        )


# ---------------------------------------------------------------------------
# Listings
# ---------------------------------------------------------------------------
def list_user_redemptions(engine: Engine, user_id: int) -> list[dict]:
    with get_session(engine) as session:
        rows = session.scalars(
            select(RedemptionRequest)
            .where(RedemptionRequest.user_id == user_id)
            .order_by(RedemptionRequest.created_at.desc(), RedemptionRequest.id.desc())
        ).all()
        return [redemption_dict(r) for r in rows]


def list_redemptions(engine: Engine, status: str | None = None) -> list[dict]:
    if status is not None and status not in {s.value for s in RedemptionStatus}:
        raise ValidationFailed("Invalid status filter")
    with get_session(engine) as session:
        query = select(RedemptionRequest).order_by(
            RedemptionRequest.created_at.desc(), RedemptionRequest.id.desc()
        )
        if status:
            query = query.where(RedemptionRequest.status == status)
        return [redemption_dict(r) for r in session.scalars(query).all()]


# ---------------------------------------------------------------------------
# Admin fulfilment
# ---------------------------------------------------------------------------
def update_redemption_status(
    engine: Engine,
    request_id: int,
    *,
    admin_id: int,
    status: str | None = None,
    admin_notes: str | None = None,
    refund: bool = False,
) -> dict:
    """Move a request through fulfilment, optionally refunding a cancellation.

    A refund returns the charged coins to the member and the unit to the
    reward's stock (if the reward still exists).  Refunded requests are
    frozen.
    """
    valid = {s.value for s in RedemptionStatus}
    if status is not None and status not in valid:
        raise ValidationFailed(
            "Invalid status. Must be one of: pending, processing, completed, cancelled"
        )
    if refund and status != RedemptionStatus.CANCELLED:
        raise ValidationFailed("A refund requires status 'cancelled'")

    with get_session(engine) as session:
        request = session.get(RedemptionRequest, request_id, with_for_update=True)
        if request is None:
            raise NotFound("Redemption request not found")
        if request.refunded_at is not None and (
            refund or (status is not None and status != RedemptionStatus.CANCELLED)
        ):
            raise InvalidState("Redemption request was already refunded")

        before = row_to_dict(request)
        now = datetime.now(UTC)

        if status is not None:
            request.status = status
            if status != RedemptionStatus.PENDING:
                request.processed_at = now
                request.processed_by = admin_id
        if admin_notes is not None:
            request.admin_notes = admin_notes

        if refund:
            refund_coins(session, request.user_id, request.reward_cost)
            if request.reward_id is not None:
                session.execute(
                    update(Reward)
                    .where(Reward.id == request.reward_id)
                    .values(stock=Reward.stock + 1)
                    .execution_options(synchronize_session=False)
                )
            request.refunded_at = now
            logger.info(
                "Redemption %d refunded by %d: %d coins to user %d",
                request.id, admin_id, request.reward_cost, request.user_id,
            )

        session.flush()
        log_admin_action(
            session,
            actor_id=admin_id,
            action_type=AdminActionType.REFUND if refund else AdminActionType.UPDATE,
            target_table="redemption_requests",
            target_id=request.id,
            before=before,
            after=row_to_dict(request),
        )
        session.refresh(request)
        return redemption_dict(request)
