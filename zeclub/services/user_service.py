"""
zeclub.services.user_service — Member Balances, Ranks & Roles
==============================================================

Owns every write to the two member ledgers:

* ``experience`` — lifetime points, drives rank and leaderboard.
* ``ze_coins``   — spendable balance.

Balance deltas are applied as SQL expressions (``SET x = x + :n``) rather
than read-modify-write in Python, so concurrent settlements touching the
same member never lose an update.  After each delta the row is refreshed
and the rank fields are recomputed, keeping ``rank`` equal to
``resolve_rank(experience)``.

It also creates members on first contact from their session token and
holds the profile (ZE Tag), search and admin-role operations.
"""

from __future__ import annotations

import logging
import re
import secrets
from typing import Literal

from sqlalchemy import Engine, case, func, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from zeclub.database.engine import get_session
from zeclub.database.models import AdminActionType, User
from zeclub.engine.eligibility import Viewer
from zeclub.engine.ranks import RankStatus, apply_rank, resolve_rank
from zeclub.services.admin_service import log_admin_action
from zeclub.services.errors import Conflict, NotFound, ValidationFailed

logger = logging.getLogger(__name__)

ZE_TAG_PATTERN = re.compile(r"[A-Za-z0-9_]{3,20}")
ZE_TAG_FORMAT_ERROR = "ZE Tag must be 3-20 characters (alphanumeric and underscore only)"
_ZE_TAG_ALPHABET = "0123456789abcdefghijklmnopqrstuvwxyz"


# ---------------------------------------------------------------------------
# Lookups
# ---------------------------------------------------------------------------
def get_user(session: Session, user_id: int, *, for_update: bool = False) -> User:
    """Load a user or raise :class:`NotFound`."""
    user = session.get(User, user_id, with_for_update=for_update or None)
    if user is None:
        raise NotFound("User not found")
    return user


def members_ahead(session: Session, experience: int) -> int:
    """Number of members with strictly more experience."""
    return session.scalar(
        select(func.count()).select_from(User).where(User.experience > experience)
    ) or 0


def viewer_for(session: Session, user: User) -> Viewer:
    return Viewer(
        rank=resolve_rank(user.experience).name,
        members_ahead=members_ahead(session, user.experience),
    )


# ---------------------------------------------------------------------------
# First contact
# ---------------------------------------------------------------------------
def _generate_ze_tag(session: Session) -> str:
    for _ in range(8):
        candidate = "ze_" + "".join(secrets.choice(_ZE_TAG_ALPHABET) for _ in range(6))
        if session.scalar(select(User.id).where(User.ze_tag == candidate)) is None:
            return candidate
    return "ze_" + "".join(secrets.choice(_ZE_TAG_ALPHABET) for _ in range(12))


def get_or_create_member(
    engine: Engine,
    *,
    user_id: int,
    email: str | None,
    name: str | None = None,
    is_admin: bool = False,
) -> dict:
    """Fetch the member behind a session token, inserting them on first contact.

    New members start on zero balances with a generated ZE Tag; *is_admin*
    seeds the stored flag from the token's role claim.  Once the row exists
    the stored flag is authoritative.
    """
    try:
        with get_session(engine) as session:
            user = session.get(User, user_id)
            if user is None:
                if not email:
                    raise ValidationFailed("Session token has no email claim")
                user = User(
                    id=user_id,
                    email=email,
                    name=name,
                    ze_tag=_generate_ze_tag(session),
                    is_admin=is_admin,
                    experience=0,
                    ze_coins=0,
                )
                apply_rank(user)
                session.add(user)
                session.flush()
                logger.info("Member %d (%s) created on first contact", user_id, email)
            return user_summary(user)
    except IntegrityError:
        # Lost an insert race for the same id, or the email belongs to someone else
        with get_session(engine) as session:
            user = session.get(User, user_id)
            if user is None:
                raise Conflict("Email is already linked to another member")
            return user_summary(user)


def has_admin_access(engine: Engine, user_id: int, *, claimed: bool) -> bool:
    """Whether *user_id* may use admin endpoints.

    The stored ``is_admin`` flag decides for known members; *claimed* (the
    token's role claim) only covers accounts not yet seen.
    """
    with get_session(engine) as session:
        flag = session.scalar(select(User.is_admin).where(User.id == user_id))
    return claimed if flag is None else bool(flag)


# ---------------------------------------------------------------------------
# Ledger writes
# ---------------------------------------------------------------------------
def credit_points(session: Session, user: User, amount: int) -> RankStatus:
    """Add *amount* to both experience and ZE Coins, then re-rank."""
    session.execute(
        update(User)
        .where(User.id == user.id)
        .values(
            experience=User.experience + amount,
            ze_coins=User.ze_coins + amount,
        )
        .execution_options(synchronize_session=False)
    )
    session.refresh(user)
    return apply_rank(user)


def claw_back_points(session: Session, user: User, amount: int) -> RankStatus:
    """Remove *amount* from both ledgers, flooring each at zero, then re-rank."""
    session.execute(
        update(User)
        .where(User.id == user.id)
        .values(
            experience=case(
                (User.experience > amount, User.experience - amount), else_=0
            ),
            ze_coins=case(
                (User.ze_coins > amount, User.ze_coins - amount), else_=0
            ),
        )
        .execution_options(synchronize_session=False)
    )
    session.refresh(user)
    return apply_rank(user)


def debit_coins(session: Session, user_id: int, amount: int) -> bool:
    """Spend *amount* ZE Coins if the balance covers it.

    Compare-and-swap: the row is only touched when ``ze_coins >= amount``
    at write time.  Returns ``False`` when the balance was insufficient.
    """
    result = session.execute(
        update(User)
        .where(User.id == user_id, User.ze_coins >= amount)
        .values(ze_coins=User.ze_coins - amount)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


def refund_coins(session: Session, user_id: int, amount: int) -> None:
    session.execute(
        update(User)
        .where(User.id == user_id)
        .values(ze_coins=User.ze_coins + amount)
        .execution_options(synchronize_session=False)
    )


# ---------------------------------------------------------------------------
# Read models
# ---------------------------------------------------------------------------
def user_summary(u: User) -> dict:
    return {
        "id": u.id,
        "name": u.name,
        "email": u.email,
        "zeTag": u.ze_tag,
        "isAdmin": u.is_admin,
        "experience": u.experience,
        "zeCoins": u.ze_coins,
        "rank": u.rank,
        "rankIcon": u.rank_icon,
    }


def get_dashboard(engine: Engine, user_id: int) -> dict:
    """The member's balances, rank progress and leaderboard position."""
    with get_session(engine) as session:
        user = get_user(session, user_id)
        status = resolve_rank(user.experience)
        return {
            "experience": user.experience,
            "zeCoins": user.ze_coins,
            "zeTag": user.ze_tag,
            "rank": status.name,
            "rankIcon": status.icon,
            "progressToNextRank": status.progress_percent,
            "nextRankPoints": status.threshold_high,
            "currentRankPoints": status.threshold_low,
            "leaderboardRank": members_ahead(session, user.experience) + 1,
        }


def get_leaderboard(engine: Engine, limit: int = 100) -> list[dict]:
    """Top members by experience."""
    with get_session(engine) as session:
        rows = session.scalars(
            select(User).order_by(User.experience.desc(), User.id).limit(limit)
        ).all()
        return [
            {
                "position": i + 1,
                "id": u.id,
                "name": u.name,
                "zeTag": u.ze_tag,
                "experience": u.experience,
                "userRank": u.rank,
                "rankIcon": u.rank_icon,
            }
            for i, u in enumerate(rows)
        ]


# ---------------------------------------------------------------------------
# Roles
# ---------------------------------------------------------------------------
def set_admin_role(
    engine: Engine,
    *,
    user_id: int,
    action: Literal["add", "remove"],
    actor_id: int,
) -> dict:
    """Grant or revoke the admin role.  Admins cannot demote themselves."""
    if action == "remove" and user_id == actor_id:
        raise ValidationFailed("You cannot remove your own admin role.")

    with get_session(engine) as session:
        user = get_user(session, user_id)
        before = {"is_admin": user.is_admin}
        user.is_admin = action == "add"
        log_admin_action(
            session,
            actor_id=actor_id,
            action_type=AdminActionType.ROLE_CHANGE,
            target_table="users",
            target_id=user.id,
            before=before,
            after={"is_admin": user.is_admin},
        )
        session.flush()
        logger.info("Admin %d set is_admin=%s on user %d", actor_id, user.is_admin, user.id)
        return user_summary(user)


def search_users(engine: Engine, query: str, *, limit: int = 20) -> list[dict]:
    """Members whose name, email or ZE Tag contains *query* (case-insensitive)."""
    query = query.strip()
    if not query:
        return []
    pattern = f"%{query}%"
    with get_session(engine) as session:
        rows = session.scalars(
            select(User)
            .where(or_(
                User.name.ilike(pattern),
                User.email.ilike(pattern),
                User.ze_tag.ilike(pattern),
            ))
            .order_by(User.name, User.id)
            .limit(limit)
        ).all()
        return [user_summary(u) for u in rows]


def list_admins(engine: Engine) -> list[dict]:
    """Members holding the admin flag, oldest first."""
    with get_session(engine) as session:
        rows = session.scalars(
            select(User).where(User.is_admin.is_(True)).order_by(User.created_at, User.id)
        ).all()
        return [user_summary(u) for u in rows]


# ---------------------------------------------------------------------------
# ZE Tag
# ---------------------------------------------------------------------------
def _tag_taken(session: Session, ze_tag: str, user_id: int) -> bool:
    return session.scalar(
        select(User.id).where(User.ze_tag == ze_tag, User.id != user_id)
    ) is not None


def check_ze_tag(engine: Engine, user_id: int, ze_tag: str) -> dict:
    if not ze_tag:
        raise ValidationFailed("ZE Tag is required")
    if not ZE_TAG_PATTERN.fullmatch(ze_tag):
        return {"available": False, "zeTag": ze_tag, "error": ZE_TAG_FORMAT_ERROR}
    with get_session(engine) as session:
        return {"available": not _tag_taken(session, ze_tag, user_id), "zeTag": ze_tag}


def change_ze_tag(engine: Engine, user_id: int, ze_tag: str) -> dict:
    """Give the member a new ZE Tag.  Tags are unique across members."""
    if not ze_tag:
        raise ValidationFailed("ZE Tag is required")
    if not ZE_TAG_PATTERN.fullmatch(ze_tag):
        raise ValidationFailed(ZE_TAG_FORMAT_ERROR)
    try:
        with get_session(engine) as session:
            if _tag_taken(session, ze_tag, user_id):
                raise Conflict("This ZE Tag is already taken")
            user = get_user(session, user_id)
            user.ze_tag = ze_tag
            session.flush()
            return {"success": True, "zeTag": user.ze_tag}
    except IntegrityError:
        raise Conflict("This ZE Tag is already taken")
