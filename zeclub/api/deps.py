"""
zeclub.api.deps — FastAPI dependency injection
===============================================

Sessions are issued by the external auth provider as HS256 JWTs::

    {"sub": "<user id>", "email": "...", "roles": ["user", "admin"], "exp": ...}

This module verifies them and resolves the member row behind the
bearer.  Admin access follows the stored ``is_admin`` flag once a member
row exists; the ``roles`` claim only seeds it.
"""

from __future__ import annotations

import os
from functools import lru_cache
from typing import Annotated

import jwt
from fastapi import Depends, Header, HTTPException, status
from jwt.exceptions import InvalidTokenError
from sqlalchemy import Engine

from zeclub.config import ZeClubConfig, load_config
from zeclub.database.engine import create_db_engine
from zeclub.services import user_service

_WEAK_SECRETS = frozenset({
    "zeclub-dev-secret-change-me",
    "change-me",
    "secret",
    "dev",
    "",
})

_MIN_SECRET_LENGTH = 32

JWT_ALGORITHM = "HS256"


def _load_jwt_secret() -> str:
    """Load and validate JWT_SECRET from the environment.

    Raises RuntimeError at import time if the secret is missing, blank,
    too short (< 32 chars), or a known weak default.
    """
    secret = os.getenv("JWT_SECRET", "")
    if not secret:
        raise RuntimeError(
            "JWT_SECRET environment variable is not set. "
            "Generate one with: python -c \"import secrets; print(secrets.token_urlsafe(64))\""
        )
    if secret in _WEAK_SECRETS:
        raise RuntimeError(
            f"JWT_SECRET is set to a known weak default ('{secret}'). "
            "Please set a strong, unique secret."
        )
    if len(secret) < _MIN_SECRET_LENGTH:
        raise RuntimeError(
            f"JWT_SECRET is too short ({len(secret)} chars). "
            f"Minimum length is {_MIN_SECRET_LENGTH} characters."
        )
    return secret


JWT_SECRET: str = _load_jwt_secret()


@lru_cache(maxsize=1)
def get_engine() -> Engine:
    return create_db_engine()


@lru_cache(maxsize=1)
def get_config() -> ZeClubConfig:
    return load_config()


def _decode(authorization: str | None) -> dict:
    if not authorization or not authorization.startswith("Bearer "):
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Missing token")
    token = authorization.split(" ", 1)[1]
    try:
        payload = jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALGORITHM])
    except InvalidTokenError:
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Invalid token")
    try:
        payload["user_id"] = int(payload["sub"])
    except (KeyError, TypeError, ValueError):
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Invalid token subject")
    return payload


def get_current_user(
    authorization: Annotated[str | None, Header()] = None,
) -> dict:
    """Validate JWT and return its payload. Raises 401 if invalid."""
    return _decode(authorization)


def get_optional_user(
    authorization: Annotated[str | None, Header()] = None,
) -> dict | None:
    """Like :func:`get_current_user` but anonymous requests yield ``None``."""
    if not authorization:
        return None
    return _decode(authorization)


def get_current_member(
    user: dict = Depends(get_current_user),
    cfg: ZeClubConfig = Depends(get_config),
    engine: Engine = Depends(get_engine),
) -> dict:
    """Validate JWT and make sure the bearer has a member row.

    The row is created on first contact; the payload gains a ``member`` key
    holding the stored summary.
    """
    user["member"] = user_service.get_or_create_member(
        engine,
        user_id=user["user_id"],
        email=user.get("email"),
        name=user.get("name"),
        is_admin=cfg.admin_role in (user.get("roles") or []),
    )
    return user


def get_current_admin(
    user: dict = Depends(get_current_user),
    cfg: ZeClubConfig = Depends(get_config),
    engine: Engine = Depends(get_engine),
) -> dict:
    """Validate JWT and require admin access. 401 if invalid, 403 if not admin.

    A stored member's ``is_admin`` flag wins over the token's role claim,
    so granting or revoking the role takes effect without a new token.
    """
    claimed = cfg.admin_role in (user.get("roles") or [])
    if not user_service.has_admin_access(engine, user["user_id"], claimed=claimed):
        raise HTTPException(status.HTTP_403_FORBIDDEN, "Forbidden: Admin access required")
    return user
