"""
zeclub.api.auth — Session introspection
========================================

Tokens are minted by the external auth provider; this router reports who
the bearer is, creating their member row on first contact.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends

from zeclub.api.deps import get_current_member

router = APIRouter(prefix="/auth", tags=["auth"])


@router.get("/me")
def me(user: dict = Depends(get_current_member)):
    """Return the current member's claims and stored profile."""
    member = user["member"]
    return {
        "id": user["user_id"],
        "email": member["email"],
        "roles": user.get("roles") or [],
        "isAdmin": member["isAdmin"],
        "zeTag": member["zeTag"],
        "rank": member["rank"],
    }
