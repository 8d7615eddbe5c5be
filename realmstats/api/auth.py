"""
realmstats.api.auth — Caller identity
======================================

Tokens are issued by the dashboard's sign-in service and signed with the
shared ``JWT_SECRET``.  This API only verifies them.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends

from realmstats.api.deps import get_current_user, is_admin

router = APIRouter(prefix="/auth", tags=["auth"])


@router.get("/me")
async def me(user: dict = Depends(get_current_user)):
    """Return the authenticated caller's identity and role."""
    return {
        "id": user["sub"],
        "username": user.get("username", "Unknown"),
        "role": user.get("role"),
        "is_admin": is_admin(user),
    }
