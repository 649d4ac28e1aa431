# app/dependencies.py

"""
FastAPI dependencies.

- get_current_user:  validates the Supabase JWT and returns the user_id
- get_batch_runner:  BatchRunner wired to the Supabase roster and alias store
- get_tenant_guard:  checks the caller administers the tenant they act on
"""

from functools import lru_cache
from typing import Awaitable, Callable

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from app.core.batch import BatchRunner
from app.database import (
    SupabaseAliasStore,
    SupabaseRosterProvider,
    get_supabase_admin,
    get_tenant_role,
)
from app.exceptions import ProviderError

security = HTTPBearer()

ADMIN_ROLES = ("tenant_admin", "super_admin")

TenantGuard = Callable[[str, str], Awaitable[None]]


def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
) -> str:
    """
    Validate the Supabase JWT and return the user_id.

    This is a sync function -- FastAPI auto-runs it in a threadpool.
    """
    token = credentials.credentials

    try:
        user_response = get_supabase_admin().auth.get_user(token)
    except Exception:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    if user_response is None or user_response.user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    return user_response.user.id


@lru_cache()
def get_batch_runner() -> BatchRunner:
    return BatchRunner(
        alias_store=SupabaseAliasStore(),
        roster_provider=SupabaseRosterProvider(),
    )


async def require_tenant_admin(tenant_id: str, user_id: str) -> None:
    try:
        role = await get_tenant_role(tenant_id, user_id)
    except ProviderError as e:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(e))

    if role not in ADMIN_ROLES:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Only tenant administrators can reconcile payments",
        )


def get_tenant_guard() -> TenantGuard:
    return require_tenant_admin
