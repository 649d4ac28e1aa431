# app/routers/aliases.py

"""
Payer alias routes.

Confirmation, explicit re-assignment, seeding and export of the
payer -> account aliases.
"""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Response, status
from fastapi.concurrency import run_in_threadpool
from pydantic import BaseModel

from app.core.batch import BatchRunner
from app.dependencies import (
    TenantGuard,
    get_batch_runner,
    get_current_user,
    get_tenant_guard,
)
from app.exceptions import ProviderError
from app.models import ConfirmOutcome, SeedPair, SeedReport

router = APIRouter()


# ============================================
# Request Models
# ============================================

class ConfirmRequest(BaseModel):
    tenant_id: str
    normalized_payer_key: str
    account_id: str
    notes: Optional[str] = None


class ReassignRequest(BaseModel):
    tenant_id: str
    normalized_payer_key: str
    account_id: str
    expected_account_id: Optional[str] = None
    notes: Optional[str] = None


class SeedRequest(BaseModel):
    tenant_id: str
    pairs: list[SeedPair]


# ============================================
# Export
# ============================================

@router.get("")
async def list_aliases(
    tenant_id: str,
    user_id: str = Depends(get_current_user),
    runner: BatchRunner = Depends(get_batch_runner),
    guard: TenantGuard = Depends(get_tenant_guard),
):
    """
    List every alias of a tenant.
    """
    await guard(tenant_id, user_id)

    try:
        aliases = await run_in_threadpool(runner.alias_store.scan, tenant_id)
    except ProviderError as e:
        raise HTTPException(status_code=503, detail=str(e))

    return {
        "success": True,
        "tenant_id": tenant_id,
        "aliases": [
            {**alias.model_dump(mode="json"), "record_id": alias.record_id}
            for alias in aliases
        ],
        "count": len(aliases),
    }


# ============================================
# Confirm / Reassign
# ============================================

@router.post("/confirm", response_model=ConfirmOutcome)
async def confirm_alias(
    request: ConfirmRequest,
    response: Response,
    user_id: str = Depends(get_current_user),
    runner: BatchRunner = Depends(get_batch_runner),
    guard: TenantGuard = Depends(get_tenant_guard),
):
    """
    Record that a payer name belongs to an account.

    Returns 409 with the existing account when the payer is already
    aliased elsewhere; nothing is written in that case.
    """
    await guard(request.tenant_id, user_id)

    try:
        outcome = await run_in_threadpool(
            runner.confirm,
            request.tenant_id,
            request.normalized_payer_key,
            request.account_id,
            user_id,
            "confirmation",
            request.notes,
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except ProviderError as e:
        raise HTTPException(status_code=503, detail=str(e))

    if not outcome.ok:
        response.status_code = status.HTTP_409_CONFLICT
    return outcome


@router.post("/reassign", response_model=ConfirmOutcome)
async def reassign_alias(
    request: ReassignRequest,
    response: Response,
    user_id: str = Depends(get_current_user),
    runner: BatchRunner = Depends(get_batch_runner),
    guard: TenantGuard = Depends(get_tenant_guard),
):
    """
    Point an existing alias at a different account.

    The caller states which account it expects the alias to hold now; if
    someone else changed it in the meantime the request fails with 409.
    """
    await guard(request.tenant_id, user_id)

    try:
        outcome = await run_in_threadpool(
            runner.reassign,
            request.tenant_id,
            request.normalized_payer_key,
            request.account_id,
            user_id,
            request.expected_account_id,
            request.notes,
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except ProviderError as e:
        raise HTTPException(status_code=503, detail=str(e))

    if not outcome.ok:
        response.status_code = status.HTTP_409_CONFLICT
    return outcome


# ============================================
# Seeding
# ============================================

@router.post("/seed", response_model=SeedReport)
async def seed_aliases(
    request: SeedRequest,
    user_id: str = Depends(get_current_user),
    runner: BatchRunner = Depends(get_batch_runner),
    guard: TenantGuard = Depends(get_tenant_guard),
):
    """
    Bulk-load (client name, payer) pairs, e.g. from a migration list.
    """
    await guard(request.tenant_id, user_id)

    if not request.pairs:
        raise HTTPException(status_code=400, detail="No pairs to seed")

    try:
        return await run_in_threadpool(
            runner.seed,
            request.tenant_id,
            request.pairs,
            None,
            user_id,
        )
    except ProviderError as e:
        raise HTTPException(status_code=503, detail=str(e))
