# app/routers/reconcile.py

"""
Reconciliation routes.

Runs the matching cascade over an uploaded statement and applies operator
decisions to the results.
"""

import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.concurrency import run_in_threadpool
from pydantic import BaseModel

from app.core.batch import BatchRunner, summarize
from app.database import save_reconciliation_run, get_reconciliation_history
from app.dependencies import (
    TenantGuard,
    get_batch_runner,
    get_current_user,
    get_tenant_guard,
)
from app.exceptions import ProviderError
from app.models import (
    BatchReport,
    ReconciliationResult,
    ReconciliationRow,
    RowDecision,
)

logger = logging.getLogger(__name__)
router = APIRouter()


class ReconcileRequest(BaseModel):
    tenant_id: str
    rows: list[ReconciliationRow]
    persist: bool = True


class DecisionsRequest(BaseModel):
    tenant_id: str
    results: list[ReconciliationResult]
    decisions: list[RowDecision]


# ============================================
# Main Reconciliation Endpoint
# ============================================

@router.post("/reconcile", response_model=BatchReport)
async def run_reconciliation(
    request: ReconcileRequest,
    user_id: str = Depends(get_current_user),
    runner: BatchRunner = Depends(get_batch_runner),
    guard: TenantGuard = Depends(get_tenant_guard),
):
    """
    Reconcile a statement for one tenant.

    1. Fetches the roster and alias snapshot
    2. Runs the matching cascade on every row
    3. Optionally saves the batch summary
    """
    await guard(request.tenant_id, user_id)

    if not request.rows:
        raise HTTPException(status_code=400, detail="No rows to reconcile")

    try:
        report = await run_in_threadpool(runner.run, request.tenant_id, request.rows)
    except ProviderError as e:
        raise HTTPException(status_code=503, detail=str(e))

    if request.persist:
        try:
            await save_reconciliation_run({
                "tenant_id": request.tenant_id,
                "triggered_by": user_id,
                "total_rows": report.summary.total_rows,
                "matched": report.summary.matched,
                "review": report.summary.review,
                "unmatched": report.summary.unmatched,
                "conflicted": report.summary.conflicted,
                "match_rate": report.summary.match_rate,
                "duration_ms": report.duration_ms,
                "started_at": report.started_at.isoformat(),
            })
        except Exception:
            # Persistence failure shouldn't fail the whole request
            logger.warning("Failed to persist batch summary for tenant=%s", request.tenant_id, exc_info=True)

    return report


# ============================================
# Operator decisions
# ============================================

@router.post("/reconcile/decisions", response_model=BatchReport)
async def apply_decisions(
    request: DecisionsRequest,
    user_id: str = Depends(get_current_user),
    runner: BatchRunner = Depends(get_batch_runner),
    guard: TenantGuard = Depends(get_tenant_guard),
):
    """
    Confirm or reject rows of a previous run.

    Confirmed rows are written to the alias store; a refused write comes
    back with status "conflict".
    """
    await guard(request.tenant_id, user_id)

    report = BatchReport(
        tenant_id=request.tenant_id,
        results=request.results,
        summary=summarize(request.results),
        started_at=datetime.now(timezone.utc),
    )

    try:
        return await run_in_threadpool(runner.apply_decisions, report, request.decisions, user_id)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except ProviderError as e:
        raise HTTPException(status_code=503, detail=str(e))


# ============================================
# Reconciliation History
# ============================================

@router.get("/reconcile/history")
async def get_reconciliation_history_endpoint(
    tenant_id: str,
    user_id: str = Depends(get_current_user),
    guard: TenantGuard = Depends(get_tenant_guard),
    limit: int = Query(30, ge=1, le=90),
):
    """
    Get batch summaries for a tenant, most recent first.
    """
    await guard(tenant_id, user_id)

    try:
        runs = await get_reconciliation_history(tenant_id, limit)
    except ProviderError as e:
        raise HTTPException(status_code=503, detail=str(e))

    return {
        "tenant_id": tenant_id,
        "runs": runs,
        "count": len(runs),
    }
