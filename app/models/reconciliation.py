# app/models/reconciliation.py

from datetime import datetime
from typing import Optional, Literal
from pydantic import BaseModel, Field


# ============================================
# Input rows
# ============================================

class ReconciliationRow(BaseModel):
    """One raw statement line. Only payer_raw and reference are read by the matcher."""

    payer_raw: str = ""
    amount: Optional[float] = None
    reference: Optional[str] = ""
    date: Optional[str] = None


# ============================================
# Results
# ============================================

ResultStatus = Literal["matched", "review", "unmatched", "conflict"]
MatchType = Literal["exact", "alias", "fuzzy"]


class CandidateScore(BaseModel):
    """An account considered for a payer, for operator review."""

    account_id: str
    display_name: Optional[str] = None
    score: float = Field(ge=0, le=1)

    class Config:
        frozen = True


class ReconciliationResult(BaseModel):
    """Verdict for one input row. Never mutated; re-runs produce new results."""

    row_index: int = 0
    payer_raw: str
    normalized_payer_key: str
    status: ResultStatus
    matched_account_id: Optional[str] = None
    match_type: Optional[MatchType] = None
    score: float = Field(ge=0, le=1)
    candidates: list[CandidateScore] = Field(default_factory=list)
    explanation: str = ""

    # Passed through from the row
    amount: Optional[float] = None
    reference: Optional[str] = None
    date: Optional[str] = None

    class Config:
        frozen = True


class BatchSummary(BaseModel):
    """Per-batch counts."""

    total_rows: int = 0
    matched: int = 0
    confirmed: int = 0
    review: int = 0
    unmatched: int = 0
    conflicted: int = 0
    rejected: int = 0
    match_rate: float = 0.0
    auto_match_rate: float = 0.0


class BatchReport(BaseModel):
    """Ordered results of one batch run plus its summary."""

    tenant_id: str
    results: list[ReconciliationResult]
    summary: BatchSummary
    started_at: datetime
    duration_ms: int = 0


# ============================================
# Human decisions
# ============================================

DecisionAction = Literal["confirm", "reject"]


class RowDecision(BaseModel):
    """An operator's verdict on one result row."""

    row_index: int
    action: DecisionAction
    account_id: Optional[str] = None


# ============================================
# Seeding
# ============================================

class SeedPair(BaseModel):
    """One line of a migration list: the client's full name and the payer text."""

    client_name: str
    payer_text: str


class SeedConflict(BaseModel):
    normalized_payer_key: str
    account_ids: list[str]
    reason: str


class SeedReport(BaseModel):
    created: int = 0
    updated: int = 0
    unchanged: int = 0
    not_found: list[SeedPair] = Field(default_factory=list)
    conflicts: list[SeedConflict] = Field(default_factory=list)
