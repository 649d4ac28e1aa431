# app/models/__init__.py

from app.models.roster import (
    RosterRecord,
    RosterEntry,
)
from app.models.alias import (
    AliasSource,
    ConfirmOutcome,
    ConfirmStatus,
    PayerAlias,
    alias_record_id,
)
from app.models.reconciliation import (
    BatchReport,
    BatchSummary,
    CandidateScore,
    DecisionAction,
    MatchType,
    ReconciliationResult,
    ReconciliationRow,
    ResultStatus,
    RowDecision,
    SeedConflict,
    SeedPair,
    SeedReport,
)

__all__ = [
    # Roster
    "RosterRecord",
    "RosterEntry",
    # Alias
    "AliasSource",
    "ConfirmOutcome",
    "ConfirmStatus",
    "PayerAlias",
    "alias_record_id",
    # Reconciliation
    "BatchReport",
    "BatchSummary",
    "CandidateScore",
    "DecisionAction",
    "MatchType",
    "ReconciliationResult",
    "ReconciliationRow",
    "ResultStatus",
    "RowDecision",
    "SeedConflict",
    "SeedPair",
    "SeedReport",
]
