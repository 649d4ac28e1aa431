# app/models/alias.py

import re
from datetime import datetime
from typing import Optional, Literal
from pydantic import BaseModel

RECORD_ID_MAX_LENGTH = 150

AliasSource = Literal["seed", "confirmation", "reassignment", "import"]


def alias_record_id(normalized_payer_key: str) -> str:
    """Storage-friendly record name for an alias key."""
    return re.sub(r"[^a-zA-Z0-9]", "_", normalized_payer_key)[:RECORD_ID_MAX_LENGTH]


# ============================================
# Payer Alias
# ============================================

class PayerAlias(BaseModel):
    """A confirmed mapping from a normalized payer key to one account."""

    tenant_id: str
    normalized_payer_key: str
    account_id: str

    created_at: datetime
    created_by: str
    updated_at: Optional[datetime] = None
    updated_by: Optional[str] = None

    source: AliasSource = "confirmation"
    notes: Optional[str] = None

    class Config:
        frozen = True

    @property
    def record_id(self) -> str:
        return alias_record_id(self.normalized_payer_key)


# ============================================
# Write outcomes
# ============================================

ConfirmStatus = Literal["created", "unchanged", "updated", "conflict"]


class ConfirmOutcome(BaseModel):
    """Result of a confirmation or re-assignment attempt."""

    tenant_id: str
    normalized_payer_key: str
    account_id: str
    status: ConfirmStatus
    existing_account_id: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status != "conflict"
