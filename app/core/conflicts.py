# app/core/conflicts.py

"""
Conflict detection for alias writes.

An alias is never silently re-pointed: if the key already resolves to a
different account, the write is refused and surfaced for manual resolution.
"""

import logging
from typing import Literal, NamedTuple, Optional

from app.core.alias_store import AliasStore

logger = logging.getLogger(__name__)


class ConflictCheck(NamedTuple):
    verdict: Literal["ok", "conflict"]
    existing_account_id: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.verdict == "ok"


def check_conflict(
    tenant_id: str,
    normalized_payer_key: str,
    proposed_account_id: str,
    alias_store: AliasStore,
) -> ConflictCheck:
    """Compare the stored alias (if any) against the proposed account."""
    existing = alias_store.get(tenant_id, normalized_payer_key)

    if existing is None:
        return ConflictCheck("ok")

    if existing.account_id != proposed_account_id:
        logger.warning(
            "Alias conflict tenant=%s key=%r existing=%s proposed=%s",
            tenant_id, normalized_payer_key, existing.account_id, proposed_account_id,
        )
        return ConflictCheck("conflict", existing.account_id)

    return ConflictCheck("ok", existing.account_id)
