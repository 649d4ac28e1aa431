# app/core/alias_store.py

"""
Alias Store: the durable memory of confirmed payer -> account matches.

Keyed by (tenant_id, normalized_payer_key). Writes go through a single
compare-and-set so two operators racing on the same key cannot both win.
"""

import threading
from abc import ABC, abstractmethod
from typing import Optional

from app.models import PayerAlias


class AliasStore(ABC):
    """Persistence interface for PayerAlias records."""

    @abstractmethod
    def get(self, tenant_id: str, normalized_payer_key: str) -> Optional[PayerAlias]:
        """Return the alias for a key, or None."""

    @abstractmethod
    def compare_and_set(
        self,
        tenant_id: str,
        normalized_payer_key: str,
        expected_account_id: Optional[str],
        alias: PayerAlias,
    ) -> bool:
        """
        Atomically write `alias` if the stored account id equals `expected_account_id`.

        `expected_account_id=None` means "only if no alias exists yet".
        Returns False, without writing, when the expectation does not hold.
        """

    @abstractmethod
    def scan(self, tenant_id: str) -> list[PayerAlias]:
        """Every alias of a tenant (seeding/export tooling)."""

    def snapshot(self, tenant_id: str) -> dict[str, str]:
        """Read-only key -> account_id view used by the matching cascade."""
        return {a.normalized_payer_key: a.account_id for a in self.scan(tenant_id)}


class InMemoryAliasStore(AliasStore):
    """Process-local store with one lock per alias key."""

    def __init__(self, aliases: Optional[list[PayerAlias]] = None):
        self._records: dict[tuple[str, str], PayerAlias] = {}
        self._locks: dict[tuple[str, str], threading.Lock] = {}
        self._locks_guard = threading.Lock()

        for alias in aliases or []:
            self._records[(alias.tenant_id, alias.normalized_payer_key)] = alias

    def _lock_for(self, key: tuple[str, str]) -> threading.Lock:
        with self._locks_guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = self._locks[key] = threading.Lock()
            return lock

    def get(self, tenant_id: str, normalized_payer_key: str) -> Optional[PayerAlias]:
        return self._records.get((tenant_id, normalized_payer_key))

    def compare_and_set(
        self,
        tenant_id: str,
        normalized_payer_key: str,
        expected_account_id: Optional[str],
        alias: PayerAlias,
    ) -> bool:
        key = (tenant_id, normalized_payer_key)
        with self._lock_for(key):
            current = self._records.get(key)
            current_account_id = current.account_id if current else None
            if current_account_id != expected_account_id:
                return False
            self._records[key] = alias
            return True

    def scan(self, tenant_id: str) -> list[PayerAlias]:
        records = dict(self._records)
        return [alias for (tenant, _), alias in records.items() if tenant == tenant_id]
