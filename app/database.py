# app/database.py

import logging
from functools import lru_cache
from typing import Optional

from postgrest.exceptions import APIError
from pydantic import ValidationError
from supabase import create_client, Client

from app.config import get_settings
from app.core.alias_store import AliasStore
from app.core.roster import RosterProvider, build_roster_entry
from app.exceptions import ProviderError
from app.models import PayerAlias, RosterEntry, RosterRecord, alias_record_id

logger = logging.getLogger(__name__)
settings = get_settings()

UNIQUE_VIOLATION = "23505"
PAGE_SIZE = 1000


@lru_cache()
def get_supabase_admin() -> Client:
    """Admin client (bypasses RLS - use carefully). Created on first use."""
    return create_client(
        settings.supabase_url,
        settings.supabase_service_role_key,
    )


# ============================================
# Roster provider
# ============================================

class SupabaseRosterProvider(RosterProvider):
    """Reads a tenant's players and precomputes their name variants."""

    def __init__(self, client: Optional[Client] = None, table: Optional[str] = None):
        self._client = client
        self.table = table or settings.players_table

    @property
    def client(self) -> Client:
        return self._client or get_supabase_admin()

    def fetch(self, tenant_id: str) -> list[RosterEntry]:
        try:
            response = (
                self.client.table(self.table)
                .select("id, first_name, last_name, tutor_name, alternate_names")
                .eq("tenant_id", tenant_id)
                .execute()
            )
            records = [
                RosterRecord(
                    id=str(row["id"]),
                    first_name=row.get("first_name") or "",
                    last_name=row.get("last_name") or "",
                    tutor_name=row.get("tutor_name"),
                    alternate_names=row.get("alternate_names") or [],
                )
                for row in response.data
            ]
        except (APIError, ValidationError, KeyError) as e:
            raise ProviderError(str(e), provider="roster", tenant_id=tenant_id) from e

        return [build_roster_entry(record) for record in records]


# ============================================
# Alias store
# ============================================

class SupabaseAliasStore(AliasStore):
    """
    Aliases in a table with a unique (tenant_id, normalized_payer_key) constraint.

    Compare-and-set maps to an insert (expected=None, unique violation = lost
    race) or an update filtered on the expected account id (no row = lost race).
    """

    def __init__(self, client: Optional[Client] = None, table: Optional[str] = None):
        self._client = client
        self.table = table or settings.aliases_table

    @property
    def client(self) -> Client:
        return self._client or get_supabase_admin()

    def get(self, tenant_id: str, normalized_payer_key: str) -> Optional[PayerAlias]:
        try:
            response = (
                self.client.table(self.table)
                .select("*")
                .eq("tenant_id", tenant_id)
                .eq("normalized_payer_key", normalized_payer_key)
                .execute()
            )
            return _to_alias(response.data[0]) if response.data else None
        except (APIError, ValidationError) as e:
            raise ProviderError(str(e), provider="alias_store", tenant_id=tenant_id) from e

    def compare_and_set(
        self,
        tenant_id: str,
        normalized_payer_key: str,
        expected_account_id: Optional[str],
        alias: PayerAlias,
    ) -> bool:
        data = _to_row(alias)
        try:
            if expected_account_id is None:
                try:
                    self.client.table(self.table).insert(data).execute()
                except APIError as e:
                    if e.code == UNIQUE_VIOLATION:
                        return False
                    raise
                return True

            response = (
                self.client.table(self.table)
                .update(data)
                .eq("tenant_id", tenant_id)
                .eq("normalized_payer_key", normalized_payer_key)
                .eq("account_id", expected_account_id)
                .execute()
            )
            return bool(response.data)
        except APIError as e:
            raise ProviderError(str(e), provider="alias_store", tenant_id=tenant_id) from e

    def scan(self, tenant_id: str) -> list[PayerAlias]:
        aliases: list[PayerAlias] = []
        offset = 0
        try:
            while True:
                response = (
                    self.client.table(self.table)
                    .select("*")
                    .eq("tenant_id", tenant_id)
                    .order("normalized_payer_key")
                    .range(offset, offset + PAGE_SIZE - 1)
                    .execute()
                )
                aliases.extend(_to_alias(row) for row in response.data)
                if len(response.data) < PAGE_SIZE:
                    break
                offset += PAGE_SIZE
        except (APIError, ValidationError) as e:
            raise ProviderError(str(e), provider="alias_store", tenant_id=tenant_id) from e
        return aliases


def _to_row(alias: PayerAlias) -> dict:
    row = alias.model_dump(mode="json")
    row["record_id"] = alias_record_id(alias.normalized_payer_key)
    return row


def _to_alias(row: dict) -> PayerAlias:
    return PayerAlias(
        tenant_id=row["tenant_id"],
        normalized_payer_key=row["normalized_payer_key"],
        account_id=row["account_id"],
        created_at=row["created_at"],
        created_by=row.get("created_by") or "unknown",
        updated_at=row.get("updated_at"),
        updated_by=row.get("updated_by"),
        source=row.get("source") or "confirmation",
        notes=row.get("notes"),
    )


# ============================================
# Database helper functions
# ============================================

async def get_tenant_role(tenant_id: str, user_id: str) -> str | None:
    """Role of a user within a tenant, or None if not a member."""
    try:
        response = (
            get_supabase_admin().table(settings.tenant_users_table)
            .select("role")
            .eq("tenant_id", tenant_id)
            .eq("user_id", user_id)
            .execute()
        )
    except APIError as e:
        raise ProviderError(str(e), provider="tenant_users", tenant_id=tenant_id) from e
    return response.data[0]["role"] if response.data else None


async def save_reconciliation_run(run: dict) -> dict:
    """Save a reconciliation batch summary."""
    response = get_supabase_admin().table(settings.runs_table).insert(run).execute()
    return response.data[0] if response.data else None


async def get_reconciliation_history(tenant_id: str, limit: int = 30) -> list[dict]:
    """Get reconciliation run history for a tenant."""
    try:
        response = (
            get_supabase_admin().table(settings.runs_table)
            .select("*")
            .eq("tenant_id", tenant_id)
            .order("created_at", desc=True)
            .limit(limit)
            .execute()
        )
    except APIError as e:
        raise ProviderError(str(e), provider="runs", tenant_id=tenant_id) from e
    return response.data
