# app/core/batch.py

"""
Reconciliation batch runner.

Splits the work in two:
- run():      compute a verdict for every row (read-only, parallel)
- confirm():  commit one human decision to the Alias Store (check-then-set per key)

The runner is the only component that writes aliases.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone
from typing import Iterable, Optional, Sequence

from app.config import get_settings
from app.exceptions import ProviderError
from app.models import (
    BatchReport,
    BatchSummary,
    ConfirmOutcome,
    PayerAlias,
    ReconciliationResult,
    ReconciliationRow,
    RosterEntry,
    RowDecision,
    SeedConflict,
    SeedPair,
    SeedReport,
)
from app.models.alias import AliasSource
from app.core.alias_store import AliasStore
from app.core.conflicts import check_conflict
from app.core.matching import FuzzyStrategy, resolve
from app.core.normalizers import name_variants, normalize, split_full_name
from app.core.roster import Roster, RosterProvider

logger = logging.getLogger(__name__)
settings = get_settings()


class BatchRunner:
    """Runs the matching cascade over a row-set and owns the learning loop."""

    def __init__(
        self,
        alias_store: AliasStore,
        roster_provider: Optional[RosterProvider] = None,
        workers: Optional[int] = None,
        strategy: Optional[FuzzyStrategy] = None,
    ):
        self.alias_store = alias_store
        self.roster_provider = roster_provider
        self.workers = workers if workers is not None else settings.batch_workers
        self.strategy = strategy

    # ============================================
    # Batch run (read path)
    # ============================================

    def run(
        self,
        tenant_id: str,
        rows: Sequence[ReconciliationRow],
        roster: Optional[Roster | Iterable[RosterEntry]] = None,
    ) -> BatchReport:
        """
        Resolve every row against the tenant's roster and aliases.

        Results come back in input order, one per row. Provider failures
        abort the whole batch with ProviderError.
        """
        started_at = datetime.now(timezone.utc)
        logger.info("Batch start tenant=%s rows=%d", tenant_id, len(rows))

        roster = self._load_roster(tenant_id, roster)
        aliases = self._load_aliases(tenant_id)

        def evaluate(indexed: tuple[int, ReconciliationRow]) -> ReconciliationResult:
            index, row = indexed
            result = resolve(
                row.payer_raw,
                row.reference,
                roster,
                aliases,
                strategy=self.strategy,
                row_index=index,
            )
            return result.model_copy(update={
                "amount": row.amount,
                "reference": row.reference,
                "date": row.date,
            })

        if self.workers > 1 and len(rows) > 1:
            with ThreadPoolExecutor(max_workers=self.workers) as executor:
                results = list(executor.map(evaluate, enumerate(rows)))
        else:
            results = [evaluate(item) for item in enumerate(rows)]

        summary = summarize(results)
        duration_ms = int((datetime.now(timezone.utc) - started_at).total_seconds() * 1000)

        logger.info(
            "Batch done tenant=%s matched=%d review=%d unmatched=%d in %dms",
            tenant_id, summary.matched, summary.review, summary.unmatched, duration_ms,
        )

        return BatchReport(
            tenant_id=tenant_id,
            results=results,
            summary=summary,
            started_at=started_at,
            duration_ms=duration_ms,
        )

    # ============================================
    # Learning loop (write path)
    # ============================================

    def confirm(
        self,
        tenant_id: str,
        normalized_payer_key: str,
        account_id: str,
        acting_user: str,
        source: AliasSource = "confirmation",
        notes: Optional[str] = None,
    ) -> ConfirmOutcome:
        """
        Commit a human-confirmed payer -> account alias.

        Never overwrites an alias that points elsewhere; that comes back as a
        conflict naming the existing account. Re-confirming the same mapping
        is a no-op.
        """
        key = normalize(normalized_payer_key)
        if not key:
            raise ValueError("Cannot confirm an empty payer key")
        if not account_id:
            raise ValueError("Cannot confirm without an account id")

        def outcome(status: str, existing: Optional[str] = None) -> ConfirmOutcome:
            return ConfirmOutcome(
                tenant_id=tenant_id,
                normalized_payer_key=key,
                account_id=account_id,
                status=status,
                existing_account_id=existing,
            )

        try:
            check = check_conflict(tenant_id, key, account_id, self.alias_store)
            if not check.ok:
                return outcome("conflict", check.existing_account_id)
            if check.existing_account_id == account_id:
                return outcome("unchanged", account_id)

            alias = PayerAlias(
                tenant_id=tenant_id,
                normalized_payer_key=key,
                account_id=account_id,
                created_at=datetime.now(timezone.utc),
                created_by=acting_user,
                source=source,
                notes=notes,
            )
            if self.alias_store.compare_and_set(tenant_id, key, None, alias):
                logger.info("Alias created tenant=%s key=%r -> %s by %s", tenant_id, key, account_id, acting_user)
                return outcome("created")

            # Another writer got there first
            current = self.alias_store.get(tenant_id, key)
        except ProviderError:
            raise
        except Exception as e:
            logger.error("Alias store failed for tenant=%s", tenant_id, exc_info=True)
            raise ProviderError(str(e), provider="alias_store", tenant_id=tenant_id) from e

        current_account_id = current.account_id if current else None
        if current_account_id == account_id:
            return outcome("unchanged", account_id)
        logger.warning("Lost alias race tenant=%s key=%r, now -> %s", tenant_id, key, current_account_id)
        return outcome("conflict", current_account_id)

    def reassign(
        self,
        tenant_id: str,
        normalized_payer_key: str,
        account_id: str,
        acting_user: str,
        expected_account_id: Optional[str],
        notes: Optional[str] = None,
    ) -> ConfirmOutcome:
        """
        Explicitly re-point an alias. Only succeeds if it still points at
        `expected_account_id`.
        """
        key = normalize(normalized_payer_key)
        if not key:
            raise ValueError("Cannot reassign an empty payer key")
        if not account_id:
            raise ValueError("Cannot reassign without an account id")

        now = datetime.now(timezone.utc)
        try:
            current = self.alias_store.get(tenant_id, key)
            current_account_id = current.account_id if current else None

            if current_account_id == account_id:
                status, existing = "unchanged", account_id
            elif current_account_id != expected_account_id:
                status, existing = "conflict", current_account_id
            else:
                if current is None:
                    alias = PayerAlias(
                        tenant_id=tenant_id,
                        normalized_payer_key=key,
                        account_id=account_id,
                        created_at=now,
                        created_by=acting_user,
                        source="reassignment",
                        notes=notes,
                    )
                else:
                    alias = current.model_copy(update={
                        "account_id": account_id,
                        "updated_at": now,
                        "updated_by": acting_user,
                        "source": "reassignment",
                        "notes": notes if notes is not None else current.notes,
                    })

                if self.alias_store.compare_and_set(tenant_id, key, expected_account_id, alias):
                    status = "created" if current is None else "updated"
                    existing = current_account_id
                    logger.info(
                        "Alias reassigned tenant=%s key=%r %s -> %s by %s",
                        tenant_id, key, current_account_id, account_id, acting_user,
                    )
                else:
                    latest = self.alias_store.get(tenant_id, key)
                    status, existing = "conflict", latest.account_id if latest else None
        except ProviderError:
            raise
        except Exception as e:
            logger.error("Alias store failed for tenant=%s", tenant_id, exc_info=True)
            raise ProviderError(str(e), provider="alias_store", tenant_id=tenant_id) from e

        return ConfirmOutcome(
            tenant_id=tenant_id,
            normalized_payer_key=key,
            account_id=account_id,
            status=status,
            existing_account_id=existing,
        )

    def apply_decisions(
        self,
        report: BatchReport,
        decisions: Sequence[RowDecision],
        acting_user: str,
    ) -> BatchReport:
        """
        Apply operator confirm/reject decisions to a batch.

        Returns a new report; the original results are left untouched.
        Confirmations whose alias write is refused come back as `conflict`.
        Every decision is validated before the first write, so a ValueError
        leaves the Alias Store as it was.
        """
        results = list(report.results)
        position = {r.row_index: i for i, r in enumerate(results)}
        confirmed: set[int] = set()
        rejected: set[int] = set()

        planned: list[tuple[RowDecision, int, Optional[str]]] = []
        for decision in decisions:
            if decision.row_index not in position:
                raise ValueError(f"Unknown row index {decision.row_index}")
            i = position[decision.row_index]
            if decision.action == "reject":
                planned.append((decision, i, None))
                continue

            result = results[i]
            account_id = decision.account_id or result.matched_account_id
            if not account_id:
                raise ValueError(f"Row {decision.row_index}: confirm needs an account id")
            if not normalize(result.normalized_payer_key):
                raise ValueError(f"Row {decision.row_index}: cannot confirm an empty payer")
            planned.append((decision, i, account_id))

        for decision, i, account_id in planned:
            result = results[i]

            if decision.action == "reject":
                results[i] = result.model_copy(update={
                    "status": "unmatched",
                    "matched_account_id": None,
                    "explanation": "Rejected by operator",
                })
                rejected.add(decision.row_index)
                confirmed.discard(decision.row_index)
                continue

            outcome = self.confirm(report.tenant_id, result.normalized_payer_key, account_id, acting_user)
            if outcome.ok:
                results[i] = result.model_copy(update={
                    "status": "matched",
                    "matched_account_id": account_id,
                    "score": 1.0,
                    "explanation": "Confirmed by operator",
                })
                confirmed.add(decision.row_index)
                rejected.discard(decision.row_index)
            else:
                results[i] = result.model_copy(update={
                    "status": "conflict",
                    "matched_account_id": None,
                    "explanation": f"Payer already aliased to {outcome.existing_account_id}",
                })
                confirmed.discard(decision.row_index)

        return report.model_copy(update={
            "results": results,
            "summary": summarize(results, confirmed=confirmed, rejected=rejected),
        })

    # ============================================
    # Seeding
    # ============================================

    def seed(
        self,
        tenant_id: str,
        pairs: Sequence[SeedPair],
        roster: Optional[Roster | Iterable[RosterEntry]] = None,
        acting_user: str = "seed-script",
    ) -> SeedReport:
        """
        Load (client name, payer text) pairs into the Alias Store.

        Client names go through the same cascade as live imports. A payer that
        the list assigns to several clients, or that is already aliased to
        another client, is reported as a conflict and not written.
        """
        roster = self._load_roster(tenant_id, roster)
        report = SeedReport()

        assignments: dict[str, dict[str, list[str]]] = {}
        for pair in pairs:
            client_name = pair.client_name.strip()
            payer_key = normalize(pair.payer_text)
            if not client_name or not payer_key:
                logger.debug("Skipping incomplete seed pair %r", pair)
                continue

            account_id = self._resolve_client(client_name, roster)
            if account_id is None:
                report.not_found.append(pair)
                continue

            by_account = assignments.setdefault(payer_key, {})
            names = by_account.setdefault(account_id, [])
            if client_name not in names:
                names.append(client_name)

        for payer_key, by_account in assignments.items():
            if len(by_account) > 1:
                clients = ", ".join(name for names in by_account.values() for name in names)
                report.conflicts.append(SeedConflict(
                    normalized_payer_key=payer_key,
                    account_ids=list(by_account),
                    reason=f"Payer appears for several clients: {clients}",
                ))
                continue

            account_id = next(iter(by_account))
            outcome = self.confirm(tenant_id, payer_key, account_id, acting_user, source="seed")
            if outcome.status == "created":
                report.created += 1
            elif outcome.status == "unchanged":
                report.unchanged += 1
            else:
                report.conflicts.append(SeedConflict(
                    normalized_payer_key=payer_key,
                    account_ids=[outcome.existing_account_id or "", account_id],
                    reason="Payer already assigned to another client",
                ))

        logger.info(
            "Seed tenant=%s created=%d unchanged=%d not_found=%d conflicts=%d",
            tenant_id, report.created, report.unchanged, len(report.not_found), len(report.conflicts),
        )
        return report

    def _resolve_client(self, client_name: str, roster: Roster) -> Optional[str]:
        """Account id for a client's full name, trying reordered splits on a miss."""
        result = resolve(client_name, None, roster, strategy="token_set")
        if result.status == "matched":
            return result.matched_account_id

        for surname, given in split_full_name(client_name):
            if not surname or not given:
                continue
            for variant in name_variants(surname, given):
                retry = resolve(variant, None, roster, strategy="token_set")
                if retry.status == "matched" and retry.match_type == "exact":
                    return retry.matched_account_id
        return None

    # ============================================
    # Providers
    # ============================================

    def _load_roster(
        self,
        tenant_id: str,
        roster: Optional[Roster | Iterable[RosterEntry]],
    ) -> Roster:
        if roster is not None:
            return roster if isinstance(roster, Roster) else Roster(roster)
        if self.roster_provider is None:
            raise ProviderError("No roster given and no roster provider configured", provider="roster", tenant_id=tenant_id)
        try:
            return Roster(self.roster_provider.fetch(tenant_id))
        except ProviderError:
            raise
        except Exception as e:
            logger.error("Roster provider failed for tenant=%s", tenant_id, exc_info=True)
            raise ProviderError(str(e), provider="roster", tenant_id=tenant_id) from e

    def _load_aliases(self, tenant_id: str) -> dict[str, str]:
        try:
            return self.alias_store.snapshot(tenant_id)
        except ProviderError:
            raise
        except Exception as e:
            logger.error("Alias store failed for tenant=%s", tenant_id, exc_info=True)
            raise ProviderError(str(e), provider="alias_store", tenant_id=tenant_id) from e


def summarize(
    results: Sequence[ReconciliationResult],
    confirmed: Optional[set[int]] = None,
    rejected: Optional[set[int]] = None,
) -> BatchSummary:
    """Order-independent count of results by outcome."""
    confirmed = confirmed or set()
    rejected = rejected or set()
    summary = BatchSummary(total_rows=len(results))

    for result in results:
        if result.row_index in confirmed:
            summary.confirmed += 1
        elif result.row_index in rejected:
            summary.rejected += 1
        elif result.status == "matched":
            summary.matched += 1
        elif result.status == "review":
            summary.review += 1
        elif result.status == "conflict":
            summary.conflicted += 1
        else:
            summary.unmatched += 1

    if results:
        summary.match_rate = (summary.matched + summary.confirmed) / len(results) * 100
        summary.auto_match_rate = summary.matched / len(results) * 100
    return summary
