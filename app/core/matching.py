# app/core/matching.py

"""
Core payer matching cascade.

Answers one question for a free-text payer name: which roster account, if
any, does it refer to, and how sure are we? Tiers run in a fixed order and
the first one that decides wins:

1. Empty key       -> unmatched
2. Alias           -> matched (alias)
3. Exact variant   -> matched (exact), or review when several accounts share the name
4. Fuzzy           -> matched (fuzzy) / review / unmatched

The cascade only reads the roster and the alias snapshot. It never raises for
business outcomes; ambiguity and no-match are encoded in the result status.
"""

import logging
from typing import Iterable, Literal, Mapping, Optional

from app.config import get_settings
from app.models import CandidateScore, ReconciliationResult, RosterEntry
from app.core.normalizers import (
    drop_initials,
    normalize,
    split_surname_given,
    tokenize,
)
from app.core.roster import Roster, as_roster
from app.core.similarity import jaro_winkler, token_set_ratio

logger = logging.getLogger(__name__)
settings = get_settings()

FuzzyStrategy = Literal["token_set", "label"]

# ============================================
# Thresholds
# ============================================

# Token-set tier (0-100 scale)
FUZZY_MATCH_THRESHOLD = 75   # minimum score to consider a fuzzy hit at all
FUZZY_CLEAR_LEAD = 8         # top must beat the runner-up by this much to auto-match

# Whole-label Jaro-Winkler tier (0-1 scale)
LABEL_MATCH_THRESHOLD = 0.92
LABEL_REVIEW_THRESHOLD = 0.85
LABEL_CLEAR_LEAD = 0.05

# Candidates attached to review results
MAX_CANDIDATES = 5


def resolve(
    payer_raw: str,
    reference_hint: Optional[str],
    roster: Roster | Iterable[RosterEntry],
    aliases: Optional[Mapping[str, str]] = None,
    strategy: Optional[FuzzyStrategy] = None,
    max_key_length: Optional[int] = None,
    work_budget: Optional[int] = None,
    row_index: int = 0,
) -> ReconciliationResult:
    """
    Run the matching cascade for one payer.

    `aliases` is a read-only normalized-key -> account_id view of the tenant's
    Alias Store. `strategy` picks the fuzzy tier: token-set overlap (default)
    or Jaro-Winkler over full name labels.
    """
    roster = as_roster(roster)
    aliases = aliases or {}
    strategy = strategy or settings.fuzzy_strategy
    max_key_length = max_key_length if max_key_length is not None else settings.max_payer_key_length
    work_budget = work_budget if work_budget is not None else settings.fuzzy_work_budget

    payer_raw = payer_raw if isinstance(payer_raw, str) else ""
    key = normalize(payer_raw)

    # ============================================
    # Tier 1: empty key
    # ============================================
    if not key:
        return _result(row_index, payer_raw, key, "unmatched", score=0.0,
                       explanation="Empty payer name")

    # ============================================
    # Tier 2: alias
    # ============================================
    account_id = aliases.get(key)
    if account_id:
        logger.debug(
            "Alias hit %r -> %s%s", key, account_id,
            "" if account_id in roster.by_id else " (not in roster snapshot)",
        )
        return _result(
            row_index, payer_raw, key, "matched",
            account_id=account_id,
            match_type="alias",
            score=1.0,
            candidates=[CandidateScore(
                account_id=account_id,
                display_name=roster.display_name(account_id),
                score=1.0,
            )],
            explanation=f"Alias: {key} -> {account_id}",
        )

    # ============================================
    # Tier 3: exact name variant
    # ============================================
    exact = roster.lookup(_exact_keys(payer_raw, key))

    if len(exact) == 1:
        entry = exact[0]
        logger.debug("Exact variant hit %r -> %s", key, entry.id)
        return _result(
            row_index, payer_raw, key, "matched",
            account_id=entry.id,
            match_type="exact",
            score=1.0,
            candidates=[_candidate(entry, 1.0)],
            explanation="Exact name match",
        )

    if len(exact) > 1:
        by_hint = _disambiguate(exact, reference_hint)
        if by_hint is not None:
            logger.debug("Reference hint %r picked %s among %d accounts", reference_hint, by_hint.id, len(exact))
            return _result(
                row_index, payer_raw, key, "matched",
                account_id=by_hint.id,
                match_type="exact",
                score=1.0,
                candidates=[_candidate(by_hint, 1.0)],
                explanation=f"Exact name match, disambiguated by reference {reference_hint!r}",
            )
        return _result(
            row_index, payer_raw, key, "review",
            match_type="exact",
            score=1.0,
            candidates=[_candidate(entry, 1.0) for entry in exact],
            explanation=f"{len(exact)} accounts share this name",
        )

    # ============================================
    # Tier 4: fuzzy
    # ============================================
    if len(key) > max_key_length:
        logger.warning("Payer key of %d chars exceeds %d, skipping fuzzy tier", len(key), max_key_length)
        return _result(row_index, payer_raw, key, "unmatched", score=0.0,
                       explanation="Payer text too long for fuzzy matching")

    if strategy == "label":
        return _resolve_by_label(row_index, payer_raw, key, roster, work_budget)
    return _resolve_by_tokens(row_index, payer_raw, key, roster, work_budget)


def _exact_keys(payer_raw: str, key: str) -> list[str]:
    """The normalized key plus both orderings of a "Surname, Given" payer."""
    keys = [key]
    split = split_surname_given(payer_raw)
    if split:
        surname, given = split
        for variant in (normalize(f"{surname} {given}"), normalize(f"{given} {surname}")):
            if variant and variant not in keys:
                keys.append(variant)
    return keys


def _disambiguate(entries: list[RosterEntry], reference_hint: Optional[str]) -> Optional[RosterEntry]:
    """Unique entry whose id or display name contains the reference hint."""
    hint = (reference_hint or "").strip().upper()
    if not hint:
        return None
    hint_key = normalize(hint)

    hits = [
        entry for entry in entries
        if hint in entry.id.upper()
        or hint in entry.display_name.upper()
        or (hint_key and hint_key in normalize(entry.display_name))
    ]
    return hits[0] if len(hits) == 1 else None


# ============================================
# Fuzzy: token-set overlap
# ============================================

def _resolve_by_tokens(
    row_index: int,
    payer_raw: str,
    key: str,
    roster: Roster,
    work_budget: int,
) -> ReconciliationResult:
    payer_tokens = tokenize(payer_raw)
    without_initials = drop_initials(payer_tokens)

    work = len(payer_tokens) * sum(len(entry.tokens) for entry in roster.entries)
    if work > work_budget:
        logger.warning("Token scoring for %r needs %d steps (budget %d), giving up", key, work, work_budget)
        return _result(row_index, payer_raw, key, "unmatched", score=0.0,
                       explanation="Fuzzy matching budget exceeded")

    scored: list[tuple[RosterEntry, int]] = []
    for entry in roster.entries:
        score = token_set_ratio(payer_tokens, entry.tokens)
        if without_initials and len(without_initials) < len(payer_tokens):
            score = max(score, token_set_ratio(without_initials, entry.tokens))
        scored.append((entry, score))

    # Stable sort keeps roster order among equal scores
    scored.sort(key=lambda s: s[1], reverse=True)

    top = scored[0][1] if scored else 0
    runner_up = scored[1][1] if len(scored) > 1 else None
    candidates = [_candidate(entry, score / 100) for entry, score in scored[:MAX_CANDIDATES] if score > 0]

    if top < FUZZY_MATCH_THRESHOLD:
        return _result(
            row_index, payer_raw, key, "unmatched",
            score=top / 100,
            candidates=candidates,
            explanation=f"No match: best score {top} < {FUZZY_MATCH_THRESHOLD}",
        )

    if runner_up is None or top - runner_up >= FUZZY_CLEAR_LEAD:
        entry = scored[0][0]
        logger.debug("Fuzzy hit %r -> %s (score %d)", key, entry.id, top)
        return _result(
            row_index, payer_raw, key, "matched",
            account_id=entry.id,
            match_type="fuzzy",
            score=top / 100,
            candidates=candidates,
            explanation=f"Fuzzy match (score {top}, lead >= {FUZZY_CLEAR_LEAD})",
        )

    return _result(
        row_index, payer_raw, key, "review",
        match_type="fuzzy",
        score=top / 100,
        candidates=candidates,
        explanation=f"Review: top={top}, runner-up={runner_up}, lead < {FUZZY_CLEAR_LEAD}",
    )


# ============================================
# Fuzzy: Jaro-Winkler over full labels
# ============================================

def _resolve_by_label(
    row_index: int,
    payer_raw: str,
    key: str,
    roster: Roster,
    work_budget: int,
) -> ReconciliationResult:
    labels = [
        (entry, label)
        for entry in roster.entries
        for label in _labels(entry)
    ]

    work = len(key) * sum(len(label) for _, label in labels)
    if work > work_budget:
        logger.warning("Label scoring for %r needs %d steps (budget %d), giving up", key, work, work_budget)
        return _result(row_index, payer_raw, key, "unmatched", score=0.0,
                       explanation="Fuzzy matching budget exceeded")

    # Best score per account
    best: dict[str, tuple[RosterEntry, float]] = {}
    for entry, label in labels:
        score = jaro_winkler(key, label)
        if entry.id not in best or best[entry.id][1] < score:
            best[entry.id] = (entry, score)

    ranked = sorted(best.values(), key=lambda s: s[1], reverse=True)
    if not ranked:
        return _result(row_index, payer_raw, key, "unmatched", score=0.0,
                       explanation="Empty roster")

    top_entry, top = ranked[0]
    runner_up = ranked[1][1] if len(ranked) > 1 else None
    candidates = [
        _candidate(entry, score)
        for entry, score in ranked[:MAX_CANDIDATES]
        if score >= LABEL_REVIEW_THRESHOLD
    ]

    if top >= LABEL_MATCH_THRESHOLD and (runner_up is None or top - runner_up >= LABEL_CLEAR_LEAD):
        logger.debug("Label hit %r -> %s (%.3f)", key, top_entry.id, top)
        return _result(
            row_index, payer_raw, key, "matched",
            account_id=top_entry.id,
            match_type="fuzzy",
            score=top,
            candidates=candidates,
            explanation=f"Fuzzy label match ({top:.2f})",
        )

    if top >= LABEL_REVIEW_THRESHOLD:
        return _result(
            row_index, payer_raw, key, "review",
            match_type="fuzzy",
            score=top,
            candidates=candidates,
            explanation=f"Review: label similarity {top:.2f}",
        )

    return _result(
        row_index, payer_raw, key, "unmatched",
        score=top,
        explanation=f"No match: label similarity {top:.2f} < {LABEL_REVIEW_THRESHOLD}",
    )


def _labels(entry: RosterEntry) -> list[str]:
    labels = sorted(entry.name_variants)
    display_key = normalize(entry.display_name)
    if display_key and display_key not in labels:
        labels.append(display_key)
    return labels


# ============================================
# Helpers
# ============================================

def _candidate(entry: RosterEntry, score: float) -> CandidateScore:
    return CandidateScore(account_id=entry.id, display_name=entry.display_name, score=score)


def _result(
    row_index: int,
    payer_raw: str,
    key: str,
    status: str,
    score: float,
    account_id: Optional[str] = None,
    match_type: Optional[str] = None,
    candidates: Optional[list[CandidateScore]] = None,
    explanation: str = "",
) -> ReconciliationResult:
    return ReconciliationResult(
        row_index=row_index,
        payer_raw=payer_raw,
        normalized_payer_key=key,
        status=status,
        matched_account_id=account_id,
        match_type=match_type,
        score=score,
        candidates=candidates or [],
        explanation=explanation,
    )
