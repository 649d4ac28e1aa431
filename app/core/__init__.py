# app/core/__init__.py

from app.core.matching import resolve
from app.core.batch import BatchRunner, summarize
from app.core.alias_store import AliasStore, InMemoryAliasStore
from app.core.conflicts import check_conflict
from app.core.roster import Roster, RosterProvider, build_roster_entry
from app.core.similarity import jaro_winkler, token_set_ratio
from app.core.normalizers import (
    normalize,
    tokenize,
    is_initial,
    name_variants,
)

__all__ = [
    "resolve",
    "BatchRunner",
    "summarize",
    "AliasStore",
    "InMemoryAliasStore",
    "check_conflict",
    "Roster",
    "RosterProvider",
    "build_roster_entry",
    "jaro_winkler",
    "token_set_ratio",
    "normalize",
    "tokenize",
    "is_initial",
    "name_variants",
]
