# app/models/roster.py

from typing import Optional
from pydantic import BaseModel, Field


# ============================================
# Roster
# ============================================

class RosterRecord(BaseModel):
    """A client/player as the roster provider returns it."""

    id: str
    first_name: str = ""
    last_name: str = ""
    tutor_name: Optional[str] = None
    alternate_names: list[str] = Field(default_factory=list)


class RosterEntry(BaseModel):
    """One addressable account within a tenant, ready for matching."""

    id: str
    display_name: str
    name_variants: frozenset[str] = Field(
        default_factory=frozenset,
        description="Normalized keys for every plausible name ordering",
    )
    tokens: frozenset[str] = Field(
        default_factory=frozenset,
        description="Word tokens of the display name, used by fuzzy scoring",
    )

    class Config:
        frozen = True
