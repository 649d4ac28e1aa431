# app/core/normalizers.py

"""
Name normalization utilities for payer matching.

Every comparison in the reconciliation core goes through normalize(), so a
statement line and a roster name that differ only in case, accents or
punctuation produce the same key.
"""

import re
import unicodedata

# . , ; : - _ / \ ( ) [ ] { } ' "
PUNCTUATION = re.compile(r"""[.,;:\-_/\\()\[\]{}'"]""")
WHITESPACE = re.compile(r"\s+")
INITIAL = re.compile(r"^[A-Z]\.?$", re.IGNORECASE)


def normalize(text: str | None) -> str:
    """
    Canonical comparison key for free text.

    - Trim and uppercase
    - Decompose and drop combining marks (accents)
    - Punctuation to a single space
    - Collapse whitespace
    """
    if not text or not isinstance(text, str):
        return ""

    s = text.strip().upper()
    s = unicodedata.normalize("NFD", s)
    s = "".join(ch for ch in s if not unicodedata.combining(ch))
    s = PUNCTUATION.sub(" ", s)
    s = WHITESPACE.sub(" ", s).strip()
    return s


def tokenize(text: str | None) -> list[str]:
    """Normalize, then split into word tokens (order kept, empties dropped)."""
    return [t for t in normalize(text).split(" ") if t]


def is_initial(token: str) -> bool:
    """A single letter, optionally followed by a period ("R", "R.")."""
    return bool(INITIAL.match(token))


def drop_initials(tokens: list[str]) -> list[str]:
    return [t for t in tokens if not is_initial(t)]


def name_variants(surname: str, given: str) -> list[str]:
    """Normalized "SURNAME GIVEN" and "GIVEN SURNAME" keys, without duplicates."""
    surname = (surname or "").strip()
    given = (given or "").strip()
    if not surname and not given:
        return []

    variants = [normalize(f"{surname} {given}")]
    reversed_key = normalize(f"{given} {surname}")
    if reversed_key not in variants:
        variants.append(reversed_key)
    return [v for v in variants if v]


def split_surname_given(raw: str) -> tuple[str, str] | None:
    """
    Split "Surname, Given" at the first comma.

    Returns None when the text has no comma or one side is empty.
    """
    if not raw or "," not in raw:
        return None
    surname, _, given = raw.partition(",")
    surname, given = surname.strip(), given.strip()
    if not surname or not given:
        return None
    return surname, given


def split_full_name(full_name: str) -> list[tuple[str, str]]:
    """
    Candidate (surname, given) splits for a space-separated full name.

    "ROJAS MARIA EUGENIA" -> [("ROJAS", "MARIA EUGENIA"), ("ROJAS MARIA", "EUGENIA")]
    """
    parts = (full_name or "").split()
    if len(parts) <= 1:
        return [((full_name or "").strip(), "")]

    splits = [
        (parts[0], " ".join(parts[1:])),
        (" ".join(parts[:-1]), parts[-1]),
    ]
    if splits[0] == splits[1]:
        return splits[:1]
    return splits
