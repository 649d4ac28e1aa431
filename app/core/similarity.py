# app/core/similarity.py

"""
Similarity scoring for payer names.

- token_set_ratio: order-insensitive word overlap (0-100)
- jaro_winkler:    whole-string edit similarity for typos (0.0-1.0)
"""

from typing import Iterable

from rapidfuzz.distance import Jaro

WINKLER_PREFIX_SCALE = 0.1
WINKLER_MAX_PREFIX = 4


def token_set_ratio(tokens_a: Iterable[str], tokens_b: Iterable[str]) -> int:
    """
    Dice overlap of two token sets, 2 * |A & B| / (|A| + |B|), scaled to 0-100.

    Duplicates and order are ignored. Two empty sets score 100, one empty set 0.
    """
    set_a = {t.upper() for t in tokens_a}
    set_b = {t.upper() for t in tokens_b}

    if not set_a and not set_b:
        return 100
    if not set_a or not set_b:
        return 0

    dice = 2 * len(set_a & set_b) / (len(set_a) + len(set_b))
    # Round half up
    return int(dice * 100 + 0.5)


def common_prefix_length(a: str, b: str, limit: int = WINKLER_MAX_PREFIX) -> int:
    length = 0
    for ch_a, ch_b in zip(a[:limit], b[:limit]):
        if ch_a != ch_b:
            break
        length += 1
    return length


def jaro_winkler(a: str, b: str) -> float:
    """
    Jaro similarity plus a Winkler boost of 0.1 * prefix * (1 - jaro).

    The prefix is the common leading run, capped at 4 characters.
    """
    if a == b:
        return 1.0
    if not a or not b:
        return 0.0

    jaro = Jaro.similarity(a, b)
    if jaro == 0:
        return 0.0

    prefix = common_prefix_length(a, b)
    score = jaro + prefix * WINKLER_PREFIX_SCALE * (1 - jaro)
    return min(1.0, max(0.0, score))
