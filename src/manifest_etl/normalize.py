"""Normalization functions for flight-manifest ingestion.

All functions accept str | None and return the appropriate type or None.
"""

from __future__ import annotations

import re


# ---------------------------------------------------------------------------
# Rule 1: trim
# ---------------------------------------------------------------------------

def trim(value: str | None) -> str | None:
    """Strip leading/trailing whitespace; treat empty string as None."""
    if value is None:
        return None
    v = value.strip()
    return v if v else None


# ---------------------------------------------------------------------------
# Rule 2: normalize_match_name  (for similarity scoring)
# ---------------------------------------------------------------------------

def normalize_match_name(value: str | None) -> str:
    """Lowercase and trim a passenger name for comparison.

    Internal whitespace and punctuation are preserved as-is; only the outer
    whitespace is removed.  None becomes the empty string.
    """
    if value is None:
        return ""
    return value.strip().lower()


# ---------------------------------------------------------------------------
# Rule 3: normalize_token  (for enumerated manifest fields)
# ---------------------------------------------------------------------------

def normalize_token(value: str | None) -> str | None:
    """Trim and upper-case an enumerated token such as a category or status."""
    v = trim(value)
    if v is None:
        return None
    return v.upper()


# ---------------------------------------------------------------------------
# Helper: name_search_fragment
# ---------------------------------------------------------------------------

def name_search_fragment(full_name: str | None, words: int = 2) -> str | None:
    """Return the name up to the end of its ``words``-th whitespace token.

    Used to pre-filter registry candidates before fuzzy scoring:
    "Maria Jose Garcia Lopez" → "Maria Jose".  Inner whitespace is kept
    as written so the fragment stays a literal substring of the stored name
    ("Maria  Garcia" → "Maria  Garcia").
    """
    v = trim(full_name)
    if v is None or words < 1:
        return None
    return re.match(r"\S+(?:\s+\S+){0,%d}" % (words - 1), v).group(0)


# ---------------------------------------------------------------------------
# Helper: compact_upper
# ---------------------------------------------------------------------------

def compact_upper(value: str | None, max_len: int | None = None) -> str:
    """Remove all whitespace and upper-case, optionally truncating.

    "Jane  Doe" → "JANEDOE".  Used to build placeholder document ids.
    """
    if value is None:
        return ""
    v = re.sub(r"\s+", "", value).upper()
    if max_len is not None:
        v = v[:max_len]
    return v
