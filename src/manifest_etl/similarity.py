"""manifest_etl.similarity

Passenger-name similarity in [0.0, 1.0].

Order of evaluation (first rule that applies wins):
  1. either name empty after normalization  → 0.0
  2. names equal after normalization        → 1.0
  3. one name contains the other            → CONTAINMENT_SCORE (0.9)
  4. otherwise 1 - levenshtein / max(len)

Normalization is lower-case plus outer trim only.  The containment rule is
checked strictly before edit distance and wins even when edit distance
would score higher, e.g. "John Smith" vs "John Smith Jr" is always 0.9.
"""

from __future__ import annotations

from manifest_etl.normalize import normalize_match_name

CONTAINMENT_SCORE = 0.9


def levenshtein_distance(a: str, b: str) -> int:
    """Classic edit distance (unit-cost insert/delete/substitute).

    Full Wagner-Fischer DP over two rows; no early exit.
    """
    len_a, len_b = len(a), len(b)
    prev_row: list[int] = list(range(len_b + 1))
    curr_row: list[int] = [0] * (len_b + 1)

    for i in range(1, len_a + 1):
        curr_row[0] = i
        for j in range(1, len_b + 1):
            cost = 0 if a[i - 1] == b[j - 1] else 1
            curr_row[j] = min(
                prev_row[j] + 1,
                curr_row[j - 1] + 1,
                prev_row[j - 1] + cost,
            )
        prev_row, curr_row = curr_row, prev_row

    return prev_row[len_b]


def name_similarity(a: str | None, b: str | None) -> float:
    """Return the similarity of two passenger names (see module docstring)."""
    na = normalize_match_name(a)
    nb = normalize_match_name(b)

    if not na or not nb:
        return 0.0
    if na == nb:
        return 1.0
    if na in nb or nb in na:
        return CONTAINMENT_SCORE

    distance = levenshtein_distance(na, nb)
    return 1.0 - distance / max(len(na), len(nb))
