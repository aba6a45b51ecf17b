"""Loyalty-category precedence.

SIGNATURE > TOP > BLACK > PLATINUM > GOLD PLUS > GOLD; anything else ranks 0.
A manifest category only replaces a stored one when it ranks strictly higher.
"""

from __future__ import annotations

from manifest_etl.rules import DEFAULT_RULES, ReconciliationRules


def category_rank(category: str | None, rules: ReconciliationRules = DEFAULT_RULES) -> int:
    canonical = rules.canonical_category(category)
    if canonical is None:
        return 0
    return rules.category_ranks.get(canonical, 0)


def should_upgrade(
    manifest_category: str | None,
    stored_category: str | None,
    rules: ReconciliationRules = DEFAULT_RULES,
) -> bool:
    return category_rank(manifest_category, rules) > category_rank(stored_category, rules)
