"""manifest_etl.rules

YAML-based reconciliation rules for manifest ingestion.

Responsibilities:
  - Load and validate the YAML rule file (config/reconciliation_rules.yml)
  - Expose the enumerated category and flight-status sets used by the
    line validator
  - Expose the category rank table used by the upgrade resolver
  - Carry the fuzzy-match acceptance threshold, the candidate search limit,
    and the placeholder document-id prefix
  - Hash YAML content for traceability in run reports

Usage:
    from pathlib import Path
    from manifest_etl.rules import load_rules

    rules = load_rules(Path("config/reconciliation_rules.yml"))
    rules.is_category("gold plus")   # True
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

REQUIRED_YAML_KEYS = frozenset({
    "version",
    "match_threshold",
    "categories",
    "category_ranks",
    "flight_statuses",
})

DEFAULT_RULES_PATH = (
    Path(__file__).parent.parent.parent / "config" / "reconciliation_rules.yml"
)


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------

class RulesValidationError(ValueError):
    """Raised when a YAML rule file fails schema validation."""


# ---------------------------------------------------------------------------
# ReconciliationRules dataclass
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ReconciliationRules:
    """Parsed, validated reconciliation rules."""

    version: str
    match_threshold: float
    categories: tuple[str, ...]
    category_ranks: dict[str, int]
    flight_statuses: tuple[str, ...]
    category_aliases: dict[str, str] = field(default_factory=dict)
    search_limit: int = 10
    document_id_prefix: str = "TMP-"
    yaml_hash: str | None = None

    def canonical_category(self, value: str | None) -> str | None:
        """Upper-case a category token and resolve aliases (GOLD_PLUS → GOLD PLUS)."""
        if value is None:
            return None
        token = value.strip().upper()
        return self.category_aliases.get(token, token)

    def is_category(self, value: str | None) -> bool:
        return self.canonical_category(value) in self.categories

    def is_flight_status(self, value: str | None) -> bool:
        if value is None:
            return False
        return value.strip().upper() in self.flight_statuses

    def to_dict(self) -> dict[str, Any]:
        return {
            "version": self.version,
            "match_threshold": self.match_threshold,
            "categories": list(self.categories),
            "category_ranks": dict(self.category_ranks),
            "category_aliases": dict(self.category_aliases),
            "flight_statuses": list(self.flight_statuses),
            "search_limit": self.search_limit,
            "document_id_prefix": self.document_id_prefix,
            "yaml_hash": self.yaml_hash,
        }


DEFAULT_RULES = ReconciliationRules(
    version="v1.0.0",
    match_threshold=0.85,
    categories=("SIGNATURE", "TOP", "BLACK", "PLATINUM", "GOLD PLUS", "GOLD"),
    category_ranks={
        "SIGNATURE": 7,
        "TOP": 6,
        "BLACK": 5,
        "PLATINUM": 4,
        "GOLD PLUS": 3,
        "GOLD": 2,
    },
    flight_statuses=("CONFIRMADO", "CHECK-IN", "ABORDADO", "NO SHOW", "CANCELADO"),
    category_aliases={"GOLD_PLUS": "GOLD PLUS"},
)


# ---------------------------------------------------------------------------
# Loader + validator
# ---------------------------------------------------------------------------

def load_rules(yaml_path: Path) -> ReconciliationRules:
    """Load, validate, and return ReconciliationRules from a YAML file.

    Raises:
        RulesValidationError: If any required field is missing or invalid.
        FileNotFoundError: If the YAML file does not exist.
    """
    raw = yaml_path.read_text(encoding="utf-8")
    data: dict[str, Any] = yaml.safe_load(raw)
    validate_rules(data)
    return ReconciliationRules(
        version=str(data["version"]),
        match_threshold=float(data["match_threshold"]),
        categories=tuple(str(c).upper() for c in data["categories"]),
        category_ranks={str(k).upper(): int(v) for k, v in data["category_ranks"].items()},
        flight_statuses=tuple(str(s).upper() for s in data["flight_statuses"]),
        category_aliases={
            str(k).upper(): str(v).upper()
            for k, v in (data.get("category_aliases") or {}).items()
        },
        search_limit=int(data.get("search_limit", 10)),
        document_id_prefix=str(data.get("document_id_prefix", "TMP-")),
        yaml_hash=hashlib.sha256(raw.encode("utf-8")).hexdigest(),
    )


def validate_rules(data: dict[str, Any]) -> None:
    """Raise RulesValidationError if data does not match the required schema.

    Validates:
      - Required top-level keys present
      - match_threshold numeric and in [0.0, 1.0]
      - categories and flight_statuses non-empty lists
      - every category has a non-negative integer rank
      - aliases point at a declared category
      - search_limit, when present, is a positive integer
    """
    if not isinstance(data, dict):
        raise RulesValidationError("YAML root must be a mapping.")

    missing_keys = REQUIRED_YAML_KEYS - set(data.keys())
    if missing_keys:
        raise RulesValidationError(f"Missing required YAML keys: {sorted(missing_keys)}")

    val = data.get("match_threshold")
    try:
        threshold = float(val)
    except (TypeError, ValueError):
        raise RulesValidationError(f"match_threshold value '{val}' is not numeric.")
    if not (0.0 <= threshold <= 1.0):
        raise RulesValidationError(f"match_threshold {threshold} must be in [0.0, 1.0].")

    categories = data.get("categories")
    if not isinstance(categories, list) or not categories:
        raise RulesValidationError("'categories' must be a non-empty list.")
    statuses = data.get("flight_statuses")
    if not isinstance(statuses, list) or not statuses:
        raise RulesValidationError("'flight_statuses' must be a non-empty list.")

    ranks = data.get("category_ranks")
    if not isinstance(ranks, dict):
        raise RulesValidationError("'category_ranks' must be a mapping.")
    upper_ranks = {str(k).upper(): v for k, v in ranks.items()}
    for cat in categories:
        key = str(cat).upper()
        if key not in upper_ranks:
            raise RulesValidationError(f"category '{cat}' has no entry in category_ranks.")
    for cat, rank in upper_ranks.items():
        if isinstance(rank, bool) or not isinstance(rank, int) or rank < 0:
            raise RulesValidationError(
                f"category_rank '{cat}' value '{rank}' must be a non-negative integer."
            )

    aliases = data.get("category_aliases") or {}
    if not isinstance(aliases, dict):
        raise RulesValidationError("'category_aliases' must be a mapping.")
    declared = {str(c).upper() for c in categories}
    for alias, target in aliases.items():
        if str(target).upper() not in declared:
            raise RulesValidationError(
                f"category_alias '{alias}' points at undeclared category '{target}'."
            )

    if "search_limit" in data:
        limit = data["search_limit"]
        if isinstance(limit, bool) or not isinstance(limit, int) or limit < 1:
            raise RulesValidationError(f"search_limit '{limit}' must be a positive integer.")
