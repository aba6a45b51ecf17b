"""Unit tests for manifest_etl.category_rank."""

from __future__ import annotations

import pytest

from manifest_etl.category_rank import category_rank, should_upgrade


class TestCategoryRank:
    @pytest.mark.parametrize("category,rank", [
        ("SIGNATURE", 7),
        ("TOP", 6),
        ("BLACK", 5),
        ("PLATINUM", 4),
        ("GOLD PLUS", 3),
        ("GOLD_PLUS", 3),
        ("GOLD", 2),
        ("gold", 2),
        ("SILVER", 0),
        ("", 0),
        (None, 0),
    ])
    def test_ranks(self, category, rank):
        assert category_rank(category) == rank


class TestShouldUpgrade:
    def test_higher_manifest_category_upgrades(self):
        assert should_upgrade("PLATINUM", "GOLD")

    def test_equal_does_not_upgrade(self):
        assert not should_upgrade("GOLD", "GOLD")

    def test_lower_never_downgrades(self):
        assert not should_upgrade("GOLD", "SIGNATURE")

    def test_unknown_stored_upgrades(self):
        assert should_upgrade("GOLD", "LEGACY")

    def test_unknown_manifest_never_upgrades(self):
        assert not should_upgrade("LEGACY", "GOLD")

    def test_alias_compares_equal(self):
        assert not should_upgrade("GOLD_PLUS", "GOLD PLUS")
