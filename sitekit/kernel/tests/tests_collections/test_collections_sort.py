"""
SiteKit Collections -- Sort Tests

sort_items orders items by the loop's sort setting:
  - none keeps stored order, manual uses manual_order
  - random is seeded, so a loop renders the same order every time
  - field sorts compare by declared type, missing values first ascending,
    and mixed values fall back to one text key
"""

from __future__ import annotations

from sitekit.kernel.collections import sort_items


def make_items(values: list, field_id: str = "f") -> list[dict]:
    return [{"id": f"i{n}", "manual_order": n, "values": {field_id: value}} for n, value in enumerate(values)]


def order(items: list[dict]) -> list[str]:
    return [i["id"] for i in items]


class TestSortModes:
    def test_none_keeps_stored_order(self):
        items = make_items(["b", "a", "c"])
        assert order(sort_items(items, None, None, [])) == ["i0", "i1", "i2"]
        assert order(sort_items(items, "none", "desc", [])) == ["i0", "i1", "i2"]

    def test_manual_uses_manual_order(self):
        items = list(reversed(make_items(["x", "y", "z"])))
        assert order(sort_items(items, "manual", None, [])) == ["i0", "i1", "i2"]

    def test_random_is_deterministic_for_a_seed(self):
        items = make_items(list(range(20)))
        first = sort_items(items, "random", None, [], seed="list")
        second = sort_items(items, "random", None, [], seed="list")
        assert order(first) == order(second)
        assert sorted(order(first)) == sorted(order(items))


class TestFieldSort:
    def test_numbers_sort_numerically(self):
        items = make_items(["10", "9", "100"])
        fields = [{"id": "f", "type": "number"}]
        assert order(sort_items(items, "f", "asc", fields)) == ["i1", "i0", "i2"]

    def test_dates_sort_chronologically(self):
        items = make_items(["2024-03-01T00:00:00Z", "2023-12-31T23:00:00-05:00", "2024-01-15"])
        fields = [{"id": "f", "type": "date"}]
        assert order(sort_items(items, "f", "asc", fields)) == ["i1", "i2", "i0"]
        assert order(sort_items(items, "f", "desc", fields))[0] == "i0"

    def test_text_sort_is_case_insensitive(self):
        items = make_items(["banana", "Apple", "cherry"])
        fields = [{"id": "f", "type": "text"}]
        assert order(sort_items(items, "f", "asc", fields)) == ["i1", "i0", "i2"]

    def test_missing_values_sort_first_ascending(self):
        items = make_items(["5", None, "1"])
        fields = [{"id": "f", "type": "number"}]
        assert order(sort_items(items, "f", "asc", fields)) == ["i1", "i2", "i0"]
        assert order(sort_items(items, "f", "desc", fields)) == ["i0", "i2", "i1"]

    def test_mixed_number_values_fall_back_to_text(self):
        items = make_items(["10", "n/a", "9"])
        fields = [{"id": "f", "type": "number"}]
        assert order(sort_items(items, "f", "asc", fields)) == ["i0", "i2", "i1"]
