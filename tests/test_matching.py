from __future__ import annotations

import re

from ops_agent.services.matching import (
    index_candidates,
    is_canonical_id,
    is_partial_id_query,
    numeric_core,
    prioritize_matches,
    search_pattern,
    trailing_number,
)


def _rows(*codes):
    return [{"id": f"row-{position}", "code": code} for position, code in enumerate(codes)]


def test_partial_id_queries():
    assert is_partial_id_query("45678")
    assert is_partial_id_query("SHP-45678")
    assert is_partial_id_query("tsk00012")
    assert not is_partial_id_query("grey sofa")
    assert not is_partial_id_query("ABC-123")


def test_numeric_core_and_trailing_number():
    assert numeric_core("SHP-2024-45678") == "202445678"
    assert numeric_core("ITM-00042") == "00042"
    assert trailing_number("SHP-2024-45678") == "45678"
    assert trailing_number("no digits") == ""


def test_exact_tier_wins_over_suffix():
    rows = _rows("SHP-2024-45678", "SHP-2024-145678")

    ranked = prioritize_matches(rows, "45678", "code")

    assert [row["code"] for row in ranked] == ["SHP-2024-45678"]


def test_substring_tier_keeps_every_candidate_in_order():
    rows = _rows("SHP-2024-45678", "SHP-2024-45679", "SHP-2024-145678")

    ranked = prioritize_matches(rows, "4567", "code")

    assert [row["code"] for row in ranked] == ["SHP-2024-45678", "SHP-2024-45679", "SHP-2024-145678"]


def test_suffix_tier_returned_when_no_exact_match():
    rows = _rows("ITM-91234", "ITM-12345", "ITM-55123")

    ranked = prioritize_matches(rows, "234", "code")

    assert [row["code"] for row in ranked] == ["ITM-91234"]


def test_text_query_matches_code_case_insensitively():
    rows = _rows("A-01", "A-010", "B-02")

    assert [row["code"] for row in prioritize_matches(rows, "a-01", "code")] == ["A-01"]


def test_no_match_returns_empty_list():
    assert prioritize_matches(_rows("ITM-1"), "999", "code") == []


def test_search_pattern_tolerates_separators():
    pattern = search_pattern("45678")

    assert re.search(pattern, "SHP-2024-45678")
    assert re.search(pattern, "SHP-2024-4-5678")
    assert search_pattern("a.b") == re.escape("a.b")


def test_index_candidates_is_one_based_and_capped():
    indexed = index_candidates([{"id": "a"}, {"id": "b"}, {"id": "c"}], 2)

    assert indexed == [{"index": 1, "id": "a"}, {"index": 2, "id": "b"}]


def test_canonical_ids():
    assert is_canonical_id("00000000-0000-4000-8000-000000000050")
    assert not is_canonical_id("ITM-10001")
