from types import SimpleNamespace

import pytest
from fastapi import HTTPException

from services.filtering import (
    PageWindow,
    normalize_sort,
    page_envelope,
    rank_by_relevance,
    relevance_score,
    remedy_relevance,
    resolve_page_window,
    story_relevance,
    validate_search_query,
)


def _remedy(remedy_id, title, subtitle=None, region=None, category=None, trust_level=0):
    return SimpleNamespace(
        id=remedy_id,
        title=title,
        subtitle=subtitle,
        region=region,
        category=SimpleNamespace(name=category) if category else None,
        trust_level=trust_level,
    )


def test_validate_search_query_rejects_single_character():
    with pytest.raises(HTTPException) as exc_info:
        validate_search_query("a")
    assert exc_info.value.status_code == 400
    assert "at least 2 characters" in exc_info.value.detail


def test_validate_search_query_trims_and_allows_missing_when_optional():
    assert validate_search_query("  jahe ") == "jahe"
    assert validate_search_query(None) is None
    assert validate_search_query("   ") is None
    with pytest.raises(HTTPException):
        validate_search_query("", required=True)


def test_normalize_sort_resolves_aliases_and_rejects_unknown():
    assert normalize_sort(None) == "newest"
    assert normalize_sort("most_viewed") == "popularity"
    assert normalize_sort("most_verified") == "verification_count"
    assert normalize_sort("Alphabetical") == "alphabetical"
    assert normalize_sort(None, default="relevance") == "relevance"
    with pytest.raises(HTTPException) as exc_info:
        normalize_sort("random")
    assert exc_info.value.status_code == 400


def test_resolve_page_window_bounds():
    window = resolve_page_window(3, 10)
    assert window.offset == 20
    assert resolve_page_window(None, None).page == 1
    with pytest.raises(HTTPException):
        resolve_page_window(0, 10)
    with pytest.raises(HTTPException):
        resolve_page_window(1, 0)
    with pytest.raises(HTTPException):
        resolve_page_window(1, 1000)


def test_page_envelope_has_next_page_iff_more_rows_remain():
    assert page_envelope([], 3, PageWindow(page=1, limit=2))["has_next_page"] is True
    assert page_envelope([], 4, PageWindow(page=2, limit=2))["has_next_page"] is False
    assert page_envelope([], 5, PageWindow(page=2, limit=2))["has_next_page"] is True
    payload = page_envelope([{"id": "x"}], 1, PageWindow(page=1, limit=12))
    assert payload["per_page"] == 12
    assert payload["total_count"] == 1


def test_relevance_weights_accumulate_per_field():
    remedy = _remedy("r1", "Jamu Jahe Merah", subtitle="Jahe hangat", region="Jawa Tengah", category="Jahe")
    # title +3, subtitle +2, category +2; region does not contain the query
    assert remedy_relevance(remedy, "JAHE") == 7
    assert remedy_relevance(remedy, "jawa") == 1
    assert remedy_relevance(remedy, "") == 0


def test_relevance_score_ignores_missing_fields():
    assert relevance_score("kunyit", [(None, 3), ("kunyit asam", 2)]) == 2


def test_story_relevance_uses_location_and_category_names():
    story = SimpleNamespace(
        title="Asal Usul Danau Toba",
        summary=None,
        location=SimpleNamespace(name="Toba Samosir"),
        category=SimpleNamespace(name="Legenda"),
    )
    assert story_relevance(story, "toba") == 4
    assert story_relevance(story, "legenda") == 2


def test_rank_by_relevance_breaks_ties_by_trust_then_id():
    rows = [
        _remedy("b", "Beras kencur", trust_level=1),
        _remedy("a", "Beras kencur", trust_level=1),
        _remedy("c", "Beras kencur", trust_level=3),
        _remedy("d", "Wedang uwuh", subtitle="beras", trust_level=4),
    ]
    ranked = rank_by_relevance(rows, lambda row: remedy_relevance(row, "beras"))
    assert [row.id for row, _ in ranked] == ["c", "a", "b", "d"]
    assert [score for _, score in ranked] == [3, 3, 3, 2]
