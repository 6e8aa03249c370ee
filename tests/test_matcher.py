"""Tests for matcher.py -- fuzzy title/author scoring and selection."""

import pytest

from audiobook_catalog.matcher import (
    MATCH_THRESHOLD,
    match,
    normalize_text,
    score,
    score_candidates,
    similarity,
)
from audiobook_catalog.models import CanonicalMetadataRecord


def _meta(work: str, title: str, authors=None) -> CanonicalMetadataRecord:
    return CanonicalMetadataRecord(
        canonical_id=f"ol:{work}", title=title, authors=list(authors or [])
    )


class TestSimilarity:
    def test_normalize_text(self):
        assert normalize_text("  The  Hobbit: Or, There & Back! ") == "the hobbit or there back"

    def test_identical_after_normalization(self):
        assert similarity("Dune!", "dune") == 1.0

    def test_edit_distance_ratio(self):
        # one substitution over three characters
        assert similarity("abc", "abd") == pytest.approx(2 / 3)

    def test_completely_different(self):
        assert similarity("abc", "xyz") == 0.0


class TestScore:
    def test_title_only_query(self):
        assert score("Dune", None, _meta("OL1W", "Dune")) == 1.0

    def test_title_and_author(self):
        candidate = _meta("OL1W", "Dune", ["Frank Herbert"])
        assert score("Dune", "Frank Herbert", candidate) == pytest.approx(1.0)

    def test_candidate_without_author_scores_zero_author_part(self):
        assert score("Dune", "Frank Herbert", _meta("OL1W", "Dune")) == pytest.approx(0.7)

    def test_query_without_author_scores_zero_author_part(self):
        candidate = _meta("OL1W", "Dune", ["Frank Herbert"])
        assert score("Dune", None, candidate) == pytest.approx(0.7)

    def test_best_of_multiple_authors(self):
        candidate = _meta("OL1W", "Good Omens", ["Terry Pratchett", "Neil Gaiman"])
        assert score("Good Omens", "Neil Gaiman", candidate) == pytest.approx(1.0)

    def test_accepts_records_with_single_author(self, make_record):
        record = make_record("k1", title="Dune", author="Frank Herbert")
        assert score("Dune", "Frank Herbert", record) == pytest.approx(1.0)


class TestMatch:
    def test_exact_title_selected(self):
        dune = _meta("OL1W", "Dune")
        assert match("Dune", None, [dune]) is dune

    def test_no_match_below_threshold(self):
        assert match("Xyzzy", None, [_meta("OL1W", "Dune")]) is None

    def test_threshold_is_exclusive(self):
        # 0.7 * 1.0 + 0.3 * 0.0 == 0.7 -> not selected
        assert match("Dune", "Frank Herbert", [_meta("OL1W", "Dune")]) is None

    def test_authorless_query_rejects_authored_candidate(self):
        candidate = _meta("OL1W", "Dune", ["Frank Herbert"])
        assert match("Dune", None, [candidate]) is None

    def test_picks_highest(self):
        messiah = _meta("OL2W", "Dune Messiah", ["Frank Herbert"])
        dune = _meta("OL1W", "Dune", ["Frank Herbert"])
        assert match("Dune", "Frank Herbert", [messiah, dune]) is dune

    def test_tie_goes_to_first_seen(self):
        first = _meta("OL1W", "Dune", ["Frank Herbert"])
        second = _meta("OL2W", "Dune", ["Frank Herbert"])
        assert match("Dune", "Frank Herbert", [first, second]) is first

    def test_empty_candidates(self):
        assert match("Dune", None, []) is None


class TestScoreCandidates:
    def test_sorted_descending_and_stable(self):
        a = _meta("OL1W", "Dune")
        b = _meta("OL2W", "Dune Messiah")
        c = _meta("OL3W", "Dune")
        scored = score_candidates("Dune", None, [b, a, c])
        assert [m for m, _ in scored] == [a, c, b]
        assert scored[0][1] == 1.0
        assert scored[-1][1] < MATCH_THRESHOLD
