"""Fuzzy title/author matching between scraped records and canonical works.

Similarity is normalized Levenshtein (rapidfuzz) over case-folded,
punctuation-stripped text. The composite score weights title 70% and
author 30%; a candidate must score above 0.7 to be selected.
"""

import re
from collections.abc import Sequence
from typing import TypeVar

from loguru import logger
from rapidfuzz.distance import Levenshtein

log = logger.bind(stage="matcher")

T = TypeVar("T")

TITLE_WEIGHT = 0.7
AUTHOR_WEIGHT = 0.3
MATCH_THRESHOLD = 0.7


def normalize_text(s: str) -> str:
    s = s.casefold()
    s = re.sub(r"[^\w\s]", "", s)
    return re.sub(r"\s+", " ", s).strip()


def similarity(a: str, b: str) -> float:
    """1 - distance / max(len) over normalized strings; identical -> 1.0."""
    a_norm = normalize_text(a)
    b_norm = normalize_text(b)
    if a_norm == b_norm:
        return 1.0
    return Levenshtein.normalized_similarity(a_norm, b_norm)


def _author_names(candidate: object) -> list[str]:
    """Candidates expose either ``authors`` (list) or ``author`` (str)."""
    authors = getattr(candidate, "authors", None)
    if authors:
        return [a for a in authors if a]
    author = getattr(candidate, "author", None)
    return [author] if author else []


def score(query_title: str, query_author: str | None, candidate: object) -> float:
    """Composite score in [0, 1].

    When either side lacks an author the author part contributes 0. Only
    when neither side has one is the title similarity used alone.
    """
    title_sim = similarity(query_title, getattr(candidate, "title", "") or "")
    names = _author_names(candidate)
    if not query_author and not names:
        return title_sim

    author_sim = 0.0
    if query_author and names:
        author_sim = max(similarity(query_author, name) for name in names)

    return TITLE_WEIGHT * title_sim + AUTHOR_WEIGHT * author_sim


def score_candidates(
    query_title: str,
    query_author: str | None,
    candidates: Sequence[T],
) -> list[tuple[T, float]]:
    """Score every candidate. Returns (candidate, score) sorted descending.

    The sort is stable, so equal scores keep their input order.
    """
    scored = [(c, score(query_title, query_author, c)) for c in candidates]
    scored.sort(key=lambda pair: pair[1], reverse=True)
    return scored


def match(
    query_title: str,
    query_author: str | None,
    candidates: Sequence[T],
) -> T | None:
    """Return the best candidate, or None when nothing scores above 0.7."""
    best: T | None = None
    best_score = 0.0
    for candidate in candidates:
        s = score(query_title, query_author, candidate)
        if s > best_score:
            best, best_score = candidate, s

    if best is None or best_score <= MATCH_THRESHOLD:
        log.debug(
            f"No match for title={query_title!r} author={query_author!r} "
            f"(best={best_score:.2f} of {len(candidates)})"
        )
        return None

    log.debug(f"Matched {query_title!r} -> {getattr(best, 'title', best)!r} score={best_score:.2f}")
    return best
