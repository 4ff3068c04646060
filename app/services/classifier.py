# =============================================================================
# Source Classifier — URL heuristics
# =============================================================================
#
# Labels a source URL as academic / trusted / blog / unknown by substring
# match against fixed domain lists. Lists are checked in that order and the
# first hit wins, so "blog.university.edu" is academic.
# =============================================================================

from __future__ import annotations

from typing import Literal

SourceType = Literal["academic", "trusted", "blog", "unknown"]

_SOURCE_PATTERNS: tuple[tuple[SourceType, tuple[str, ...]], ...] = (
    ("academic", (".edu", "academic.", "scholar.", "jstor.org", "arxiv.org")),
    ("trusted", ("news.", "nytimes.com", "bbc.", "reuters.", "cnn.")),
    ("blog", ("blog.", "medium.", "wordpress.")),
)


def classify_source(url: str | None) -> SourceType:
    """Classify a source URL. Pure; empty or None input is "unknown"."""
    lowered = (url or "").lower()
    if not lowered:
        return "unknown"
    for source_type, patterns in _SOURCE_PATTERNS:
        if any(pattern in lowered for pattern in patterns):
            return source_type
    return "unknown"
