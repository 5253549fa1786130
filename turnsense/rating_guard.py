"""Detect messages that are themselves an explicit numeric rating.

"8 great job" or "3 - missed the point" belong to the explicit rating
capture path, so sentiment inference must not run on them. "3 bugs remain"
or "10 files changed" are sentences that happen to start with a number.
"""

from __future__ import annotations

import re
from typing import Optional

_RATING = re.compile(r"^(10|[1-9])(?!\d)(?![.,]\d)(?:\s*[-:]\s*|\s+)?(.*)$")

_SENTENCE_STARTERS = re.compile(
    r"^(items?|things?|steps?|files?|lines?|bugs?|issues?|errors?|times?|"
    r"minutes?|hours?|days?|seconds?|percent|%|th\b|st\b|nd\b|rd\b|"
    r"of\b|in\b|at\b|to\b|the\b|a\b|an\b)",
    re.IGNORECASE,
)


def explicit_rating_value(prompt: str) -> Optional[int]:
    """Return the rating when ``prompt`` is an explicit rating, else None."""
    trimmed = (prompt or "").strip()
    match = _RATING.match(trimmed)
    if not match:
        return None
    comment = (match.group(2) or "").strip()
    if comment and _SENTENCE_STARTERS.match(comment):
        return None
    return int(match.group(1))


def is_explicit_rating(prompt: str) -> bool:
    return explicit_rating_value(prompt) is not None
