"""Learning records: markdown incident notes for later retrospective review.

Two capture paths write here:
- low implicit ratings (sentiment analysis + the assistant response that
  provoked it)
- assistant responses that read like a solved problem worth remembering

Layout: <home>/MEMORY/LEARNING/<CATEGORY>/<YYYY-MM>/<timestamp>_LEARNING_<slug>.md
Records are written once and never updated.
"""

from __future__ import annotations

import logging
import re
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from .config import CaptureConfig
from .errors import StepResult
from .extraction import StructuredResponse, strip_system_reminders
from .timeutil import filename_timestamp, iso_timestamp, local_date, local_timestamp, year_month

log = logging.getLogger("turnsense.learning")

CATEGORIES = ("SYSTEM", "ALGORITHM")

SYSTEM_INDICATORS = (
    "hook", "crash", "config", "deploy", "install", "path", "permission",
    "not found", "import", "module", "dependency", "build", "timeout",
    "infrastructure", "tooling", "environment", "settings", "plugin",
)
ALGORITHM_INDICATORS = (
    "wrong approach", "over-engineer", "overengineer", "should have asked",
    "didn't follow", "did not follow", "ignored", "misunderstood", "missed the point",
    "too verbose", "too complex", "assumption", "instructions", "not what i",
    "deleted", "broke",
)
LEARNING_INDICATORS = (
    "problem", "solved", "discovered", "fixed", "learned", "realized",
    "figured out", "root cause", "debugging", "issue was", "turned out",
    "mistake", "lesson", "bug", "workaround",
)


def _norm(s: str) -> str:
    return re.sub(r"\s+", " ", (s or "").strip().lower())


def get_learning_category(*texts: Optional[str]) -> str:
    """Classify combined text as a SYSTEM (tooling) or ALGORITHM (approach) learning."""
    t = _norm(" ".join(x for x in texts if x))
    system_hits = sum(1 for k in SYSTEM_INDICATORS if k in t)
    algorithm_hits = sum(1 for k in ALGORITHM_INDICATORS if k in t)
    if system_hits > algorithm_hits:
        return "SYSTEM"
    return "ALGORITHM"


def is_learning_capture(
    text: str,
    summary: Optional[str] = None,
    analysis: Optional[str] = None,
    min_indicators: int = 2,
) -> bool:
    """True when the summary/analysis carries enough insight keywords."""
    check = _norm(f"{summary or ''} {analysis or ''}")
    if not check:
        check = _norm(text)[:1000]
    hits = sum(1 for k in LEARNING_INDICATORS if k in check)
    return hits >= min_indicators


def slugify(description: str, max_chars: int = 60) -> str:
    slug = description.lower()
    slug = re.sub(r"[^a-z0-9\s-]", "", slug)
    slug = re.sub(r"\s+", "-", slug.strip())
    return slug[:max_chars]


def describe(structured: StructuredResponse) -> str:
    """Short human description for a response learning's title and filename."""
    description = structured.completed or structured.summary or "task-completion"
    description = re.sub(r"^Completed\s+", "", description, flags=re.IGNORECASE)
    description = re.sub(r"\[AGENT:\w+\]\s*", "", description, flags=re.IGNORECASE)
    description = re.sub(r"\[.*?\]", "", description).strip()

    if len(description) < 3:
        description = structured.summary or structured.analysis or "task-completion"
        description = re.sub(r"^Completed\s+", "", description, flags=re.IGNORECASE).strip()
    if len(description) < 3:
        description = "general-task"
    return description


def _frontmatter(meta: Dict[str, Any]) -> str:
    body = yaml.safe_dump(meta, sort_keys=False, default_flow_style=None, allow_unicode=True)
    return f"---\n{body}---\n"


class LearningRecorder:
    """Writes learning records under the configured learning directory."""

    def __init__(self, config: CaptureConfig):
        self.config = config
        self.learning_dir = config.paths.learning_dir
        self.low_rating_threshold = int(config.sentiment["low_rating_threshold"])
        self.timezone = config.capture["local_timezone"]

    def _target_dir(self, category: str, now: Optional[datetime]) -> Path:
        target = self.learning_dir / category / year_month(now)
        target.mkdir(parents=True, exist_ok=True)
        return target

    def record_low_rating(
        self,
        rating: int,
        sentiment_summary: str,
        detailed_context: str = "",
        response_context: str = "",
        *,
        now: Optional[datetime] = None,
    ) -> StepResult:
        if rating >= self.low_rating_threshold:
            return StepResult.skipped("low_rating_learning", f"rating {rating} not below {self.low_rating_threshold}")

        category = get_learning_category(detailed_context, sentiment_summary)
        timestamp = iso_timestamp(now)
        meta = {
            "capture_type": "LEARNING",
            "timestamp": timestamp,
            "rating": rating,
            "source": "implicit-sentiment",
            "auto_captured": True,
            "tags": ["sentiment-detected", "implicit-rating", "improvement-opportunity"],
        }
        content = _frontmatter(meta) + f"""
# Implicit Low Rating Detected: {rating}/10

**Date:** {timestamp[:10]}
**Rating:** {rating}/10
**Detection Method:** Sentiment Analysis
**Sentiment Summary:** {sentiment_summary}

---

## Detailed Analysis

{detailed_context or 'No detailed analysis available'}

---

## Assistant Response Context

{response_context or 'No response context available'}

---

## Improvement Notes

This response triggered a {rating}/10 implicit rating based on detected user sentiment.

**Quick Summary:** {sentiment_summary}

**Root Cause Analysis:** Review the detailed analysis above to understand what went wrong and how to prevent similar issues.

**Action Items:**
- Review the assistant response context to identify specific failure points
- Consider whether this represents a pattern that needs systemic correction
- Update relevant skills, workflows, or principles if needed

---
"""
        try:
            path = self._target_dir(category, now) / (
                f"{filename_timestamp(now)}_LEARNING_sentiment-rating-{rating}.md"
            )
            path.write_text(content, encoding="utf-8")
        except OSError as e:
            log.error("low rating learning write failed: %s", e)
            return StepResult.failed("low_rating_learning", str(e))
        log.info("captured low rating learning to %s", path)
        return StepResult.done("low_rating_learning", path)

    def record_response_learning(
        self,
        structured: StructuredResponse,
        full_text: str,
        *,
        now: Optional[datetime] = None,
    ) -> StepResult:
        description = describe(structured)
        stamp = local_timestamp(self.timezone, now)
        date, clock = stamp[:10], stamp[11:19].replace(":", "")
        slug = slugify(description, int(self.config.capture["learning_description_chars"]))
        category = get_learning_category(full_text)

        meta = {
            "capture_type": "LEARNING",
            "timestamp": stamp,
            "auto_captured": True,
            "tags": ["auto-capture"],
        }
        content = _frontmatter(meta) + f"""
# Quick Learning: {structured.completed or structured.summary or 'Task Completion'}

**Date:** {local_date(self.timezone, now)}
**Auto-captured:** Yes

---

## Summary

{structured.summary or 'N/A'}

## Analysis

{structured.analysis or 'N/A'}

## Actions Taken

{structured.actions or 'N/A'}

## Results

{structured.results or 'N/A'}

## Current Status

{structured.status or 'N/A'}

## Next Steps

{structured.next or 'N/A'}

---

<details>
<summary>Full Response</summary>

{strip_system_reminders(full_text).strip()}

</details>
"""
        try:
            path = self._target_dir(category, now) / f"{date}-{clock}_LEARNING_{slug}.md"
            path.write_text(content, encoding="utf-8")
        except OSError as e:
            log.error("response learning write failed: %s", e)
            return StepResult.failed("response_learning", str(e))
        log.info("captured learning to %s", path)
        return StepResult.done("response_learning", path)
