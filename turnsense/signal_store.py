"""Append-only rating signal log.

Storage: <home>/MEMORY/LEARNING/SIGNALS/ratings.jsonl

Each accepted classification becomes one JSON line. Lines are only ever
appended, never rewritten, so a torn final write cannot damage earlier lines.
"""

from __future__ import annotations

import json
import logging
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

from .errors import StepResult

log = logging.getLogger("turnsense.signals")

IMPLICIT_SOURCE = "implicit"
NEUTRAL_RATING = 5


@dataclass(frozen=True)
class RatingEntry:
    timestamp: str
    rating: int
    session_id: str
    sentiment_summary: str
    confidence: float
    source: str = IMPLICIT_SOURCE

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    def to_line(self) -> str:
        return json.dumps(self.to_dict(), ensure_ascii=False) + "\n"

    @classmethod
    def from_dict(cls, row: Dict[str, Any]) -> "RatingEntry":
        rating = row.get("rating")
        return cls(
            timestamp=str(row.get("timestamp") or ""),
            rating=int(rating) if rating is not None else NEUTRAL_RATING,
            session_id=str(row.get("session_id") or ""),
            sentiment_summary=str(row.get("sentiment_summary") or ""),
            confidence=float(row.get("confidence") or 0.0),
            source=str(row.get("source") or IMPLICIT_SOURCE),
        )


class SignalStore:
    """Append-only JSONL store of RatingEntry records."""

    def __init__(self, path: Path):
        self.path = Path(path)

    def append(self, entry: RatingEntry) -> StepResult:
        line = entry.to_line()
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with self.path.open("a", encoding="utf-8") as f:
                f.write(line)
        except OSError as e:
            log.error("rating append failed: %s (%s)", self.path, e)
            return StepResult.failed("signal_append", str(e), self.path)
        log.info("wrote implicit rating %s to %s", entry.rating, self.path)
        return StepResult.done("signal_append", self.path)

    def read_ratings(self, limit: Optional[int] = None) -> List[RatingEntry]:
        """Read entries, skipping blank and unparseable lines."""
        if not self.path.exists():
            return []
        entries: List[RatingEntry] = []
        with self.path.open("r", encoding="utf-8", errors="replace") as f:
            for line in f:
                line = line.strip()
                if not line:
                    continue
                try:
                    row = json.loads(line)
                    if isinstance(row, dict):
                        entries.append(RatingEntry.from_dict(row))
                except (json.JSONDecodeError, TypeError, ValueError):
                    continue
        if limit is None or limit <= 0:
            return entries
        return entries[-limit:]


def summarize(entries: Iterable[RatingEntry], low_threshold: int = 6) -> Dict[str, Any]:
    rows = list(entries)
    if not rows:
        return {"count": 0, "mean_rating": None, "low_count": 0}
    return {
        "count": len(rows),
        "mean_rating": round(sum(r.rating for r in rows) / len(rows), 2),
        "low_count": sum(1 for r in rows if r.rating < low_threshold),
    }
