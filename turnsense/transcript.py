"""Read-only access to host conversation transcripts.

A transcript is JSONL: one object per line with ``type`` ("user" or
"assistant") and ``message.content``. Content is either a plain string or a
list of typed blocks; ``flatten_content`` folds both shapes into plain text
before anything else looks at it.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterator, List, Optional, Union

log = logging.getLogger("turnsense.transcript")

ROLES = {"user": "User", "assistant": "Assistant"}
_SUMMARY_LINE = re.compile(r"SUMMARY:\s*([^\n]+)", re.IGNORECASE)


@dataclass(frozen=True)
class TranscriptTurn:
    role: str  # "user" | "assistant"
    text: str

    @property
    def label(self) -> str:
        return ROLES.get(self.role, self.role.title())


def flatten_content(content: Any) -> str:
    """Normalize string-or-blocks message content into plain text."""
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts = []
        for block in content:
            if isinstance(block, dict) and block.get("type") == "text":
                text = block.get("text")
                if isinstance(text, str):
                    parts.append(text)
        return " ".join(parts)
    return ""


def _iter_entries(path: Path) -> Iterator[dict]:
    with path.open("r", encoding="utf-8", errors="replace") as f:
        for line in f:
            line = line.strip()
            if not line:
                continue
            try:
                entry = json.loads(line)
            except json.JSONDecodeError:
                continue
            if isinstance(entry, dict):
                yield entry


def read_turns(path: Optional[Union[str, Path]]) -> List[TranscriptTurn]:
    """Return user/assistant turns in order; unreadable transcripts yield []."""
    if not path:
        return []
    p = Path(path)
    if not p.exists():
        log.debug("transcript not found: %s", p)
        return []

    turns: List[TranscriptTurn] = []
    try:
        for entry in _iter_entries(p):
            role = entry.get("type")
            if role not in ROLES:
                continue
            message = entry.get("message")
            if not isinstance(message, dict):
                continue
            text = flatten_content(message.get("content"))
            if text.strip():
                turns.append(TranscriptTurn(role, text))
    except OSError as e:
        log.debug("transcript read failed: %s (%s)", p, e)
        return []
    return turns


def recent_context(
    path: Optional[Union[str, Path]],
    max_turns: int = 3,
    user_chars: int = 200,
    assistant_chars: int = 150,
) -> str:
    """Render the last few turns as ``Role: text`` lines for disambiguation."""
    if max_turns <= 0:
        return ""
    rendered = []
    for turn in read_turns(path)[-max_turns:]:
        if turn.role == "user":
            text = turn.text[:user_chars]
        else:
            m = _SUMMARY_LINE.search(turn.text)
            text = m.group(1) if m else turn.text[:assistant_chars]
        rendered.append(f"{turn.label}: {text}")
    return "\n".join(rendered)


def last_assistant_text(path: Optional[Union[str, Path]], limit: Optional[int] = None) -> str:
    for turn in reversed(read_turns(path)):
        if turn.role == "assistant":
            return turn.text[:limit] if limit else turn.text
    return ""
