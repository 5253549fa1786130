"""Pull labeled sections out of an assistant response.

Responses follow a loose section format:

    📋 SUMMARY: one line
    🔍 ANALYSIS: ...
    ⚡ ACTIONS: ...
    ✅ RESULTS: ...
    📊 STATUS: ...
    ➡️ NEXT: ...
    🗣️ Kai: spoken completion line

A section runs from its marker to the next recognized marker (or end of text).
Emoji prefixes are optional except on the spoken line, whose label is a name.
Missing sections stay None; nothing here raises.
"""

from __future__ import annotations

import re
from dataclasses import asdict, dataclass
from typing import Dict, Optional

SYSTEM_REMINDER = re.compile(r"<system-reminder>[\s\S]*?</system-reminder>", re.IGNORECASE)

_VS = "\ufe0f?"
_LEAD = r"^[ \t>#]*(?:\*\*|__)?[ \t]*"
_COLON = r"[*_]*[ \t]*:[*_]*"

_MARKER = re.compile(
    _LEAD
    + "(?:"
    + rf"(?P<summary>(?:📋{_VS}\s*)?SUMMARY)"
    + rf"|(?P<analysis>(?:🔍{_VS}\s*)?ANALYSIS)"
    + rf"|(?P<actions>(?:⚡{_VS}\s*)?ACTIONS)"
    + rf"|(?P<results>(?:✅{_VS}\s*)?RESULTS)"
    + rf"|(?P<status>(?:📊{_VS}\s*)?STATUS)"
    + rf"|(?P<next>(?:➡{_VS}\s*)?NEXT)"
    + rf"|(?P<completed>(?:🎯{_VS}\s*)?COMPLETED)"
    + rf"|(?P<voice>🗣{_VS}[ \t]*[*_]*[^\n:*_]{{1,40}}?)"
    + ")"
    + _COLON,
    re.IGNORECASE | re.MULTILINE,
)

_FIELD_FOR_GROUP = {"voice": "completed"}


@dataclass
class StructuredResponse:
    summary: Optional[str] = None
    analysis: Optional[str] = None
    actions: Optional[str] = None
    results: Optional[str] = None
    status: Optional[str] = None
    next: Optional[str] = None
    completed: Optional[str] = None

    def is_empty(self) -> bool:
        return not any(self.to_dict().values())

    def to_dict(self) -> Dict[str, Optional[str]]:
        return asdict(self)


def strip_system_reminders(text: str) -> str:
    return SYSTEM_REMINDER.sub("", text or "")


def parse_structured_response(text: str) -> StructuredResponse:
    """Parse labeled sections; the first occurrence of a field wins."""
    clean = strip_system_reminders(text)
    matches = list(_MARKER.finditer(clean))
    found: Dict[str, str] = {}

    for i, m in enumerate(matches):
        group = m.lastgroup
        if group is None:
            continue
        name = _FIELD_FOR_GROUP.get(group, group)
        if name in found:
            continue
        end = matches[i + 1].start() if i + 1 < len(matches) else len(clean)
        content = clean[m.end():end].strip()
        if content:
            found[name] = content

    return StructuredResponse(**found)
