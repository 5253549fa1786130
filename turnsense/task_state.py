"""
Task state updates from completed assistant responses.

Structure:
    Session: WORK/{session_dir}/
    Task:    WORK/{session_dir}/tasks/{current_task}/
        - ISC.json   (ideal-state criteria and satisfaction)
        - THREAD.md  (task log with a '---' delimited header)

Both documents are merge-patched: only fields the response actually states
are written, and anything else already on disk is left alone. There is no
locking; the host delivers one turn at a time per session.
"""

from __future__ import annotations

import json
import logging
import os
import re
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import yaml

from .config import CaptureConfig
from .errors import DocumentError, StepResult, StepStatus
from .extraction import StructuredResponse, parse_structured_response, strip_system_reminders
from .learning import LearningRecorder, is_learning_capture
from .timeutil import iso_timestamp

log = logging.getLogger("turnsense.task_state")

EFFORT_LEVELS = ("QUICK", "STANDARD", "THOROUGH", "TRIVIAL")
COMPLETION_MARKERS = ("✓ COMPLETE",)
STATUS_COMPLETE = "complete"
STATUS_PARTIAL = "partial"

_EFFORT = re.compile(r"level\s+(" + "|".join(EFFORT_LEVELS) + r")\b", re.IGNORECASE)
_ALL_SATISFIED = re.compile(r"(\d+)\s*(?:ISC\s*)?criteri(?:a|on)?,?\s*all\s*satisfied", re.IGNORECASE)
_RATIO_SATISFIED = re.compile(r"(\d+)\s*/\s*(\d+)\s*(?:ISC\s*)?criteri(?:a|on)?\s*satisfied", re.IGNORECASE)

_HEADER = re.compile(r"\A(---\r?\n)([\s\S]*?)(^---[ \t]*(?=\r?$))", re.MULTILINE)
_IN_PROGRESS = re.compile(r'^(status:[ \t]*)(["\']?)(IN_PROGRESS|in-progress|in_progress)\2[ \t]*(?=\r?$)', re.MULTILINE)


# ============= Types =============

@dataclass(frozen=True)
class CurrentWork:
    session_id: str
    session_dir: str
    current_task: str
    task_count: int = 0
    created_at: str = ""


@dataclass(frozen=True)
class Satisfaction:
    satisfied: int
    total: int
    partial: int = 0
    failed: int = 0

    def to_dict(self) -> Dict[str, int]:
        return {
            "satisfied": self.satisfied,
            "partial": self.partial,
            "failed": self.failed,
            "total": self.total,
        }


@dataclass(frozen=True)
class ISCPatch:
    effort_level: Optional[str] = None
    satisfaction: Optional[Satisfaction] = None
    status: Optional[str] = None

    def is_empty(self) -> bool:
        return self.effort_level is None and self.satisfaction is None and self.status is None


@dataclass
class CaptureReport:
    steps: List[StepResult] = field(default_factory=list)
    structured: Optional[StructuredResponse] = None

    def add(self, step: StepResult) -> StepResult:
        self.steps.append(step)
        return step

    def failed(self) -> List[StepResult]:
        return [s for s in self.steps if s.status == StepStatus.FAILED]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "steps": [s.to_dict() for s in self.steps],
            "structured": self.structured.to_dict() if self.structured else None,
        }


# ============= Extraction =============

def _field(data: Dict[str, Any], camel: str, snake: str) -> Any:
    value = data.get(camel)
    return value if value is not None else data.get(snake)


def read_current_work(path: Path) -> Optional[CurrentWork]:
    """Read the current-work pointer; missing or malformed pointers yield None.

    The host writes camelCase keys (sessionId, sessionDir, ...); snake_case
    spellings are accepted too.
    """
    try:
        if not path.exists():
            return None
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        log.warning("current work pointer unreadable: %s (%s)", path, e)
        return None
    if not isinstance(data, dict):
        return None
    try:
        task_count = int(_field(data, "taskCount", "task_count") or 0)
    except (TypeError, ValueError):
        task_count = 0
    return CurrentWork(
        session_id=str(_field(data, "sessionId", "session_id") or ""),
        session_dir=str(_field(data, "sessionDir", "session_dir") or ""),
        current_task=str(_field(data, "currentTask", "current_task") or ""),
        task_count=task_count,
        created_at=str(_field(data, "createdAt", "created_at") or ""),
    )


def extract_effort_level(text: str) -> Optional[str]:
    m = _EFFORT.search(text or "")
    return m.group(1).upper() if m else None


def extract_satisfaction(text: str) -> Optional[Satisfaction]:
    """Recognize "6 criteria, all satisfied" and "2/5 criteria satisfied"."""
    m = _ALL_SATISFIED.search(text or "")
    if m:
        total = int(m.group(1))
        return Satisfaction(satisfied=total, total=total)
    m = _RATIO_SATISFIED.search(text or "")
    if m:
        return Satisfaction(satisfied=int(m.group(1)), total=int(m.group(2)))
    return None


def has_completion_marker(text: str) -> bool:
    return any(marker in (text or "") for marker in COMPLETION_MARKERS)


def derive_isc_patch(text: str) -> ISCPatch:
    """Build the ISC merge-patch a response implies.

    A literal completion marker forces status to complete even when the
    satisfaction counts say otherwise.
    """
    text = strip_system_reminders(text or "")
    satisfaction = extract_satisfaction(text)
    status: Optional[str] = None
    if satisfaction is not None:
        status = STATUS_COMPLETE if satisfaction.satisfied == satisfaction.total else STATUS_PARTIAL
    if has_completion_marker(text):
        status = STATUS_COMPLETE
    return ISCPatch(
        effort_level=extract_effort_level(text),
        satisfaction=satisfaction,
        status=status,
    )


# ============= ISC.json =============

def apply_isc_patch(doc: Dict[str, Any], patch: ISCPatch, now: Optional[datetime] = None) -> Tuple[Dict[str, Any], bool]:
    """Return (patched copy, changed). updatedAt moves only when a field changed."""
    updated = dict(doc)
    changes: Dict[str, Any] = {}
    if patch.effort_level is not None:
        changes["effortLevel"] = patch.effort_level
    if patch.satisfaction is not None:
        changes["satisfaction"] = patch.satisfaction.to_dict()
    if patch.status is not None:
        changes["status"] = patch.status

    changed = False
    for key, value in changes.items():
        if updated.get(key) != value:
            updated[key] = value
            changed = True
    if changed:
        updated["updatedAt"] = iso_timestamp(now)
    return updated, changed


def _atomic_write_json(path: Path, payload: Dict[str, Any]) -> None:
    tmp = path.with_suffix(path.suffix + ".tmp")
    tmp.write_text(json.dumps(payload, ensure_ascii=False, indent=2), encoding="utf-8")
    os.replace(str(tmp), str(path))


def load_isc(path: Path) -> Dict[str, Any]:
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise DocumentError(f"malformed ISC document {path}: {e}") from e
    if not isinstance(data, dict):
        raise DocumentError(f"ISC document {path} is not a JSON object")
    return data


def update_isc(path: Path, text: str, now: Optional[datetime] = None) -> StepResult:
    if not path.exists():
        log.warning("task ISC.json not found: %s", path)
        return StepResult.skipped("isc_update", "ISC.json not found", path)

    patch = derive_isc_patch(text)
    if patch.is_empty():
        return StepResult.skipped("isc_update", "no ISC fields in response", path)

    try:
        doc = load_isc(path)
    except DocumentError as e:
        log.error("%s; leaving it unmodified", e)
        return StepResult.failed("isc_update", str(e), path)

    updated, changed = apply_isc_patch(doc, patch, now)
    if not changed:
        return StepResult.skipped("isc_update", "ISC already up to date", path)
    _atomic_write_json(path, updated)
    log.info("updated task ISC: %s", path)
    return StepResult.done("isc_update", path)


# ============= THREAD.md =============

def read_thread_header(content: str) -> Dict[str, Any]:
    """Parse the '---' delimited header of a thread document ({} when absent)."""
    m = _HEADER.match(content or "")
    if not m:
        return {}
    try:
        data = yaml.safe_load(m.group(2))
    except yaml.YAMLError:
        return {}
    return data if isinstance(data, dict) else {}


def _header_has_key(header: str, key: str) -> bool:
    return re.search(rf"^{re.escape(key)}[ \t]*:", header, re.MULTILINE) is not None


def patch_thread_content(
    content: str,
    structured: StructuredResponse,
    *,
    summary_chars: int = 200,
    now: Optional[datetime] = None,
) -> Tuple[str, bool]:
    """Apply the completion patch to a thread document's header.

    Returns (content, changed). The body after the header is never touched,
    and inserted lines use the line ending of the opening delimiter.
    """
    summary = (structured.completed or structured.summary or "").strip()
    if not summary:
        return content, False
    m = _HEADER.match(content)
    if not m:
        return content, False

    opener, header, closer = m.group(1), m.group(2), m.group(3)
    eol = "\r\n" if opener.endswith("\r\n") else "\n"
    new_header = _IN_PROGRESS.sub(
        lambda s: f'{s.group(1)}{s.group(2)}{"DONE" if s.group(3).isupper() else "done"}{s.group(2)}',
        header,
    )
    if new_header and not new_header.endswith("\n"):
        new_header += eol
    if not _header_has_key(new_header, "completedAt"):
        new_header += f'completedAt: "{iso_timestamp(now)}"{eol}'
    if not _header_has_key(new_header, "summary"):
        new_header += f"summary: {json.dumps(summary[:summary_chars], ensure_ascii=False)}{eol}"

    if new_header == header:
        return content, False
    return opener + new_header + closer + content[m.end():], True


def update_thread(
    path: Path,
    structured: StructuredResponse,
    *,
    summary_chars: int = 200,
    now: Optional[datetime] = None,
) -> StepResult:
    if not path.exists():
        log.warning("task THREAD.md not found: %s", path)
        return StepResult.skipped("thread_update", "THREAD.md not found", path)
    if not (structured.completed or structured.summary):
        return StepResult.skipped("thread_update", "no completion signal", path)

    with path.open("r", encoding="utf-8", newline="") as f:
        content = f.read()
    if not _HEADER.match(content):
        log.warning("THREAD.md has no header block: %s", path)
        return StepResult.skipped("thread_update", "no header block", path)

    patched, changed = patch_thread_content(content, structured, summary_chars=summary_chars, now=now)
    if not changed:
        return StepResult.skipped("thread_update", "header already complete", path)
    with path.open("w", encoding="utf-8", newline="") as f:
        f.write(patched)
    log.info("updated task THREAD: %s", path)
    return StepResult.done("thread_update", path)


# ============= Entry point =============

class ResponseCapture:
    """Applies one completed assistant response to task state and learnings."""

    def __init__(self, config: CaptureConfig, *, recorder: Optional[LearningRecorder] = None):
        self.config = config
        self.recorder = recorder or LearningRecorder(config)

    def _guarded(self, report: CaptureReport, step: str, fn, *args, **kwargs) -> StepResult:
        try:
            return report.add(fn(*args, **kwargs))
        except Exception as e:
            log.exception("%s failed", step)
            return report.add(StepResult.failed(step, f"{type(e).__name__}: {e}"))

    def handle_response_capture(self, text: str, session_id: str = "") -> CaptureReport:
        """Never raises; each step's result is recorded in the report."""
        report = CaptureReport()
        try:
            log.debug("processing response (session=%s, length=%d)", session_id, len(text or ""))
            structured = parse_structured_response(text)
            report.structured = structured

            work = read_current_work(self.config.paths.current_work_file)
            if work is None or not work.session_dir or not work.current_task:
                report.add(StepResult.skipped("task_state", "no active task"))
            else:
                task_dir = self.config.paths.task_dir(work.session_dir, work.current_task)
                self._guarded(report, "isc_update", update_isc, task_dir / "ISC.json", text)
                if structured.summary or structured.completed:
                    self._guarded(
                        report, "thread_update", update_thread, task_dir / "THREAD.md", structured,
                        summary_chars=int(self.config.capture["thread_summary_chars"]),
                    )

            min_indicators = int(self.config.capture["learning_min_indicators"])
            if is_learning_capture(text, structured.summary, structured.analysis, min_indicators):
                self._guarded(report, "response_learning", self.recorder.record_response_learning, structured, text)
        except Exception as e:
            log.exception("response capture failed")
            report.add(StepResult.failed("response_capture", f"{type(e).__name__}: {e}"))
        return report
