"""Exception types and step results for the capture pipeline."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Optional


class CaptureError(Exception):
    """Base class for turnsense failures."""


class InferenceError(CaptureError):
    """The inference backend could not produce a usable answer."""


class DocumentError(CaptureError):
    """An on-disk state document could not be parsed."""


class StepStatus(Enum):
    """Status of a single pipeline step."""
    OK = "ok"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass
class StepResult:
    """Outcome of one read-modify-write or append step.

    Steps report instead of raising; the caller decides whether a FAILED step
    is only worth a log line or should stop the remaining steps.
    """
    status: StepStatus
    step: str
    reason: str = ""
    path: Optional[Path] = None

    @property
    def ok(self) -> bool:
        return self.status == StepStatus.OK

    @classmethod
    def done(cls, step: str, path: Optional[Path] = None, reason: str = "") -> "StepResult":
        return cls(StepStatus.OK, step, reason, path)

    @classmethod
    def skipped(cls, step: str, reason: str, path: Optional[Path] = None) -> "StepResult":
        return cls(StepStatus.SKIPPED, step, reason, path)

    @classmethod
    def failed(cls, step: str, reason: str, path: Optional[Path] = None) -> "StepResult":
        return cls(StepStatus.FAILED, step, reason, path)

    def to_dict(self) -> dict:
        return {
            "status": self.status.value,
            "step": self.step,
            "reason": self.reason,
            "path": str(self.path) if self.path else None,
        }
