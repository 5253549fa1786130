"""
Configuration resolver with deterministic precedence.

Precedence per key:
1) schema default (turnsense/tuneables.py)
2) runtime override (<home>/tuneables.json)
3) env override TURNSENSE_<SECTION>_<KEY>

Identity and directory layout are resolved here too and handed to components
as one explicit CaptureConfig, so no module caches names or paths at import.
"""

from __future__ import annotations

import json
import os
from copy import deepcopy
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

from dotenv import dotenv_values

from .tuneables import SCHEMA, validate_tuneables

HOME_ENV = "TURNSENSE_HOME"
ENV_PREFIX = "TURNSENSE"
DEFAULT_PRINCIPAL = "User"
DEFAULT_ASSISTANT = "Assistant"


def default_home() -> Path:
    raw = os.environ.get(HOME_ENV, "").strip()
    if raw:
        return Path(raw).expanduser()
    return Path.home() / ".turnsense"


def _read_json(path: Path) -> Dict[str, Any]:
    try:
        if path.exists():
            data = json.loads(path.read_text(encoding="utf-8-sig"))
            if isinstance(data, dict):
                return data
    except (json.JSONDecodeError, OSError):
        pass
    return {}


def env_name(section: str, key: str) -> str:
    return f"{ENV_PREFIX}_{section}_{key}".upper()


@dataclass
class ResolvedTuneables:
    data: Dict[str, Dict[str, Any]]
    sources: Dict[str, str]
    warnings: List[str] = field(default_factory=list)

    def section(self, name: str) -> Dict[str, Any]:
        return dict(self.data.get(name) or {})


def resolve_tuneables(
    runtime_path: Path,
    *,
    environ: Optional[Mapping[str, str]] = None,
) -> ResolvedTuneables:
    """Merge schema defaults, the runtime file and env overrides, then validate."""
    env = os.environ if environ is None else environ
    runtime = _read_json(runtime_path)

    merged: Dict[str, Any] = {}
    sources: Dict[str, str] = {}
    for section_name, section_spec in SCHEMA.items():
        runtime_section = runtime.get(section_name)
        if not isinstance(runtime_section, dict):
            runtime_section = {}
        row: Dict[str, Any] = {}
        for key, spec in section_spec.items():
            dotted = f"{section_name}.{key}"
            row[key] = deepcopy(spec.default)
            sources[dotted] = "schema"
            if key in runtime_section:
                row[key] = deepcopy(runtime_section[key])
                sources[dotted] = "runtime"
            raw = env.get(env_name(section_name, key))
            if raw is not None and str(raw).strip() != "":
                row[key] = str(raw).strip()
                sources[dotted] = f"env:{env_name(section_name, key)}"
        for key, value in runtime_section.items():
            if key not in row:
                row[key] = deepcopy(value)
        merged[section_name] = row

    for section_name, value in runtime.items():
        if section_name not in merged:
            merged[section_name] = deepcopy(value)

    validated = validate_tuneables(merged)
    return ResolvedTuneables(data=validated.data, sources=sources, warnings=list(validated.warnings))


# ============= Identity =============

@dataclass(frozen=True)
class Identity:
    principal_name: str = DEFAULT_PRINCIPAL
    assistant_name: str = DEFAULT_ASSISTANT


def resolve_identity(
    settings_path: Path,
    env_path: Optional[Path] = None,
    *,
    environ: Optional[Mapping[str, str]] = None,
) -> Identity:
    """Resolve principal/assistant names.

    settings.json (principal.name, daidentity.name) wins, then the .env file
    (PRINCIPAL_NAME, DA_NAME), then the process environment.
    """
    env = os.environ if environ is None else environ
    settings = _read_json(settings_path)
    principal = (settings.get("principal") or {}) if isinstance(settings.get("principal"), dict) else {}
    assistant = (settings.get("daidentity") or {}) if isinstance(settings.get("daidentity"), dict) else {}

    file_values: Dict[str, Optional[str]] = {}
    if env_path is not None and env_path.exists():
        file_values = dotenv_values(env_path)

    def _pick(*candidates: Any, default: str) -> str:
        for value in candidates:
            text = str(value or "").strip()
            if text:
                return text
        return default

    return Identity(
        principal_name=_pick(
            principal.get("name"), file_values.get("PRINCIPAL_NAME"), env.get("PRINCIPAL_NAME"),
            default=DEFAULT_PRINCIPAL,
        ),
        assistant_name=_pick(
            assistant.get("name"), file_values.get("DA_NAME"), env.get("DA_NAME"),
            default=DEFAULT_ASSISTANT,
        ),
    )


# ============= Paths =============

@dataclass(frozen=True)
class CapturePaths:
    """Canonical on-disk layout under the turnsense home directory."""
    home: Path

    @property
    def memory_dir(self) -> Path:
        return self.home / "MEMORY"

    @property
    def learning_dir(self) -> Path:
        return self.memory_dir / "LEARNING"

    @property
    def signals_dir(self) -> Path:
        return self.learning_dir / "SIGNALS"

    @property
    def ratings_file(self) -> Path:
        return self.signals_dir / "ratings.jsonl"

    @property
    def work_dir(self) -> Path:
        return self.memory_dir / "WORK"

    @property
    def state_dir(self) -> Path:
        return self.memory_dir / "STATE"

    @property
    def current_work_file(self) -> Path:
        return self.state_dir / "current-work.json"

    @property
    def logs_dir(self) -> Path:
        return self.home / "logs"

    @property
    def tuneables_file(self) -> Path:
        return self.home / "tuneables.json"

    @property
    def settings_file(self) -> Path:
        return self.home / "settings.json"

    @property
    def env_file(self) -> Path:
        return self.home / ".env"

    def task_dir(self, session_dir: str, task_id: str) -> Path:
        return self.work_dir / session_dir / "tasks" / task_id


# ============= Bundle =============

@dataclass
class CaptureConfig:
    paths: CapturePaths
    identity: Identity
    tuneables: ResolvedTuneables

    @property
    def sentiment(self) -> Dict[str, Any]:
        return self.tuneables.section("sentiment")

    @property
    def inference(self) -> Dict[str, Any]:
        return self.tuneables.section("inference")

    @property
    def capture(self) -> Dict[str, Any]:
        return self.tuneables.section("capture")

    @classmethod
    def load(
        cls,
        home: Optional[Path] = None,
        *,
        environ: Optional[Mapping[str, str]] = None,
    ) -> "CaptureConfig":
        paths = CapturePaths(Path(home) if home is not None else default_home())
        return cls(
            paths=paths,
            identity=resolve_identity(paths.settings_file, paths.env_file, environ=environ),
            tuneables=resolve_tuneables(paths.tuneables_file, environ=environ),
        )
