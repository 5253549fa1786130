"""
Schema and validator for turnsense tuneables.

Every section and key the resolver knows about lives in SCHEMA with its type,
default and bounds. Validation never raises: out-of-range numbers are clamped,
unparseable numbers and unknown enum values fall back to the default, and each
adjustment is reported as a warning string.

Usage:
    from turnsense.tuneables import validate_tuneables
    result = validate_tuneables(data)
    clean = result.data
"""

from __future__ import annotations

from collections import namedtuple
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

# --------------- Schema Primitives ---------------

TuneableSpec = namedtuple("TuneableSpec", [
    "type",          # "int", "float", "str"
    "default",
    "min_val",
    "max_val",
    "description",
    "enum_values",   # allowed values for str keys
], defaults=[None, None, "", None])


@dataclass
class ValidationResult:
    data: Dict[str, Any]
    warnings: List[str] = field(default_factory=list)
    unknown_keys: List[str] = field(default_factory=list)


# --------------- Schema Definition ---------------

SCHEMA: Dict[str, Dict[str, TuneableSpec]] = {
    # ---- sentiment: implicit rating capture from user messages ----
    "sentiment": {
        "min_prompt_length": TuneableSpec("int", 3, 1, 1000, "Messages shorter than this are skipped"),
        "min_confidence": TuneableSpec("float", 0.5, 0.0, 1.0, "Below this confidence nothing is persisted"),
        "analysis_timeout_s": TuneableSpec("float", 25.0, 0.01, 300.0, "Race timer against the inference call"),
        "inference_timeout_s": TuneableSpec("float", 20.0, 0.01, 300.0, "Timeout requested from the backend"),
        "context_turns": TuneableSpec("int", 3, 0, 20, "Prior transcript turns sent as context"),
        "user_context_chars": TuneableSpec("int", 200, 20, 4000, "Truncation for user context turns"),
        "assistant_context_chars": TuneableSpec("int", 150, 20, 4000, "Truncation for assistant context turns"),
        "response_context_chars": TuneableSpec("int", 500, 50, 10000, "Assistant response excerpt in learning records"),
        "low_rating_threshold": TuneableSpec("int", 6, 2, 10, "Ratings below this produce a learning record"),
        "quality_level": TuneableSpec("str", "fast", None, None, "Inference quality tier", ["fast", "standard", "smart"]),
    },

    # ---- inference: backend selection ----
    "inference": {
        "backend": TuneableSpec("str", "claude", None, None, "Inference backend", ["claude", "ollama"]),
        "claude_bin": TuneableSpec("str", "claude", None, None, "Claude CLI executable"),
        "claude_fast_model": TuneableSpec("str", "haiku", None, None, "Model for the fast tier"),
        "claude_standard_model": TuneableSpec("str", "sonnet", None, None, "Model for the standard tier"),
        "claude_smart_model": TuneableSpec("str", "opus", None, None, "Model for the smart tier"),
        "ollama_url": TuneableSpec("str", "http://localhost:11434/api/generate", None, None, "Ollama generate endpoint"),
        "ollama_model": TuneableSpec("str", "phi4-mini", None, None, "Ollama model name"),
    },

    # ---- capture: task state and learning records ----
    "capture": {
        "thread_summary_chars": TuneableSpec("int", 200, 20, 2000, "Summary length written to THREAD.md"),
        "learning_description_chars": TuneableSpec("int", 60, 10, 200, "Slug length in learning filenames"),
        "learning_min_indicators": TuneableSpec("int", 2, 1, 10, "Insight keywords needed to capture a learning"),
        "local_timezone": TuneableSpec("str", "America/Los_Angeles", None, None, "Zone for local timestamps"),
    },
}


# --------------- Validation ---------------

_NUMBER_TYPES = {"int": int, "float": float}


def _validate_value(key: str, value: Any, spec: TuneableSpec) -> Tuple[Any, Optional[str]]:
    """Coerce one value. Returns (value, warning_or_None); ``key`` is dotted."""
    if spec.type == "str":
        text = str(value).strip()
        if spec.enum_values and text not in spec.enum_values:
            return spec.default, f"{key}: {text!r} not in {spec.enum_values}, using default {spec.default!r}"
        return text, None

    cast = _NUMBER_TYPES[spec.type]
    try:
        number = cast(value)
    except (ValueError, TypeError):
        return spec.default, f"{key}: cannot convert {value!r} to {spec.type}, using default {spec.default}"
    if spec.min_val is not None and number < spec.min_val:
        return cast(spec.min_val), f"{key}: {number} below min {spec.min_val}, clamped"
    if spec.max_val is not None and number > spec.max_val:
        return cast(spec.max_val), f"{key}: {number} above max {spec.max_val}, clamped"
    return number, None


def section_defaults(section_name: str) -> Dict[str, Any]:
    return {k: s.default for k, s in SCHEMA.get(section_name, {}).items()}


def get_full_defaults() -> Dict[str, Any]:
    return {section: section_defaults(section) for section in SCHEMA}


def validate_tuneables(data: Dict[str, Any]) -> ValidationResult:
    """Validate merged tuneables against SCHEMA.

    Missing keys take their defaults. Unknown sections and keys are kept and
    reported, except keys starting with '_' (comments).
    """
    result = ValidationResult(data={})

    for section_name, section_spec in SCHEMA.items():
        raw_section = data.get(section_name, {})
        if not isinstance(raw_section, dict):
            result.warnings.append(f"{section_name}: expected dict, got {type(raw_section).__name__}")
            raw_section = {}

        cleaned = section_defaults(section_name)
        for key, value in raw_section.items():
            spec = section_spec.get(key)
            if spec is None:
                cleaned[key] = value
                if not key.startswith("_"):
                    result.unknown_keys.append(f"{section_name}.{key}")
                    result.warnings.append(f"{section_name}.{key}: unknown key (possible typo?)")
                continue
            cleaned[key], warning = _validate_value(f"{section_name}.{key}", value, spec)
            if warning:
                result.warnings.append(warning)
        result.data[section_name] = cleaned

    for section_name, value in data.items():
        if section_name in SCHEMA:
            continue
        result.data[section_name] = value
        if not section_name.startswith("_"):
            result.unknown_keys.append(f"section:{section_name}")
            result.warnings.append(f"section:{section_name}: unknown section (possible typo?)")

    return result
