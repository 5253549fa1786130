"""Tests for tuneable resolution, identity and directory layout."""

from __future__ import annotations

import json
from pathlib import Path

from turnsense.config import (
    CaptureConfig,
    CapturePaths,
    default_home,
    env_name,
    resolve_identity,
    resolve_tuneables,
)
from turnsense.tuneables import SCHEMA, get_full_defaults, validate_tuneables


def _write_tuneables(home: Path, sections: dict) -> Path:
    p = home / "tuneables.json"
    p.write_text(json.dumps(sections), encoding="utf-8")
    return p


def test_defaults_when_nothing_configured(tmp_path):
    config = CaptureConfig.load(home=tmp_path, environ={})
    assert config.sentiment["min_prompt_length"] == 3
    assert config.sentiment["min_confidence"] == 0.5
    assert config.sentiment["analysis_timeout_s"] == 25.0
    assert config.inference["backend"] == "claude"
    assert config.capture["thread_summary_chars"] == 200
    assert config.tuneables.sources["sentiment.min_confidence"] == "schema"
    assert config.tuneables.warnings == []


def test_runtime_file_overrides_schema(tmp_path):
    _write_tuneables(tmp_path, {"sentiment": {"min_prompt_length": 5}})
    resolved = resolve_tuneables(tmp_path / "tuneables.json", environ={})
    assert resolved.data["sentiment"]["min_prompt_length"] == 5
    assert resolved.sources["sentiment.min_prompt_length"] == "runtime"


def test_env_overrides_runtime_file(tmp_path):
    _write_tuneables(tmp_path, {"sentiment": {"min_prompt_length": 5}})
    key = env_name("sentiment", "min_prompt_length")
    assert key == "TURNSENSE_SENTIMENT_MIN_PROMPT_LENGTH"

    resolved = resolve_tuneables(tmp_path / "tuneables.json", environ={key: "7"})
    assert resolved.data["sentiment"]["min_prompt_length"] == 7
    assert resolved.sources["sentiment.min_prompt_length"] == f"env:{key}"


def test_blank_env_value_is_ignored(tmp_path):
    resolved = resolve_tuneables(tmp_path / "tuneables.json", environ={"TURNSENSE_SENTIMENT_MIN_CONFIDENCE": "  "})
    assert resolved.data["sentiment"]["min_confidence"] == 0.5


def test_out_of_range_values_are_clamped_with_warning(tmp_path):
    _write_tuneables(tmp_path, {"sentiment": {"min_confidence": 3.0}})
    resolved = resolve_tuneables(tmp_path / "tuneables.json", environ={})
    assert resolved.data["sentiment"]["min_confidence"] == 1.0
    assert any("min_confidence" in w and "clamped" in w for w in resolved.warnings)


def test_bad_enum_falls_back_to_default(tmp_path):
    resolved = resolve_tuneables(tmp_path / "tuneables.json", environ={"TURNSENSE_INFERENCE_BACKEND": "gpt"})
    assert resolved.data["inference"]["backend"] == "claude"
    assert any("inference.backend" in w for w in resolved.warnings)


def test_malformed_runtime_file_is_ignored(tmp_path):
    (tmp_path / "tuneables.json").write_text("{not json", encoding="utf-8")
    resolved = resolve_tuneables(tmp_path / "tuneables.json", environ={})
    assert resolved.data["sentiment"]["min_prompt_length"] == 3


def test_validate_preserves_unknown_keys():
    result = validate_tuneables({"sentiment": {"mystery": 1, "_doc": "notes"}, "extra": {"a": 1}})
    assert result.data["sentiment"]["mystery"] == 1
    assert result.data["sentiment"]["_doc"] == "notes"
    assert result.data["extra"] == {"a": 1}
    assert "sentiment.mystery" in result.unknown_keys
    assert "sentiment._doc" not in result.unknown_keys
    assert "section:extra" in result.unknown_keys


def test_full_defaults_cover_schema():
    defaults = get_full_defaults()
    assert set(defaults) == set(SCHEMA)
    assert defaults["inference"]["claude_fast_model"] == "haiku"


def test_identity_from_settings(tmp_path):
    settings = tmp_path / "settings.json"
    settings.write_text(json.dumps({"principal": {"name": "Dana"}, "daidentity": {"name": "Kai"}}), encoding="utf-8")
    identity = resolve_identity(settings, None, environ={"PRINCIPAL_NAME": "Ignored"})
    assert identity.principal_name == "Dana"
    assert identity.assistant_name == "Kai"


def test_identity_from_env_file_then_environment(tmp_path):
    env_file = tmp_path / ".env"
    env_file.write_text("PRINCIPAL_NAME=Robin\n", encoding="utf-8")
    identity = resolve_identity(tmp_path / "settings.json", env_file, environ={"DA_NAME": "Echo"})
    assert identity.principal_name == "Robin"
    assert identity.assistant_name == "Echo"


def test_identity_defaults(tmp_path):
    config = CaptureConfig.load(home=tmp_path, environ={})
    assert config.identity.principal_name == "User"
    assert config.identity.assistant_name == "Assistant"


def test_paths_layout(tmp_path):
    paths = CapturePaths(tmp_path)
    assert paths.ratings_file == tmp_path / "MEMORY" / "LEARNING" / "SIGNALS" / "ratings.jsonl"
    assert paths.current_work_file == tmp_path / "MEMORY" / "STATE" / "current-work.json"
    assert paths.task_dir("20260202-s", "001_task") == tmp_path / "MEMORY" / "WORK" / "20260202-s" / "tasks" / "001_task"


def test_default_home_honours_env(tmp_path, monkeypatch):
    monkeypatch.setenv("TURNSENSE_HOME", str(tmp_path))
    assert default_home() == tmp_path
    monkeypatch.delenv("TURNSENSE_HOME")
    monkeypatch.setattr(Path, "home", lambda: tmp_path / "user")
    assert default_home() == tmp_path / "user" / ".turnsense"


def test_schema_types_match_validator():
    types = {spec.type for section in SCHEMA.values() for spec in section.values()}
    assert types == {"int", "float", "str"}


def test_validate_coerces_numeric_strings():
    result = validate_tuneables({"sentiment": {"context_turns": "4", "min_confidence": "0.75", "min_prompt_length": "x"}})
    assert result.data["sentiment"]["context_turns"] == 4
    assert result.data["sentiment"]["min_confidence"] == 0.75
    assert result.data["sentiment"]["min_prompt_length"] == 3
    assert result.warnings == ["sentiment.min_prompt_length: cannot convert 'x' to int, using default 3"]
