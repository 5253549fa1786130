import json
from pathlib import Path

from turnsense.transcript import flatten_content, last_assistant_text, read_turns, recent_context


def _write_transcript(path: Path, rows) -> Path:
    with path.open("w", encoding="utf-8") as f:
        for row in rows:
            f.write((row if isinstance(row, str) else json.dumps(row)) + "\n")
    return path


def _msg(role, content):
    return {"type": role, "message": {"role": role, "content": content}}


def _sample(tmp_path):
    return _write_transcript(tmp_path / "t.jsonl", [
        _msg("user", "first question"),
        _msg("assistant", "📋 SUMMARY: Fixed the parser\nlots more detail"),
        {"type": "system", "message": {"content": "ignored"}},
        "{broken json",
        "",
        _msg("user", "x" * 300),
        _msg("assistant", [
            {"type": "text", "text": "plain answer " + "y" * 200},
            {"type": "tool_use", "name": "Bash", "input": {"command": "ls"}},
        ]),
        _msg("user", "now what"),
    ])


def test_flatten_content_shapes():
    assert flatten_content("hi") == "hi"
    assert flatten_content([{"type": "text", "text": "a"}, {"type": "image"}, {"type": "text", "text": "b"}]) == "a b"
    assert flatten_content(None) == ""


def test_read_turns_skips_noise(tmp_path):
    turns = read_turns(_sample(tmp_path))
    assert [t.role for t in turns] == ["user", "assistant", "user", "assistant", "user"]


def test_recent_context_truncates_and_uses_summary(tmp_path):
    path = _sample(tmp_path)
    lines = recent_context(path, max_turns=3).splitlines()
    assert lines[0] == "User: " + "x" * 200
    assert lines[1] == "Assistant: " + ("plain answer " + "y" * 200)[:150]
    assert lines[2] == "User: now what"

    wider = recent_context(path, max_turns=4).splitlines()
    assert wider[0] == "Assistant: Fixed the parser"


def test_missing_transcript_is_empty(tmp_path):
    assert read_turns(tmp_path / "nope.jsonl") == []
    assert read_turns(None) == []
    assert recent_context(tmp_path / "nope.jsonl") == ""
    assert last_assistant_text(None) == ""


def test_last_assistant_text(tmp_path):
    path = _sample(tmp_path)
    assert last_assistant_text(path).startswith("plain answer")
    assert last_assistant_text(path, limit=5) == "plain"
