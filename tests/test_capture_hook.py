from __future__ import annotations

import io
import json

import pytest

import hooks.capture as capture_hook
from turnsense.inference import InferenceResult
from turnsense.signal_store import SignalStore


class _Backend:
    async def infer(self, request):
        return InferenceResult(
            success=True,
            parsed={"rating": 8, "sentiment": "positive", "confidence": 0.9, "summary": "Happy"},
        )


def _run_hook(monkeypatch, tmp_path, event) -> None:
    monkeypatch.setenv("TURNSENSE_HOME", str(tmp_path))
    monkeypatch.setattr(capture_hook, "build_backend", lambda config: _Backend())
    monkeypatch.setattr("sys.stdin", io.StringIO(event if isinstance(event, str) else json.dumps(event)))
    with pytest.raises(SystemExit) as exc:
        capture_hook.main()
    assert exc.value.code == 0


def test_user_prompt_event_records_rating(tmp_path, monkeypatch, capsys):
    _run_hook(monkeypatch, tmp_path, {
        "hook_event_name": "UserPromptSubmit",
        "session_id": "s9",
        "prompt": "that is exactly right, thanks",
    })
    entries = SignalStore(tmp_path / "MEMORY" / "LEARNING" / "SIGNALS" / "ratings.jsonl").read_ratings()
    assert [(e.rating, e.session_id) for e in entries] == [(8, "s9")]
    assert capsys.readouterr().out == ""


def test_stop_event_updates_task_state(tmp_path, monkeypatch, capsys):
    state = tmp_path / "MEMORY" / "STATE"
    state.mkdir(parents=True)
    (state / "current-work.json").write_text(json.dumps({
        "sessionId": "s1", "sessionDir": "20260202-s", "currentTask": "001_t",
    }), encoding="utf-8")
    task_dir = tmp_path / "MEMORY" / "WORK" / "20260202-s" / "tasks" / "001_t"
    task_dir.mkdir(parents=True)
    (task_dir / "ISC.json").write_text(json.dumps({"criteria": []}), encoding="utf-8")

    transcript = tmp_path / "t.jsonl"
    transcript.write_text(json.dumps({
        "type": "assistant",
        "message": {"content": "📋 SUMMARY: wrapped up\n✅ RESULTS: 4 criteria, all satisfied"},
    }) + "\n", encoding="utf-8")

    _run_hook(monkeypatch, tmp_path, {
        "hook_event_name": "Stop",
        "session_id": "s9",
        "transcript_path": str(transcript),
    })
    doc = json.loads((task_dir / "ISC.json").read_text(encoding="utf-8"))
    assert doc["status"] == "complete"
    assert doc["satisfaction"]["satisfied"] == 4
    assert capsys.readouterr().out == ""


def test_bad_input_exits_cleanly(tmp_path, monkeypatch, capsys):
    _run_hook(monkeypatch, tmp_path, "{not json")
    assert capsys.readouterr().out == ""


def test_unknown_event_is_ignored(tmp_path, monkeypatch):
    _run_hook(monkeypatch, tmp_path, {"hook_event_name": "PreToolUse", "tool_name": "Bash"})
    assert not (tmp_path / "MEMORY").exists()
