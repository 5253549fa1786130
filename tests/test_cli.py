from __future__ import annotations

import json

import turnsense.cli as turnsense_cli
from turnsense.inference import InferenceResult
from turnsense.signal_store import RatingEntry, SignalStore
from turnsense.timeutil import iso_timestamp


class _Backend:
    async def infer(self, request):
        return InferenceResult(
            success=True,
            parsed={"rating": 2, "sentiment": "negative", "confidence": 0.9, "summary": "Annoyed"},
        )


def test_guard(capsys):
    turnsense_cli.main(["guard", "8 great job"])
    assert capsys.readouterr().out.strip() == "explicit rating: 8"
    turnsense_cli.main(["guard", "3 bugs remain"])
    assert capsys.readouterr().out.strip() == "not an explicit rating"


def test_extract(tmp_path, capsys):
    response = tmp_path / "response.md"
    response.write_text("📋 SUMMARY: Did the thing\n➡️ NEXT: Ship it", encoding="utf-8")
    turnsense_cli.main(["extract", str(response)])
    payload = json.loads(capsys.readouterr().out)
    assert payload["summary"] == "Did the thing"
    assert payload["next"] == "Ship it"
    assert payload["analysis"] is None


def test_config(tmp_path, capsys):
    turnsense_cli.main(["--home", str(tmp_path), "config"])
    out = capsys.readouterr().out
    assert "[sentiment]" in out
    assert "min_confidence = 0.5" in out


def test_ratings_json(tmp_path, capsys):
    store = SignalStore(tmp_path / "MEMORY" / "LEARNING" / "SIGNALS" / "ratings.jsonl")
    store.append(RatingEntry("2026-02-02T14:30:00.000Z", 3, "s1", "meh", 0.7))
    store.append(RatingEntry("2026-02-02T14:31:00.000Z", 9, "s1", "great", 0.9))

    turnsense_cli.main(["--home", str(tmp_path), "ratings", "--json"])
    payload = json.loads(capsys.readouterr().out)
    assert payload["stats"] == {"count": 2, "mean_rating": 6.0, "low_count": 1}
    assert [e["rating"] for e in payload["entries"]] == [3, 9]


def test_ratings_text_shows_age(tmp_path, capsys):
    store = SignalStore(tmp_path / "MEMORY" / "LEARNING" / "SIGNALS" / "ratings.jsonl")
    store.append(RatingEntry(iso_timestamp(), 4, "s1", "fresh", 0.8))
    store.append(RatingEntry("sometime", 7, "s1", "odd stamp", 0.6))

    turnsense_cli.main(["--home", str(tmp_path), "ratings"])
    lines = [line.strip() for line in capsys.readouterr().out.splitlines() if "/10" in line]
    assert "(just now)" in lines[0]
    assert "fresh" in lines[0]
    assert lines[1].startswith("sometime (?)")


def test_classify_dry_run_persists_nothing(tmp_path, capsys, monkeypatch):
    monkeypatch.setattr(turnsense_cli, "build_backend", lambda config: _Backend())
    turnsense_cli.main(["--home", str(tmp_path), "classify", "this keeps breaking", "--dry-run"])
    payload = json.loads(capsys.readouterr().out)
    assert payload["kind"] == "classified"
    assert payload["rating"] == 2
    assert not (tmp_path / "MEMORY" / "LEARNING" / "SIGNALS" / "ratings.jsonl").exists()


def test_classify_persists(tmp_path, capsys, monkeypatch):
    monkeypatch.setattr(turnsense_cli, "build_backend", lambda config: _Backend())
    turnsense_cli.main(["--home", str(tmp_path), "classify", "this keeps breaking", "--session", "abc"])
    payload = json.loads(capsys.readouterr().out)
    assert payload["kind"] == "captured"
    entries = SignalStore(tmp_path / "MEMORY" / "LEARNING" / "SIGNALS" / "ratings.jsonl").read_ratings()
    assert entries[0].session_id == "abc"


def test_capture_without_active_task(tmp_path, capsys):
    response = tmp_path / "response.md"
    response.write_text("📋 SUMMARY: renamed a variable", encoding="utf-8")
    turnsense_cli.main(["--home", str(tmp_path), "capture", str(response)])
    assert "task_state no active task" in capsys.readouterr().out
