#!/usr/bin/env python3
"""
turnsense capture hook: implicit ratings on user prompts, task state and
learnings on completed responses.

The host pipes one JSON event to stdin. Nothing is ever printed to stdout and
the process always exits 0, so a capture problem can never block the session.

- UserPromptSubmit: classify the prompt, append a rating, write a learning
  record for low ratings
- Stop: parse the last assistant response, patch ISC.json / THREAD.md,
  capture a learning when the response reads like a solved problem

Usage in .claude/settings.json:
{
  "hooks": {
    "UserPromptSubmit": [{"matcher": "", "hooks": [{"type": "command", "command": "python /path/to/turnsense/hooks/capture.py"}]}],
    "Stop": [{"matcher": "", "hooks": [{"type": "command", "command": "python /path/to/turnsense/hooks/capture.py"}]}]
  }
}
"""

import asyncio
import json
import sys
from pathlib import Path

# Add parent to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from turnsense.config import CaptureConfig
from turnsense.diagnostics import log_debug, setup_component_logging
from turnsense.inference import build_backend
from turnsense.sentiment import SentimentClassifier
from turnsense.task_state import ResponseCapture
from turnsense.transcript import last_assistant_text


def on_user_prompt(config: CaptureConfig, event: dict) -> None:
    prompt = event.get("prompt") or ""
    if not prompt:
        return
    classifier = SentimentClassifier(config, build_backend(config))
    outcome = asyncio.run(classifier.handle_user_prompt(
        prompt,
        session_id=event.get("session_id") or "unknown",
        transcript_path=event.get("transcript_path"),
    ))
    log_debug("hook", f"sentiment outcome: {outcome.kind.value} {outcome.reason}")


def on_stop(config: CaptureConfig, event: dict) -> None:
    text = last_assistant_text(event.get("transcript_path"))
    if not text:
        log_debug("hook", "no assistant response in transcript")
        return
    report = ResponseCapture(config).handle_response_capture(text, event.get("session_id") or "")
    for step in report.steps:
        log_debug("hook", f"{step.step}: {step.status.value} {step.reason}")


HANDLERS = {
    "UserPromptSubmit": on_user_prompt,
    "Stop": on_stop,
}


def main():
    """Main hook entry point."""
    try:
        event = json.load(sys.stdin)
    except (json.JSONDecodeError, Exception) as e:
        log_debug("hook", "input JSON decode failed", e)
        sys.exit(0)
    if not isinstance(event, dict):
        sys.exit(0)

    handler = HANDLERS.get(event.get("hook_event_name", ""))
    if handler is None:
        sys.exit(0)

    try:
        config = CaptureConfig.load()
        setup_component_logging("capture", config.paths.logs_dir)
        handler(config, event)
    except Exception as e:
        log_debug("hook", f"{event.get('hook_event_name')} handler failed", e)

    sys.exit(0)


if __name__ == "__main__":
    main()
