"""Inference backends for turnsense.

A backend takes a system prompt and a user prompt and returns parsed output
or a failure. Two are provided:

- ClaudeCLIBackend: locally-authenticated ``claude -p`` subprocess.
- OllamaBackend: local Ollama ``/api/generate`` over HTTP.

Backends report problems through InferenceResult(success=False, error=...)
rather than raising. They make a single attempt; callers own any timeout race.

Usage:
    backend = build_backend(config)
    result = await backend.infer(InferenceRequest(system_prompt=..., user_prompt=...))
"""

from __future__ import annotations

import asyncio
import json
import logging
import shutil
from dataclasses import dataclass
from typing import Any, Dict, Optional, Protocol

import requests

from .config import CaptureConfig
from .errors import InferenceError

log = logging.getLogger("turnsense.inference")

LEVELS = ("fast", "standard", "smart")


@dataclass
class InferenceRequest:
    system_prompt: str
    user_prompt: str
    expect_json: bool = True
    timeout_ms: int = 20000
    level: str = "fast"


@dataclass
class InferenceResult:
    success: bool
    parsed: Optional[Dict[str, Any]] = None
    error: Optional[str] = None
    raw: Optional[str] = None


class InferenceBackend(Protocol):
    async def infer(self, request: InferenceRequest) -> InferenceResult:
        ...


def extract_json(raw_text: str) -> Dict[str, Any]:
    """Parse a JSON object from model output, tolerating surrounding prose."""
    text = (raw_text or "").strip()
    if not text:
        raise InferenceError("Empty model output")
    try:
        payload = json.loads(text)
    except json.JSONDecodeError:
        start = text.find("{")
        end = text.rfind("}")
        if start < 0 or end <= start:
            raise InferenceError("No JSON object found in model output")
        try:
            payload = json.loads(text[start:end + 1])
        except json.JSONDecodeError as exc:
            raise InferenceError(f"Invalid JSON in model output: {exc}") from exc
    if not isinstance(payload, dict):
        raise InferenceError(f"Expected a JSON object, got {type(payload).__name__}")
    return payload


def _finish(request: InferenceRequest, raw: str) -> InferenceResult:
    if not request.expect_json:
        return InferenceResult(success=True, raw=raw)
    try:
        return InferenceResult(success=True, parsed=extract_json(raw), raw=raw)
    except InferenceError as e:
        log.debug("unparseable model output: %s", e)
        return InferenceResult(success=False, error=str(e), raw=raw)


class ClaudeCLIBackend:
    """Claude via the ``claude -p`` CLI (OAuth session, no API key)."""

    def __init__(self, models: Dict[str, str], claude_bin: str = "claude"):
        self._models = dict(models)
        self._claude_bin = claude_bin

    def model_for(self, level: str) -> str:
        return self._models.get(level) or self._models.get("fast") or "haiku"

    async def infer(self, request: InferenceRequest) -> InferenceResult:
        claude_bin = shutil.which(self._claude_bin)
        if claude_bin is None:
            return InferenceResult(success=False, error=f"{self._claude_bin} CLI not found on PATH")
        cmd = [
            claude_bin, "-p",
            "--model", self.model_for(request.level),
            "--system-prompt", request.system_prompt,
            "--output-format", "text",
        ]
        timeout_s = max(0.001, request.timeout_ms / 1000.0)
        try:
            proc = await asyncio.create_subprocess_exec(
                *cmd,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            return InferenceResult(success=False, error=f"claude CLI failed to start: {e}")
        try:
            stdout, stderr = await asyncio.wait_for(
                proc.communicate(input=request.user_prompt.encode("utf-8")),
                timeout=timeout_s,
            )
        except asyncio.TimeoutError:
            log.debug("claude CLI timed out after %ss, killing pid %s", timeout_s, proc.pid)
            proc.kill()
            await proc.wait()
            return InferenceResult(success=False, error=f"claude CLI timed out after {timeout_s}s")

        if proc.returncode != 0:
            err = stderr.decode("utf-8", errors="replace").strip()
            return InferenceResult(success=False, error=f"claude CLI exited {proc.returncode}: {err[:300]}")
        return _finish(request, stdout.decode("utf-8", errors="replace"))


class OllamaBackend:
    """Local Ollama model over HTTP."""

    def __init__(self, url: str, model: str):
        self.url = url
        self.model = model

    def _post(self, request: InferenceRequest) -> str:
        payload = {
            "model": self.model,
            "system": request.system_prompt,
            "prompt": request.user_prompt,
            "stream": False,
            "options": {"temperature": 0.2},
        }
        if request.expect_json:
            payload["format"] = "json"
        response = requests.post(self.url, json=payload, timeout=request.timeout_ms / 1000.0)
        response.raise_for_status()
        return str(response.json().get("response", ""))

    async def infer(self, request: InferenceRequest) -> InferenceResult:
        try:
            raw = await asyncio.to_thread(self._post, request)
        except (requests.RequestException, ValueError) as e:
            log.debug("ollama request to %s failed: %s", self.url, e)
            return InferenceResult(success=False, error=f"ollama request failed: {type(e).__name__}: {e}")
        return _finish(request, raw)


def build_backend(config: CaptureConfig) -> InferenceBackend:
    cfg = config.inference
    if cfg.get("backend") == "ollama":
        return OllamaBackend(cfg["ollama_url"], cfg["ollama_model"])
    return ClaudeCLIBackend(
        {
            "fast": cfg["claude_fast_model"],
            "standard": cfg["claude_standard_model"],
            "smart": cfg["claude_smart_model"],
        },
        claude_bin=cfg.get("claude_bin") or "claude",
    )
