"""
Implicit sentiment capture: infer a 1-10 satisfaction rating from what the
user says when they did not give an explicit score.

Flow per user message:
    explicit rating?  -> deferred (explicit capture path owns it)
    too short?        -> skipped
    inference vs timer race
        timer first   -> failed (late inference result is discarded)
        backend error -> failed
    rating None       -> 5 (neutral baseline)
    confidence low    -> low_confidence (nothing persisted)
    otherwise         -> RatingEntry appended; rating < 6 also writes a learning record

Rating scale:
- 1-2: strong frustration, anger, disappointment
- 3-4: mild frustration, dissatisfaction
- 5: neutral
- 6-7: satisfaction, approval
- 8-9: strong approval
- 10: extraordinary enthusiasm
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from .config import CaptureConfig, Identity
from .errors import StepResult
from .inference import InferenceBackend, InferenceRequest
from .learning import LearningRecorder
from .rating_guard import is_explicit_rating
from .signal_store import NEUTRAL_RATING, RatingEntry, SignalStore
from .timeutil import iso_timestamp
from .transcript import last_assistant_text, recent_context

log = logging.getLogger("turnsense.sentiment")

SENTIMENTS = ("positive", "negative", "neutral")


@dataclass
class SentimentResult:
    rating: Optional[int]
    sentiment: str
    confidence: float
    summary: str = ""
    detailed_context: str = ""


class OutcomeKind(Enum):
    CLASSIFIED = "classified"
    CAPTURED = "captured"
    DEFERRED = "deferred"
    SKIPPED = "skipped"
    FAILED = "failed"
    LOW_CONFIDENCE = "low_confidence"
    ERROR = "error"


@dataclass
class SentimentOutcome:
    kind: OutcomeKind
    result: Optional[SentimentResult] = None
    reason: str = ""
    steps: List[StepResult] = field(default_factory=list)

    @property
    def rating(self) -> Optional[int]:
        return self.result.rating if self.result else None

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"kind": self.kind.value, "reason": self.reason}
        if self.result is not None:
            out.update(
                rating=self.result.rating,
                sentiment=self.result.sentiment,
                confidence=self.result.confidence,
                summary=self.result.summary,
            )
        if self.steps:
            out["steps"] = [s.to_dict() for s in self.steps]
        return out


def build_system_prompt(identity: Identity) -> str:
    p = identity.principal_name
    a = identity.assistant_name
    return f"""Analyze {p}'s message for emotional sentiment toward {a} (the AI assistant).

CONTEXT: This is a personal AI system and {p} is its only user. Refer to {p} by name, never as "users".

OUTPUT FORMAT (JSON only):
{{
  "rating": <1-10 or null>,
  "sentiment": "positive" | "negative" | "neutral",
  "confidence": <0.0-1.0>,
  "summary": "<brief explanation, 10 words max>",
  "detailed_context": "<analysis for the learning system, 100-256 words>"
}}

DETAILED_CONTEXT must cover, in 100-256 words:
1. What {p} was trying to accomplish
2. What {a} did or failed to do
3. The root cause of {p}'s frustration or satisfaction
4. The specific behavior that triggered the reaction
5. What {a} should have done differently (negative) or what worked (positive)
6. What this reveals about {p}'s expectations
Someone reading it months later must understand exactly what went wrong or right.

RATING SCALE:
- 1-2: Strong frustration, anger, disappointment with {a}
- 3-4: Mild frustration, dissatisfaction
- 5: Neutral, no strong sentiment
- 6-7: Satisfaction, approval
- 8-9: Strong approval, impressed
- 10: Extraordinary enthusiasm, blown away

CRITICAL DISTINCTIONS:
- Profanity is ambiguous and can signal EITHER extreme.
  - "What the fuck?!" plus a complaint about the work = LOW (1-3)
  - "Holy shit, this is amazing!" = HIGH (9-10)
- Decide by whether the emotion is directed AT {a}'s work.
- Score sarcasm by its underlying sentiment: "Oh great, another error" is negative despite "great".

RETURN null FOR RATING WHEN:
- The message is a neutral technical question ("Can you check the logs?")
- The message is a simple command ("Do it", "Yes", "Continue")
- No emotional indicators are present
- The emotion is unrelated to {a}'s work

EXAMPLES:
{p}: "What the fuck, why did you delete my file?"
-> {{"rating": 1, "sentiment": "negative", "confidence": 0.95, "summary": "Angry about deleted file", "detailed_context": "..."}}

{p}: "Oh my god, this is fucking incredible, you nailed it!"
-> {{"rating": 10, "sentiment": "positive", "confidence": 0.95, "summary": "Extremely impressed with result", "detailed_context": "..."}}

{p}: "Fix the auth bug"
-> {{"rating": null, "sentiment": "neutral", "confidence": 0.9, "summary": "Neutral command, no sentiment", "detailed_context": ""}}

{p}: "Hmm, that's not quite right"
-> {{"rating": 4, "sentiment": "negative", "confidence": 0.6, "summary": "Mild dissatisfaction", "detailed_context": "..."}}

{p}: "Perfect, exactly what I needed"
-> {{"rating": 8, "sentiment": "positive", "confidence": 0.85, "summary": "Satisfied with result", "detailed_context": "..."}}"""


def build_user_prompt(prompt: str, context: str = "") -> str:
    if not context:
        return prompt
    return f"CONTEXT:\n{context}\n\nCURRENT MESSAGE:\n{prompt}"


def _coerce_rating(value: Any) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    try:
        rating = int(round(float(value)))
    except (TypeError, ValueError):
        return None
    return max(1, min(10, rating))


def _coerce_confidence(value: Any) -> float:
    if isinstance(value, bool):
        return 0.0
    try:
        confidence = float(value)
    except (TypeError, ValueError):
        return 0.0
    if confidence != confidence:  # NaN
        return 0.0
    return max(0.0, min(1.0, confidence))


def parse_sentiment(payload: Dict[str, Any]) -> SentimentResult:
    """Coerce backend JSON into a SentimentResult with bounded fields."""
    sentiment = str(payload.get("sentiment") or "neutral").strip().lower()
    if sentiment not in SENTIMENTS:
        sentiment = "neutral"
    return SentimentResult(
        rating=_coerce_rating(payload.get("rating")),
        sentiment=sentiment,
        confidence=_coerce_confidence(payload.get("confidence")),
        summary=str(payload.get("summary") or "").strip(),
        detailed_context=str(payload.get("detailed_context") or "").strip(),
    )


def _discard_late_result(task: "asyncio.Future") -> None:
    """Done-callback for an inference call that lost the race."""
    if task.cancelled():
        log.debug("late inference call cancelled")
        return
    exc = task.exception()
    if exc is not None:
        log.debug("late inference call failed after timeout: %s", exc)
        return
    log.info("discarded inference result that arrived after timeout")


class SentimentClassifier:
    """Classifies user messages and persists the resulting signals."""

    def __init__(
        self,
        config: CaptureConfig,
        backend: InferenceBackend,
        *,
        store: Optional[SignalStore] = None,
        recorder: Optional[LearningRecorder] = None,
    ):
        self.config = config
        self.backend = backend
        self.store = store or SignalStore(config.paths.ratings_file)
        self.recorder = recorder or LearningRecorder(config)
        cfg = config.sentiment
        self.min_prompt_length = int(cfg["min_prompt_length"])
        self.min_confidence = float(cfg["min_confidence"])
        self.analysis_timeout_s = float(cfg["analysis_timeout_s"])
        self.inference_timeout_ms = int(float(cfg["inference_timeout_s"]) * 1000)
        self.low_rating_threshold = int(cfg["low_rating_threshold"])
        self.system_prompt = build_system_prompt(config.identity)

    async def classify(self, prompt: str, context: str = "") -> SentimentOutcome:
        """Race one inference call against the analysis timer."""
        request = InferenceRequest(
            system_prompt=self.system_prompt,
            user_prompt=build_user_prompt(prompt, context),
            expect_json=True,
            timeout_ms=self.inference_timeout_ms,
            level=self.config.sentiment["quality_level"],
        )
        task = asyncio.ensure_future(self.backend.infer(request))
        done, _pending = await asyncio.wait({task}, timeout=self.analysis_timeout_s)
        if task not in done:
            # Left running on purpose; whatever it returns later is ignored.
            task.add_done_callback(_discard_late_result)
            return SentimentOutcome(OutcomeKind.FAILED, reason=f"timeout after {self.analysis_timeout_s}s")

        exc = task.exception()
        if exc is not None:
            return SentimentOutcome(OutcomeKind.FAILED, reason=f"inference raised {type(exc).__name__}: {exc}")
        result = task.result()
        if not result.success or not result.parsed:
            return SentimentOutcome(OutcomeKind.FAILED, reason=f"inference failed: {result.error}")
        return SentimentOutcome(OutcomeKind.CLASSIFIED, result=parse_sentiment(result.parsed))

    async def evaluate(
        self,
        prompt: str,
        transcript_path: Optional[Union[str, Path]] = None,
    ) -> SentimentOutcome:
        """Run every gate and the classifier without persisting anything."""
        if is_explicit_rating(prompt):
            return SentimentOutcome(OutcomeKind.DEFERRED, reason="explicit rating")
        if len(prompt or "") < self.min_prompt_length:
            return SentimentOutcome(OutcomeKind.SKIPPED, reason="prompt too short")

        cfg = self.config.sentiment
        context = ""
        if transcript_path:
            context = recent_context(
                transcript_path,
                max_turns=int(cfg["context_turns"]),
                user_chars=int(cfg["user_context_chars"]),
                assistant_chars=int(cfg["assistant_context_chars"]),
            )

        outcome = await self.classify(prompt, context)
        if outcome.kind != OutcomeKind.CLASSIFIED or outcome.result is None:
            return outcome

        result = outcome.result
        if result.rating is None:
            result.rating = NEUTRAL_RATING
            log.info("neutral sentiment, assigning baseline rating %s", NEUTRAL_RATING)
        if result.confidence < self.min_confidence:
            return SentimentOutcome(
                OutcomeKind.LOW_CONFIDENCE,
                result=result,
                reason=f"confidence {result.confidence} below {self.min_confidence}",
            )
        return outcome

    async def handle_user_prompt(
        self,
        prompt: str,
        session_id: str,
        transcript_path: Optional[Union[str, Path]] = None,
    ) -> SentimentOutcome:
        """Capture an implicit rating for one user message. Never raises."""
        try:
            outcome = await self.evaluate(prompt, transcript_path)
            if outcome.kind != OutcomeKind.CLASSIFIED or outcome.result is None:
                log.info("no implicit rating captured (%s): %s", outcome.kind.value, outcome.reason)
                return outcome

            result = outcome.result
            rating = result.rating if result.rating is not None else NEUTRAL_RATING
            log.info("detected %s/10 - %s", rating, result.summary)

            entry = RatingEntry(
                timestamp=iso_timestamp(),
                rating=rating,
                session_id=session_id,
                sentiment_summary=result.summary,
                confidence=result.confidence,
            )
            stored = self.store.append(entry)
            if not stored.ok:
                return SentimentOutcome(OutcomeKind.FAILED, result=result, reason=stored.reason, steps=[stored])

            steps = [stored]
            if rating < self.low_rating_threshold:
                response_context = last_assistant_text(
                    transcript_path, limit=int(self.config.sentiment["response_context_chars"])
                )
                steps.append(self.recorder.record_low_rating(
                    rating, result.summary, result.detailed_context, response_context,
                ))
            return SentimentOutcome(OutcomeKind.CAPTURED, result=result, steps=steps)
        except Exception as e:
            log.exception("implicit sentiment capture failed")
            return SentimentOutcome(OutcomeKind.ERROR, reason=f"{type(e).__name__}: {e}")
