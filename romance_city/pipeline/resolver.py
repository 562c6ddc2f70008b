"""Turn resolver — asks the story generator for the next step.

Turn flow:
  1. Append "User Choice: <action>" to the history; the last 5 entries go
     into the context block together with player, location and NPCs.
  2. Call the LLM with the static system instruction and response schema.
  3. Parse the reply into a StoryStepResult. Bad JSON or a schema mismatch
     fails the attempt.
  4. Retry up to 3 attempts. A raised error backs off 2s/4s/8s, or 5s/10s/20s
     when rate limited. An empty reply uses up the attempt without waiting.
  5. When every attempt fails, return a locally built fallback step so the
     game can always continue.

The resolver never touches GameState; merging is pipeline.merge's job.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

from pydantic import ValidationError

from romance_city.config import Settings
from romance_city.llm import LLM, is_rate_limited
from romance_city.models import GameState, StoryChoice, StoryStepResult
from romance_city.pipeline.merge import record_choice
from romance_city.prompts import RESPONSE_SCHEMA, SYSTEM_INSTRUCTION, build_turn_prompt

logger = logging.getLogger(__name__)

T = TypeVar("T")

FALLBACK_NARRATIVE = "The world seems to pause... (AI Error. Please try again.)"
FALLBACK_CHOICE = "Try again"
RATE_LIMIT_NARRATIVE = (
    "The city is too busy right now (Rate Limit Exceeded). "
    "Please wait a few seconds before making your next choice."
)
RATE_LIMIT_CHOICE = "Wait and Continue"


class ResponseParseError(ValueError):
    """Raised when the generator's reply is not a valid story step."""


class TurnCancelledError(Exception):
    """Raised when the caller cancels a turn before it resolved."""


def parse_story_step(text: str) -> StoryStepResult:
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise ResponseParseError(f"Story generator returned invalid JSON: {e}") from e
    try:
        return StoryStepResult.model_validate(data)
    except ValidationError as e:
        raise ResponseParseError(f"Story step does not match the schema: {e}") from e


def fallback_step(state: GameState, rate_limited: bool = False) -> StoryStepResult:
    scene = state.current_scene
    return StoryStepResult(
        narrative=RATE_LIMIT_NARRATIVE if rate_limited else FALLBACK_NARRATIVE,
        location=scene.location,
        visual_description=scene.background_description,
        speaker=None,
        speaker_emotion=None,
        speaker_visual=None,
        choices=[
            StoryChoice(text=RATE_LIMIT_CHOICE if rate_limited else FALLBACK_CHOICE, type="action")
        ],
        effect="none",
    )


def backoff_delay(attempt: int, error: BaseException, settings: Settings) -> float:
    """Seconds to wait after failed attempt number `attempt` (0-based)."""
    base = settings.rate_limit_delay if is_rate_limited(error) else settings.base_delay
    return base * 2 ** attempt


class TurnResolver:
    """Resolves one player action into a StoryStepResult.

    Args:
        llm:      Structured-generation callable (see romance_city.llm.LLM).
        settings: Retry counts, delays and the history window.
        sleep:    Awaitable delay, replaceable in tests.
    """

    def __init__(
        self,
        llm: LLM,
        settings: Settings | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._llm = llm
        self._settings = settings or Settings()
        self._sleep = sleep

    async def resolve_turn(
        self,
        history: list[str],
        player_action: str,
        state: GameState,
        cancel: asyncio.Event | None = None,
    ) -> StoryStepResult:
        """Return the next story step. Generation failures end in a fallback step.

        Raises:
            TurnCancelledError: if `cancel` is set before an attempt, while the
                generator is answering or during a back-off wait.
        """
        prompt = build_turn_prompt(
            state,
            record_choice(history, player_action),
            player_action,
            window=self._settings.history_window,
        )

        last_error: Exception | None = None
        for attempt in range(self._settings.max_attempts):
            check_cancel(cancel)
            try:
                text = await _unless_cancelled(
                    self._llm(
                        prompt,
                        system_instruction=SYSTEM_INSTRUCTION,
                        response_schema=RESPONSE_SCHEMA,
                    ),
                    cancel,
                )
                if text:
                    return parse_story_step(text)
                logger.warning("Attempt %d: empty response text", attempt + 1)
            except TurnCancelledError:
                raise
            except Exception as e:
                logger.warning("Attempt %d failed: %s", attempt + 1, e)
                last_error = e
                if is_rate_limited(e):
                    logger.warning("Rate limit hit, waiting longer...")
                delay = backoff_delay(attempt, e, self._settings)
                await _unless_cancelled(self._sleep(delay), cancel)

        logger.error("All %d attempts failed; last error: %s", self._settings.max_attempts, last_error)
        return fallback_step(state, rate_limited=is_rate_limited(last_error))


async def _unless_cancelled(aw: Awaitable[T], cancel: asyncio.Event | None) -> T:
    """Await `aw`, abandoning it with TurnCancelledError once `cancel` is set."""
    if cancel is None:
        return await aw
    work = asyncio.ensure_future(aw)
    waiter = asyncio.ensure_future(cancel.wait())
    try:
        await asyncio.wait({work, waiter}, return_when=asyncio.FIRST_COMPLETED)
    finally:
        work.cancel()
        waiter.cancel()
    check_cancel(cancel)
    return work.result()


def check_cancel(cancel: asyncio.Event | None) -> None:
    if cancel is not None and cancel.is_set():
        raise TurnCancelledError("Turn cancelled")
