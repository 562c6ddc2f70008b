import json
from typing import Any

import pytest

from romance_city.config import Settings, new_game_state
from romance_city.models import GameState, StoryStepResult
from romance_city.storage import SaveStore


class StubLLM:
    """Replays canned replies in order and records every call.

    A reply that is an exception instance is raised instead of returned.
    """

    def __init__(self, *replies: Any) -> None:
        self.replies = list(replies)
        self.calls: list[dict[str, Any]] = []

    async def __call__(self, prompt: str, *, system_instruction: str, response_schema: dict) -> str:
        self.calls.append({
            "prompt": prompt,
            "system_instruction": system_instruction,
            "response_schema": response_schema,
        })
        if not self.replies:
            raise AssertionError("StubLLM ran out of replies")
        reply = self.replies.pop(0)
        if isinstance(reply, BaseException):
            raise reply
        return reply

    @property
    def call_count(self) -> int:
        return len(self.calls)

    def prompt(self, index: int) -> str:
        return self.calls[index]["prompt"]


class RecordingSleep:
    """Stands in for asyncio.sleep; records the requested delays."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


def step_payload(**overrides: Any) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "narrative": "You step onto the warm sand.",
        "location": "Beach",
        "visual_description": "A sunny beach with palm trees and gentle waves.",
        "speaker": None,
        "speaker_emotion": None,
        "speaker_visual": None,
        "choices": [
            {"text": "Go for a swim", "type": "action"},
            {"text": "Wave at the lifeguard", "type": "dialogue"},
        ],
    }
    payload.update(overrides)
    return payload


@pytest.fixture
def stub_llm() -> type[StubLLM]:
    return StubLLM


@pytest.fixture
def sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def make_step():
    def _make(**overrides: Any) -> StoryStepResult:
        return StoryStepResult.model_validate(step_payload(**overrides))
    return _make


@pytest.fixture
def step_json():
    def _make(**overrides: Any) -> str:
        return json.dumps(step_payload(**overrides))
    return _make


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(api_key="test-key", data_dir=tmp_path, autosave_interval=0)


@pytest.fixture
def store(tmp_path) -> SaveStore:
    return SaveStore(tmp_path)


@pytest.fixture
def game_state() -> GameState:
    return new_game_state("Alex")
