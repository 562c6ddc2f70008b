"""Tests for the turn prompt: template rendering, context building, schema."""

import json

import pytest

from romance_city.models import NPC
from romance_city.prompts import (
    RESPONSE_SCHEMA,
    SYSTEM_INSTRUCTION,
    TURN_CONTEXT_TEMPLATE,
    PromptError,
    build_context,
    build_turn_prompt,
    render_prompt,
)


# ── render_prompt ────────────────────────────────────────────


def test_render_simple_variable():
    assert render_prompt("Hello {{name}}!", {"name": "World"}) == "Hello World!"


def test_render_invalid_template():
    with pytest.raises(PromptError):
        render_prompt("{{> missing_partial}}", {})


# ── build_context ────────────────────────────────────────────


def test_build_context_keeps_last_five_history_entries(game_state):
    history = [f"entry {i}" for i in range(20)]
    ctx = build_context(game_state, history, "Dance")
    assert ctx["history"] == [f"entry {i}" for i in range(15, 20)]


def test_build_context_short_history_kept_whole(game_state):
    ctx = build_context(game_state, ["only one"], "Dance")
    assert ctx["history"] == ["only one"]


def test_build_context_custom_window(game_state):
    ctx = build_context(game_state, ["a", "b", "c"], "Dance", window=2)
    assert ctx["history"] == ["b", "c"]


def test_build_context_npcs_as_json(game_state):
    state = game_state.model_copy(update={
        "npcs": {"Jenny": NPC(name="Jenny", description="Met in Gym", sexual_rating=7)}
    })
    ctx = build_context(state, [], "Wave")
    npcs = json.loads(ctx["npcs"])
    assert npcs["Jenny"]["sexualRating"] == 7
    assert npcs["Jenny"]["mood"] == "Neutral"


# ── build_turn_prompt ────────────────────────────────────────


def test_turn_prompt_contents(game_state):
    prompt = build_turn_prompt(game_state, ["User Choice: Look around"], "Look around")
    assert "Current Player: Alex" in prompt
    assert f"Appearance: {game_state.player.appearance}" in prompt
    assert "Stats: Strength 100, Int 100, Cha 100, Money 9999999." in prompt
    assert "Current Location: City Center" in prompt
    assert "Known NPCs: {}" in prompt
    assert "User Choice: Look around\n" in prompt
    assert prompt.rstrip().endswith("User Action: Look around")


def test_turn_prompt_is_not_html_escaped(game_state):
    prompt = build_turn_prompt(game_state, ['User Choice: Say "hi" & <wink>'], 'Say "hi"')
    assert 'User Choice: Say "hi" & <wink>' in prompt
    assert 'User Action: Say "hi"' in prompt
    assert "&quot;" not in prompt


def test_turn_prompt_history_window(game_state):
    history = [f"System: line {i}" for i in range(20)]
    prompt = build_turn_prompt(game_state, history, "Wait")
    lines = [line for line in prompt.splitlines() if line.startswith("System: line")]
    assert lines == [f"System: line {i}" for i in range(15, 20)]


def test_template_mentions_every_context_field():
    for key in ("player.name", "player.appearance", "stats.money", "location", "npcs", "history", "action"):
        assert key in TURN_CONTEXT_TEMPLATE


# ── Static configuration ─────────────────────────────────────


def test_system_instruction_demands_json():
    assert "You MUST output raw JSON" in SYSTEM_INSTRUCTION


def test_schema_required_fields():
    assert RESPONSE_SCHEMA["required"] == ["narrative", "location", "visual_description", "choices"]


def test_schema_enums():
    props = RESPONSE_SCHEMA["properties"]
    choice_type = props["choices"]["items"]["properties"]["type"]
    assert choice_type["enum"] == ["dialogue", "action", "travel", "intimacy"]
    assert props["effect"]["enum"] == ["shake", "flash", "bloom", "none"]
    assert props["speaker"]["nullable"] is True


def test_schema_npc_stats_keys():
    stats = RESPONSE_SCHEMA["properties"]["npc_updates"]["items"]["properties"]["stats"]
    assert set(stats["properties"]) == {"compliance", "affection", "sexualRating", "mood"}
