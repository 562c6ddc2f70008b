"""Story generator prompt: system instruction, response schema, context block.

The system instruction and schema are static configuration and are passed to
the backend verbatim. The per-turn context block is a Handlebars template.
"""

from __future__ import annotations

import json
from collections.abc import Callable
from typing import Any

import pybars

from romance_city.models import GameState

_compiler = pybars.Compiler()
_cache: dict[str, Callable] = {}


class PromptError(Exception):
    """Raised when a Handlebars template fails to compile or render."""


SYSTEM_INSTRUCTION = """
You are the Game Engine for an interactive, open-world visual novel inspired by games like "Summertime Saga".
The genre is slice-of-life, romance, and adult adventure in a modern city.

**Game Rules & Tone:**
1.  **Unlimited Freedom:** The player has unlimited money and maxed stats. Interactivity should reflect this power fantasy.
2.  **NSFW/Romance:** The game allows for romance, intimacy, and adult themes. Be descriptive and open to user choices regarding compliance and relationships.
3.  **Visual Novel Style:** Responses must strictly follow the JSON schema provided below.
4.  **Narrative:** Write in the second person ("You walk into..."). Keep narration concise (2-3 sentences max per turn) to fit a visual novel text box.
5.  **Choices:** Provide 3-5 diverse choices. Some should be "Compliance" actions (making NPCs do things), some conversational, some movement based.
6.  **NPCs:** Track NPC stats (Compliance, Affection, Sexual Rating). If the player uses their stats (Strength/Charisma), the outcome should nearly always be successful due to max stats.
7.  **Structure:** The story is about a young bachelor in a new city meeting people. Sub-quests involve helping people, dating, and exploring the city.

**JSON Response Format (Strictly enforce this):**
You MUST output raw JSON. Do not wrap in markdown code blocks.
{
  "narrative": "The story text to display.",
  "location": "Current location name (e.g., Beach, Gym, Bedroom).",
  "visual_description": "A vivid description of the background scene without characters.",
  "speaker": "Name of character speaking, or null if narrator.",
  "speaker_emotion": "Emotion (happy, angry, flirty, shy, neutral).",
  "speaker_visual": "Visual description of the character (clothes, pose) suitable for image generation, or null if no one is speaking.",
  "choices": [
    { "text": "What the user sees on the button", "type": "dialogue" }
  ],
  "stat_updates": { "money": 0 },
  "npc_updates": [
    { "name": "Jenny", "stats": { "compliance": 5, "affection": 2, "mood": "flirty" } }
  ],
  "effect": "none"
}

**Important:**
- If "type" is "intimacy", the content can be explicit.
- "stat_updates" and "npc_updates" are optional. Use them to persist changes.
- If a new NPC is introduced, provide their initial stats in "npc_updates".
"""


def _nullable(type_: str, **extra: Any) -> dict[str, Any]:
    return {"type": type_, "nullable": True, **extra}


RESPONSE_SCHEMA: dict[str, Any] = {
    "type": "OBJECT",
    "properties": {
        "narrative": {"type": "STRING"},
        "location": {"type": "STRING"},
        "visual_description": {"type": "STRING"},
        "speaker": _nullable("STRING"),
        "speaker_emotion": _nullable("STRING"),
        "speaker_visual": _nullable("STRING"),
        "choices": {
            "type": "ARRAY",
            "items": {
                "type": "OBJECT",
                "properties": {
                    "text": {"type": "STRING"},
                    "type": {
                        "type": "STRING",
                        "enum": ["dialogue", "action", "travel", "intimacy"],
                    },
                },
                "required": ["text", "type"],
            },
        },
        "stat_updates": _nullable("OBJECT", properties={
            "strength": _nullable("NUMBER"),
            "intelligence": _nullable("NUMBER"),
            "charisma": _nullable("NUMBER"),
            "money": _nullable("NUMBER"),
        }),
        "npc_updates": _nullable("ARRAY", items={
            "type": "OBJECT",
            "properties": {
                "name": {"type": "STRING"},
                "stats": {
                    "type": "OBJECT",
                    "properties": {
                        "compliance": _nullable("NUMBER"),
                        "affection": _nullable("NUMBER"),
                        "sexualRating": _nullable("NUMBER"),
                        "mood": _nullable("STRING"),
                    },
                },
            },
        }),
        "effect": _nullable("STRING", enum=["shake", "flash", "bloom", "none"]),
    },
    "required": ["narrative", "location", "visual_description", "choices"],
}


# Triple-stash everywhere: the backend gets plain text, not HTML-escaped.
TURN_CONTEXT_TEMPLATE = """\
Current Player: {{{player.name}}}
Appearance: {{{player.appearance}}}
Stats: Strength {{{stats.strength}}}, Int {{{stats.intelligence}}}, Cha {{{stats.charisma}}}, Money {{{stats.money}}}.
Current Location: {{{location}}}
Known NPCs: {{{npcs}}}

Recent History:
{{#each history}}{{{this}}}
{{/each}}
User Action: {{{action}}}
"""


def render_prompt(template_str: str, context: dict[str, Any]) -> str:
    """Compile and render a Handlebars template with the given context.

    Templates are cached by source string to avoid recompilation.
    """
    try:
        compiled = _cache.get(template_str)
        if compiled is None:
            compiled = _compiler.compile(template_str)
            _cache[template_str] = compiled
        return str(compiled(context))
    except Exception as e:
        raise PromptError(f"Template error: {e}") from e


def build_context(
    state: GameState,
    history: list[str],
    player_action: str,
    window: int = 5,
) -> dict[str, Any]:
    """Assemble template variables for one turn.

    Only the last `window` history entries are included.
    """
    npcs = {name: npc.model_dump(by_alias=True) for name, npc in state.npcs.items()}
    # pybars only renders strings; a bare 0 would come out empty.
    stats = {k: str(v) for k, v in state.player.stats.model_dump().items()}
    return {
        "player": {"name": state.player.name, "appearance": state.player.appearance},
        "stats": stats,
        "location": state.current_scene.location,
        "npcs": json.dumps(npcs),
        "history": history[-window:] if window > 0 else [],
        "action": player_action,
    }


def build_turn_prompt(
    state: GameState, history: list[str], player_action: str, window: int = 5
) -> str:
    return render_prompt(
        TURN_CONTEXT_TEMPLATE, build_context(state, history, player_action, window)
    )
