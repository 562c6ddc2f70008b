"""Merge a generated story step into the game state.

Partial updates are made explicit before merging: every field of a patch is
either UNCHANGED or SetTo(value). The generator's reply uses absent/null for
"not mentioned"; to_patch() turns that into the explicit form, and
apply_patch() is the only place a patch touches a record.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Generic, TypeVar, Union

from pydantic import BaseModel

from romance_city.images import ImageRequest, build_image_request
from romance_city.models import (
    NPC,
    Choice,
    GameState,
    NPCStatUpdates,
    PlayerStats,
    SceneData,
    StatUpdates,
    StoryStepResult,
)
from romance_city.pipeline.visuals import EffectCue, effect_cue, needs_visual_refresh

T = TypeVar("T")
M = TypeVar("M", bound=BaseModel)


# ---------------------------------------------------------------------------
# Partial updates
# ---------------------------------------------------------------------------

class _Unchanged:
    _instance: _Unchanged | None = None

    def __new__(cls) -> _Unchanged:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "UNCHANGED"


UNCHANGED = _Unchanged()


@dataclass(frozen=True)
class SetTo(Generic[T]):
    value: T


FieldUpdate = Union[_Unchanged, SetTo[Any]]
Patch = dict[str, FieldUpdate]


def to_patch(updates: BaseModel | None, fields: list[str]) -> Patch:
    """Explicit patch over `fields`; missing or null values are UNCHANGED."""
    patch: Patch = {}
    for field in fields:
        value = getattr(updates, field, None) if updates is not None else None
        patch[field] = UNCHANGED if value is None else SetTo(value)
    return patch


def apply_patch(record: M, patch: Patch) -> M:
    """Return a copy of `record` with every SetTo field replaced."""
    changes = {k: u.value for k, u in patch.items() if isinstance(u, SetTo)}
    if not changes:
        return record.model_copy()
    return record.model_validate({**record.model_dump(), **changes})


def stat_patch(updates: StatUpdates | None) -> Patch:
    return to_patch(updates, list(PlayerStats.model_fields))


def npc_patch(updates: NPCStatUpdates | None) -> Patch:
    return to_patch(updates, list(NPCStatUpdates.model_fields))


# ---------------------------------------------------------------------------
# Reducer
# ---------------------------------------------------------------------------

def default_npc(name: str, location: str) -> NPC:
    return NPC(
        name=name,
        description=f"Met in {location}",
        compliance=0,
        affection=0,
        sexual_rating=0,
        mood="Neutral",
    )


def record_choice(history: list[str], player_action: str) -> list[str]:
    return [*history, f"User Choice: {player_action}"]


def scene_from_step(step: StoryStepResult) -> SceneData:
    return SceneData(
        location=step.location,
        background_description=step.visual_description,
        narrative=step.narrative,
        speaker=step.speaker,
        speaker_emotion=step.speaker_emotion,
        choices=[
            Choice(id=f"c_{i}", text=c.text, action_type=c.type)
            for i, c in enumerate(step.choices)
        ],
        visual_effects=step.effect or "none",
    )


def apply_step(state: GameState, step: StoryStepResult) -> GameState:
    """Merge one story step into `state` and return the new state.

    `state` is not modified. The user-choice line is expected to be in
    state.history already (see record_choice).
    """
    stats = apply_patch(state.player.stats, stat_patch(step.stat_updates))
    player = state.player.model_copy(update={"stats": stats})

    npcs = {name: npc.model_copy() for name, npc in state.npcs.items()}
    for update in step.npc_updates or []:
        existing = npcs.get(update.name) or default_npc(update.name, step.location)
        npcs[update.name] = apply_patch(existing, npc_patch(update.stats))

    return GameState(
        player=player,
        npcs=npcs,
        history=[*state.history, f"System: {step.narrative}"],
        current_scene=scene_from_step(step),
        background_image_url=state.background_image_url,
    )


@dataclass(frozen=True)
class TurnCommit:
    state: GameState
    refresh_visuals: bool
    image_request: ImageRequest | None
    effect: EffectCue | None


def commit_turn(state: GameState, player_action: str, step: StoryStepResult) -> TurnCommit:
    """Everything one resolved turn does to the game state.

    The refresh decision compares against the scene *before* this step.
    """
    refresh = needs_visual_refresh(state.current_scene, step)
    pending = state.model_copy(update={"history": record_choice(state.history, player_action)})
    return TurnCommit(
        state=apply_step(pending, step),
        refresh_visuals=refresh,
        image_request=(
            build_image_request(step.visual_description, step.speaker_visual) if refresh else None
        ),
        effect=effect_cue(step.effect),
    )
