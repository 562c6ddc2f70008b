"""Core domain models.

The session, the merge reducer and the save store all operate on these types.
Pydantic is used for validation and serialisation at every data boundary:
the generator's JSON reply is validated into a StoryStepResult, and the whole
GameState is dumped as one opaque blob into the save slot.
"""

from __future__ import annotations

from typing import Literal, Union

from pydantic import BaseModel, ConfigDict, Field

Number = Union[int, float]

ChoiceType = Literal["dialogue", "action", "travel", "intimacy"]
VisualEffect = Literal["shake", "flash", "bloom", "none"]


# ---------------------------------------------------------------------------
# Persistent game state
# ---------------------------------------------------------------------------

class PlayerStats(BaseModel):
    strength: Number = 0
    intelligence: Number = 0
    charisma: Number = 0
    money: Number = 0


class Player(BaseModel):
    name: str
    appearance: str
    stats: PlayerStats = Field(default_factory=PlayerStats)


class NPC(BaseModel):
    """A character the player has met. Keyed by name in GameState.npcs."""

    model_config = ConfigDict(populate_by_name=True)

    name: str
    description: str
    compliance: Number = 0  # 0–100 suggested, not enforced
    affection: Number = 0
    sexual_rating: Number = Field(0, alias="sexualRating")
    mood: str = "Neutral"


class Choice(BaseModel):
    id: str
    text: str
    action_type: ChoiceType


class SceneData(BaseModel):
    """What is currently on screen. Replaced wholesale every turn."""

    location: str
    background_description: str
    narrative: str
    speaker: str | None = None
    speaker_emotion: str | None = None
    choices: list[Choice] = Field(default_factory=list)
    visual_effects: VisualEffect = "none"


class GameState(BaseModel):
    player: Player
    npcs: dict[str, NPC] = Field(default_factory=dict)
    history: list[str] = Field(default_factory=list)  # append-only
    current_scene: SceneData
    background_image_url: str | None = None


# ---------------------------------------------------------------------------
# Structured reply from the story generator
# ---------------------------------------------------------------------------

class StoryChoice(BaseModel):
    text: str
    type: ChoiceType


class StatUpdates(BaseModel):
    """Partial player stats. None means the field was not mentioned."""

    strength: Number | None = None
    intelligence: Number | None = None
    charisma: Number | None = None
    money: Number | None = None


class NPCStatUpdates(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    compliance: Number | None = None
    affection: Number | None = None
    sexual_rating: Number | None = Field(None, alias="sexualRating")
    mood: str | None = None


class NPCUpdate(BaseModel):
    name: str
    stats: NPCStatUpdates = Field(default_factory=NPCStatUpdates)


class StoryStepResult(BaseModel):
    """One generated turn, exactly as the response schema describes it."""

    narrative: str
    location: str
    visual_description: str
    speaker: str | None = None
    speaker_emotion: str | None = None
    speaker_visual: str | None = None
    choices: list[StoryChoice] = Field(min_length=1)
    stat_updates: StatUpdates | None = None
    npc_updates: list[NPCUpdate] | None = None
    effect: VisualEffect | None = None
