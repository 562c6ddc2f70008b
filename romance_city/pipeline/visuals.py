"""When to regenerate the scene image, and the transient screen effect."""

from __future__ import annotations

from dataclasses import dataclass

from romance_city.models import SceneData, StoryStepResult, VisualEffect

EFFECT_DURATION_MS = 1000


def needs_visual_refresh(previous: SceneData, step: StoryStepResult) -> bool:
    """New location, different speaker (incl. appearing/leaving), or a speaker visual."""
    location_changed = step.location != previous.location
    speaker_changed = step.speaker != previous.speaker
    return location_changed or speaker_changed or bool(step.speaker_visual)


@dataclass(frozen=True)
class EffectCue:
    """A screen effect to show for `duration_ms`, then clear. Never persisted."""

    effect: VisualEffect
    duration_ms: int = EFFECT_DURATION_MS


def effect_cue(effect: VisualEffect | None) -> EffectCue | None:
    if not effect or effect == "none":
        return None
    return EffectCue(effect=effect)
