"""Turn pipeline: resolve a player action, merge the result, decide visuals.

  resolver — calls the story generator with retry/back-off and falls back to
             a local step when it stays unreachable.
  merge    — pure reducer from (GameState, StoryStepResult) to GameState,
             with explicit UNCHANGED / SetTo partial updates.
  visuals  — image refresh decision and the transient screen effect cue.
"""

from .merge import (  # noqa: F401
    UNCHANGED,
    SetTo,
    TurnCommit,
    apply_step,
    commit_turn,
    record_choice,
)
from .resolver import (  # noqa: F401
    ResponseParseError,
    TurnCancelledError,
    TurnResolver,
    fallback_step,
)
from .visuals import EffectCue, needs_visual_refresh  # noqa: F401
