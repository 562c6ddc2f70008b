"""JSON file storage for the single save slot.

There is one save per installation. The whole GameState is written as one
JSON document; nothing else reads inside it.

Directory layout:

    {base}/
      saves/
        sca_save_state.json   ← the GameState blob
"""

from __future__ import annotations

import logging
from pathlib import Path

from pydantic import ValidationError

from romance_city.models import GameState

logger = logging.getLogger(__name__)

SAVE_SLOT = "sca_save_state"


class StorageError(RuntimeError):
    """Raised when the save slot exists but cannot be read back."""


class SaveStore:
    def __init__(self, base_path: Path, slot: str = SAVE_SLOT) -> None:
        self._base = base_path
        self._saves = base_path / "saves"
        self._saves.mkdir(parents=True, exist_ok=True)
        self._slot = slot

    @property
    def path(self) -> Path:
        return self._saves / f"{self._slot}.json"

    def save(self, state: GameState) -> None:
        # Write-then-rename: the slot only ever holds a complete document.
        tmp = self.path.with_suffix(".tmp")
        tmp.write_text(state.model_dump_json(indent=2))
        tmp.replace(self.path)
        logger.info("Saved game to %s (%d history entries)", self.path, len(state.history))

    def load(self) -> GameState | None:
        if not self.path.exists():
            return None
        try:
            return GameState.model_validate_json(self.path.read_text())
        except (ValidationError, UnicodeDecodeError) as e:
            raise StorageError(f"Save slot {self._slot!r} is corrupt: {e}") from e

    def exists(self) -> bool:
        return self.path.exists()

    def clear(self) -> None:
        self.path.unlink(missing_ok=True)
