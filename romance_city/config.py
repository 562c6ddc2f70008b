"""Runtime settings and fixed game constants.

Settings come from the environment, with a `.env` file at the repository root
loaded first. Nothing here talks to the network.
"""

from __future__ import annotations

import os
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel

from romance_city.models import Choice, GameState, Player, PlayerStats, SceneData

ROOT = Path(__file__).parent.parent
DEFAULT_DATA_DIR = ROOT / "data"


class Settings(BaseModel):
    api_key: str = ""
    model: str = "gemini-2.5-flash"
    base_url: str = "https://generativelanguage.googleapis.com"
    temperature: float = 0.9
    timeout: float = 120.0

    # Turn resolution
    max_attempts: int = 3
    base_delay: float = 2.0
    rate_limit_delay: float = 5.0
    history_window: int = 5

    # Images
    image_base_url: str = "https://image.pollinations.ai"
    image_width: int = 1280
    image_height: int = 720
    image_model: str = "flux"

    data_dir: Path = DEFAULT_DATA_DIR
    autosave_interval: float = 30.0


def load_settings(env_file: Path | None = None) -> Settings:
    """Build Settings from `.env` plus the process environment."""
    load_dotenv(env_file or ROOT / ".env")
    defaults = Settings()
    return Settings(
        api_key=os.getenv("GEMINI_API_KEY") or os.getenv("API_KEY", ""),
        model=os.getenv("GEMINI_MODEL", defaults.model),
        base_url=os.getenv("GEMINI_BASE_URL", defaults.base_url),
        temperature=float(os.getenv("GEMINI_TEMPERATURE", defaults.temperature)),
        timeout=float(os.getenv("LLM_TIMEOUT", defaults.timeout)),
        image_base_url=os.getenv("IMAGE_BASE_URL", defaults.image_base_url),
        data_dir=Path(os.getenv("DATA_DIR", str(defaults.data_dir))),
        autosave_interval=float(os.getenv("AUTOSAVE_SECONDS", defaults.autosave_interval)),
    )


# ---------------------------------------------------------------------------
# New-game constants
# ---------------------------------------------------------------------------

INITIAL_STATS = PlayerStats(strength=100, intelligence=100, charisma=100, money=9999999)

DEFAULT_PLAYER_APPEARANCE = (
    "A handsome young bachelor with tapered black hairstyle, athletic but lean built body."
)

OPENING_SCENE = SceneData(
    location="City Center",
    background_description="A bustling modern city center with skyscrapers and parks.",
    narrative="You arrive in the city, ready for a new life.",
    choices=[Choice(id="start", text="Look around", action_type="action")],
)


def new_game_state(player_name: str) -> GameState:
    """State created when the player confirms their character."""
    player = Player(
        name=player_name.strip() or "Hero",
        appearance=DEFAULT_PLAYER_APPEARANCE,
        stats=INITIAL_STATS.model_copy(),
    )
    return GameState(player=player, current_scene=OPENING_SCENE.model_copy(deep=True))
