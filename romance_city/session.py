"""Game session — owns the active GameState between turns.

Everything runs on one asyncio event loop, so there are no locks. The
session guarantees:

  - one turn at a time: a second play_turn() while one is in flight raises
    TurnInProgressError instead of queueing;
  - a turn either commits completely (a fallback step counts as a normal
    step) or, when cancelled, leaves the state exactly as it was;
  - a new scene image is committed only after it fully downloaded, and only
    if no newer refresh was started meanwhile;
  - autosave snapshots whatever state is committed when it fires.

GameHost sits above the session and mirrors the app's screens: key entry,
new game, load, save and exit.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from romance_city.config import Settings, new_game_state
from romance_city.images import ImageGenerator, ImagePreloader, ImageRequest, build_image_request
from romance_city.llm import LLM, GeminiLLM, MissingCredentialError
from romance_city.models import GameState, StoryStepResult
from romance_city.pipeline.merge import commit_turn
from romance_city.pipeline.resolver import TurnResolver, check_cancel
from romance_city.pipeline.visuals import EffectCue
from romance_city.storage import SaveStore

logger = logging.getLogger(__name__)

Preloader = Callable[[str], Awaitable[bool]]


class TurnInProgressError(RuntimeError):
    """Raised when an action is submitted while another turn is resolving."""


class NoActiveGameError(RuntimeError):
    """Raised when a gameplay operation is requested outside a game."""


@dataclass(frozen=True)
class TurnOutcome:
    state: GameState
    step: StoryStepResult
    effect: EffectCue | None
    refresh_visuals: bool


class GameSession:
    def __init__(
        self,
        state: GameState,
        resolver: TurnResolver,
        store: SaveStore,
        images: ImageGenerator | None = None,
        preload: Preloader | None = None,
        autosave_interval: float = 30.0,
    ) -> None:
        self._state = state
        self._resolver = resolver
        self._store = store
        self._images = images or ImageGenerator()
        self._preload = preload or ImagePreloader()
        self._autosave_interval = autosave_interval

        self._turn_cancel: asyncio.Event | None = None
        self._visual_generation = 0
        self._visual_tasks: set[asyncio.Task] = set()
        self._autosave_task: asyncio.Task | None = None

    @property
    def state(self) -> GameState:
        return self._state

    @property
    def busy(self) -> bool:
        return self._turn_cancel is not None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Start autosave and load the opening image if there is none yet."""
        if self._autosave_task is None and self._autosave_interval > 0:
            self._autosave_task = asyncio.create_task(self._autosave_loop())
        scene = self._state.current_scene
        if not self._state.background_image_url and scene.background_description:
            self.refresh_visuals(build_image_request(scene.background_description, None))

    async def close(self) -> None:
        self.cancel_turn()
        tasks = list(self._visual_tasks)
        if self._autosave_task is not None:
            tasks.append(self._autosave_task)
            self._autosave_task = None
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

    # ------------------------------------------------------------------
    # Turns
    # ------------------------------------------------------------------

    async def play_turn(self, player_action: str) -> TurnOutcome:
        """Resolve and commit one turn.

        Raises:
            TurnInProgressError: another turn is still resolving.
            TurnCancelledError: cancel_turn() was called; state is unchanged.
        """
        if self._turn_cancel is not None:
            raise TurnInProgressError("A turn is already in progress")
        cancel = asyncio.Event()
        self._turn_cancel = cancel
        try:
            before = self._state
            step = await self._resolver.resolve_turn(
                before.history, player_action, before, cancel=cancel
            )
            check_cancel(cancel)
            commit = commit_turn(before, player_action, step)
            # Keep an image that finished loading while the turn resolved.
            self._state = commit.state.model_copy(
                update={"background_image_url": self._state.background_image_url}
            )
        finally:
            self._turn_cancel = None

        if commit.image_request is not None:
            self.refresh_visuals(commit.image_request)

        return TurnOutcome(
            state=self._state,
            step=step,
            effect=commit.effect,
            refresh_visuals=commit.refresh_visuals,
        )

    def cancel_turn(self) -> bool:
        """Ask the in-flight turn to stop. Returns False if none is running."""
        if self._turn_cancel is None:
            return False
        self._turn_cancel.set()
        return True

    # ------------------------------------------------------------------
    # Visuals
    # ------------------------------------------------------------------

    def refresh_visuals(self, request: ImageRequest) -> asyncio.Task:
        self._visual_generation += 1
        task = asyncio.create_task(self._load_image(request, self._visual_generation))
        self._visual_tasks.add(task)
        task.add_done_callback(self._visual_tasks.discard)
        return task

    async def wait_for_visuals(self) -> None:
        if self._visual_tasks:
            await asyncio.gather(*list(self._visual_tasks))

    async def _load_image(self, request: ImageRequest, generation: int) -> str | None:
        url = self._images.url_for(request)
        logger.debug("Loading %s image: %s", request.kind, url)
        if not await self._preload(url):
            return None
        if generation != self._visual_generation:
            logger.debug("Discarding stale image %s", url)
            return None
        self._state = self._state.model_copy(update={"background_image_url": url})
        return url

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def save(self) -> None:
        self._store.save(self._state)

    async def _autosave_loop(self) -> None:
        while True:
            await asyncio.sleep(self._autosave_interval)
            try:
                self.save()
            except OSError:
                logger.exception("Auto-save failed")
                continue
            logger.info("Auto-saved")


class GameHost:
    """The single active game of this installation, plus its credential.

    Args:
        settings:    Runtime settings; settings.api_key may be empty.
        store:       Save slot. Defaults to one under settings.data_dir.
        llm_factory: Builds the LLM from an API key. Defaults to GeminiLLM.
        preload:     Image preloader override (tests).
    """

    def __init__(
        self,
        settings: Settings,
        store: SaveStore | None = None,
        llm_factory: Callable[[str], LLM] | None = None,
        preload: Preloader | None = None,
    ) -> None:
        self._settings = settings
        self._api_key = settings.api_key
        self._store = store or SaveStore(settings.data_dir)
        self._llm_factory = llm_factory or self._gemini
        self._preload = preload
        self._session: GameSession | None = None

    @property
    def has_credential(self) -> bool:
        return bool(self._api_key)

    @property
    def session(self) -> GameSession | None:
        return self._session

    @property
    def store(self) -> SaveStore:
        return self._store

    def set_api_key(self, api_key: str) -> None:
        if not api_key.strip():
            raise MissingCredentialError("API key must not be empty")
        self._api_key = api_key.strip()

    def require_session(self) -> GameSession:
        if self._session is None:
            raise NoActiveGameError("No game in progress")
        return self._session

    async def new_game(self, player_name: str) -> GameSession:
        return await self._open(new_game_state(player_name))

    async def load_game(self) -> GameSession | None:
        state = self._store.load()
        if state is None:
            return None
        return await self._open(state)

    def save_game(self) -> GameState:
        session = self.require_session()
        session.save()
        return session.state

    async def exit_game(self) -> None:
        if self._session is not None:
            await self._session.close()
            self._session = None

    async def _open(self, state: GameState) -> GameSession:
        if not self._api_key:
            raise MissingCredentialError("Gemini API key is not configured")
        resolver = TurnResolver(self._llm_factory(self._api_key), self._settings)
        await self.exit_game()
        s = self._settings
        self._session = GameSession(
            state,
            resolver,
            self._store,
            images=ImageGenerator(s.image_base_url, s.image_width, s.image_height, s.image_model),
            preload=self._preload,
            autosave_interval=s.autosave_interval,
        )
        self._session.start()
        return self._session

    def _gemini(self, api_key: str) -> LLM:
        s = self._settings
        return GeminiLLM(
            api_key, model=s.model, base_url=s.base_url,
            temperature=s.temperature, timeout=s.timeout,
        )
