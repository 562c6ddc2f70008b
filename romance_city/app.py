from contextlib import asynccontextmanager

from fastapi import FastAPI

from romance_city.config import Settings, load_settings
from romance_city.routes import router
from romance_city.session import GameHost


def create_app(settings: Settings | None = None, host: GameHost | None = None) -> FastAPI:
    resolved = settings or load_settings()
    game_host = host or GameHost(resolved)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        await game_host.exit_game()

    app = FastAPI(title="Romance City", lifespan=lifespan)
    app.state.host = game_host
    app.include_router(router, prefix="/api")
    return app


# Default app instance for uvicorn (reads .env / environment)
app = create_app()
