import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from config import settings

logging.basicConfig(level=logging.DEBUG if settings.debug else logging.INFO)
logger = logging.getLogger(__name__)


async def _cleanup_loop(interval: float) -> None:
    """Periodically drop ended games so idle sessions don't pile up."""
    from games.registry import get_registry
    while True:
        await asyncio.sleep(interval)
        try:
            get_registry().cleanup()
        except Exception:
            logger.warning("Game cleanup failed", exc_info=True)


@asynccontextmanager
async def lifespan(app: FastAPI):
    from games.registry import get_registry
    logger.info("🎮 Live mini-game engine starting up...")
    registry = get_registry()
    await registry.refresh_settings()
    cleanup_task = asyncio.create_task(_cleanup_loop(settings.cleanup_interval_seconds))
    yield
    cleanup_task.cancel()
    registry.shutdown()
    logger.info("Mini-game engine stopped, pending deadlines cancelled")


app = FastAPI(
    title="Stream Minigames",
    version="0.1.0",
    description="Timed audience mini-games (lucky wheel, poll, race, DJ) driven by live chat",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization"],
)


@app.get("/health")
async def health_check():
    return {"status": "ok", "service": "stream-minigames", "version": "0.1.0"}


from routers.game_router import router as game_router

app.include_router(game_router, prefix="/api")


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=True)
