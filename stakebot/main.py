import contextlib

import uvicorn
from fastapi import FastAPI

from . import __version__
from .api import status
from .runtime.bot import StakingBot


def create_app(bot: StakingBot) -> FastAPI:
    """Read-only status API for a running bot."""

    app = FastAPI(
        title="Stakebot Status API",
        description="Read-only view of the claim and stake bot",
        version=__version__,
        docs_url="/docs",
        redoc_url=None,
    )
    app.state.bot = bot
    app.include_router(status.router, tags=["Status"])

    @app.get("/")
    async def root():
        """Root endpoint with basic info"""
        return {
            "name": "stakebot",
            "version": __version__,
            "state": bot.run_state.value,
            "health": "/healthz",
            "metrics": "/metrics",
            "status": "/status",
        }

    return app


class StatusServer(uvicorn.Server):
    """uvicorn server that leaves SIGINT/SIGTERM to the bot.

    Older uvicorn releases install handlers through
    ``install_signal_handlers``, newer ones through ``capture_signals``.
    """

    def install_signal_handlers(self) -> None:
        return None

    @contextlib.contextmanager
    def capture_signals(self):
        yield


async def serve(bot: StakingBot, host: str, port: int, log_level: str = "info") -> None:
    """Serve the status API until the task is cancelled."""

    config = uvicorn.Config(create_app(bot), host=host, port=port, log_level=log_level.lower(), log_config=None)
    await StatusServer(config).serve()
