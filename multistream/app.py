"""Main FastAPI application for the MultiStream backend."""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from multistream import __version__
from multistream.config import StreamManagerConfig, get_config
from multistream.logging_config import setup_logging
from multistream.middleware.error_handler import setup_exception_handlers
from multistream.routes import streams
from multistream.routes import websocket as ws_router
from multistream.session_manager import SessionManager

logger = logging.getLogger(__name__)


def create_app(
    config: Optional[StreamManagerConfig] = None,
    session_manager: Optional[SessionManager] = None,
) -> FastAPI:
    """Build the FastAPI application.

    Args:
        config: Service configuration (loaded from env if not provided).
        session_manager: Pre-built manager; one is created on startup otherwise.

    Returns:
        FastAPI: Configured application.
    """
    config = config or get_config()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan manager for startup/shutdown.

        Args:
            app: FastAPI application instance.
        """
        logger.info(f"Starting {config.service_name} backend...")
        if app.state.session_manager is None:
            app.state.session_manager = SessionManager(config)
        logger.info(f"{config.service_name} backend ready on port {config.port}")

        try:
            yield
        finally:
            logger.info(f"Shutting down {config.service_name} backend...")
            await app.state.session_manager.shutdown()

    app = FastAPI(
        title=config.service_name,
        description="Stream one video source to many RTMP destinations",
        version=__version__,
        debug=config.debug,
        lifespan=lifespan,
    )
    app.state.config = config
    app.state.session_manager = session_manager

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    setup_exception_handlers(app)

    app.include_router(streams.router, tags=["Streams"])
    # WebSocket routes (/ws and /)
    app.include_router(ws_router.router, tags=["WebSocket"])

    return app


settings = get_config()
setup_logging(settings)
app = create_app(settings)


def main() -> None:
    """Run the backend with uvicorn."""
    import uvicorn

    uvicorn.run(
        "multistream.app:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
