"""
Text Generation Playground - Main Entry Point

HTTP front end for a conversation against a raw generate or
OpenAI-compatible completion/chat server.

Usage:
    python -m playground.main

Environment Variables:
    PLAYGROUND_HOST       - Server host (default: 0.0.0.0)
    PLAYGROUND_PORT       - Server port (default: 8080)
    PLAYGROUND_API_BASE   - Upstream base URL (default: http://127.0.0.1:8000)
    PLAYGROUND_MODE       - raw-generate | openai-completions | openai-chat
    PLAYGROUND_ENDPOINT   - Endpoint path (default: the mode's default)
    PLAYGROUND_MODEL      - Model ID for OpenAI-style modes
"""

import logging
import sys
from contextlib import asynccontextmanager
from typing import Optional

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .api import router as api_router
from .config import config
from .session import ConversationSession

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[logging.StreamHandler(sys.stdout)],
)
logger = logging.getLogger(__name__)


def create_app(session: Optional[ConversationSession] = None) -> FastAPI:
    """Build the app around a session (a default one if none is given)."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application startup and shutdown lifecycle."""
        current = app.state.session
        logger.info("=" * 60)
        logger.info("Text Generation Playground Starting")
        logger.info("=" * 60)
        logger.info(f"Upstream: {current.base_url}")
        logger.info(f"Mode: {current.mode.value} ({current.endpoint})")
        logger.info(f"Model: {current.params.model or '(none selected)'}")
        logger.info(f"Server ready at http://{config.host}:{config.port}")

        yield

        logger.info("Shutting down...")
        await current.close()
        logger.info("Shutdown complete")

    app = FastAPI(
        title="Text Generation Playground",
        description=(
            "Conversation front end for raw generate and OpenAI-compatible "
            "completion and chat servers."
        ),
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.session = session or ConversationSession()

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.include_router(api_router)

    @app.get("/")
    async def root():
        """Root endpoint with basic info."""
        return {
            "name": "Text Generation Playground",
            "version": "0.1.0",
            "endpoints": {
                "turns": "/turns",
                "cancel": "/cancel",
                "models": "/models",
                "settings": "/settings",
                "health": "/health",
            },
        }

    return app


def main():
    """Run the playground server."""
    uvicorn.run(
        "playground.main:create_app",
        factory=True,
        host=config.host,
        port=config.port,
        reload=False,
        log_level="info",
    )


if __name__ == "__main__":
    main()
