"""ASGI application entry point for uvicorn.

Usage:
    uvicorn email_dispatch.server:app --host 0.0.0.0 --port 8000

Configuration is read by :func:`email_dispatch.config_loader.load_settings`
(``EDS_CONFIG`` selects the INI file, ``EDS_*`` variables act as fallbacks).
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from .api import create_app
from .config_loader import build_core, load_settings
from .core import EmailDispatchCore
from .logger import configure_logging


def build_app(settings: dict[str, object]) -> FastAPI:
    """Create the application whose lifespan starts and stops the core."""
    core: EmailDispatchCore = build_core(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """Application lifespan handler - initialises the store and closes the transport."""
        await core.start()
        yield
        await core.stop()

    return create_app(core, api_token=settings.get("api_token"), lifespan=lifespan)


_settings = load_settings()
configure_logging(str(_settings["log_level"]))

app = build_app(_settings)
