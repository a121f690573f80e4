"""
Mock API - local stand-in for a production API backed by recorded fixtures.

Application factory for the FastAPI application.
"""
from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import Any, Mapping, Union

import httpx
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from mock_api.config import MockApiConfig, build_config
from mock_api.logging import get_logger
from mock_api.routers import fixtures, internal
from mock_api.services.fixture_store import FixtureStore
from mock_api.services.overrides import register_overrides
from mock_api.state import AppState, app_state_of

logger = get_logger(__name__)

PRODUCTION_TIMEOUT = 30.0


def create_http_client() -> httpx.AsyncClient:
    """HTTP client for production fetches, shared by all requests of an application."""
    return httpx.AsyncClient(timeout=PRODUCTION_TIMEOUT, follow_redirects=True)


def _init_state(config: MockApiConfig, http_client: httpx.AsyncClient | None) -> AppState:
    """Build the fixture store and register overrides. Raises ConfigurationError."""
    store = FixtureStore(
        config.fixtures_path,
        encoding=config.encoding,
        ignore_patterns=config.query_string_ignore
    )
    dispatcher = register_overrides(config.overrides or {}, store, quiet=config.quiet)
    return AppState(config, store, dispatcher, http_client=http_client)


def _set_cors_middleware(app: FastAPI, whitelist: list[str]) -> None:
    """Allow credentialed cross-origin requests from whitelisted origins only."""
    app.add_middleware(
        CORSMiddleware,
        allow_origins=whitelist,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"]
    )


def _set_latency_middleware(app: FastAPI, latency_ms: float) -> None:
    """Delay every request by a fixed duration before it is handled."""
    delay = latency_ms / 1000

    @app.middleware("http")
    async def add_latency(request: Request, call_next):
        await asyncio.sleep(delay)
        return await call_next(request)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager - opens and closes the production HTTP client."""
    state = app_state_of(app)
    if state.http_client is None:
        state.http_client = create_http_client()
        state.owns_http_client = True
        logger.info("HTTP client initialized")

    yield

    if state.owns_http_client:
        await state.aclose()
        logger.info("HTTP client closed")


def create_app(
    config: Union[MockApiConfig, Mapping[str, Any]],
    http_client: httpx.AsyncClient | None = None
) -> FastAPI:
    """
    Build a mock API application.

    Args:
        config: Validated config or raw options (camelCase or snake_case keys)
        http_client: Client for production fetches; created by the lifespan when omitted

    Raises:
        ConfigurationError: If options are missing or malformed, an override uses an
                            unknown method, or an override has no response and no fixture
    """
    config = build_config(config)
    state = _init_state(config, http_client)

    app = FastAPI(
        title="Mock API",
        description="Serves recorded production responses from local fixtures",
        lifespan=lifespan
    )
    app.state.mock_api = state

    if config.cors_whitelist:
        _set_cors_middleware(app, config.cors_whitelist)
    if config.latency:
        _set_latency_middleware(app, config.latency)

    # Internal routes first: the fixtures router catches every path
    app.include_router(internal.router)
    app.include_router(fixtures.router)

    if not config.quiet:
        logger.info(f"Serving fixtures from {config.fixtures_path} for {config.prod_root_url}")
    return app
