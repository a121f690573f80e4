"""
Application state - one container per mock API application, built at startup.
"""
from __future__ import annotations

import httpx
from fastapi import FastAPI, Request

from mock_api.config import MockApiConfig
from mock_api.services.fixture_store import FixtureStore
from mock_api.services.overrides import OverrideDispatcher
from mock_api.services.stats import StatsCollector


class AppState:
    """
    Application state container.
    Stored on `app.state.mock_api`, so independent applications never share state.
    """

    def __init__(
        self,
        config: MockApiConfig,
        store: FixtureStore,
        dispatcher: OverrideDispatcher,
        http_client: httpx.AsyncClient | None = None,
        owns_http_client: bool = False
    ):
        self.config = config
        self.store = store
        self.dispatcher = dispatcher
        self.http_client = http_client
        self.owns_http_client = owns_http_client
        self.stats = StatsCollector()

    async def aclose(self) -> None:
        """Close the HTTP client if this state created it."""
        if self.http_client is not None and self.owns_http_client:
            await self.http_client.aclose()
            self.http_client = None


def get_app_state(request: Request) -> AppState:
    """FastAPI dependency returning the state of the application serving the request."""
    return request.app.state.mock_api


def app_state_of(app: FastAPI) -> AppState:
    return app.state.mock_api
