"""
Shared test fixtures and helpers.
"""
from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Callable

import httpx
import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from mock_api.main import create_app
from mock_api.services.fixture_store import FixtureStore


PROD_ROOT_URL = "http://prod.example.com"
JSONP_CALLBACK = "callback=test"
IGNORED_QUERY = "queryStringIgnore=test"
IGNORE_PATTERN = r"\?queryStringIgnore=test$"


def write_fixture(fixtures_dir: Path, name: str, content: Any) -> Path:
    """Write a fixture file; dicts and lists are stored as JSON."""
    if not isinstance(content, str):
        content = json.dumps(content)
    path = fixtures_dir / name
    path.write_text(content, encoding="utf-8")
    return path


def make_options(fixtures_dir: Path, **overrides: Any) -> dict:
    """Default startup options for tests, quiet and ignoring one query string."""
    options = {
        "prodRootURL": PROD_ROOT_URL,
        "fixturesPath": str(fixtures_dir),
        "queryStringIgnore": [IGNORE_PATTERN],
        "quiet": True,
    }
    options.update(overrides)
    return options


def merge_into_response(response: dict, params: dict) -> dict:
    """mergeParams function used by override tests."""
    return {**response, **params}


@pytest.fixture
def fixtures_dir(tmp_path) -> Path:
    """Empty fixtures directory."""
    path = tmp_path / "responses"
    path.mkdir()
    return path


@pytest.fixture
def options(fixtures_dir) -> dict:
    """Default startup options pointing at the temporary fixtures directory."""
    return make_options(fixtures_dir)


@pytest.fixture
def store(fixtures_dir) -> FixtureStore:
    """Fixture store over the temporary fixtures directory."""
    return FixtureStore(str(fixtures_dir), ignore_patterns=[IGNORE_PATTERN])


@pytest.fixture
def app_factory(httpx_mock) -> Callable[[dict], FastAPI]:
    """
    Build mock API apps whose production client is intercepted by httpx_mock.
    The HTTP client is created AFTER httpx_mock is set up.
    """
    def factory(app_options: dict) -> FastAPI:
        return create_app(app_options, http_client=httpx.AsyncClient())
    return factory


@pytest.fixture
def client(app_factory, options) -> TestClient:
    """Test client for an app built from the default options."""
    return TestClient(app_factory(options))
