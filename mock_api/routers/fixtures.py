"""
Fixtures router - answers every request from overrides, fixtures, or the production API.
"""
from __future__ import annotations

from fastapi import APIRouter, Depends, Request, Response

from mock_api.errors import FixtureError, UpstreamError
from mock_api.logging import get_logger
from mock_api.services.fetcher import fetch_from_production
from mock_api.services.fixture_store import FixtureFormat
from mock_api.services.renderer import render_fixture
from mock_api.services.resolver import has_jsonp_callback, join_path_and_query
from mock_api.services.stats import Outcome
from mock_api.state import AppState, get_app_state

logger = get_logger(__name__)

router = APIRouter(tags=["fixtures"])

PIPELINE_METHODS = ["GET", "HEAD", "POST", "PUT", "DELETE", "PATCH", "OPTIONS"]


def _server_error() -> Response:
    """Generic failure: status 500 and no body."""
    return Response(status_code=500)


async def serve_cached_fixture(state: AppState, path: str, query_string: str) -> Response | None:
    """
    Serve the highest-precedence fixture for a request.

    Returns:
        The rendered fixture, or None when no fixture exists

    Raises:
        FixtureError: If the fixture exists but can't be read or evaluated
    """
    fixture = await state.store.find(path, query_string)
    if fixture is None:
        return None
    return render_fixture(
        fixture.content,
        fixture.path,
        fixture.format,
        quiet=state.config.quiet
    )


async def record_from_production(state: AppState, method: str, path: str, query_string: str) -> Response:
    """
    Fetch a response from production, persist it as a fixture and serve it.

    Any failure is logged and answered with a bare 500; persistence failures
    are logged and the fetched response is still served.
    """
    config = state.config
    request_path = join_path_and_query(path, query_string)

    if not config.quiet:
        logger.info(f"{method} {config.prod_root_url} -> {request_path}")

    if state.http_client is None:
        logger.error("HTTP client not initialized")
        return _server_error()

    try:
        result = await fetch_from_production(
            state.http_client,
            config.prod_root_url,
            request_path,
            method=method
        )
    except UpstreamError as e:
        logger.error(f"{e}")
        return _server_error()

    if not config.quiet:
        logger.info(f"STATUS {result.status_code}")

    if result.is_json or has_jsonp_callback(query_string):
        fixture_format = FixtureFormat.JSON
    else:
        fixture_format = FixtureFormat.TEXT
    fixture_path = state.store.path_for(path, query_string, fixture_format)

    if config.save_fixtures:
        try:
            await state.store.write(fixture_path, result.serialize())
        except FixtureError as e:
            logger.error(f"{e}")
        else:
            if not config.quiet:
                logger.info(f"Saved response to {fixture_path}")

    return render_fixture(
        result.payload,
        fixture_path,
        fixture_format,
        fresh=True,
        quiet=config.quiet
    )


@router.api_route(
    "/{full_path:path}",
    methods=PIPELINE_METHODS,
    response_class=Response,
    responses={
        200: {"description": "Override, persisted fixture, or freshly recorded production response"},
        500: {"description": "Production fetch failed, non-GET request without a fixture, or broken fixture (empty body)"}
    }
)
async def resolve(request: Request, state: AppState = Depends(get_app_state)) -> Response:
    """
    Answer a request the way the production API would.

    **Flow:**
    1. Route overrides get first refusal
    2. Serve a persisted fixture (JSON, then script, then text)
    3. Otherwise fetch from production (GET only), persist and serve
    """
    path = request.url.path
    query_string = request.url.query
    request_path = join_path_and_query(path, query_string)

    response = await state.dispatcher.dispatch(request)
    if response is not None:
        await state.stats.record(request_path, Outcome.OVERRIDE)
        return response

    try:
        response = await serve_cached_fixture(state, path, query_string)
    except FixtureError as e:
        logger.error(f"{e}")
        await state.stats.record(request_path, Outcome.ERROR)
        return _server_error()

    if response is not None:
        await state.stats.record(request_path, Outcome.FIXTURE)
        return response

    response = await record_from_production(state, request.method, path, query_string)
    outcome = Outcome.ERROR if response.status_code >= 500 else Outcome.PRODUCTION
    await state.stats.record(request_path, outcome)
    return response
