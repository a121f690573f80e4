"""
Overrides service - builds the configured route overrides and dispatches requests to them.
"""
from __future__ import annotations

import json
from typing import Any, Iterable, List, Mapping, Optional, Union
from urllib.parse import parse_qsl

from fastapi import HTTPException, Request, Response
from pydantic import ValidationError
from starlette.datastructures import QueryParams
from starlette.routing import Match, Route

from mock_api.config import OVERRIDE_METHODS, RouteOverride
from mock_api.errors import ConfigurationError, FixtureError
from mock_api.logging import get_logger
from mock_api.services.fetcher import JSON_CONTENT_TYPE
from mock_api.services.fixture_store import FixtureFormat, FixtureStore

logger = get_logger(__name__)


async def read_request_body(request: Request) -> Any:
    """
    Parse a request body as JSON or urlencoded form data.

    Returns an empty dict for empty bodies and other content types.

    Raises:
        HTTPException: 400 if a JSON body is malformed
    """
    raw = await request.body()
    if not raw:
        return {}

    content_type = request.headers.get("content-type", "")
    if JSON_CONTENT_TYPE.search(content_type):
        try:
            return json.loads(raw)
        except ValueError:
            raise HTTPException(status_code=400, detail="Malformed JSON request body")
    if "application/x-www-form-urlencoded" in content_type:
        return dict(parse_qsl(raw.decode("latin-1"), keep_blank_values=True))
    return {}


class OverrideHandler:
    """Serves one override entry for one method and route."""

    def __init__(self, method: str, override: RouteOverride, payload: str, quiet: bool = False):
        self.method = method
        self.override = override
        self.payload = payload
        self.response_is_json = bool(JSON_CONTENT_TYPE.search(override.content_type))
        self.quiet = quiet
        # Starlette's own matcher, so routes use the host router's path syntax
        methods = None if method == "all" else [method.upper()]
        self._route = Route(override.route, endpoint=self.handle, methods=methods)

    def matches(self, request: Request) -> bool:
        """True when both the method and the route match."""
        match, _ = self._route.matches(request.scope)
        return match is Match.FULL

    def accepts_query(self, query_params: Union[QueryParams, Mapping[str, str]]) -> bool:
        """Every required query parameter must be present with exactly the required value."""
        required = self.override.with_query_params or {}
        return all(query_params.get(name) == value for name, value in required.items())

    async def handle(self, request: Request) -> Optional[Response]:
        """
        Build the override response.

        Returns:
            The response, or None when the query predicate declines the request
        """
        if not self.accepts_query(request.query_params):
            return None

        if not self.quiet:
            logger.info(f"Serving local fixture for {self.method.upper()} -> '{self.override.route}'")

        content = self.payload
        if self.response_is_json and self.override.merge_params is not None:
            body = await read_request_body(request)
            try:
                merged = self.override.merge_params(json.loads(self.payload), body)
                content = json.dumps(merged)
            except Exception as e:
                logger.error(f"mergeParams failed for '{self.override.route}': {e}")
                return Response(status_code=500)

        return Response(
            content=content,
            status_code=self.override.status,
            headers=dict(self.override.headers)
        )


class OverrideDispatcher:
    """Gives overrides first refusal on a request, in registration order."""

    def __init__(self, handlers: Iterable[OverrideHandler] = ()):
        self.handlers: List[OverrideHandler] = list(handlers)

    def __len__(self) -> int:
        return len(self.handlers)

    async def dispatch(self, request: Request) -> Optional[Response]:
        """
        Find the first matching override that accepts the request.

        Returns:
            The override response, or None to fall through to fixture resolution
        """
        for handler in self.handlers:
            if not handler.matches(request):
                continue
            response = await handler.handle(request)
            if response is not None:
                return response
        return None


def _load_payload(override: RouteOverride, store: FixtureStore, response_is_json: bool) -> str:
    if override.response is None:
        fixture_path = store.path_for(override.route, "", FixtureFormat.JSON)
        try:
            return store.read_text_sync(fixture_path)
        except FixtureError as e:
            raise ConfigurationError(
                f"Route override specified for '{override.route}' with no response or matching fixture"
            ) from e

    if response_is_json:
        return json.dumps(override.response)
    if isinstance(override.response, str):
        return override.response
    return str(override.response)


def build_override_handler(
    method: str,
    override: Union[RouteOverride, Mapping[str, Any]],
    store: FixtureStore,
    quiet: bool = False
) -> OverrideHandler:
    """
    Validate one override entry and load its payload.

    Raises:
        ConfigurationError: If the entry is malformed or has neither a response
                            nor a backing JSON fixture
    """
    if not isinstance(override, RouteOverride):
        try:
            override = RouteOverride.model_validate(dict(override))
        except ValidationError as e:
            raise ConfigurationError(f"Invalid {method} override: {e.errors()[0]['msg']}") from e

    if not override.route.startswith("/"):
        raise ConfigurationError(f"Override route '{override.route}' must start with '/'")

    response_is_json = bool(JSON_CONTENT_TYPE.search(override.content_type))
    payload = _load_payload(override, store, response_is_json)

    if response_is_json and override.merge_params is not None:
        try:
            json.loads(payload)
        except ValueError as e:
            raise ConfigurationError(
                f"Route override for '{override.route}' has mergeParams but its response is not JSON: {e}"
            ) from e

    return OverrideHandler(method, override, payload, quiet=quiet)


def register_overrides(
    overrides: Mapping[str, Iterable[Union[RouteOverride, Mapping[str, Any]]]],
    store: FixtureStore,
    quiet: bool = False
) -> OverrideDispatcher:
    """
    Build the dispatcher for all configured overrides.

    Every backing fixture is read here, before any request is served.

    Raises:
        ConfigurationError: On an unknown method name or an invalid entry
    """
    handlers = []
    for method, entries in overrides.items():
        if method not in OVERRIDE_METHODS:
            raise ConfigurationError(f"Couldn't override route with invalid HTTP method: '{method}'")
        for entry in entries:
            handlers.append(build_override_handler(method, entry, store, quiet=quiet))

    if handlers and not quiet:
        logger.info(f"Registered {len(handlers)} route overrides")
    return OverrideDispatcher(handlers)
