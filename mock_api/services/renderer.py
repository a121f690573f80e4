"""
Renderer service - turns fixture content into the response sent to the client.
"""
from __future__ import annotations

import json
import os
from typing import Any

from fastapi import Response
from fastapi.responses import HTMLResponse, JSONResponse

from mock_api.logging import get_logger
from mock_api.services.fixture_store import FixtureFormat
from mock_api.services.resolver import has_jsonp_callback

logger = get_logger(__name__)

JSONP_MEDIA_TYPE = "application/javascript"


def parse_json_fixture(text: str, fixture_path: str) -> Any:
    """Parse stored JSON, falling back to an empty object when it is corrupt."""
    try:
        return json.loads(text)
    except ValueError as e:
        logger.error(f"Couldn't parse JSON fixture {fixture_path}, serving {{}}: {e}")
        return {}


def render_fixture(
    content: Any,
    fixture_path: str,
    fixture_format: FixtureFormat,
    *,
    fresh: bool = False,
    quiet: bool = False
) -> Response:
    """
    Build the response for fixture content.

    Args:
        content: Raw text read from disk, an evaluated script value, or the payload
                 of a fresh production fetch (decoded JSON or text)
        fixture_path: Resolved fixture location; a `callback=` in its name selects JSONP
        fixture_format: Format the fixture is (or will be) stored in
        fresh: True when the content was just fetched from production
        quiet: Suppress the informational log line

    Returns:
        The response to send; a corrupt cached JSON fixture still yields 200 with `{}`
    """
    if not quiet and not fresh:
        logger.info(f"Serving local response from {fixture_path}")

    if has_jsonp_callback(os.path.basename(fixture_path)):
        body = content if isinstance(content, str) else json.dumps(content)
        return Response(content=body, media_type=JSONP_MEDIA_TYPE)

    if fixture_format is FixtureFormat.JSON:
        data = content if fresh else parse_json_fixture(content, fixture_path)
        return JSONResponse(content=data)

    if fixture_format is FixtureFormat.SCRIPT:
        return JSONResponse(content=content)

    return HTMLResponse(content=content)
