"""
Fetcher service - retrieves a response from the production API.
"""
from __future__ import annotations

import json
import re
from dataclasses import dataclass
from typing import Any

import httpx

from mock_api.errors import UpstreamError
from mock_api.logging import get_logger
from mock_api.services.resolver import has_jsonp_callback

logger = get_logger(__name__)

JSON_CONTENT_TYPE = re.compile(r"(javascript|json)")
TEXT_CONTENT_TYPE = re.compile(r"text")


@dataclass(frozen=True)
class FetchResult:
    """A normalized production response."""
    payload: Any
    is_json: bool
    status_code: int

    def serialize(self) -> str:
        """Text to persist as a fixture."""
        if self.is_json:
            return json.dumps(self.payload)
        return self.payload


def production_url(prod_root: str, path: str) -> str:
    return prod_root + path


async def fetch_from_production(
    client: httpx.AsyncClient,
    prod_root: str,
    path: str,
    method: str = "GET"
) -> FetchResult:
    """
    Fetch a path from the production API in a single attempt.

    Args:
        client: Shared HTTP client
        prod_root: Production root URL, without trailing slash
        path: Request path including its raw query string
        method: Incoming request method; only GET is ever sent to production

    Returns:
        The decoded payload, flagged as JSON or text

    Raises:
        UpstreamError: For non-GET methods (no request is made), transport failures,
                       non-success statuses and unrecognized content types
    """
    if method.upper() != "GET":
        raise UpstreamError(f"Couldn't fetch {method.upper()} {path} from production, only GET is recorded")

    url = production_url(prod_root, path)
    is_jsonp = has_jsonp_callback(url)

    try:
        response = await client.get(url)
    except httpx.HTTPError as e:
        raise UpstreamError(f"Couldn't complete fetch of {url}: {e!r}") from e

    if not response.is_success:
        raise UpstreamError(f"Couldn't complete fetch with status {response.status_code}")

    content_type = response.headers.get("Content-Type", "")
    logger.debug(f"Production answered {response.status_code} ({content_type or 'no content type'}) for {path}")

    if JSON_CONTENT_TYPE.search(content_type) and not is_jsonp:
        try:
            payload = response.json()
        except ValueError as e:
            raise UpstreamError(f"Couldn't decode JSON from {url}: {e}") from e
        return FetchResult(payload=payload, is_json=True, status_code=response.status_code)

    if is_jsonp or TEXT_CONTENT_TYPE.search(content_type):
        return FetchResult(payload=response.text, is_json=False, status_code=response.status_code)

    raise UpstreamError(f"Couldn't complete fetch with Content-Type '{content_type}'")
