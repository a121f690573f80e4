"""
Resolver service - maps a request path and query string to a fixture file path.
"""
from __future__ import annotations

import os
import re
from typing import Iterable, Pattern, Union

PATH_SEPARATOR = "/"
# Nested paths flatten into a single filename component
PATH_JOINER = ":"

JSONP_CALLBACK = "callback="

IgnorePattern = Union[str, Pattern[str]]


def join_path_and_query(path: str, query_string: str = "") -> str:
    """Join a URL path and its raw query string the way they appeared on the wire."""
    if query_string:
        return f"{path}?{query_string}"
    return path


def has_jsonp_callback(value: str) -> bool:
    """JSONP detection is purely syntactic: any `callback=` in the string selects it."""
    return JSONP_CALLBACK in value


def resolve_fixture_name(
    path: str,
    query_string: str = "",
    ignore_patterns: Iterable[IgnorePattern] = ()
) -> str:
    """
    Compute the flattened fixture name (without extension) for a request.

    Each ignore pattern is applied once, in configuration order, removing every
    match from the joined path and query string.
    """
    name = join_path_and_query(path, query_string)
    for pattern in ignore_patterns:
        name = re.sub(pattern, "", name)

    if name.startswith(PATH_SEPARATOR):
        name = name[len(PATH_SEPARATOR):]
    return name.replace(PATH_SEPARATOR, PATH_JOINER)


def resolve_fixture_path(
    path: str,
    query_string: str,
    ignore_patterns: Iterable[IgnorePattern],
    fixtures_root: str,
    extension: str
) -> str:
    """
    Resolve the on-disk location of the fixture for a request.

    Never raises; an empty request resolves to `<fixtures_root>/.<extension>`.

    Examples:
        >>> resolve_fixture_path("/api/users", "page=2", [], "/fixtures", "json")
        '/fixtures/api:users?page=2.json'
    """
    name = resolve_fixture_name(path, query_string, ignore_patterns)
    return os.path.join(fixtures_root, f"{name}.{extension}")
