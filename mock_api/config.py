"""
Mock API configuration - startup options, route overrides and environment settings.
"""
from __future__ import annotations

import codecs
import json
import os
from functools import lru_cache
from typing import Any, Callable, Dict, List, Mapping, Optional, Pattern, Union

from pydantic import BaseModel, ConfigDict, Field, ImportString, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from mock_api.errors import ConfigurationError

# HTTP methods an override may be declared under
OVERRIDE_METHODS = ("get", "post", "put", "delete", "all")

DEFAULT_PORT = 4567


class AppSettings(BaseSettings):
    mock_api_config: Optional[str] = None
    mock_api_log_level: str = "INFO"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )


@lru_cache
def get_settings() -> AppSettings:
    return AppSettings()


class RouteOverride(BaseModel):
    """A configuration-declared handler that bypasses fixture resolution for a route."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    route: str
    response: Any = None
    status: int = 200
    headers: Dict[str, str] = Field(default_factory=lambda: {"Content-Type": "application/json"})
    # A callable, or an import string such as "package.module:function"
    merge_params: Optional[ImportString[Callable[..., Any]]] = Field(default=None, alias="mergeParams")
    with_query_params: Optional[Dict[str, str]] = Field(default=None, alias="withQueryParams")

    @field_validator("route")
    @classmethod
    def _route_required(cls, value: str) -> str:
        if not value:
            raise ValueError("Encountered an HTTP method override without a specified route")
        return value

    @property
    def content_type(self) -> str:
        for name, value in self.headers.items():
            if name.lower() == "content-type":
                return value
        return ""


class MockApiConfig(BaseModel):
    """Settings consumed by the fixture pipeline and the listeners."""

    model_config = ConfigDict(populate_by_name=True)

    prod_root_url: str = Field(alias="prodRootURL")
    fixtures_path: str = Field(alias="fixturesPath")
    cors_whitelist: Optional[List[str]] = Field(default=None, alias="corsWhitelist")
    overrides: Optional[Dict[str, List[RouteOverride]]] = None
    query_string_ignore: List[Pattern[str]] = Field(default_factory=list, alias="queryStringIgnore")
    ports: List[int] = Field(default_factory=lambda: [DEFAULT_PORT])
    host: str = "127.0.0.1"
    encoding: str = "utf8"
    quiet: bool = False
    save_fixtures: bool = Field(default=True, alias="saveFixtures")
    # Artificial per-request delay in milliseconds
    latency: float = Field(default=0, ge=0)

    @field_validator("prod_root_url")
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")

    @field_validator("encoding")
    @classmethod
    def _known_encoding(cls, value: str) -> str:
        try:
            codecs.lookup(value)
        except LookupError:
            raise ValueError(f"unknown encoding '{value}'")
        return value


def _describe_validation_error(error: ValidationError) -> str:
    first = error.errors()[0]
    location = ".".join(str(part) for part in first["loc"])
    if first["type"] == "missing":
        return f"Missing definition of {location} in config"
    return f"Invalid value for {location} in config: {first['msg']}"


def build_config(options: Union[MockApiConfig, Mapping[str, Any]]) -> MockApiConfig:
    """
    Validate startup options.

    Raises:
        ConfigurationError: If a required option is missing or any option is malformed
    """
    if isinstance(options, MockApiConfig):
        return options
    try:
        return MockApiConfig.model_validate(dict(options))
    except ValidationError as e:
        raise ConfigurationError(_describe_validation_error(e)) from e


def load_mock_api_config(path: str) -> MockApiConfig:
    """
    Load mock API configuration from a JSON file.

    A relative fixturesPath is resolved against the config file's directory.

    Raises:
        ConfigurationError: If config file not found, invalid JSON, or invalid options
    """
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except FileNotFoundError:
        raise ConfigurationError(f"Config file not found: {path}")
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"Invalid JSON in config file: {e}")

    if not isinstance(data, dict):
        raise ConfigurationError("Config file must contain a JSON object")

    for key in ("fixturesPath", "fixtures_path"):
        fixtures_path = data.get(key)
        if isinstance(fixtures_path, str) and not os.path.isabs(fixtures_path):
            base_dir = os.path.dirname(os.path.abspath(path))
            data[key] = os.path.normpath(os.path.join(base_dir, fixtures_path))

    return build_config(data)
