"""
Server lifecycle - starts one listener per configured port and closes them again.

The registry of listeners is owned by the caller, so independent mock APIs can run
side by side in one process.
"""
from __future__ import annotations

import asyncio
import contextlib
import socket
from dataclasses import dataclass
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional, Union

import httpx
import uvicorn
from fastapi import FastAPI

from mock_api.config import MockApiConfig, build_config
from mock_api.errors import LifecycleError
from mock_api.logging import get_logger
from mock_api.main import create_app, create_http_client
from mock_api.state import app_state_of

logger = get_logger(__name__)

# How often startup checks whether a listener is accepting connections
STARTUP_POLL_INTERVAL = 0.01


class ListenerServer(uvicorn.Server):
    """uvicorn server that leaves signal handling to the process embedding it."""

    @contextlib.contextmanager
    def capture_signals(self) -> Iterator[None]:
        yield


@dataclass
class ServerRecord:
    """One listening endpoint. Records stay in the registry after they are closed."""
    port: int
    server: ListenerServer
    task: asyncio.Task
    app: FastAPI
    active: bool = True


class ServerRegistry:
    """
    Listeners started by `start()`, keyed by port.

    Records are never removed: restarting on a port appends a new record and the
    closed ones stay available through `history()`.
    """

    def __init__(self):
        self._records: Dict[int, List[ServerRecord]] = {}

    def __contains__(self, port: int) -> bool:
        return port in self._records

    def __getitem__(self, port: int) -> ServerRecord:
        """Most recent record for a port."""
        return self._records[port][-1]

    def __iter__(self) -> Iterator[ServerRecord]:
        return iter([record for records in self._records.values() for record in records])

    def __len__(self) -> int:
        return sum(len(records) for records in self._records.values())

    def add(self, record: ServerRecord) -> None:
        self._records.setdefault(record.port, []).append(record)

    def history(self, port: int) -> List[ServerRecord]:
        """Every record for a port, oldest first."""
        return list(self._records.get(port, []))

    @property
    def ports(self) -> List[int]:
        return list(self._records)

    def active(self) -> List[ServerRecord]:
        return [record for record in self if record.active]


@dataclass
class MockApi:
    """A started mock API: its application and the registry its listeners were added to."""
    app: FastAPI
    registry: ServerRegistry


def _bind_socket(host: str, port: int) -> socket.socket:
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
    try:
        sock.bind((host, port))
    except OSError as e:
        sock.close()
        raise LifecycleError(f"Couldn't listen on {host}:{port}: {e}") from e
    return sock


async def _listen(app: FastAPI, host: str, port: int) -> ServerRecord:
    """Start a listener and wait until it accepts connections."""
    sock = _bind_socket(host, port)
    bound_port = sock.getsockname()[1]

    config = uvicorn.Config(app, lifespan="off", log_config=None, log_level="warning", access_log=False)
    server = ListenerServer(config)
    task = asyncio.create_task(server.serve(sockets=[sock]))

    while not server.started:
        if task.done():
            sock.close()
            error = task.exception()
            raise LifecycleError(f"Mock API server on port {bound_port} stopped during startup: {error}")
        await asyncio.sleep(STARTUP_POLL_INTERVAL)

    return ServerRecord(port=bound_port, server=server, task=task, app=app)


async def _shutdown(record: ServerRecord) -> None:
    logger.info(f"Closing mock API server on port {record.port}")
    record.server.should_exit = True
    try:
        await record.task
    finally:
        record.active = False


def _unique_ports(ports: Iterable[int], registry: ServerRegistry) -> List[int]:
    """Drop ports listed twice or already served by an active listener. Port 0 is never a duplicate."""
    unique: List[int] = []
    for port in ports:
        if port and (port in unique or (port in registry and registry[port].active)):
            logger.warning(f"Port {port} specified more than once in config")
            continue
        unique.append(port)
    return unique


async def start(
    config: Union[MockApiConfig, Mapping[str, Any]],
    registry: Optional[ServerRegistry] = None,
    http_client: Optional[httpx.AsyncClient] = None
) -> MockApi:
    """
    Build the application and listen on every configured port.

    All listeners start concurrently; if any fails, the ones that did start are
    shut down again and the first error is raised.

    Args:
        config: Validated config or raw options
        registry: Registry to add the listeners to; a new one when omitted
        http_client: Client for production fetches; one is created (and later
                     closed by `close()`) when omitted

    Raises:
        ConfigurationError: If the configuration is invalid
        LifecycleError: If a listener can't be started
    """
    config = build_config(config)
    registry = registry if registry is not None else ServerRegistry()

    app = create_app(config, http_client=http_client)
    state = app_state_of(app)
    if state.http_client is None:
        state.http_client = create_http_client()
        state.owns_http_client = True

    ports = _unique_ports(config.ports, registry)
    results = await asyncio.gather(
        *(_listen(app, config.host, port) for port in ports),
        return_exceptions=True
    )
    started = [result for result in results if isinstance(result, ServerRecord)]
    failures = [result for result in results if isinstance(result, BaseException)]

    if failures:
        await asyncio.gather(*(_shutdown(record) for record in started))
        await state.aclose()
        raise failures[0]

    for record in started:
        registry.add(record)
        logger.info(f"Mock API server listening on port {record.port}")
    return MockApi(app=app, registry=registry)


async def close(registry: ServerRegistry, records: Optional[Iterable[ServerRecord]] = None) -> None:
    """
    Close the given records, or every active record of the registry.

    Closed records are marked inactive but stay in the registry. The production
    HTTP client of an application is closed once none of its listeners is active.

    Raises:
        LifecycleError: If there is no active record to close
    """
    targets = [record for record in (records if records is not None else registry) if record.active]
    if not targets:
        raise LifecycleError("close() invoked without active servers")

    await asyncio.gather(*(_shutdown(record) for record in targets))

    still_serving = {id(record.app) for record in registry.active()}
    closed_apps = {id(record.app): record.app for record in targets}
    for app_id, app in closed_apps.items():
        if app_id not in still_serving:
            await app_state_of(app).aclose()
