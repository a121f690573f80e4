"""
Fixture store - reads and writes persisted responses in their supported formats.
"""
from __future__ import annotations

import importlib.machinery
import importlib.util
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from types import CodeType
from typing import Any, Iterable, List, Optional

import anyio
import anyio.to_thread

from mock_api.errors import FixtureError
from mock_api.logging import get_logger
from mock_api.services.resolver import IgnorePattern, resolve_fixture_path

logger = get_logger(__name__)

# Function a script fixture must define; called with no arguments on every request
SCRIPT_PRODUCER = "produce"
SCRIPT_MODULE_NAME = "mock_api_fixture"


class FixtureFormat(str, Enum):
    """Fixture representations, valued by their file extension."""
    JSON = "json"
    SCRIPT = "py"
    TEXT = "html"

    @property
    def extension(self) -> str:
        return self.value


# The first format found for a request is served, the others are ignored
FORMAT_PRECEDENCE = (FixtureFormat.JSON, FixtureFormat.SCRIPT, FixtureFormat.TEXT)


@dataclass(frozen=True)
class Fixture:
    """
    A fixture as read from disk.

    `content` is the raw text for JSON and text fixtures, and the value returned
    by `produce()` for script fixtures.
    """
    path: str
    format: FixtureFormat
    content: Any


class ScriptFixtureLoader(importlib.machinery.SourceFileLoader):
    """Source loader that compiles from the file every time and never touches bytecode caches."""

    def get_code(self, fullname: str) -> CodeType:
        source_path = self.get_filename(fullname)
        return self.source_to_code(self.get_data(source_path), source_path)


def load_script(fixture_path: str) -> Any:
    """
    Load a script fixture as a fresh module and call its producer.

    The module is never registered in `sys.modules` and no bytecode is cached,
    so edits to the file apply on the next request.

    Raises:
        FixtureError: If the script fails to compile or run, or has no producer
    """
    loader = ScriptFixtureLoader(SCRIPT_MODULE_NAME, fixture_path)
    spec = importlib.util.spec_from_file_location(SCRIPT_MODULE_NAME, fixture_path, loader=loader)
    module = importlib.util.module_from_spec(spec)
    try:
        spec.loader.exec_module(module)
    except Exception as e:
        raise FixtureError(f"Couldn't load script fixture '{fixture_path}': {e}") from e

    producer = getattr(module, SCRIPT_PRODUCER, None)
    if not callable(producer):
        raise FixtureError(f"Script fixture '{fixture_path}' does not define {SCRIPT_PRODUCER}()")

    try:
        return producer()
    except Exception as e:
        raise FixtureError(f"Script fixture '{fixture_path}' raised: {e}") from e


class FixtureStore:
    """Fixture files under a single root directory."""

    def __init__(
        self,
        root: str,
        encoding: str = "utf8",
        ignore_patterns: Iterable[IgnorePattern] = ()
    ):
        self.root = root
        self.encoding = encoding
        self.ignore_patterns = list(ignore_patterns)

    def path_for(self, path: str, query_string: str, fixture_format: FixtureFormat) -> str:
        """Fixture location for a request in the given format."""
        return resolve_fixture_path(
            path,
            query_string,
            self.ignore_patterns,
            self.root,
            fixture_format.extension
        )

    async def exists(self, path: str, query_string: str = "") -> List[FixtureFormat]:
        """
        Formats present on disk for a request, in precedence order.

        A location the file system refuses to check (a name that is too long, for
        example) is logged and counted as absent.
        """
        present = []
        for fixture_format in FORMAT_PRECEDENCE:
            fixture_path = self.path_for(path, query_string, fixture_format)
            try:
                is_file = await anyio.Path(fixture_path).is_file()
            except OSError as e:
                logger.warning(f"Couldn't check fixture '{fixture_path}', treating it as missing: {e}")
                continue
            if is_file:
                present.append(fixture_format)
        return present

    async def read(self, fixture_path: str, fixture_format: FixtureFormat) -> Fixture:
        """
        Read a fixture file.

        Script fixtures are loaded in a worker thread and decoded as Python source
        (UTF-8 unless the file declares otherwise); other formats use the store's encoding.

        Raises:
            FixtureError: If the file can't be read or a script fixture fails
        """
        if fixture_format is FixtureFormat.SCRIPT:
            content = await anyio.to_thread.run_sync(load_script, fixture_path)
            return Fixture(fixture_path, fixture_format, content)

        try:
            text = await anyio.Path(fixture_path).read_text(encoding=self.encoding)
        except (OSError, UnicodeDecodeError) as e:
            raise FixtureError(f"Couldn't read fixture '{fixture_path}': {e}") from e
        return Fixture(fixture_path, fixture_format, text)

    async def find(self, path: str, query_string: str = "") -> Optional[Fixture]:
        """Read the highest-precedence fixture for a request, or None on a miss."""
        present = await self.exists(path, query_string)
        if not present:
            return None
        fixture_format = present[0]
        return await self.read(self.path_for(path, query_string, fixture_format), fixture_format)

    def read_text_sync(self, fixture_path: str) -> str:
        """
        Read a fixture file while the application is being built.

        Raises:
            FixtureError: If the file can't be read
        """
        try:
            return Path(fixture_path).read_text(encoding=self.encoding)
        except (OSError, UnicodeDecodeError) as e:
            raise FixtureError(f"Couldn't read fixture '{fixture_path}': {e}") from e

    async def write(self, fixture_path: str, content: str) -> None:
        """
        Persist a fixture, creating the fixtures directory if needed.

        Concurrent writes to the same path are not coordinated; the last one wins.

        Raises:
            FixtureError: If the file can't be written
        """
        target = anyio.Path(fixture_path)
        try:
            await target.parent.mkdir(parents=True, exist_ok=True)
            await target.write_text(content, encoding=self.encoding)
        except (OSError, UnicodeEncodeError) as e:
            raise FixtureError(f"Couldn't write response locally, received fs error: '{e}'") from e
        logger.debug(f"Wrote {len(content)} characters to {fixture_path}")
