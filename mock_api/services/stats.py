"""
Stats service - counts how each request path was answered.
"""
from __future__ import annotations

import asyncio
from collections import OrderedDict
from dataclasses import dataclass
from enum import Enum
from typing import Dict


# Maximum number of paths to track to prevent memory leak
MAX_PATHS = 1000


class Outcome(str, Enum):
    """How a request was answered."""
    FIXTURE = "fixture"
    OVERRIDE = "override"
    PRODUCTION = "production"
    ERROR = "error"


@dataclass
class PathStats:
    """Statistics for a single request path."""
    fixture_count: int = 0
    override_count: int = 0
    production_count: int = 0
    error_count: int = 0

    @property
    def request_count(self) -> int:
        return self.fixture_count + self.override_count + self.production_count + self.error_count

    @property
    def error_rate(self) -> float:
        if self.request_count == 0:
            return 0.0
        return (self.error_count / self.request_count) * 100

    def to_dict(self) -> Dict:
        return {
            "request_count": self.request_count,
            "fixture_count": self.fixture_count,
            "override_count": self.override_count,
            "production_count": self.production_count,
            "error_count": self.error_count,
            "error_rate_percent": round(self.error_rate, 2)
        }


class StatsCollector:
    """Async-safe statistics collector for all request paths with LRU eviction."""

    def __init__(self):
        self._stats: OrderedDict[str, PathStats] = OrderedDict()
        self._lock = asyncio.Lock()

    async def record(self, path: str, outcome: Outcome):
        """Record how a request to a path was answered."""
        async with self._lock:
            if path not in self._stats:
                # Evict oldest entry if at capacity
                if len(self._stats) >= MAX_PATHS:
                    self._stats.popitem(last=False)
                self._stats[path] = PathStats()
            else:
                # Move to end (most recently used)
                self._stats.move_to_end(path)

            stats = self._stats[path]
            counter = f"{outcome.value}_count"
            setattr(stats, counter, getattr(stats, counter) + 1)

    async def get_all_stats(self) -> Dict[str, Dict]:
        """Get statistics for all paths."""
        async with self._lock:
            return {path: stats.to_dict() for path, stats in self._stats.items()}

    async def reset(self):
        async with self._lock:
            self._stats.clear()
