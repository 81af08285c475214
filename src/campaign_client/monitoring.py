"""In-process cache statistics.

Every :class:`~campaign_client.cache.Cache` keeps its own counters and also
reports them to a process wide :class:`CacheMonitor`, so a client owning
several caches (schemas, methods, options, refresher metadata) can be
inspected from one place.

Example::

    from campaign_client.monitoring import get_monitor

    monitor = get_monitor()
    analytics = monitor.get_cache_analytics()
    print(analytics["caches"]["XtkEntityCache"]["hit_rate_percent"])

Notes:
    * Thread safety via a shared re-entrant lock, although the engine itself
      is single threaded.
    * Summaries are primitive-only dictionaries ready for JSON encoding.
"""

from __future__ import annotations

import threading
from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Any, Dict, Optional

COUNTERS = (
    "reads",
    "writes",
    "removals",
    "clears",
    "hits",
    "storage_hits",
    "loads",
    "saves",
    "evictions",
)


@dataclass
class CacheStats:
    """Counters of a single cache.

    Attributes:
        reads: Number of ``get`` calls.
        writes: Number of ``put`` calls.
        removals: Number of ``remove`` calls.
        clears: Number of ``clear`` calls.
        hits: Reads answered with a live entry (memory or storage).
        storage_hits: Subset of hits served from persistent storage.
        loads: Persistent storage lookups.
        saves: Persistent storage writes.
        evictions: Entries dropped because expired or cleared.
    """

    reads: int = 0
    writes: int = 0
    removals: int = 0
    clears: int = 0
    hits: int = 0
    storage_hits: int = 0
    loads: int = 0
    saves: int = 0
    evictions: int = 0

    @property
    def hit_rate(self) -> float:
        return self.hits / self.reads if self.reads else 0.0

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["hit_rate_percent"] = round(self.hit_rate * 100, 2)
        return data


class CacheMonitor:
    """Aggregates :class:`CacheStats` by cache name."""

    def __init__(self) -> None:
        self.start_time = datetime.now()
        self._lock = threading.RLock()
        self._stats: Dict[str, CacheStats] = {}

    def record(self, cache_name: str, counter: str, amount: int = 1) -> None:
        if counter not in COUNTERS:
            raise ValueError(f"Unknown cache counter '{counter}'")
        with self._lock:
            stats = self._stats.setdefault(cache_name, CacheStats())
            setattr(stats, counter, getattr(stats, counter) + amount)

    def get_stats(self, cache_name: str) -> Optional[CacheStats]:
        with self._lock:
            return self._stats.get(cache_name)

    def get_cache_analytics(self) -> Dict[str, Any]:
        """Summary of all caches plus global totals."""
        with self._lock:
            caches = {name: stats.to_dict() for name, stats in self._stats.items()}
            reads = sum(stats.reads for stats in self._stats.values())
            hits = sum(stats.hits for stats in self._stats.values())
        return {
            "uptime_seconds": (datetime.now() - self.start_time).total_seconds(),
            "total_reads": reads,
            "hit_rate_percent": round(hits / reads * 100, 2) if reads else 0.0,
            "caches": caches,
        }

    def reset_metrics(self) -> None:
        with self._lock:
            self._stats.clear()
            self.start_time = datetime.now()


_monitor: Optional[CacheMonitor] = None


def get_monitor() -> CacheMonitor:
    """Return the process wide monitor, creating it lazily."""
    global _monitor
    if _monitor is None:
        _monitor = CacheMonitor()
    return _monitor
