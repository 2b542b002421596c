"""In-memory execution statistics per plugin."""

import threading
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Dict, Optional


@dataclass
class ExecutionStats:
    """Run counters for one plugin.

    ``average_duration`` is in seconds.
    """
    plugin_name: str
    total_runs: int = 0
    success_runs: int = 0
    failed_runs: int = 0
    average_duration: float = 0.0
    last_executed: Optional[datetime] = None


class StatsCollector:
    """Collects execution statistics keyed by plugin name.

    Nothing is persisted. One lock covers every read and update.
    """

    def __init__(self):
        self._stats: Dict[str, ExecutionStats] = {}
        self._lock = threading.Lock()

    def record(self, plugin_name: str, duration: float, success: bool) -> None:
        """Record one finished execution."""
        with self._lock:
            stats = self._stats.get(plugin_name)
            if stats is None:
                stats = self._stats[plugin_name] = ExecutionStats(plugin_name=plugin_name)

            stats.total_runs += 1
            if success:
                stats.success_runs += 1
            else:
                stats.failed_runs += 1

            n = stats.total_runs
            stats.average_duration = (stats.average_duration * (n - 1) + duration) / n
            stats.last_executed = datetime.now(timezone.utc)

    def get_stats(self, plugin_name: str) -> Optional[ExecutionStats]:
        """Return a copy of the stats for a plugin, or None if it never ran."""
        with self._lock:
            stats = self._stats.get(plugin_name)
            return replace(stats) if stats is not None else None

    def get_all_stats(self) -> Dict[str, ExecutionStats]:
        with self._lock:
            return {name: replace(stats) for name, stats in self._stats.items()}

    def reset(self) -> None:
        """Forget all recorded executions."""
        with self._lock:
            self._stats.clear()
