"""Per-operation counting of GitHub API calls."""

import threading
from typing import Dict


class APICallCounter:
    """Thread-safe tally of API calls keyed by operation name.

    Handed to GitHubClient by whoever wants the numbers (tests, verbose
    summaries); there is no process-wide instance.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._counts: Dict[str, int] = {}

    def increment(self, operation: str) -> None:
        with self._lock:
            self._counts[operation] = self._counts.get(operation, 0) + 1

    def get_count(self, operation: str) -> int:
        with self._lock:
            return self._counts.get(operation, 0)

    def get_counts(self) -> Dict[str, int]:
        """Snapshot of all counts."""
        with self._lock:
            return dict(self._counts)

    def get_total_count(self) -> int:
        with self._lock:
            return sum(self._counts.values())

    def reset(self) -> None:
        with self._lock:
            self._counts.clear()
