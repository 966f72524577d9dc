"""Per-generation fake progress bookkeeping."""

from __future__ import annotations


class GenerationProgressRegistry:
    """Start times and displayed progress for generations on one event loop."""

    def __init__(self):
        self._started: dict[str, float] = {}
        self._progress: dict[str, float] = {}
        self._settled: set[str] = set()

    def start(self, generation_id: str, now: float) -> bool:
        """Start tracking a generation (0%). Returns False if already tracked."""
        if generation_id in self._started:
            return False
        self._started[generation_id] = now
        self._progress[generation_id] = 0.0
        return True

    def started_at(self, generation_id: str, default: float) -> float:
        return self._started.get(generation_id, default)

    def update(self, generation_id: str, percent: float):
        """Update displayed progress, clamped to 0-100."""
        self._progress[generation_id] = min(100.0, max(0.0, percent))

    def settle(self, generation_id: str):
        """Mark a generation as finished (completed or failed): shows 100%."""
        self._settled.add(generation_id)
        self._progress[generation_id] = 100.0

    def is_settled(self, generation_id: str) -> bool:
        return generation_id in self._settled

    @property
    def settled_count(self) -> int:
        return len(self._settled)

    def get(self, generation_id: str) -> float | None:
        return self._progress.get(generation_id)

    def clear(self):
        self._started.clear()
        self._progress.clear()
        self._settled.clear()
