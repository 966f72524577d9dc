"""Exactly-once terminal notifications shared by pollers and realtime feeds."""

from __future__ import annotations


class TerminalLatch:
    """Remembers which generations already had their terminal state surfaced.

    A poller and a realtime reconciler watching the same generation share one
    latch; whichever observes `completed`/`failed` first claims it and the
    other stays silent.
    """

    def __init__(self) -> None:
        self._settled: set[str] = set()

    def claim(self, generation_id: str) -> bool:
        """Return True only for the first claim of `generation_id`."""
        if generation_id in self._settled:
            return False
        self._settled.add(generation_id)
        return True

    def is_settled(self, generation_id: str) -> bool:
        return generation_id in self._settled

    def release(self, generation_id: str) -> None:
        self._settled.discard(generation_id)

    def clear(self) -> None:
        self._settled.clear()

    def __contains__(self, generation_id: str) -> bool:
        return generation_id in self._settled

    def __len__(self) -> int:
        return len(self._settled)
