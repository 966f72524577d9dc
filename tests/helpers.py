"""Fakes shared by the test suite."""

from imagelingo.schemas import Generation, GenerationResult, GenerationStatus


class FakeClock:
    """Manually advanced millisecond clock."""

    def __init__(self, now: float = 0.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, ms: float) -> None:
        self.now += ms


class ManualFrames:
    """Frame scheduler that only runs callbacks when stepped."""

    def __init__(self):
        self.pending: dict[int, object] = {}
        self.requested = 0
        self._next = 0

    def request_frame(self, callback):
        self._next += 1
        self.requested += 1
        self.pending[self._next] = callback
        return self._next

    def cancel_frame(self, handle):
        self.pending.pop(handle, None)

    def step(self) -> int:
        callbacks = list(self.pending.values())
        self.pending.clear()
        for callback in callbacks:
            callback()
        return len(callbacks)


class FakeSource:
    """Status source replaying scripted results; the last one repeats."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.calls = 0
        self.requested: list[str] = []

    async def fetch_generation(self, generation_id: str) -> GenerationResult:
        self.calls += 1
        self.requested.append(generation_id)
        item = self.responses[min(self.calls, len(self.responses)) - 1]
        if isinstance(item, Exception):
            raise item
        return item


def make_generation(
    status: GenerationStatus | str = GenerationStatus.PENDING,
    generation_id: str = "gen-1",
    user_id: str = "user-1",
    **fields,
) -> Generation:
    return Generation(id=generation_id, user_id=user_id, status=status, **fields)


def make_result(
    status: GenerationStatus | str = GenerationStatus.PENDING,
    generation_id: str = "gen-1",
    output_url: str | None = None,
    input_url: str | None = None,
    **fields,
) -> GenerationResult:
    return GenerationResult(
        generation=make_generation(status, generation_id, **fields),
        input_url=input_url,
        output_url=output_url,
    )


