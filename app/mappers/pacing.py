import asyncio
import random
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field

DEFAULT_MIN_SECONDS = 30.0
DEFAULT_MAX_SECONDS = 60.0


@dataclass
class PacingPolicy:
    """Randomized wait between outbound calls.

    ``sleep`` and ``rng`` are injectable so tests never touch the wall clock.
    ``wait`` returns early when ``interrupt`` is set (campaign pause).
    """

    min_seconds: float = DEFAULT_MIN_SECONDS
    max_seconds: float = DEFAULT_MAX_SECONDS
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep
    rng: random.Random = field(default_factory=random.Random)

    def __post_init__(self) -> None:
        if self.min_seconds < 0 or self.max_seconds < self.min_seconds:
            raise ValueError(
                f"Invalid pacing bounds: {self.min_seconds}..{self.max_seconds}"
            )

    def next_delay(self) -> float:
        return self.rng.uniform(self.min_seconds, self.max_seconds)

    async def wait(self, interrupt: asyncio.Event | None = None) -> float:
        """Sleep a random delay; return the delay that was chosen."""
        delay = self.next_delay()
        if interrupt is None:
            await self.sleep(delay)
            return delay

        sleeper = asyncio.ensure_future(self.sleep(delay))
        waiter = asyncio.ensure_future(interrupt.wait())
        try:
            await asyncio.wait({sleeper, waiter}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for task in (sleeper, waiter):
                if not task.done():
                    task.cancel()
        return delay
