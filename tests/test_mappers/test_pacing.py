import asyncio
import random

import pytest

from app.mappers.pacing import PacingPolicy


class _RecordingSleep:
    def __init__(self):
        self.delays = []

    async def __call__(self, delay):
        self.delays.append(delay)


async def _sleep_forever(delay):
    await asyncio.Event().wait()


def test_delay_within_bounds():
    policy = PacingPolicy(30, 60, rng=random.Random(7))
    for _ in range(100):
        assert 30 <= policy.next_delay() <= 60


def test_seeded_rng_is_reproducible():
    a = PacingPolicy(30, 60, rng=random.Random(42))
    b = PacingPolicy(30, 60, rng=random.Random(42))
    assert [a.next_delay() for _ in range(5)] == [b.next_delay() for _ in range(5)]


def test_fixed_delay_when_bounds_equal():
    assert PacingPolicy(5, 5).next_delay() == 5


@pytest.mark.parametrize("low,high", [(-1, 10), (60, 30)])
def test_invalid_bounds_rejected(low, high):
    with pytest.raises(ValueError):
        PacingPolicy(low, high)


async def test_wait_uses_injected_sleep():
    sleep = _RecordingSleep()
    policy = PacingPolicy(10, 10, sleep=sleep)

    delay = await policy.wait()

    assert delay == 10
    assert sleep.delays == [10]


async def test_wait_with_unset_interrupt_sleeps_full_delay():
    sleep = _RecordingSleep()
    policy = PacingPolicy(3, 3, sleep=sleep)

    await policy.wait(asyncio.Event())

    assert sleep.delays == [3]


async def test_wait_returns_early_when_interrupted():
    policy = PacingPolicy(30, 60, sleep=_sleep_forever)
    interrupt = asyncio.Event()
    interrupt.set()

    delay = await asyncio.wait_for(policy.wait(interrupt), timeout=1)

    assert 30 <= delay <= 60


async def test_interrupt_during_wait():
    policy = PacingPolicy(30, 60, sleep=_sleep_forever)
    interrupt = asyncio.Event()

    task = asyncio.create_task(policy.wait(interrupt))
    await asyncio.sleep(0)
    assert not task.done()

    interrupt.set()
    await asyncio.wait_for(task, timeout=1)
