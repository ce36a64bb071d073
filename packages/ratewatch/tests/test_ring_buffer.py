from __future__ import annotations

import pytest

from ratewatch.ring_buffer import capacity_for, push, truncate


def test_capacity_rounds_half_up_and_never_drops_below_one() -> None:
    assert capacity_for(60, 5000) == 12
    assert capacity_for(60, 1000) == 60
    assert capacity_for(10, 4000) == 3  # 2.5 rounds up
    assert capacity_for(1, 60_000) == 1
    with pytest.raises(ValueError):
        capacity_for(60, 0)


def test_push_evicts_oldest_beyond_limit() -> None:
    buf: tuple[int, ...] = ()
    for value in range(5):
        buf = push(buf, value, 3)

    assert buf == (2, 3, 4)
    original = (1, 2)
    assert push(original, 3, 5) == (1, 2, 3)
    assert original == (1, 2)


def test_truncate_keeps_newest() -> None:
    assert truncate([1, 2, 3, 4], 2) == (3, 4)
    assert truncate((1,), 4) == (1,)
    with pytest.raises(ValueError):
        truncate((1,), 0)
