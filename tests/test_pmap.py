from __future__ import annotations

import threading
import time

import pytest

from disbursement_recon.pmap import p_map, p_map_skip


def test_output_follows_input_order() -> None:
    def slow_square(x: int) -> int:
        time.sleep(0.01 * (5 - x))
        return x * x

    assert p_map(range(5), slow_square, concurrency=5) == [0, 1, 4, 9, 16]


def test_skip_sentinel_drops_values() -> None:
    assert p_map(range(6), lambda x: p_map_skip if x % 2 else x, concurrency=2) == [0, 2, 4]


def test_stop_on_error_raises_first_error() -> None:
    def boom(x: int) -> int:
        if x == 2:
            raise KeyError(x)
        return x

    with pytest.raises(KeyError):
        p_map(range(4), boom, concurrency=2)


def test_collect_errors_into_group() -> None:
    def boom(x: int) -> int:
        if x % 2:
            raise ValueError(x)
        return x

    with pytest.raises(ExceptionGroup) as exc:
        p_map(range(4), boom, concurrency=2, stop_on_error=False)
    assert len(exc.value.exceptions) == 2


def test_deadline_raises_timeout_without_waiting_for_workers() -> None:
    release = threading.Event()
    t0 = time.monotonic()
    try:
        with pytest.raises(TimeoutError):
            p_map([1], lambda _: release.wait(5), concurrency=1, timeout=0.05)
    finally:
        release.set()
    assert time.monotonic() - t0 < 2


@pytest.mark.parametrize("kwargs", [{"concurrency": 0}, {"concurrency": 1, "timeout": 0}])
def test_invalid_arguments(kwargs) -> None:
    with pytest.raises(ValueError):
        p_map([1], lambda x: x, **kwargs)
