"""A small abstraction over ThreadPoolExecutor inspired by `p-map`.

Used to load independent sources (ledger, transfer log, manual records)
concurrently and to bound any single external call with a deadline.

- `concurrency`: maximum number of mapper calls running at once.
- `stop_on_error` (default True): fail fast on the first error; when False,
  wait for every task and raise an `ExceptionGroup` of all failures.
- `timeout`: optional overall deadline in seconds. When it elapses the pool is
  abandoned (queued work cancelled, running threads left to finish in the
  background) and `TimeoutError` is raised.
- `p_map_skip`: return this sentinel from the mapper to omit a value from the
  output while preserving the relative order of the rest.

Output order always follows input order.
"""

from __future__ import annotations

import time
from collections.abc import Callable, Iterable
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from typing import TypeVar

InT = TypeVar("InT")
OutT = TypeVar("OutT")


class _Skip:
    __slots__ = ()

    def __repr__(self) -> str:  # pragma: no cover - trivial
        return "p_map_skip"


# Sentinel value: mappers can `return p_map_skip` to omit the element.
p_map_skip: object = _Skip()


def p_map(
    iterable: Iterable[InT],
    mapper: Callable[[InT], OutT | object],
    *,
    concurrency: int,
    stop_on_error: bool = True,
    timeout: float | None = None,
) -> list[OutT]:
    """Map ``iterable`` through ``mapper`` with bounded concurrency.

    Raises ``TimeoutError`` when ``timeout`` elapses before all work is done.
    """

    if not isinstance(concurrency, int) or concurrency < 1:
        raise ValueError("concurrency must be a positive integer")
    if timeout is not None and timeout <= 0:
        raise ValueError("timeout must be positive when provided")

    deadline = None if timeout is None else time.monotonic() + timeout
    it = enumerate(iterable)

    results: dict[int, OutT | object] = {}
    errors: list[Exception] = []
    future_to_idx: dict[Future, int] = {}
    submitted = 0

    pool = ThreadPoolExecutor(max_workers=concurrency, thread_name_prefix="p_map")

    def _submit() -> Future | None:
        nonlocal submitted
        try:
            idx, item = next(it)
        except StopIteration:
            return None
        fut = pool.submit(mapper, item)
        future_to_idx[fut] = idx
        submitted += 1
        return fut

    # Abandon (not join) the pool on every early exit so a hung mapper cannot
    # hold the caller past its deadline.
    finished = False
    try:
        active: set[Future] = set()
        for _ in range(concurrency):
            fut = _submit()
            if fut is None:
                break
            active.add(fut)

        while active:
            remaining = None if deadline is None else deadline - time.monotonic()
            if remaining is not None and remaining <= 0:
                raise TimeoutError(f"p_map: deadline of {timeout}s exceeded")
            done, active = wait(active, timeout=remaining, return_when=FIRST_COMPLETED)
            if not done:
                raise TimeoutError(f"p_map: deadline of {timeout}s exceeded")

            for fut in done:
                idx = future_to_idx.pop(fut)
                try:
                    results[idx] = fut.result()
                except Exception as e:  # noqa: BLE001
                    if stop_on_error:
                        raise
                    errors.append(e)

            for _ in range(len(done)):
                fut = _submit()
                if fut is None:
                    break
                active.add(fut)
        finished = True
    finally:
        pool.shutdown(wait=finished, cancel_futures=not finished)

    if errors:
        raise ExceptionGroup("p_map: one or more mapper calls failed", errors)

    out: list[OutT] = []
    for i in range(submitted):
        val = results.get(i, p_map_skip)
        if val is p_map_skip:
            continue
        out.append(val)  # type: ignore[arg-type]
    return out


__all__ = ["p_map", "p_map_skip"]
