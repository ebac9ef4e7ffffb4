# wait.py
# Bounded, fixed-interval polling. Every retry loop in ciop goes through here
# so that none of them can spin forever.
from __future__ import annotations

import time
from typing import Callable


class WaitTimeout(Exception):
    """The condition did not become true before the timeout."""


def poll_immediate(
    interval: float,
    timeout: float,
    condition: Callable[[], bool],
    *,
    sleep: Callable[[float], None] = time.sleep,
    clock: Callable[[], float] = time.monotonic,
) -> None:
    """
    Check `condition` right away, then every `interval` seconds until it
    returns True or `timeout` seconds have elapsed.

    Exceptions raised by `condition` propagate immediately.

    Raises:
        WaitTimeout: if the condition never returned True
    """
    deadline = clock() + timeout
    while True:
        if condition():
            return
        if clock() + interval > deadline:
            raise WaitTimeout(f"timed out after {timeout:g}s waiting for condition")
        sleep(interval)
