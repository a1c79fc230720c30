import time
from typing import Callable


class WaitUntilTimeoutError(Exception):
    pass


def wait_until(cond: Callable[[], bool], *, timeout: float = 60, retry_interval: float = 3):
    """Poll ``cond`` until it returns a truthy value or ``timeout`` seconds pass."""
    deadline = time.time() + timeout
    while True:
        if cond():
            return
        if time.time() + retry_interval > deadline:
            raise WaitUntilTimeoutError(f"Condition not satisfied within {timeout}s")
        time.sleep(retry_interval)
