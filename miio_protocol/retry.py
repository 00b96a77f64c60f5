#
# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""
A bounded-retry state machine.

    policy = RetryPolicy(retries=2)
    for attempt in policy:
        try:
            return do_something()
        except CommandExecutionError as e:
            attempt.fail(e)
    policy.raise_last()

The iterator yields at most retries + 1 attempts and stops early once an attempt
has neither failed nor been abandoned, i.e., once the caller has returned or broken
out of the loop. Errors recorded with fail() are kept so the last concrete one can be
re-raised when the budget is exhausted.
"""

from __future__ import annotations

from enum import Enum

from .internal_types import *
from .pkg_logging import logger
from .exceptions import MiioError

class RetryState(Enum):
    READY = "ready"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    EXHAUSTED = "exhausted"

class Attempt:
    """One attempt within a RetryPolicy."""
    policy: RetryPolicy
    number: int
    """1-based attempt number"""
    error: Optional[BaseException] = None

    def __init__(self, policy: RetryPolicy, number: int):
        self.policy = policy
        self.number = number

    @property
    def failed(self) -> bool:
        return self.error is not None

    def fail(self, error: BaseException) -> None:
        """Records that this attempt failed. The loop continues if budget remains."""
        self.error = error
        self.policy.last_error = error
        logger.debug(f"Attempt {self.number}/{self.policy.max_attempts} failed: {error}")

class RetryPolicy(Iterable[Attempt]):
    """Permits one initial attempt plus up to `retries` further attempts."""

    retries: int
    attempts_made: int = 0
    state: RetryState = RetryState.READY
    last_error: Optional[BaseException] = None

    def __init__(self, retries: int=0):
        self.retries = max(0, retries)

    @property
    def max_attempts(self) -> int:
        return self.retries + 1

    @property
    def retries_left(self) -> int:
        return max(0, self.max_attempts - self.attempts_made)

    @property
    def exhausted(self) -> bool:
        return self.state == RetryState.EXHAUSTED

    def __iter__(self) -> Iterator[Attempt]:
        if self.state != RetryState.READY:
            raise MiioError("RetryPolicy: a policy can only be iterated once")
        self.state = RetryState.RUNNING
        while self.attempts_made < self.max_attempts:
            self.attempts_made += 1
            attempt = Attempt(self, self.attempts_made)
            yield attempt
            if not attempt.failed:
                self.state = RetryState.SUCCEEDED
                return
        self.state = RetryState.EXHAUSTED

    def raise_last(self, default: Optional[BaseException]=None) -> NoReturn:
        """Raises the last recorded error, or `default` if none was recorded."""
        error = self.last_error if self.last_error is not None else default
        if error is None:
            raise MiioError("RetryPolicy: no attempt recorded an error")
        raise error
