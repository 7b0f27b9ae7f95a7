"""Retry eligibility and backoff for failed attempts."""

from __future__ import annotations

import random
from dataclasses import dataclass
from typing import Callable

from .exceptions import ErrorReason
from .options import ClientOptions, RetryPolicy
from .request_options import RequestConfig
from .results import Failure

SAFE_OPERATIONS = frozenset({"read"})


@dataclass(frozen=True)
class RetryScheduler:
    """Decide whether attempt ``n`` is retried and how long to wait first.

    Attempts are numbered from 0; retry ``n`` (n >= 1) waits
    ``random() * 2 ** (n - 1) * interval_ms`` milliseconds.
    """

    policy: RetryPolicy | None
    eligible: bool
    rand: Callable[[], float] | None = None

    @classmethod
    def for_request(cls, operation: str, options: ClientOptions, config: RequestConfig) -> "RetryScheduler":
        policy = options.retry_policy
        if config.retry is not None:
            policy = (policy or RetryPolicy()).merged(config.retry)
        allow_unsafe = options.allow_unsafe_retry
        if config.allow_unsafe_retry is not None:
            allow_unsafe = config.allow_unsafe_retry
        return cls(policy=policy, eligible=operation in SAFE_OPERATIONS or allow_unsafe)

    @property
    def max_retries(self) -> int:
        return self.policy.max_retries if self.policy is not None else 0

    def is_retryable(self, failure: Failure) -> bool:
        if self.policy is None:
            return False
        if failure.reason == ErrorReason.ABORT:
            return False
        if failure.reason == ErrorReason.TIMEOUT:
            return self.policy.retry_on_timeout
        return failure.status_code in self.policy.status_codes

    def should_retry(self, failure: Failure, retries_done: int) -> bool:
        if not self.eligible:
            return False
        if retries_done >= self.max_retries:
            return False
        return self.is_retryable(failure)

    def delay_ms(self, retry_number: int) -> float:
        interval = self.policy.interval_ms if self.policy is not None else 0
        jitter = self.rand() if self.rand is not None else random.random()
        return jitter * (2 ** max(0, retry_number - 1)) * interval
