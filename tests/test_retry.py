from __future__ import annotations

import pytest

from fetchr_sdk.exceptions import ErrorReason
from fetchr_sdk.options import ClientOptions, RetryPolicy
from fetchr_sdk.request_options import RequestConfig
from fetchr_sdk.results import Failure
from fetchr_sdk.retry import RetryScheduler

NETWORK = Failure(ErrorReason.UNKNOWN, status_code=0)
TIMEOUT = Failure(ErrorReason.TIMEOUT, status_code=0)
NOT_FOUND = Failure(ErrorReason.BAD_HTTP_STATUS, status_code=404)
REQUEST_TIMEOUT = Failure(ErrorReason.BAD_HTTP_STATUS, status_code=408)


def _scheduler(operation: str = "read", config: RequestConfig | None = None, **options) -> RetryScheduler:
    options.setdefault("retry_policy", RetryPolicy())
    return RetryScheduler.for_request(operation, ClientOptions(**options), config or RequestConfig())


def test_no_policy_means_no_retry() -> None:
    scheduler = _scheduler(retry_policy=None)
    assert scheduler.max_retries == 0
    assert not scheduler.should_retry(NETWORK, 0)


def test_read_retries_retryable_failures_until_max() -> None:
    scheduler = _scheduler()
    assert scheduler.should_retry(NETWORK, 0)
    assert scheduler.should_retry(REQUEST_TIMEOUT, 1)
    assert scheduler.should_retry(TIMEOUT, 1)
    assert not scheduler.should_retry(NETWORK, 2)


def test_non_retryable_status_is_not_retried() -> None:
    assert not _scheduler().should_retry(NOT_FOUND, 0)


def test_abort_is_never_retried() -> None:
    assert not _scheduler().should_retry(Failure(ErrorReason.ABORT, status_code=0), 0)


def test_timeout_retry_can_be_disabled() -> None:
    scheduler = _scheduler(retry_policy=RetryPolicy(retry_on_timeout=False, status_codes=frozenset({408})))
    assert not scheduler.should_retry(TIMEOUT, 0)


def test_timeout_retry_disabled_even_when_status_zero_is_retryable() -> None:
    scheduler = _scheduler(retry_policy=RetryPolicy(retry_on_timeout=False))
    assert 0 in scheduler.policy.status_codes
    assert not scheduler.should_retry(TIMEOUT, 0)
    assert scheduler.should_retry(NETWORK, 0)


@pytest.mark.parametrize("operation", ["create", "update", "delete"])
def test_unsafe_operations_need_explicit_permission(operation: str) -> None:
    assert not _scheduler(operation).should_retry(NETWORK, 0)
    assert _scheduler(operation, allow_unsafe_retry=True).should_retry(NETWORK, 0)
    assert _scheduler(operation, config=RequestConfig(allow_unsafe_retry=True)).should_retry(NETWORK, 0)


def test_request_can_disable_unsafe_retry_granted_by_client() -> None:
    scheduler = _scheduler("create", allow_unsafe_retry=True, config=RequestConfig(allow_unsafe_retry=False))
    assert not scheduler.should_retry(NETWORK, 0)


def test_request_retry_overrides_merge_over_client_policy() -> None:
    scheduler = _scheduler(
        retry_policy=RetryPolicy(max_retries=5, interval_ms=50),
        config=RequestConfig(retry={"max_retries": 1}),
    )
    assert scheduler.policy == RetryPolicy(max_retries=1, interval_ms=50)


def test_request_retry_without_client_policy_uses_defaults() -> None:
    scheduler = _scheduler(retry_policy=None, config=RequestConfig(retry={"interval_ms": 10}))
    assert scheduler.max_retries == 2
    assert scheduler.should_retry(NETWORK, 0)


def test_delay_is_full_jitter_exponential_backoff() -> None:
    policy = RetryPolicy(interval_ms=200)
    upper = RetryScheduler(policy=policy, eligible=True, rand=lambda: 1.0)
    lower = RetryScheduler(policy=policy, eligible=True, rand=lambda: 0.0)
    assert [upper.delay_ms(n) for n in (1, 2, 3)] == [200, 400, 800]
    assert [lower.delay_ms(n) for n in (1, 2, 3)] == [0, 0, 0]


def test_delay_stays_within_bounds() -> None:
    scheduler = RetryScheduler(policy=RetryPolicy(interval_ms=100), eligible=True)
    for n in range(1, 6):
        for _ in range(50):
            assert 0 <= scheduler.delay_ms(n) <= 2 ** (n - 1) * 100
