import asyncio

import pytest

from landing_zone.context import Deadline
from landing_zone.errors import CancellationError, RetryExhaustedError, TransientProviderError, ValidationError
from landing_zone.services import RetryExecutor, RetryPolicy

from conftest import no_sleep


class FlakyOperation:
    def __init__(self, failures: int, result="done"):
        self.failures = failures
        self.result = result
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        if self.calls <= self.failures:
            raise TransientProviderError("create_vpc", f"throttled on call {self.calls}", code="Throttling")
        return self.result


def test_succeeds_on_third_attempt_after_two_failures():
    operation = FlakyOperation(failures=2)
    executor = RetryExecutor(RetryPolicy(max_attempts=3, base_delay=0, max_delay=0), sleep=no_sleep)

    assert asyncio.run(executor.execute(operation, name="create_vpc")) == "done"
    assert operation.calls == 3


def test_gives_up_after_max_attempts():
    operation = FlakyOperation(failures=10)
    executor = RetryExecutor(RetryPolicy(max_attempts=3, base_delay=0, max_delay=0), sleep=no_sleep)

    with pytest.raises(RetryExhaustedError) as excinfo:
        asyncio.run(executor.execute(operation, name="create_vpc"))

    assert operation.calls == 3
    assert excinfo.value.attempts == 3
    assert "3 attempts" in str(excinfo.value)
    assert "throttled on call 3" in str(excinfo.value)
    assert isinstance(excinfo.value.last_error, TransientProviderError)


def test_single_attempt_raises_exhausted_error_chained_to_last_failure():
    slept = []

    async def record(seconds):
        slept.append(seconds)

    operation = FlakyOperation(failures=1)
    executor = RetryExecutor(RetryPolicy(max_attempts=1, base_delay=1.0, max_delay=1.0), sleep=record)

    with pytest.raises(RetryExhaustedError) as excinfo:
        asyncio.run(executor.execute(operation, name="create_vpc"))

    assert operation.calls == 1
    assert slept == []
    assert excinfo.value.attempts == 1
    assert excinfo.value.__cause__ is excinfo.value.last_error


def test_delays_grow_linearly_and_are_capped():
    delays = []

    async def record(seconds):
        delays.append(seconds)

    executor = RetryExecutor(RetryPolicy(max_attempts=5, base_delay=2.0, max_delay=5.0), sleep=record)

    with pytest.raises(RetryExhaustedError):
        asyncio.run(executor.execute(FlakyOperation(failures=10)))

    assert delays == [2.0, 4.0, 5.0, 5.0]


def test_cancellation_is_not_retried():
    calls = []

    async def cancelled():
        calls.append(1)
        raise CancellationError("deadline exceeded")

    executor = RetryExecutor(RetryPolicy(max_attempts=5, base_delay=0, max_delay=0), sleep=no_sleep)

    with pytest.raises(CancellationError):
        asyncio.run(executor.execute(cancelled))

    assert len(calls) == 1


def test_expired_deadline_stops_before_first_attempt():
    operation = FlakyOperation(failures=0)
    deadline = Deadline(0, clock=lambda: 100.0)
    executor = RetryExecutor(RetryPolicy(max_attempts=3, base_delay=0, max_delay=0), sleep=no_sleep)

    with pytest.raises(CancellationError):
        asyncio.run(executor.execute(operation, name="create_vpc", deadline=deadline))

    assert operation.calls == 0


def test_deadline_expiring_between_attempts_cancels_remaining_attempts():
    now = [0.0]
    deadline = Deadline(5.0, clock=lambda: now[0])

    async def advance(seconds):
        now[0] += 10.0

    operation = FlakyOperation(failures=10)
    executor = RetryExecutor(RetryPolicy(max_attempts=3, base_delay=1.0, max_delay=1.0), sleep=advance)

    with pytest.raises(CancellationError):
        asyncio.run(executor.execute(operation, deadline=deadline))

    assert operation.calls == 1


def test_on_retry_is_called_for_each_retry():
    retried = []
    executor = RetryExecutor(
        RetryPolicy(max_attempts=3, base_delay=0, max_delay=0),
        sleep=no_sleep,
        on_retry=retried.append,
    )

    asyncio.run(executor.execute(FlakyOperation(failures=2), name="create_role"))

    assert retried == ["create_role", "create_role"]


def test_policy_rejects_zero_attempts():
    with pytest.raises(ValidationError):
        RetryPolicy(max_attempts=0)
