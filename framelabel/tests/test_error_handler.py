"""
Test suite for the retry / conversion helpers in utils.error_handler.
"""

import asyncio

import pytest

from framelabel.exceptions import (
    ProviderException,
    TransientProviderException,
    ValidationException,
)
from framelabel.utils.error_handler import (
    ErrorHandler,
    convert_exceptions,
    handle_exceptions,
    retry_async,
)


class Flaky:
    def __init__(self, failures, error=TransientProviderException):
        self.failures = failures
        self.error = error
        self.calls = 0

    async def __call__(self, value):
        self.calls += 1
        if self.calls <= self.failures:
            raise self.error(f"failure {self.calls}")
        return value


def test_retry_async_succeeds_after_transient_failures():
    flaky = Flaky(2)

    assert asyncio.run(retry_async(flaky, "ok", retries=3, initial_delay=0)) == "ok"
    assert flaky.calls == 3


def test_retry_async_escalates_when_exhausted():
    flaky = Flaky(5)

    with pytest.raises(ProviderException) as e:
        asyncio.run(retry_async(flaky, "ok", retries=3, initial_delay=0))

    assert type(e.value) is ProviderException
    assert e.value.error_code == "RETRIES_EXHAUSTED"
    assert isinstance(e.value.__cause__, TransientProviderException)
    assert flaky.calls == 3


def test_retry_async_without_escalation_reraises_last_error():
    flaky = Flaky(5)

    with pytest.raises(TransientProviderException):
        asyncio.run(retry_async(flaky, "ok", retries=2, initial_delay=0, escalate_to=None))


def test_retry_async_does_not_retry_other_errors():
    flaky = Flaky(1, error=ValidationException)

    with pytest.raises(ValidationException):
        asyncio.run(retry_async(flaky, "ok", retries=5, initial_delay=0))
    assert flaky.calls == 1


def test_handle_exceptions_decorator():
    attempts = []

    @handle_exceptions(retries=4, exceptions=(OSError,), initial_delay=0)
    async def write():
        attempts.append(1)
        if len(attempts) < 4:
            raise OSError("disk busy")
        return "written"

    assert asyncio.run(write()) == "written"
    assert len(attempts) == 4


def test_convert_exceptions_keeps_framelabel_errors():
    @convert_exceptions({KeyError: ValidationException})
    async def lookup(error):
        raise error

    with pytest.raises(ValidationException) as e:
        asyncio.run(lookup(KeyError("bucket")))
    assert e.value.details == {"original_exception": "KeyError"}

    with pytest.raises(TransientProviderException):
        asyncio.run(lookup(TransientProviderException("throttled")))

    with pytest.raises(ZeroDivisionError):
        asyncio.run(lookup(ZeroDivisionError()))


def test_describe():
    payload = ErrorHandler.describe(ProviderException("boom", error_code="429", details={"key": "k"}))

    assert payload == {
        "errorType": "ProviderException",
        "errorMessage": "boom",
        "errorCode": "429",
        "details": {"key": "k"},
    }
    assert ErrorHandler.describe(ValueError("bad")) == {"errorType": "ValueError", "errorMessage": "bad"}
