from __future__ import annotations

import json
import logging

import pytest

from tgdispatch.core.exceptions import PermanentError, TransientError
from tgdispatch.core.retry import retry_transient


class _Flaky:
    def __init__(self, failures: list[Exception]) -> None:
        self.failures = failures
        self.calls = 0

    async def __call__(self, value: str) -> str:
        self.calls += 1
        if self.failures:
            raise self.failures.pop(0)
        return value.upper()


@pytest.mark.anyio
async def test_transient_errors_are_retried_until_success(
    caplog: pytest.LogCaptureFixture,
) -> None:
    flaky = _Flaky([TransientError("first"), TransientError("second")])
    call = retry_transient(max_attempts=5, base_wait=0.0, max_wait=0.0)(flaky)

    with caplog.at_level(logging.WARNING, logger="tgdispatch.core.retry"):
        assert await call("ok") == "OK"

    assert flaky.calls == 3
    payloads = [json.loads(record.getMessage()) for record in caplog.records]
    assert [payload["attempt"] for payload in payloads] == [1, 2]
    assert payloads[0]["event"] == "retry.transient"
    assert payloads[0]["error"] == "first"


@pytest.mark.anyio
async def test_last_transient_error_is_reraised() -> None:
    flaky = _Flaky([TransientError(str(n)) for n in range(5)])
    call = retry_transient(max_attempts=3, base_wait=0.0, max_wait=0.0)(flaky)

    with pytest.raises(TransientError, match="2"):
        await call("x")
    assert flaky.calls == 3


@pytest.mark.anyio
async def test_other_errors_are_not_retried() -> None:
    flaky = _Flaky([PermanentError("bad token")])
    call = retry_transient(base_wait=0.0)(flaky)

    with pytest.raises(PermanentError):
        await call("x")
    assert flaky.calls == 1
