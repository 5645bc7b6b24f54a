from __future__ import annotations

from unittest.mock import AsyncMock

import pytest

from research_engine.services.resilience import invoke, is_rate_limit_error


class QuotaError(Exception):
    pass


class RetryError(Exception):
    def __init__(self, message: str, last_error: Exception):
        super().__init__(message)
        self.last_error = last_error


def test_rate_limit_detected_in_message():
    exc = QuotaError("Error 429: You exceeded your current quota, please check your plan")
    assert is_rate_limit_error(exc)


def test_rate_limit_detected_case_insensitively():
    assert is_rate_limit_error(RuntimeError("EXCEEDED YOUR CURRENT QUOTA"))


def test_rate_limit_detected_in_attached_last_error():
    exc = RetryError("Failed after 3 attempts", QuotaError("you exceeded your current quota"))
    assert is_rate_limit_error(exc)


def test_other_errors_are_not_rate_limits():
    assert not is_rate_limit_error(RuntimeError("connection reset by peer"))
    assert not is_rate_limit_error(TimeoutError())


@pytest.mark.asyncio
async def test_invoke_returns_primary_result_with_single_call():
    capability = AsyncMock(return_value="primary-result")

    result = await invoke(capability, "primary", "fallback", "system", "user")

    assert result == "primary-result"
    capability.assert_awaited_once_with("primary", "system", "user")


@pytest.mark.asyncio
async def test_invoke_retries_once_with_fallback_on_quota_error():
    capability = AsyncMock(
        side_effect=[QuotaError("You exceeded your current quota"), "fallback-result"]
    )

    result = await invoke(capability, "primary", "fallback", "system", "user", timeout=60)

    assert result == "fallback-result"
    assert capability.await_count == 2
    assert capability.await_args_list[0].args[0] == "primary"
    assert capability.await_args_list[1].args[0] == "fallback"
    assert capability.await_args_list[1].kwargs == {"timeout": 60}


@pytest.mark.asyncio
async def test_invoke_propagates_other_errors_without_fallback():
    error = RuntimeError("invalid request")
    capability = AsyncMock(side_effect=error)

    with pytest.raises(RuntimeError) as excinfo:
        await invoke(capability, "primary", "fallback", "system", "user")

    assert excinfo.value is error
    assert capability.await_count == 1


@pytest.mark.asyncio
async def test_invoke_propagates_fallback_failure_unchanged():
    fallback_error = ValueError("fallback broke")
    capability = AsyncMock(
        side_effect=[QuotaError("you exceeded your current quota"), fallback_error]
    )

    with pytest.raises(ValueError) as excinfo:
        await invoke(capability, "primary", "fallback", "system", "user")

    assert excinfo.value is fallback_error
    assert capability.await_count == 2


@pytest.mark.asyncio
async def test_invoke_without_fallback_identity_reraises_quota_error():
    capability = AsyncMock(side_effect=QuotaError("you exceeded your current quota"))

    with pytest.raises(QuotaError):
        await invoke(capability, "primary", None, "system", "user")

    assert capability.await_count == 1
