"""
Tests for deadlines, cancellation tokens and reconnect timers
"""

import asyncio
from unittest.mock import Mock

import pytest

from camper_core.exceptions import RequestTimeoutError
from camper_core.resilience import CancellationToken, ReconnectTimer, Timeout


class TestTimeout:
    """Tests for Timeout."""

    @pytest.mark.asyncio
    async def test_returns_result(self):
        async def quick():
            return 42
        assert await Timeout(1.0).execute(quick()) == 42

    @pytest.mark.asyncio
    async def test_raises_custom_error(self):
        timeout = Timeout(0.05, lambda: RequestTimeoutError(50, "http://forest.test/api/v1/health"))
        with pytest.raises(RequestTimeoutError) as exc_info:
            await timeout.execute(asyncio.sleep(5))
        assert exc_info.value.timeout_ms == 50

    @pytest.mark.asyncio
    async def test_default_error(self):
        with pytest.raises(TimeoutError):
            await Timeout(0.01).execute(asyncio.sleep(5))


class TestCancellationToken:
    """Tests for CancellationToken."""

    def test_callbacks_run_once(self):
        token = CancellationToken()
        callback = Mock()
        token.add_callback(callback)
        assert token.cancel() is True
        assert token.cancel() is False
        callback.assert_called_once()
        assert token.cancelled

    def test_late_callback_runs_immediately(self):
        token = CancellationToken()
        token.cancel()
        callback = Mock()
        token.add_callback(callback)
        callback.assert_called_once()

    def test_removed_callback_not_run(self):
        token = CancellationToken()
        callback = Mock()
        token.add_callback(callback)
        token.remove_callback(callback)
        token.cancel()
        callback.assert_not_called()

    def test_failing_callback_does_not_stop_others(self):
        token = CancellationToken()
        survivor = Mock()
        token.add_callback(Mock(side_effect=RuntimeError("boom")))
        token.add_callback(survivor)
        token.cancel()
        survivor.assert_called_once()


class TestReconnectTimer:
    """Tests for ReconnectTimer."""

    @pytest.mark.asyncio
    async def test_elapses(self):
        timer = ReconnectTimer(0.01)
        assert await timer.wait() is True
        assert not timer.pending

    @pytest.mark.asyncio
    async def test_cancel_while_waiting(self):
        timer = ReconnectTimer(10)
        waiting = asyncio.ensure_future(timer.wait())
        await asyncio.sleep(0)
        assert timer.pending
        assert timer.cancel() is True
        assert await waiting is False
        assert timer.cancel() is False
