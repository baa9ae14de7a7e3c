"""Tests for cancel module."""

import asyncio

import pytest

from mgmt_batch.client import (
    CancelHandle,
    CancelReason,
    CancelToken,
    create_cancel_pair,
)


class TestCancelToken:
    """Tests for CancelToken."""

    def test_initial_state(self) -> None:
        """Test initial token state."""
        token = CancelToken()
        assert token.is_cancelled is False
        assert token.reason is None

    def test_cancel(self) -> None:
        """Test cancellation."""
        token = CancelToken()
        assert token.cancel(CancelReason.USER_REQUEST) is True
        assert token.is_cancelled is True
        assert token.reason == CancelReason.USER_REQUEST
        assert token.state.timestamp is not None

    def test_cancel_twice(self) -> None:
        """Test cancelling twice returns False and keeps the first reason."""
        token = CancelToken()
        assert token.cancel(CancelReason.SHUTDOWN) is True
        assert token.cancel(CancelReason.USER_REQUEST) is False
        assert token.reason == CancelReason.SHUTDOWN

    def test_cancel_with_metadata(self) -> None:
        """Test cancellation with metadata."""
        token = CancelToken()
        token.cancel(custom_key="custom_value")
        assert token.state.metadata["custom_key"] == "custom_value"

    def test_callbacks(self) -> None:
        """Test callbacks fire once, including ones added after cancellation."""
        token = CancelToken()
        calls: list[CancelReason] = []
        token.on_cancel(calls.append)
        token.cancel(CancelReason.DEADLINE)
        token.on_cancel(calls.append)
        assert calls == [CancelReason.DEADLINE, CancelReason.DEADLINE]

    def test_remove_callback(self) -> None:
        """Test removed callbacks do not fire."""
        token = CancelToken()
        calls: list[CancelReason] = []
        token.on_cancel(calls.append)
        token.remove_callback(calls.append)
        token.cancel()
        assert calls == []

    def test_failing_callback_does_not_break_cancel(self) -> None:
        """Test a raising callback is logged and the others still run."""
        token = CancelToken()
        calls: list[CancelReason] = []

        def broken(_reason: CancelReason) -> None:
            raise RuntimeError("boom")

        token.on_cancel(broken)
        token.on_cancel(calls.append)
        assert token.cancel() is True
        assert calls == [CancelReason.USER_REQUEST]

    @pytest.mark.asyncio
    async def test_wait(self) -> None:
        """Test waiting for cancellation."""
        token = CancelToken()
        asyncio.get_running_loop().call_later(0.01, token.cancel)
        reason = await asyncio.wait_for(token.wait(), timeout=1.0)
        assert reason == CancelReason.USER_REQUEST

    @pytest.mark.asyncio
    async def test_cancel_after(self) -> None:
        """Test the deadline timer cancels with reason DEADLINE."""
        token = CancelToken()
        token.cancel_after(0.01)
        reason = await asyncio.wait_for(token.wait(), timeout=1.0)
        assert reason == CancelReason.DEADLINE

    @pytest.mark.asyncio
    async def test_clear_deadline(self) -> None:
        """Test a cleared deadline never fires."""
        token = CancelToken()
        token.cancel_after(0.01)
        token.clear_deadline()
        await asyncio.sleep(0.03)
        assert token.is_cancelled is False


class TestCancelHandle:
    """Tests for CancelHandle."""

    def test_pair(self) -> None:
        """Test the handle cancels its token."""
        handle, token = create_cancel_pair()
        assert isinstance(handle, CancelHandle)
        assert handle.cancel() is True
        assert token.is_cancelled
        assert handle.is_cancelled
        assert handle.reason == CancelReason.USER_REQUEST
