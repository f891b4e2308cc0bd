"""Unit tests for correlation id context handling."""

from __future__ import annotations

import asyncio

import pytest

from webview_comm.correlation import correlation_context, get_correlation_id, new_correlation_id


class TestCorrelationContext:
    """Tests for correlation_context()."""

    def test_new_ids_are_hex(self):
        """Test that generated ids are 32-character hex strings."""
        value = new_correlation_id()
        assert len(value) == 32
        _ = int(value, 16)

    def test_nested_contexts_restore(self):
        """Test that leaving an inner block restores the outer id."""
        with correlation_context("request-1"):
            with correlation_context("request-2") as inner:
                assert inner == "request-2"
                assert get_correlation_id() == "request-2"
            assert get_correlation_id() == "request-1"
        assert get_correlation_id() is None

    def test_context_restores_after_exception(self):
        """Test that an exception inside the block still restores the id."""
        with pytest.raises(RuntimeError), correlation_context("request-3"):
            raise RuntimeError("boom")
        assert get_correlation_id() is None

    def test_context_generates_when_missing(self):
        """Test that an id is generated when none is given."""
        with correlation_context() as cid:
            assert cid
            assert get_correlation_id() == cid


class TestAsyncIsolation:
    """Correlation ids must not leak between concurrent handler tasks."""

    @pytest.mark.asyncio
    async def test_tasks_see_their_own_id(self):
        """Test that two concurrent tasks keep separate ids across awaits."""

        async def serve(request_id: str) -> str | None:
            with correlation_context(request_id):
                await asyncio.sleep(0)
                await asyncio.sleep(0)
                return get_correlation_id()

        results = await asyncio.gather(serve("a"), serve("b"))

        assert results == ["a", "b"]
        assert get_correlation_id() is None
