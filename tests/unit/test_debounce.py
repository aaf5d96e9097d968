"""
Tests for the debounced trigger.
"""

import asyncio

import pytest

from myiep.sync.debounce import Debouncer


class TestDebouncer:
    @pytest.mark.asyncio
    async def test_burst_collapses_to_one_run(self):
        calls = []

        async def callback():
            calls.append(1)

        debouncer = Debouncer(0.05, callback)
        for _ in range(5):
            debouncer.trigger()
            await asyncio.sleep(0.01)

        await asyncio.sleep(0.15)
        await debouncer.wait()

        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_spaced_triggers_run_each_time(self):
        calls = []

        async def callback():
            calls.append(1)

        debouncer = Debouncer(0.02, callback)
        for _ in range(3):
            debouncer.trigger()
            await asyncio.sleep(0.1)

        await debouncer.wait()
        assert len(calls) == 3

    @pytest.mark.asyncio
    async def test_cancel_and_flush(self):
        calls = []

        async def callback():
            calls.append(1)

        debouncer = Debouncer(10, callback)
        debouncer.trigger()
        debouncer.cancel()
        assert debouncer.pending is False

        debouncer.trigger()
        await debouncer.flush()

        assert calls == [1]
        assert debouncer.pending is False

    @pytest.mark.asyncio
    async def test_callback_failure_is_logged(self, caplog):
        async def callback():
            raise RuntimeError("boom")

        debouncer = Debouncer(0, callback)
        debouncer.trigger()
        await asyncio.sleep(0.01)
        await debouncer.wait()

        assert "Debounced callback failed" in caplog.text
