import asyncio

import pytest

from reflex_query_table.debounce import DebouncedCall


class TestDebouncedCall:
    def test_burst_fires_once_with_last_args(self, scheduler):
        calls = []
        debounced = DebouncedCall(lambda *a: calls.append(a), 300, scheduler=scheduler)
        debounced.schedule("a")
        scheduler.advance(100)
        debounced.schedule("b")
        scheduler.advance(100)
        debounced.schedule("c")
        scheduler.advance(299)
        assert calls == []
        assert debounced.pending
        scheduler.advance(1)
        assert calls == [("c",)]
        assert not debounced.pending

    def test_zero_delay_is_synchronous(self, scheduler):
        calls = []
        debounced = DebouncedCall(calls.append, 0, scheduler=scheduler)
        debounced.schedule(1)
        assert calls == [1]
        assert scheduler.timers == []

    def test_cancel_drops_pending_call(self, scheduler):
        calls = []
        debounced = DebouncedCall(calls.append, 50, scheduler=scheduler)
        debounced.schedule(1)
        debounced.cancel()
        scheduler.advance(100)
        assert calls == []
        assert not debounced.pending

    def test_flush_runs_now_and_only_once(self, scheduler):
        calls = []
        debounced = DebouncedCall(calls.append, 50, scheduler=scheduler)
        debounced.schedule(7)
        debounced.flush()
        assert calls == [7]
        scheduler.advance(100)
        assert calls == [7]

    def test_flush_without_pending_is_noop(self, scheduler):
        calls = []
        DebouncedCall(calls.append, 50, scheduler=scheduler).flush()
        assert calls == []

    def test_close_cancels_and_refuses_new_calls(self, scheduler):
        calls = []
        with DebouncedCall(calls.append, 50, scheduler=scheduler) as debounced:
            debounced.schedule(1)
        assert debounced.closed
        debounced.schedule(2)
        scheduler.advance(100)
        assert calls == []

    def test_negative_delay_rejected(self):
        with pytest.raises(ValueError):
            DebouncedCall(print, -1)

    def test_defaults_to_running_event_loop(self):
        calls = []

        async def main():
            debounced = DebouncedCall(calls.append, 10)
            debounced.schedule(1)
            debounced.schedule(2)
            await asyncio.sleep(0.1)

        asyncio.run(main())
        assert calls == [2]
