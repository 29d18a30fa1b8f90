"""Tests for timelines, frame sources and the clock registry."""

import asyncio

import pytest

from vmlcompose.clock import AsyncioFrameSource, ClockRegistry, ManualFrameSource, Timeline


def _timeline(frame_source, **overrides):
    kwargs = {"fps": 30, "clock_mode": "live", "loop": False, "duration": None}
    kwargs.update(overrides)
    return Timeline("main", frame_source=frame_source, **kwargs)


def _record(timeline):
    ticks = []
    timeline.subscribe(ticks.append)
    return ticks


class TestManualFrameSource:
    def test_step_fires_pending_once(self):
        source = ManualFrameSource()
        calls = []
        source.request_frame(calls.append)
        assert source.step(1.0) == 1
        assert source.step(2.0) == 0
        assert calls == [1.0]

    def test_cancel(self):
        source = ManualFrameSource()
        handle = source.request_frame(lambda ts: pytest.fail("cancelled frame fired"))
        source.cancel_frame(handle)
        assert source.pending == 0
        source.step(1.0)

    def test_time_cannot_go_backwards(self):
        source = ManualFrameSource(now=5.0)
        with pytest.raises(ValueError, match="backwards"):
            source.step(4.0)


class TestTimelineLifecycle:
    def test_starts_stopped(self):
        timeline = _timeline(ManualFrameSource())
        assert not timeline.running
        assert (timeline.time, timeline.frame) == (0.0, 0)

    def test_first_tick_has_zero_delta(self):
        source = ManualFrameSource(now=100.0)
        timeline = _timeline(source)
        ticks = _record(timeline)
        timeline.start()
        source.step()
        source.advance(0.5)
        assert ticks == [0.0, 0.5]

    def test_restart_resets_delta(self):
        source = ManualFrameSource()
        timeline = _timeline(source)
        ticks = _record(timeline)
        timeline.start()
        source.step()
        source.advance(1.0)
        timeline.stop()
        source.advance(10.0)
        timeline.start()
        source.advance(3.0)
        source.advance(0.25)
        assert ticks == [0.0, 1.0, 1.0, 1.25]

    def test_stop_is_immediate_and_idempotent(self):
        source = ManualFrameSource()
        timeline = _timeline(source)
        ticks = _record(timeline)
        timeline.start()
        timeline.stop()
        timeline.stop()
        source.advance(1.0)
        assert ticks == []
        assert source.pending == 0

    def test_start_twice_is_noop(self):
        source = ManualFrameSource()
        timeline = _timeline(source)
        timeline.start()
        timeline.start()
        assert source.pending == 1

    def test_frame_number(self):
        source = ManualFrameSource()
        timeline = _timeline(source, fps=25)
        timeline.start()
        source.step()
        source.advance(1.0)
        assert timeline.frame == 25
        source.advance(0.039)
        assert timeline.frame == 25
        source.advance(0.002)
        assert timeline.frame == 26

    def test_unsubscribe(self):
        source = ManualFrameSource()
        timeline = _timeline(source)
        ticks = []
        unsubscribe = timeline.subscribe(ticks.append)
        timeline.start()
        source.step()
        unsubscribe()
        source.advance(1.0)
        assert ticks == [0.0]
        assert timeline.subscriber_count == 0

    def test_failing_subscriber_does_not_stall_clock(self):
        source = ManualFrameSource()
        timeline = _timeline(source)
        calls = []

        def flaky(time):
            calls.append(time)
            if len(calls) == 1:
                raise RuntimeError("boom")

        timeline.subscribe(flaky)
        timeline.start()
        with pytest.raises(RuntimeError, match="boom"):
            source.step()
        assert timeline.running
        assert source.pending == 1
        source.advance(0.5)
        source.advance(0.5)
        assert calls == [0.0, 0.5, 1.0]

    def test_seek(self):
        source = ManualFrameSource()
        timeline = _timeline(source)
        ticks = _record(timeline)
        timeline.seek(3.0)
        timeline.start()
        source.step()
        assert ticks == [3.0]

    def test_invalid_clock_mode(self):
        with pytest.raises(ValueError, match="clock_mode"):
            _timeline(ManualFrameSource(), clock_mode="wallclock")


class TestBoundedClock:
    def test_non_looping_clamps_and_stops(self):
        source = ManualFrameSource()
        timeline = _timeline(source, clock_mode="bounded", duration=10.0)
        ticks = _record(timeline)
        timeline.start()
        source.step()
        source.advance(9.5)
        source.advance(1.0)
        assert ticks == [0.0, 9.5, 10.0]
        assert timeline.time == 10.0
        assert not timeline.running
        assert source.advance(1.0) == 0
        assert ticks == [0.0, 9.5, 10.0]

    def test_looping_wraps_with_modulo(self):
        source = ManualFrameSource()
        timeline = _timeline(source, clock_mode="bounded", duration=5.0, loop=True)
        ticks = _record(timeline)
        timeline.start()
        source.step()
        source.advance(4.5)
        source.advance(1.1)
        assert ticks[-1] == pytest.approx(0.6)
        assert timeline.running

    def test_zero_duration_loop_wraps_to_zero(self):
        source = ManualFrameSource()
        timeline = _timeline(source, clock_mode="bounded", duration=0.0, loop=True)
        ticks = _record(timeline)
        timeline.start()
        source.step()
        source.advance(0.7)
        assert ticks == [0.0, 0.0]

    def test_live_mode_ignores_duration(self):
        source = ManualFrameSource()
        timeline = _timeline(source, clock_mode="live", duration=1.0)
        timeline.start()
        source.step()
        source.advance(5.0)
        assert timeline.time == 5.0
        assert timeline.running

    def test_bounded_without_duration_runs_unbounded(self):
        source = ManualFrameSource()
        timeline = _timeline(source, clock_mode="bounded", duration=None)
        timeline.start()
        source.step()
        source.advance(50.0)
        assert timeline.time == 50.0


class TestRun:
    def test_run_delivers_frames(self):
        source = ManualFrameSource()
        timeline = _timeline(source)
        timeline.start()
        frames = source.run(1.0, refresh_hz=10)
        assert frames == 11
        assert timeline.time == pytest.approx(1.0)

    def test_run_stops_when_idle(self):
        source = ManualFrameSource()
        timeline = _timeline(source, clock_mode="bounded", duration=0.45)
        timeline.start()
        frames = source.run(2.0, refresh_hz=10)
        assert frames == 6
        assert not timeline.running


class TestAsyncioFrameSource:
    def test_ticks_on_event_loop(self):
        ticks = []

        async def play():
            source = AsyncioFrameSource(refresh_hz=100)
            timeline = Timeline("rt", 30, source)
            timeline.subscribe(ticks.append)
            timeline.start()
            await asyncio.sleep(0.1)
            timeline.stop()

        asyncio.run(play())
        assert len(ticks) >= 2
        assert ticks[0] == 0.0
        assert ticks == sorted(ticks)

    def test_rejects_non_positive_rate(self):
        with pytest.raises(ValueError, match="refresh_hz"):
            AsyncioFrameSource(refresh_hz=0)


class TestClockRegistry:
    def test_same_group_same_timeline(self):
        registry = ClockRegistry(ManualFrameSource())
        first = registry.timeline("main", fps=30)
        second = registry.timeline("main", fps=60, clock_mode="bounded", duration=3)
        assert first is second
        assert second.fps == 30

    def test_first_timeline_is_default(self):
        registry = ClockRegistry(ManualFrameSource())
        first = registry.timeline("a", fps=30)
        registry.timeline("b", fps=30)
        assert registry.default is first
        assert registry.groups() == ["a", "b"]
        assert "b" in registry
        assert len(registry) == 2

    def test_stop_all(self):
        source = ManualFrameSource()
        registry = ClockRegistry(source)
        registry.timeline("a", fps=30).start()
        registry.timeline("b", fps=30).start()
        registry.stop_all()
        assert source.pending == 0
        assert registry.get("a") is not None
