import asyncio

from conftest import FakeInference, face, until

from facelive.aggregate import ResultAggregator
from facelive.camera import FrameSource
from facelive.errors import InferenceError, ModelNotLoaded
from facelive.models import SchedulerState
from facelive.scheduler import DetectionScheduler, InFlightGuard
from facelive.visual import OverlayRenderer, RenderTarget


def _build(settings, caps, inference, interval=60.0, start_source=True):
    src = FrameSource(settings, caps)
    if start_source:
        src.start()
    agg = ResultAggregator()
    target = RenderTarget()
    sch = DetectionScheduler(src, inference, agg, OverlayRenderer(), target, interval=interval)
    return src, agg, target, sch


def test_ticks_skip_while_inference_in_flight(settings, caps):
    async def run():
        inf = FakeInference(results=[[face(happy=0.9)]], hold=True)
        src, agg, target, sch = _build(settings, caps, inf)
        sch.start()
        assert sch.tick() is True
        await until(lambda: inf.calls == 1)
        assert sch.state == SchedulerState.IN_FLIGHT
        assert [sch.tick() for _ in range(5)] == [False] * 5
        assert inf.calls == 1 and sch.skipped == 5

        inf.release.set()
        await sch.drain()
        assert sch.state == SchedulerState.RUNNING
        assert sch.completed == 1
        assert agg.current.label == "happy"
        assert len(target.drawn) == 1
        sch.stop()
        src.stop()
    asyncio.run(run())


def test_timer_never_overlaps_slow_inference(settings, caps):
    async def run():
        inf = FakeInference(results=[[face(sad=0.5)]] * 10, hold=True)
        src, agg, target, sch = _build(settings, caps, inf, interval=0.01)
        sch.start()
        await asyncio.sleep(0.2)
        # the timer kept firing but only one call went out
        assert sch.ticks > 3
        assert inf.calls == 1

        inf.release.set()
        await asyncio.sleep(0.2)
        sch.stop()
        await sch.drain()
        assert inf.calls >= 2
        assert inf.max_in_flight == 1 and sch.max_in_flight == 1
        src.stop()
    asyncio.run(run())


def test_no_frame_means_no_inference(settings, caps):
    async def run():
        inf = FakeInference()
        src, agg, target, sch = _build(settings, caps, inf, start_source=False)
        sch.start()
        assert sch.tick() is False
        assert inf.calls == 0 and sch.skipped == 1
        sch.stop()
    asyncio.run(run())


def test_tick_after_stop_is_skipped(settings, caps):
    async def run():
        inf = FakeInference()
        src, agg, target, sch = _build(settings, caps, inf)
        sch.start()
        sch.stop()
        assert sch.state == SchedulerState.IDLE
        assert sch.tick() is False
        assert inf.calls == 0
        src.stop()
    asyncio.run(run())


def test_late_completion_after_stop_is_discarded(settings, caps):
    async def run():
        inf = FakeInference(results=[[face(angry=0.9), face(sad=0.4)]], hold=True)
        src, agg, target, sch = _build(settings, caps, inf)
        target.match_dimensions(640, 480)
        sch.start()
        sch.tick()
        await until(lambda: inf.calls == 1)
        sch.stop()

        inf.release.set()
        await sch.drain()
        assert sch.stale == 1 and sch.completed == 0
        assert agg.current is None
        assert target.drawn == [] and not target.canvas.any()
        src.stop()
    asyncio.run(run())


def test_completion_from_previous_start_is_stale(settings, caps):
    async def run():
        inf = FakeInference(results=[[face(angry=0.9)]], hold=True)
        src, agg, target, sch = _build(settings, caps, inf)
        sch.start()
        sch.tick()
        await until(lambda: inf.calls == 1)
        sch.stop()
        sch.start()
        inf.release.set()
        await sch.drain()
        assert sch.stale == 1
        assert agg.current is None
        sch.stop()
        src.stop()
    asyncio.run(run())


def test_failed_tick_is_absorbed_and_next_tick_retries(settings, caps):
    async def run():
        inf = FakeInference(results=[InferenceError("boom"), [face(surprised=0.8)]])
        src, agg, target, sch = _build(settings, caps, inf)
        sch.start()
        sch.tick()
        await sch.drain()
        assert sch.failed == 1 and agg.current is None
        assert sch.state == SchedulerState.RUNNING

        sch.tick()
        await sch.drain()
        assert sch.completed == 1 and agg.current.label == "surprised"
        sch.stop()
        src.stop()
    asyncio.run(run())


def test_model_not_loaded_is_a_tick_failure(settings, caps):
    async def run():
        inf = FakeInference(results=[ModelNotLoaded("not yet")])
        src, agg, target, sch = _build(settings, caps, inf)
        sch.start()
        sch.tick()
        await sch.drain()
        assert sch.failed == 1 and sch.active
        sch.stop()
        src.stop()
    asyncio.run(run())


def test_shared_guard_blocks_second_scheduler(settings, caps):
    async def run():
        inf = FakeInference(results=[[face(happy=0.9)], [face(sad=0.7)]], hold=True)
        guard = InFlightGuard()
        src = FrameSource(settings, caps)
        src.start()
        agg = ResultAggregator()
        first = DetectionScheduler(src, inf, agg, OverlayRenderer(), RenderTarget(), guard=guard)
        second = DetectionScheduler(src, inf, agg, OverlayRenderer(), RenderTarget(), guard=guard)
        first.start()
        second.start()

        assert first.tick() is True
        assert second.tick() is False and second.skipped == 1
        inf.release.set()
        await first.drain()
        assert not guard.busy

        assert second.tick() is True
        await second.drain()
        assert inf.max_in_flight == 1 and agg.current.label == "sad"
        first.stop()
        second.stop()
        src.stop()
    asyncio.run(run())
