import asyncio

import numpy as np
import pytest

from facelive.config import Settings
from facelive.emotion import InferenceService
from facelive.models import Box, DetectionResult


class DummyCap:
    """Stands in for cv2.VideoCapture."""
    def __init__(self, idx=0, opened=True, shape=(480, 640, 3)):
        self.idx = idx
        self.opened = opened
        self.shape = shape
        self.released = False
        self.reads = 0
        self.props = {}
    def isOpened(self): return self.opened and not self.released
    def read(self):
        if self.released:
            return False, None
        self.reads += 1
        return True, np.zeros(self.shape, dtype=np.uint8)
    def set(self, prop, value):
        self.props[prop] = value
        return True
    def release(self): self.released = True


class FakeInference(InferenceService):
    """Scripted inference. With hold=True every detect() waits for `release`."""
    def __init__(self, results=None, hold=False, loaded=True, load_error=None):
        self.results = list(results or [])
        self.hold = hold
        self.release = asyncio.Event()
        self.calls = 0
        self.in_flight = 0
        self.max_in_flight = 0
        self._loaded = loaded
        self.load_error = load_error
        self.load_calls = 0

    @property
    def loaded(self):
        return self._loaded

    def load(self):
        self.load_calls += 1
        if self.load_error is not None:
            raise self.load_error
        self._loaded = True

    async def detect(self, frame):
        self.calls += 1
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.hold:
                await self.release.wait()
            item = self.results.pop(0) if self.results else []
            if isinstance(item, Exception):
                raise item
            return item
        finally:
            self.in_flight -= 1


def face(x=10, y=20, w=100, h=120, **scores):
    return DetectionResult(box=Box(x=x, y=y, width=w, height=h), expressions=scores)


@pytest.fixture
def settings():
    # long interval: tests drive ticks by hand unless they override it
    return Settings(DETECT_INTERVAL=60)


@pytest.fixture
def caps():
    made = []
    def factory(idx, **kw):
        cap = DummyCap(idx, **kw)
        made.append(cap)
        return cap
    factory.made = made
    return factory


@pytest.fixture
def closed_caps():
    made = []
    def factory(idx):
        cap = DummyCap(idx, opened=False)
        made.append(cap)
        return cap
    factory.made = made
    return factory


async def until(cond, timeout=2.0):
    """Yield to the loop until cond() holds. Frame reads finish on worker threads."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not cond():
        if loop.time() > deadline:
            raise AssertionError("condition not reached in time")
        await asyncio.sleep(0.005)
