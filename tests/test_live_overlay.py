
import pytest
from conftest import DummyCap, FakeInference, face

import facelive.live as live
from facelive.config import Settings
from facelive.errors import DeviceUnavailable


def _patch_window(monkeypatch, keys):
    shown = []
    monkeypatch.setattr(live.cv2, "imshow", lambda title, img: shown.append(img.shape))
    monkeypatch.setattr(live.cv2, "destroyAllWindows", lambda: None)
    seq = iter(keys)
    monkeypatch.setattr(live.cv2, "waitKey", lambda delay: next(seq, ord("q")))
    return shown


def test_run_live_overlay_monkeypatch(monkeypatch):
    made = []
    def factory(idx):
        made.append(DummyCap(idx))
        return made[-1]
    monkeypatch.setattr(live.cv2, "VideoCapture", factory)
    shown = _patch_window(monkeypatch, [-1, -1, ord("t"), -1, ord("t"), -1, ord("q")])

    s = Settings(DETECT_INTERVAL=0.05)
    live.run_live_overlay(s, camera_index=2, inference=FakeInference(results=[[face(happy=0.9)]]))

    assert len(shown) == 7
    assert all(shape == (480, 640, 3) for shape in shown)
    # autostart, 't' stops, 't' starts again
    assert [c.idx for c in made] == [2, 2]
    assert all(c.released for c in made)


def test_run_live_overlay_without_camera(monkeypatch):
    monkeypatch.setattr(live.cv2, "VideoCapture", lambda idx: DummyCap(idx, opened=False))
    _patch_window(monkeypatch, [])
    with pytest.raises(DeviceUnavailable):
        live.run_live_overlay(Settings(), inference=FakeInference())


def test_toggle_without_camera_keeps_window_open(monkeypatch):
    monkeypatch.setattr(live.cv2, "VideoCapture", lambda idx: DummyCap(idx, opened=False))
    shown = _patch_window(monkeypatch, [ord("t"), -1, ord("q")])
    live.run_live_overlay(Settings(), inference=FakeInference(), autostart=False)
    assert len(shown) == 3
