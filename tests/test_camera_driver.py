import asyncio
import threading
import time

import numpy as np
import pytest

from livestream.core.exceptions import CameraError
from livestream.devices.camera import Camera, load_camera_driver
from livestream.devices.synthetic_camera import SyntheticCamera, encode_frame
from livestream.schemas.stream import StreamState

from conftest import make_service, wait_until


class NotACamera:
    pass


class BrokenCamera:
    def __init__(self):
        raise RuntimeError("device busy")


def test_load_camera_driver():
    camera = load_camera_driver("livestream.devices.synthetic_camera:SyntheticCamera")
    assert isinstance(camera, SyntheticCamera)
    assert isinstance(camera, Camera)


@pytest.mark.parametrize("path, message", [
    ("livestream.devices.synthetic_camera", "expected 'module:Class'"),
    ("livestream.devices.missing:Camera", "could not be loaded"),
    ("livestream.devices.synthetic_camera:Missing", "could not be loaded"),
    ("test_camera_driver:BrokenCamera", "failed to initialize"),
    ("test_camera_driver:NotACamera", "does not implement"),
])
def test_load_camera_driver_errors(path, message):
    with pytest.raises(CameraError, match=message):
        load_camera_driver(path)


@pytest.mark.parametrize("encoding, magic", [
    ("JPEG", b"\xff\xd8"),
    ("PNG", b"\x89PNG"),
    ("GIF", b"GIF8"),
    ("BMP", b"BM"),
    ("PPM", b"P6"),
])
def test_encode_frame_formats(encoding, magic):
    image = np.zeros((16, 32, 3), dtype=np.uint8)
    assert encode_frame(image, encoding, 50).startswith(magic)


def test_encode_frame_tga_and_unknown():
    image = np.full((16, 32, 3), 128, dtype=np.uint8)
    assert len(encode_frame(image, "tga", 50)) > 0
    with pytest.raises(ValueError):
        encode_frame(image, "WEBP", 50)


def test_render_pattern_matches_configured_size():
    camera = SyntheticCamera()
    camera._options = {"width": 64, "height": 48}
    assert camera.render_pattern(3).shape == (48, 64, 3)


@pytest.mark.asyncio
async def test_synthetic_camera_streams_through_service():
    camera = SyntheticCamera()
    service = make_service(camera)
    service.set_width(64)
    service.set_height(48)
    service.set_fps(30)

    await service.start()
    await wait_until(lambda: service.get_last_frame() is not None)
    assert service.get_last_frame().startswith(b"\xff\xd8")

    await service.pause()
    await asyncio.sleep(0.1)
    paused_sequence = service.store.frames.get_frame().sequence
    await asyncio.sleep(0.15)
    assert service.store.frames.get_frame().sequence == paused_sequence

    await service.resume()
    await wait_until(lambda: service.store.frames.get_frame().sequence > paused_sequence)

    await service.stop()
    assert service.state == StreamState.STOPPED
    assert camera._thread is None


def test_synthetic_camera_rejects_second_start():
    camera = SyntheticCamera()
    errors = []
    stopped = threading.Event()
    options = {"width": 32, "height": 16, "fps": 5}
    camera.start(options, errors.append)
    camera.start(options, errors.append)
    camera.stop(lambda error: (errors.append(error), stopped.set()))
    assert stopped.wait(2.0)
    assert errors[0] is None
    assert isinstance(errors[1], RuntimeError)
    assert errors[2] is None


class SlowPatternCamera(SyntheticCamera):
    def __init__(self):
        super().__init__()
        self.rendering = threading.Event()

    def render_pattern(self, index):
        self.rendering.set()
        time.sleep(0.3)
        return super().render_pattern(index)


def test_synthetic_camera_stop_does_not_wait_for_capture_thread():
    camera = SlowPatternCamera()
    done = []
    stopped = threading.Event()
    camera.start({"width": 32, "height": 16, "fps": 5}, done.append)
    assert camera.rendering.wait(2.0)

    started_at = time.monotonic()
    camera.stop(lambda error: (done.append((error, threading.current_thread().name)), stopped.set()))
    assert time.monotonic() - started_at < 0.1
    assert not stopped.is_set()

    assert stopped.wait(2.0)
    assert done[1] == (None, "synthetic-camera")
    assert camera._thread is None


def test_synthetic_camera_stop_when_not_running():
    camera = SyntheticCamera()
    done = []
    camera.stop(done.append)
    assert done == [None]
