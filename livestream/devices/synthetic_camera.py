import io
import threading
import time
from typing import Any, Dict, List, Optional

import cv2
import numpy as np
from PIL import Image

from livestream.core.logging import logger
from livestream.devices.camera import CompletionCallback, FrameListener

# cv2.imencode로 처리 가능한 포맷. GIF/TGA는 Pillow로 인코딩합니다.
_CV2_EXTENSIONS = {"JPEG": ".jpg", "PNG": ".png", "PPM": ".ppm", "BMP": ".bmp"}
_PILLOW_FORMATS = {"GIF": "GIF", "TGA": "TGA"}


def encode_frame(image: np.ndarray, encoding: str, quality: int) -> bytes:
    """BGR 이미지를 지정된 인코딩의 바이트로 변환합니다."""
    encoding = encoding.upper()
    if encoding in _CV2_EXTENSIONS:
        params = [int(cv2.IMWRITE_JPEG_QUALITY), int(quality)] if encoding == "JPEG" else []
        success, encoded = cv2.imencode(_CV2_EXTENSIONS[encoding], image, params)
        if not success:
            raise ValueError(f"cv2.imencode failed for {encoding}")
        return encoded.tobytes()
    if encoding in _PILLOW_FORMATS:
        buffer = io.BytesIO()
        Image.fromarray(cv2.cvtColor(image, cv2.COLOR_BGR2RGB)).save(buffer, format=_PILLOW_FORMATS[encoding])
        return buffer.getvalue()
    raise ValueError(f"Unsupported encoding '{encoding}'")


class SyntheticCamera:
    """
    테스트 패턴을 생성하는 소프트웨어 카메라 드라이버입니다.

    실제 카메라 드라이버와 같은 콜백 API를 제공하며, 별도의 캡처 스레드에서
    설정된 fps로 프레임을 렌더링/인코딩하여 등록된 리스너에게 전달합니다.
    """
    def __init__(self):
        self._listeners: List[FrameListener] = []
        self._listeners_lock = threading.Lock()
        self._options: Dict[str, Any] = {}
        self._thread: Optional[threading.Thread] = None
        self._state_lock = threading.Lock()
        self._stop_callbacks: List[CompletionCallback] = []
        self._stop_event = threading.Event()
        self._running_event = threading.Event()
        self._frame_index = 0

    # --- Frame listeners ---
    def add_frame_listener(self, listener: FrameListener) -> None:
        with self._listeners_lock:
            self._listeners.append(listener)

    def remove_frame_listener(self, listener: FrameListener) -> None:
        with self._listeners_lock:
            if listener in self._listeners:
                self._listeners.remove(listener)

    # --- Lifecycle ---
    def start(self, options: Dict[str, Any], callback: CompletionCallback) -> None:
        with self._state_lock:
            if self._thread is not None:
                thread = None
            else:
                self._options = {
                    "width": int(options.get("width", 1280)),
                    "height": int(options.get("height", 720)),
                    "fps": max(1, int(options.get("fps", 16))),
                    "encoding": str(options.get("encoding", "JPEG")),
                    "quality": int(options.get("quality", 25)),
                }
                self._stop_event.clear()
                self._running_event.set()
                thread = threading.Thread(target=self._capture_loop, name="synthetic-camera", daemon=True)
                self._thread = thread
        if thread is None:
            callback(RuntimeError("Synthetic camera is already running"))
            return
        thread.start()
        logger.debug(f"Synthetic camera started with {self._options}")
        callback(None)

    def pause(self, callback: CompletionCallback) -> None:
        self._running_event.clear()
        callback(None)

    def resume(self, callback: CompletionCallback) -> None:
        self._running_event.set()
        callback(None)

    def stop(self, callback: CompletionCallback) -> None:
        """캡처 스레드에 종료를 알리고, 스레드가 끝나면 그 스레드에서 callback을 호출합니다."""
        with self._state_lock:
            running = self._thread is not None
            if running:
                self._stop_callbacks.append(callback)
            self._stop_event.set()
            self._running_event.set()  # 일시정지 상태에서도 루프가 종료되도록 깨웁니다
        if not running:
            callback(None)

    # --- Capture loop ---
    def _capture_loop(self):
        try:
            self._run_capture()
        finally:
            with self._state_lock:
                self._thread = None
                callbacks, self._stop_callbacks = self._stop_callbacks, []
            for callback in callbacks:
                callback(None)

    def _run_capture(self):
        interval = 1.0 / self._options["fps"]
        while not self._stop_event.is_set():
            self._running_event.wait()
            if self._stop_event.is_set():
                break
            started_at = time.monotonic()
            try:
                frame = encode_frame(
                    self.render_pattern(self._frame_index),
                    self._options["encoding"],
                    self._options["quality"],
                )
            except Exception as e:
                logger.error(f"Synthetic camera failed to encode frame {self._frame_index}: {e}")
                self._stop_event.wait(interval)
                continue
            self._frame_index += 1
            self._emit(frame)
            self._stop_event.wait(max(0.0, interval - (time.monotonic() - started_at)))

    def _emit(self, frame: bytes):
        with self._listeners_lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(frame)
            except Exception as e:
                logger.warning(f"Frame listener {listener} raised: {e}")

    def render_pattern(self, index: int) -> np.ndarray:
        """가로 그라디언트 위에 움직이는 막대와 프레임 번호/시각을 그립니다."""
        width, height = self._options.get("width", 1280), self._options.get("height", 720)
        gradient = np.linspace(0, 255, width, dtype=np.uint8)
        image = np.zeros((height, width, 3), dtype=np.uint8)
        image[:, :, 0] = gradient
        image[:, :, 1] = gradient[::-1]
        bar_width = max(1, width // 16)
        x = (index * max(1, width // 64)) % width
        image[:, x:x + bar_width] = (255, 255, 255)
        label = f"#{index} {time.strftime('%H:%M:%S')}"
        scale = max(0.3, height / 720)
        cv2.putText(image, label, (10, max(20, int(40 * scale))), cv2.FONT_HERSHEY_SIMPLEX, scale, (0, 0, 255), 2)
        return image
