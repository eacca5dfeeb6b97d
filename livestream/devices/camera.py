"""
카메라 드라이버가 만족해야 하는 인터페이스와 드라이버 로더입니다.

드라이버는 콜백 기반 API를 제공합니다. start/pause/resume/stop은 작업이 끝나면
callback(error)를 정확히 한 번 호출해야 하며, 성공 시 error는 None입니다.
콜백과 프레임 리스너는 임의의 스레드에서 호출될 수 있습니다.
"""
import importlib
from typing import Any, Callable, Dict, Optional, Protocol, runtime_checkable

from livestream.core.exceptions import CameraError

CompletionCallback = Callable[[Optional[BaseException]], None]
FrameListener = Callable[[bytes], None]


@runtime_checkable
class Camera(Protocol):
    def start(self, options: Dict[str, Any], callback: CompletionCallback) -> None: ...

    def pause(self, callback: CompletionCallback) -> None: ...

    def resume(self, callback: CompletionCallback) -> None: ...

    def stop(self, callback: CompletionCallback) -> None: ...

    def add_frame_listener(self, listener: FrameListener) -> None: ...

    def remove_frame_listener(self, listener: FrameListener) -> None: ...


def load_camera_driver(import_path: str) -> Camera:
    """'package.module:ClassName' 형태의 경로에서 드라이버를 import하고 인스턴스를 생성합니다."""
    module_name, _, attr = import_path.partition(":")
    if not module_name or not attr:
        raise CameraError(f"Invalid camera driver path '{import_path}', expected 'module:Class'")
    try:
        module = importlib.import_module(module_name)
        driver_cls = getattr(module, attr)
    except (ImportError, AttributeError) as e:
        raise CameraError(f"Camera driver '{import_path}' could not be loaded: {e}") from e
    try:
        camera = driver_cls()
    except Exception as e:
        raise CameraError(f"Camera driver '{import_path}' failed to initialize: {e}") from e
    if not isinstance(camera, Camera):
        raise CameraError(f"Camera driver '{import_path}' does not implement the camera interface")
    return camera
