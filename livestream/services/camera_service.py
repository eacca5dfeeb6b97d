import asyncio
import time
from typing import Callable, Optional, Set

from livestream.core.event_bus import EventBus
from livestream.core.event_type import EventType
from livestream.core.exceptions import CameraError
from livestream.core.logging import logger
from livestream.devices.camera import Camera, CompletionCallback
from livestream.schemas.events import FrameReceivedPayload
from livestream.schemas.stream import StreamConfig
from livestream.stores.application_store import ApplicationStore

CameraFactory = Callable[[], Camera]

class CameraService:
    """
    카메라 드라이버 핸들을 소유하고, 콜백 기반 드라이버 API를 awaitable로 변환합니다.

    - start/pause/resume/stop은 드라이버 콜백이 한 번 호출될 때 완료되는 Future를 기다립니다.
    - 드라이버 스레드에서 들어온 프레임은 이벤트 루프로 옮겨져 store의 마지막 프레임을
      교체하고 FRAME_RECEIVED 이벤트로 발행됩니다.
    """
    def __init__(
        self,
        store: ApplicationStore,
        event_bus: EventBus,
        camera_factory: CameraFactory,
        timeout_seconds: Optional[float] = None,
    ):
        self.store = store
        self.event_bus = event_bus
        self.camera_factory = camera_factory
        self.camera: Optional[Camera] = None
        self._timeout = timeout_seconds if timeout_seconds and timeout_seconds > 0 else None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._sequence = 0
        self._publish_tasks: Set[asyncio.Task] = set()

    def acquire(self) -> Camera:
        """카메라 드라이버를 생성하여 소유합니다."""
        if self.camera is None:
            try:
                self.camera = self.camera_factory()
            except CameraError:
                raise
            except Exception as e:
                raise CameraError(f"Camera could not be acquired: {e}") from e
        return self.camera

    def release(self):
        """프레임 리스너를 제거하고 카메라 핸들을 비웁니다. 핸들은 재사용하지 않습니다."""
        if self.camera is not None:
            try:
                self.camera.remove_frame_listener(self._on_frame)
            except Exception as e:
                logger.warning(f"Removing frame listener from camera failed: {e}")
        self.camera = None
        self._loop = None

    async def start(self, config: StreamConfig):
        camera = self._require_camera()
        self._loop = asyncio.get_running_loop()
        camera.add_frame_listener(self._on_frame)
        try:
            await self._call("start", lambda callback: camera.start(config.to_camera_options(), callback))
        except CameraError:
            camera.remove_frame_listener(self._on_frame)
            raise

    async def pause(self):
        camera = self._require_camera()
        await self._call("pause", camera.pause)

    async def resume(self):
        camera = self._require_camera()
        await self._call("resume", camera.resume)

    async def stop(self):
        camera = self._require_camera()
        await self._call("stop", camera.stop)

    def _require_camera(self) -> Camera:
        if self.camera is None:
            raise CameraError("Camera has not been acquired")
        return self.camera

    async def _call(self, operation: str, invoke: Callable[[CompletionCallback], None]):
        """드라이버 작업을 호출하고 완료 콜백이 올 때까지 대기합니다."""
        loop = asyncio.get_running_loop()
        future: asyncio.Future = loop.create_future()

        def callback(error: Optional[BaseException] = None):
            if loop.is_closed():
                return
            loop.call_soon_threadsafe(self._complete, future, operation, error)

        try:
            invoke(callback)
        except Exception as e:
            raise CameraError(f"Camera {operation} failed: {e}") from e

        try:
            await asyncio.wait_for(future, timeout=self._timeout)
        except asyncio.TimeoutError as e:
            raise CameraError(f"Camera {operation} did not complete within {self._timeout:.1f}s") from e

    @staticmethod
    def _complete(future: asyncio.Future, operation: str, error: Optional[BaseException]):
        if future.done():
            logger.debug(f"Ignoring late or repeated '{operation}' callback from camera")
            return
        if error is not None:
            camera_error = CameraError(f"Camera {operation} failed: {error}")
            camera_error.__cause__ = error
            future.set_exception(camera_error)
        else:
            future.set_result(None)

    # --- Frame bridge ---
    def _on_frame(self, frame: bytes):
        """드라이버 스레드에서 호출될 수 있으므로 이벤트 루프로 넘깁니다."""
        loop = self._loop
        if loop is None or loop.is_closed():
            return
        loop.call_soon_threadsafe(self._dispatch_frame, bytes(frame), time.time())

    def _dispatch_frame(self, frame: bytes, timestamp: float):
        if self.camera is None:
            return
        self._sequence += 1
        self.store.frames.update_frame(frame, timestamp, self._sequence)
        payload = FrameReceivedPayload(timestamp=timestamp, frame_data=frame, sequence=self._sequence)
        # 프레임마다 독립된 태스크로 발행하여 느린 구독자가 카메라 브리지를 막지 않도록 합니다.
        task = asyncio.create_task(self.event_bus.publish(EventType.FRAME_RECEIVED.value, payload))
        self._publish_tasks.add(task)
        task.add_done_callback(self._publish_tasks.discard)
