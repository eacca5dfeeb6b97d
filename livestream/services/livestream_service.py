import asyncio
import base64
import time
from typing import Any, Optional

from fastapi import FastAPI, Request

from livestream.core.event_bus import EventBus
from livestream.core.event_type import EventType
from livestream.core.exceptions import LifecycleError, ValidationError
from livestream.core.logging import logger
from livestream.schemas.events import StreamStateChangedPayload
from livestream.schemas.stream import (
    EncodingType, FPS_BOUNDS, HEIGHT_BOUNDS, QUALITY_BOUNDS, SUPPORTED_ENCODING_TYPES, WIDTH_BOUNDS,
    ServerBinding, StreamConfig, StreamState, StreamStatus,
)
from livestream.services.camera_service import CameraService
from livestream.services.http_server import EmbeddedServer
from livestream.stores.application_store import ApplicationStore
from livestream.streaming.connection_manager import ConnectionManager
from livestream.streaming.multipart import MultipartStreamResponse


def _to_int(value: Any, name: str) -> int:
    if isinstance(value, bool):
        raise ValidationError(f"[-] {name} must be an integer, got {value!r}.")
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"[-] {name} must be an integer, got {value!r}.") from None


def _check_camera_version(version: Any) -> int:
    version = _to_int(version, "Camera version")
    if version not in WIDTH_BOUNDS:
        raise ValidationError(f"[-] Unknown camera module version v{version}, expected v1 or v2.")
    return version


class LiveStreamService:
    """
    카메라 라이브스트림의 설정과 라이프사이클(idle → started ⇄ paused → stopped)을 관리합니다.

    - 설정 setter는 동기적으로 검증하며, 실패 시 ValidationError를 발생시키고 값을 바꾸지 않습니다.
    - start/pause/resume/stop은 카메라 콜백이 완료될 때까지 대기하는 코루틴이며,
      하나의 asyncio.Lock으로 직렬화됩니다.
    - stopped는 종료 상태입니다. 다시 스트리밍하려면 새 인스턴스가 필요합니다.
    """
    def __init__(
        self,
        store: ApplicationStore,
        event_bus: EventBus,
        connection_manager: ConnectionManager,
        camera_service: CameraService,
        config: Optional[StreamConfig] = None,
        host: str = "0.0.0.0",
        public_host: str = "localhost",
        port: int = 8000,
        pathname: str = "/live.stream",
        verbose_mode: bool = False,
        server_startup_timeout: float = 5.0,
    ):
        self.store = store
        self.event_bus = event_bus
        self.manager = connection_manager
        self.camera_service = camera_service
        self.config = config.model_copy() if config else StreamConfig()
        self.server = ServerBinding(app=None, host=host, port=port, pathname=pathname)
        self.public_host = public_host
        self.verbose_mode = verbose_mode
        self._server_startup_timeout = server_startup_timeout
        self._owned_server: Optional[EmbeddedServer] = None
        self._state = StreamState.IDLE
        self._route_registered = False
        self._lifecycle_lock = asyncio.Lock()
        self.url: Optional[str] = None

    # --- Configuration ---
    def register(self, app: FastAPI, port: Optional[int] = None):
        """외부에서 소유한 FastAPI 앱에 스트림을 등록합니다. 서버 실행은 호출자의 책임입니다."""
        self.server.app = app
        if port:
            self.server.port = _to_int(port, "Port")

    def set_port(self, port: Any):
        port = _to_int(port, "Port")
        if port <= 1023:
            logger.warning("[!] WARNING: using well-known ports (0-1023) may cause problems.")
        self.server.port = port

    def set_pathname(self, pathname: str):
        pathname = str(pathname).strip()
        self.server.pathname = pathname if pathname.startswith("/") else f"/{pathname}"

    def set_verbose_mode(self, mode: Any):
        self.verbose_mode = bool(mode)

    def set_width(self, width: Any, camera_version: Any = 2):
        width = _to_int(width, "Width")
        version = _check_camera_version(camera_version)
        low, high = WIDTH_BOUNDS[version]
        if width < low or width > high:
            raise ValidationError(f"[-] Width must be between {low} and {high} for v{version} cameras.")
        self.config.width = width

    def set_height(self, height: Any, camera_version: Any = 2):
        height = _to_int(height, "Height")
        version = _check_camera_version(camera_version)
        low, high = HEIGHT_BOUNDS[version]
        if height < low or height > high:
            raise ValidationError(f"[-] Height must be between {low} and {high} for v{version} cameras.")
        self.config.height = height

    def set_fps(self, fps: Any):
        fps = _to_int(fps, "FPS")
        if fps < FPS_BOUNDS[0] or fps > FPS_BOUNDS[1]:
            raise ValidationError(f"[-] FPS value must be between {FPS_BOUNDS[0]} and {FPS_BOUNDS[1]}.")
        self.config.fps = fps

    def set_encoding(self, encoding: Any):
        if not isinstance(encoding, str):
            raise ValidationError(f"[-] Encoding type must be a string, got {encoding!r}.")
        value = encoding.strip().upper()
        if value not in SUPPORTED_ENCODING_TYPES:
            raise ValidationError(f"[-] Encoding type '{value}' is not supported.")
        self.config.encoding = EncodingType(value)

    def set_quality(self, quality: Any):
        quality = _to_int(quality, "Quality")
        if quality < QUALITY_BOUNDS[0] or quality > QUALITY_BOUNDS[1]:
            raise ValidationError(f"[-] Quality value must be between {QUALITY_BOUNDS[0]} and {QUALITY_BOUNDS[1]}.")
        self.config.quality = quality

    @property
    def mime_type(self) -> str:
        return self.config.mime_type

    @staticmethod
    def get_supported_encoding_types() -> str:
        return ",".join(SUPPORTED_ENCODING_TYPES)

    # --- State ---
    @property
    def state(self) -> StreamState:
        return self._state

    @property
    def status(self) -> StreamStatus:
        return StreamStatus.from_state(self._state)

    def get_last_frame(self) -> Optional[bytes]:
        if self._state == StreamState.IDLE:
            raise LifecycleError("[-] Last frame cannot be captured because the livestream has not started yet")
        return self.store.frames.get_frame_data()

    async def get_snapshot(self) -> Optional[str]:
        frame = self.store.frames.get_frame_data()
        if not frame:
            return None
        return f"data:{self.mime_type};base64,{base64.b64encode(frame).decode('ascii')}"

    # --- Lifecycle ---
    async def start(self) -> str:
        async with self._lifecycle_lock:
            if self._state == StreamState.STOPPED:
                raise LifecycleError("[-] The stream cannot be started after it has been stopped")
            if self._state != StreamState.IDLE:
                raise LifecycleError(f"[-] The stream cannot be started because it is already {self._state.value}")

            try:
                await self._initialize()
                await self.camera_service.start(self.config)
            except BaseException as e:
                # CancelledError 포함: 중간에 확보한 서버/카메라를 항상 해제합니다
                self._log(f"[-] Starting livestream feed failed with error: {e!r}", failed=True)
                await self._release_resources()
                raise

            await self._transition(StreamState.STARTED)
            self._listen()
            self.url = f"http://{self.public_host}:{self.server.port}{self.server.pathname}"
            self._log(f"[+] Livestream started on {self.url}")
            return self.url

    async def pause(self):
        async with self._lifecycle_lock:
            if self._state != StreamState.STARTED:
                raise LifecycleError("[-] The stream cannot be paused because it has not been started yet")
            await self.camera_service.pause()
            await self._transition(StreamState.PAUSED)
            self._log("[+] Livestream paused")

    async def resume(self):
        async with self._lifecycle_lock:
            if self._state != StreamState.PAUSED:
                raise LifecycleError("[-] The stream cannot be resumed because it has not been paused")
            await self.camera_service.resume()
            await self._transition(StreamState.STARTED)
            self._log("[+] Livestream resumed")

    async def stop(self):
        async with self._lifecycle_lock:
            if self._state not in (StreamState.STARTED, StreamState.PAUSED):
                raise LifecycleError("[-] The stream cannot be stopped because it has not been started yet")
            await self.camera_service.stop()
            await self._transition(StreamState.STOPPED)
            self.store.frames.clear()
            await self._release_resources()
            self._log("[+] Livestream stopped")

    async def _initialize(self):
        """웹서버(필요 시 자체 생성)와 카메라 드라이버를 준비합니다."""
        if self.server.app is None:
            self._owned_server = EmbeddedServer(self.server.host, self.server.port, self._server_startup_timeout)
            self.server.port = await self._owned_server.start()
            self._log(f"[+] Webserver is up and listening on port {self.server.port}")
        else:
            self._log(f"[+] Streaming over registered webserver on port {self.server.port}")
        self.camera_service.acquire()

    def _listen(self):
        """스트림 라우트를 한 번만 등록합니다."""
        if self._route_registered:
            return
        app = self._owned_server.app if self._owned_server else self.server.app
        app.add_api_route(
            self.server.pathname,
            self.stream_endpoint,
            methods=["GET"],
            include_in_schema=False,
        )
        self._route_registered = True

    async def _release_resources(self):
        await self.manager.close_all()
        self.camera_service.release()
        if self._owned_server is not None:
            await self._owned_server.shutdown()
            self._owned_server = None

    async def _transition(self, state: StreamState):
        previous, self._state = self._state, state
        payload = StreamStateChangedPayload(timestamp=time.time(), previous=previous, current=state)
        await self.event_bus.publish(EventType.STREAM_STATE_CHANGED.value, payload)

    # --- Streaming ---
    async def stream_endpoint(self, request: Request) -> MultipartStreamResponse:
        client = f"{request.client.host}:{request.client.port}" if request.client else "unknown"
        self._log(f"[+] Client connected to host {client}")
        return await self.open_stream(client)

    async def open_stream(self, client: str) -> MultipartStreamResponse:
        self._ensure_streamable()
        subscription = await self.manager.connect(client)
        if self._state == StreamState.STOPPED:
            # connect() 도중 stop()이 끝난 경우
            await self.manager.disconnect(subscription)
            self._ensure_streamable()
        return MultipartStreamResponse(
            subscription,
            self.manager,
            mime_type=lambda: self.mime_type,
            verbose=self.verbose_mode,
        )

    def _ensure_streamable(self):
        if self._state == StreamState.STOPPED:
            raise LifecycleError("[-] The stream has been stopped and no longer accepts clients")
        if self._state == StreamState.IDLE:
            raise LifecycleError("[-] The stream has not been started yet")

    def _log(self, message: str, failed: bool = False):
        if failed:
            logger.error(message)
        elif not self.verbose_mode:
            logger.debug(message)
        else:
            logger.info(message)
