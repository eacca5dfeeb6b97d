"""
애플리케이션의 의존성(dependency)을 생성하고 관리합니다.
"""
from livestream.core.config import settings
from livestream.core.event_bus import EventBus
from livestream.core.logging import logger
from livestream.devices.camera import load_camera_driver
from livestream.schemas.stream import StreamConfig
from livestream.services.camera_service import CameraService
from livestream.services.livestream_service import LiveStreamService
from livestream.stores.application_store import ApplicationStore
from livestream.streaming.connection_manager import ConnectionManager


def _build_livestream_service() -> LiveStreamService:
    """설정값을 검증된 setter로 적용한 LiveStreamService를 생성합니다."""
    service = LiveStreamService(
        store=_store,
        event_bus=_event_bus,
        connection_manager=_connection_manager,
        camera_service=_camera_service,
        config=StreamConfig(),
        host=settings.SERVER_HOST,
        public_host=settings.public_host,
        server_startup_timeout=settings.SERVER_STARTUP_TIMEOUT_SECONDS,
    )
    service.set_verbose_mode(settings.VERBOSE_MODE)
    service.set_port(settings.SERVER_PORT)
    service.set_pathname(settings.STREAM_PATHNAME)
    service.set_width(settings.STREAM_WIDTH, settings.CAMERA_VERSION)
    service.set_height(settings.STREAM_HEIGHT, settings.CAMERA_VERSION)
    service.set_fps(settings.STREAM_FPS)
    service.set_encoding(settings.STREAM_ENCODING)
    service.set_quality(settings.STREAM_QUALITY)
    logger.debug(f"LiveStreamService configured: {service.config.model_dump()}")
    return service


# --- 단일 인스턴스 생성 (의존성 순서에 주의) ---

# 1. 의존성이 없는 기본 서비스들
_store = ApplicationStore()
_event_bus = EventBus()

# 의존성 연결: EventBus가 Store의 EventHandler를 사용하도록 설정
_event_bus.set_event_handler(_store.events)

# 2. 기본 서비스에 의존하는 서비스들
_connection_manager = ConnectionManager(
    event_bus=_event_bus,
    max_pending_frames=settings.CLIENT_MAX_PENDING_FRAMES,
)
_camera_service = CameraService(
    store=_store,
    event_bus=_event_bus,
    camera_factory=lambda: load_camera_driver(settings.CAMERA_DRIVER),
    timeout_seconds=settings.LIFECYCLE_TIMEOUT_SECONDS,
)

# 3. 여러 서비스에 의존하는 최종 서비스
_livestream_service = _build_livestream_service()


# --- 의존성 공급자(Provider) 함수 ---
def get_store() -> ApplicationStore: return _store
def get_event_bus() -> EventBus: return _event_bus
def get_connection_manager() -> ConnectionManager: return _connection_manager
def get_camera_service() -> CameraService: return _camera_service
def get_livestream_service() -> LiveStreamService: return _livestream_service
