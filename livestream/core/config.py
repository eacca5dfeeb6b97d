from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field, computed_field
from pathlib import Path
from typing import Optional

env_path = Path("livestream") / "config" / ".env"

class AppSettings(BaseSettings):
    """
    pydantic-settings를 사용하여 환경 변수 및 .env 파일로부터 설정을 관리합니다.
    스트림 관련 값들은 LiveStreamService 생성 시 검증된 setter를 통해 적용됩니다.
    """
    # --- General ---
    LOG_LEVEL: str = Field(
        "INFO",
        description="전체 애플리케이션 로그 레벨 (예: DEBUG, INFO, WARNING)",
    )
    VERBOSE_MODE: bool = Field(False, description="라이프사이클/클라이언트 로그를 INFO 레벨로 출력할지 여부")

    # --- Server Binding ---
    SERVER_HOST: str = Field("0.0.0.0", description="웹서버 바인딩 주소")
    SERVER_PORT: int = Field(8000, description="웹서버 포트")
    PUBLIC_HOST: Optional[str] = Field(default=None, description="스트림 URL에 사용할 호스트 이름 (없으면 SERVER_HOST 사용)")
    STREAM_PATHNAME: str = Field("/live.stream", description="multipart 스트림 라우트 경로")
    SERVER_STARTUP_TIMEOUT_SECONDS: float = Field(5.0, gt=0.0, description="자체 웹서버 기동 대기 시간 (초)")

    # --- Stream Settings ---
    STREAM_WIDTH: int = 1280
    STREAM_HEIGHT: int = 720
    STREAM_FPS: int = 16
    STREAM_ENCODING: str = Field("JPEG", description="인코딩 타입: JPEG, GIF, PNG, PPM, TGA, BMP")
    STREAM_QUALITY: int = 25
    CLIENT_MAX_PENDING_FRAMES: int = Field(
        256,
        gt=0,
        description="클라이언트별 전송 대기 프레임 상한. 초과하면 해당 클라이언트 연결을 닫습니다",
    )

    # --- Camera Settings ---
    CAMERA_VERSION: int = Field(2, description="카메라 모듈 버전 (1 또는 2), 해상도 상한 결정에 사용")
    CAMERA_DRIVER: str = Field(
        "livestream.devices.synthetic_camera:SyntheticCamera",
        description="카메라 드라이버 import 경로 ('module:Class')",
    )
    LIFECYCLE_TIMEOUT_SECONDS: float = Field(
        10.0,
        ge=0.0,
        description="카메라 start/pause/resume/stop 콜백 대기 타임아웃 (초, 0이면 무제한)",
    )
    AUTO_START: bool = Field(False, description="애플리케이션 기동 시 스트림 자동 시작 여부")

    @computed_field(return_type=str)
    @property
    def public_host(self) -> str:
        """스트림 URL에 표시할 호스트를 반환합니다."""
        if self.PUBLIC_HOST:
            return self.PUBLIC_HOST
        if self.SERVER_HOST in ("0.0.0.0", "::", ""):
            return "localhost"
        return self.SERVER_HOST

    # pydantic-settings 설정
    model_config = SettingsConfigDict(env_file=env_path, env_file_encoding='utf-8')

settings = AppSettings()
