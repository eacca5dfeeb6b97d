"""
스트림 설정/상태를 위한 모델을 정의합니다.
Pydantic의 BaseModel을 사용하여 API 응답으로 그대로 직렬화할 수 있습니다.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field, computed_field


class EncodingType(str, Enum):
    """카메라 인코더가 지원하는 이미지 인코딩 (JPEG만 하드웨어 가속)."""
    JPEG = "JPEG"
    GIF = "GIF"
    PNG = "PNG"
    PPM = "PPM"
    TGA = "TGA"
    BMP = "BMP"


SUPPORTED_ENCODING_TYPES = tuple(encoding.value for encoding in EncodingType)

# 카메라 버전별 해상도 범위: (min, max)
WIDTH_BOUNDS = {1: (32, 2592), 2: (32, 3280)}
HEIGHT_BOUNDS = {1: (16, 1944), 2: (16, 2464)}
FPS_BOUNDS = (1, 90)
QUALITY_BOUNDS = (1, 100)


class StreamConfig(BaseModel):
    width: int = 1280
    height: int = 720
    fps: int = 16
    encoding: EncodingType = EncodingType.JPEG
    quality: int = 25

    @computed_field(return_type=str)
    @property
    def mime_type(self) -> str:
        return f"image/{self.encoding.value.lower()}"

    def to_camera_options(self) -> dict:
        """카메라 드라이버의 start()에 전달할 옵션 딕셔너리."""
        return {
            "width": self.width,
            "height": self.height,
            "fps": self.fps,
            "encoding": self.encoding.value,
            "quality": self.quality,
        }


class StreamConfigUpdate(BaseModel):
    """PATCH /stream/config 요청 본문. 지정된 필드만 setter를 통해 적용됩니다."""
    width: Optional[int] = None
    height: Optional[int] = None
    fps: Optional[int] = None
    encoding: Optional[str] = None
    quality: Optional[int] = None
    camera_version: int = Field(2, description="width/height 검증에 사용할 카메라 모듈 버전")


@dataclass
class ServerBinding:
    """
    스트림 라우트를 등록할 웹서버 정보.
    app이 외부에서 등록된 경우 소유권은 호출자에게 있으며, 컨트롤러는 이를 닫지 않습니다.
    """
    app: Optional[Any] = None
    host: str = "0.0.0.0"
    port: int = 8000
    pathname: str = "/live.stream"


class StreamState(str, Enum):
    IDLE = "idle"
    STARTED = "started"
    PAUSED = "paused"
    STOPPED = "stopped"


class StreamStatus(BaseModel):
    state: StreamState
    started: bool
    paused: bool
    stopped: bool

    @classmethod
    def from_state(cls, state: StreamState) -> "StreamStatus":
        return cls(
            state=state,
            started=state in (StreamState.STARTED, StreamState.PAUSED),
            paused=state == StreamState.PAUSED,
            stopped=state == StreamState.STOPPED,
        )


class StreamStatusResponse(StreamStatus):
    url: Optional[str] = None
    clients: int = 0
    fps: float = Field(0.0, description="카메라에서 실제로 수신 중인 초당 프레임 수")
    config: StreamConfig
    port: int
    pathname: str
    verbose_mode: bool
