"""
스트림 서버에서 사용하는 예외 계층입니다.

- ValidationError: 잘못된 설정값. setter에서 즉시(동기적으로) 발생하며 상태를 바꾸지 않습니다.
- LifecycleError: 현재 상태에서 허용되지 않는 라이프사이클 호출.
- CameraError: 카메라 드라이버 실패 (예외, 콜백 에러, 타임아웃).
- WriteError: 단일 클라이언트 연결에 대한 프레임 전송 실패. 해당 연결 밖으로 전파되지 않습니다.
"""


class LiveStreamError(Exception):
    """Base class for all livestream errors."""


class ValidationError(LiveStreamError, ValueError):
    pass


class LifecycleError(LiveStreamError, RuntimeError):
    pass


class CameraError(LiveStreamError):
    pass


class WriteError(LiveStreamError):
    def __init__(self, client: str, cause: BaseException):
        super().__init__(f"Sending a frame to client {client} failed: {cause}")
        self.client = client
        self.cause = cause
