from enum import Enum

class EventType(Enum):
    """
    애플리케이션 전체에서 사용되는 이벤트 타입들입니다.
    """

    # 카메라에서 인코딩된 프레임 수신. 모든 클라이언트 구독이 이 이벤트를 받습니다.
    FRAME_RECEIVED         = "FRAME_RECEIVED"

    # 스트림 라이프사이클 상태 변경 (started/paused/stopped)
    STREAM_STATE_CHANGED   = "STREAM_STATE_CHANGED"
