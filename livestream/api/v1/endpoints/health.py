from fastapi import APIRouter, Depends

from livestream.dependencies import get_livestream_service
from livestream.services.livestream_service import LiveStreamService

router = APIRouter()

@router.get("/", summary="Health check with livestream state")
def health_check(livestream: LiveStreamService = Depends(get_livestream_service)):
    """
    서버 생존 여부와 함께 현재 스트림 상태(idle/started/paused/stopped)를 반환합니다.
    """
    return {"status": "ok", "stream": livestream.state.value}
