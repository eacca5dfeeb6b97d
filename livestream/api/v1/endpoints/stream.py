from fastapi import APIRouter, Depends, HTTPException, Response

from livestream.core.event_type import EventType
from livestream.dependencies import get_livestream_service
from livestream.schemas.stream import StreamConfig, StreamConfigUpdate, StreamStatusResponse
from livestream.services.livestream_service import LiveStreamService

router = APIRouter()


def _status_response(livestream: LiveStreamService) -> StreamStatusResponse:
    status = livestream.status
    return StreamStatusResponse(
        **status.model_dump(),
        url=livestream.url,
        clients=livestream.manager.client_count(),
        fps=livestream.store.events.get_fps(EventType.FRAME_RECEIVED.value),
        config=livestream.config,
        port=livestream.server.port,
        pathname=livestream.server.pathname,
        verbose_mode=livestream.verbose_mode,
    )


@router.get("/status", summary="Get livestream status", response_model=StreamStatusResponse)
def get_stream_status(livestream: LiveStreamService = Depends(get_livestream_service)):
    """라이프사이클 상태, 스트림 URL, 연결된 클라이언트 수, 현재 설정을 반환합니다."""
    return _status_response(livestream)


@router.post("/start", summary="Start the livestream")
async def start_stream(livestream: LiveStreamService = Depends(get_livestream_service)):
    """카메라를 시작하고 스트림 URL을 반환합니다. 정지된 스트림은 다시 시작할 수 없습니다 (409)."""
    url = await livestream.start()
    return {"url": url}


@router.post("/pause", summary="Pause the livestream", response_model=StreamStatusResponse)
async def pause_stream(livestream: LiveStreamService = Depends(get_livestream_service)):
    await livestream.pause()
    return _status_response(livestream)


@router.post("/resume", summary="Resume the livestream", response_model=StreamStatusResponse)
async def resume_stream(livestream: LiveStreamService = Depends(get_livestream_service)):
    await livestream.resume()
    return _status_response(livestream)


@router.post("/stop", summary="Stop the livestream", response_model=StreamStatusResponse)
async def stop_stream(livestream: LiveStreamService = Depends(get_livestream_service)):
    await livestream.stop()
    return _status_response(livestream)


@router.get("/config", summary="Get capture configuration", response_model=StreamConfig)
def get_stream_config(livestream: LiveStreamService = Depends(get_livestream_service)):
    return livestream.config


@router.patch("/config", summary="Update capture configuration", response_model=StreamConfig)
def update_stream_config(
    update: StreamConfigUpdate,
    livestream: LiveStreamService = Depends(get_livestream_service),
):
    """
    지정된 필드만 검증된 setter를 통해 적용합니다.
    실행 중인 카메라 세션에는 반영되지 않으며, 다음 세션부터 적용됩니다.
    """
    if update.width is not None:
        livestream.set_width(update.width, update.camera_version)
    if update.height is not None:
        livestream.set_height(update.height, update.camera_version)
    if update.fps is not None:
        livestream.set_fps(update.fps)
    if update.encoding is not None:
        livestream.set_encoding(update.encoding)
    if update.quality is not None:
        livestream.set_quality(update.quality)
    return livestream.config


@router.get("/encodings", summary="Get supported encoding types")
def get_supported_encodings(livestream: LiveStreamService = Depends(get_livestream_service)):
    return {"encodings": livestream.get_supported_encoding_types()}


@router.get("/snapshot", summary="Get a base64 snapshot of the last frame")
async def get_snapshot(livestream: LiveStreamService = Depends(get_livestream_service)):
    """마지막 프레임을 data URI 문자열로 반환합니다. 아직 프레임이 없으면 null입니다."""
    return {"snapshot": await livestream.get_snapshot()}


@router.get("/frame", summary="Get the last captured frame")
def get_last_frame(livestream: LiveStreamService = Depends(get_livestream_service)):
    """마지막 프레임 원본 바이트를 설정된 MIME 타입으로 반환합니다."""
    frame = livestream.get_last_frame()
    if frame is None:
        raise HTTPException(status_code=404, detail="No frame has been captured yet.")
    return Response(content=frame, media_type=livestream.mime_type)
