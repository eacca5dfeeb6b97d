from fastapi import APIRouter, Depends

from livestream.core.event_bus import EventBus
from livestream.stores.application_store import ApplicationStore
from livestream.dependencies import get_event_bus, get_store

router = APIRouter()

@router.get("/status", summary="Get the combined status of all stores")
def get_store_status(store: ApplicationStore = Depends(get_store)):
    """
    마지막 프레임 정보와 이벤트 발행 통계를 한 번에 조회합니다.
    """
    return store.get_status()

@router.get("/events/fps", summary="Get FPS for all events")
def get_event_fps(store: ApplicationStore = Depends(get_store)):
    """
    모든 이벤트의 현재 FPS(초당 발행 횟수)를 반환합니다.
    FRAME_RECEIVED의 FPS가 실제 카메라 프레임 속도입니다.
    """
    return {name: status["fps"] for name, status in store.events.get_status().items()}

@router.get("/events/bus", summary="Get event bus metrics")
def get_event_bus_metrics(event_bus: EventBus = Depends(get_event_bus)):
    return event_bus.get_metrics()
