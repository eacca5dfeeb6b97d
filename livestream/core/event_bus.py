import asyncio
import time
from typing import Any, Dict, List, Callable, Awaitable, Optional

from collections import defaultdict
from loguru import logger

from typing import TYPE_CHECKING
if TYPE_CHECKING:
    from livestream.stores.handlers.event_handler import EventHandler

EventCallback = Callable[[str, Any], Awaitable[None]]

class EventBus:
    """
    프로세스 전체에서 사용하는 비동기 이벤트 버스입니다.

    카메라 프레임 하나가 FRAME_RECEIVED로 발행되면, 구독 중인 모든 클라이언트 콜백이
    동시에(gather) 실행됩니다. 각 콜백은 _execute_callback 안에서 격리되므로
    하나의 콜백이 실패해도 다른 구독자에게는 영향을 주지 않습니다.
    """
    def __init__(self, event_handler: Optional['EventHandler'] = None):
        self._subscribers: Dict[str, List[EventCallback]] = defaultdict(list)
        self._lock = asyncio.Lock()
        self._event_handler = event_handler
        self._metrics = {
            "total_events_published": 0,
            "total_callbacks_executed": 0,
            "total_errors": 0,
            "start_time": time.time()
        }

    def set_event_handler(self, event_handler: 'EventHandler'):
        """발행 시각/FPS 기록에 사용할 EventHandler를 주입합니다."""
        self._event_handler = event_handler

    async def subscribe(self, event_name: str, callback: EventCallback):
        if not asyncio.iscoroutinefunction(callback):
            raise ValueError(f"Callback must be an async function: {callback}")

        async with self._lock:
            self._subscribers[event_name].append(callback)
            logger.debug(f"Subscriber added to '{event_name}'. Total subscribers: {len(self._subscribers[event_name])}")

    async def unsubscribe(self, event_name: str, callback: EventCallback):
        async with self._lock:
            if event_name in self._subscribers:
                try:
                    self._subscribers[event_name].remove(callback)
                    logger.debug(f"Subscriber removed from '{event_name}'. Remaining: {len(self._subscribers[event_name])}")
                except ValueError:
                    logger.warning(f"Unsubscribe failed: callback is not subscribed to '{event_name}'")

    def subscriber_count(self, event_name: str) -> int:
        return len(self._subscribers.get(event_name, []))

    async def publish(self, event_name: str, data: Any = None):
        """
        이벤트를 발행하고, EventHandler에 타임스탬프를 기록합니다.
        구독자 목록은 락 안에서 복사한 뒤 락 밖에서 실행합니다.
        """
        if self._event_handler:
            self._event_handler.record(event_name)

        async with self._lock:
            subscribers = list(self._subscribers.get(event_name, []))

        self._metrics["total_events_published"] += 1
        if not subscribers:
            logger.trace(f"No subscribers for event '{event_name}'")
            return

        tasks = [self._execute_callback(callback, event_name, data) for callback in subscribers]
        await asyncio.gather(*tasks)

    async def _execute_callback(self, callback: EventCallback, event_name: str, data: Any):
        try:
            await callback(event_name, data)
            self._metrics["total_callbacks_executed"] += 1
        except Exception as e:
            logger.opt(exception=e).error(f"Callback failed while handling '{event_name}': {e}")
            self._metrics["total_errors"] += 1

    def get_metrics(self) -> Dict[str, Any]:
        metrics = dict(self._metrics)
        metrics["uptime_seconds"] = round(time.time() - metrics.pop("start_time"), 1)
        metrics["subscribers"] = {name: len(callbacks) for name, callbacks in self._subscribers.items()}
        return metrics
