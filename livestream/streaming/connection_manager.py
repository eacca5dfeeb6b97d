import asyncio
import itertools
from typing import Dict, Optional

from livestream.core.event_bus import EventBus
from livestream.core.event_type import EventType
from livestream.core.logging import logger
from livestream.schemas.events import FrameReceivedPayload

DEFAULT_MAX_PENDING_FRAMES = 256

class ClientSubscription:
    """
    HTTP 클라이언트 연결 하나에 대한 프레임 구독입니다.

    연결이 열리면 FRAME_RECEIVED를 구독하고, 연결 종료/전송 실패/스트림 정지 시
    close()로 구독을 해제합니다. 프레임은 발행된 순서대로 모두 전달되며 건너뛰지 않습니다.
    전송 대기 프레임이 max_pending_frames를 넘으면 해당 클라이언트의 연결만 닫습니다.
    """
    def __init__(self, client_id: int, client: str, event_bus: EventBus, max_pending_frames: int = DEFAULT_MAX_PENDING_FRAMES):
        self.client_id = client_id
        self.client = client
        self.event_bus = event_bus
        self.max_pending_frames = max_pending_frames
        self.frames_sent = 0
        self.overflowed = False
        self._pending: asyncio.Queue[Optional[bytes]] = asyncio.Queue()
        self._subscribed = False
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def pending_frames(self) -> int:
        return self._pending.qsize()

    async def open(self):
        await self.event_bus.subscribe(EventType.FRAME_RECEIVED.value, self.handle_frame)
        self._subscribed = True

    async def close(self):
        """구독을 해제하고 대기 중인 이터레이터를 깨웁니다. 여러 번 호출해도 안전합니다."""
        if self._closed:
            return
        self._closed = True
        if self._subscribed:
            await self.event_bus.unsubscribe(EventType.FRAME_RECEIVED.value, self.handle_frame)
            self._subscribed = False
        self._pending.put_nowait(None)

    async def handle_frame(self, event_name: str, payload: FrameReceivedPayload):
        if self._closed:
            return
        if self._pending.qsize() >= self.max_pending_frames:
            self.overflowed = True
            logger.warning(
                f"Client {self.client} is {self.max_pending_frames} frames behind the camera, closing its stream."
            )
            await self.close()
            return
        self._pending.put_nowait(payload.frame_data)

    def __aiter__(self):
        return self

    async def __anext__(self) -> bytes:
        if self._closed:
            raise StopAsyncIteration
        frame = await self._pending.get()
        if frame is None or self._closed:
            raise StopAsyncIteration
        return frame


class ConnectionManager:
    """
    스트림 클라이언트 연결(ClientSubscription)을 중앙에서 관리하는 클래스입니다.
    - 연결마다 독립된 구독과 전송 큐를 생성하므로, 느린 클라이언트가 다른 클라이언트에 영향을 주지 않습니다.
    - 스트림이 정지되면 모든 구독을 닫아 열린 응답들이 종료되도록 합니다.
    """
    def __init__(self, event_bus: EventBus, max_pending_frames: int = DEFAULT_MAX_PENDING_FRAMES):
        self.event_bus = event_bus
        self.max_pending_frames = max_pending_frames
        self.subscriptions: Dict[int, ClientSubscription] = {}
        self._ids = itertools.count(1)
        self._lock = asyncio.Lock()

    async def connect(self, client: str) -> ClientSubscription:
        """새 클라이언트 구독을 생성하고 프레임 이벤트에 연결합니다."""
        subscription = ClientSubscription(next(self._ids), client, self.event_bus, self.max_pending_frames)
        await subscription.open()
        async with self._lock:
            self.subscriptions[subscription.client_id] = subscription
            total = len(self.subscriptions)
        logger.debug(f"Client {client} subscribed to the stream. Total clients: {total}")
        return subscription

    async def disconnect(self, subscription: ClientSubscription):
        await subscription.close()
        async with self._lock:
            removed = self.subscriptions.pop(subscription.client_id, None)
        if removed is not None:
            logger.debug(f"Client {subscription.client} unsubscribed after {subscription.frames_sent} frames.")

    async def close_all(self):
        async with self._lock:
            subscriptions = list(self.subscriptions.values())
            self.subscriptions.clear()
        for subscription in subscriptions:
            await subscription.close()
        if subscriptions:
            logger.debug(f"Closed {len(subscriptions)} client subscription(s).")

    def client_count(self) -> int:
        return len(self.subscriptions)
