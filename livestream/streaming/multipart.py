import asyncio
from typing import Callable

from starlette.responses import StreamingResponse
from starlette.types import Receive, Scope, Send

from livestream.core.exceptions import WriteError
from livestream.core.logging import logger
from livestream.streaming.connection_manager import ClientSubscription, ConnectionManager

BOUNDARY = "--livestream"
MULTIPART_MEDIA_TYPE = f"multipart/x-mixed-replace; boundary={BOUNDARY}"
NO_CACHE_HEADERS = {
    "Cache-Control": "no-store, no-cache, must-revalidate, pre-check=0, post-check=0, max-age=0",
    "Pragma": "no-cache",
    "Connection": "close",
}


def build_part(frame: bytes, mime_type: str) -> bytes:
    """프레임 하나를 multipart 파트(헤더 + 원본 바이트)로 만듭니다."""
    header = f"{BOUNDARY}\nContent-Type: {mime_type}\nContent-length: {len(frame)}\n\n"
    return header.encode("ascii") + frame


class MultipartStreamResponse(StreamingResponse):
    """
    ClientSubscription 하나를 multipart/x-mixed-replace 응답으로 내보냅니다.

    전송(send) 실패는 WriteError로 감싸 이 연결 안에서만 처리하고, 클라이언트
    연결 종료(http.disconnect)를 감지하면 전송 루프를 취소합니다. 어떤 경로로
    끝나든 구독은 ConnectionManager에서 해제됩니다.
    """
    def __init__(
        self,
        subscription: ClientSubscription,
        manager: ConnectionManager,
        mime_type: Callable[[], str],
        verbose: bool = False,
    ):
        super().__init__(subscription, status_code=200, headers=NO_CACHE_HEADERS, media_type=MULTIPART_MEDIA_TYPE)
        self.subscription = subscription
        self.manager = manager
        self.mime_type = mime_type
        self.verbose = verbose

    async def stream_response(self, send: Send) -> None:
        await send({"type": "http.response.start", "status": self.status_code, "headers": self.raw_headers})
        try:
            async for frame in self.subscription:
                part = build_part(frame, self.mime_type())
                try:
                    await send({"type": "http.response.body", "body": part, "more_body": True})
                except Exception as e:
                    raise WriteError(self.subscription.client, e) from e
                self.subscription.frames_sent += 1
            await send({"type": "http.response.body", "body": b"", "more_body": False})
        except WriteError as e:
            if self.verbose:
                logger.warning(str(e))

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        streaming = asyncio.create_task(self.stream_response(send))
        watching = asyncio.create_task(self.listen_for_disconnect(receive))
        try:
            done, _ = await asyncio.wait({streaming, watching}, return_when=asyncio.FIRST_COMPLETED)
            if watching in done and self.verbose:
                logger.info(f"[+] Client {self.subscription.client} closed the connection to host")
        finally:
            for task in (streaming, watching):
                task.cancel()
            await asyncio.gather(streaming, watching, return_exceptions=True)
            await self.manager.disconnect(self.subscription)

        if streaming in done and not streaming.cancelled():
            streaming.result()
        if self.background is not None:
            await self.background()
