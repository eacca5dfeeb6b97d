import asyncio

import pytest

from livestream.core.event_type import EventType
from livestream.core.exceptions import LifecycleError
from livestream.schemas.events import FrameReceivedPayload
from livestream.streaming.multipart import MULTIPART_MEDIA_TYPE, build_part

from conftest import wait_until


class StreamClient:
    """ASGI 수준에서 스트림 응답을 받는 가짜 HTTP 클라이언트입니다."""
    def __init__(self, fail_on_body: bool = False):
        self.messages = []
        self.fail_on_body = fail_on_body
        self._disconnected = asyncio.Event()

    async def receive(self):
        await self._disconnected.wait()
        return {"type": "http.disconnect"}

    async def send(self, message):
        if self.fail_on_body and message["type"] == "http.response.body":
            raise ConnectionResetError("connection reset by peer")
        self.messages.append(message)

    def disconnect(self):
        self._disconnected.set()

    @property
    def headers(self):
        start = self.messages[0]
        return {key.decode(): value.decode() for key, value in start["headers"]}

    @property
    def parts(self):
        return [m["body"] for m in self.messages if m["type"] == "http.response.body" and m["body"]]


def http_scope(path: str = "/live.stream"):
    return {
        "type": "http",
        "asgi": {"version": "3.0"},
        "http_version": "1.1",
        "method": "GET",
        "scheme": "http",
        "path": path,
        "raw_path": path.encode(),
        "query_string": b"",
        "root_path": "",
        "headers": [],
        "client": ("10.0.0.2", 50000),
        "server": ("testserver", 80),
    }


async def connect(service, client: StreamClient, name: str) -> asyncio.Task:
    response = await service.open_stream(name)
    return asyncio.create_task(response({"type": "http"}, client.receive, client.send))


@pytest.mark.asyncio
async def test_every_client_receives_each_frame(service, camera):
    await service.start()
    first, second = StreamClient(), StreamClient()
    tasks = [await connect(service, first, "a"), await connect(service, second, "b")]
    await wait_until(lambda: len(first.messages) == 1 and len(second.messages) == 1)

    assert first.messages[0]["status"] == 200
    assert first.headers["content-type"] == MULTIPART_MEDIA_TYPE
    assert first.headers["cache-control"].startswith("no-store, no-cache")
    assert first.headers["pragma"] == "no-cache"
    assert first.headers["connection"] == "close"

    camera.emit(b"frame-1")
    await wait_until(lambda: len(first.parts) == 1 and len(second.parts) == 1)
    expected = build_part(b"frame-1", "image/jpeg")
    assert first.parts == [expected]
    assert second.parts == [expected]
    assert expected.startswith(b"--livestream\nContent-Type: image/jpeg\nContent-length: 7\n\n")

    await service.stop()
    await asyncio.wait_for(asyncio.gather(*tasks), 1.0)


@pytest.mark.asyncio
async def test_disconnected_client_stops_receiving(service, camera):
    await service.start()
    leaving, staying = StreamClient(), StreamClient()
    leaving_task = await connect(service, leaving, "leaving")
    staying_task = await connect(service, staying, "staying")
    assert service.manager.client_count() == 2

    leaving.disconnect()
    await asyncio.wait_for(leaving_task, 1.0)
    assert service.manager.client_count() == 1
    assert service.event_bus.subscriber_count(EventType.FRAME_RECEIVED.value) == 1

    camera.emit(b"after-disconnect")
    await wait_until(lambda: len(staying.parts) == 1)
    assert leaving.parts == []
    assert service.get_last_frame() == b"after-disconnect"

    await service.stop()
    await asyncio.wait_for(staying_task, 1.0)


@pytest.mark.asyncio
async def test_write_failure_is_contained_to_one_client(service, camera):
    service.set_verbose_mode(True)
    await service.start()
    broken, healthy = StreamClient(fail_on_body=True), StreamClient()
    broken_task = await connect(service, broken, "broken")
    healthy_task = await connect(service, healthy, "healthy")

    camera.emit(b"frame-1")
    await asyncio.wait_for(broken_task, 1.0)
    assert broken_task.exception() is None
    await wait_until(lambda: len(healthy.parts) == 1)
    assert service.manager.client_count() == 1

    camera.emit(b"frame-2")
    await wait_until(lambda: len(healthy.parts) == 2)
    assert healthy.parts[1] == build_part(b"frame-2", "image/jpeg")

    await service.stop()
    await asyncio.wait_for(healthy_task, 1.0)


@pytest.mark.asyncio
async def test_stop_ends_open_streams(service, camera):
    await service.start()
    client = StreamClient()
    task = await connect(service, client, "viewer")
    camera.emit(b"frame-1")
    await wait_until(lambda: len(client.parts) == 1)

    await service.stop()
    await asyncio.wait_for(task, 1.0)
    assert client.messages[-1] == {"type": "http.response.body", "body": b"", "more_body": False}
    assert service.manager.client_count() == 0
    assert service.event_bus.subscriber_count(EventType.FRAME_RECEIVED.value) == 0


@pytest.mark.asyncio
async def test_parts_follow_current_encoding(service, camera):
    service.set_encoding("bmp")
    await service.start()
    client = StreamClient()
    task = await connect(service, client, "viewer")
    camera.emit(b"BM")
    await wait_until(lambda: len(client.parts) == 1)
    assert client.parts[0] == build_part(b"BM", "image/bmp")

    await service.stop()
    await asyncio.wait_for(task, 1.0)


@pytest.mark.asyncio
async def test_burst_of_frames_reaches_every_client_in_order(service, camera):
    await service.start()
    first, second = StreamClient(), StreamClient()
    tasks = [await connect(service, first, "a"), await connect(service, second, "b")]

    frames = [f"frame-{index}".encode() for index in range(5)]
    for frame in frames:
        camera.emit(frame)
    await wait_until(lambda: len(first.parts) == 5 and len(second.parts) == 5)

    expected = [build_part(frame, "image/jpeg") for frame in frames]
    assert first.parts == expected
    assert second.parts == expected

    await service.stop()
    await asyncio.wait_for(asyncio.gather(*tasks), 1.0)


@pytest.mark.asyncio
async def test_subscription_queues_frames_until_sent(service):
    subscription = await service.manager.connect("viewer")
    for sequence in range(3):
        payload = FrameReceivedPayload(timestamp=0.0, frame_data=f"frame-{sequence}".encode(), sequence=sequence)
        await subscription.handle_frame(EventType.FRAME_RECEIVED.value, payload)

    assert subscription.pending_frames == 3
    assert [await subscription.__anext__() for _ in range(3)] == [b"frame-0", b"frame-1", b"frame-2"]
    await service.manager.disconnect(subscription)
    with pytest.raises(StopAsyncIteration):
        await subscription.__anext__()


@pytest.mark.asyncio
async def test_client_too_far_behind_is_disconnected(service):
    service.manager.max_pending_frames = 2
    lagging = await service.manager.connect("lagging")
    for sequence in range(3):
        payload = FrameReceivedPayload(timestamp=0.0, frame_data=b"frame", sequence=sequence)
        await lagging.handle_frame(EventType.FRAME_RECEIVED.value, payload)

    assert lagging.overflowed
    assert lagging.closed
    assert service.event_bus.subscriber_count(EventType.FRAME_RECEIVED.value) == 0
    with pytest.raises(StopAsyncIteration):
        await lagging.__anext__()
    await service.manager.disconnect(lagging)
    assert service.manager.client_count() == 0


@pytest.mark.asyncio
async def test_clients_are_refused_after_stop(service):
    with pytest.raises(LifecycleError):
        await service.open_stream("early")

    await service.start()
    await service.stop()
    with pytest.raises(LifecycleError, match="stopped"):
        await service.open_stream("late")
    assert service.manager.client_count() == 0
    assert service.event_bus.subscriber_count(EventType.FRAME_RECEIVED.value) == 0


@pytest.mark.asyncio
async def test_stream_route_served_by_registered_app(service, camera):
    await service.start()
    client = StreamClient()
    task = asyncio.create_task(service.server.app(http_scope(), client.receive, client.send))
    await wait_until(lambda: service.manager.client_count() == 1)

    camera.emit(b"frame-1")
    await wait_until(lambda: len(client.parts) == 1)
    assert client.headers["content-type"] == MULTIPART_MEDIA_TYPE

    client.disconnect()
    await asyncio.wait_for(task, 1.0)
    assert service.manager.client_count() == 0
    await service.stop()
