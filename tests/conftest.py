import asyncio
from typing import Any, Dict, List, Optional

import pytest
from fastapi import FastAPI

from livestream.core.event_bus import EventBus
from livestream.services.camera_service import CameraService
from livestream.services.livestream_service import LiveStreamService
from livestream.stores.application_store import ApplicationStore
from livestream.streaming.connection_manager import ConnectionManager


class FakeCamera:
    """
    Scripted camera driver. Every operation completes immediately unless it is
    listed in `hang_on` (callback kept in `pending`), `fail_on` (callback gets
    the error) or `raise_on` (the call itself raises).
    """
    def __init__(self):
        self.calls: List[str] = []
        self.options: Optional[Dict[str, Any]] = None
        self.listeners: List = []
        self.pending: Dict[str, Any] = {}
        self.hang_on: set = set()
        self.fail_on: Dict[str, BaseException] = {}
        self.raise_on: Dict[str, BaseException] = {}
        self.repeat_callbacks = False

    def add_frame_listener(self, listener):
        self.listeners.append(listener)

    def remove_frame_listener(self, listener):
        if listener in self.listeners:
            self.listeners.remove(listener)

    def start(self, options, callback):
        self.options = options
        self._handle("start", callback)

    def pause(self, callback):
        self._handle("pause", callback)

    def resume(self, callback):
        self._handle("resume", callback)

    def stop(self, callback):
        self._handle("stop", callback)

    def _handle(self, operation, callback):
        self.calls.append(operation)
        if operation in self.raise_on:
            raise self.raise_on[operation]
        if operation in self.hang_on:
            self.pending[operation] = callback
            return
        callback(self.fail_on.get(operation))
        if self.repeat_callbacks:
            callback(None)

    def emit(self, frame: bytes):
        for listener in list(self.listeners):
            listener(frame)


def make_service(
    camera: FakeCamera,
    owned: bool = False,
    timeout: Optional[float] = None,
    **kwargs,
) -> LiveStreamService:
    store = ApplicationStore()
    event_bus = EventBus(event_handler=store.events)
    manager = ConnectionManager(event_bus=event_bus)
    camera_service = CameraService(store, event_bus, camera_factory=lambda: camera, timeout_seconds=timeout)
    service = LiveStreamService(store, event_bus, manager, camera_service, **kwargs)
    if not owned:
        service.register(FastAPI())
    return service


async def wait_until(predicate, timeout: float = 2.0):
    deadline = asyncio.get_running_loop().time() + timeout
    while not predicate():
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError("condition was not met in time")
        await asyncio.sleep(0.01)


@pytest.fixture
def camera() -> FakeCamera:
    return FakeCamera()


@pytest.fixture
def service(camera) -> LiveStreamService:
    return make_service(camera)
