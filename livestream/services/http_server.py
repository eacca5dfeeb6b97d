import asyncio
import socket
from typing import Optional

import uvicorn
from fastapi import FastAPI

from livestream.core.logging import logger

class EmbeddedServer:
    """
    외부 웹서버가 등록되지 않았을 때 LiveStreamService가 직접 생성하고 소유하는 웹서버입니다.
    FastAPI 앱을 uvicorn으로 현재 이벤트 루프 위에서 실행합니다.
    """
    def __init__(self, host: str, port: int, startup_timeout: float = 5.0):
        self.host = host
        self.port = port
        self.startup_timeout = startup_timeout
        self.app = FastAPI(title="Camera Livestream")
        self._server: Optional[uvicorn.Server] = None
        self._task: Optional[asyncio.Task] = None
        self._socket: Optional[socket.socket] = None

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> int:
        """소켓을 바인딩하고 서버가 요청을 받을 준비가 될 때까지 기다립니다. 실제 포트를 반환합니다."""
        # uvicorn은 바인딩 실패 시 프로세스를 종료하므로 소켓은 직접 바인딩합니다.
        family = socket.AF_INET6 if ":" in self.host else socket.AF_INET
        sock = socket.socket(family, socket.SOCK_STREAM)
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        try:
            sock.bind((self.host, self.port))
        except OSError:
            sock.close()
            raise
        sock.set_inheritable(True)
        self._socket = sock
        self.port = sock.getsockname()[1]

        config = uvicorn.Config(self.app, log_config=None, lifespan="off", timeout_graceful_shutdown=5)
        self._server = uvicorn.Server(config)
        self._task = asyncio.create_task(self._server.serve(sockets=[sock]))

        deadline = asyncio.get_running_loop().time() + self.startup_timeout
        while not self._server.started:
            if self._task.done():
                error = None if self._task.cancelled() else self._task.exception()
                await self._cleanup()
                raise RuntimeError(f"Webserver on port {self.port} exited during startup") from error
            if asyncio.get_running_loop().time() > deadline:
                await self.shutdown()
                raise RuntimeError(f"Webserver on port {self.port} did not start within {self.startup_timeout:.1f}s")
            await asyncio.sleep(0.05)

        logger.debug(f"Embedded webserver listening on {self.host}:{self.port}")
        return self.port

    async def shutdown(self):
        if self._server is not None:
            self._server.should_exit = True
        if self._task is not None:
            try:
                await self._task
            except Exception as e:
                logger.warning(f"Embedded webserver exited with error: {e}")
        await self._cleanup()

    async def _cleanup(self):
        if self._socket is not None:
            self._socket.close()
        self._socket = None
        self._server = None
        self._task = None
