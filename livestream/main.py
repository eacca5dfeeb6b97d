from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, HTMLResponse
from fastapi.templating import Jinja2Templates
from contextlib import asynccontextmanager
from pathlib import Path
import traceback

from livestream.api.v1.router import api_router
from livestream.core.config import settings
from livestream.core.exceptions import CameraError, LifecycleError, ValidationError
from livestream.dependencies import get_livestream_service
from livestream.core.logging import logger
from livestream.schemas.stream import StreamState

templates = Jinja2Templates(directory=str(Path(__file__).parent / "static" / "templates"))

@asynccontextmanager
async def lifespan(app: FastAPI):
    livestream = get_livestream_service()

    if settings.AUTO_START:
        logger.info("Application startup: starting livestream...")
        url = await livestream.start()
        logger.info(f"Livestream available at {url}")

    yield

    logger.info("Application shutdown: stopping livestream...")
    if livestream.state in (StreamState.STARTED, StreamState.PAUSED):
        await livestream.stop()


app = FastAPI(title="Camera Livestream Server", lifespan=lifespan)

@app.exception_handler(ValidationError)
async def validation_exception_handler(request: Request, exc: ValidationError):
    return JSONResponse(status_code=422, content={"detail": str(exc)})

@app.exception_handler(LifecycleError)
async def lifecycle_exception_handler(request: Request, exc: LifecycleError):
    return JSONResponse(status_code=409, content={"detail": str(exc)})

@app.exception_handler(CameraError)
async def camera_exception_handler(request: Request, exc: CameraError):
    logger.error(f"Camera error for request {request.method} {request.url}: {exc}")
    return JSONResponse(status_code=502, content={"detail": str(exc)})

@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    error_details = traceback.format_exc()
    logger.error(f"Unhandled exception for request {request.method} {request.url}:\n{error_details}")
    return JSONResponse(status_code=500, content={"detail": "An internal server error occurred."})

# HTTP API 라우터 등록
app.include_router(api_router, prefix="/api")

# 스트림 라우트는 start() 시점에 LiveStreamService가 이 앱에 등록합니다.
get_livestream_service().register(app, settings.SERVER_PORT)


@app.get("/", response_class=HTMLResponse, summary="Livestream dashboard")
def read_root(request: Request):
    """Renders the dashboard with the embedded stream and lifecycle controls."""
    livestream = get_livestream_service()
    return templates.TemplateResponse(request, "dashboard.html", {
        "pathname": livestream.server.pathname,
        "encodings": livestream.get_supported_encoding_types().split(","),
    })
