from fastapi import APIRouter
from livestream.api.v1.endpoints import health, store, stream

api_router = APIRouter()

# --- HTTP API Endpoints ---
api_router.include_router(health.router, tags=["Health"])
api_router.include_router(stream.router, prefix="/stream", tags=["Stream"])
api_router.include_router(store.router, prefix="/store", tags=["Store"])
