import asyncio
import logging
import time

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from groovebox.api.storage import router as storage_router
from groovebox.api.v1.router import router as v1_router
from groovebox.api.v1.ws_rooms import _cleanup_idle_rooms, event_router
from groovebox.core import settings
from groovebox.runtime.registry import registry
from groovebox.schemas.health import HealthOut, ServiceInfoOut

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger("groovebox")

_STARTED_AT = time.monotonic()

app = FastAPI(title=settings.SERVICE_NAME, version=settings.SERVICE_VERSION)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_methods=["GET", "HEAD", "POST", "DELETE"],
    allow_headers=["*"],
)
app.include_router(v1_router, prefix="/v1")
app.include_router(storage_router)


@app.get("/", response_model=ServiceInfoOut)
async def root() -> ServiceInfoOut:
    return ServiceInfoOut(service=settings.SERVICE_NAME, version=settings.SERVICE_VERSION, status="running")


@app.get("/health", response_model=HealthOut)
async def health() -> HealthOut:
    return HealthOut(
        status="ok",
        rooms=len(registry),
        users=len(event_router.sessions),
        uptime=time.monotonic() - _STARTED_AT,
    )


@app.on_event("startup")
async def startup_event():
    """Start background cleanup task for idle rooms."""
    if settings.ROOM_IDLE_TTL_SECONDS > 0:
        app.state.cleanup_task = asyncio.create_task(_cleanup_idle_rooms())
    logger.info("%s ready", settings.SERVICE_NAME)


@app.on_event("shutdown")
async def shutdown_event():
    task = getattr(app.state, "cleanup_task", None)
    if task is not None:
        task.cancel()
    logger.info("%s stopped", settings.SERVICE_NAME)
