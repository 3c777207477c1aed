from contextlib import asynccontextmanager

from fastapi import FastAPI

from vps_monitor.api import health, monitor, status
from vps_monitor.runtime import get_runtime


@asynccontextmanager
async def lifespan(_app: FastAPI):
    yield
    # Only tear down a runtime that was actually created
    if get_runtime.cache_info().currsize:
        get_runtime().shutdown()


app = FastAPI(title="VPS Monitor", lifespan=lifespan)

app.include_router(health.router, prefix="/health", tags=["health"])
app.include_router(status.router, prefix="/status", tags=["status"])
app.include_router(monitor.router, prefix="/monitor", tags=["monitor"])
