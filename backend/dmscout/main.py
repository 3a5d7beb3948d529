from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from dmscout.api.realtime import router as realtime_router
from dmscout.api.v1.dependencies import shutdown_workers
from dmscout.api.v1.router import router as v1_router
from dmscout.core.config import get_settings
from dmscout.core.logging import configure_logging
from dmscout.infra.db.session import init_db

settings = get_settings()
configure_logging(logging.INFO)
init_db()


@asynccontextmanager
async def lifespan(_app: FastAPI):
    yield
    shutdown_workers()


app = FastAPI(title=settings.app_name, version="1.0.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(v1_router)
app.include_router(realtime_router)


@app.get("/healthz", tags=["health"])
def healthz() -> dict[str, str]:
    return {"ok": "true"}
