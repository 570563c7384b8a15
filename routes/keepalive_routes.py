from __future__ import annotations

import logging

from fastapi import APIRouter, FastAPI
from fastapi.responses import PlainTextResponse

from config import APP_NAME, APP_VERSION

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/", response_class=PlainTextResponse)
def root() -> str:
    return "Server is running\n"


@router.get("/api/ping")
def ping() -> dict:
    return {"ok": True, "app": APP_NAME, "version": APP_VERSION}


def register_keepalive_routes(app: FastAPI) -> None:
    app.include_router(router)
