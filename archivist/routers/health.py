"""
Archivist - Health Router

- GET /health  liveness: 200 whenever the process is up, no auth
- GET /readyz  readiness: 200 only if the database answers SELECT 1
"""

import time

from fastapi import APIRouter
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from ..db import check_db_ready, get_pool_health

READINESS_DB_TIMEOUT = 2.0

router = APIRouter(tags=["Health"])


class HealthResponse(BaseModel):
    ok: bool
    ts: int


def _now_ms() -> int:
    return int(time.time() * 1000)


@router.get("/health", response_model=HealthResponse)
async def health() -> HealthResponse:
    return HealthResponse(ok=True, ts=_now_ms())


@router.get("/readyz")
async def readyz() -> JSONResponse:
    ready, detail = await check_db_ready(timeout=READINESS_DB_TIMEOUT)
    pool = get_pool_health()

    return JSONResponse(
        status_code=200 if ready else 503,
        content={
            "ok": ready,
            "ts": _now_ms(),
            "database": detail,
            "pool_initialized": pool.initialized,
            "init_attempts": pool.init_attempts,
        },
    )
