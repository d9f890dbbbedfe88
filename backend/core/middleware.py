import logging
import time
from fastapi import FastAPI, Request

logger = logging.getLogger(__name__)

QUIET_PATHS = {"/api/health", "/api/v1/families/health"}
SLOW_REQUEST_MS = 1000.0


def install_middleware(app: FastAPI):
    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        t0 = time.perf_counter()
        resp = await call_next(request)
        elapsed_ms = (time.perf_counter() - t0) * 1000
        if request.url.path in QUIET_PATHS:
            return resp
        line = f"{request.method} {request.url.path} -> {resp.status_code} ({elapsed_ms:.1f}ms)"
        if elapsed_ms >= SLOW_REQUEST_MS:
            logger.warning(f"🐢 Slow request: {line}")
        else:
            logger.info(line)
        return resp
