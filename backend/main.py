# ---------------------------------------------------------------------------
# Author  : Kyle <kyle@hacking-linux.com>
# Version : 20261016v1
# ---------------------------------------------------------------------------
"""
FastAPI application factory.

Responsibilities
----------------
* Instantiate the FastAPI app.
* Register CORS middleware (origins from ``CORS_ORIGINS``).
* Render every DomainError as ``{"kind": ..., "message": ...}`` with its
  HTTP status, so clients can branch on the kind instead of the text.
* Mount the feature routers (auth, admin, objects, images, storage, exports).
* Expose a /health endpoint for container liveness checks.

The frontend is a separate SPA and is not served from here.
"""

import time

from fastapi import FastAPI, Request
from starlette.middleware.base import BaseHTTPMiddleware
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import Response

from auth.router import router as auth_router
from admin.router import router as admin_router
from objects.router import router as objects_router
from images.router import router as images_router
from storage.router import router as storage_router
from exports.router import router as exports_router
from core.config import settings
from core.errors import DomainError, domain_error_handler
from core.logger import logger

app = FastAPI(title="Objektverwaltung", version="1.0.0")

# ---------------------------------------------------------------------------
# CORS
# ---------------------------------------------------------------------------
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_methods=["GET", "POST", "PUT", "DELETE"],
    allow_headers=["Authorization", "Content-Type"],
)


# ---------------------------------------------------------------------------
# Request-logging middleware
# ---------------------------------------------------------------------------
# Logs every inbound request: method, path, client IP, status, latency.
# Upload tickets travel in the path, so storage upload paths are shortened.


class _RequestLogMiddleware(BaseHTTPMiddleware):
    """Log method, path, client IP, response status and latency (ms)."""

    async def dispatch(self, request: Request, call_next) -> Response:
        start = time.perf_counter()
        response: Response = await call_next(request)
        elapsed_ms = (time.perf_counter() - start) * 1000

        client_ip = request.client.host if request.client else "unknown"
        path = request.url.path
        if path.startswith("/storage/upload/"):
            path = "/storage/upload/<ticket>"

        logger.info(
            "%s %s | client=%s status=%d latency=%.1fms",
            request.method,
            path,
            client_ip,
            response.status_code,
            elapsed_ms,
        )
        return response


app.add_middleware(_RequestLogMiddleware)

# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------
app.add_exception_handler(DomainError, domain_error_handler)

# ---------------------------------------------------------------------------
# Routers
# ---------------------------------------------------------------------------
# images/exports register paths under /objects/{id}/...; objects_router has
# no catch-all that could shadow them.
app.include_router(auth_router)
app.include_router(admin_router)
app.include_router(objects_router)
app.include_router(images_router)
app.include_router(storage_router)
app.include_router(exports_router)

# ---------------------------------------------------------------------------
# Health check
# ---------------------------------------------------------------------------


@app.on_event("startup")
async def _on_startup():
    logger.info("Objektverwaltung service starting up | blob_backend=%s", settings.blob_backend)


@app.on_event("shutdown")
async def _on_shutdown():
    logger.info("Objektverwaltung service shutting down")


@app.get("/health")
def health():
    return {"status": "ok"}
