# src/stakechat/main.py
"""Main entry point for the stakechat application."""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from stakechat.api.v1 import auth_router, chat_router, system_router
from stakechat.api.v1.dependencies import clear_stake_cookie
from stakechat.core.errors import AuthError, AuthReason, RateLimitExceeded
from stakechat.core.settings import settings
from stakechat.services.chat import get_chat_client
from stakechat.services.stake import get_stake_verifier

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)

# Initialize FastAPI app
app = FastAPI(
    title="stakechat API",
    description="Wallet-authenticated, stake-gated chat API",
    version=settings.app_version,
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=settings.cors_allow_credentials,
    allow_methods=settings.cors_allow_methods,
    allow_headers=settings.cors_allow_headers,
)

# Include API routers
app.include_router(auth_router, prefix="/api/v1")
app.include_router(chat_router, prefix="/api/v1")
app.include_router(system_router, prefix="/api/v1")


@app.exception_handler(AuthError)
async def auth_error_handler(request: Request, exc: AuthError) -> JSONResponse:
    """Render authorization failures as ``{"error": <reason>}``."""
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.reason.value)
    response = JSONResponse(status_code=exc.status_code, content={"error": exc.reason.value})
    if exc.clear_stake_cookie:
        clear_stake_cookie(response)
    if isinstance(exc, RateLimitExceeded) and exc.retry_after_seconds:
        response.headers["Retry-After"] = str(exc.retry_after_seconds)
    return response


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"error": AuthReason.INTERNAL_ERROR.value})


@app.on_event("startup")
async def on_startup() -> None:
    if settings.allow_signer_mismatch:
        logger.warning(
            "ALLOW_SIGNER_MISMATCH is enabled: requests authenticate as the recovered "
            "signer even when it differs from the claimed wallet (reduced security)"
        )
    if settings.rate_limit_backend == "memory":
        logger.info("Rate-limit counters are process-local; run a single instance")


@app.on_event("shutdown")
async def on_shutdown() -> None:
    await get_stake_verifier().close()
    await get_chat_client().close()


@app.get("/health")
async def health_check() -> dict[str, str]:
    """Health check endpoint to verify the service is running."""
    return {"status": "ok"}


@app.get("/")
async def root() -> dict[str, str]:
    """Root endpoint with basic information about the API."""
    return {
        "name": settings.app_name,
        "version": settings.app_version,
        "description": "Wallet-authenticated, stake-gated chat API",
        "docs": "/docs",
        "redoc": "/redoc",
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("stakechat.main:app", host="0.0.0.0", port=8000, reload=settings.debug)
