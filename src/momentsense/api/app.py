"""HTTP surface for MomentSense.

Endpoints:
- POST /api/synthesize-sense  -> synthesize one moment
- GET  /api/health            -> liveness plus shared-store sizes

Usage:
    uvicorn momentsense.api.app:create_app --factory

Every synthesis response carries ``X-RateLimit-*`` headers once the quota
has been consulted, and every error body carries the ``requestId``.
"""

from __future__ import annotations

import hashlib
import logging
import uuid
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from momentsense import __version__
from momentsense.config import AppConfig, get_config
from momentsense.synthesizer import (
    InputValidationError,
    MomentSynthesizer,
    OutputValidationError,
    RateLimitExceededError,
)

logger = logging.getLogger(__name__)

UNKNOWN_IDENTIFIER = "unknown"


# =============================================================================
# Helpers
# =============================================================================


def get_request_identifier(request: Request) -> str:
    """Pick the quota identifier for a request.

    Priority: API key (hashed, never stored raw), user id, first
    ``X-Forwarded-For`` hop, ``CF-Connecting-IP``, socket peer, "unknown".
    """
    headers = request.headers

    api_key = headers.get("x-api-key")
    if api_key:
        return "key:" + hashlib.sha256(api_key.encode("utf-8")).hexdigest()[:16]

    user_id = headers.get("x-user-id")
    if user_id:
        return f"user:{user_id}"

    forwarded = headers.get("x-forwarded-for")
    if forwarded:
        first_hop = forwarded.split(",")[0].strip()
        if first_hop:
            return first_hop

    cf_ip = headers.get("cf-connecting-ip")
    if cf_ip:
        return cf_ip.strip()

    if request.client is not None and request.client.host:
        return request.client.host

    return UNKNOWN_IDENTIFIER


def error_response(
    status_code: int,
    code: str,
    message: str,
    request_id: str,
    details: dict[str, Any] | None = None,
    headers: dict[str, str] | None = None,
) -> JSONResponse:
    body: dict[str, Any] = {
        "success": False,
        "error": message,
        "code": code,
        "requestId": request_id,
    }
    if details:
        body["details"] = details
    return JSONResponse(status_code=status_code, content=body, headers=headers)


# =============================================================================
# Application Factory
# =============================================================================


def create_app(
    config: AppConfig | None = None,
    synthesizer: MomentSynthesizer | None = None,
) -> FastAPI:
    """Build the FastAPI application.

    Args:
        config: Application configuration. If None, loads from get_config().
        synthesizer: Pre-built synthesizer (tests). If None, one is wired from
            config and closed on shutdown.
    """
    config = config or get_config()
    owns_synthesizer = synthesizer is None
    synthesizer = synthesizer or MomentSynthesizer.from_config(config)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        sweepers = synthesizer.build_sweepers()
        for sweeper in sweepers:
            sweeper.start()
        logger.info(f"MomentSense API started (rate limit {config.rate_limit.max_requests}/window)")
        try:
            yield
        finally:
            for sweeper in sweepers:
                await sweeper.stop()
            if owns_synthesizer:
                await synthesizer.aclose()
            logger.info("MomentSense API stopped")

    app = FastAPI(
        title="MomentSense API",
        version=__version__,
        description="Travel moment synthesis",
        lifespan=lifespan,
    )
    app.state.synthesizer = synthesizer

    @app.get("/api/health")
    async def health() -> dict[str, Any]:
        return {
            "status": "ok",
            "version": __version__,
            "narrative_model": bool(
                synthesizer.narrative_client is not None
                and synthesizer.narrative_client.is_available
            ),
            "venue_cache": synthesizer.venue_cache.get_stats(),
            "rate_limit_entries": len(synthesizer.rate_limiter.store),
        }

    @app.post("/api/synthesize-sense")
    async def synthesize_sense(request: Request) -> JSONResponse:
        request_id = str(uuid.uuid4())
        identifier = get_request_identifier(request)

        invalid_json = False
        try:
            payload: Any = await request.json()
        except ValueError:
            # Still counted against the quota; fails validation as a non-object body
            payload = None
            invalid_json = True

        try:
            result = await synthesizer.synthesize(payload, identifier, request_id=request_id)
        except RateLimitExceededError as e:
            return error_response(
                429,
                "RATE_LIMITED",
                e.message,
                request_id,
                headers=e.rate_limit.as_http_headers() if e.rate_limit else None,
            )
        except InputValidationError as e:
            message = "Invalid JSON in request body" if invalid_json else e.message
            return error_response(
                400,
                "VALIDATION_ERROR",
                message,
                request_id,
                details={"errors": e.errors},
                headers=e.rate_limit.as_http_headers() if e.rate_limit else None,
            )
        except OutputValidationError as e:
            return error_response(
                500,
                "INTERNAL_ERROR",
                "Internal error: synthesis output validation failed",
                request_id,
                headers=e.rate_limit.as_http_headers() if e.rate_limit else None,
            )

        return JSONResponse(
            status_code=200,
            content={
                "success": True,
                "moment": result.moment.model_dump(mode="json"),
                "requestId": result.request_id,
            },
            headers=result.rate_limit.as_http_headers(),
        )

    return app
