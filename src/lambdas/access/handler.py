"""
Access Lambda Handler
=====================

FastAPI application serving passwordless sign-in, session and entitlement
endpoints.

For On-Call Engineers:
    If sign-in is broken:
    1. GET /health must return {"status": "healthy"}
    2. 500 "Server misconfigured." -> search logs for "Configuration invalid"
    3. 503 STORE_UNAVAILABLE -> ACCESS_TABLE unreachable (limiter and nonce
       ledger fail closed)
    4. 502 BILLING_ERROR -> Stripe unreachable or rejecting the key

For Developers:
    - Uses Mangum adapter for Lambda Function URL compatibility
    - Every AccessError renders as {"ok": false, "error", "error_code"}
    - Components are wired in dependencies.py and injected with Depends

X-Ray Tracing:
    X-Ray is enabled for distributed tracing across all Lambda invocations.
"""

# X-Ray must be imported and patched before other imports
from aws_xray_sdk.core import patch_all  # noqa: E402

patch_all()

import logging
import os
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, RedirectResponse
from mangum import Mangum

from src.lambdas.access.config import parse_origins
from src.lambdas.access.router import VERIFY_PATH, include_routers
from src.lambdas.shared.errors.auth_errors import (
    AccessError,
    ConfigurationError,
    InvalidEmailError,
    RateLimitedError,
)
from src.lambdas.shared.logging_utils import (
    get_safe_error_info,
    sanitize_for_log,
)

logger = logging.getLogger(__name__)
logger.setLevel(logging.INFO)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(
        "Access Lambda starting",
        extra={"environment": os.environ.get("ENVIRONMENT", "unset")},
    )
    yield
    logger.info("Access Lambda shutting down")


app = FastAPI(
    title="Access API",
    description="Magic-link sign-in, sessions and entitlement",
    version="1.0.0",
    lifespan=lifespan,
)

cors_origins = parse_origins(os.environ.get("APP_ORIGINS", ""))
if cors_origins:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins,
        allow_credentials=True,  # session cookie
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type"],
    )
    logger.info("CORS configured", extra={"allowed_origins": cors_origins})
else:
    logger.warning("CORS not configured - cross-origin requests will be rejected")

include_routers(app)


@app.exception_handler(AccessError)
async def access_error_handler(request: Request, exc: AccessError) -> Any:
    """Render the error taxonomy; never leaks internal detail."""
    if isinstance(exc, ConfigurationError):
        logger.error(
            "Configuration invalid",
            extra={"detail": sanitize_for_log(exc.message)},
        )
        if request.url.path == VERIFY_PATH:
            # Canonical origin is unknown without config
            return RedirectResponse(
                "/?magic=error&reason=server_config", status_code=303
            )

    headers = {}
    if isinstance(exc, RateLimitedError):
        headers["Retry-After"] = str(exc.retry_after)

    return JSONResponse(
        exc.to_response_body(), status_code=exc.status_code, headers=headers
    )


@app.exception_handler(RequestValidationError)
async def request_validation_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Unreadable issuance bodies get the same answer as a bad address.

    The issuance routes are the only ones with a request body. The
    submitted input is never echoed back.
    """
    logger.warning(
        "Request body rejected",
        extra={
            "path": sanitize_for_log(request.url.path),
            "error_types": [error.get("type") for error in exc.errors()][:5],
        },
    )
    error = InvalidEmailError()
    return JSONResponse(error.to_response_body(), status_code=error.status_code)


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error(
        "Unhandled error",
        extra={"path": sanitize_for_log(request.url.path), **get_safe_error_info(exc)},
    )
    return JSONResponse(
        {"ok": False, "error": "Server error.", "error_code": "SERVER_ERROR"},
        status_code=500,
    )


@app.get("/health")
def health_check():
    """Liveness probe; touches no collaborator."""
    return {"status": "healthy"}


# Mangum adapter for AWS Lambda
handler = Mangum(app, lifespan="off")


def lambda_handler(event: dict[str, Any], context: Any) -> dict[str, Any]:
    """
    AWS Lambda entry point.

    On-Call Note:
        If Lambda returns 500 errors, check CloudWatch logs for
        "Configuration invalid" or "Unhandled error".
    """
    logger.info(
        "Access Lambda invoked",
        extra={
            "path": sanitize_for_log(event.get("rawPath", event.get("path", "unknown"))),
            "method": event.get("requestContext", {})
            .get("http", {})
            .get("method", "unknown"),
        },
    )
    return handler(event, context)
