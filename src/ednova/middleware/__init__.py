"""Middleware registration."""

from fastapi import FastAPI

from ednova.config import Settings
from ednova.middleware.cors import setup_cors
from ednova.middleware.error_handler import setup_error_handlers
from ednova.middleware.logging import setup_logging
from ednova.middleware.rate_limit import RateLimitMiddleware
from ednova.middleware.request_id import RequestIdMiddleware
from ednova.tenancy.middleware import TenantResolutionMiddleware


def setup_middleware(app: FastAPI, settings: Settings) -> None:
    """Register all middleware in the correct order.

    Starlette runs middleware in reverse-add order (last added = outermost).
    Tenant resolution is innermost so its log lines carry the request id and
    its rejections still pass through rate limiting and CORS.
    """
    setup_logging(settings)
    setup_error_handlers(app)
    app.add_middleware(TenantResolutionMiddleware)
    app.add_middleware(
        RateLimitMiddleware,
        requests_per_window=settings.rate_limit_requests,
        window_seconds=settings.rate_limit_window_seconds,
    )
    app.add_middleware(RequestIdMiddleware)
    setup_cors(app, settings)  # outermost, wraps 429 and tenant errors
