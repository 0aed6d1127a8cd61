"""CORS for the LMS front-ends."""

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from ednova.config import Settings

_EXPOSED_HEADERS = ["X-Request-Id", "X-RateLimit-Remaining", "X-RateLimit-Limit"]


def setup_cors(app: FastAPI, settings: Settings) -> None:
    """Fixed origins plus an optional pattern for per-tenant hosts.

    Credentials stay enabled because browsers authenticate with the auth
    cookie, which rules out a wildcard origin.
    """
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_origin_regex=settings.cors_origin_regex,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type", "X-Request-Id"],
        expose_headers=_EXPOSED_HEADERS,
    )
