"""Upstream HTTP client factory."""

import httpx
from fastapi import Request

from chatrelay.core.config import settings


def create_http_client() -> httpx.AsyncClient:
    """Client shared by every request for the lifetime of the app."""
    return httpx.AsyncClient(timeout=httpx.Timeout(settings.upstream_timeout, connect=10.0))


def get_http_client(request: Request) -> httpx.AsyncClient:
    return request.app.state.http_client
