"""Request identity.

Password checks and session cookies belong to the upstream session layer,
which forwards the authenticated user id in a header.
"""
from fastapi import Request

from fileshare.config import settings
from fileshare.services.policy import ANONYMOUS, RequestContext


def get_request_context(request: Request) -> RequestContext:
    """FastAPI dependency: the caller's identity, anonymous when absent."""
    user_id = (request.headers.get(settings.USER_ID_HEADER) or "").strip()
    if not user_id:
        return ANONYMOUS
    return RequestContext(user_id=user_id)


def client_ip(request: Request) -> str | None:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else None
