"""Request-scoped access to the per-application service."""
from fastapi import HTTPException, Request
from ..services import HooklogService


def get_service(request: Request) -> HooklogService:
    return request.app.state.service


def require_scope(service: HooklogService, channel: str) -> str:
    """Channel name or ``*``; anything else is reported as a plain 404."""
    if not service.policy.is_scope(channel):
        raise HTTPException(404, detail="Not found")
    return channel
