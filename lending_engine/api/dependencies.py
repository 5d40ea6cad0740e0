"""Dependency injection for FastAPI endpoints"""

from fastapi import Header, HTTPException, Request
from lending_engine.infrastructure.clients.notifier import NotifierClient


def get_request_id(request: Request) -> str:
    """Extract request ID from request state"""
    return getattr(request.state, "request_id", "unknown")


def get_actor_id(x_actor_id: str | None = Header(default=None)) -> str:
    """Authenticated principal, supplied by the identity provider in front of this service"""
    if not x_actor_id:
        raise HTTPException(status_code=401, detail="Missing X-Actor-ID header")
    return x_actor_id


def get_notifier_client() -> NotifierClient:
    """Provide notifier webhook client instance"""
    return NotifierClient()
