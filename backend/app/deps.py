from fastapi import Header, Request
from typing import Optional

from app.exceptions import AuthenticationError
from app.services.registry import ProgressionRegistry


def get_current_user_id(x_user_id: Optional[str] = Header(None)) -> str:
    """Authentication happens upstream; the gateway forwards the caller id."""
    if not x_user_id or not x_user_id.strip():
        raise AuthenticationError("Not authenticated")
    return x_user_id.strip()


def get_registry(request: Request) -> ProgressionRegistry:
    return request.app.state.registry
