"""API module with routers and dependencies."""

from .app import create_api_app
from .dependencies import require_owner


__all__ = [
    "create_api_app",
    "require_owner",
]
