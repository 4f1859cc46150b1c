from .app import create_app
from .router import create_router

__all__ = ["create_app", "create_router"]
