# Routers package
from . import auth_router
from . import webhook_router

__all__ = [
    "auth_router",
    "webhook_router",
]
