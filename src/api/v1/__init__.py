"""
API v1 package.

Contains versioned routes for registration, verification, recovery,
authentication and the delivery gateway callbacks.
"""

from src.api.v1.routes import router

__all__ = ["router"]
