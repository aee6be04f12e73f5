"""HTTP surface."""

from taskhub.api.gateway import router

__all__ = ["router"]
