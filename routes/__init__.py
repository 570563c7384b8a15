"""Routes package initializer."""

from .keepalive_routes import register_keepalive_routes

__all__ = [
    "register_keepalive_routes",
]
