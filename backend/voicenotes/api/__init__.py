"""API routes for the voice note pipeline."""

from voicenotes.api import cache_routes, routes, websocket

__all__ = ["cache_routes", "routes", "websocket"]
