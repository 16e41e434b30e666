"""HTTP and WebSocket server (requires the ``server`` extra)."""

from roomchat.server.app import create_app, status_for

__all__ = ["create_app", "status_for"]
