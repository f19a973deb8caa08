"""HTTP and WebSocket server for the relay.

Exposes device ingestion, public reads, LED control, operator login and
the live push channel through a single FastAPI application.
"""

from sensorrelay.server.app import create_app

__all__ = ["create_app"]
