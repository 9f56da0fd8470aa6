"""api — FastAPI WebSocket tally channel and front-end assets."""
from .assets import AssetStore, content_type_for
from .server import WebSocketTransport, create_app

__all__ = ["AssetStore", "WebSocketTransport", "content_type_for", "create_app"]
