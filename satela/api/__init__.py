"""HTTP/WebSocket control surface for Satela Voice."""

from satela.api.server import SatelaAPI, create_api

__all__ = ["SatelaAPI", "create_api"]
