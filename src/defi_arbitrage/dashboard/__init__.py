"""Dashboard module exposing the HTTP and WebSocket control surface."""

from defi_arbitrage.dashboard.server import create_app, main


__all__ = [
    "create_app",
    "main",
]
