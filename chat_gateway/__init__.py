"""
Chat Gateway.

Real-time broadcast chat over a single WebSocket endpoint.
"""

__version__ = "1.0.0"
