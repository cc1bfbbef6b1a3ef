"""Handler layer for HTTP endpoints.

This layer contains the HTTP request/response handlers.
Handlers depend on services (business logic), not directly on repositories.

Architecture:
    Handler -> Service -> Repository / Provider
    (HTTP)  -> (Business) -> (Cache tiers / Upstream sites)
"""

from .gateway_handler import GatewayHandler

__all__ = [
    "GatewayHandler",
]
