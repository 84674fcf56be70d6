"""Discovery transports."""

from .mdns import ZeroconfBridgeFinder

__all__ = ["ZeroconfBridgeFinder"]
