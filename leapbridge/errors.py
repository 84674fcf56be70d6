"""Domain-specific errors for the LEAP bridge gateway."""

from __future__ import annotations


class LeapBridgeError(Exception):
    """Base error for leapbridge."""


class ConfigurationError(LeapBridgeError):
    """Raised when the platform configuration block is invalid."""


class MissingBridgeCredentials(LeapBridgeError):
    """Raised when a discovered bridge has no stored trust material.

    This is unrecoverable for the bridge in question: the operator has to add
    a credential entry for it before it can ever be connected.
    """

    def __init__(self, bridge_id: str) -> None:
        super().__init__(f"no credentials for bridge ID {bridge_id}")
        self.bridge_id = bridge_id


class BridgeLookupError(LeapBridgeError):
    """Raised when a bridge connection cannot be resolved by identity."""


class DuplicateAccessoryError(LeapBridgeError):
    """Raised by the host platform when an accessory UUID is already registered."""


class BridgeDiscoveryError(LeapBridgeError):
    """Raised by discovery transports when a broadcast cannot be resolved."""


__all__ = [
    "LeapBridgeError",
    "ConfigurationError",
    "MissingBridgeCredentials",
    "BridgeLookupError",
    "DuplicateAccessoryError",
    "BridgeDiscoveryError",
]
