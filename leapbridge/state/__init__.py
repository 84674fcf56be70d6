"""Runtime state owned by the gateway orchestrator."""

from .accessories import AccessoryIndex
from .bridges import BridgeConnection, BridgeConnectionRegistry
from .context import GatewayState, create_gateway_state

__all__ = [
    "AccessoryIndex",
    "BridgeConnection",
    "BridgeConnectionRegistry",
    "GatewayState",
    "create_gateway_state",
]
