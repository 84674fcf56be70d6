"""Settings loader for the LEAP bridge gateway.

Configuration is the host platform's JSON plugin block: bridge secrets,
feature options, logging and metrics toggles. A block without secrets is
valid; the gateway then stays inert.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import msgspec
from marshmallow import ValidationError

from ..errors import ConfigurationError
from ..security import CredentialStore
from .const import DEFAULT_CONFIG_PATH
from .model import GatewayConfig, GlobalOptions
from .schema import GatewayConfigSchema, OptionsSchema

logger = logging.getLogger("leapbridge.config")


def resolve_options(raw: Mapping[str, Any] | None) -> GlobalOptions:
    """Merge user-supplied toggles over the defaults."""
    if raw is None:
        raw = {}
    if not isinstance(raw, Mapping):
        raise ConfigurationError(f"invalid options: expected an object, got {type(raw).__name__}")
    try:
        return OptionsSchema().load(dict(raw))
    except ValidationError as exc:
        raise ConfigurationError(f"invalid options: {exc.messages}") from exc


def parse_gateway_config(raw: Mapping[str, Any]) -> GatewayConfig:
    """Validate an already-decoded platform block."""
    data = dict(raw)
    options = resolve_options(data.pop("options", None))
    try:
        config: GatewayConfig = GatewayConfigSchema().load(data)
    except ValidationError as exc:
        raise ConfigurationError(f"invalid configuration: {exc.messages}") from exc
    config.options = options
    logger.debug(
        "Parsed configuration with %d bridge secret(s)",
        len(config.secrets),
        extra={"options": msgspec.structs.asdict(config.options)},
    )
    return config


def load_gateway_config(path: str | Path = DEFAULT_CONFIG_PATH) -> GatewayConfig:
    """Load and validate the JSON platform block stored at *path*."""
    config_path = Path(path)
    try:
        payload = config_path.read_bytes()
    except OSError as exc:
        raise ConfigurationError(f"cannot read configuration {config_path}: {exc}") from exc
    try:
        raw = msgspec.json.decode(payload)
    except msgspec.DecodeError as exc:
        raise ConfigurationError(f"malformed JSON in {config_path}: {exc}") from exc
    if not isinstance(raw, dict):
        raise ConfigurationError(f"{config_path} must contain a JSON object")
    return parse_gateway_config(raw)


def build_credential_store(config: GatewayConfig) -> CredentialStore:
    return CredentialStore(config.secrets)


__all__ = [
    "build_credential_store",
    "load_gateway_config",
    "parse_gateway_config",
    "resolve_options",
]
