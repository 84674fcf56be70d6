"""Marshmallow schemas for the gateway's platform configuration block."""

from __future__ import annotations

from typing import Any, Dict

from marshmallow import (
    EXCLUDE,
    Schema,
    ValidationError,
    fields,
    post_load,
    validate,
    validates_schema,
)

from ..security import CredentialBundle, normalize_bridge_id
from .const import (
    DEFAULT_DEBUG_LOGGING,
    DEFAULT_METRICS_ENABLED,
    DEFAULT_METRICS_HOST,
    DEFAULT_METRICS_PORT,
)
from .model import ClickSpeed, GatewayConfig, GlobalOptions, MetricsSettings

_PEM_MARKER = "-----BEGIN "


class SecretSchema(Schema):
    """One bridge credential entry."""

    class Meta:
        unknown = EXCLUDE

    bridgeid = fields.Str(required=True, validate=validate.Length(min=1))
    ca = fields.Str(required=True)
    key = fields.Str(required=True)
    cert = fields.Str(required=True)

    @validates_schema
    def validate_pem(self, data: Dict[str, Any], **kwargs: Any) -> None:
        for name in ("ca", "key", "cert"):
            if _PEM_MARKER not in data.get(name, ""):
                raise ValidationError(f"{name} must be PEM encoded", field_name=name)

    @post_load
    def make_bundle(self, data: Dict[str, Any], **kwargs: Any) -> CredentialBundle:
        return CredentialBundle(
            bridge_id=data["bridgeid"],
            ca=data["ca"],
            key=data["key"],
            cert=data["cert"],
        )


class OptionsSchema(Schema):
    """User feature toggles; every field falls back to its default."""

    class Meta:
        unknown = EXCLUDE

    filter_remotes = fields.Bool(data_key="filterPico", load_default=False)
    filter_blinds = fields.Bool(data_key="filterBlinds", load_default=False)
    long_click_speed = fields.Enum(
        ClickSpeed, by_value=True, data_key="clickSpeedLong", load_default=ClickSpeed.DEFAULT
    )
    double_click_speed = fields.Enum(
        ClickSpeed, by_value=True, data_key="clickSpeedDouble", load_default=ClickSpeed.DEFAULT
    )

    @post_load
    def make_options(self, data: Dict[str, Any], **kwargs: Any) -> GlobalOptions:
        return GlobalOptions(**data)


class MetricsSchema(Schema):
    class Meta:
        unknown = EXCLUDE

    enabled = fields.Bool(load_default=DEFAULT_METRICS_ENABLED)
    host = fields.Str(load_default=DEFAULT_METRICS_HOST, validate=validate.Length(min=1))
    port = fields.Int(load_default=DEFAULT_METRICS_PORT, validate=validate.Range(min=0, max=65535))

    @post_load
    def make_metrics(self, data: Dict[str, Any], **kwargs: Any) -> MetricsSettings:
        return MetricsSettings(**data)


class GatewayConfigSchema(Schema):
    """Declarative validation schema for the whole platform block."""

    class Meta:
        unknown = EXCLUDE

    secrets = fields.List(fields.Nested(SecretSchema), load_default=list)
    debug_logging = fields.Bool(data_key="debug", load_default=DEFAULT_DEBUG_LOGGING)
    metrics = fields.Nested(MetricsSchema, load_default=MetricsSettings)
    client_factory = fields.Str(
        data_key="clientFactory",
        load_default=None,
        allow_none=True,
        validate=validate.Regexp(r"^[\w.]+:[\w.]+$"),
    )

    @validates_schema
    def validate_unique_bridges(self, data: Dict[str, Any], **kwargs: Any) -> None:
        seen: set[str] = set()
        for bundle in data.get("secrets", ()):
            bridge_id = normalize_bridge_id(bundle.bridge_id)
            if bridge_id in seen:
                raise ValidationError(
                    f"duplicate credentials for bridge {bridge_id}",
                    field_name="secrets",
                )
            seen.add(bridge_id)

    @post_load
    def make_config(self, data: Dict[str, Any], **kwargs: Any) -> GatewayConfig:
        data["secrets"] = tuple(data["secrets"])
        return GatewayConfig(**data)
