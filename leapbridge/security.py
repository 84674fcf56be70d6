"""Bridge trust material and mutual-TLS helpers.

Credentials are loaded once at startup and never change afterwards. Every
lookup is keyed by the lower-cased bridge identity.
"""

from __future__ import annotations

import logging
import os
import ssl
import tempfile
from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field

from .config.const import LEAP_TLS_MIN_VERSION

logger = logging.getLogger("leapbridge.security")


def normalize_bridge_id(bridge_id: str) -> str:
    """Return the canonical (lower-case) form of a bridge identity."""
    return bridge_id.strip().lower()


@dataclass(frozen=True, slots=True)
class CredentialBundle:
    """PEM material needed to authenticate to one bridge."""

    bridge_id: str
    ca: str = field(repr=False)
    key: str = field(repr=False)
    cert: str = field(repr=False)

    @property
    def normalized_id(self) -> str:
        return normalize_bridge_id(self.bridge_id)


class CredentialStore:
    """Read-only mapping of bridge identity to credential bundle."""

    __slots__ = ("_bundles",)

    def __init__(self, bundles: Iterable[CredentialBundle] = ()) -> None:
        self._bundles: dict[str, CredentialBundle] = {}
        for bundle in bundles:
            self._bundles[bundle.normalized_id] = bundle

    def lookup(self, bridge_id: str) -> CredentialBundle | None:
        return self._bundles.get(normalize_bridge_id(bridge_id))

    def __contains__(self, bridge_id: object) -> bool:
        return isinstance(bridge_id, str) and normalize_bridge_id(bridge_id) in self._bundles

    def __len__(self) -> int:
        return len(self._bundles)

    def __iter__(self) -> Iterator[str]:
        return iter(self._bundles)

    @property
    def is_empty(self) -> bool:
        return not self._bundles


def build_tls_context(bundle: CredentialBundle) -> ssl.SSLContext:
    """Create a client ``ssl.SSLContext`` pinned to the bridge's own CA.

    Bridges present their serial number as certificate CN, so hostname
    verification is disabled while chain verification stays mandatory.
    """
    try:
        context = ssl.SSLContext(ssl.PROTOCOL_TLS_CLIENT)
        context.minimum_version = LEAP_TLS_MIN_VERSION
        context.check_hostname = False
        context.verify_mode = ssl.CERT_REQUIRED
        context.load_verify_locations(cadata=bundle.ca)

        # load_cert_chain only accepts paths.
        with tempfile.TemporaryDirectory(prefix="leapbridge-") as workdir:
            cert_path = os.path.join(workdir, "client.crt")
            key_path = os.path.join(workdir, "client.key")
            with open(cert_path, "w", encoding="ascii") as handle:
                handle.write(bundle.cert)
            with open(key_path, "w", encoding="ascii") as handle:
                handle.write(bundle.key)
            os.chmod(key_path, 0o600)
            context.load_cert_chain(cert_path, key_path)
        return context
    except (OSError, ssl.SSLError, ValueError) as exc:
        logger.error("TLS setup failed for bridge %s: %s", bundle.normalized_id, exc)
        raise RuntimeError(f"TLS setup failed for bridge {bundle.normalized_id}: {exc}") from exc


__all__ = [
    "CredentialBundle",
    "CredentialStore",
    "build_tls_context",
    "normalize_bridge_id",
]
