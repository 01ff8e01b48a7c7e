"""Routing of inbound envelopes and parsing of service identifiers.

Covers which local identity (ACI or PNI) an envelope is addressed to,
how string and binary service ids map to typed recipients, and how
Signal's plaintext padding is removed before protobuf decoding.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from typing import Optional, Tuple

log = logging.getLogger(__name__)

_PNI_PREFIX = "PNI:"
_UUID_LEN = 16
_PADDING_MARKER = 0x80


class IdentityKind(enum.Enum):
    """Which of the account's two identities a key or envelope belongs to."""

    ACI = "aci"
    PNI = "pni"

    def as_query_param(self) -> str:
        """Value used for the ``identity`` query parameter and storage column."""
        return self.value


class RecipientKind(enum.Enum):
    """Kind of a message recipient or sender."""

    ACI = "aci"
    PNI = "pni"
    SELF_SYNC = "self_sync"


@dataclass(frozen=True)
class Recipient:
    """A typed recipient: an ACI or PNI uuid string, or the local account itself."""

    kind: RecipientKind
    service_id: str = ""

    @classmethod
    def aci(cls, service_id: str) -> "Recipient":
        return cls(RecipientKind.ACI, service_id)

    @classmethod
    def pni(cls, service_id: str) -> "Recipient":
        return cls(RecipientKind.PNI, service_id)

    @classmethod
    def self_sync(cls) -> "Recipient":
        return cls(RecipientKind.SELF_SYNC)

    def __str__(self) -> str:
        if self.kind is RecipientKind.SELF_SYNC:
            return "self"
        return f"{self.kind.value}:{self.service_id}"


def strip_signal_padding(plaintext: bytes) -> bytes:
    """Drop a trailing ``0x80 0x00*`` pad; return the input unchanged if none is found."""
    trimmed = bytes(plaintext).rstrip(b"\x00")
    if trimmed and trimmed[-1] == _PADDING_MARKER:
        return trimmed[:-1]
    return bytes(plaintext)


def service_id_to_recipient(service_id: str) -> Recipient:
    """Classify a string service id: ``PNI:``-prefixed ids are PNIs, bare uuids ACIs."""
    if service_id.startswith(_PNI_PREFIX):
        return Recipient.pni(service_id[len(_PNI_PREFIX):])
    return Recipient.aci(service_id)


def uuid_from_bytes(data: bytes) -> str:
    """Format 16 bytes as a canonical lowercase uuid string."""
    if len(data) != _UUID_LEN:
        raise ValueError(f"uuid requires {_UUID_LEN} bytes, got {len(data)}")
    h = bytes(data).hex()
    return f"{h[0:8]}-{h[8:12]}-{h[12:16]}-{h[16:20]}-{h[20:32]}"


def service_id_binary_to_recipient(data: bytes) -> Optional[Recipient]:
    """Classify a binary service id.

    16 bytes are a bare ACI; 17 bytes carry a kind prefix (``0x00`` ACI,
    ``0x01`` PNI) before the uuid. Anything else yields ``None``.
    """
    if len(data) == _UUID_LEN:
        return Recipient.aci(uuid_from_bytes(data))
    if len(data) == _UUID_LEN + 1:
        prefix, rest = data[0], data[1:]
        if prefix == 0x00:
            return Recipient.aci(uuid_from_bytes(rest))
        if prefix == 0x01:
            return Recipient.pni(uuid_from_bytes(rest))
    return None


def route_envelope_to_identity(
    destination_service_id: Optional[str],
    local_aci: str,
    local_pni: Optional[str],
) -> Tuple[IdentityKind, str]:
    """Pick the local identity and service id an envelope is addressed to.

    A destination equal to the local PNI routes to the PNI; everything
    else (a match on the ACI, no destination, or an unknown one) routes
    to the ACI, with a warning in the unknown case.
    """
    log.debug(
        "route_envelope_to_identity: dest=%r local_aci=%s local_pni=%r",
        destination_service_id,
        local_aci,
        local_pni,
    )
    if destination_service_id is None:
        log.debug("route_envelope_to_identity: destination absent; routing to ACI")
        return IdentityKind.ACI, local_aci
    if local_pni is not None and destination_service_id == local_pni:
        return IdentityKind.PNI, destination_service_id
    if destination_service_id != local_aci:
        log.warning(
            "route_envelope_to_identity: destination_service_id=%s matches neither "
            "local ACI (%s) nor PNI (%r); routing to ACI",
            destination_service_id,
            local_aci,
            local_pni,
        )
    return IdentityKind.ACI, local_aci