"""Request and response shapes for the chat server's REST API.

Field names and omission rules follow the server's JSON contract:
camelCase keys, and optional list slots left out entirely rather than
sent as empty arrays, because the server rejects ``[]`` for slots it
expects to be absent.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


@dataclass(frozen=True)
class PreKey:
    """One-time elliptic-curve prekey; ``public_key`` is base64 of the serialized key."""

    key_id: int
    public_key: str

    def to_json(self) -> Dict[str, Any]:
        return {"keyId": self.key_id, "publicKey": self.public_key}


@dataclass(frozen=True)
class SignedPreKey:
    """Signed prekey (EC or Kyber); key and signature are base64 strings."""

    key_id: int
    public_key: str
    signature: str

    def to_json(self) -> Dict[str, Any]:
        return {
            "keyId": self.key_id,
            "publicKey": self.public_key,
            "signature": self.signature,
        }


@dataclass(frozen=True)
class PreKeyUploadBody:
    """Body of ``PUT /v2/keys/?identity=aci|pni``."""

    identity_key: str
    signed_pre_key: SignedPreKey
    pq_last_resort_pre_key: SignedPreKey
    pre_keys: List[PreKey] = field(default_factory=list)
    pq_pre_keys: List[SignedPreKey] = field(default_factory=list)

    def to_json(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"identityKey": self.identity_key}
        if self.pre_keys:
            body["preKeys"] = [key.to_json() for key in self.pre_keys]
        body["signedPreKey"] = self.signed_pre_key.to_json()
        if self.pq_pre_keys:
            body["pqPreKeys"] = [key.to_json() for key in self.pq_pre_keys]
        body["pqLastResortPreKey"] = self.pq_last_resort_pre_key.to_json()
        return body


def _default_capabilities() -> Dict[str, bool]:
    # New linked devices are rejected unless they advertise the
    # sparse post-quantum ratchet capability.
    return {"spqr": True}


@dataclass(frozen=True)
class LinkAccountAttributes:
    """The ``accountAttributes`` object sent when linking a device.

    ``name`` is the base64 of the encrypted device-name protobuf and is
    left out of the JSON when absent.
    """

    registration_id: int
    pni_registration_id: int
    fetches_messages: bool = True
    capabilities: Dict[str, bool] = field(default_factory=_default_capabilities)
    name: Optional[str] = None

    def to_json(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {
            "fetchesMessages": self.fetches_messages,
            "registrationId": self.registration_id,
            "pniRegistrationId": self.pni_registration_id,
            "capabilities": dict(self.capabilities),
        }
        if self.name is not None:
            body["name"] = self.name
        return body


@dataclass(frozen=True)
class UploadCredentials:
    """Device credentials for authenticated REST calls."""

    service_id: str
    device_id: int
    password: str

    def username(self) -> str:
        """HTTP Basic user name: ``{service_id}.{device_id}``."""
        return f"{self.service_id}.{self.device_id}"


@dataclass(frozen=True)
class OneTimePreKeyCounts:
    """Server-side count of remaining one-time prekeys for one identity."""

    ec: int
    pq: int


@dataclass(frozen=True)
class DeviceEntry:
    """One linked device as reported by ``GET /v1/devices``."""

    id: int
    name: Optional[str] = None
    created_ms: Optional[int] = None
    last_seen_ms: Optional[int] = None


def build_link_device_body(
    verification_code: str,
    attributes: LinkAccountAttributes,
    aci_signed: SignedPreKey,
    pni_signed: SignedPreKey,
    aci_pq_last_resort: SignedPreKey,
    pni_pq_last_resort: SignedPreKey,
) -> Dict[str, Any]:
    """Build the JSON body of ``PUT /v1/devices/link``."""
    return {
        "verificationCode": verification_code,
        "accountAttributes": attributes.to_json(),
        "aciSignedPreKey": aci_signed.to_json(),
        "pniSignedPreKey": pni_signed.to_json(),
        "aciPqLastResortPreKey": aci_pq_last_resort.to_json(),
        "pniPqLastResortPreKey": pni_pq_last_resort.to_json(),
    }