"""Attachment upload: pad, encrypt, and push an attachment blob to the CDN.

The blob layout is the mirror image of :func:`signalkit.attachment.verify_and_decrypt`::

    padded_plaintext = plaintext || 0x00 * (bucket_size - len(plaintext))
    ciphertext       = AES-256-CBC(AES_KEY, IV).encrypt(padded_plaintext)  # PKCS#7
    blob             = IV(16) || ciphertext || HMAC-SHA256(HMAC_KEY, IV || ciphertext)
    key (out)        = AES_KEY(32) || HMAC_KEY(32)
    digest (out)     = SHA-256(blob)
    size (out)       = len(plaintext)

The server's upload form picks the CDN:

* cdn 2 uses a GCS resumable upload. A POST with the form headers and an
  empty body returns a ``Location`` session URI, and a PUT to that URI
  carries the bytes.
* cdn 3 uses a TUS upload. A POST with ``Tus-Resumable`` and
  ``Upload-Length`` returns a ``Location`` URI, and a PATCH at offset 0
  carries the bytes.
"""

from __future__ import annotations

import hashlib
import hmac
import logging
import math
import os
import re
import time
from dataclasses import dataclass, field
from os import PathLike
from pathlib import Path
from typing import Callable, Optional, Sequence, Tuple, Union

import requests
from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes
from requests.structures import CaseInsensitiveDict

from signalkit.attachment import AttachmentPointer

log = logging.getLogger(__name__)

AES_KEY_LEN = 32
HMAC_KEY_LEN = 32
ATTACHMENT_KEY_LEN = AES_KEY_LEN + HMAC_KEY_LEN
IV_LEN = 16
MIN_BUCKET_LEN = 541
BUCKET_GROWTH = 1.05
MAX_PLAINTEXT_LEN = 16 * 1024 * 1024

_HEADER_NAME_RE = re.compile(r"^[!#$%&'*+\-.^_`|~0-9A-Za-z]+$")


class UploadError(Exception):
    """Attachment upload failed."""

    def __init__(
        self,
        message: str,
        *,
        status: Optional[int] = None,
        body: Optional[str] = None,
        cdn: Optional[int] = None,
    ) -> None:
        super().__init__(message)
        self.status = status
        self.body = body
        self.cdn = cdn


@dataclass(frozen=True)
class UploadForm:
    """Signed upload form issued by the chat server."""

    cdn: int
    key: str
    signed_upload_url: str
    headers: Sequence[Tuple[str, str]] = field(default_factory=tuple)


FormProvider = Callable[[int], UploadForm]


def bucket_padded_size(plaintext_len: int) -> int:
    """Return the bucket-padded size for ``plaintext_len``; never below 541."""
    if plaintext_len <= MIN_BUCKET_LEN:
        return MIN_BUCKET_LEN
    exponent = math.ceil(math.log(plaintext_len) / math.log(BUCKET_GROWTH))
    bucket = math.floor(BUCKET_GROWTH**exponent)
    return max(bucket, plaintext_len)


def encrypt_attachment_blob(
    padded_plaintext: bytes, aes_key: bytes, hmac_key: bytes, iv: bytes
) -> bytes:
    """Build the ``IV || ciphertext || HMAC`` blob for ``padded_plaintext``."""
    if len(aes_key) != AES_KEY_LEN:
        raise ValueError(f"aes_key must be {AES_KEY_LEN} bytes, got {len(aes_key)}")
    if len(hmac_key) != HMAC_KEY_LEN:
        raise ValueError(f"hmac_key must be {HMAC_KEY_LEN} bytes, got {len(hmac_key)}")
    if len(iv) != IV_LEN:
        raise ValueError(f"iv must be {IV_LEN} bytes, got {len(iv)}")
    log.debug("encrypt_attachment_blob: padded_plaintext_len=%d", len(padded_plaintext))

    padder = padding.PKCS7(128).padder()
    padded = padder.update(bytes(padded_plaintext)) + padder.finalize()
    encryptor = Cipher(algorithms.AES(bytes(aes_key)), modes.CBC(bytes(iv))).encryptor()
    ciphertext = encryptor.update(padded) + encryptor.finalize()

    signed = bytes(iv) + ciphertext
    mac = hmac.new(bytes(hmac_key), signed, hashlib.sha256).digest()
    return signed + mac


def _now_millis() -> int:
    return time.time_ns() // 1_000_000


def _form_headers(headers: Sequence[Tuple[str, str]]) -> CaseInsensitiveDict:
    out: CaseInsensitiveDict = CaseInsensitiveDict()
    for name, value in headers:
        if not _HEADER_NAME_RE.match(name):
            raise UploadError(f"invalid header value from form: name {name!r}")
        if any(ch in value for ch in "\r\n\0"):
            raise UploadError(f"invalid header value from form: value for {name}")
        out[name] = value
    return out


def _check(response: requests.Response, kind: str) -> None:
    if response.ok:
        return
    label = "session-init" if kind == "init" else "bytes-upload"
    raise UploadError(
        f"CDN {label} failed: HTTP {response.status_code} {response.text}",
        status=response.status_code,
        body=response.text,
    )


def _location(response: requests.Response, cdn: int) -> str:
    location = response.headers.get("Location")
    if not location:
        raise UploadError(
            f"CDN session-init returned no Location header (cdn={cdn})", cdn=cdn
        )
    return location


def _push_cdn2_gcs(
    http: requests.Session, url: str, headers: CaseInsensitiveDict, blob: bytes
) -> None:
    headers["Content-Length"] = "0"
    init = http.post(url, headers=dict(headers), data=b"")
    _check(init, "init")
    session_uri = _location(init, 2)
    put = http.put(
        session_uri,
        headers={
            "Content-Length": str(len(blob)),
            "Content-Type": "application/octet-stream",
        },
        data=blob,
    )
    _check(put, "bytes")
    log.info("push_cdn2_gcs: uploaded %d bytes", len(blob))


def _push_cdn3_tus(
    http: requests.Session, url: str, headers: CaseInsensitiveDict, blob: bytes
) -> None:
    headers["Tus-Resumable"] = "1.0.0"
    headers["Upload-Length"] = str(len(blob))
    headers["Content-Length"] = "0"
    init = http.post(url, headers=dict(headers), data=b"")
    _check(init, "init")
    session_uri = _location(init, 3)
    patch = http.patch(
        session_uri,
        headers={
            "Content-Length": str(len(blob)),
            "Upload-Offset": "0",
            "Content-Type": "application/offset+octet-stream",
            "Tus-Resumable": "1.0.0",
        },
        data=blob,
    )
    _check(patch, "bytes")
    log.info("push_cdn3_tus: uploaded %d bytes", len(blob))


_PUSHERS = {2: _push_cdn2_gcs, 3: _push_cdn3_tus}


def upload_attachment_bytes(
    form_provider: FormProvider,
    plaintext: bytes,
    content_type: Optional[str] = None,
    file_name: Optional[str] = None,
    session: Optional[requests.Session] = None,
) -> AttachmentPointer:
    """Encrypt ``plaintext`` with a fresh key, upload it, and return its pointer.

    ``form_provider`` is called with the encrypted blob length and returns
    the :class:`UploadForm` that names the CDN, key and signed URL.
    """
    log.debug(
        "upload_attachment_bytes: plaintext_len=%d content_type=%r file_name=%r",
        len(plaintext),
        content_type,
        file_name,
    )
    if not plaintext:
        raise UploadError("attachment file is empty")
    if len(plaintext) > MAX_PLAINTEXT_LEN:
        raise UploadError(
            f"attachment too large: {len(plaintext)} bytes exceeds the "
            f"{MAX_PLAINTEXT_LEN}-byte cap"
        )

    key_bytes = os.urandom(ATTACHMENT_KEY_LEN)
    iv = os.urandom(IV_LEN)
    aes_key, hmac_key = key_bytes[:AES_KEY_LEN], key_bytes[AES_KEY_LEN:]

    padded_len = bucket_padded_size(len(plaintext))
    padded = bytes(plaintext) + bytes(padded_len - len(plaintext))
    blob = encrypt_attachment_blob(padded, aes_key, hmac_key, iv)
    digest = hashlib.sha256(blob).digest()

    try:
        form = form_provider(len(blob))
    except UploadError:
        raise
    except Exception as exc:
        raise UploadError(f"upload form fetch failed: get_upload_form: {exc!r}") from exc
    log.info(
        "upload_attachment_bytes: form ready cdn=%d key_len=%d", form.cdn, len(form.key)
    )

    headers = _form_headers(form.headers)
    pusher = _PUSHERS.get(form.cdn)
    if pusher is None:
        raise UploadError(
            f"unsupported cdn_number from form: {form.cdn} (expected 2 or 3)",
            cdn=form.cdn,
        )
    http = session if session is not None else requests.Session()
    try:
        pusher(http, form.signed_upload_url, headers, blob)
    except requests.RequestException as exc:
        raise UploadError(f"HTTP transport error: {exc}") from exc

    return AttachmentPointer(
        cdn_id=0,
        cdn_key=form.key,
        cdn_number=form.cdn,
        content_type=content_type,
        size=len(plaintext),
        digest=digest,
        key=key_bytes,
        file_name=file_name,
        upload_timestamp=_now_millis(),
    )


def upload_attachment_from_path(
    form_provider: FormProvider,
    path: Union[str, PathLike],
    content_type: Optional[str] = None,
    session: Optional[requests.Session] = None,
) -> AttachmentPointer:
    """Read ``path`` and upload its contents; the file name goes on the pointer."""
    file_path = Path(path)
    try:
        data = file_path.read_bytes()
    except OSError as exc:
        raise UploadError(f"filesystem read failed: {exc}") from exc
    return upload_attachment_bytes(
        form_provider, data, content_type, file_path.name or None, session
    )