"""Attachment download: fetch an encrypted blob from the CDN, verify and decrypt it.

Blob layout::

    blob = IV(16) || ciphertext || HMAC-SHA256(32)
    key  = AES_KEY(32) || HMAC_KEY(32)
    HMAC-SHA256(HMAC_KEY, IV || ciphertext) == trailing 32 bytes
    AES-256-CBC(AES_KEY, IV).decrypt(ciphertext) with PKCS#7 padding -> plaintext
    SHA-256(blob) == pointer.digest

CDN selection by ``cdn_number``: 0 uses ``cdn_id`` on cdn.signal.org,
2 and 3 use ``cdn_key`` on cdn2/cdn3.signal.org; anything else is rejected.
"""

from __future__ import annotations

import hashlib
import hmac
import logging
from dataclasses import dataclass
from os import PathLike
from pathlib import Path
from typing import Optional, Union

import requests
from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

log = logging.getLogger(__name__)

IV_LEN = 16
AES_BLOCK_LEN = 16
MAC_LEN = 32
AES_KEY_LEN = 32
HMAC_KEY_LEN = 32
ATTACHMENT_KEY_LEN = AES_KEY_LEN + HMAC_KEY_LEN
MIN_BLOB_LEN = IV_LEN + AES_BLOCK_LEN + MAC_LEN

_CDN_HOSTS = {
    2: "https://cdn2.signal.org/attachments/",
    3: "https://cdn3.signal.org/attachments/",
}


@dataclass
class AttachmentPointer:
    """Reference to an encrypted attachment hosted on a CDN."""

    cdn_id: int = 0
    cdn_key: Optional[str] = None
    cdn_number: int = 0
    content_type: Optional[str] = None
    size: Optional[int] = None
    digest: bytes = b""
    key: bytes = b""
    file_name: Optional[str] = None
    caption: Optional[str] = None
    width: Optional[int] = None
    height: Optional[int] = None
    voice_note: bool = False
    borderless: bool = False
    gif: bool = False
    upload_timestamp: Optional[int] = None
    blurhash: Optional[str] = None


class AttachmentError(Exception):
    """Base class for attachment download and decryption failures."""


class UnsupportedCdnError(AttachmentError):
    def __init__(self, cdn_number: int) -> None:
        super().__init__(f"unsupported cdn_number: {cdn_number} (expected 0, 2, or 3)")
        self.cdn_number = cdn_number


class BadKeyLengthError(AttachmentError):
    def __init__(self, expected: int, actual: int) -> None:
        super().__init__(
            f"attachment key has wrong length: expected {expected} bytes, got {actual}"
        )
        self.expected = expected
        self.actual = actual


class BlobTooSmallError(AttachmentError):
    def __init__(self, size: int) -> None:
        super().__init__(
            f"encrypted blob is too small ({size} bytes); needs at least "
            f"IV(16) + 1 block + HMAC(32) = {MIN_BLOB_LEN}"
        )
        self.size = size


class HmacMismatchError(AttachmentError):
    def __init__(self) -> None:
        super().__init__(
            "HMAC verification failed; blob ciphertext was tampered with or key is wrong"
        )


class DigestMismatchError(AttachmentError):
    def __init__(self) -> None:
        super().__init__(
            "digest verification failed; blob does not match the pointer's SHA-256 digest"
        )


class DecryptError(AttachmentError):
    def __init__(self, reason: str) -> None:
        super().__init__(f"AES-CBC decrypt failed: {reason}")
        self.reason = reason


def build_cdn_url(pointer: AttachmentPointer) -> str:
    """Return the CDN URL for ``pointer`` according to its ``cdn_number``."""
    if pointer.cdn_number == 0:
        return f"https://cdn.signal.org/attachments/{pointer.cdn_id}"
    base = _CDN_HOSTS.get(pointer.cdn_number)
    if base is None:
        raise UnsupportedCdnError(pointer.cdn_number)
    return base + (pointer.cdn_key or "")


def verify_and_decrypt(blob: bytes, attachment_key: bytes, expected_digest: bytes) -> bytes:
    """Verify HMAC and (if given) digest of ``blob``, then return the decrypted plaintext."""
    log.debug(
        "verify_and_decrypt: blob_len=%d key_len=%d expected_digest_len=%d",
        len(blob),
        len(attachment_key),
        len(expected_digest),
    )
    if len(attachment_key) != ATTACHMENT_KEY_LEN:
        raise BadKeyLengthError(ATTACHMENT_KEY_LEN, len(attachment_key))
    if len(blob) < MIN_BLOB_LEN:
        raise BlobTooSmallError(len(blob))

    aes_key = bytes(attachment_key[:AES_KEY_LEN])
    hmac_key = bytes(attachment_key[AES_KEY_LEN:])
    signed_part, trailing_mac = blob[:-MAC_LEN], blob[-MAC_LEN:]

    computed = hmac.new(hmac_key, signed_part, hashlib.sha256).digest()
    if not hmac.compare_digest(computed, bytes(trailing_mac)):
        log.warning("verify_and_decrypt: HMAC mismatch on attachment blob")
        raise HmacMismatchError()

    if expected_digest:
        if not hmac.compare_digest(hashlib.sha256(blob).digest(), bytes(expected_digest)):
            log.warning("verify_and_decrypt: SHA-256 digest mismatch on attachment blob")
            raise DigestMismatchError()

    iv = bytes(signed_part[:IV_LEN])
    ciphertext = bytes(signed_part[IV_LEN:])
    try:
        decryptor = Cipher(algorithms.AES(aes_key), modes.CBC(iv)).decryptor()
        padded = decryptor.update(ciphertext) + decryptor.finalize()
        unpadder = padding.PKCS7(AES_BLOCK_LEN * 8).unpadder()
        return unpadder.update(padded) + unpadder.finalize()
    except ValueError as exc:
        raise DecryptError(str(exc)) from exc


def download_attachment(
    pointer: AttachmentPointer,
    dest: Union[str, PathLike],
    session: Optional[requests.Session] = None,
) -> None:
    """Fetch, verify and decrypt the attachment for ``pointer`` and write it to ``dest``.

    Nothing is written unless HMAC and digest checks pass. When the pointer
    carries ``size``, the bucket padding after that many bytes is dropped.
    """
    log.debug(
        "download_attachment: cdn_number=%d cdn_id=%d cdn_key=%r dest=%s",
        pointer.cdn_number,
        pointer.cdn_id,
        pointer.cdn_key,
        dest,
    )
    if len(pointer.key) != ATTACHMENT_KEY_LEN:
        raise BadKeyLengthError(ATTACHMENT_KEY_LEN, len(pointer.key))

    url = build_cdn_url(pointer)
    http = session if session is not None else requests.Session()
    try:
        response = http.get(url)
        response.raise_for_status()
    except requests.RequestException as exc:
        raise AttachmentError(f"HTTP fetch failed: {exc}") from exc
    blob = response.content
    log.info("download_attachment: fetched %d bytes from %s", len(blob), url)

    plaintext = verify_and_decrypt(blob, pointer.key, pointer.digest)
    if pointer.size is not None and pointer.size <= len(plaintext):
        plaintext = plaintext[: pointer.size]

    Path(dest).write_bytes(plaintext)