import hashlib

import pytest
import requests
import responses

from signalkit.attachment import verify_and_decrypt
from signalkit.upload import (
    MAX_PLAINTEXT_LEN,
    UploadError,
    UploadForm,
    bucket_padded_size,
    encrypt_attachment_blob,
    upload_attachment_bytes,
    upload_attachment_from_path,
)

SIGNED_URL = "https://upload.example.com/signed"
SESSION_URL = "https://upload.example.com/session/abc"


class _Provider:
    def __init__(self, form):
        self.form = form
        self.calls = []

    def __call__(self, blob_len):
        self.calls.append(blob_len)
        return self.form


def _decrypt_pointer(pointer, blob):
    plain = verify_and_decrypt(blob, pointer.key, pointer.digest)
    return plain[: pointer.size]


def test_bucket_padded_size_floor():
    assert bucket_padded_size(0) == 541
    assert bucket_padded_size(1) == 541
    assert bucket_padded_size(541) == 541


@pytest.mark.parametrize(
    "size,expected",
    [(542, 568), (1000, 1020), (4096, 4201), (65_536, 67_789), (1_000_000, 1_041_743)],
)
def test_bucket_padded_size_known_points(size, expected):
    assert bucket_padded_size(size) == expected


def test_bucket_padded_size_monotonic_and_covers_input():
    prev = 541
    for s in range(500, 20_000, 37):
        b = bucket_padded_size(s)
        assert b >= s
        assert b >= prev
        prev = b


def test_encrypt_blob_round_trips_through_verify_and_decrypt():
    aes_key = bytes([0xA1]) * 32
    hmac_key = bytes([0x9C]) * 32
    iv = bytes([0x71]) * 16
    plaintext = b"phase 6 send-side payload"
    bucket = bucket_padded_size(len(plaintext))
    padded = plaintext + bytes(bucket - len(plaintext))

    blob = encrypt_attachment_blob(padded, aes_key, hmac_key, iv)
    digest = hashlib.sha256(blob).digest()
    decrypted = verify_and_decrypt(blob, aes_key + hmac_key, digest)

    assert decrypted[: len(plaintext)] == plaintext
    assert len(decrypted) == bucket
    assert all(b == 0 for b in decrypted[len(plaintext):])


def test_encrypt_blob_layout():
    iv = bytes(range(16))
    blob = encrypt_attachment_blob(b"x" * 20, b"\x01" * 32, b"\x02" * 32, iv)
    assert blob[:16] == iv
    assert (len(blob) - 16 - 32) % 16 == 0


def test_encrypt_blob_rejects_bad_key_length():
    with pytest.raises(ValueError):
        encrypt_attachment_blob(b"data", b"\x01" * 31, b"\x02" * 32, b"\x00" * 16)


def test_upload_cdn2_round_trip():
    provider = _Provider(UploadForm(cdn=2, key="cdn-key-1", signed_upload_url=SIGNED_URL,
                                    headers=[("x-goog-resumable", "start")]))
    plaintext = b"hello attachment world"
    with responses.RequestsMock() as rsps:
        rsps.add(responses.POST, SIGNED_URL, status=201, headers={"Location": SESSION_URL})
        rsps.add(responses.PUT, SESSION_URL, status=200)
        pointer = upload_attachment_bytes(provider, plaintext, "text/plain", "note.txt",
                                          requests.Session())
        init_req = rsps.calls[0].request
        put_req = rsps.calls[1].request

    assert init_req.headers["x-goog-resumable"] == "start"
    assert put_req.headers["Content-Type"] == "application/octet-stream"
    blob = put_req.body
    assert provider.calls == [len(blob)]
    assert pointer.cdn_number == 2
    assert pointer.cdn_key == "cdn-key-1"
    assert pointer.cdn_id == 0
    assert pointer.size == len(plaintext)
    assert pointer.content_type == "text/plain"
    assert pointer.file_name == "note.txt"
    assert len(pointer.key) == 64
    assert pointer.digest == hashlib.sha256(blob).digest()
    assert _decrypt_pointer(pointer, blob) == plaintext


def test_upload_cdn3_tus_headers():
    provider = _Provider(UploadForm(cdn=3, key="k3", signed_upload_url=SIGNED_URL))
    plaintext = b"tus payload"
    with responses.RequestsMock() as rsps:
        rsps.add(responses.POST, SIGNED_URL, status=201, headers={"Location": SESSION_URL})
        rsps.add(responses.PATCH, SESSION_URL, status=204)
        pointer = upload_attachment_bytes(provider, plaintext)
        init_req = rsps.calls[0].request
        patch_req = rsps.calls[1].request

    blob = patch_req.body
    assert init_req.headers["Tus-Resumable"] == "1.0.0"
    assert init_req.headers["Upload-Length"] == str(len(blob))
    assert patch_req.headers["Upload-Offset"] == "0"
    assert patch_req.headers["Content-Type"] == "application/offset+octet-stream"
    assert pointer.cdn_number == 3
    assert _decrypt_pointer(pointer, blob) == plaintext


def test_upload_session_init_failure():
    provider = _Provider(UploadForm(cdn=2, key="k", signed_upload_url=SIGNED_URL))
    with responses.RequestsMock() as rsps:
        rsps.add(responses.POST, SIGNED_URL, status=500, body="boom")
        with pytest.raises(UploadError) as info:
            upload_attachment_bytes(provider, b"data")
    assert info.value.status == 500
    assert info.value.body == "boom"


def test_upload_missing_location():
    provider = _Provider(UploadForm(cdn=3, key="k", signed_upload_url=SIGNED_URL))
    with responses.RequestsMock() as rsps:
        rsps.add(responses.POST, SIGNED_URL, status=201)
        with pytest.raises(UploadError) as info:
            upload_attachment_bytes(provider, b"data")
    assert info.value.cdn == 3


def test_upload_bytes_failure():
    provider = _Provider(UploadForm(cdn=2, key="k", signed_upload_url=SIGNED_URL))
    with responses.RequestsMock() as rsps:
        rsps.add(responses.POST, SIGNED_URL, status=201, headers={"Location": SESSION_URL})
        rsps.add(responses.PUT, SESSION_URL, status=403, body="denied")
        with pytest.raises(UploadError) as info:
            upload_attachment_bytes(provider, b"data")
    assert info.value.status == 403


def test_upload_unsupported_cdn():
    provider = _Provider(UploadForm(cdn=0, key="k", signed_upload_url=SIGNED_URL))
    with pytest.raises(UploadError) as info:
        upload_attachment_bytes(provider, b"data")
    assert info.value.cdn == 0


def test_upload_rejects_empty():
    provider = _Provider(UploadForm(cdn=2, key="k", signed_upload_url=SIGNED_URL))
    with pytest.raises(UploadError, match="empty"):
        upload_attachment_bytes(provider, b"")
    assert provider.calls == []


def test_upload_rejects_too_large():
    provider = _Provider(UploadForm(cdn=2, key="k", signed_upload_url=SIGNED_URL))
    with pytest.raises(UploadError, match="too large"):
        upload_attachment_bytes(provider, bytes(MAX_PLAINTEXT_LEN + 1))
    assert provider.calls == []


def test_upload_wraps_form_provider_failure():
    def failing(_):
        raise RuntimeError("no form")

    with pytest.raises(UploadError, match="upload form fetch failed"):
        upload_attachment_bytes(failing, b"data")


def test_upload_rejects_bad_form_header():
    provider = _Provider(UploadForm(cdn=2, key="k", signed_upload_url=SIGNED_URL,
                                    headers=[("bad header", "v")]))
    with pytest.raises(UploadError, match="invalid header"):
        upload_attachment_bytes(provider, b"data")


def test_upload_from_path_uses_file_name(tmp_path):
    path = tmp_path / "photo.bin"
    content = b"\x00\x01binary content\xff"
    path.write_bytes(content)
    provider = _Provider(UploadForm(cdn=2, key="k", signed_upload_url=SIGNED_URL))
    with responses.RequestsMock() as rsps:
        rsps.add(responses.POST, SIGNED_URL, status=201, headers={"Location": SESSION_URL})
        rsps.add(responses.PUT, SESSION_URL, status=200)
        pointer = upload_attachment_from_path(provider, path, "application/octet-stream")
        blob = rsps.calls[1].request.body
    assert pointer.file_name == "photo.bin"
    assert _decrypt_pointer(pointer, blob) == content


def test_upload_from_missing_path(tmp_path):
    provider = _Provider(UploadForm(cdn=2, key="k", signed_upload_url=SIGNED_URL))
    with pytest.raises(UploadError, match="filesystem read failed"):
        upload_attachment_from_path(provider, tmp_path / "absent.bin")