# signalkit

Building blocks for a Signal client that runs as a linked secondary
device:

- **Attachments** (`signalkit.attachment`, `signalkit.upload`): the CDN
  cipher format (`IV || AES-256-CBC ciphertext || HMAC-SHA256`), digest
  checking, bucket padding, and CDN download and upload (GCS resumable
  uploads on cdn 2, TUS uploads on cdn 3).
- **REST request models** (`signalkit.api_models`): the JSON bodies the
  chat server expects for linking a device and uploading prekeys, plus
  small credential and response types.
- **Credential helpers** (`signalkit.auth`): device passwords, HTTP Basic
  header values and base64 for request bodies.
- **Envelope helpers** (`signalkit.routing`): stripping Signal's plaintext
  padding, turning service ids (string or binary) into typed recipients,
  and routing an incoming envelope to the ACI or PNI identity.
- **Command-line parsing** (`signalkit.cli`): an `argparse` parser and the
  output-format choice for a client front end.

## Installation

```
pip install signalkit
```

For running the tests:

```
pip install "signalkit[test]"
```

## Attachments

An attachment key is 64 bytes: a 32-byte AES key followed by a 32-byte
HMAC key. `verify_and_decrypt(blob, attachment_key, expected_digest)` checks
the HMAC, checks the SHA-256 digest of the whole blob when one is given (an
empty digest skips that check), and returns the decrypted plaintext:

```python
from signalkit.attachment import verify_and_decrypt, HmacMismatchError

try:
    plaintext = verify_and_decrypt(blob, attachment_key, expected_digest)
except HmacMismatchError:
    print("blob was tampered with or the key is wrong")
```

Every failure raises a subclass of `AttachmentError`: `BadKeyLengthError`,
`BlobTooSmallError`, `HmacMismatchError`, `DigestMismatchError`,
`DecryptError` and, for CDN numbers other than 0, 2 and 3,
`UnsupportedCdnError`.

`AttachmentPointer` describes a hosted attachment (CDN number, `cdn_id` or
`cdn_key`, key, digest, unpadded `size` and display metadata).
`build_cdn_url(pointer)` returns the URL to fetch it from: cdn 0 uses
`cdn_id` on `cdn.signal.org`, cdns 2 and 3 use `cdn_key` on
`cdn2.signal.org` and `cdn3.signal.org`.

`download_attachment(pointer, dest, session=None)` fetches the blob with the
given `requests.Session` (or a fresh one), verifies and decrypts it, cuts
the plaintext to the pointer's `size` when that is set and not larger than
the plaintext, and only then writes it to `dest`. HTTP failures are raised
as `AttachmentError`.

### Uploading

Before encryption the plaintext is zero-padded to a bucket size, so the
ciphertext length does not reveal the exact byte count:

```python
from signalkit.upload import bucket_padded_size, encrypt_attachment_blob

bucket_padded_size(1)      # 541, the smallest bucket
bucket_padded_size(1000)   # 1020
```

`encrypt_attachment_blob(padded_plaintext, aes_key, hmac_key, iv)` builds the
`IV || ciphertext || HMAC` blob and raises `ValueError` for keys or IVs of
the wrong length.

`upload_attachment_bytes(form_provider, plaintext, content_type=None,
file_name=None, session=None)` encrypts under a fresh random key and IV,
calls `form_provider` with the blob length to get an `UploadForm` (`cdn`,
`key`, `signed_upload_url`, `headers`), pushes the blob to the CDN that form
names and returns the `AttachmentPointer` for the outgoing message.
`upload_attachment_from_path(form_provider, path, content_type=None,
session=None)` reads a file and records its name on the pointer.

Problems are raised as `UploadError`, which carries `status`, `body` and
`cdn` where they apply: empty input, input over 16 MiB, a failing form
provider, a bad form header, a CDN other than 2 or 3, a missing `Location`
header, or a non-success HTTP status.

## REST request models

```python
from signalkit.api_models import PreKey, SignedPreKey, PreKeyUploadBody

body = PreKeyUploadBody(
    identity_key="AAEC",
    pre_keys=[PreKey(1, "AAAA"), PreKey(2, "BBBB")],
    signed_pre_key=SignedPreKey(101, "CCCC", "DDDD"),
    pq_last_resort_pre_key=SignedPreKey(102, "EEEE", "FFFF"),
)
body.to_json()
# {"identityKey": ..., "preKeys": [...], "signedPreKey": {...},
#  "pqLastResortPreKey": {...}}
```

Empty `pre_keys` and `pq_pre_keys` are left out of the JSON rather than sent
as empty lists.

`LinkAccountAttributes` holds the registration ids, `fetches_messages`
(default `True`), `capabilities` (default `{"spqr": True}`) and an optional
encrypted device `name`, which is left out of the JSON when absent.
`build_link_device_body(...)` combines a verification code, those attributes
and the ACI and PNI signed and last-resort Kyber prekeys into one link body.

`UploadCredentials(service_id, device_id, password).username()` gives the
HTTP Basic user name `"{service_id}.{device_id}"`. `OneTimePreKeyCounts` and
`DeviceEntry` are plain response records.

## Credential helpers

`signalkit.auth` provides `mint_password()` (24 random bytes as unpadded
base64, 32 characters), `basic_auth_header(user, password)` returning
`"Basic <base64(user:password)>"`, and `b64(data)` for padded standard
base64.

## Envelope routing

```python
from signalkit.routing import (
    strip_signal_padding,
    service_id_to_recipient,
    route_envelope_to_identity,
)

strip_signal_padding(b"payload\x80\x00\x00")   # b"payload"

str(service_id_to_recipient("PNI:1b6a4f3e-0000-4000-8000-000000000000"))
# "pni:1b6a4f3e-0000-4000-8000-000000000000"

kind, local_service_id = route_envelope_to_identity(destination, local_aci, local_pni)
kind.as_query_param()   # "aci" or "pni"
```

A destination equal to the local PNI routes to the PNI; anything else
routes to the ACI. `service_id_binary_to_recipient` accepts the 16-byte
(ACI) and 17-byte (kind-prefixed) binary forms and returns `None` for
anything else; `uuid_from_bytes` formats 16 bytes as a lowercase uuid.
`Recipient` has `aci`, `pni` and `self_sync` constructors and a
`RecipientKind`.

## Command-line parsing

`signalkit.cli.build_parser()` returns an `argparse` parser with global
`--state-dir` and `--log-level` options and the `link`, `send`, `receive`,
`status`, `typing`, `delete` and `download` subcommands.
`format_or_default(explicit, is_tty)` picks the output `Format`: an explicit
choice wins, otherwise text on a terminal and JSON when piped.
`after_help_text()` describes the default state directory and log file.

## What this package does not do

- It builds REST request bodies and credentials but does not send them:
  there are no calls for linking a device, uploading prekeys, reading
  prekey counts or listing devices.
- It has no Signal protocol session handling: no envelope decryption,
  sealed sender, message sending or receive loop.
- It keeps no local state: identities, prekeys and passwords are not
  stored anywhere.
- The argument parser is not connected to any command; installing the
  package adds no executable.