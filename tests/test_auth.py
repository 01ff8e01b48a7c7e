import base64

from signalkit.auth import b64, basic_auth_header, mint_password


def test_mint_password_returns_unique_base64():
    a = mint_password()
    b = mint_password()
    assert a != b
    assert len(a) == 32


def test_mint_password_decodes_to_24_bytes():
    minted = mint_password()
    assert "=" not in minted
    assert len(base64.b64decode(minted)) == 24


def test_basic_auth_header_encodes_user_and_password():
    password = "password"
    header = basic_auth_header("user@example.com", password)
    assert header.startswith("Basic ")
    decoded = base64.b64decode(header[len("Basic "):])
    assert decoded == b"user@example.com:password"


def test_basic_auth_header_known_value():
    password = "password"
    assert basic_auth_header("user", password) == "Basic dXNlcjpwYXNzd29yZA=="


def test_b64_round_trip():
    raw = b"hello signal"
    encoded = b64(raw)
    assert base64.b64decode(encoded) == raw


def test_b64_is_padded():
    assert b64(b"\x00") == "AA=="
    assert b64(b"") == ""