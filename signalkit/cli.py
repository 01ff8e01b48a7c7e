"""Command-line interface definition: the argument parser and output-format choice."""

from __future__ import annotations

import argparse
import enum
from importlib import metadata
from pathlib import Path
from typing import Optional

import platformdirs

PROG = "signal-rs"
_APP_DIR = "signal-rs"

_ABOUT = "Signal client - link as a secondary device, receive and send messages"
_LONG_ABOUT = (
    "Signal client. Link as a secondary device, receive Signal\n"
    "envelopes, and send a 1:1 text message. Note-to-Self is the primary\n"
    "use case for ingest."
)


class Format(enum.Enum):
    """Output format: line-delimited JSON or human-readable text."""

    JSON = "json"
    TEXT = "text"

    def __str__(self) -> str:
        return self.value


def format_or_default(explicit: Optional[Format], is_tty: bool) -> Format:
    """Return ``explicit`` if given, else text on a terminal and JSON otherwise."""
    if explicit is not None:
        return explicit
    return Format.TEXT if is_tty else Format.JSON


def after_help_text() -> str:
    """Describe the default state directory and log file locations."""
    state_dir = platformdirs.user_data_path(roaming=True) / _APP_DIR
    log_path = platformdirs.user_data_path() / _APP_DIR / "logs" / "signal-rs.log"
    return f"PATHS:\n  State dir: {state_dir}\n  Log file:  {log_path}"


def _version() -> str:
    try:
        return metadata.version("signalkit")
    except metadata.PackageNotFoundError:
        return "0.0.0"


def _non_negative_int(text: str) -> int:
    try:
        value = int(text)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid integer: {text!r}") from None
    if value < 0:
        raise argparse.ArgumentTypeError(f"must be non-negative: {text!r}")
    return value


def _format(text: str) -> Format:
    try:
        return Format(text.lower())
    except ValueError:
        raise argparse.ArgumentTypeError(
            f"invalid format {text!r} (choose from json, text)"
        ) from None


def _global_options(parser: argparse.ArgumentParser, defaults: bool) -> None:
    parser.add_argument(
        "--state-dir",
        type=Path,
        default=None if defaults else argparse.SUPPRESS,
        help="Override the state directory.",
    )
    parser.add_argument(
        "--log-level",
        default="info" if defaults else argparse.SUPPRESS,
        help="Log level: error, warn, info, debug, trace. Default: info.",
    )


def _format_option(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--format",
        type=_format,
        default=None,
        metavar="{json,text}",
        help="Output format. Omit to auto-detect: json when piped, text on a terminal.",
    )


def build_parser() -> argparse.ArgumentParser:
    """Build the top-level argument parser with every subcommand."""
    parser = argparse.ArgumentParser(
        prog=PROG,
        description=_LONG_ABOUT,
        epilog=after_help_text(),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {_version()}")
    _global_options(parser, defaults=True)

    sub = parser.add_subparsers(dest="command", metavar="COMMAND")
    sub.required = True

    def add(name: str, help_text: str) -> argparse.ArgumentParser:
        p = sub.add_parser(name, help=help_text, description=help_text)
        _global_options(p, defaults=False)
        return p

    link = add("link", "Link this host as a secondary device on an existing account.")
    link.add_argument(
        "--name", default="signal-rs", help="Name shown in the primary's Linked Devices list."
    )

    send = add("send", "Send a 1:1 text message.")
    send.add_argument("--to", required=True, help="Recipient: self or aci:<uuid>.")
    send.add_argument(
        "--attachment",
        dest="attachments",
        action="append",
        type=Path,
        default=[],
        metavar="PATH",
        help="Attach a file; repeat for several.",
    )
    send.add_argument("message", help="Message body; may be empty.")

    receive = add("receive", "Run the receive loop and print incoming envelopes.")
    receive.add_argument("--once", action="store_true", help="Print one envelope and exit.")
    _format_option(receive)

    status = add("status", "Print local identity state and the linked-devices list.")
    _format_option(status)

    typing = add("typing", "Send a typing indicator to a peer.")
    typing.add_argument("--to", required=True, help="Recipient: aci:<uuid>.")
    action = typing.add_mutually_exclusive_group(required=True)
    action.add_argument("--start", action="store_true", help="Send typing-started.")
    action.add_argument("--stop", action="store_true", help="Send typing-stopped.")

    delete = add("delete", "Send a remote-delete request for a sent message.")
    delete.add_argument("--to", required=True, help="Recipient: aci:<uuid>.")
    delete.add_argument(
        "--target-timestamp",
        type=_non_negative_int,
        required=True,
        help="Millisecond send-timestamp of the message to delete.",
    )

    download = add("download", "Download and decrypt an attachment from the CDN.")
    download.add_argument(
        "--cdn-id", type=_non_negative_int, default=0, help="cdn_id (cdn_number 0)."
    )
    download.add_argument("--cdn-key", default=None, help="cdn_key (cdn_number 2 or 3).")
    download.add_argument(
        "--cdn-number", type=_non_negative_int, required=True, help="0, 2, or 3."
    )
    download.add_argument("--key", required=True, help="64-byte attachment key, base64.")
    download.add_argument(
        "--digest",
        default="",
        help="32-byte SHA-256 digest, base64; empty skips the digest check.",
    )
    download.add_argument(
        "--size",
        type=_non_negative_int,
        default=None,
        help="Unpadded byte count; truncates the decrypted output.",
    )
    download.add_argument("--dest", type=Path, required=True, help="Output path.")

    return parser