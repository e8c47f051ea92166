"""Helpers for decoding boundary node log frames and principal ids."""

import base64
import binascii
import logging
import re
import zlib
from typing import Optional, Union

from ic_bn_logs.errors import DecodeError

logger = logging.getLogger(__name__)

# CSI sequences (colors, cursor movement), OSC sequences and two-byte escapes
_ANSI_ESCAPE = re.compile(
    rb"\x1b\[[0-?]*[ -/]*[@-~]"
    rb"|\x1b\][^\x07\x1b]*(?:\x07|\x1b\\)"
    rb"|\x1b[@-Z\\-_]"
)

_PRINCIPAL_TEXT = re.compile(r"^[a-z2-7]{5}(?:-[a-z2-7]{5})*(?:-[a-z2-7]{1,5})?$")
_MAX_PRINCIPAL_BYTES = 29


def strip_ansi(data: bytes) -> bytes:
    """Remove ANSI escape sequences from raw bytes."""
    return _ANSI_ESCAPE.sub(b"", data)


def decode_frame(frame: Union[bytes, bytearray, memoryview, str]) -> Optional[str]:
    """
    Turn one websocket frame into a sanitized log line.

    Log lines arrive as binary frames. Text frames are not log output and
    are skipped like any other unexpected message.

    Args:
        frame: Binary or text frame as delivered by the transport

    Returns:
        The log line, or None for text frames and when nothing printable remains

    Raises:
        DecodeError: If the frame is of an unsupported type or not valid UTF-8
    """
    if isinstance(frame, str):
        logger.debug("Received unexpected text message: %r", frame[:80])
        return None
    if not isinstance(frame, (bytes, bytearray, memoryview)):
        raise DecodeError(f"Unexpected frame type: {type(frame).__name__}")
    raw = bytes(frame)

    sanitized = strip_ansi(raw)
    try:
        text = sanitized.decode("utf-8")
    except UnicodeDecodeError as e:
        raise DecodeError(f"Received {len(raw)} bytes, not valid UTF-8: {e}") from e

    text = text.rstrip("\r\n")
    if not text.strip():
        return None
    return text


def principal_to_bytes(text: str) -> bytes:
    """
    Decode a principal (canister or subnet id) from its textual form.

    The text is lowercase base32 in dash-separated groups of five; the
    decoded bytes start with a big-endian CRC32 of the remaining bytes.

    Raises:
        ValueError: If the text is malformed or the checksum does not match
    """
    if not text or not _PRINCIPAL_TEXT.match(text):
        raise ValueError(f"Malformed principal: {text!r}")

    compact = text.replace("-", "").upper()
    padded = compact + "=" * (-len(compact) % 8)
    try:
        decoded = base64.b32decode(padded)
    except binascii.Error as e:
        raise ValueError(f"Malformed principal: {text!r}") from e

    if len(decoded) < 4:
        raise ValueError(f"Principal too short: {text!r}")
    checksum, body = decoded[:4], decoded[4:]
    if len(body) > _MAX_PRINCIPAL_BYTES:
        raise ValueError(f"Principal too long: {text!r}")
    if int.from_bytes(checksum, "big") != zlib.crc32(body):
        raise ValueError(f"Principal checksum mismatch: {text!r}")
    return body


def is_valid_canister_id(text: str) -> bool:
    """Check a canister id in textual principal form."""
    try:
        principal_to_bytes(text)
    except ValueError:
        return False
    return True
