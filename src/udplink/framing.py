"""Length-prefixed message framing used by the command-line tools.

Frame layout: a 4-byte big-endian unsigned length, then that many
bytes of UTF-8 text.  The transport itself never frames anything;
only the CLI applies this.

Example:
    >>> from udplink.framing import frame_message, unframe_message
    >>> raw = frame_message("hi")
    >>> raw.hex(' ')
    '00 00 00 02 68 69'
    >>> unframe_message(raw)
    'hi'
"""

import struct

PREFIX_LEN = 4

_PREFIX = struct.Struct(">I")


def frame_message(text: str) -> bytes:
    """Encode *text* as UTF-8 behind a 4-byte length prefix."""
    body = text.encode("utf-8")
    return _PREFIX.pack(len(body)) + body


def unframe_message(data: bytes) -> str:
    """Decode a length-prefixed frame back to text.

    Raises:
        ValueError: If the frame is shorter than its prefix claims, has
            trailing bytes, or is not valid UTF-8.
    """
    if len(data) < PREFIX_LEN:
        raise ValueError("frame too short: %d bytes" % len(data))
    (length,) = _PREFIX.unpack_from(data)
    body = data[PREFIX_LEN:]
    if len(body) != length:
        raise ValueError(
            "length mismatch: prefix says %d, got %d" % (length, len(body))
        )
    try:
        return body.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise ValueError("frame is not valid UTF-8: %s" % exc) from exc
