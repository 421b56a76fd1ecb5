"""Wire-level constants and parameter encoding for the uLCD serial protocol.

Every command argument and every returned word is a 16-bit unsigned
parameter sent most-significant byte first.  The device answers each
command with a single ACK or NAK byte, optionally followed by a payload
whose length the caller must know in advance.

Example:
    >>> from ulcd.protocol import pack_param, pack_params, unpack_param
    >>> pack_param(0x1234).hex(' ')
    '12 34'
    >>> pack_params([0x0026, 13]).hex(' ')
    '00 26 00 0d'
    >>> unpack_param(b"\\x12\\x34")
    4660
"""

import enum
import struct

# -- Protocol constants ------------------------------------------------------

ACK = 0x06
NAK = 0x15

# Size in bytes of one packed parameter.
PARAM_SIZE = 2

# setbaudWait: followed by the baud-code; ACK arrives at the new rate.
CMD_SET_BAUD = 0x0026

_PARAM = struct.Struct(">H")


class ExchangeState(enum.Enum):
    """Phase of the exchange most recently run on a handle."""

    IDLE = "idle"
    SENDING = "sending"
    AWAITING_ACK = "awaiting_ack"
    AWAITING_DATA = "awaiting_data"
    DONE = "done"
    FAILED = "failed"


# -- Encoding ----------------------------------------------------------------


def pack_param(value: int) -> bytes:
    """Pack a 16-bit parameter into two bytes, MSB first.

    Args:
        value: Unsigned parameter (int, 0-65535).

    Returns:
        bytes: High byte followed by low byte.

    Raises:
        ValueError: If *value* does not fit in 16 unsigned bits.

    Example:
        >>> pack_param(480).hex(' ')
        '01 e0'
    """
    try:
        return _PARAM.pack(value)
    except struct.error as exc:
        raise ValueError(
            "parameter must be in range 0-65535, got {!r}".format(value)
        ) from exc


def pack_params(values) -> bytes:
    """Pack an ordered sequence of parameters.

    The result is the concatenation of :func:`pack_param` over *values*,
    so it is always ``2 * len(values)`` bytes long.

    Example:
        >>> pack_params([1, 2, 3]).hex(' ')
        '00 01 00 02 00 03'
    """
    return b"".join(pack_param(v) for v in values)


# -- Decoding ----------------------------------------------------------------


def unpack_param(data) -> int:
    """Reconstruct a 16-bit parameter from its two-byte MSB-first form.

    Only the first two bytes of *data* are used.

    Raises:
        ValueError: If *data* is shorter than two bytes.
    """
    if len(data) < PARAM_SIZE:
        raise ValueError(
            "parameter needs {} bytes, got {}".format(PARAM_SIZE, len(data))
        )
    return _PARAM.unpack_from(data)[0]


def hexdump(data) -> str:
    """Format *data* for debug traces, e.g. ``'3 bytes: 00 26 0d'``."""
    return "{} bytes: {}".format(len(data), bytes(data).hex(" "))
