"""Command / acknowledge exchanges with the display.

One exchange writes a command, blocks for the single ACK or NAK byte
the firmware answers with, and, for commands that return data, reads
a payload of a size fixed by the command.  Writes and reads loop until
the whole buffer has been transferred because the serial driver may
accept or deliver fewer bytes than asked for.

Every function takes an opened :class:`ulcd.device.Display`, resets
its error state, and records a failure on it before returning the
:class:`ulcd.errors.ErrorCode`.  Nothing here retries; the caller
decides whether a failed exchange is worth repeating.

Example:
    >>> from ulcd.exchange import send_recv_ack, send_recv_ack_word
    >>> from ulcd.protocol import pack_params
    >>> send_recv_ack(display, pack_params([0xFFCD]))
    <ErrorCode.OK: 0>
    >>> send_recv_ack_word(display, pack_params([0xFFA6, 0]))
    (<ErrorCode.OK: 0>, 479)
"""

import logging

import serial

from ulcd.config import baud_for_code
from ulcd.device import os_error_text
from ulcd.errors import ErrorCode
from ulcd.protocol import (
    ACK,
    CMD_SET_BAUD,
    NAK,
    PARAM_SIZE,
    ExchangeState,
    hexdump,
    pack_params,
    unpack_param,
)

log = logging.getLogger(__name__)

_SERIAL_ERRORS = (serial.SerialException, OSError)


def _fail(display, code, fmt, *args, os_errno=None) -> ErrorCode:
    display.state = ExchangeState.FAILED
    return display.set_error(code, fmt, *args, os_errno=os_errno)


def _io_error(display, what, exc) -> ErrorCode:
    return _fail(
        display, ErrorCode.ERR_IO,
        "Unable to %s: %s", what, os_error_text(exc),
        os_errno=getattr(exc, "errno", None),
    )


def _require_open(display) -> ErrorCode:
    if not display.is_open:
        return _fail(display, ErrorCode.ERR_IO, "Serial device is not open")
    return ErrorCode.OK


# -- Raw transfers -----------------------------------------------------------


def _write_all(display, data) -> ErrorCode:
    ser = display.transport
    view = memoryview(bytes(data))
    total = 0
    while total < len(view):
        try:
            sent = ser.write(view[total:])
        except _SERIAL_ERRORS as exc:
            return _io_error(display, "send data to device", exc)
        if not sent:
            return _fail(
                display, ErrorCode.ERR_IO,
                "Unable to send data to device: wrote 0 of %d remaining bytes",
                len(view) - total,
            )
        total += sent
    log.debug("send: %s", hexdump(data))
    return ErrorCode.OK


def _read_exact(display, size: int, what: str):
    """Read exactly *size* bytes, or record ERR_IO and return None."""
    ser = display.transport
    buf = bytearray()
    while len(buf) < size:
        try:
            chunk = ser.read(size - len(buf))
        except _SERIAL_ERRORS as exc:
            _io_error(display, what, exc)
            return None
        if not chunk:
            _fail(
                display, ErrorCode.ERR_IO,
                "Unable to %s: device returned no data after %d of %d bytes",
                what, len(buf), size,
            )
            return None
        buf += chunk
    return bytes(buf)


# -- Exchange steps ----------------------------------------------------------


def send(display, data) -> ErrorCode:
    """Write the whole command buffer *data* to the display.

    Stops at the first write error and records ``ERR_IO``; a write
    that accepts nothing is treated the same way.

    Returns:
        ErrorCode: ``OK`` or ``ERR_IO``.
    """
    display.clear_error()
    if _require_open(display) != ErrorCode.OK:
        return display.error
    display.state = ExchangeState.SENDING
    return _write_all(display, data)


def recv_ack(display) -> ErrorCode:
    """Block for the single reply byte that follows every command.

    ACK is success, NAK is ``ERR_NAK``, anything else is
    ``ERR_UNKNOWN``.  A failed read is ``ERR_IO``.
    """
    display.clear_error()
    if _require_open(display) != ErrorCode.OK:
        return display.error
    display.state = ExchangeState.AWAITING_ACK
    reply = _read_exact(display, 1, "read reply from device")
    if reply is None:
        return display.error
    log.debug("read ack: %s", hexdump(reply))

    if reply[0] == ACK:
        return ErrorCode.OK
    if reply[0] == NAK:
        return _fail(display, ErrorCode.ERR_NAK, "Device sent NAK instead of ACK")
    return _fail(
        display, ErrorCode.ERR_UNKNOWN,
        "Device sent unknown reply 0x%02X instead of ACK", reply[0],
    )


def send_recv_ack(display, data) -> ErrorCode:
    """Send *data* and wait for the ACK.

    Nothing is read when the send fails; its error is returned as is.
    """
    if send(display, data) != ErrorCode.OK:
        return display.error
    if recv_ack(display) != ErrorCode.OK:
        return display.error
    display.state = ExchangeState.DONE
    return ErrorCode.OK


def send_recv_ack_data(display, data, size: int):
    """Send *data*, wait for the ACK, then read a *size*-byte payload.

    Args:
        display: Opened display handle.
        data: Command bytes.
        size: Number of payload bytes the command is known to return.

    Returns:
        tuple: ``(ErrorCode, bytes)``; the payload is ``b""`` unless the
            code is ``OK``.
    """
    if size < 0:
        raise ValueError("payload size must be >= 0, got {}".format(size))
    if send(display, data) != ErrorCode.OK:
        return display.error, b""
    if recv_ack(display) != ErrorCode.OK:
        return display.error, b""

    display.state = ExchangeState.AWAITING_DATA
    payload = _read_exact(display, size, "read data from device")
    if payload is None:
        return display.error, b""
    log.debug("read: %s", hexdump(payload))
    display.state = ExchangeState.DONE
    return ErrorCode.OK, payload


def send_recv_ack_word(display, data, decode: bool = True):
    """Run an exchange whose reply payload is one 16-bit word.

    The two payload bytes are always drained from the line.  With
    *decode* false the value is not unpacked and None is returned in
    its place.

    Returns:
        tuple: ``(ErrorCode, int | None)``.
    """
    code, payload = send_recv_ack_data(display, data, PARAM_SIZE)
    if code != ErrorCode.OK or not decode:
        return code, None
    return code, unpack_param(payload)


# -- Baud negotiation --------------------------------------------------------


def _restore_rate(display, ser, rate) -> None:
    """Put the host line back to *rate* after a failed negotiation.

    The original failure stays on the handle unless the restore fails
    too; then the line speed is unknown and that is what gets recorded.
    """
    try:
        ser.baudrate = rate
    except _SERIAL_ERRORS as exc:
        _fail(
            display, ErrorCode.ERR_IO,
            "%s; line speed unknown, unable to restore %d baud: %s",
            display.errmsg, rate, os_error_text(exc),
            os_errno=getattr(exc, "errno", None),
        )


def negotiate_baud(display, code: int) -> ErrorCode:
    """Switch the display and the host line to baud-code *code*.

    The firmware acknowledges the set-baud command at the new speed, so
    the host waits for the command to leave the UART, retunes the line,
    and only then reads the ACK.  On any failure after the retune the
    host goes back to the previous speed.

    Raises:
        ValueError: If *code* is not in ``ulcd.config.BAUD_TABLE``; no
            bytes are sent in that case.
    """
    new_rate = baud_for_code(code)
    old_rate = display.baudrate
    if send(display, pack_params([CMD_SET_BAUD, code])) != ErrorCode.OK:
        return display.error

    ser = display.transport
    try:
        ser.flush()
        ser.baudrate = new_rate
    except _SERIAL_ERRORS as exc:
        _io_error(display, "change line speed", exc)
        _restore_rate(display, ser, old_rate)
        return display.error

    if recv_ack(display) != ErrorCode.OK:
        _restore_rate(display, ser, old_rate)
        return display.error

    display.baud_code = code
    display.state = ExchangeState.DONE
    log.info("%s: now at %d baud", display.device, new_rate)
    return ErrorCode.OK
