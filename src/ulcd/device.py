"""Display handle: serial connection, line setup, and last-error state.

Wraps pyserial.  A :class:`Display` owns one ``serial.Serial`` object,
the device path and firmware baud-code it was configured with, and the
result of the most recent operation run on it.  Exchanges themselves
live in :mod:`ulcd.exchange`.

Example:
    >>> from ulcd.device import Display
    >>> from ulcd.errors import ErrorCode
    >>> with Display("/dev/ttyUSB0", 13) as display:
    ...     if display.open() != ErrorCode.OK:
    ...         print(display.errmsg)
"""

import logging

import serial

from ulcd.config import ERRMSG_MAX, baud_for_code
from ulcd.errors import DisplayError, ErrorCode
from ulcd.protocol import ExchangeState

log = logging.getLogger(__name__)


def os_error_text(exc: Exception) -> str:
    """Return the OS-level text of *exc*, falling back to ``str(exc)``."""
    strerror = getattr(exc, "strerror", None)
    return strerror if strerror else str(exc)


class Display:
    """Handle for one serial-attached display.

    Creating a handle does not touch hardware.  Configure ``device`` and
    ``baud_code`` (here or later), then call :meth:`open`.  Close with
    :meth:`close` or use the handle as a context manager.

    Only one thread may use a handle at a time, and only one exchange
    may be in flight on it.

    Args:
        device: Serial port device path (e.g. ``"/dev/ttyUSB0"``).
        baud_code: Firmware baud-code from ``ulcd.config.BAUD_TABLE``.

    Raises:
        ValueError: If *baud_code* is given and not supported.
    """

    def __init__(self, device=None, baud_code=None):
        """Initialize an unopened handle with a clear error state."""
        self._ser = None
        self._baud_code = None
        self.device = device
        if baud_code is not None:
            self.baud_code = baud_code
        self.error = ErrorCode.OK
        self.errmsg = ""
        self.os_errno = None
        self.state = ExchangeState.IDLE

    @classmethod
    def from_config(cls, cfg: dict) -> "Display":
        """Build a handle from a :func:`ulcd.config.load_config` dict."""
        return cls(cfg["device"], cfg["baud_code"])

    @property
    def baud_code(self):
        """Firmware baud-code, or None if unset."""
        return self._baud_code

    @baud_code.setter
    def baud_code(self, code):
        baud_for_code(code)
        self._baud_code = code

    @property
    def baudrate(self):
        """Host line speed for :attr:`baud_code`, or None if unset."""
        if self._baud_code is None:
            return None
        return baud_for_code(self._baud_code)

    @property
    def transport(self):
        """The underlying ``serial.Serial`` object, or None when closed."""
        return self._ser

    @property
    def is_open(self) -> bool:
        return self._ser is not None

    # -- Error state ---------------------------------------------------------

    def set_error(self, code, fmt=None, *args, os_errno=None) -> ErrorCode:
        """Record the outcome of the current operation.

        *fmt* is formatted %-style with *args* and cut to
        :data:`ulcd.config.ERRMSG_MAX` characters.  A None or empty
        *fmt* clears the message while still recording *code*.

        Returns:
            ErrorCode: *code*, so failure paths can ``return`` the call.
        """
        self.error = ErrorCode(code)
        self.os_errno = os_errno
        if not fmt:
            self.errmsg = ""
        else:
            msg = fmt % args if args else fmt
            self.errmsg = msg[:ERRMSG_MAX]
        if self.error != ErrorCode.OK:
            log.debug("%s: %s %s", self.device, self.error.name, self.errmsg)
        return self.error

    def clear_error(self) -> None:
        """Reset the error fields at the start of an operation."""
        self.set_error(ErrorCode.OK)

    def raise_for_error(self) -> None:
        """Raise :class:`DisplayError` if the last operation failed."""
        if self.error != ErrorCode.OK:
            raise DisplayError(self.error, self.errmsg, self.os_errno)

    # -- Lifecycle -----------------------------------------------------------

    def open(self) -> ErrorCode:
        """Open the serial device and configure the line.

        Refuses without touching the port when the device path or baud
        code is unset.  If line setup fails the port is closed again.

        Returns:
            ErrorCode: ``OK``, ``ERR_OPEN`` or ``ERR_IO``.
        """
        self.clear_error()
        if not self.device:
            return self.set_error(ErrorCode.ERR_OPEN, "No serial device configured")
        if self._baud_code is None:
            return self.set_error(ErrorCode.ERR_OPEN, "No baud code configured")

        if self.open_device() != ErrorCode.OK:
            return self.error
        if self.configure_line() != ErrorCode.OK:
            self._close_port()
            return self.error

        log.info("opened %s at %d baud", self.device, self.baudrate)
        return ErrorCode.OK

    def open_device(self) -> ErrorCode:
        """Open the port at :attr:`device` for reading and writing.

        pyserial opens with ``O_RDWR | O_NOCTTY | O_NONBLOCK`` and waits
        in ``select`` instead, so reads and writes still block from the
        caller's side.  A handle that is already open is refused without
        touching its port.
        """
        self.clear_error()
        if self._ser is not None:
            return self.set_error(ErrorCode.ERR_OPEN, "Serial device already open")
        ser = serial.Serial()
        ser.port = self.device
        try:
            ser.open()
        except (serial.SerialException, OSError) as exc:
            return self.set_error(
                ErrorCode.ERR_OPEN,
                "Unable to open serial device: %s", os_error_text(exc),
                os_errno=getattr(exc, "errno", None),
            )
        self._ser = ser
        return ErrorCode.OK

    def configure_line(self) -> ErrorCode:
        """Apply speed, 8N1 framing and raw blocking I/O to the open port.

        No flow control; reads block until at least one byte arrives
        with no inter-byte timeout.  Pending input is discarded once the
        settings are in place.
        """
        self.clear_error()
        if self._ser is None:
            return self.set_error(ErrorCode.ERR_IO, "Serial device is not open")
        try:
            self._ser.apply_settings({
                "baudrate": self.baudrate,
                "bytesize": serial.EIGHTBITS,
                "parity": serial.PARITY_NONE,
                "stopbits": serial.STOPBITS_ONE,
                "xonxoff": False,
                "rtscts": False,
                "dsrdtr": False,
                "timeout": None,
                "write_timeout": None,
                "inter_byte_timeout": None,
            })
            self._ser.reset_input_buffer()
        except (serial.SerialException, OSError, ValueError) as exc:
            return self.set_error(
                ErrorCode.ERR_IO,
                "Unable to configure serial device: %s", os_error_text(exc),
                os_errno=getattr(exc, "errno", None),
            )
        return ErrorCode.OK

    def close(self) -> None:
        """Close the serial port if it is open."""
        if self._ser is not None:
            self._close_port()
            log.info("closed %s", self.device)

    def _close_port(self) -> None:
        ser, self._ser = self._ser, None
        ser.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    def __repr__(self):
        return "Display(device={!r}, baud_code={!r}, open={})".format(
            self.device, self._baud_code, self.is_open
        )
