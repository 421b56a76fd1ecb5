"""Error classification shared by the handle and the exchange layer."""

import enum


class ErrorCode(enum.IntEnum):
    """Result of the most recent operation on a display handle."""

    OK = 0
    ERR_OPEN = 1
    ERR_IO = 2
    ERR_NAK = 3
    ERR_UNKNOWN = 4


class DisplayError(Exception):
    """A failed display operation, raised only on request.

    Protocol calls report failures through their return value and the
    handle's ``error``/``errmsg``/``os_errno`` fields.  Callers that
    prefer exceptions call ``Display.raise_for_error()``.

    Args:
        code: The :class:`ErrorCode` of the failure.
        message: Human-readable detail.
        os_errno: OS error number behind the failure, if any.
    """

    def __init__(self, code, message, os_errno=None):
        super().__init__(message)
        self.code = ErrorCode(code)
        self.message = message
        self.os_errno = os_errno

    def __str__(self):
        return "{}: {}".format(self.code.name, self.message)
