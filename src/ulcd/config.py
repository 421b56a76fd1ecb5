"""Project-wide configuration constants and config-file loading.

Holds the baud-rate table shared by line setup and baud negotiation,
plus the TOML loader used by callers that keep the device settings in
a file.

Example:
    >>> from ulcd.config import load_config, baud_for_code
    >>> cfg = load_config("display.toml")
    >>> cfg["device"]
    '/dev/ttyUSB0'
    >>> baud_for_code(cfg["baud_code"])
    115200
"""

import tomllib

# Firmware baud-code -> host line speed (bits per second), sorted by
# baud-code.  Only rates the host serial driver supports are listed;
# the display firmware knows more codes than these.
BAUD_TABLE = (
    (0, 110),
    (1, 300),
    (2, 600),
    (3, 1200),
    (4, 2400),
    (5, 4800),
    (6, 9600),
    (8, 19200),
    (10, 38400),
    (12, 57600),
    (13, 115200),
    (18, 500000),
)

_BAUD_BY_CODE = dict(BAUD_TABLE)

# Power-on default of the display (9600 baud).
DEFAULT_BAUD_CODE = 6

# Upper bound on the length of an error message kept on a handle.
ERRMSG_MAX = 256


def is_supported_baud_code(code) -> bool:
    """Check whether *code* has an entry in :data:`BAUD_TABLE`."""
    if not isinstance(code, int) or isinstance(code, bool):
        return False
    return code in _BAUD_BY_CODE


def baud_for_code(code: int) -> int:
    """Return the host line speed for firmware baud-code *code*.

    Raises:
        ValueError: If *code* is not in :data:`BAUD_TABLE`.

    Example:
        >>> baud_for_code(13)
        115200
    """
    if not is_supported_baud_code(code):
        raise ValueError(
            "unsupported baud code {!r} (supported: {})".format(
                code, ", ".join(str(c) for c, _ in BAUD_TABLE)
            )
        )
    return _BAUD_BY_CODE[code]


def load_config(path: str) -> dict:
    """Read a TOML config file and validate the ``[display]`` table.

    Keys: ``device`` (str, required) and ``baud_code`` (int, optional,
    defaults to :data:`DEFAULT_BAUD_CODE`).

    Returns:
        dict: ``{"device": str, "baud_code": int}``.

    Raises:
        ValueError: If the table or a required key is missing, a key has
            the wrong type, or the baud code is not supported.

    Example:
        >>> load_config("display.toml")
        {'device': '/dev/ttyUSB0', 'baud_code': 13}
    """
    with open(path, "rb") as f:
        raw = tomllib.load(f)

    section = raw.get("display")
    if not isinstance(section, dict):
        raise ValueError("missing required [display] table")

    _require_str(section, "device")
    if "baud_code" in section:
        _require_int(section, "baud_code")
        baud_code = section["baud_code"]
    else:
        baud_code = DEFAULT_BAUD_CODE
    baud_for_code(baud_code)

    return {"device": section["device"], "baud_code": baud_code}


def _require_str(raw: dict[str, object], key: str) -> None:
    """Validate that *key* exists in *raw* and is a non-empty str."""
    if key not in raw:
        raise ValueError("missing required key: display.%s" % key)
    if not isinstance(raw[key], str):
        raise ValueError(
            "display.%s must be str, got %s" % (key, type(raw[key]).__name__)
        )
    if not raw[key]:
        raise ValueError("display.%s must not be empty" % key)


def _require_int(raw: dict[str, object], key: str) -> None:
    """Validate that *key* in *raw* is an int (bools rejected)."""
    value = raw[key]
    if not isinstance(value, int) or isinstance(value, bool):
        raise ValueError(
            "display.%s must be int, got %s" % (key, type(value).__name__)
        )
