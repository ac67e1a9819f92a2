"""Flow address normalization utilities."""

import re

ADDRESS_LENGTH = 16
_HEX_RE = re.compile(r"^[0-9a-f]+$")


def canonical_address(value: str) -> str:
    """
    Return value as "0x" + 16 lowercase hex digits.

    Accepts with or without the 0x prefix, any case, and underscores as
    digit separators (as Cadence source allows). Raises ValueError otherwise.
    """
    if not isinstance(value, str):
        raise ValueError(f"address must be a string, got {type(value).__name__}")
    s = value.strip().lower().replace("_", "")
    if s.startswith("0x"):
        s = s[2:]
    if not s or len(s) > ADDRESS_LENGTH or not _HEX_RE.match(s):
        raise ValueError(f"invalid flow address {value!r}")
    return "0x" + s.zfill(ADDRESS_LENGTH)

