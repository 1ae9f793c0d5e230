"""
oceants.util.hexcode

Conversion of hexadecimal strings (as found in SBE .hex data lines) to
numbers.
"""

import re
import numpy as np

_HEX_PATTERN = re.compile(r"[0-9A-Fa-f]+")


def hex_to_int(hex_str: str) -> float:
    """
    Convert a hexadecimal string to its integer value.

    Works for both even- and odd-length strings ('0A1', 'FF'). Anything that
    is not a plain run of hex digits (whitespace, '0x' prefixes, signs,
    underscores, empty strings) returns NaN rather than raising.

    Returns:
    - The value as an int, or np.nan if the string could not be converted.

    E.g.:

    '0C3500' --> 800000
    'XYZ'    --> nan
    """
    if not isinstance(hex_str, str) or not _HEX_PATTERN.fullmatch(hex_str):
        return np.nan
    return int(hex_str, 16)
