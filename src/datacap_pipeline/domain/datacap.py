"""DataCap unit conversion.

On-chain allowances are raw byte counts, either as big-endian bytes (as
decoded from message params) or as decimal strings. The pipeline works in
PiB.
"""

from __future__ import annotations

PIB_IN_BYTES = 1_125_899_906_842_624


def to_byte_count(datacap: bytes | str | int) -> int:
    if isinstance(datacap, int):
        return datacap
    if isinstance(datacap, (bytes, bytearray)):
        return int.from_bytes(datacap, "big") if datacap else 0
    return int(str(datacap).strip())


def bytes_to_pib(datacap: bytes | str | int) -> float:
    """Convert a raw allowance to PiB, keeping the fractional part."""
    whole, remainder = divmod(to_byte_count(datacap), PIB_IN_BYTES)
    return whole + remainder / PIB_IN_BYTES
