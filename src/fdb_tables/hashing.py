"""Bucket placement hash used by the game client for string keys."""

from __future__ import annotations

_MASK = 0xFFFFFFFF


def _signed_byte(value: int) -> int:
    return value - 0x100 if value & 0x80 else value


def sfhash(data: bytes) -> int:
    """Return Paul Hsieh's SuperFastHash of ``data`` as an unsigned 32-bit int.

    The hash is seeded with the input length and consumes 16-bit
    little-endian words, four bytes per round. A trailing single byte is
    sign-extended, as the reference C implementation reads it through a
    ``signed char``. The empty input hashes to 0.
    """
    length = len(data)
    if length == 0:
        return 0

    h = length
    rem = length & 3
    end = length - rem

    for i in range(0, end, 4):
        h = (h + (data[i] | data[i + 1] << 8)) & _MASK
        tmp = (((data[i + 2] | data[i + 3] << 8) << 11) ^ h) & _MASK
        h = ((h << 16) ^ tmp) & _MASK
        h = (h + (h >> 11)) & _MASK

    if rem == 3:
        h = (h + (data[end] | data[end + 1] << 8)) & _MASK
        h ^= (h << 16) & _MASK
        h ^= (_signed_byte(data[end + 2]) << 18) & _MASK
        h = (h + (h >> 11)) & _MASK
    elif rem == 2:
        h = (h + (data[end] | data[end + 1] << 8)) & _MASK
        h ^= (h << 11) & _MASK
        h = (h + (h >> 17)) & _MASK
    elif rem == 1:
        h = (h + _signed_byte(data[end])) & _MASK
        h ^= (h << 10) & _MASK
        h = (h + (h >> 1)) & _MASK

    # Final avalanche
    h ^= (h << 3) & _MASK
    h = (h + (h >> 5)) & _MASK
    h ^= (h << 4) & _MASK
    h = (h + (h >> 17)) & _MASK
    h ^= (h << 25) & _MASK
    h = (h + (h >> 6)) & _MASK
    return h
