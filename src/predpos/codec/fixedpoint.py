"""Fixed-point codec - 32-byte hex words <-> exact Decimal values.

On-chain share quantities are int256 values scaled by 10**18. Decoding shifts the
decimal exponent instead of dividing, so no value is ever rounded.
"""

from __future__ import annotations

import re
from decimal import Context, Decimal, InvalidOperation

from predpos.errors import DecodeError

FIXED_DECIMALS = 18
FIXED_ONE = 10**FIXED_DECIMALS
WORD_HEX_DIGITS = 64

# 256-bit integers have at most 78 digits; leave room for sums of many of them.
FIXED_CONTEXT = Context(prec=100)

_WORD_BITS = 256
_HEX_WORD = re.compile(r"[0-9a-fA-F]{1,64}")
_HEX_PAYLOAD = re.compile(r"(?:[0-9a-fA-F]{64})*")


def strip_hex_prefix(s: str) -> str:
    return s[2:] if s[:2] in ("0x", "0X") else s


def word_to_int(word: str, signed: bool = True) -> int:
    """Parse a 32-byte hex word. Signed words use two's complement."""
    if not isinstance(word, str):
        raise DecodeError(f"expected hex string, got {type(word).__name__}")
    digits = strip_hex_prefix(word)
    if not _HEX_WORD.fullmatch(digits):
        raise DecodeError(f"not a 32-byte hex word: {word!r}")
    value = int(digits, 16)
    if signed and value >= 1 << (_WORD_BITS - 1):
        value -= 1 << _WORD_BITS
    return value


def unfix(word: str) -> Decimal:
    """Decode a fixed-point hex word to its exact Decimal value."""
    return Decimal(word_to_int(word)).scaleb(-FIXED_DECIMALS, context=FIXED_CONTEXT)


def fix(value: Decimal | int | str) -> str:
    """Encode a decimal value as a 0x-prefixed fixed-point hex word."""
    try:
        d = Decimal(str(value)) if not isinstance(value, Decimal) else value
        scaled = d.scaleb(FIXED_DECIMALS, context=FIXED_CONTEXT)
    except InvalidOperation as e:
        raise DecodeError(f"not a decimal value: {value!r}") from e
    if not scaled.is_finite() or scaled != scaled.to_integral_value():
        raise DecodeError(f"{value!r} has more than {FIXED_DECIMALS} fractional digits")
    n = int(scaled)
    bound = 1 << (_WORD_BITS - 1)
    if not -bound <= n < bound:
        raise DecodeError(f"{value!r} does not fit in a signed 256-bit word")
    if n < 0:
        n += 1 << _WORD_BITS
    return "0x" + format(n, f"0{WORD_HEX_DIGITS}x")


def unmarshal(data: str) -> list[str]:
    """Split an ABI-encoded log payload into 0x-prefixed 32-byte words."""
    if not isinstance(data, str):
        raise DecodeError(f"expected hex payload, got {type(data).__name__}")
    digits = strip_hex_prefix(data)
    if not _HEX_PAYLOAD.fullmatch(digits):
        raise DecodeError(f"payload is not a sequence of 32-byte words: {data[:80]!r}")
    return ["0x" + digits[i : i + WORD_HEX_DIGITS] for i in range(0, len(digits), WORD_HEX_DIGITS)]
