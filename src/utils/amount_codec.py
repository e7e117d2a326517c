"""Lossless conversion between decimal-string amounts and the contract's
two-word uint256 encoding.

Every precision-sensitive conversion goes through here. Callers hold either
the decimal string (display/input) or a ``Uint256`` (contract calls); floats
never appear in between.
"""

import re
from typing import Tuple, Union

from core.constants import UINT128_BITS, UINT128_MAX, UINT256_MAX
from core.exceptions import InvalidAmount
from schemas.ledger import Uint256

_DECIMAL_LITERAL = re.compile(r"[0-9]+", re.ASCII)


def parse_amount(value: str) -> int:
    if not isinstance(value, str) or not _DECIMAL_LITERAL.fullmatch(value):
        raise InvalidAmount(
            f"{value!r} is not a non-negative integer literal", operation="encode"
        )
    amount = int(value)
    if amount > UINT256_MAX:
        raise InvalidAmount(f"{value} does not fit in 256 bits", operation="encode")
    return amount


def encode(value: str) -> Uint256:
    amount = parse_amount(value)
    return Uint256(low=amount & UINT128_MAX, high=amount >> UINT128_BITS)


def decode(amount: Union[Uint256, Tuple[int, int]]) -> str:
    if isinstance(amount, Uint256):
        low, high = amount.low, amount.high
    else:
        low, high = amount
    for word in (low, high):
        if isinstance(word, bool) or not isinstance(word, int):
            raise InvalidAmount(f"word {word!r} is not an integer", operation="decode")
        if word < 0 or word > UINT128_MAX:
            raise InvalidAmount(f"word {word} exceeds 128 bits", operation="decode")
    return str((high << UINT128_BITS) | low)
