"""Numeric value construction for the reader.

The reader only recognizes the shape of a numeric token; this module turns the
matched digit strings into values. Integers are plain Python `int` values when
they fit in a signed 64 bit word and :py:class:`BigInt` values otherwise, or
when the literal carries the `N` suffix."""

import decimal
import functools
from fractions import Fraction
from typing import Callable, Union

from typing_extensions import Unpack

from lispcst.lang.obj import PrintSettings, lrepr

LONG_MIN = -(2**63)
LONG_MAX = 2**63 - 1

LispInteger = Union[int, "BigInt"]
LispRational = Union[LispInteger, Fraction]


class BigInt(int):
    """An arbitrary precision integer.

    `BigInt` values compare and hash equal to the `int` of the same magnitude;
    the type only records that the value was read (or must be printed) as an
    arbitrary precision literal."""

    __slots__ = ()

    def __repr__(self):
        return f"{int(self)}N"


@lrepr.register(BigInt)
def _lrepr_bigint(o: BigInt, **_: Unpack[PrintSettings]) -> str:
    return f"{int(o)}N"


def _normalize_fraction_result(
    f: Callable[..., Fraction],
) -> Callable[..., LispRational]:
    """Decorator simplifying `fractions.Fraction` values with a denominator of 1 to
    an integer."""

    @functools.wraps(f)
    def _normalize(*args) -> LispRational:
        result = f(*args)
        return (
            integer_value(result.numerator, force_big=False)
            if result.denominator == 1
            else result
        )

    return _normalize


def integer_value(n: int, force_big: bool = False) -> LispInteger:
    """Return `n` as a fixed width integer if it fits in 64 signed bits, otherwise
    (or if `force_big` is True) as a :py:class:`BigInt`."""
    if force_big or not LONG_MIN <= n <= LONG_MAX:
        return BigInt(n)
    return int(n)


def integer(
    digits: str, base: int = 10, negate: bool = False, force_big: bool = False
) -> LispInteger:
    """Create an integer from a string of digits in the given base.

    Raise `ValueError` if `digits` are not valid in `base` or `base` is not
    between 2 and 36."""
    n = int(digits, base)
    return integer_value(-n if negate else n, force_big=force_big)


@_normalize_fraction_result
def ratio(numerator: str, denominator: str) -> Fraction:
    """Create a reduced ratio from numerator and denominator digit strings.

    Ratios which reduce to a whole number are returned as integers. Raise
    `ZeroDivisionError` if the denominator is zero."""
    return Fraction(int(numerator), int(denominator))


def decimal_from_str(decimal_str: str) -> decimal.Decimal:
    """Create an exact Decimal from a numeric string."""
    return decimal.Decimal(decimal_str)


def float_from_str(float_str: str) -> float:
    """Create a binary floating point value from a numeric string."""
    return float(float_str)
