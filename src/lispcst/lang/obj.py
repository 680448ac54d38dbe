"""Canonical printer for reader values.

:py:func:`lrepr` prints any value the reader can produce as source text which
reads back to an equal value. Syntax node emission falls back to it for every
literal form."""

import datetime
import math
import uuid
from abc import ABC, abstractmethod
from collections.abc import Iterable
from decimal import Decimal
from fractions import Fraction
from functools import singledispatch
from re import Pattern
from typing import Any

from typing_extensions import TypedDict, Unpack

PRINT_DUP = False


class PrintSettings(TypedDict, total=False):
    human_readable: bool
    print_dup: bool


class LispObject(ABC):
    """Base class for values printed in their Lisp representation.

    Use :py:class:`lispcst.lang.interfaces.ILispObject` in new code; this class
    lives here so that :py:func:`lrepr` can dispatch on it."""

    __slots__ = ()

    def __repr__(self):
        return lrepr(self)

    def __str__(self):
        return lrepr(self, human_readable=True)

    @abstractmethod
    def _lrepr(self, **kwargs: Unpack[PrintSettings]) -> str:
        raise NotImplementedError()


def seq_lrepr(
    items: Iterable[Any], start: str, end: str, **kwargs: Unpack[PrintSettings]
) -> str:
    """Print the elements of a collection between `start` and `end`.

    Elements are always printed readably, even for a human readable collection."""
    kwargs["human_readable"] = False
    return start + " ".join(lrepr(o, **kwargs) for o in items) + end


@singledispatch
def lrepr(  # pylint: disable=unused-argument
    o: Any, human_readable: bool = False, print_dup: bool = PRINT_DUP
) -> str:
    """Return the Lisp source representation of `o`.

    If `human_readable` is True, strings print without quotes or escapes. If
    `print_dup` is True, values print with the suffix that preserves their type
    on reading, such as the `M` of an exact decimal.

    Values of unregistered types print as their Python `repr`."""
    return repr(o)


@lrepr.register(LispObject)
def _lrepr_lisp_obj(
    o: LispObject, human_readable: bool = False, print_dup: bool = PRINT_DUP
) -> str:
    return o._lrepr(human_readable=human_readable, print_dup=print_dup)


@lrepr.register(bool)
def _lrepr_bool(o: bool, **_) -> str:
    return "true" if o else "false"


@lrepr.register(type(None))
def _lrepr_nil(_: None, **__) -> str:
    return "nil"


_STR_ESCAPES = {
    '"': '\\"',
    "\\": "\\\\",
    "\b": "\\b",
    "\f": "\\f",
    "\n": "\\n",
    "\r": "\\r",
    "\t": "\\t",
}


def _escape_char(c: str) -> str:
    if (escaped := _STR_ESCAPES.get(c)) is not None:
        return escaped
    if ord(c) < 0x20 or ord(c) == 0x7F:
        return f"\\u{ord(c):04x}"
    return c


@lrepr.register(str)
def _lrepr_str(o: str, human_readable: bool = False, **_) -> str:
    if human_readable:
        return o
    return '"' + "".join(map(_escape_char, o)) + '"'


@lrepr.register(float)
def _lrepr_float(o: float, **_) -> str:
    if math.isnan(o):
        return "##NaN"
    if math.isinf(o):
        return "##Inf" if o > 0 else "##-Inf"
    return repr(o)


@lrepr.register(Decimal)
def _lrepr_decimal(o: Decimal, print_dup: bool = PRINT_DUP, **_) -> str:
    return f"{o}M" if print_dup else str(o)


@lrepr.register(Fraction)
def _lrepr_fraction(o: Fraction, **_) -> str:
    return f"{o.numerator}/{o.denominator}"


@lrepr.register(Pattern)
def _lrepr_pattern(o: Pattern, **_) -> str:
    return f'#"{o.pattern}"'


@lrepr.register(datetime.datetime)
def _lrepr_datetime(o: datetime.datetime, **_) -> str:
    return f'#inst "{o.isoformat()}"'


@lrepr.register(uuid.UUID)
def _lrepr_uuid(o: uuid.UUID, human_readable: bool = False, **_) -> str:
    return str(o) if human_readable else f'#uuid "{o}"'

