from collections.abc import Iterable
from typing import Optional, TypeVar

from pyrsistent import PVector, pvector
from typing_extensions import Unpack

from lispcst.lang.interfaces import (
    ILispObject,
    IPersistentMap,
    IPersistentVector,
    IWithMeta,
    seq_equals,
)
from lispcst.lang.obj import PrintSettings, seq_lrepr

T = TypeVar("T")


class PersistentVector(IPersistentVector[T], ILispObject, IWithMeta):
    """The logical value of a vector form, backed by a pyrsistent.PVector.

    Build vectors with the v() and vector() functions below."""

    __slots__ = ("_inner", "_meta")

    def __init__(
        self, wrapped: "PVector[T]", meta: Optional[IPersistentMap] = None
    ) -> None:
        self._inner = wrapped
        self._meta = meta

    def __bool__(self):
        return True

    def __eq__(self, other):
        return self is other or seq_equals(self, other)

    def __getitem__(self, item):
        if isinstance(item, slice):
            return PersistentVector(self._inner[item])
        return self._inner[item]

    def __hash__(self):
        return hash(tuple(self._inner))

    def __iter__(self):
        return iter(self._inner)

    def __len__(self):
        return len(self._inner)

    def _lrepr(self, **kwargs: Unpack[PrintSettings]) -> str:
        return seq_lrepr(self._inner, "[", "]", **kwargs)

    @property
    def meta(self) -> Optional[IPersistentMap]:
        return self._meta

    def with_meta(self, meta: Optional[IPersistentMap]) -> "PersistentVector[T]":
        return PersistentVector(self._inner, meta=meta)


EMPTY: PersistentVector = PersistentVector(pvector())


def vector(
    members: Iterable[T], meta: Optional[IPersistentMap] = None
) -> PersistentVector[T]:
    """Create a vector of `members`."""
    return PersistentVector(pvector(members), meta=meta)


def v(*members: T, meta: Optional[IPersistentMap] = None) -> PersistentVector[T]:
    """Create a vector of the arguments."""
    return PersistentVector(pvector(members), meta=meta)
