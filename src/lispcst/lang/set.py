from collections.abc import Iterable
from collections.abc import Set as _PySet
from typing import AbstractSet, Optional, TypeVar

from immutables import Map as _Map
from typing_extensions import Unpack

from lispcst.lang.interfaces import (
    ILispObject,
    IPersistentMap,
    IPersistentSet,
    IWithMeta,
)
from lispcst.lang.obj import PrintSettings, seq_lrepr

T = TypeVar("T")


class PersistentSet(IPersistentSet[T], ILispObject, IWithMeta):
    """The logical value of a set form, backed by the keys of an immutables.Map.

    Build sets with the s() and set() functions below."""

    __slots__ = ("_inner", "_meta")

    def __init__(self, m: "_Map[T, T]", meta: Optional[IPersistentMap] = None):
        self._inner = m
        self._meta = meta

    @classmethod
    def _from_iterable(cls, members: Iterable[T]) -> "PersistentSet[T]":
        return PersistentSet(_Map((m, m) for m in members))

    def __bool__(self):
        return True

    def __contains__(self, item):
        return item in self._inner

    def __eq__(self, other):
        if self is other:
            return True
        if not isinstance(other, AbstractSet):
            return NotImplemented
        return _PySet.__eq__(self, other)

    def __hash__(self):
        return self._hash()

    def __iter__(self):
        return iter(self._inner.keys())

    def __len__(self):
        return len(self._inner)

    def _lrepr(self, **kwargs: Unpack[PrintSettings]) -> str:
        return seq_lrepr(self._inner.keys(), "#{", "}", **kwargs)

    @property
    def meta(self) -> Optional[IPersistentMap]:
        return self._meta

    def with_meta(self, meta: Optional[IPersistentMap]) -> "PersistentSet[T]":
        return PersistentSet(self._inner, meta=meta)

    def cons(self, *elems: T) -> "PersistentSet[T]":
        with self._inner.mutate() as m:
            for elem in elems:
                m[elem] = elem
            return PersistentSet(m.finish(), meta=self._meta)


EMPTY: PersistentSet = PersistentSet._from_iterable(())


def set(  # pylint:disable=redefined-builtin
    members: Iterable[T], meta: Optional[IPersistentMap] = None
) -> PersistentSet[T]:
    """Create a set of `members`."""
    return PersistentSet._from_iterable(members).with_meta(meta)


def s(*members: T, meta: Optional[IPersistentMap] = None) -> PersistentSet[T]:
    """Create a set of the arguments."""
    return set(members, meta=meta)
