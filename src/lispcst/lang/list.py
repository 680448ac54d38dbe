from typing import Optional, TypeVar

from pyrsistent import PList, plist
from typing_extensions import Unpack

from lispcst.lang.interfaces import (
    ILispObject,
    IPersistentList,
    IPersistentMap,
    IWithMeta,
    seq_equals,
)
from lispcst.lang.obj import PrintSettings, seq_lrepr

T = TypeVar("T")


class PersistentList(IPersistentList[T], ILispObject, IWithMeta):
    """The logical value of a list form, backed by a pyrsistent.PList.

    Build lists with the l() and list() functions below."""

    __slots__ = ("_inner", "_meta")

    def __init__(self, wrapped: "PList[T]", meta: Optional[IPersistentMap] = None):
        self._inner = wrapped
        self._meta = meta

    def __bool__(self):
        return True

    def __eq__(self, other):
        return self is other or seq_equals(self, other)

    def __getitem__(self, item):
        if isinstance(item, slice):
            return PersistentList(plist(tuple(self._inner)[item]))
        return tuple(self._inner)[item]

    def __hash__(self):
        return hash(tuple(self._inner))

    def __iter__(self):
        return iter(self._inner)

    def __len__(self):
        return len(self._inner)

    def _lrepr(self, **kwargs: Unpack[PrintSettings]) -> str:
        return seq_lrepr(self._inner, "(", ")", **kwargs)

    @property
    def meta(self) -> Optional[IPersistentMap]:
        return self._meta

    def with_meta(self, meta: Optional[IPersistentMap]) -> "PersistentList[T]":
        return PersistentList(self._inner, meta=meta)


EMPTY: PersistentList = PersistentList(plist())


def list(members, meta=None) -> PersistentList:  # pylint:disable=redefined-builtin
    """Create a list of `members`."""
    return PersistentList(plist(members), meta=meta)


def l(*members, meta=None) -> PersistentList:  # noqa
    """Create a list of the arguments."""
    return PersistentList(plist(members), meta=meta)
