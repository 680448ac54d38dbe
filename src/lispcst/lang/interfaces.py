from abc import ABC, abstractmethod
from collections.abc import Mapping, Sequence
from typing import AbstractSet, Generic, Optional, TypeVar

from typing_extensions import Self

from lispcst.lang.obj import LispObject as _LispObject

T = TypeVar("T")
K = TypeVar("K")
V = TypeVar("V")

ILispObject = _LispObject


class IMeta(ABC):
    """``IMeta`` values may carry a map of metadata."""

    __slots__ = ()

    @property
    @abstractmethod
    def meta(self) -> Optional["IPersistentMap"]:
        raise NotImplementedError()


class IWithMeta(IMeta):
    """``IWithMeta`` values can be copied with new metadata.

    ``^`` annotations are only accepted on ``IWithMeta`` targets."""

    __slots__ = ()

    @abstractmethod
    def with_meta(self, meta: Optional["IPersistentMap"]) -> Self:
        raise NotImplementedError()


class INamed(ABC):
    """``INamed`` values are identifiers with a name and an optional namespace."""

    __slots__ = ()

    @property
    @abstractmethod
    def name(self) -> str:
        raise NotImplementedError()

    @property
    @abstractmethod
    def ns(self) -> Optional[str]:
        raise NotImplementedError()


class ILookup(Generic[K, V], ABC):
    __slots__ = ()

    @abstractmethod
    def val_at(self, k: K, default: Optional[V] = None) -> Optional[V]:
        raise NotImplementedError()


class IPersistentList(Sequence[T]):
    """Marker interface for the logical value of a list form."""

    __slots__ = ()


class IPersistentVector(Sequence[T]):
    """Marker interface for the logical value of a vector form."""

    __slots__ = ()


class IPersistentMap(Mapping[K, V], ILookup[K, V]):
    """``IPersistentMap`` values return a modified copy from every update."""

    __slots__ = ()

    @abstractmethod
    def assoc(self, *kvs) -> Self:
        raise NotImplementedError()

    @abstractmethod
    def dissoc(self, *ks: K) -> Self:
        raise NotImplementedError()

    @abstractmethod
    def cons(self, *elems: Mapping[K, V]) -> Self:
        raise NotImplementedError()


class IPersistentSet(AbstractSet[T]):
    """``IPersistentSet`` values return a modified copy from every update."""

    __slots__ = ()

    @abstractmethod
    def cons(self, *elems: T) -> Self:
        raise NotImplementedError()


def seq_equals(s1: Sequence, s2) -> bool:
    """Return True if `s2` is a list or vector with the same elements as `s1`,
    in the same order."""
    if not isinstance(s2, (IPersistentList, IPersistentVector)):
        return NotImplemented
    return len(s1) == len(s2) and all(e1 == e2 for e1, e2 in zip(s1, s2))
