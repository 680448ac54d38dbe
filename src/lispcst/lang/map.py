from collections.abc import Iterable, Mapping
from typing import Optional, TypeVar, Union

from immutables import Map as _Map
from typing_extensions import Unpack

from lispcst.lang.interfaces import ILispObject, IPersistentMap, IWithMeta
from lispcst.lang.obj import PrintSettings, lrepr
from lispcst.util import partition

K = TypeVar("K")
V = TypeVar("V")


class PersistentMap(IPersistentMap[K, V], ILispObject, IWithMeta):
    """The logical value of a map form, backed by an immutables.Map.

    Build maps with the map() and hash_map() functions below."""

    __slots__ = ("_inner", "_meta")

    def __init__(self, m: "_Map[K, V]", meta: Optional[IPersistentMap] = None):
        self._inner = m
        self._meta = meta

    def __bool__(self):
        return True

    def __contains__(self, item):
        return item in self._inner

    def __eq__(self, other):
        if self is other:
            return True
        if not isinstance(other, Mapping):
            return NotImplemented
        return len(self) == len(other) and all(
            k in other and other[k] == v for k, v in self._inner.items()
        )

    def __getitem__(self, item):
        return self._inner[item]

    def __hash__(self):
        return hash(self._inner)

    def __iter__(self):
        return iter(self._inner)

    def __len__(self):
        return len(self._inner)

    def _lrepr(self, **kwargs: Unpack[PrintSettings]) -> str:
        kwargs["human_readable"] = False
        entries = (
            f"{lrepr(k, **kwargs)} {lrepr(v, **kwargs)}"
            for k, v in self._inner.items()
        )
        return "{" + " ".join(entries) + "}"

    @property
    def meta(self) -> Optional[IPersistentMap]:
        return self._meta

    def with_meta(self, meta: Optional[IPersistentMap]) -> "PersistentMap[K, V]":
        return PersistentMap(self._inner, meta=meta)

    def _update(self, f) -> "PersistentMap[K, V]":
        with self._inner.mutate() as m:
            f(m)
            return PersistentMap(m.finish(), meta=self._meta)

    def assoc(self, *kvs) -> "PersistentMap[K, V]":
        def _assoc(m):
            for k, v in partition(kvs, 2):
                m[k] = v

        return self._update(_assoc)

    def dissoc(self, *ks: K) -> "PersistentMap[K, V]":
        def _dissoc(m):
            for k in ks:
                m.pop(k, None)

        return self._update(_dissoc)

    def cons(self, *elems: Mapping[K, V]) -> "PersistentMap[K, V]":
        def _merge(m):
            for elem in elems:
                for k, v in elem.items():
                    m[k] = v

        return self._update(_merge)

    def val_at(self, k: K, default: Optional[V] = None) -> Optional[V]:
        return self._inner.get(k, default)


def _from_entries(
    entries: Union[Mapping[K, V], Iterable[tuple[K, V]]],
    meta: Optional[IPersistentMap] = None,
) -> PersistentMap[K, V]:
    return PersistentMap(_Map(entries), meta=meta)


EMPTY: PersistentMap = _from_entries(())


def map(  # pylint:disable=redefined-builtin
    kvs: Mapping[K, V], meta: Optional[IPersistentMap] = None
) -> PersistentMap[K, V]:
    """Create a map with the entries of `kvs`."""
    # immutables.Map iterates a Mapping argument by its keys only
    return _from_entries(kvs.items(), meta=meta)


def hash_map(*pairs) -> PersistentMap:
    """Create a map from alternating keys and values. Later keys replace
    earlier ones."""
    return _from_entries(partition(pairs, 2))  # type: ignore[arg-type]
