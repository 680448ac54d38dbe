from typing import Optional

from typing_extensions import Unpack

from lispcst.lang.interfaces import ILispObject, INamed, IPersistentMap, IWithMeta
from lispcst.lang.obj import PrintSettings


class Symbol(ILispObject, INamed, IWithMeta):
    """A symbol read from source, optionally namespace qualified.

    Metadata does not take part in equality or hashing."""

    __slots__ = ("_name", "_ns", "_meta", "_hash")

    def __init__(
        self, name: str, ns: Optional[str] = None, meta: Optional[IPersistentMap] = None
    ) -> None:
        self._name = name
        self._ns = ns
        self._meta = meta
        self._hash = hash((ns, name))

    def _lrepr(self, **kwargs: Unpack[PrintSettings]) -> str:
        return self._name if self._ns is None else f"{self._ns}/{self._name}"

    @property
    def name(self) -> str:
        return self._name

    @property
    def ns(self) -> Optional[str]:
        return self._ns

    @property
    def meta(self) -> Optional[IPersistentMap]:
        return self._meta

    def with_meta(self, meta: Optional[IPersistentMap]) -> "Symbol":
        return Symbol(self._name, self._ns, meta=meta)

    @property
    def is_gensym_literal(self) -> bool:
        """Return True for an unqualified symbol such as `x#`, which names a
        generated symbol inside a syntax quote."""
        return self._ns is None and len(self._name) > 1 and self._name.endswith("#")

    def __eq__(self, other):
        return self is other or (
            isinstance(other, Symbol)
            and (self._ns, self._name) == (other._ns, other._name)
        )

    def __hash__(self):
        return self._hash


def symbol(
    name: str, ns: Optional[str] = None, meta: Optional[IPersistentMap] = None
) -> Symbol:
    """Create a new symbol."""
    return Symbol(name, ns=ns, meta=meta)


def symbol_from_str(s: str) -> Symbol:
    """Create a new symbol from a possibly namespace-qualified token such as
    `ns/name`.

    The namespace ends at the first slash, so `ns//` names the symbol `/` in
    `ns`."""
    if s == "/" or "/" not in s:
        return Symbol(s)
    ns, name = s.split("/", maxsplit=1)
    return Symbol(name, ns=ns)
