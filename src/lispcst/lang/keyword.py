import threading
from typing import Optional, Tuple

from typing_extensions import Unpack

from lispcst.lang import map as lmap
from lispcst.lang.interfaces import ILispObject, INamed, IPersistentMap
from lispcst.lang.obj import PrintSettings

_LOCK = threading.Lock()
_INTERN: IPersistentMap[Tuple[str, Optional[str]], "Keyword"] = lmap.EMPTY


class Keyword(ILispObject, INamed):
    """An interned keyword such as `:name` or `:ns/name`.

    Keywords never carry metadata; create them with :py:func:`keyword` so equal
    keywords are also identical."""

    __slots__ = ("_name", "_ns", "_hash")

    def __init__(self, name: str, ns: Optional[str] = None) -> None:
        self._name = name
        self._ns = ns
        self._hash = hash_kw(name, ns)

    @property
    def name(self) -> str:
        return self._name

    @property
    def ns(self) -> Optional[str]:
        return self._ns

    def _lrepr(self, **kwargs: Unpack[PrintSettings]) -> str:
        return f":{self._name}" if self._ns is None else f":{self._ns}/{self._name}"

    def __eq__(self, other):
        return self is other or (
            isinstance(other, Keyword)
            and (self._name, self._ns) == (other._name, other._ns)
        )

    def __hash__(self):
        return self._hash

    def __reduce__(self):
        return keyword, (self._name, self._ns)


def hash_kw(name: str, ns: Optional[str] = None) -> int:
    """Return the hash a keyword named by `name` and `ns` would have."""
    return hash((name, ns))


def keyword(name: str, ns: Optional[str] = None) -> Keyword:
    """Return the keyword named by `name` in the optional namespace `ns`,
    interning it on first use."""
    global _INTERN

    with _LOCK:
        found = _INTERN.val_at((name, ns))
        if found is not None:
            return found
        kw = Keyword(name, ns=ns)
        _INTERN = _INTERN.assoc((name, ns), kw)
        return kw
