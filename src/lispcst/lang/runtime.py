import contextlib
import logging
import threading
from collections.abc import Iterator
from typing import Any, Callable, Optional

import attr

from lispcst.lang import keyword as kw
from lispcst.lang import map as lmap
from lispcst.lang import set as lset
from lispcst.lang import symbol as sym
from lispcst.lang.interfaces import IPersistentMap, IPersistentVector
from lispcst.util import Maybe

logger = logging.getLogger(__name__)

CORE_NS = "clojure.core"
CORE_NS_SYM = sym.symbol(CORE_NS)
DEFAULT_NS = "user"

NS_BINDING = "ns"
READ_EVAL_BINDING = "read_eval"

# Value of the `read_eval` binding which disallows reading entirely
READ_EVAL_UNKNOWN = kw.keyword("unknown")

READER_COND_PLATFORM_FEATURE_KW = kw.keyword("clj")
READER_COND_RESERVED_FEATURES = lset.s(kw.keyword("else"), kw.keyword("none"))


class RuntimeException(Exception):
    pass


NamespaceMap = lmap.PersistentMap[sym.Symbol, "Namespace"]


class Namespace:
    """Namespaces name the current unit of code being read and hold aliases to other
    namespaces.

    The reader consults the current namespace (and its aliases) to resolve
    auto-resolving keywords such as `::kw` and `::alias/kw`."""

    _NAMESPACES: NamespaceMap = lmap.EMPTY
    _NAMESPACES_LOCK = threading.Lock()

    __slots__ = ("_name", "_lock", "_aliases")

    def __init__(self, name: sym.Symbol) -> None:
        self._name = name
        self._lock = threading.RLock()
        self._aliases: NamespaceMap = lmap.EMPTY

    def __repr__(self):
        return f"#<Namespace {self._name}>"

    @property
    def name(self) -> str:
        return self._name.name

    @property
    def aliases(self) -> NamespaceMap:
        """Map of alias symbols to the namespaces they stand for."""
        with self._lock:
            return self._aliases

    def add_alias(self, namespace: "Namespace", *aliases: sym.Symbol) -> None:
        """Make each of `aliases` stand for `namespace` within this namespace."""
        with self._lock:
            self._aliases = self._aliases.cons({alias: namespace for alias in aliases})

    def get_alias(self, alias: sym.Symbol) -> "Optional[Namespace]":
        with self._lock:
            return self._aliases.val_at(alias)

    def resolve_ns(self, ns_name: str) -> "Optional[Namespace]":
        """Return the Namespace named by `ns_name` as seen from this namespace,
        checking this namespace's aliases before the global namespace registry."""
        ns_sym = sym.symbol(ns_name)
        return Maybe(self.get_alias(ns_sym)).or_else(lambda: Namespace.get(ns_sym))

    @classmethod
    def get_or_create(cls, name: sym.Symbol) -> "Namespace":
        """Return the registered namespace named `name`, registering a new one on
        first use."""
        with cls._NAMESPACES_LOCK:
            ns = cls._NAMESPACES.val_at(name)
            if ns is None:
                logger.debug(f"Creating namespace {name}")
                ns = Namespace(name)
                cls._NAMESPACES = cls._NAMESPACES.assoc(name, ns)
            return ns

    @classmethod
    def get(cls, name: sym.Symbol) -> "Optional[Namespace]":
        """Return the registered namespace named `name`, if any."""
        with cls._NAMESPACES_LOCK:
            return cls._NAMESPACES.val_at(name)

    @classmethod
    def remove(cls, name: sym.Symbol) -> Optional["Namespace"]:
        """Unregister and return the namespace named `name`.

        The core namespace cannot be unregistered."""
        if name == CORE_NS_SYM:
            raise ValueError("Cannot remove the core namespace")
        with cls._NAMESPACES_LOCK:
            ns = cls._NAMESPACES.val_at(name)
            cls._NAMESPACES = cls._NAMESPACES.dissoc(name)
            return ns


Frame = IPersistentMap[str, Any]

_ROOT_BINDINGS: Frame = lmap.map(
    {
        NS_BINDING: Namespace.get_or_create(sym.symbol(DEFAULT_NS)),
        READ_EVAL_BINDING: True,
    }
)


class _BindingStack(threading.local):
    def __init__(self):
        self._bindings: list[Frame] = [_ROOT_BINDINGS]

    def get(self, name: str) -> Any:
        return self._bindings[-1].val_at(name)

    def push(self, frame: Frame) -> None:
        self._bindings.append(self._bindings[-1].cons(frame))

    def pop(self) -> Frame:
        assert len(self._bindings) > 1, "Cannot pop the root binding frame"
        return self._bindings.pop()


_THREAD_BINDINGS = _BindingStack()


@contextlib.contextmanager
def bindings(**values: Any):
    """Context manager for temporarily changing the thread-local values of the
    reader's dynamic settings (`ns` and `read_eval`)."""
    m = lmap.map(values)
    logger.debug(f"Binding thread-local values for: {', '.join(m.keys())}")
    try:
        _THREAD_BINDINGS.push(m)
        yield
    finally:
        _THREAD_BINDINGS.pop()
        logger.debug(f"Reset thread-local bindings for: {', '.join(m.keys())}")


@contextlib.contextmanager
def ns_bindings(ns_name: str) -> Iterator[Namespace]:
    """Read within the namespace named `ns_name`, creating it if needed."""
    ns = Namespace.get_or_create(sym.symbol(ns_name))
    with bindings(**{NS_BINDING: ns}):
        yield ns


def get_current_ns() -> Namespace:
    """Return the namespace forms are currently read in on this thread."""
    return _THREAD_BINDINGS.get(NS_BINDING)


def get_read_eval() -> Any:
    """Return the allow-eval policy for the current thread: True, False or
    `READ_EVAL_UNKNOWN`."""
    return _THREAD_BINDINGS.get(READ_EVAL_BINDING)


def is_read_eval_allowed() -> bool:
    return get_read_eval() is True


###################
# Record Registry #
###################


@attr.frozen
class RecordType:
    """A constructible record type, named by a fully qualified dotted name such as
    `my.app.Point`.

    `fields` gives the positional constructor arity; `from_map` builds an instance
    from a map keyed by keywords."""

    name: str
    fields: tuple[str, ...]
    factory: Callable[..., Any]

    def from_vector(self, v: IPersistentVector) -> Any:
        if len(v) != len(self.fields):
            raise RuntimeException(
                f"Unexpected number of constructor arguments to {self.name}: "
                f"got {len(v)}"
            )
        return self.factory(*v)

    def from_map(self, m: IPersistentMap) -> Any:
        args = {}
        for k, v in m.items():
            if not isinstance(k, kw.Keyword):
                raise RuntimeException(
                    f"Unreadable record form: key must be of type Keyword, got {k}"
                )
            args[k.name] = v
        unknown = sorted(set(args) - set(self.fields))
        if unknown:
            raise RuntimeException(
                f"Record {self.name} has no field(s): {', '.join(unknown)}"
            )
        return self.factory(**{f: args.get(f) for f in self.fields})


RecordResolver = Callable[[sym.Symbol], Optional[RecordType]]

_RECORDS: IPersistentMap[str, RecordType] = lmap.EMPTY
_RECORDS_LOCK = threading.Lock()


def register_record(name: str, cls: type) -> RecordType:
    """Register the attrs class `cls` as the record type named by the fully
    qualified dotted `name`."""
    global _RECORDS

    if not attr.has(cls):
        raise TypeError(f"Record type {name} must be an attrs class")
    rectype = RecordType(
        name=name, fields=tuple(a.name for a in attr.fields(cls)), factory=cls
    )
    with _RECORDS_LOCK:
        _RECORDS = _RECORDS.assoc(name, rectype)
    logger.debug(f"Registered record type {name}")
    return rectype


def unregister_record(name: str) -> None:
    global _RECORDS

    with _RECORDS_LOCK:
        _RECORDS = _RECORDS.dissoc(name)


def find_record(name: sym.Symbol) -> Optional[RecordType]:
    """Default record resolver, returning the registered record type named by the
    symbol `name`, if one exists."""
    with _RECORDS_LOCK:
        return _RECORDS.val_at(str(name))
