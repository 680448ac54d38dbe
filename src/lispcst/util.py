from collections.abc import Iterable, Sequence
from typing import Callable, Generic, Optional, TypeVar

T = TypeVar("T")
U = TypeVar("U")


class Maybe(Generic[T]):
    """Wrap a value which may be None so lookups can be chained with fallbacks."""

    __slots__ = ("_inner",)

    def __init__(self, inner: Optional[T]) -> None:
        self._inner = inner

    @property
    def value(self) -> Optional[T]:
        return self._inner

    def map(self, f: Callable[[T], U]) -> "Maybe[U]":
        """Apply `f` to the wrapped value, if there is one."""
        return Maybe(None if self._inner is None else f(self._inner))

    def or_else(self, else_fn: Callable[[], T]) -> T:
        """Return the wrapped value or the result of calling `else_fn`."""
        return else_fn() if self._inner is None else self._inner

    def or_else_get(self, else_v: T) -> T:
        return else_v if self._inner is None else self._inner


def partition(coll: Sequence[T], n: int) -> Iterable[tuple[T, ...]]:
    """Yield successive `n`-tuples of `coll`. The last tuple is shorter when the
    length of `coll` is not a multiple of `n`."""
    assert n > 0
    for i in range(0, len(coll), n):
        yield tuple(coll[i : i + n])
