import attr
import pytest

from lispcst.lang import runtime as runtime
from lispcst.lang import symbol as sym


@pytest.fixture(params=[3, 4, 5])
def pickle_protocol(request) -> int:
    return request.param


@pytest.fixture
def test_ns() -> str:
    return "lispcst.reader-test"


@pytest.fixture
def test_ns_sym(test_ns: str) -> sym.Symbol:
    return sym.symbol(test_ns)


@pytest.fixture
def ns(test_ns: str, test_ns_sym: sym.Symbol) -> runtime.Namespace:
    runtime.Namespace.get_or_create(test_ns_sym)
    with runtime.ns_bindings(test_ns) as ns:
        try:
            yield ns
        finally:
            runtime.Namespace.remove(test_ns_sym)


@attr.frozen
class Point:
    x: int
    y: int


@pytest.fixture
def point_record() -> runtime.RecordType:
    rectype = runtime.register_record("lispcst.test.Point", Point)
    try:
        yield rectype
    finally:
        runtime.unregister_record("lispcst.test.Point")
