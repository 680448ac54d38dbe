import datetime
import itertools
import re
import threading
import uuid
from re import Pattern

import dateutil.parser as dateparser

_NAME_LOCK = threading.Lock()
_NAME_COUNTER = itertools.count(1)


def next_name_id() -> int:
    """Increment the name counter and return the next value."""
    with _NAME_LOCK:
        return next(_NAME_COUNTER)


def genname(prefix: str) -> str:
    """Generate a unique name with the given prefix, in the `prefix__N__auto__`
    shape used for syntax-quote generated symbols."""
    i = next_name_id()
    return f"{prefix}__{i}__auto__"


def inst_from_str(inst_str: str) -> datetime.datetime:
    """Create a datetime instance from an RFC 3339 formatted date string."""
    return dateparser.isoparse(inst_str)


def regex_from_str(regex_str: str) -> Pattern:
    """Create a new regex pattern from the input string."""
    return re.compile(regex_str)


def uuid_from_str(uuid_str: str) -> uuid.UUID:
    """Create a new UUID instance from the canonical string representation
    of a UUID."""
    return uuid.UUID(f"{{{uuid_str}}}")
