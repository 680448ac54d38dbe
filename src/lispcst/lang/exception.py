import functools
import traceback
from types import TracebackType
from typing import Optional


@functools.singledispatch
def format_exception(  # pylint: disable=unused-argument
    e: Optional[BaseException],
    tp: Optional[type[BaseException]] = None,
    tb: Optional[TracebackType] = None,
    disable_color: Optional[bool] = None,
) -> list[str]:
    """Return the lines of a report for the exception `e`, each ending in a
    newline.

    Exceptions without a registered formatter are reported as a standard Python
    traceback. Reader syntax errors register a formatter which shows where in the
    source the error occurred, colored unless `disable_color` is True."""
    if e is not None:
        tp = tp or type(e)
        tb = tb or e.__traceback__
    return traceback.format_exception(tp, e, tb)
