from typing import Any

import attr
from typing_extensions import Unpack

from lispcst.lang.interfaces import ILispObject
from lispcst.lang.obj import PrintSettings, lrepr
from lispcst.lang.symbol import Symbol


@attr.frozen(repr=False)
class TaggedLiteral(ILispObject):
    """A tagged literal such as `#foo/bar [1 2]` kept unevaluated.

    Reader conditionals read in preserving mode produce these for tags no data
    reader handles, since the branch they belong to may target another
    platform."""

    tag: Symbol
    form: Any

    def _lrepr(self, **kwargs: Unpack[PrintSettings]) -> str:
        return f"#{lrepr(self.tag)} {lrepr(self.form, **kwargs)}"


def tagged_literal(tag: Symbol, form: Any) -> TaggedLiteral:
    """Return the tagged literal of `form` under the symbol `tag`."""
    if not isinstance(tag, Symbol):
        raise TypeError(f"Tagged literal tag must be a Symbol, not {type(tag)}")
    return TaggedLiteral(tag, form)
