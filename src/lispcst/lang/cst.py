"""Concrete syntax tree nodes produced by the reader.

Each node reifies one piece of non-data source syntax (quoting punctuation,
comments, commas, discards, reader conditionals, anonymous function literals and
the bracketed collections themselves) with exactly the payload needed to write
it back out again with :py:func:`emit`.

Comments, commas and discarded forms are *skippable*: they are kept for emission
but ignored when counting the elements of a form and when projecting a node to
its logical value with :py:func:`to_form`."""

import functools
from typing import Any, ClassVar, Optional, Union

import attr
from typing_extensions import Unpack

from lispcst.lang import keyword as kw
from lispcst.lang import list as llist
from lispcst.lang import map as lmap
from lispcst.lang import set as lset
from lispcst.lang import symbol as sym
from lispcst.lang import vector as vec
from lispcst.lang.interfaces import ILispObject, IPersistentMap, IWithMeta
from lispcst.lang.obj import PrintSettings, lrepr
from lispcst.lang.runtime import CORE_NS

_QUOTE = sym.symbol("quote")
_VAR = sym.symbol("var")
_DEREF = sym.symbol("deref", ns=CORE_NS)
_UNQUOTE = sym.symbol("unquote", ns=CORE_NS)
_UNQUOTE_SPLICING = sym.symbol("unquote-splicing", ns=CORE_NS)

_DEFAULT_FEATURE_KW = kw.keyword("default")


class SyntaxNode(ILispObject):
    """Base class of every concrete syntax node.

    The Lisp representation of a node is its emitted source text."""

    __slots__ = ()

    skippable: ClassVar[bool] = False

    def _lrepr(self, **kwargs: Unpack[PrintSettings]) -> str:
        return emit(self)


def _children(v) -> tuple:
    return tuple(v)


def non_skippable(children) -> tuple:
    """Return the semantically significant elements of `children`."""
    return tuple(c for c in children if not is_skippable(c))


def is_skippable(o: Any) -> bool:
    """Return True if `o` is a comment, comma or discard node."""
    return isinstance(o, SyntaxNode) and o.skippable


#################
# Wrapper Nodes #
#################


@attr.frozen(repr=False)
class Quote(SyntaxNode):
    form: Any


@attr.frozen(repr=False)
class Deref(SyntaxNode):
    form: Any


@attr.frozen(repr=False)
class Var(SyntaxNode):
    form: Any


@attr.frozen(repr=False)
class Eval(SyntaxNode):
    """A `#=` read-time evaluation request. The form is never evaluated by the
    reader."""

    form: Any


@attr.frozen(repr=False)
class Unquote(SyntaxNode):
    form: Any


@attr.frozen(repr=False)
class UnquoteSplicing(SyntaxNode):
    form: Any


@attr.frozen(repr=False)
class SyntaxQuote(SyntaxNode):
    """A syntax quoted form.

    The quoted form is kept as read rather than expanded. `meta` holds the
    syntax quoted metadata of the form if it carried any beyond its source
    position. `gensyms` maps each `name#` symbol read inside the syntax quote
    to the symbol generated for it."""

    form: Any
    meta: Optional["SyntaxQuote"] = attr.field(default=None, eq=False)
    gensyms: IPersistentMap = attr.field(default=lmap.EMPTY, eq=False)


@attr.frozen(repr=False)
class Discard(SyntaxNode):
    skippable: ClassVar[bool] = True

    form: Any


@attr.frozen(repr=False)
class FnLiteral(SyntaxNode):
    """An anonymous function literal `#(...)`.

    `args` maps each argument ordinal used in the body (`1`, `2`, ... or `&`) to
    a generated parameter name; the `Arg` nodes in the body are left as read."""

    form: "List"
    args: IPersistentMap = attr.field(default=lmap.EMPTY, eq=False)


################
# Atomic Nodes #
################


@attr.frozen(repr=False)
class Char(SyntaxNode):
    value: str


REST_ARG = "&"

ArgOrdinal = Union[None, int, str]


@attr.frozen(repr=False)
class Arg(SyntaxNode):
    """An argument literal: `%` (ordinal None), `%N` or `%&` (ordinal `&`).

    Other `%` tokens such as `%foo` carry the symbol they name and no ordinal."""

    ordinal: ArgOrdinal
    symbol: Optional[sym.Symbol] = None


@attr.frozen(repr=False)
class LineComment(SyntaxNode):
    skippable: ClassVar[bool] = True

    text: str


@attr.frozen(repr=False)
class ShebangComment(SyntaxNode):
    skippable: ClassVar[bool] = True

    text: str


@attr.frozen(repr=False)
class Comma(SyntaxNode):
    skippable: ClassVar[bool] = True


COMMA = Comma()


@attr.frozen(repr=False)
class Meta(SyntaxNode):
    """A `^` metadata annotation.

    `meta_form` is the metadata exactly as written and `form` is the annotated
    form. `metadata` is the normalized metadata map: `{:tag x}` for a symbol or
    string, `{:kw true}` for a keyword and the map itself for a map."""

    meta_form: Any
    form: Any
    metadata: IPersistentMap = attr.field(default=lmap.EMPTY, eq=False)


########################
# Bracketed Collection #
########################


@attr.frozen(repr=False)
class _Coll(SyntaxNode, IWithMeta):
    children: tuple = attr.field(converter=_children)
    meta: Optional[IPersistentMap] = attr.field(default=None, eq=False)

    def with_meta(self, meta: Optional[IPersistentMap]):
        return attr.evolve(self, meta=meta)

    @property
    def elements(self) -> tuple:
        """The semantically significant children of this collection."""
        return non_skippable(self.children)


@attr.frozen(repr=False)
class List(_Coll):
    @property
    def form(self) -> llist.PersistentList:
        return llist.list(self.elements, meta=self.meta)


@attr.frozen(repr=False)
class Vector(_Coll):
    @property
    def form(self) -> vec.PersistentVector:
        return vec.vector(self.elements, meta=self.meta)


@attr.frozen(repr=False)
class Map(_Coll):
    @property
    def form(self) -> lmap.PersistentMap:
        return lmap.hash_map(*self.elements).with_meta(self.meta)


@attr.frozen(repr=False)
class Set(_Coll):
    @property
    def form(self) -> lset.PersistentSet:
        return lset.set(self.elements, meta=self.meta)


FEATURE_NOT_PRESENT = object()


@attr.frozen(repr=False)
class Conditional(SyntaxNode):
    """A reader conditional `#?(...)` or splicing reader conditional `#?@(...)`.

    The reader never selects a branch; `select_feature` is provided for later
    passes that do."""

    children: tuple = attr.field(converter=_children)
    splicing: bool = False
    meta: Optional[IPersistentMap] = attr.field(default=None, eq=False)

    @property
    def pairs(self) -> tuple:
        """The alternating feature keywords and forms of this conditional."""
        return non_skippable(self.children)

    def select_feature(self, features) -> Any:
        """Return the form of the first feature present in `features` (or of a
        `:default` feature), or `FEATURE_NOT_PRESENT` if none match."""
        pairs = self.pairs
        for k, form in zip(pairs[::2], pairs[1::2]):
            if k in features or k == _DEFAULT_FEATURE_KW:
                return form
        return FEATURE_NOT_PRESENT


@attr.frozen(repr=False)
class File(SyntaxNode):
    children: tuple = attr.field(converter=_children)


############
# Emission #
############


@functools.singledispatch
def emit(o: Any) -> str:
    """Return the source text of a node or a plain form.

    Plain forms are printed readably with their types preserved (such as the `M`
    suffix of exact decimals). Emission keeps every reified marker but
    normalizes the whitespace between elements to single spaces."""
    return lrepr(o, print_dup=True)


def _join(children, sep: str = " ") -> str:
    """Join the emitted children with `sep`, except next to commas."""
    parts: list[str] = []
    prev_comma = True
    for child in children:
        is_comma = isinstance(child, Comma)
        if not (prev_comma or is_comma):
            parts.append(sep)
        parts.append(emit(child))
        prev_comma = is_comma
    return "".join(parts)


_PREFIXES: dict[type, str] = {
    Quote: "'",
    Deref: "@",
    Var: "#'",
    Eval: "#=",
    UnquoteSplicing: "~@",
    SyntaxQuote: "`",
    Discard: "#_",
    FnLiteral: "#",
}


@emit.register(Quote)
@emit.register(Deref)
@emit.register(Var)
@emit.register(Eval)
@emit.register(UnquoteSplicing)
@emit.register(SyntaxQuote)
@emit.register(Discard)
@emit.register(FnLiteral)
def _emit_wrapper(o) -> str:
    return _PREFIXES[type(o)] + emit(o.form)


@emit.register(Unquote)
def _emit_unquote(o: Unquote) -> str:
    s = emit(o.form)
    # `~ @x` must not be re-read as `~@x`
    return f"~ {s}" if s.startswith("@") else f"~{s}"


_CHAR_NAMES = {
    "\n": "newline",
    " ": "space",
    "\t": "tab",
    "\b": "backspace",
    "\f": "formfeed",
    "\r": "return",
}


@emit.register(Char)
def _emit_char(o: Char) -> str:
    if (name := _CHAR_NAMES.get(o.value)) is not None:
        return f"\\{name}"
    if not o.value.isprintable() and ord(o.value) <= 0xFFFF:
        return f"\\u{ord(o.value):04x}"
    return f"\\{o.value}"


@emit.register(Arg)
def _emit_arg(o: Arg) -> str:
    if o.symbol is not None:
        return lrepr(o.symbol)
    if o.ordinal is None:
        return "%"
    return f"%{o.ordinal}"


@emit.register(LineComment)
def _emit_line_comment(o: LineComment) -> str:
    return f";{o.text}\n"


@emit.register(ShebangComment)
def _emit_shebang_comment(o: ShebangComment) -> str:
    return f"#!{o.text}\n"


@emit.register(Comma)
def _emit_comma(_: Comma) -> str:
    return ","


@emit.register(Meta)
def _emit_meta(o: Meta) -> str:
    return f"^{emit(o.meta_form)} {emit(o.form)}"


@emit.register(List)
def _emit_list(o: List) -> str:
    return f"({_join(o.children)})"


@emit.register(Vector)
def _emit_vector(o: Vector) -> str:
    return f"[{_join(o.children)}]"


@emit.register(Map)
def _emit_map(o: Map) -> str:
    return f"{{{_join(o.children)}}}"


@emit.register(Set)
def _emit_set(o: Set) -> str:
    return f"#{{{_join(o.children)}}}"


@emit.register(Conditional)
def _emit_conditional(o: Conditional) -> str:
    return f"#?{'@' if o.splicing else ''}({_join(o.children)})"


@emit.register(File)
def _emit_file(o: File) -> str:
    return "\n".join(map(emit, o.children))


#######################
# Logical Projection  #
#######################


@functools.singledispatch
def to_form(o: Any) -> Any:
    """Return the logical value of a node, dropping skippable nodes.

    Quoting punctuation is lowered to the equivalent list forms (`'x` becomes
    `(quote x)`), collections become persistent collections and characters
    become strings. Nodes without a plain data equivalent (syntax quotes,
    function literals, argument literals, evaluation requests and reader
    conditionals) are returned unchanged."""
    return o


def _lowered(children) -> list:
    return [to_form(c) for c in non_skippable(children)]


@to_form.register(Quote)
def _quote_to_form(o: Quote):
    return llist.l(_QUOTE, to_form(o.form))


@to_form.register(Deref)
def _deref_to_form(o: Deref):
    return llist.l(_DEREF, to_form(o.form))


@to_form.register(Var)
def _var_to_form(o: Var):
    return llist.l(_VAR, to_form(o.form))


@to_form.register(Unquote)
def _unquote_to_form(o: Unquote):
    return llist.l(_UNQUOTE, to_form(o.form))


@to_form.register(UnquoteSplicing)
def _unquote_splicing_to_form(o: UnquoteSplicing):
    return llist.l(_UNQUOTE_SPLICING, to_form(o.form))


@to_form.register(Char)
def _char_to_form(o: Char) -> str:
    return o.value


@to_form.register(Meta)
def _meta_to_form(o: Meta):
    target = to_form(o.form)
    if isinstance(target, IWithMeta):
        existing = target.meta
        return target.with_meta(
            o.metadata if existing is None else existing.cons(o.metadata)
        )
    return target


@to_form.register(List)
def _list_to_form(o: List) -> llist.PersistentList:
    return llist.list(_lowered(o.children), meta=o.meta)


@to_form.register(Vector)
def _vector_to_form(o: Vector) -> vec.PersistentVector:
    return vec.vector(_lowered(o.children), meta=o.meta)


@to_form.register(Map)
def _map_to_form(o: Map) -> lmap.PersistentMap:
    return lmap.hash_map(*_lowered(o.children)).with_meta(o.meta)


@to_form.register(Set)
def _set_to_form(o: Set) -> lset.PersistentSet:
    return lset.set(_lowered(o.children), meta=o.meta)


@to_form.register(File)
def _file_to_form(o: File) -> vec.PersistentVector:
    return vec.vector(_lowered(o.children))
