# pylint: disable=too-many-lines,too-many-return-statements

import collections
import contextlib
import enum
import io
import logging
import os
import re
import uuid
from collections.abc import Iterable, Mapping, MutableMapping
from datetime import datetime
from decimal import Decimal
from fractions import Fraction
from types import TracebackType
from typing import Any, Callable, Optional, Union

import attr

from lispcst.lang import cst
from lispcst.lang import keyword as kw
from lispcst.lang import map as lmap
from lispcst.lang import numbers
from lispcst.lang import runtime
from lispcst.lang import set as lset
from lispcst.lang import symbol as sym
from lispcst.lang import util as langutil
from lispcst.lang.exception import format_exception
from lispcst.lang.interfaces import IMeta, IPersistentMap, IPersistentSet, IWithMeta
from lispcst.lang.source import format_source_context
from lispcst.lang.tagged import tagged_literal
from lispcst.lang.typing import ReaderForm
from lispcst.util import Maybe

logger = logging.getLogger(__name__)

symbol_pattern = re.compile(r"[:]?([^0-9/].*/)?(/|[^0-9/][^/]*)")
int_pattern = re.compile(
    r"([-+]?)(?:(0)|([1-9][0-9]*)|0[xX]([0-9A-Fa-f]+)|0([0-7]+)|"
    r"([1-9][0-9]?)[rR]([0-9A-Za-z]+)|0[0-9]+)(N)?"
)
ratio_pattern = re.compile(r"([-+]?[0-9]+)/([0-9]+)")
float_pattern = re.compile(r"([-+]?[0-9]+(\.[0-9]*)?([eE][-+]?[0-9]+)?)(M)?")
arg_pattern = re.compile(r"%(?:([1-9][0-9]*)|(&))?")

DataReaderFn = Callable[[Any], Any]
DataReaders = IPersistentMap[sym.Symbol, DataReaderFn]
DefaultDataReaderFn = Callable[[sym.Symbol, Any], Any]
GenSymEnvironment = MutableMapping[str, sym.Symbol]
ArgEnvironment = MutableMapping[cst.ArgOrdinal, sym.Symbol]
NamespaceResolver = Callable[[Optional[str]], Optional[str]]
LispReaderFn = Callable[["ReaderContext", str], ReaderForm]
DispatchTable = tuple[Optional[LispReaderFn], ...]

READER_LINE_KW = kw.keyword("line")
READER_COL_KW = kw.keyword("column")

READER_TAG_KW = kw.keyword("tag")

OPT_EOF_KW = kw.keyword("eof")
OPT_FEATURES_KW = kw.keyword("features")
OPT_READ_COND_KW = kw.keyword("read-cond")

# Sentinel value of the `eof` read option which makes EOF a read error
EOF_ERROR = kw.keyword("eofthrow")

_READ_EOF = object()
_READ_FINISHED = object()


# pylint:disable=redefined-builtin
@attr.define(repr=False, str=False)
class SyntaxError(Exception):
    message: str
    line: Optional[int] = None
    col: Optional[int] = None
    filename: Optional[str] = None

    def __repr__(self):
        return (
            f"{type(self).__name__}({self.message}, {self.line},"
            f"{self.col}, filename={self.filename})"
        )

    def __str__(self):
        keys: dict[str, Union[str, int]] = {}
        if self.filename is not None:
            keys["file"] = self.filename
        if self.line is not None and self.col is not None:
            keys["line"] = self.line
            keys["col"] = self.col
        if not keys:
            return self.message
        else:
            details = ", ".join(f"{key}: {val}" for key, val in keys.items())
            return f"{self.message} ({details})"


@format_exception.register(SyntaxError)
def format_syntax_error(  # pylint: disable=unused-argument
    e: SyntaxError,
    tp: Optional[type[Exception]] = None,
    tb: Optional[TracebackType] = None,
    disable_color: Optional[bool] = None,
) -> list[str]:
    """If `disable_color` is True, no color formatting will be applied to the source
    code."""

    context_exc: Optional[BaseException] = e.__cause__

    lines = [os.linesep]
    if context_exc is not None:
        lines.append(f"  exception: {type(context_exc)} from {type(e)}{os.linesep}")
    else:
        lines.append(f"  exception: {type(e)}{os.linesep}")
    lines.append(f"    message: {e.message}{os.linesep}")

    if e.line is not None and e.col is not None:
        line_num = f"{e.line}:{e.col}"
    elif e.line is not None:
        line_num = str(e.line)
    else:
        line_num = ""

    if e.filename is not None:
        lines.append(
            f"   location: {e.filename}:{line_num or 'NO_SOURCE_LINE'}{os.linesep}"
        )
    elif line_num:
        lines.append(f"       line: {line_num}{os.linesep}")

    if (
        e.filename is not None
        and e.line is not None
        and (
            context_lines := format_source_context(
                e.filename, e.line, disable_color=disable_color
            )
        )
    ):
        lines.append(f"    context:{os.linesep}")
        lines.append(os.linesep)
        lines.extend(context_lines)

    return lines


class UnexpectedEOFError(SyntaxError):
    """Syntax Error type raised when the reader encounters an unexpected EOF
    reading a form.

    Useful for cases such as a REPL reader, where unexpected EOF errors likely
    indicate the user is trying to enter a multiline form."""


class InvalidTokenError(SyntaxError):
    """Raised for tokens which are neither symbols, keywords nor literals."""


class InvalidNumberError(SyntaxError):
    pass


class UnmatchedDelimiterError(SyntaxError):
    pass


class UnreadableFormError(SyntaxError):
    """Raised when reading a `#<...>` form."""


class UnsupportedEscapeError(SyntaxError):
    """Raised for invalid string escapes and character literals."""


class InvalidMetadataError(SyntaxError):
    pass


class NestedFnLiteralError(SyntaxError):
    pass


class ConditionalNotAllowedError(SyntaxError):
    pass


class MalformedConditionalError(SyntaxError):
    pass


class NoReaderForTagError(SyntaxError):
    pass


class EvalNotAllowedError(SyntaxError):
    """Raised for `#=` forms and record literals when read-time evaluation is not
    allowed, or for any read when `read_eval` is bound to `:unknown`."""


class MapParityError(SyntaxError):
    pass


class ReaderError(SyntaxError):
    """Wraps a failure raised by the character source or a reader collaborator
    (such as a data reader function). The original exception is the cause."""


####################
# Character Source #
####################


class StreamReader:
    """A character source over a text stream with one character of pushback.

    Plain stream readers do not track source positions."""

    __slots__ = ("_stream", "_pushback")

    def __init__(self, stream: io.TextIOBase) -> None:
        self._stream = stream
        self._pushback: Optional[str] = None

    @property
    def name(self) -> Optional[str]:
        return getattr(self._stream, "name", None)

    @property
    def line(self) -> Optional[int]:
        return None

    @property
    def col(self) -> Optional[int]:
        return None

    @property
    def loc(self) -> tuple[Optional[int], Optional[int]]:
        """Return the location of the next character to be read as a tuple of
        (line, col)."""
        return self.line, self.col

    def next_char(self) -> str:
        """Return the next character from the stream, or the empty string at
        EOF."""
        if self._pushback is not None:
            c, self._pushback = self._pushback, None
            return c
        return self._stream.read(1)

    def pushback(self, c: str) -> None:
        """Push the character `c` back onto the stream, allowing it to be read again.

        Pushing back EOF (the empty string) has no effect."""
        if c == "":
            return
        if self._pushback is not None:
            raise IndexError("Exceeded pushback depth")
        self._pushback = c


class LineNumberingStreamReader(StreamReader):
    """A character source which tracks the 1-based line and 0-based column of the
    next character to be read.

    `\\r\\n`, `\\r` and `\\n` each end a line."""

    __slots__ = ("_line", "_col", "_after_cr", "_prev")

    def __init__(
        self,
        stream: io.TextIOBase,
        init_line: Optional[int] = None,
        init_column: Optional[int] = None,
    ) -> None:
        """`init_line` and `init_column` refer to where the `stream`
        starts in the broader context, defaulting to 1 and 0
        respectively if not provided."""
        super().__init__(stream)
        self._line = init_line if init_line is not None else 1
        self._col = init_column if init_column is not None else 0
        self._after_cr = False
        self._prev = (self._line, self._col, self._after_cr)

    @property
    def line(self) -> int:
        return self._line

    @property
    def col(self) -> int:
        return self._col

    def next_char(self) -> str:
        c = super().next_char()
        if c == "":
            return c

        self._prev = (self._line, self._col, self._after_cr)
        if c == "\n":
            if not self._after_cr:
                self._line += 1
            self._col = 0
        elif c == "\r":
            self._line += 1
            self._col = 0
        else:
            self._col += 1
        self._after_cr = c == "\r"
        return c

    def pushback(self, c: str) -> None:
        if c == "":
            return
        super().pushback(c)
        self._line, self._col, self._after_cr = self._prev


################
# Read Options #
################


class ReaderConditionalMode(enum.Enum):
    DISABLED = "disabled"
    ALLOW = "allow"
    PRESERVE = "preserve"


def _with_platform_feature(
    features: Optional[Iterable[kw.Keyword]],
) -> IPersistentSet[kw.Keyword]:
    return lset.set(features or ()).cons(runtime.READER_COND_PLATFORM_FEATURE_KW)


@attr.frozen
class ReadOptions:
    """Options for a single top-level read.

    `eof` is returned when the input is exhausted before any form, unless it is
    `EOF_ERROR` (the default) in which case EOF is an error. The platform feature
    `:clj` is always included in `features`."""

    eof: Any = EOF_ERROR
    features: IPersistentSet[kw.Keyword] = attr.field(
        default=None, converter=_with_platform_feature
    )
    read_cond: ReaderConditionalMode = ReaderConditionalMode.DISABLED

    @property
    def eof_is_error(self) -> bool:
        return self.eof == EOF_ERROR

    @classmethod
    def from_map(cls, m: Optional[Mapping]) -> "ReadOptions":
        """Create read options from a map such as
        `{:eof nil :features #{:cljs} :read-cond :allow}`."""
        if m is None:
            return cls()

        read_cond = m.get(OPT_READ_COND_KW)
        if read_cond is None:
            mode = ReaderConditionalMode.DISABLED
        elif isinstance(read_cond, kw.Keyword) and read_cond.name in {
            "allow",
            "disabled",
            "preserve",
        }:
            mode = ReaderConditionalMode(read_cond.name)
        else:
            raise ValueError(f"Invalid value for read-cond option: {read_cond}")

        return cls(
            eof=m.get(OPT_EOF_KW, EOF_ERROR),
            features=m.get(OPT_FEATURES_KW),
            read_cond=mode,
        )


DEFAULT_OPTIONS = ReadOptions()


def _inst_from_str(inst_str: str) -> datetime:
    try:
        return langutil.inst_from_str(inst_str)
    except (ValueError, OverflowError, TypeError) as e:
        raise SyntaxError(f"Unrecognized date/time syntax: {inst_str}") from e


def _uuid_from_str(uuid_str: str) -> uuid.UUID:
    try:
        return langutil.uuid_from_str(uuid_str)
    except (ValueError, TypeError) as e:
        raise SyntaxError(f"Unrecognized UUID format: {uuid_str}") from e


def _default_ns_resolver(ns_name: Optional[str]) -> Optional[str]:
    """Resolve a namespace alias or name against the current namespace."""
    current_ns = runtime.get_current_ns()
    if ns_name is None:
        return current_ns.name
    return Maybe(current_ns.resolve_ns(ns_name)).map(lambda ns: ns.name).value


class ReaderContext:
    """Holds the collaborators and all mutable state of one top-level read.

    Scoped state (the syntax quote, anonymous function and reader conditional
    stacks) is pushed and popped by context managers, so it is restored when a
    read fails part way through."""

    _DATA_READERS: DataReaders = lmap.map(
        {
            sym.symbol("inst"): _inst_from_str,
            sym.symbol("uuid"): _uuid_from_str,
        }
    )

    __slots__ = (
        "_reader",
        "_opts",
        "_data_readers",
        "_default_data_reader_fn",
        "_record_resolver",
        "_resolve_ns",
        "_pending_forms",
        "_syntax_quoted",
        "_gensym_env",
        "_arg_env",
        "_in_conditional",
    )

    def __init__(  # pylint: disable=too-many-arguments
        self,
        reader: StreamReader,
        opts: Optional[ReadOptions] = None,
        data_readers: Optional[Mapping[sym.Symbol, DataReaderFn]] = None,
        default_data_reader_fn: Optional[DefaultDataReaderFn] = None,
        record_resolver: Optional[runtime.RecordResolver] = None,
        resolver: Optional[NamespaceResolver] = None,
        pending_forms: Optional[collections.deque] = None,
    ) -> None:
        self._reader = reader
        self._opts = Maybe(opts).or_else_get(DEFAULT_OPTIONS)
        self._data_readers: DataReaders = (
            Maybe(data_readers)
            .map(lambda m: lmap.map(dict(m)))
            .or_else_get(lmap.EMPTY)
        )
        self._default_data_reader_fn = default_data_reader_fn
        self._record_resolver = Maybe(record_resolver).or_else_get(
            runtime.find_record
        )
        self._resolve_ns = Maybe(resolver).or_else_get(_default_ns_resolver)
        self._pending_forms: collections.deque = Maybe(pending_forms).or_else(
            collections.deque
        )
        self._syntax_quoted: collections.deque[bool] = collections.deque([])
        self._gensym_env: collections.deque[GenSymEnvironment] = collections.deque([])
        self._arg_env: collections.deque[ArgEnvironment] = collections.deque([])
        self._in_conditional: collections.deque[bool] = collections.deque([])

    @property
    def reader(self) -> StreamReader:
        return self._reader

    @property
    def opts(self) -> ReadOptions:
        return self._opts

    @property
    def data_readers(self) -> DataReaders:
        return self._data_readers

    @property
    def default_data_reader_fn(self) -> Optional[DefaultDataReaderFn]:
        return self._default_data_reader_fn

    @property
    def pending_forms(self) -> collections.deque:
        return self._pending_forms

    def resolve_ns(self, ns_name: Optional[str]) -> Optional[str]:
        """Return the canonical name of the namespace named or aliased by `ns_name`,
        or of the current namespace if `ns_name` is None."""
        return self._resolve_ns(ns_name)

    def resolve_record(self, tag: sym.Symbol) -> Optional[runtime.RecordType]:
        return self._record_resolver(tag)

    @property
    def gensym_env(self) -> GenSymEnvironment:
        return self._gensym_env[-1]

    def gensym(self, s: sym.Symbol) -> sym.Symbol:
        """Return the symbol generated for the `name#` symbol `s` in the innermost
        syntax quote, generating one if `s` has not been seen there yet."""
        env = self.gensym_env
        if (generated := env.get(s.name)) is None:
            generated = sym.symbol(langutil.genname(s.name[:-1]))
            env[s.name] = generated
        return generated

    @contextlib.contextmanager
    def syntax_quoted(self):
        self._syntax_quoted.append(True)
        self._gensym_env.append({})
        try:
            yield
        finally:
            self._gensym_env.pop()
            self._syntax_quoted.pop()

    @contextlib.contextmanager
    def unquoted(self):
        self._syntax_quoted.append(False)
        try:
            yield
        finally:
            self._syntax_quoted.pop()

    @property
    def is_syntax_quoted(self) -> bool:
        try:
            return self._syntax_quoted[-1] is True
        except IndexError:
            return False

    @contextlib.contextmanager
    def in_anon_fn(self):
        """Establish a fresh argument environment for the body of an anonymous
        function literal, yielding it."""
        if self.is_in_anon_fn:
            raise NestedFnLiteralError("Nested #()s are not allowed")
        self._arg_env.append({})
        try:
            yield self._arg_env[-1]
        finally:
            self._arg_env.pop()

    @property
    def is_in_anon_fn(self) -> bool:
        return len(self._arg_env) > 0

    def register_arg(self, ordinal: cst.ArgOrdinal) -> Optional[sym.Symbol]:
        """Record an argument literal in the innermost anonymous function literal,
        returning the parameter name generated for it.

        Argument literals outside of an anonymous function are not recorded."""
        if not self.is_in_anon_fn:
            return None
        ordinal = 1 if ordinal is None else ordinal
        env = self._arg_env[-1]
        if (param := env.get(ordinal)) is None:
            prefix = "rest" if ordinal == cst.REST_ARG else f"p{ordinal}"
            param = sym.symbol(langutil.genname(prefix))
            env[ordinal] = param
        return param

    @contextlib.contextmanager
    def in_conditional(self):
        self._in_conditional.append(True)
        try:
            yield
        finally:
            self._in_conditional.pop()

    @property
    def is_in_conditional(self) -> bool:
        try:
            return self._in_conditional[-1] is True
        except IndexError:
            return False

    @property
    def macro_loc(self) -> tuple[Optional[int], Optional[int]]:
        """Return the location of the reader macro character most recently read,
        or (None, None) if the source does not track positions."""
        line, col = self._reader.loc
        if line is None or col is None:
            return None, None
        return line, col - 1


############
# Scanners #
############


def _is_digit(c: str) -> bool:
    return "0" <= c <= "9" and len(c) == 1


def _get_macro(c: str) -> Optional[LispReaderFn]:
    o = ord(c)
    return _MACROS[o] if o < len(_MACROS) else None


def _get_dispatch_macro(c: str) -> Optional[LispReaderFn]:
    o = ord(c)
    return _DISPATCH_MACROS[o] if o < len(_DISPATCH_MACROS) else None


def _is_macro(c: str) -> bool:
    return c != "" and _get_macro(c) is not None


def _is_terminating_macro(c: str) -> bool:
    return c not in {"#", "'", "%"} and _is_macro(c)


def _is_token_end(c: str) -> bool:
    return c == "" or c.isspace() or _is_terminating_macro(c)


def _read_token(ctx: ReaderContext, initch: str) -> str:
    """Read a token beginning with `initch`, ending at whitespace, EOF or a
    terminating macro character (which is left unread)."""
    reader = ctx.reader
    s = [initch]
    while True:
        c = reader.next_char()
        if _is_token_end(c):
            reader.pushback(c)
            return "".join(s)
        s.append(c)


def _match_number(s: str) -> Optional[Any]:
    """Return the numeric value of the token `s` or None if `s` is not a valid
    number."""
    if (m := int_pattern.fullmatch(s)) is not None:
        force_big = m.group(8) is not None
        negate = m.group(1) == "-"
        if m.group(2) is not None:
            return numbers.integer_value(0, force_big=force_big)
        elif m.group(3) is not None:
            digits, base = m.group(3), 10
        elif m.group(4) is not None:
            digits, base = m.group(4), 16
        elif m.group(5) is not None:
            digits, base = m.group(5), 8
        elif m.group(7) is not None:
            digits, base = m.group(7), int(m.group(6))
        else:
            return None
        return numbers.integer(digits, base=base, negate=negate, force_big=force_big)

    if (m := float_pattern.fullmatch(s)) is not None:
        if m.group(4) is not None:
            return numbers.decimal_from_str(m.group(1))
        return numbers.float_from_str(s)

    if (m := ratio_pattern.fullmatch(s)) is not None:
        numerator = m.group(1)
        return numbers.ratio(
            numerator[1:] if numerator.startswith("+") else numerator, m.group(2)
        )

    return None


def _read_number(ctx: ReaderContext, initch: str) -> ReaderForm:
    """Read a numeric literal, which ends at whitespace, EOF or any macro
    character."""
    reader = ctx.reader
    s = [initch]
    while True:
        c = reader.next_char()
        if c == "":
            raise UnexpectedEOFError("EOF while reading string")
        if c.isspace() or _is_macro(c):
            reader.pushback(c)
            break
        s.append(c)

    token = "".join(s)
    try:
        n = _match_number(token)
    except (ValueError, ZeroDivisionError) as e:
        raise InvalidNumberError(f"Invalid number: {token}") from e
    if n is None:
        raise InvalidNumberError(f"Invalid number: {token}")
    return n


def _match_symbol(ctx: ReaderContext, s: str) -> Optional[ReaderForm]:
    """Return the symbol or keyword named by the token `s`, or None if `s` is not
    a valid symbol or keyword."""
    m = symbol_pattern.fullmatch(s)
    if m is None:
        return None

    ns, name = m.group(1), m.group(2)
    if (
        (ns is not None and ns.endswith(":/"))
        or name.endswith(":")
        or s.find("::", 1) != -1
    ):
        return None

    if s.startswith("::"):
        ks = sym.symbol_from_str(s[2:])
        resolved_ns = ctx.resolve_ns(ks.ns)
        if resolved_ns is None:
            return None
        return kw.keyword(ks.name, ns=resolved_ns)

    if s.startswith(":"):
        ks = sym.symbol_from_str(s[1:])
        return kw.keyword(ks.name, ns=ks.ns)

    symbol = sym.symbol_from_str(s)
    if ctx.is_syntax_quoted and symbol.is_gensym_literal:
        ctx.gensym(symbol)
    return symbol


_TOKEN_CONSTANTS = {"nil": None, "true": True, "false": False}


def _interpret_token(ctx: ReaderContext, s: str) -> ReaderForm:
    if s in _TOKEN_CONSTANTS:
        return _TOKEN_CONSTANTS[s]
    if (v := _match_symbol(ctx, s)) is not None:
        return v
    raise InvalidTokenError(f"Invalid token: {s}")


_DIGITS = "0123456789abcdefghijklmnopqrstuvwxyz"


def _digit(c: str, base: int) -> Optional[int]:
    d = _DIGITS.find(c.lower()) if len(c) == 1 else -1
    return d if 0 <= d < base else None


def _read_unicode_char(
    ctx: ReaderContext, initch: str, base: int, length: int, exact: bool
) -> int:
    """Read the code point of a string escape sequence from the stream, starting
    with the digit `initch`, reading at most `length` digits in `base`."""
    reader = ctx.reader
    if (uc := _digit(initch, base)) is None:
        raise UnsupportedEscapeError(f"Invalid digit: {initch}")

    i = 1
    while i < length:
        c = reader.next_char()
        if c == "":
            raise UnexpectedEOFError("EOF while reading string")
        if c.isspace() or _is_macro(c):
            reader.pushback(c)
            break
        if (d := _digit(c, base)) is None:
            raise UnsupportedEscapeError(f"Invalid digit: {c}")
        uc = uc * base + d
        i += 1

    if exact and i != length:
        raise UnsupportedEscapeError(
            f"Invalid character length: {i}, should be: {length}"
        )
    return uc


def _unicode_from_token(token: str, offset: int, length: int, base: int) -> int:
    """Return the code point of the digits in a character literal token."""
    if len(token) != offset + length:
        raise UnsupportedEscapeError(f"Invalid unicode character: \\{token}")
    uc = 0
    for c in token[offset:]:
        if (d := _digit(c, base)) is None:
            raise UnsupportedEscapeError(f"Invalid digit: {c}")
        uc = uc * base + d
    return uc


############
# Handlers #
############


def _read_next(ctx: ReaderContext) -> ReaderForm:
    """Read the next complete form from within a reader macro. EOF is an error."""
    return _read(ctx, True, None, is_recursive=True)


_STR_ESCAPE_CHARS = {
    '"': '"',
    "\\": "\\",
    "b": "\b",
    "f": "\f",
    "n": "\n",
    "r": "\r",
    "t": "\t",
}


def _read_str(ctx: ReaderContext, _: str) -> str:
    """Read a string literal, processing its escape sequences."""
    reader = ctx.reader
    s: list[str] = []
    while (c := reader.next_char()) != '"':
        if c == "":
            raise UnexpectedEOFError("EOF while reading string")

        if c == "\\":
            c = reader.next_char()
            if c == "":
                raise UnexpectedEOFError("EOF while reading string")
            elif (escape_char := _STR_ESCAPE_CHARS.get(c)) is not None:
                c = escape_char
            elif c == "u":
                c = reader.next_char()
                if c == "":
                    raise UnexpectedEOFError("EOF while reading string")
                if _digit(c, 16) is None:
                    raise UnsupportedEscapeError(f"Invalid unicode escape: \\u{c}")
                c = chr(_read_unicode_char(ctx, c, 16, 4, exact=True))
            elif _is_digit(c):
                code = _read_unicode_char(ctx, c, 8, 3, exact=False)
                if code > 0o377:
                    raise UnsupportedEscapeError(
                        "Octal escape sequence must be in range [0, 377]."
                    )
                c = chr(code)
            else:
                raise UnsupportedEscapeError(f"Unsupported escape character: \\{c}")

        s.append(c)
    return "".join(s)


def _read_comment_text(ctx: ReaderContext) -> str:
    """Read the remainder of the current line, consuming the line terminator."""
    reader = ctx.reader
    s: list[str] = []
    while (c := reader.next_char()) not in {"", "\n", "\r"}:
        s.append(c)
    return "".join(s)


def _read_comment(ctx: ReaderContext, _: str) -> cst.LineComment:
    return cst.LineComment(_read_comment_text(ctx))


def _read_shebang_comment(ctx: ReaderContext, _: str) -> cst.ShebangComment:
    return cst.ShebangComment(_read_comment_text(ctx))


def _read_comma(_: ReaderContext, __: str) -> cst.Comma:
    return cst.COMMA


def _wrapping_reader(node_type: Callable[[ReaderForm], cst.SyntaxNode]) -> LispReaderFn:
    """Return a reader macro which wraps the next form in `node_type`."""

    def _read_wrapped(ctx: ReaderContext, _: str) -> cst.SyntaxNode:
        return node_type(_read_next(ctx))

    return _read_wrapped


def _position_meta(
    line: Optional[int], col: Optional[int]
) -> Optional[lmap.PersistentMap]:
    if line is None or col is None:
        return None
    return lmap.map({READER_LINE_KW: line, READER_COL_KW: col})


def _read_delimited(ctx: ReaderContext, close_char: str) -> list[ReaderForm]:
    """Read forms until the closing character `close_char`, returning all of them
    including skippable nodes."""
    start_line = ctx.reader.line
    forms: list[ReaderForm] = []
    while True:
        form = _read(
            ctx,
            False,
            _READ_EOF,
            return_on=close_char,
            return_on_value=_READ_FINISHED,
            is_recursive=True,
        )
        if form is _READ_EOF:
            if start_line is None:
                raise UnexpectedEOFError("EOF while reading")
            raise UnexpectedEOFError(
                f"EOF while reading, starting at line {start_line}"
            )
        if form is _READ_FINISHED:
            return forms
        forms.append(form)


def _read_coll(
    ctx: ReaderContext,
    node_type: Callable[..., cst.SyntaxNode],
    close_char: str,
):
    line, col = ctx.macro_loc
    children = _read_delimited(ctx, close_char)
    meta = _position_meta(line, col) if children else None
    return node_type(children, meta=meta)


def _read_list(ctx: ReaderContext, _: str) -> cst.List:
    return _read_coll(ctx, cst.List, ")")


def _read_vector(ctx: ReaderContext, _: str) -> cst.Vector:
    return _read_coll(ctx, cst.Vector, "]")


def _read_set(ctx: ReaderContext, _: str) -> cst.Set:
    return _read_coll(ctx, cst.Set, "}")


def _read_map(ctx: ReaderContext, _: str) -> cst.Map:
    m = _read_coll(ctx, cst.Map, "}")
    if len(m.elements) % 2 != 0:
        raise MapParityError("Map literal must contain an even number of forms")
    return m


def _read_unmatched_delimiter(_: ReaderContext, c: str) -> ReaderForm:
    raise UnmatchedDelimiterError(f"Unmatched delimiter: {c}")


def _read_character(ctx: ReaderContext, _: str) -> cst.Char:
    """Read a character literal.

    Character literals may appear as:
      - \\a \\$ \\[ etc will yield 'a', '$', and '[' respectively

      - \\newline, \\space, \\tab, \\formfeed, \\backspace, \\return yield
        the named characters

      - \\uXXXX yield the character named by the hex digits XXXX, which may not
        be a surrogate

      - \\oNNN yield the character named by up to three octal digits"""
    c = ctx.reader.next_char()
    if c == "":
        raise UnexpectedEOFError("EOF while reading character")

    token = _read_token(ctx, c)
    if len(token) == 1:
        return cst.Char(token)
    if (special := _SPECIAL_CHARS.get(token)) is not None:
        return cst.Char(special)

    if token.startswith("u"):
        code = _unicode_from_token(token, 1, 4, 16)
        if 0xD800 <= code <= 0xDFFF:
            raise UnsupportedEscapeError(f"Invalid character constant: \\u{code:x}")
        return cst.Char(chr(code))

    if token.startswith("o"):
        length = len(token) - 1
        if length > 3:
            raise UnsupportedEscapeError(
                f"Invalid octal escape sequence length: {length}"
            )
        code = _unicode_from_token(token, 1, length, 8)
        if code > 0o377:
            raise UnsupportedEscapeError(
                "Octal escape sequence must be in range [0, 377]."
            )
        return cst.Char(chr(code))

    raise UnsupportedEscapeError(f"Unsupported character: \\{token}")


_SPECIAL_CHARS = {
    "newline": "\n",
    "space": " ",
    "tab": "\t",
    "backspace": "\b",
    "formfeed": "\f",
    "return": "\r",
}


def _metadata_from_form(meta_form: ReaderForm) -> IPersistentMap:
    """Return the metadata map denoted by the form following `^`."""
    if isinstance(meta_form, (sym.Symbol, str)):
        return lmap.map({READER_TAG_KW: meta_form})
    elif isinstance(meta_form, kw.Keyword):
        return lmap.map({meta_form: True})
    elif isinstance(meta_form, cst.Map):
        return cst.to_form(meta_form)
    elif isinstance(meta_form, IPersistentMap):
        return meta_form
    else:
        raise InvalidMetadataError("Metadata must be Symbol, Keyword, String or Map")


def _read_meta(ctx: ReaderContext, _: str) -> cst.Meta:
    """Read a `^` metadata annotation and the form it applies to."""
    line, col = ctx.macro_loc
    meta_form = _read_next(ctx)
    metadata = _metadata_from_form(meta_form)

    form = _read_next(ctx)
    if not isinstance(form, (IWithMeta, cst.Meta, cst.FnLiteral)):
        raise InvalidMetadataError("Metadata can only be applied to IMetas")

    if line is not None and isinstance(form, (cst.List, cst.FnLiteral)):
        metadata = metadata.assoc(READER_LINE_KW, line, READER_COL_KW, col)

    return cst.Meta(meta_form, form, metadata=metadata)


_SELF_QUOTING_TYPES = (kw.Keyword, int, float, Decimal, Fraction, str, cst.Char)


def _syntax_quote(form: ReaderForm, gensyms: GenSymEnvironment) -> ReaderForm:
    """Wrap a syntax quoted form in a representational syntax quote node.

    Keywords, numbers, strings and characters are returned unchanged. Booleans
    and `nil` are wrapped like any other form."""
    if isinstance(form, cst.UnquoteSplicing):
        raise SyntaxError("splice not in list")
    if isinstance(form, _SELF_QUOTING_TYPES) and not isinstance(form, bool):
        return form

    meta: Optional[ReaderForm] = None
    if isinstance(form, IMeta) and form.meta is not None:
        extra_meta = form.meta.dissoc(READER_LINE_KW, READER_COL_KW)
    elif isinstance(form, cst.Meta):
        extra_meta = form.metadata.dissoc(READER_LINE_KW, READER_COL_KW)
    else:
        extra_meta = lmap.EMPTY
    if len(extra_meta) > 0:
        meta = _syntax_quote(extra_meta, gensyms)

    return cst.SyntaxQuote(form, meta=meta, gensyms=lmap.map(dict(gensyms)))


def _read_syntax_quoted(ctx: ReaderContext, _: str) -> ReaderForm:
    with ctx.syntax_quoted():
        form = _read_next(ctx)
        return _syntax_quote(form, ctx.gensym_env)


def _read_unquote(
    ctx: ReaderContext, _: str
) -> Union[cst.Unquote, cst.UnquoteSplicing]:
    """Read an unquote `~form` or an unquote-splicing `~@form`."""
    reader = ctx.reader
    c = reader.next_char()
    if c == "":
        raise UnexpectedEOFError("EOF while reading character")

    with ctx.unquoted():
        if c == "@":
            return cst.UnquoteSplicing(_read_next(ctx))
        reader.pushback(c)
        return cst.Unquote(_read_next(ctx))


def _read_arg(ctx: ReaderContext, c: str) -> cst.Arg:
    """Read an anonymous function argument literal: `%`, `%N` or `%&`.

    Any other token starting with `%` is kept as the symbol it names, so that it
    is written back out as read. Only argument ordinals are registered with the
    enclosing function literal."""
    token = _read_token(ctx, c)
    if (m := arg_pattern.fullmatch(token)) is None:
        return cst.Arg(None, symbol=_interpret_token(ctx, token))

    ordinal: cst.ArgOrdinal
    if m.group(1) is not None:
        ordinal = int(m.group(1))
    elif m.group(2) is not None:
        ordinal = cst.REST_ARG
    else:
        ordinal = None
    ctx.register_arg(ordinal)
    return cst.Arg(ordinal)


def _read_dispatch(ctx: ReaderContext, _: str) -> ReaderForm:
    """Read a form introduced by `#`, dispatching on the following character.

    Characters without a dispatch macro begin a tagged literal."""
    reader = ctx.reader
    c = reader.next_char()
    if c == "":
        raise UnexpectedEOFError("EOF while reading character")

    fn = _get_dispatch_macro(c)
    if fn is None:
        reader.pushback(c)
        return _read_tagged(ctx, c)
    return fn(ctx, c)


def _read_regex(ctx: ReaderContext, _: str) -> re.Pattern:
    """Read a regex literal. Escape sequences are kept verbatim for the pattern
    compiler."""
    reader = ctx.reader
    s: list[str] = []
    while (c := reader.next_char()) != '"':
        if c == "":
            raise UnexpectedEOFError("EOF while reading regex")
        s.append(c)
        if c == "\\":
            c = reader.next_char()
            if c == "":
                raise UnexpectedEOFError("EOF while reading regex")
            s.append(c)

    pattern = "".join(s)
    try:
        return langutil.regex_from_str(pattern)
    except re.error as e:
        raise SyntaxError(f"Invalid regex: {pattern}") from e


def _read_fn(ctx: ReaderContext, _: str) -> cst.FnLiteral:
    """Read an anonymous function literal `#(...)`."""
    with ctx.in_anon_fn() as args:
        ctx.reader.pushback("(")
        form = _read_next(ctx)
        return cst.FnLiteral(form, args=lmap.map(dict(args)))


def _read_eval(ctx: ReaderContext, _: str) -> cst.Eval:
    if not runtime.is_read_eval_allowed():
        raise EvalNotAllowedError("EvalReader not allowed when read_eval is false")
    return cst.Eval(_read_next(ctx))


def _read_unreadable(_: ReaderContext, __: str) -> ReaderForm:
    raise UnreadableFormError("Unreadable form")


def _validate_conditional(node: cst.Conditional) -> None:
    pairs = node.pairs
    if len(pairs) % 2 != 0:
        raise MalformedConditionalError("read-cond requires an even number of forms")

    for feature, form in zip(pairs[::2], pairs[1::2]):
        if not isinstance(feature, kw.Keyword):
            raise MalformedConditionalError(
                f"Feature should be a keyword: {cst.emit(feature)}"
            )
        if feature in runtime.READER_COND_RESERVED_FEATURES:
            raise MalformedConditionalError(f"Feature name {feature} is reserved")
        if node.splicing and not isinstance(form, (cst.List, cst.Vector)):
            raise MalformedConditionalError(
                "Spliced form in read-cond-splicing must be a list or vector"
            )


def _read_conditional(ctx: ReaderContext, _: str) -> cst.Conditional:
    """Read a reader conditional `#?(...)` or `#?@(...)` without selecting any
    branch."""
    if ctx.opts.read_cond not in {
        ReaderConditionalMode.ALLOW,
        ReaderConditionalMode.PRESERVE,
    }:
        raise ConditionalNotAllowedError("Conditional read not allowed")

    reader = ctx.reader
    c = reader.next_char()
    if c == "":
        raise UnexpectedEOFError("EOF while reading character")

    is_splicing = c == "@"
    if is_splicing:
        c = reader.next_char()
    while c.isspace():
        c = reader.next_char()
    if c == "":
        raise UnexpectedEOFError("EOF while reading character")
    if c != "(":
        raise MalformedConditionalError("read-cond body must be a list")

    line, col = ctx.macro_loc
    with ctx.in_conditional():
        node = cst.Conditional(
            _read_delimited(ctx, ")"),
            splicing=is_splicing,
            meta=_position_meta(line, col),
        )
        _validate_conditional(node)
        return node


def _read_record(
    ctx: ReaderContext, tag: sym.Symbol, form: ReaderForm
) -> ReaderForm:
    """Construct a record instance from the vector or map following the record
    name `tag`."""
    if not runtime.is_read_eval_allowed():
        raise EvalNotAllowedError(
            "Record construction syntax can only be used when read_eval is true"
        )

    rectype = ctx.resolve_record(tag)
    if rectype is None:
        raise NoReaderForTagError(f"Record type {tag} does not exist")

    logger.debug(f"Constructing record {rectype.name} from {type(form).__name__}")
    try:
        if isinstance(form, cst.Vector):
            return rectype.from_vector(cst.to_form(form))
        elif isinstance(form, cst.Map):
            return rectype.from_map(cst.to_form(form))
    except runtime.RuntimeException as e:
        raise SyntaxError(e.args[0]) from e
    raise SyntaxError(f'Unreadable constructor form starting with "#{tag}"')


def _resolve_tagged_literal(
    ctx: ReaderContext, tag: sym.Symbol, form: ReaderForm
) -> ReaderForm:
    """Resolve a tagged literal into whatever value is returned by the associated
    data reader."""
    data_reader = ctx.data_readers.val_at(tag) or ReaderContext._DATA_READERS.val_at(
        tag
    )
    if data_reader is not None:
        logger.debug(f"Resolving tagged literal #{tag} with data reader")
        return data_reader(cst.to_form(form))

    if ctx.default_data_reader_fn is not None:
        logger.debug(f"Resolving tagged literal #{tag} with default data reader")
        return ctx.default_data_reader_fn(tag, cst.to_form(form))

    raise NoReaderForTagError(f"No reader function for tag {tag}")


def _read_tagged(ctx: ReaderContext, _: str) -> ReaderForm:
    """Read a tagged literal `#tag form` or a record literal `#my.ns.Record [...]`."""
    tag = _read_next(ctx)
    if not isinstance(tag, sym.Symbol):
        raise InvalidTokenError("Reader tag must be a symbol")

    form = _read_next(ctx)
    if (
        ctx.opts.read_cond == ReaderConditionalMode.PRESERVE
        and ctx.is_in_conditional
    ):
        return tagged_literal(tag, form)

    if "." in tag.name:
        return _read_record(ctx, tag, form)
    return _resolve_tagged_literal(ctx, tag, form)


###################
# Dispatch Tables #
###################


def _dispatch_table(macros: Mapping[str, LispReaderFn]) -> DispatchTable:
    table: list[Optional[LispReaderFn]] = [None] * 256
    for c, fn in macros.items():
        table[ord(c)] = fn
    return tuple(table)


_MACROS: DispatchTable = _dispatch_table(
    {
        '"': _read_str,
        ";": _read_comment,
        ",": _read_comma,
        "'": _wrapping_reader(cst.Quote),
        "@": _wrapping_reader(cst.Deref),
        "^": _read_meta,
        "`": _read_syntax_quoted,
        "~": _read_unquote,
        "(": _read_list,
        ")": _read_unmatched_delimiter,
        "[": _read_vector,
        "]": _read_unmatched_delimiter,
        "{": _read_map,
        "}": _read_unmatched_delimiter,
        "\\": _read_character,
        "%": _read_arg,
        "#": _read_dispatch,
    }
)

_DISPATCH_MACROS: DispatchTable = _dispatch_table(
    {
        "^": _read_meta,
        "'": _wrapping_reader(cst.Var),
        '"': _read_regex,
        "(": _read_fn,
        "{": _read_set,
        "=": _read_eval,
        "!": _read_shebang_comment,
        "<": _read_unreadable,
        "_": _wrapping_reader(cst.Discard),
        "?": _read_conditional,
    }
)


##########
# Driver #
##########


def _read(  # pylint: disable=too-many-arguments
    ctx: ReaderContext,
    eof_is_error: bool,
    eof_value: Any,
    return_on: Optional[str] = None,
    return_on_value: Any = None,
    is_recursive: bool = True,
) -> ReaderForm:
    """Read the next form from the context's reader.

    Pending forms are returned before any character is read. If the next
    significant character is `return_on`, `return_on_value` is returned instead of
    a form. At EOF, raise if `eof_is_error`, otherwise return `eof_value`.

    The outermost (non-recursive) read annotates errors with the position of the
    reader and wraps errors not raised by the reader itself in a `ReaderError`."""
    reader = ctx.reader
    try:
        if not is_recursive and runtime.get_read_eval() == runtime.READ_EVAL_UNKNOWN:
            raise EvalNotAllowedError(
                "Reading disallowed - read_eval bound to :unknown"
            )

        while True:
            if ctx.pending_forms:
                return ctx.pending_forms.popleft()

            c = reader.next_char()
            while c.isspace():
                c = reader.next_char()

            if c == "":
                if eof_is_error:
                    raise UnexpectedEOFError("EOF while reading")
                return eof_value

            if return_on is not None and c == return_on:
                return return_on_value

            if _is_digit(c):
                return _read_number(ctx, c)

            if (macro := _get_macro(c)) is not None:
                return macro(ctx, c)

            if c in {"+", "-"}:
                c2 = reader.next_char()
                reader.pushback(c2)
                if _is_digit(c2):
                    return _read_number(ctx, c)

            return _interpret_token(ctx, _read_token(ctx, c))
    except SyntaxError as e:
        if not is_recursive and e.line is None:
            e.line, e.col = reader.loc
            e.filename = e.filename or reader.name
        raise
    except Exception as e:
        if is_recursive:
            raise
        line, col = reader.loc
        raise ReaderError(
            f"{type(e).__name__}: {e}", line=line, col=col, filename=reader.name
        ) from e


##############
# Public API #
##############


def read_form(  # pylint: disable=too-many-arguments
    reader: StreamReader,
    opts: Optional[ReadOptions] = None,
    data_readers: Optional[Mapping[sym.Symbol, DataReaderFn]] = None,
    default_data_reader_fn: Optional[DefaultDataReaderFn] = None,
    record_resolver: Optional[runtime.RecordResolver] = None,
    resolver: Optional[NamespaceResolver] = None,
    pending_forms: Optional[collections.deque] = None,
) -> ReaderForm:
    """Read one top-level form from `reader`.

    Comments, commas and discarded forms are returned as skippable syntax nodes
    just like any other form. At EOF, return `opts.eof` unless it is `EOF_ERROR`,
    in which case an `UnexpectedEOFError` is raised.

    Callers may optionally provide:
      - a map of data reader functions keyed by tag symbol, consulted before the
        default `inst` and `uuid` readers
      - a function of a tag and form called for tags without a data reader
      - a record resolver returning the `RecordType` named by a record tag
      - a namespace resolver returning the canonical name of a namespace alias
        (or of the current namespace given None) for `::` keywords
      - a queue of pending forms, which are returned before reading anything"""
    ctx = ReaderContext(
        reader,
        opts=opts,
        data_readers=data_readers,
        default_data_reader_fn=default_data_reader_fn,
        record_resolver=record_resolver,
        resolver=resolver,
        pending_forms=pending_forms,
    )
    return _read(ctx, ctx.opts.eof_is_error, ctx.opts.eof, is_recursive=False)


def read(  # pylint: disable=too-many-arguments
    stream,
    opts: Optional[ReadOptions] = None,
    data_readers: Optional[Mapping[sym.Symbol, DataReaderFn]] = None,
    default_data_reader_fn: Optional[DefaultDataReaderFn] = None,
    record_resolver: Optional[runtime.RecordResolver] = None,
    resolver: Optional[NamespaceResolver] = None,
    init_line: Optional[int] = None,
    init_column: Optional[int] = None,
) -> Iterable[ReaderForm]:
    """Read the contents of a stream as a sequence of top-level forms, including
    skippable syntax nodes, stopping at EOF.

    The optional `init_line` and `init_column` specify where the
    `stream` location metadata starts in the broader context, if not
    from the start.

    Other keyword arguments have the same meanings as those of `read_form`.

    The caller is responsible for closing the input stream."""
    reader = LineNumberingStreamReader(
        stream, init_line=init_line, init_column=init_column
    )
    while True:
        ctx = ReaderContext(
            reader,
            opts=opts,
            data_readers=data_readers,
            default_data_reader_fn=default_data_reader_fn,
            record_resolver=record_resolver,
            resolver=resolver,
        )
        form = _read(ctx, False, _READ_EOF, is_recursive=False)
        if form is _READ_EOF:
            return
        yield form


def read_str(  # pylint: disable=too-many-arguments
    s: str,
    opts: Optional[ReadOptions] = None,
    data_readers: Optional[Mapping[sym.Symbol, DataReaderFn]] = None,
    default_data_reader_fn: Optional[DefaultDataReaderFn] = None,
    record_resolver: Optional[runtime.RecordResolver] = None,
    resolver: Optional[NamespaceResolver] = None,
    init_line: Optional[int] = None,
    init_column: Optional[int] = None,
) -> Iterable[ReaderForm]:
    """Read the contents of a string as a sequence of top-level forms.

    Keyword arguments to this function have the same meanings as those of
    lispcst.lang.reader.read."""
    with io.StringIO(s) as buf:
        yield from read(
            buf,
            opts=opts,
            data_readers=data_readers,
            default_data_reader_fn=default_data_reader_fn,
            record_resolver=record_resolver,
            resolver=resolver,
            init_line=init_line,
            init_column=init_column,
        )


def read_file(  # pylint: disable=too-many-arguments
    filename: str,
    opts: Optional[ReadOptions] = None,
    data_readers: Optional[Mapping[sym.Symbol, DataReaderFn]] = None,
    default_data_reader_fn: Optional[DefaultDataReaderFn] = None,
    record_resolver: Optional[runtime.RecordResolver] = None,
    resolver: Optional[NamespaceResolver] = None,
) -> Iterable[ReaderForm]:
    """Read the contents of a file as a sequence of top-level forms.

    Keyword arguments to this function have the same meanings as those of
    lispcst.lang.reader.read."""
    with open(filename, encoding="utf-8") as f:
        yield from read(
            f,
            opts=opts,
            data_readers=data_readers,
            default_data_reader_fn=default_data_reader_fn,
            record_resolver=record_resolver,
            resolver=resolver,
        )


def read_cst(s: str, opts: Optional[ReadOptions] = None, **kwargs) -> cst.File:
    """Read the whole string `s` as a `File` node."""
    return cst.File(read_str(s, opts=opts, **kwargs))


def read_file_cst(
    filename: str, opts: Optional[ReadOptions] = None, **kwargs
) -> cst.File:
    """Read the whole file `filename` as a `File` node."""
    return cst.File(read_file(filename, opts=opts, **kwargs))
