import collections
import io
import re
import uuid
from decimal import Decimal
from fractions import Fraction
from typing import Optional

import dateutil.parser as dateparser
import pytest

from lispcst.lang import cst
from lispcst.lang import keyword as kw
from lispcst.lang import list as llist
from lispcst.lang import map as lmap
from lispcst.lang import reader as reader
from lispcst.lang import runtime as runtime
from lispcst.lang import set as lset
from lispcst.lang import symbol as sym
from lispcst.lang import vector as vec
from lispcst.lang.numbers import BigInt
from lispcst.lang.tagged import tagged_literal

ALLOW = reader.ReadOptions(read_cond=reader.ReaderConditionalMode.ALLOW)
PRESERVE = reader.ReadOptions(read_cond=reader.ReaderConditionalMode.PRESERVE)


def read_str_first(s: str, opts: Optional[reader.ReadOptions] = None, **kwargs):
    """Read the first form from the input string. If no form
    is found, return None."""
    try:
        return next(reader.read_str(s, opts=opts, **kwargs))
    except StopIteration:
        return None


def read_all(s: str, opts: Optional[reader.ReadOptions] = None, **kwargs) -> list:
    return list(reader.read_str(s, opts=opts, **kwargs))


class TestStreamReader:
    def test_stream_reader(self):
        sreader = reader.StreamReader(io.StringIO("ab"))
        assert (None, None) == sreader.loc

        assert "a" == sreader.next_char()
        sreader.pushback("a")
        assert "a" == sreader.next_char()
        assert "b" == sreader.next_char()
        assert "" == sreader.next_char()
        assert "" == sreader.next_char()

    def test_pushback_depth(self):
        sreader = reader.StreamReader(io.StringIO("ab"))
        sreader.next_char()
        sreader.pushback("a")

        with pytest.raises(IndexError):
            sreader.pushback("a")

    def test_pushback_eof_is_ignored(self):
        sreader = reader.StreamReader(io.StringIO(""))
        assert "" == sreader.next_char()
        sreader.pushback("")
        sreader.pushback("")
        assert "" == sreader.next_char()

    def test_line_numbering_reader_loc(self):
        sreader = reader.LineNumberingStreamReader(io.StringIO("a\nb"))
        assert (1, 0) == sreader.loc

        assert "a" == sreader.next_char()
        assert (1, 1) == sreader.loc

        assert "\n" == sreader.next_char()
        assert (2, 0) == sreader.loc

        sreader.pushback("\n")
        assert (1, 1) == sreader.loc

        assert "\n" == sreader.next_char()
        assert (2, 0) == sreader.loc

        assert "b" == sreader.next_char()
        assert (2, 1) == sreader.loc

        assert "" == sreader.next_char()
        assert (2, 1) == sreader.loc

    @pytest.mark.parametrize(
        "s,locs",
        [
            ("a\r\nb", [(1, 1), (2, 0), (2, 0), (2, 1)]),
            ("a\rb", [(1, 1), (2, 0), (2, 1)]),
            ("\n\n", [(2, 0), (3, 0)]),
            ("\r\r\n", [(2, 0), (3, 0), (3, 0)]),
        ],
    )
    def test_line_terminators(self, s: str, locs):
        sreader = reader.LineNumberingStreamReader(io.StringIO(s))
        for loc in locs:
            sreader.next_char()
            assert loc == sreader.loc

    def test_initial_position(self):
        sreader = reader.LineNumberingStreamReader(
            io.StringIO("ab"), init_line=5, init_column=3
        )
        assert (5, 3) == sreader.loc
        sreader.next_char()
        assert (5, 4) == sreader.loc


class TestInt:
    @pytest.mark.parametrize(
        "v,raw",
        [
            (0, "0"),
            (0, "-0"),
            (1, "1"),
            (42, "42"),
            (42, "+42"),
            (-42, "-42"),
            (31, "0x1F"),
            (-31, "-0X1f"),
            (15, "017"),
            (10, "2r1010"),
            (35, "36rZ"),
            (-15, "-8r17"),
            (9223372036854775807, "9223372036854775807"),
            (-9223372036854775808, "-9223372036854775808"),
        ],
    )
    def test_legal_int(self, v: int, raw: str):
        n = read_str_first(raw)
        assert v == n
        assert type(n) is int

    @pytest.mark.parametrize(
        "v,raw",
        [
            (0, "0N"),
            (42, "42N"),
            (-42, "-42N"),
            (255, "0xFFN"),
            (9223372036854775808, "9223372036854775808"),
            (-9223372036854775809, "-9223372036854775809"),
        ],
    )
    def test_legal_bigint(self, v: int, raw: str):
        n = read_str_first(raw)
        assert v == n
        assert isinstance(n, BigInt)

    @pytest.mark.parametrize(
        "raw", ["08", "1a", "0x", "0x1G", "2r3", "37r1", "99r1", "1N2", "1/0", "0xN1"]
    )
    def test_malformed_int(self, raw: str):
        with pytest.raises(reader.InvalidNumberError):
            read_str_first(raw)

    def test_number_ends_at_any_macro(self):
        assert [1, cst.Quote(sym.symbol("a"))] == read_all("1'a")
        assert cst.Vector((1,)) == read_str_first("[1]")


class TestFloat:
    @pytest.mark.parametrize(
        "v,raw",
        [
            (1.5, "1.5"),
            (-1.5, "-1.5"),
            (2.0, "+2.0"),
            (1.0, "1."),
            (1000.0, "1e3"),
            (0.0015, "1.5e-3"),
            (1200.0, "1.2E+3"),
        ],
    )
    def test_legal_float(self, v: float, raw: str):
        f = read_str_first(raw)
        assert v == f
        assert type(f) is float

    @pytest.mark.parametrize(
        "v,raw",
        [
            (Decimal("1.5"), "1.5M"),
            (Decimal("3"), "3M"),
            (Decimal("-1E+3"), "-1e3M"),
        ],
    )
    def test_legal_decimal(self, v: Decimal, raw: str):
        d = read_str_first(raw)
        assert v == d
        assert isinstance(d, Decimal)

    @pytest.mark.parametrize("raw", ["0..11", "0.111.9", "1.5MM", "1e", "1.2e3.4"])
    def test_malformed_float(self, raw: str):
        with pytest.raises(reader.InvalidNumberError):
            read_str_first(raw)


class TestRatio:
    @pytest.mark.parametrize(
        "v,raw",
        [
            (Fraction(1, 2), "1/2"),
            (Fraction(-1, 2), "-2/4"),
            (Fraction(1, 2), "+3/6"),
            (Fraction(22, 7), "22/7"),
        ],
    )
    def test_legal_ratio(self, v: Fraction, raw: str):
        assert v == read_str_first(raw)

    def test_ratio_reduces_to_int(self):
        n = read_str_first("4/2")
        assert 2 == n
        assert type(n) is int

    @pytest.mark.parametrize("raw", ["1/2/3", "1/a", "1.0/2"])
    def test_malformed_ratio(self, raw: str):
        with pytest.raises(reader.InvalidNumberError):
            read_str_first(raw)


@pytest.mark.parametrize("s,val", [("nil", None), ("true", True), ("false", False)])
def test_literals(s: str, val):
    assert read_str_first(s) is val


class TestSymbol:
    @pytest.mark.parametrize(
        "s",
        [
            "sym",
            "-",
            "+",
            "-a",
            "+a",
            "a:b",
            "a.b.c",
            "*earmuffs*",
            "kebab-kw",
            "?",
            "!",
            "a#",
            "a'b",
            "a%b",
            "<=",
            "a1",
        ],
    )
    def test_legal_bare_symbol(self, s: str):
        assert sym.symbol(s) == read_str_first(s)

    @pytest.mark.parametrize(
        "s,ns,raw",
        [
            ("sym", "ns", "ns/sym"),
            ("sym", "qualified.ns", "qualified.ns/sym"),
            ("/", "clojure.core", "clojure.core//"),
            ("b/c", "a", "a/b/c"),
        ],
    )
    def test_legal_ns_symbol(self, s: str, ns: str, raw: str):
        assert sym.symbol(s, ns=ns) == read_str_first(raw)

    def test_slash_symbol(self):
        assert sym.symbol("/") == read_str_first("/")

    @pytest.mark.parametrize("s", ["a:", "a::b", "ns:/x", "a/", "a/1b", "ns/:"])
    def test_illegal_symbol(self, s: str):
        with pytest.raises(reader.InvalidTokenError):
            read_str_first(s)

    def test_symbol_ends_at_terminating_macro(self):
        assert [sym.symbol("a"), cst.Deref(sym.symbol("b"))] == read_all("a@b")


class TestKeyword:
    @pytest.mark.parametrize(
        "k,raw",
        [("kw", ":kw"), ("kebab-kw", ":kebab-kw"), ("a.b", ":a.b"), ("a:b", ":a:b")],
    )
    def test_legal_bare_keyword(self, k: str, raw: str):
        assert kw.keyword(k) == read_str_first(raw)

    @pytest.mark.parametrize(
        "k,ns,raw", [("kw", "ns", ":ns/kw"), ("kw", "qualified.ns", ":qualified.ns/kw")]
    )
    def test_legal_ns_keyword(self, k: str, ns: str, raw: str):
        assert kw.keyword(k, ns=ns) == read_str_first(raw)

    @pytest.mark.parametrize("s", [":", "::", ":a:", ":a::b", ":ns:/a", ":ns/"])
    def test_illegal_keyword(self, s: str):
        with pytest.raises(reader.InvalidTokenError):
            read_str_first(s)

    def test_autoresolved_kw(self, test_ns: str, ns: runtime.Namespace):
        assert kw.keyword("kw", ns=test_ns) == read_str_first("::kw")

    def test_autoresolved_kw_with_alias(self, ns: runtime.Namespace):
        other_ns_sym = sym.symbol("lispcst.other-ns")
        other_ns = runtime.Namespace.get_or_create(other_ns_sym)
        try:
            ns.add_alias(other_ns, sym.symbol("other"))
            assert kw.keyword("kw", ns="lispcst.other-ns") == read_str_first(
                "::other/kw"
            )
            assert kw.keyword("kw", ns="lispcst.other-ns") == read_str_first(
                "::lispcst.other-ns/kw"
            )
        finally:
            runtime.Namespace.remove(other_ns_sym)

    def test_autoresolved_kw_with_unknown_alias(self, ns: runtime.Namespace):
        with pytest.raises(reader.InvalidTokenError):
            read_str_first("::missing/kw")

    def test_autoresolved_kw_with_resolver(self):
        def resolve(ns_name: Optional[str]) -> Optional[str]:
            return "resolved.ns" if ns_name in {None, "r"} else None

        assert kw.keyword("kw", ns="resolved.ns") == read_str_first(
            "::kw", resolver=resolve
        )
        assert kw.keyword("kw", ns="resolved.ns") == read_str_first(
            "::r/kw", resolver=resolve
        )
        with pytest.raises(reader.InvalidTokenError):
            read_str_first("::q/kw", resolver=resolve)


class TestString:
    @pytest.mark.parametrize(
        "v,raw",
        [
            ("", '""'),
            ('"', r'"\""'),
            ("\\", r'"\\"'),
            ("Regular string", '"Regular string"'),
            ("String with 'inner string'", "\"String with 'inner string'\""),
            ('String with "inner string"', r'"String with \"inner string\""'),
            ("\t\r\n\b\f", r'"\t\r\n\b\f"'),
            ("multi\nline", '"multi\nline"'),
            ("é", r'"é"'),
            ("ÿ", r'"ÿ"'),
            ("A", r'"\101"'),
            ("\x00", r'"\0"'),
            ("\x01", r'"\1"'),
            ("ÿ", r'"\377"'),
            ("S 2", r'"\123 2"'),
        ],
    )
    def test_legal_string(self, v: str, raw: str):
        assert v == read_str_first(raw)

    @pytest.mark.parametrize(
        "raw",
        [r'"\q"', r'"\400"', r'"\8"', r'"\u12"', r'"\u00zz"', r'"\uzzzz"'],
    )
    def test_invalid_escape(self, raw: str):
        with pytest.raises(reader.UnsupportedEscapeError):
            read_str_first(raw)

    @pytest.mark.parametrize(
        "raw",
        [
            '"Start of a string',
            '"ends with escape\\',
            r'"\u',
            r'"\u00',
            r'"\12',
        ],
    )
    def test_missing_terminating_quote(self, raw: str):
        with pytest.raises(reader.UnexpectedEOFError):
            read_str_first(raw)


class TestCharacter:
    @pytest.mark.parametrize(
        "c,raw",
        [
            ("a", r"\a"),
            ("Ω", r"\Ω"),
            ("$", r"\$"),
            ("(", r"\("),
            ("\\", r"\\"),
            ("u", r"\u"),
            ("o", r"\o"),
            ("\n", r"\newline"),
            (" ", r"\space"),
            ("\t", r"\tab"),
            ("\b", r"\backspace"),
            ("\f", r"\formfeed"),
            ("\r", r"\return"),
            ("é", r"\u00e9"),
            ("Ω", r"\u03A9"),
            ("A", r"\o101"),
            ("\x07", r"\o7"),
            ("ÿ", r"\o377"),
        ],
    )
    def test_legal_character(self, c: str, raw: str):
        assert cst.Char(c) == read_str_first(raw)

    @pytest.mark.parametrize(
        "raw",
        [
            r"\ud800",
            r"\udfff",
            r"\u12",
            r"\u12345",
            r"\uzzzz",
            r"\o400",
            r"\o1234",
            r"\o8",
            r"\abc",
            r"\newlines",
        ],
    )
    def test_illegal_character(self, raw: str):
        with pytest.raises(reader.UnsupportedEscapeError):
            read_str_first(raw)

    def test_character_at_eof(self):
        with pytest.raises(reader.UnexpectedEOFError):
            read_str_first("\\")

    def test_characters_in_collections(self):
        assert cst.List((cst.Char("a"), cst.Char("b"))) == read_str_first(r"(\a \b)")
        assert cst.Vector((cst.Char("a"),)) == read_str_first(r"[\a]")
        assert cst.Vector((cst.Char(" "), cst.Char("]"))) == read_str_first(
            "[\\  \\]]"
        )


class TestCollections:
    def test_list(self):
        assert cst.List(()) == read_str_first("()")
        assert cst.List((1, 2)) == read_str_first("(1 2)")
        assert cst.List((sym.symbol("f"), cst.List((1,)))) == read_str_first("(f (1))")
        assert llist.l(1, 2) == read_str_first("( 1\n2 )").form

    def test_vector(self):
        assert cst.Vector(()) == read_str_first("[]")
        assert cst.Vector((1, cst.Vector((2,)))) == read_str_first("[1 [2]]")
        assert vec.v(1, 2) == read_str_first("[1 2]").form

    def test_set(self):
        assert cst.Set(()) == read_str_first("#{}")
        assert cst.Set((1, 2)) == read_str_first("#{1 2}")
        assert lset.s(1, 2) == read_str_first("#{1 2}").form

    def test_map(self):
        assert cst.Map(()) == read_str_first("{}")
        node = read_str_first("{:a 1 :b [2]}")
        assert cst.Map(
            (kw.keyword("a"), 1, kw.keyword("b"), cst.Vector((2,)))
        ) == node
        assert lmap.map(
            {kw.keyword("a"): 1, kw.keyword("b"): cst.Vector((2,))}
        ) == node.form

    @pytest.mark.parametrize("raw", ["{:a}", "{:a 1 :b}", "{:a #_1}", "{:a, }"])
    def test_map_parity(self, raw: str):
        with pytest.raises(reader.MapParityError):
            read_str_first(raw)

    def test_map_parity_ignores_skippables(self):
        node = read_str_first("{:a 1 #_:b ;c\n}")
        assert 4 == len(node.children)
        assert (kw.keyword("a"), 1) == node.elements

    def test_commas_are_preserved(self):
        node = read_str_first("[1,2 , 3]")
        assert cst.Vector((1, cst.COMMA, 2, cst.COMMA, 3)) == node
        assert vec.v(1, 2, 3) == node.form

    def test_position_meta(self):
        node = read_str_first("\n  (a [b])")
        assert lmap.map(
            {reader.READER_LINE_KW: 2, reader.READER_COL_KW: 2}
        ) == node.meta
        assert lmap.map(
            {reader.READER_LINE_KW: 2, reader.READER_COL_KW: 5}
        ) == node.children[1].meta

    def test_empty_collections_have_no_position(self):
        assert read_str_first("()").meta is None
        assert read_str_first("[]").meta is None

    @pytest.mark.parametrize("raw", ["(1 2", "[", "{:a 1", "#{1", "(1 [2 3"])
    def test_unterminated(self, raw: str):
        with pytest.raises(reader.UnexpectedEOFError):
            read_str_first(raw)

    def test_unterminated_mentions_starting_line(self):
        with pytest.raises(reader.UnexpectedEOFError) as e:
            read_str_first("\n\n[1\n2")
        assert "starting at line 3" in e.value.message

    @pytest.mark.parametrize("raw", [")", "]", "}", "(]", "[)", "{:a 1]", "(1 2))"])
    def test_unmatched_delimiter(self, raw: str):
        with pytest.raises(reader.UnmatchedDelimiterError):
            read_all(raw)


class TestSkippables:
    def test_line_comment(self):
        assert [cst.LineComment(" hi"), 1] == read_all("; hi\n1")
        assert [cst.LineComment(" c")] == read_all("; c")
        assert [cst.LineComment(" c"), 1] == read_all("; c\r\n1")
        assert [cst.LineComment(";; double")] == read_all(";;; double")

    def test_comment_in_list(self):
        node = read_str_first("(#_(1 2) 3 ;c\n)")
        assert (
            cst.Discard(cst.List((1, 2))),
            3,
            cst.LineComment("c"),
        ) == node.children
        assert cst.is_skippable(node.children[0])
        assert not cst.is_skippable(node.children[1])
        assert cst.is_skippable(node.children[2])
        assert llist.l(3) == cst.to_form(node)

    def test_shebang_comment(self):
        assert [
            cst.ShebangComment("/usr/bin/env bb"),
            cst.List((sym.symbol("x"),)),
        ] == read_all("#!/usr/bin/env bb\n(x)")

    def test_discard(self):
        assert [cst.Discard(1), 2] == read_all("#_1 2")
        assert [cst.Discard(cst.Discard(1)), 2] == read_all("#_ #_ 1 2")
        assert [cst.Vector((cst.Discard(sym.symbol("a")),))] == read_all("[#_a]")

    def test_discard_at_eof(self):
        with pytest.raises(reader.UnexpectedEOFError):
            read_all("#_")

    def test_comma(self):
        assert [cst.COMMA, 1, cst.COMMA] == read_all(",1,")


class TestQuoting:
    @pytest.mark.parametrize(
        "node,raw",
        [
            (cst.Quote(sym.symbol("a")), "'a"),
            (cst.Quote(cst.List((1,))), "'(1)"),
            (cst.Deref(sym.symbol("a")), "@a"),
            (cst.Var(sym.symbol("a")), "#'a"),
            (cst.Unquote(sym.symbol("a")), "~a"),
            (cst.UnquoteSplicing(sym.symbol("a")), "~@a"),
            (cst.Unquote(cst.Deref(sym.symbol("a"))), "~ @a"),
            (cst.Quote(cst.Quote(sym.symbol("a"))), "''a"),
        ],
    )
    def test_quoting_forms(self, node, raw: str):
        assert node == read_str_first(raw)

    @pytest.mark.parametrize("raw", ["'", "@", "#'", "~", "~@", "`"])
    def test_quoting_at_eof(self, raw: str):
        with pytest.raises(reader.UnexpectedEOFError):
            read_str_first(raw)


class TestSyntaxQuote:
    def test_syntax_quoted_symbol(self):
        node = read_str_first("`a")
        assert cst.SyntaxQuote(sym.symbol("a")) == node
        assert node.meta is None

    @pytest.mark.parametrize(
        "v,raw",
        [
            (kw.keyword("a"), "`:a"),
            (1, "`1"),
            (1.5, "`1.5"),
            ("s", '`"s"'),
            (cst.Char("a"), r"`\a"),
        ],
    )
    def test_literals_are_not_wrapped(self, v, raw: str):
        assert v == read_str_first(raw)

    @pytest.mark.parametrize(
        "v,raw", [(None, "`nil"), (True, "`true"), (False, "`false")]
    )
    def test_constants_are_wrapped(self, v, raw: str):
        node = read_str_first(raw)
        assert isinstance(node, cst.SyntaxQuote)
        assert v is node.form
        assert raw == cst.emit(node)

    def test_syntax_quoted_list(self):
        assert cst.SyntaxQuote(
            cst.List(
                (
                    sym.symbol("a"),
                    cst.Unquote(sym.symbol("b")),
                    cst.UnquoteSplicing(sym.symbol("c")),
                )
            )
        ) == read_str_first("`(a ~b ~@c)")

    def test_splice_not_in_list(self):
        with pytest.raises(reader.SyntaxError):
            read_str_first("`~@a")

    def test_gensyms(self):
        node = read_str_first("`(let [x# 1] x#)")
        assert {"x#"} == set(node.gensyms.keys())

        generated = node.gensyms["x#"]
        assert generated.ns is None
        assert generated.name.startswith("x__")
        assert generated.name.endswith("__auto__")

        # Gensym literals are left as read in the quoted form
        assert sym.symbol("x#") == node.form.children[2]

    def test_gensyms_are_not_recorded_when_unquoted(self):
        node = read_str_first("`(a# ~b# ~@(c#))")
        assert {"a#"} == set(node.gensyms.keys())

    def test_nested_syntax_quotes_have_separate_gensyms(self):
        node = read_str_first("`(a# `b#)")
        assert {"a#"} == set(node.gensyms.keys())
        inner = node.form.children[1]
        assert isinstance(inner, cst.SyntaxQuote)
        assert {"b#"} == set(inner.gensyms.keys())

    def test_gensym_literal_outside_syntax_quote(self):
        assert sym.symbol("a#") == read_str_first("a#")

    def test_syntax_quoted_metadata(self):
        node = read_str_first("`^:foo x")
        assert isinstance(node.form, cst.Meta)
        assert isinstance(node.meta, cst.SyntaxQuote)
        assert lmap.map({kw.keyword("foo"): True}) == node.meta.form

    def test_position_metadata_is_not_syntax_quoted(self):
        assert read_str_first("`(a b)").meta is None
        assert read_str_first("`^:foo (a b)").meta.form == lmap.map(
            {kw.keyword("foo"): True}
        )


class TestMeta:
    @pytest.mark.parametrize(
        "meta_form,metadata,raw",
        [
            (
                kw.keyword("dynamic"),
                lmap.map({kw.keyword("dynamic"): True}),
                "^:dynamic x",
            ),
            (
                sym.symbol("String"),
                lmap.map({reader.READER_TAG_KW: sym.symbol("String")}),
                "^String x",
            ),
            (
                "String",
                lmap.map({reader.READER_TAG_KW: "String"}),
                '^"String" x',
            ),
            (
                cst.Map((kw.keyword("a"), 1)),
                lmap.map({kw.keyword("a"): 1}),
                "^{:a 1} x",
            ),
            (
                kw.keyword("dynamic"),
                lmap.map({kw.keyword("dynamic"): True}),
                "#^:dynamic x",
            ),
        ],
    )
    def test_meta_on_symbol(self, meta_form, metadata, raw: str):
        node = read_str_first(raw)
        assert cst.Meta(meta_form, sym.symbol("x")) == node
        assert metadata == node.metadata

    def test_meta_on_collections(self):
        node = read_str_first("^:a [1]")
        assert cst.Meta(kw.keyword("a"), cst.Vector((1,))) == node
        assert lmap.map({kw.keyword("a"): True}) == node.metadata

        node = read_str_first("^:a #{1}")
        assert isinstance(node.form, cst.Set)

        node = read_str_first("^:a {}")
        assert isinstance(node.form, cst.Map)

    def test_meta_on_list_includes_position(self):
        node = read_str_first("\n ^:a (f)")
        assert lmap.map(
            {
                kw.keyword("a"): True,
                reader.READER_LINE_KW: 2,
                reader.READER_COL_KW: 1,
            }
        ) == node.metadata

    def test_meta_on_fn_literal_includes_position(self):
        node = read_str_first("^:a #(f)")
        assert isinstance(node.form, cst.FnLiteral)
        assert 1 == node.metadata.val_at(reader.READER_LINE_KW)

    def test_stacked_meta(self):
        node = read_str_first("^:a ^:b x")
        assert cst.Meta(
            kw.keyword("a"), cst.Meta(kw.keyword("b"), sym.symbol("x"))
        ) == node

    @pytest.mark.parametrize("raw", ["^1 x", "^[:a] x", "^#{:a} x", "^nil x"])
    def test_invalid_meta_structure(self, raw: str):
        with pytest.raises(reader.InvalidMetadataError):
            read_str_first(raw)

    @pytest.mark.parametrize("raw", ["^:a 1", "^:a :b", '^:a "s"', "^:a nil"])
    def test_invalid_meta_target(self, raw: str):
        with pytest.raises(reader.InvalidMetadataError):
            read_str_first(raw)


class TestFnLiteral:
    def test_fn_literal(self):
        node = read_str_first("#(+ % %2)")
        assert cst.FnLiteral(
            cst.List((sym.symbol("+"), cst.Arg(None), cst.Arg(2)))
        ) == node
        assert {1, 2} == set(node.args.keys())

    def test_fn_literal_rest_args(self):
        node = read_str_first("#(apply f %1 %&)")
        assert {1, "&"} == set(node.args.keys())
        assert cst.Arg("&") == node.form.children[3]

    def test_fn_literal_args_are_generated_once(self):
        node = read_str_first("#(f % %1)")
        assert [1] == list(node.args.keys())
        assert node.args[1].name.startswith("p1__")

    def test_nested_fn_literal(self):
        with pytest.raises(reader.NestedFnLiteralError):
            read_str_first("#(f #(g %))")

    def test_failed_fn_literal_restores_scope(self):
        ctx = reader.ReaderContext(
            reader.LineNumberingStreamReader(io.StringIO("#(f #(g)) #(h)"))
        )
        with pytest.raises(reader.NestedFnLiteralError):
            reader._read(ctx, True, None, is_recursive=False)
        assert not ctx.is_in_anon_fn

    def test_fn_literals_may_follow_each_other(self):
        assert 2 == len(read_all("#(f) #(g)"))

    @pytest.mark.parametrize(
        "ordinal,raw", [(None, "%"), (1, "%1"), (12, "%12"), ("&", "%&")]
    )
    def test_arg_literal(self, ordinal, raw: str):
        assert cst.Arg(ordinal) == read_str_first(raw)

    @pytest.mark.parametrize(
        "name,raw",
        [
            ("%foo", "%foo"),
            ("%0", "%0"),
            ("%&a", "%&a"),
            ("%1.5", "%1.5"),
            ("%-1", "%-1"),
        ],
    )
    def test_symbol_arg_token(self, name: str, raw: str):
        node = read_str_first(raw)
        assert cst.Arg(None, symbol=sym.symbol(name)) == node
        assert raw == cst.emit(node)

    def test_symbol_arg_token_is_not_registered(self):
        node = read_str_first("#(f %x %1)")
        assert [1] == list(node.args.keys())
        assert "#(f %x %1)" == cst.emit(node)

    @pytest.mark.parametrize("raw", ["%a:", "%ns/"])
    def test_invalid_arg_literal(self, raw: str):
        with pytest.raises(reader.InvalidTokenError):
            read_str_first(raw)


class TestDispatch:
    def test_regex(self):
        pattern = read_str_first('#"a\\d+"')
        assert isinstance(pattern, re.Pattern)
        assert "a\\d+" == pattern.pattern

    def test_regex_escaped_quote(self):
        assert 'a\\"b' == read_str_first(r'#"a\"b"').pattern

    def test_invalid_regex(self):
        with pytest.raises(reader.SyntaxError):
            read_str_first('#"("')

    def test_unterminated_regex(self):
        with pytest.raises(reader.UnexpectedEOFError):
            read_str_first('#"abc')

    def test_eval(self):
        assert cst.Eval(cst.List((sym.symbol("+"), 1, 2))) == read_str_first(
            "#=(+ 1 2)"
        )

    def test_eval_not_allowed(self):
        with runtime.bindings(read_eval=False):
            with pytest.raises(reader.EvalNotAllowedError):
                read_str_first("#=(+ 1 2)")

    def test_reading_disallowed_when_read_eval_unknown(self):
        with runtime.bindings(read_eval=runtime.READ_EVAL_UNKNOWN):
            with pytest.raises(reader.EvalNotAllowedError):
                read_str_first("1")

    def test_unreadable(self):
        with pytest.raises(reader.UnreadableFormError):
            read_str_first("#<Object@123>")

    def test_dispatch_at_eof(self):
        with pytest.raises(reader.UnexpectedEOFError):
            read_str_first("#")


class TestTaggedLiterals:
    def test_inst(self):
        assert dateparser.isoparse("2020-01-02T03:04:05Z") == read_str_first(
            '#inst "2020-01-02T03:04:05Z"'
        )

    def test_uuid(self):
        s = "4ba98ef0-0620-4966-af61-f0f6c2dbf230"
        assert uuid.UUID(s) == read_str_first(f'#uuid "{s}"')

    @pytest.mark.parametrize("raw", ['#inst "yesterday"', '#uuid "abc"', "#inst 5"])
    def test_invalid_default_tagged_literal(self, raw: str):
        with pytest.raises(reader.SyntaxError):
            read_str_first(raw)

    def test_no_reader_for_tag(self):
        with pytest.raises(reader.NoReaderForTagError):
            read_str_first("#foo/bar 1")

    def test_tag_must_be_symbol(self):
        with pytest.raises(reader.InvalidTokenError):
            read_str_first("#1 x")

    def test_data_readers(self):
        data_readers = {sym.symbol("bar", ns="foo"): lambda v: ("bar", v)}
        assert ("bar", vec.v(1, 2)) == read_str_first(
            "#foo/bar [1 #_ 3 2]", data_readers=data_readers
        )

    def test_data_readers_take_precedence(self):
        data_readers = {sym.symbol("inst"): lambda v: ("inst", v)}
        assert ("inst", "x") == read_str_first(
            '#inst "x"', data_readers=data_readers
        )

    def test_default_data_reader_fn(self):
        assert (sym.symbol("bar", ns="foo"), 1) == read_str_first(
            "#foo/bar 1", default_data_reader_fn=lambda tag, v: (tag, v)
        )

    def test_data_reader_failure(self):
        def fail(_):
            raise ValueError("bad value")

        with pytest.raises(reader.ReaderError) as e:
            read_str_first("#foo/bar 1", data_readers={sym.symbol("bar", ns="foo"): fail})
        assert isinstance(e.value.__cause__, ValueError)


class TestRecords:
    def test_positional_record(self, point_record: runtime.RecordType):
        assert point_record.factory(1, 2) == read_str_first("#lispcst.test.Point [1 2]")

    def test_map_record(self, point_record: runtime.RecordType):
        assert point_record.factory(1, 2) == read_str_first(
            "#lispcst.test.Point {:x 1 :y 2}"
        )
        assert point_record.factory(1, None) == read_str_first(
            "#lispcst.test.Point {:x 1}"
        )

    @pytest.mark.parametrize(
        "raw",
        [
            "#lispcst.test.Point [1]",
            "#lispcst.test.Point [1 2 3]",
            '#lispcst.test.Point {"x" 1}',
            "#lispcst.test.Point {:z 1}",
            '#lispcst.test.Point "point"',
            "#lispcst.test.Point (1 2)",
        ],
    )
    def test_invalid_record_form(self, point_record: runtime.RecordType, raw: str):
        with pytest.raises(reader.SyntaxError):
            read_str_first(raw)

    def test_unknown_record(self):
        with pytest.raises(reader.NoReaderForTagError):
            read_str_first("#lispcst.test.Missing [1 2]")

    def test_record_not_allowed_without_read_eval(
        self, point_record: runtime.RecordType
    ):
        with runtime.bindings(read_eval=False):
            with pytest.raises(reader.EvalNotAllowedError):
                read_str_first("#lispcst.test.Point [1 2]")

    def test_record_resolver(self):
        rectype = runtime.RecordType("my.Pair", ("a", "b"), lambda a, b: (a, b))

        def resolve(tag: sym.Symbol) -> Optional[runtime.RecordType]:
            return rectype if tag == sym.symbol("my.Pair") else None

        assert (1, 2) == read_str_first("#my.Pair [1 2]", record_resolver=resolve)


class TestReaderConditional:
    def test_conditional_not_allowed(self):
        with pytest.raises(reader.ConditionalNotAllowedError):
            read_str_first("#?(:clj 1)")

    def test_conditional(self):
        node = read_str_first("#?(:clj 1 :cljs 2)", opts=ALLOW)
        assert cst.Conditional(
            (kw.keyword("clj"), 1, kw.keyword("cljs"), 2), splicing=False
        ) == node

    def test_splicing_conditional(self):
        node = read_str_first("#?@(:clj [1 2] :cljs (3))", opts=ALLOW)
        assert node.splicing
        assert (
            kw.keyword("clj"),
            cst.Vector((1, 2)),
            kw.keyword("cljs"),
            cst.List((3,)),
        ) == node.pairs

    def test_whitespace_before_body(self):
        node = read_str_first("#? (:clj 1)", opts=ALLOW)
        assert (kw.keyword("clj"), 1) == node.pairs

    def test_pairs_ignore_skippables(self):
        node = read_str_first("#?(:clj 1 ;c\n :cljs 2, #_3)", opts=ALLOW)
        assert 7 == len(node.children)
        assert (kw.keyword("clj"), 1, kw.keyword("cljs"), 2) == node.pairs

    @pytest.mark.parametrize(
        "raw",
        [
            "#?(:clj)",
            "#?(:clj 1 :cljs)",
            "#?(clj 1)",
            '#?("clj" 1)',
            "#?(:else 1)",
            "#?(:none 1)",
            "#?[:clj 1]",
            "#?:clj",
            "#?@(:clj 1)",
            "#?@(:clj {:a 1})",
        ],
    )
    def test_malformed_conditional(self, raw: str):
        with pytest.raises(reader.MalformedConditionalError):
            read_str_first(raw, opts=ALLOW)

    @pytest.mark.parametrize("raw", ["#?", "#?@", "#?  ", "#?(:clj 1"])
    def test_conditional_at_eof(self, raw: str):
        with pytest.raises(reader.UnexpectedEOFError):
            read_str_first(raw, opts=ALLOW)

    def test_preserved_tagged_literal(self):
        node = read_str_first("#?(:cljs #js [1])", opts=PRESERVE)
        assert tagged_literal(sym.symbol("js"), cst.Vector((1,))) == node.pairs[1]

    def test_tagged_literal_in_allow_mode(self):
        with pytest.raises(reader.NoReaderForTagError):
            read_str_first("#?(:cljs #js [1])", opts=ALLOW)

    def test_tagged_literal_outside_conditional_in_preserve_mode(self):
        with pytest.raises(reader.NoReaderForTagError):
            read_str_first("[#?(:clj 1) #js [1]]", opts=PRESERVE)

    def test_select_feature(self):
        node = read_str_first("#?(:cljs 1 :clj 2 :default 3)", opts=ALLOW)
        assert 2 == node.select_feature(ALLOW.features)
        assert 1 == node.select_feature(lset.s(kw.keyword("cljs")))
        assert 3 == node.select_feature(lset.s(kw.keyword("cljr")))

        node = read_str_first("#?(:cljs 1)", opts=ALLOW)
        assert cst.FEATURE_NOT_PRESENT is node.select_feature(ALLOW.features)


class TestReadOptions:
    def test_platform_feature_is_always_present(self):
        assert lset.s(kw.keyword("clj")) == reader.ReadOptions().features
        assert lset.s(kw.keyword("cljs"), kw.keyword("clj")) == reader.ReadOptions(
            features=lset.s(kw.keyword("cljs"))
        ).features

    def test_from_map(self):
        opts = reader.ReadOptions.from_map(
            lmap.map(
                {
                    kw.keyword("eof"): None,
                    kw.keyword("read-cond"): kw.keyword("preserve"),
                    kw.keyword("features"): lset.s(kw.keyword("cljs")),
                }
            )
        )
        assert opts.eof is None
        assert not opts.eof_is_error
        assert reader.ReaderConditionalMode.PRESERVE == opts.read_cond
        assert kw.keyword("cljs") in opts.features
        assert kw.keyword("clj") in opts.features

    def test_from_empty_map(self):
        opts = reader.ReadOptions.from_map(lmap.EMPTY)
        assert opts.eof_is_error
        assert reader.ReaderConditionalMode.DISABLED == opts.read_cond
        assert reader.ReadOptions() == reader.ReadOptions.from_map(None)

    @pytest.mark.parametrize(
        "name,mode",
        [
            ("allow", reader.ReaderConditionalMode.ALLOW),
            ("disabled", reader.ReaderConditionalMode.DISABLED),
            ("preserve", reader.ReaderConditionalMode.PRESERVE),
        ],
    )
    def test_from_map_read_cond_modes(
        self, name: str, mode: reader.ReaderConditionalMode
    ):
        opts = reader.ReadOptions.from_map(
            lmap.map({kw.keyword("read-cond"): kw.keyword(name)})
        )
        assert mode == opts.read_cond

    def test_from_map_invalid_read_cond(self):
        with pytest.raises(ValueError):
            reader.ReadOptions.from_map(
                lmap.map({kw.keyword("read-cond"): kw.keyword("maybe")})
            )


class TestReadForm:
    def test_eof_is_error_by_default(self):
        with pytest.raises(reader.UnexpectedEOFError):
            reader.read_form(reader.StreamReader(io.StringIO("   ")))

    def test_eof_value(self):
        done = kw.keyword("done")
        rdr = reader.StreamReader(io.StringIO(" 1 "))
        opts = reader.ReadOptions(eof=done)
        assert 1 == reader.read_form(rdr, opts)
        assert done == reader.read_form(rdr, opts)

    def test_nested_eof_is_always_an_error(self):
        with pytest.raises(reader.UnexpectedEOFError):
            reader.read_form(
                reader.StreamReader(io.StringIO("(1")), reader.ReadOptions(eof=None)
            )

    def test_pending_forms_are_read_first(self):
        pending = collections.deque([1, 2])
        rdr = reader.StreamReader(io.StringIO("3"))
        assert 1 == reader.read_form(rdr, pending_forms=pending)
        assert 2 == reader.read_form(rdr, pending_forms=pending)
        assert 3 == reader.read_form(rdr, pending_forms=pending)
        assert 0 == len(pending)

    def test_error_position(self):
        with pytest.raises(reader.UnmatchedDelimiterError) as e:
            read_str_first("(1\n  ]")
        assert 2 == e.value.line
        assert 3 == e.value.col
        assert e.value.filename is None

    def test_error_without_position(self):
        with pytest.raises(reader.UnmatchedDelimiterError) as e:
            reader.read_form(reader.StreamReader(io.StringIO(")")))
        assert e.value.line is None
        assert e.value.col is None

    def test_source_failure(self):
        class BrokenStream(io.StringIO):
            def read(self, *args):
                raise OSError("stream closed")

        with pytest.raises(reader.ReaderError) as e:
            reader.read_form(reader.StreamReader(BrokenStream()))
        assert isinstance(e.value.__cause__, OSError)

    def test_read_file(self, tmp_path):
        filename = tmp_path / "test.clj"
        filename.write_text("(ns test)\n\n; comment\n[1 2]\n", encoding="utf-8")
        assert [
            cst.List((sym.symbol("ns"), sym.symbol("test"))),
            cst.LineComment(" comment"),
            cst.Vector((1, 2)),
        ] == list(reader.read_file(str(filename)))

    def test_read_file_error_filename(self, tmp_path):
        filename = tmp_path / "test.clj"
        filename.write_text("(ns test)\n\n(]", encoding="utf-8")
        with pytest.raises(reader.UnmatchedDelimiterError) as e:
            list(reader.read_file(str(filename)))
        assert str(filename) == e.value.filename
        assert 3 == e.value.line

    def test_read_str_stops_at_eof(self):
        assert [] == read_all("")
        assert [] == read_all(" \n\t ")
        assert [1, 2] == read_all("1 2", opts=reader.ReadOptions(eof=None))
