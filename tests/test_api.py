"""Unit tests for the gbln public API.

Organized by feature area.  Conformance testing against golden vectors
is in test_conformance.py; these tests exercise the API contracts and
edge cases that vectors don't cover.
"""

from __future__ import annotations

import io
import json
import math
import os
import sys
import tempfile
import unittest
from contextlib import redirect_stderr, redirect_stdout
from unittest import mock

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from gbln import (
    ERR_DUPLICATE_KEY,
    ERR_INT_OUT_OF_RANGE,
    ERR_INVALID_CONFIG,
    ERR_INVALID_SYNTAX,
    ERR_INVALID_TYPE_HINT,
    ERR_STRING_TOO_LONG,
    ERR_TYPE_MISMATCH,
    ERR_UNEXPECTED_CHAR,
    ERR_UNEXPECTED_EOF,
    ERR_UNEXPECTED_TOKEN,
    ERR_UNTERMINATED_STRING,
    MAX_DEPTH,
    ConfigError,
    GblnError,
    ParseError,
    RangeError,
    Registry,
    SerializeError,
    TypeMismatchError,
    Typed,
    __version__,
    native_to_serialized,
    parse_to_native,
    roundtrip,
    render,
    to_string,
    to_string_pretty,
)
from gbln._cli import main


# ── Parsing ──────────────────────────────────────────────────

class TestParse(unittest.TestCase):
    def test_nested_object(self):
        self.assertEqual(
            parse_to_native("user{id<u32>(12345)name<s64>(Alice Johnson)age<i8>(25)}"),
            {"user": {"id": 12345, "name": "Alice Johnson", "age": 25}},
        )

    def test_typed_arrays(self):
        self.assertEqual(parse_to_native("tags<s8>[admin ops dev]"),
                         {"tags": ["admin", "ops", "dev"]})
        self.assertEqual(parse_to_native("n<i32>[1 -2  3]"), {"n": [1, -2, 3]})
        self.assertEqual(parse_to_native("e<i8>[]"), {"e": []})

    def test_mixed_array(self):
        self.assertEqual(parse_to_native("items[<i8>(1)<s2>(x){a<b>(t)}[]]"),
                         {"items": [1, "x", {"a": True}, []]})

    def test_scalars(self):
        out = parse_to_native(
            "pi<f64>(3.14159)half<f32>(0.5)on<b>(t)off<b>(false)none<n>()"
            "big<u64>(18446744073709551615)neg<i64>(-9223372036854775808)")
        self.assertEqual(out, {
            "pi": 3.14159, "half": 0.5, "on": True, "off": False, "none": None,
            "big": 2**64 - 1, "neg": -(2**63),
        })

    def test_special_floats(self):
        out = parse_to_native("a<f64>(nan)b<f32>(inf)c<f64>(-inf)d<f64>(1e+300)")
        self.assertTrue(math.isnan(out["a"]))
        self.assertEqual(out["b"], math.inf)
        self.assertEqual(out["c"], -math.inf)
        self.assertEqual(out["d"], 1e300)

    def test_whitespace_and_comments(self):
        text = ":| top\nserver {\n  port<u16>(80) :| trailing\n  host<s16>( a b )\n}\n"
        self.assertEqual(parse_to_native(text),
                         {"server": {"port": 80, "host": " a b "}})

    def test_escapes(self):
        self.assertEqual(parse_to_native(r"s<s8>(a\)b\\c)"), {"s": "a)b\\c"})
        self.assertEqual(parse_to_native(r"t<s8>[a\ b c\]]"), {"t": ["a b", "c]"]})

    def test_bare_roots(self):
        self.assertEqual(parse_to_native("<i8>[1 2 3]"), [1, 2, 3])
        self.assertEqual(parse_to_native("<i8>(5)"), 5)
        self.assertIsNone(parse_to_native("<n>()"))
        self.assertEqual(parse_to_native("[<b>(t)<n>()]"), [True, None])
        self.assertEqual(parse_to_native("{a<i8>(1)}"), {"a": 1})

    def test_empty_document(self):
        self.assertEqual(parse_to_native(""), {})
        self.assertEqual(parse_to_native("  :| only a comment\n"), {})

    def test_bytes_input(self):
        self.assertEqual(parse_to_native("x<s8>(café)".encode("utf-8")), {"x": "café"})

    def test_invalid_utf8(self):
        with self.assertRaises(ParseError) as ctx:
            parse_to_native(b"x<s8>(\xff)")
        self.assertEqual(ctx.exception.code, ERR_UNEXPECTED_CHAR)

    def test_non_text_input(self):
        with self.assertRaises(TypeMismatchError):
            parse_to_native(42)

    def test_typed_result(self):
        self.assertEqual(parse_to_native("id<u32>(7)tags<s8>[a]", typed=True),
                         {"id": Typed(7, "u32"), "tags": [Typed("a", "s8")]})


# ── Parse errors ─────────────────────────────────────────────

class TestParseErrors(unittest.TestCase):
    def assertFails(self, text, code, line=None, column=None):
        with self.assertRaises(GblnError) as ctx:
            parse_to_native(text)
        err = ctx.exception
        self.assertEqual(err.code, code, "{!r}: {}".format(text, err))
        if line is not None:
            self.assertEqual((err.line, err.column), (line, column), str(err))
        return err

    def test_integer_out_of_range(self):
        err = self.assertFails("age<i8>(999)", ERR_INT_OUT_OF_RANGE, 1, 8)
        self.assertIsInstance(err, RangeError)
        self.assertIn("[-128, 127]", str(err))

    def test_error_on_second_line(self):
        self.assertFails("a<i8>(1)\nb<i8>(300)", ERR_INT_OUT_OF_RANGE, 2, 6)

    def test_string_too_long(self):
        self.assertFails("name<s4>(hello)", ERR_STRING_TOO_LONG)

    def test_duplicate_key(self):
        self.assertFails("a<i8>(1)a<i8>(2)", ERR_DUPLICATE_KEY, 1, 9)

    def test_invalid_type_hint(self):
        self.assertFails("x<q8>(1)", ERR_INVALID_TYPE_HINT, 1, 2)
        self.assertFails("x<i12>(1)", ERR_INVALID_TYPE_HINT)
        self.assertFails("x<s3>(ab)", ERR_INVALID_TYPE_HINT)

    def test_type_mismatch(self):
        self.assertFails("x<b>(yes)", ERR_TYPE_MISMATCH)
        self.assertFails("x<i8>(1.5)", ERR_TYPE_MISMATCH)
        self.assertFails("x<f64>(abc)", ERR_TYPE_MISMATCH)
        self.assertFails("x<n>(0)", ERR_TYPE_MISMATCH)

    def test_unterminated(self):
        self.assertFails("name<s8>(Alice", ERR_UNTERMINATED_STRING, 1, 9)
        self.assertFails("user{id<i8>(1)", ERR_UNEXPECTED_EOF)
        self.assertFails("x<i8>", ERR_UNEXPECTED_EOF)
        self.assertFails("x<i8", ERR_UNEXPECTED_EOF)
        self.assertFails("list[<i8>(1)", ERR_UNEXPECTED_EOF)
        self.assertFails("key", ERR_UNEXPECTED_EOF)

    def test_unexpected_token(self):
        self.assertFails("a<i8>(1)}", ERR_UNEXPECTED_TOKEN, 1, 9)
        self.assertFails("<i8>(1)<i8>(2)", ERR_UNEXPECTED_TOKEN)

    def test_unexpected_char(self):
        self.assertFails("@", ERR_UNEXPECTED_CHAR, 1, 1)
        self.assertFails("x<i8>?", ERR_UNEXPECTED_CHAR)
        self.assertFails("t<s8>[a(b]", ERR_UNEXPECTED_CHAR)

    def test_missing_type_hint(self):
        self.assertFails("a(1)", ERR_INVALID_SYNTAX, 1, 2)

    def test_nesting_limit(self):
        self.assertFails("[" * 200, ERR_INVALID_SYNTAX)

    def test_huge_integer_literal(self):
        self.assertFails("x<u64>(" + "9" * 5000 + ")", ERR_INT_OUT_OF_RANGE)

    def test_failures_release_everything(self):
        for text in ("a{b[<i8>(1)<i8>(999)]}", "a{b<s8>(x)", "a<i8>(1)a<i8>(1)"):
            with self.subTest(text=text):
                reg = Registry()
                with self.assertRaises(GblnError):
                    parse_to_native(text, registry=reg)
                stats = reg.stats()
                self.assertEqual(stats["outstanding"], 0, stats)
                self.assertEqual(stats["live_nodes"], 0, stats)


# ── Serialization ────────────────────────────────────────────

class TestSerialize(unittest.TestCase):
    def test_compact(self):
        value = {"user": {"id": 12345, "name": "Alice Johnson", "age": 25}}
        self.assertEqual(native_to_serialized(value),
                         "user{id<i16>(12345)name<s16>(Alice Johnson)age<i8>(25)}")
        self.assertEqual(to_string(value), native_to_serialized(value))

    def test_pretty(self):
        value = {"config": {"port": 8080, "debug": True}}
        self.assertEqual(to_string_pretty(value),
                         "config{\n  port<i16>(8080)\n  debug<b>(t)\n}")
        self.assertEqual(native_to_serialized(value, pretty=True, indent_width=4),
                         "config{\n    port<i16>(8080)\n    debug<b>(t)\n}")

    def test_pretty_array_of_objects(self):
        self.assertEqual(to_string_pretty({"items": [{"a": 1}, {"a": 2}]}),
                         "items[\n  {\n    a<i8>(1)\n  }\n  {\n    a<i8>(2)\n  }\n]")

    def test_pretty_scalar_array_stays_on_one_line(self):
        self.assertEqual(to_string_pretty({"m": [1, "x"]}), "m[<i8>(1) <s2>(x)]")
        self.assertEqual(to_string_pretty({"o": {}, "e": []}), "o{}\ne[]")

    def test_homogeneous_array(self):
        self.assertEqual(to_string({"n": [1, 2, 3]}), "n<i8>[1 2 3]")
        self.assertEqual(to_string({"s": ["ab", "cd"]}), "s<s2>[ab cd]")

    def test_mixed_arrays(self):
        self.assertEqual(to_string({"n": [1, 300]}), "n[<i8>(1)<i16>(300)]")
        self.assertEqual(to_string({"z": [None, None]}), "z[<n>()<n>()]")
        self.assertEqual(to_string({"e": ["", ""]}), "e[<s2>()<s2>()]")
        self.assertEqual(to_string({"e": []}), "e[]")

    def test_escaping(self):
        self.assertEqual(to_string({"s": "a)b"}), r"s<s4>(a\)b)")
        self.assertEqual(roundtrip(r"t<s8>[a\ b c\]]"), r"t<s8>[a\ b c\]]")

    def test_bare_roots(self):
        self.assertEqual(to_string([1, 2, 3]), "<i8>[1 2 3]")
        self.assertEqual(to_string(5), "<i8>(5)")
        self.assertEqual(to_string(None), "<n>()")
        self.assertEqual(to_string([{"a": True}]), "[{a<b>(t)}]")

    def test_floats(self):
        self.assertEqual(to_string({"x": 1.5}), "x<f64>(1.5)")
        self.assertEqual(to_string({"x": Typed(0.1, "f32")}), "x<f32>(0.1)")
        self.assertEqual(to_string({"x": float("nan")}), "x<f64>(nan)")
        self.assertEqual(to_string({"x": Typed(float("-inf"), "f32")}), "x<f32>(-inf)")
        self.assertEqual(parse_to_native(to_string({"x": 1e300})), {"x": 1e300})

    def test_unwritable_key(self):
        reg = Registry()
        with self.assertRaises(SerializeError) as ctx:
            native_to_serialized({"ok": {"bad key": 1}}, registry=reg)
        self.assertEqual(ctx.exception.path, ["ok"])
        self.assertEqual(reg.stats()["live_nodes"], 0)
        self.assertEqual(reg.stats()["outstanding"], 0)

    def test_negative_indent(self):
        with self.assertRaises(ConfigError) as ctx:
            to_string_pretty({"a": 1}, indent_width=-1)
        self.assertEqual(ctx.exception.code, ERR_INVALID_CONFIG)
        self.assertIsInstance(ctx.exception, GblnError)
        self.assertIsInstance(ctx.exception, ValueError)

    def test_non_int_indent(self):
        with self.assertRaises(ConfigError):
            native_to_serialized({"a": 1}, pretty=True, indent_width="2")

    def test_deep_handle_tree(self):
        reg = Registry()
        arrays = [reg.new_array() for _ in range(200)]
        for parent, child in zip(arrays, arrays[1:]):
            reg.array_push(parent, child)
        with self.assertRaises(SerializeError) as ctx:
            render(reg, arrays[0])
        self.assertIn("nesting deeper than", str(ctx.exception))
        self.assertEqual(len(ctx.exception.path), MAX_DEPTH)
        reg.release(arrays[0])
        stats = reg.stats()
        self.assertEqual(stats["outstanding"], 0, stats)
        self.assertEqual(stats["live_nodes"], 0, stats)

    def test_deepest_parsable_tree_renders(self):
        text = "[" * MAX_DEPTH + "]" * MAX_DEPTH
        self.assertEqual(roundtrip(text), text)


# ── Round trips and hint policy ──────────────────────────────

class TestRoundTrip(unittest.TestCase):
    DOCS = [
        "user{id<u32>(12345)name<s64>(Alice Johnson)age<i8>(25)}",
        "tags<s8>[admin ops]matrix[<i8>[1 2]<i8>[3 4]]",
        "x<f32>(0.1)y<f64>(2.5)z<n>()w<b>(f)",
        r"s<s16>(a\)b\\c)",
        "<u8>[1 2 3]",
        "items[{a<i8>(1)}{a<i8>(2)}]",
    ]

    def test_source_hints_kept(self):
        for doc in self.DOCS:
            with self.subTest(doc=doc):
                self.assertEqual(roundtrip(doc), doc)

    def test_normal_form_is_idempotent(self):
        for doc in self.DOCS:
            for pretty in (False, True):
                with self.subTest(doc=doc, pretty=pretty):
                    once = roundtrip(doc, pretty=pretty)
                    self.assertEqual(roundtrip(once, pretty=pretty), once)

    def test_hint_policy(self):
        text = "user{id<u32>(12345)}"
        self.assertEqual(roundtrip(text), "user{id<u32>(12345)}")
        self.assertEqual(native_to_serialized(parse_to_native(text)),
                         "user{id<i16>(12345)}")
        self.assertEqual(native_to_serialized(parse_to_native(text, typed=True)),
                         "user{id<u32>(12345)}")

    def test_native_round_trip(self):
        value = {"a": [1, -2, 3.5, "x", True, None, {"b": []}]}
        self.assertEqual(parse_to_native(native_to_serialized(value)), value)
        self.assertEqual(parse_to_native(to_string_pretty(value)), value)

    def test_public_calls_release_everything(self):
        reg = Registry()
        parse_to_native("a{b<s8>[x y]}", registry=reg)
        native_to_serialized({"a": [1, {"b": None}]}, registry=reg)
        roundtrip("a<i8>(1)", pretty=True, registry=reg)
        stats = reg.stats()
        self.assertEqual(stats["outstanding"], 0, stats)
        self.assertEqual(stats["live_nodes"], 0, stats)
        self.assertEqual(stats["allocated"], stats["freed"], stats)


# ── Comments ─────────────────────────────────────────────────

class TestComments(unittest.TestCase):
    TEXT = ":| app config\nport<u16>(80)\ndb{\n  :| connection\n  host<s32>(localhost)\n}"

    def test_kept_in_pretty_mode(self):
        self.assertEqual(roundtrip(self.TEXT, pretty=True, strip_comments=False), self.TEXT)

    def test_kept_in_compact_mode(self):
        compact = roundtrip(self.TEXT, strip_comments=False)
        self.assertEqual(compact,
                         ":| app config\nport<u16>(80)db{:| connection\nhost<s32>(localhost)}")
        self.assertEqual(roundtrip(compact, strip_comments=False), compact)

    def test_stripped_by_default(self):
        self.assertEqual(roundtrip(self.TEXT), "port<u16>(80)db{host<s32>(localhost)}")

    def test_mid_document_comments_dropped(self):
        text = "a<i8>(1)\n:| middle\nb<i8>(2)"
        self.assertEqual(roundtrip(text, strip_comments=False), "a<i8>(1)b<i8>(2)")

    def test_leading_comment_on_braced_root(self):
        text = ":| top\n{:| inner\na<i8>(1)}"
        self.assertEqual(roundtrip(text, strip_comments=False),
                         ":| top\n:| inner\na<i8>(1)")
        self.assertEqual(roundtrip(text), "a<i8>(1)")

    def test_leading_comment_before_bare_array_dropped(self):
        self.assertEqual(roundtrip(":| top\n<i8>[1 2]", strip_comments=False), "<i8>[1 2]")

    def test_carriage_return_ends_comment(self):
        self.assertEqual(roundtrip("a<i8>(1)\r:| x\rb<i8>(2)"), "a<i8>(1)b<i8>(2)")
        self.assertEqual(roundtrip(":| top\r\nport<u16>(80)", strip_comments=False),
                         ":| top\nport<u16>(80)")
        self.assertEqual(parse_to_native(":| a\rx<i8>(1)\r:| b\ry<i8>(2)"), {"x": 1, "y": 2})

    def test_comments_never_reach_native_values(self):
        self.assertEqual(parse_to_native(self.TEXT),
                         {"port": 80, "db": {"host": "localhost"}})


# ── CLI ──────────────────────────────────────────────────────

class TestCli(unittest.TestCase):
    def run_cli(self, argv, stdin=""):
        out, err = io.StringIO(), io.StringIO()
        with mock.patch("sys.stdin", io.StringIO(stdin)):
            with redirect_stdout(out), redirect_stderr(err):
                try:
                    main(argv)
                    code = 0
                except SystemExit as e:
                    code = e.code
        return code, out.getvalue(), err.getvalue()

    def test_parse(self):
        code, out, _ = self.run_cli(["parse"], "user{id<u32>(1)tags<s8>[a b]}")
        self.assertEqual(code, 0)
        self.assertEqual(json.loads(out), {"user": {"id": 1, "tags": ["a", "b"]}})

    def test_encode(self):
        code, out, _ = self.run_cli(["encode"], '{"user": {"id": 1}}')
        self.assertEqual(code, 0)
        self.assertEqual(out, "user{id<i8>(1)}\n")

    def test_encode_pretty(self):
        code, out, _ = self.run_cli(["encode", "--pretty", "--indent", "4"],
                                    '{"a": {"b": true}}')
        self.assertEqual(code, 0)
        self.assertEqual(out, "a{\n    b<b>(t)\n}\n")

    def test_fmt_keeps_hints_and_comments(self):
        code, out, _ = self.run_cli(["fmt", "--keep-comments"], ":| hi\n\nid<u32>(7)   \n")
        self.assertEqual(code, 0, out)
        self.assertEqual(out, ":| hi\nid<u32>(7)\n")

    def test_fmt_from_file(self):
        with tempfile.NamedTemporaryFile("w", suffix=".gbln", delete=False,
                                         encoding="utf-8") as f:
            f.write("a{b<i8>(1)}")
        self.addCleanup(os.unlink, f.name)
        code, out, _ = self.run_cli(["fmt", "--pretty", "--input", f.name])
        self.assertEqual(code, 0)
        self.assertEqual(out, "a{\n  b<i8>(1)\n}\n")

    def test_validation_error_exit_code(self):
        code, _, err = self.run_cli(["parse"], "age<i8>(999)")
        self.assertEqual(code, 2)
        self.assertIn("[IntOutOfRange]", err)

    def test_negative_indent_exit_code(self):
        code, _, err = self.run_cli(["encode", "--pretty", "--indent", "-1"], "{\"a\": 1}")
        self.assertEqual(code, 2)
        self.assertIn("[InvalidConfig]", err)

    def test_missing_file(self):
        code, _, err = self.run_cli(["parse", "--input", "/nonexistent/x.gbln"])
        self.assertEqual(code, 2)
        self.assertIn("[Io]", err)

    def test_bad_json(self):
        code, _, err = self.run_cli(["encode"], "{not json")
        self.assertEqual(code, 2)
        self.assertIn("JSON", err)

    def test_version(self):
        code, out, _ = self.run_cli(["version"])
        self.assertEqual(code, 0)
        self.assertEqual(out.strip(), "gbln {}".format(__version__))

    def test_no_command(self):
        code, _, _ = self.run_cli([])
        self.assertEqual(code, 1)


if __name__ == "__main__":
    unittest.main()
