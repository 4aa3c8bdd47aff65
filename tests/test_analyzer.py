from __future__ import annotations

import logging
import textwrap
from pathlib import Path

import pytest

from tsprune.analyzer import (
    classify_unused,
    find_unused_spans,
    is_pattern_entirely_unused,
    merge_spans,
)
from tsprune.models import (
    ArrayPattern,
    IdentifierPattern,
    Node,
    NodeKind,
    ObjectPattern,
    OpaquePattern,
)
from tsprune.modifier import apply_removals
from tsprune.semantic import SemanticModel, parse_source


def _prune(source: str, name: str = "sample.ts") -> str:
    model = parse_source(Path(name), source)
    return apply_removals(source, find_unused_spans(model))


def _code(source: str) -> str:
    return textwrap.dedent(source).lstrip()


def test_unused_statement_removed_with_its_line() -> None:
    source = _code(
        """
        const a = 1;
        const b = 2;
        console.log(b);
        """
    )
    assert _prune(source) == "const b = 2;\nconsole.log(b);\n"


def test_one_unused_binding_keeps_statement() -> None:
    source = "let a = 1, b = 2;\nconsole.log(b);\n"
    assert _prune(source) == "let b = 2;\nconsole.log(b);\n"


def test_all_unused_bindings_remove_statement() -> None:
    source = "let a = 1, b = 2;\nrun();\n"
    assert _prune(source) == "run();\n"


def test_trailing_unused_bindings_share_one_comma() -> None:
    source = "let x = 1, y = 2, z = 3;\nconsole.log(x);\n"
    assert _prune(source) == "let x = 1;\nconsole.log(x);\n"


def test_partial_destructuring_is_kept() -> None:
    source = "const { a, b } = obj;\nconsole.log(a);\n"
    assert _prune(source) == source


def test_unused_destructuring_removed_entirely() -> None:
    source = "const { a, b: [c, , d] } = obj;\nrun();\n"
    assert _prune(source) == "run();\n"


def test_import_keeps_used_specifier() -> None:
    source = "import { a, b, c } from './m';\nconsole.log(b);\n"
    assert _prune(source) == "import { b } from './m';\nconsole.log(b);\n"


def test_fully_unused_imports_removed_with_newline() -> None:
    source = _code(
        """
        import x, { y } from 'm';
        import * as ns from 'n';
        run();
        """
    )
    assert _prune(source) == "run();\n"


def test_side_effect_import_is_kept() -> None:
    source = "import './polyfill';\nrun();\n"
    assert _prune(source) == source


def test_exports_are_preserved() -> None:
    source = _code(
        """
        export const a = 1;
        const b = 2;
        export { b };
        export default function main(unused: number) {}
        """
    )
    assert _prune(source) == source


def test_reserved_names_never_unused() -> None:
    source = "var arguments = 1;\nvar other = 2;\n"
    model = parse_source(Path("sample.js"), source)

    names = {model.symbol_name(symbol_id) for symbol_id in classify_unused(model)}

    assert names == {"other"}


def test_this_parameter_is_kept() -> None:
    source = _code(
        """
        function f(this: Window) {
            return 1;
        }
        f();
        """
    )
    assert _prune(source) == source


def test_trailing_unused_parameter_removed() -> None:
    source = _code(
        """
        function greet(name: string, unused: number) {
            return name;
        }
        greet('x', 1);
        """
    )
    expected = _code(
        """
        function greet(name: string) {
            return name;
        }
        greet('x', 1);
        """
    )
    assert _prune(source) == expected


def test_leading_unused_parameter_is_kept() -> None:
    source = _code(
        """
        function pick(first, second) {
            return second;
        }
        pick(1, 2);
        """
    )
    assert _prune(source) == source


def test_parameter_before_parameter_property_is_kept() -> None:
    source = _code(
        """
        class Point {
            constructor(label: string, private x: number) {}
        }
        new Point("a", 1);
        """
    )
    assert _prune(source) == source


def test_destructured_parameter_property_removed() -> None:
    source = _code(
        """
        function show({ title, body }) {
            return title;
        }
        show({});
        """
    )
    assert _prune(source).startswith("function show({ title }) {\n")


def test_array_parameter_elements_removed_only_from_the_end() -> None:
    kept = "const f = ([first, second]) => second;\nf([1, 2]);\n"
    trimmed = "const g = ([first, second]) => first;\ng([1, 2]);\n"

    assert _prune(kept) == kept
    assert _prune(trimmed) == "const g = ([first]) => first;\ng([1, 2]);\n"


def test_unused_function_removed_with_nested_locals() -> None:
    source = _code(
        """
        function helper() {
            const tmp = 1;
        }
        const used = 2;
        console.log(used);
        """
    )
    assert _prune(source) == "const used = 2;\nconsole.log(used);\n"


def test_type_references_count_as_uses() -> None:
    source = _code(
        """
        import { Foo, Bar } from './types';
        let value: Foo = make();
        console.log(value);
        """
    )
    assert _prune(source).startswith("import { Foo } from './types';\n")


def test_unused_interface_removed() -> None:
    source = _code(
        """
        interface Unused {
            a: string;
        }
        type Alias = string;
        const x: Alias = 'a';
        console.log(x);
        """
    )
    assert _prune(source) == "type Alias = string;\nconst x: Alias = 'a';\nconsole.log(x);\n"


def test_shadowed_reference_resolves_to_inner_binding() -> None:
    source = _code(
        """
        const value = 1;
        function f() {
            const value = 2;
            return value;
        }
        f();
        """
    )
    assert _prune(source) == source.replace("const value = 1;\n", "", 1)


def test_hoisted_function_is_used() -> None:
    source = "run();\nfunction run() {}\n"
    assert _prune(source) == source


def test_pinned_bindings_are_kept() -> None:
    source = _code(
        """
        try {
            run();
        } catch (err) {
            run();
        }
        for (const item of items) {
            run();
        }
        for (let i = 0; ; ) {
            break;
        }
        """
    )
    assert _prune(source) == source


def test_redeclared_names_are_kept() -> None:
    source = "var a = 1;\nvar a = 2;\n"
    assert _prune(source) == source


def test_computed_method_key_keeps_binding() -> None:
    class_method = _code(
        """
        const sym = Symbol();
        class A { [sym]() { return 1; } }
        new A();
        """
    )
    object_method = _code(
        """
        const sym = Symbol();
        const o = { [sym]() { return 1; } };
        use(o);
        """
    )
    getter = _code(
        """
        const k = "key";
        class B { get [k]() { return 1; } }
        new B();
        """
    )

    for source in (class_method, object_method, getter):
        assert _prune(source) == source


def test_overloaded_function_is_kept_whole() -> None:
    source = _code(
        """
        function f(a: string): void;
        function f(a: any) {}
        run();
        """
    )
    assert _prune(source) == source


def test_overloads_resolve_to_the_implementation() -> None:
    source = _code(
        """
        function f(a: string): void;
        function f(a: any) {}
        function g() {}
        f("x");
        """
    )
    assert _prune(source) == _code(
        """
        function f(a: string): void;
        function f(a: any) {}
        f("x");
        """
    )


def test_removal_is_logged_with_node_type(caplog: pytest.LogCaptureFixture) -> None:
    caplog.set_level(logging.DEBUG, logger="tsprune.analyzer")

    _prune("const unused = 1;\nrun();\n")

    assert "Removing unused 'unused' with its lexical_declaration" in caplog.text


def test_jsx_references_count_as_uses() -> None:
    source = _code(
        """
        import React from 'react';
        import Unused from './unused';
        export const App = () => <React.Fragment />;
        """
    )
    assert _prune(source, name="App.jsx") == (
        "import React from 'react';\nexport const App = () => <React.Fragment />;\n"
    )


def test_second_pass_finds_nothing() -> None:
    source = _code(
        """
        import { a, b } from './m';
        let x = 1, y = b;
        function unused(p) {
            return p;
        }
        console.log(y);
        """
    )
    once = _prune(source)
    assert _prune(once) == once
    assert "unused" not in once
    assert "import { b } from './m';" in once


def test_pattern_walk() -> None:
    unused = {1, 2}

    assert is_pattern_entirely_unused(IdentifierPattern(1), unused)
    assert not is_pattern_entirely_unused(IdentifierPattern(3), unused)
    assert is_pattern_entirely_unused(
        ObjectPattern((IdentifierPattern(1), ArrayPattern((None, IdentifierPattern(2))))),
        unused,
    )
    assert not is_pattern_entirely_unused(
        ObjectPattern((IdentifierPattern(1), IdentifierPattern(3))), unused
    )
    assert not is_pattern_entirely_unused(OpaquePattern("member_expression"), unused)


def test_merge_spans_orders_descending_and_drops_nested() -> None:
    model = SemanticModel(
        nodes=[
            Node(0, NodeKind.OTHER, 0, 50, None, "function_declaration"),
            Node(1, NodeKind.VARIABLE_DECLARATION, 10, 20, 0, "lexical_declaration"),
            Node(2, NodeKind.VARIABLE_DECLARATION, 60, 70, None, "lexical_declaration"),
            Node(3, NodeKind.OTHER, 60, 70, None, "expression_statement"),
        ]
    )

    spans = merge_spans(model, {0, 1, 2, 3})

    assert [(span.start, span.end) for span in spans] == [(60, 70), (0, 50)]
    assert set(spans[0].nodes) == {2, 3}
    assert set(spans[1].nodes) == {0, 1}
