"""Tests for symbol collection and fixed-point resolution."""

import logging

import pytest

from decypher_cli.config import ResolutionConfig
from decypher_cli.errors import ConfigurationError
from decypher_cli.models import (
    CYCLIC,
    UNKNOWN,
    Literal,
    Provenance,
    Reference,
    TemplateText,
)
from decypher_cli.symbols import SymbolTableBuilder, resolve_bindings


class TestResolveBindings:
    """Tests for the pure resolution function."""

    def test_acyclic_chain_resolves(self):
        """Test that a reference chain collapses to the literal."""
        resolved, _ = resolve_bindings(
            {"a": Literal("X"), "b": Reference("a"), "c": Reference("b")}
        )

        assert resolved["b"] == Literal("X")
        assert resolved["c"] == Literal("X")

    def test_cycle_terminates_as_cyclic(self):
        """Test that mutual references end as Cyclic within the cap."""
        resolved, passes = resolve_bindings({"a": Reference("b"), "b": Reference("a")}, max_passes=10)

        assert resolved == {"a": CYCLIC, "b": CYCLIC}
        assert passes <= 20

    def test_missing_target_is_unknown(self):
        """Test that a reference to an undeclared name is Unknown, not Cyclic."""
        resolved, _ = resolve_bindings({"a": Reference("nowhere")})

        assert resolved["a"] == UNKNOWN

    def test_idempotent(self):
        """Test that resolving a resolved mapping changes nothing."""
        raw = {
            "a": Literal("X"),
            "b": Reference("a"),
            "c": Reference("d"),
            "d": Reference("c"),
            "e": Reference("missing"),
        }
        once, _ = resolve_bindings(raw)
        twice, _ = resolve_bindings(once)

        assert once == twice

    def test_input_not_modified(self):
        """Test that the raw mapping is left untouched."""
        raw = {"a": Literal(1.0), "b": Reference("a")}
        resolve_bindings(raw)

        assert raw["b"] == Reference("a")

    def test_long_chain_resolves_early(self):
        """Test that a declaration-ordered chain resolves in one pass plus a check."""
        raw = {"v0": Literal("x")}
        for i in range(1, 50):
            raw[f"v{i}"] = Reference(f"v{i - 1}")

        resolved, passes = resolve_bindings(raw, max_passes=3)

        assert resolved["v49"] == Literal("x")
        assert passes < 6


class TestSymbolTableBuilder:
    """Tests for collecting bindings from source."""

    def test_literal_kinds(self, build_symbols):
        """Test string, number and boolean initializers."""
        table = build_symbols('var s = "txt", n = 0x10, t = true, f = false;')

        assert table.value_of("s") == Literal("txt")
        assert table.value_of("n") == Literal(16.0)
        assert table.value_of("t") == Literal(True)
        assert table.value_of("f") == Literal(False)

    def test_chain_in_source(self, build_symbols):
        """Test var a="X"; var b=a; var c=b."""
        table = build_symbols('var a = "X"; var b = a; var c = b;')

        assert table.value_of("b") == table.value_of("c") == Literal("X")
        assert table["c"].references == ("b", "a")

    def test_cycle_in_source(self, build_symbols):
        """Test var a=b; var b=a."""
        table = build_symbols("var a = b; var b = a;")

        assert table.value_of("a") == CYCLIC
        assert table.value_of("b") == CYCLIC
        assert table.stats["cyclic"] == 2

    def test_template_substitution(self, build_symbols):
        """Test that identifier holes resolve through the table."""
        table = build_symbols('var v = "2.0"; var w = v; var t = `Version ${w} ready`;')

        assert table.value_of("t") == TemplateText("Version 2.0 ready", False)

    def test_template_with_literal_hole(self, build_symbols):
        """Test literal substitutions are folded directly."""
        table = build_symbols('var t = `a${1}b${"c"}`;')

        assert table.value_of("t") == TemplateText("a1bc", False)

    def test_template_with_complex_hole(self, build_symbols):
        """Test that non-identifier holes stay as placeholders."""
        table = build_symbols("var t = `sum ${a + b}`;")

        assert table.value_of("t") == TemplateText("sum ${...}", True)

    def test_deferred_block(self, build_symbols):
        """Test a registered initializer contributing template bindings."""
        table = build_symbols(
            "h(() => { y = `Full text ${missing}` });",
            deferred_initializers=["h"],
        )

        assert table.value_of("y") == TemplateText("Full text ${...}", has_unresolved_holes=True)
        assert table["y"].provenance is Provenance.DEFERRED
        assert len(table.deferred_blocks) == 1
        assert table.deferred_blocks[0].callee == "h"

    def test_deferred_sequence_assignments(self, build_symbols):
        """Test comma-separated assignments inside the closure."""
        table = build_symbols('var X = T(() => { a = "one", b = a; });')

        assert table.value_of("a") == Literal("one")
        assert table.value_of("b") == Literal("one")
        assert table.deferred_blocks[0].enclosing_symbol == "X"

    def test_unrecognized_callee_is_rejected(self, build_symbols, caplog):
        """Test that unregistered callees contribute nothing and are logged."""
        with caplog.at_level(logging.DEBUG, logger="decypher_cli.symbols"):
            table = build_symbols('setup(() => { z = "value"; });')

        assert "z" not in table
        assert table.deferred_blocks == ()
        assert any("Rejected" in r.getMessage() for r in caplog.records)

    def test_injected_names_replace_pattern(self, build_symbols):
        """Test that an empty pattern disables single-letter recognition."""
        table = build_symbols(
            'T(() => { z = "value"; });',
            deferred_initializers=[],
            deferred_pattern="",
        )

        assert "z" not in table

    def test_default_lazy_init(self, build_symbols):
        """Test the default initializer name."""
        table = build_symbols('lazy_init(() => { q = "value"; });')

        assert table.value_of("q") == Literal("value")

    def test_getter_functions(self, build_symbols):
        """Test single-return functions as value producers."""
        table = build_symbols(
            """
            var base = "root";
            function getName() { return base; }
            var arrow = () => "direct";
            function echo(v) { return v; }
            """
        )

        assert table.value_of("getName") == Literal("root")
        assert table["getName"].provenance is Provenance.GETTER
        assert table.value_of("arrow") == Literal("direct")
        assert table.value_of("echo") == UNKNOWN

    def test_object_getters(self, build_symbols):
        """Test methods become Entity.member symbols."""
        table = build_symbols(
            """
            var Bash = {
              prompt() { return "long form"; },
              description: () => "short form",
            };
            """
        )

        assert table.value_of("Bash.prompt") == Literal("long form")
        assert table["Bash.prompt"].entity == "Bash"
        assert table["Bash.prompt"].member == "prompt"
        assert table["Bash.description"].member == "description"

    def test_unknown_does_not_overwrite_known(self, build_symbols):
        """Test merge precedence keeps a known value."""
        table = build_symbols('var p = "kept"; function p(x) { return x; }')

        assert table.value_of("p") == Literal("kept")

    def test_alias_chain_for_functions(self, build_symbols):
        """Test that aliases of functions keep their reference chain."""
        table = build_symbols("function f() {} var g = f; var h = g;")

        assert table.value_of("h") == UNKNOWN
        assert table.alias_chain("h") == ("g", "f")

    def test_table_is_read_only(self, build_symbols):
        """Test the sealed table rejects mutation."""
        table = build_symbols('var a = "x";')

        with pytest.raises(TypeError):
            table["a"] = None  # type: ignore[index]

    def test_bound_nodes_recorded(self, build_symbols):
        """Test that bound initializer nodes are tracked."""
        table = build_symbols('var a = "x"; call("y");')

        bound = {n.text for n in table.bound_nodes}
        assert '"x"' in bound
        assert '"y"' not in bound

    def test_rebuild_is_deterministic(self, parse):
        """Test building twice yields identical mappings."""
        root = parse('var a = b; var b = "v"; var c = d; var d = c;')
        builder = SymbolTableBuilder()

        first = {k: v.value for k, v in builder.build(root).items()}
        second = {k: v.value for k, v in builder.build(root).items()}

        assert first == second


def _calls(root):
    return [n for n in root.walk() if n.kind == "call_expression"]


class TestResolveExpression:
    """Tests for resolving free expressions against a sealed table."""

    def test_identifier_and_literal(self, parse):
        """Test names are looked up and literals fold directly."""
        root = parse('var NAME = "Bash"; use(NAME); use("x"); use(missing); use(f());')
        table = SymbolTableBuilder().build(root)
        args = [c.field("arguments").named_children[0] for c in _calls(root)[:4]]

        assert table.resolve_expression(args[0]) == Literal("Bash")
        assert table.resolve_expression(args[1]) == Literal("x")
        assert table.resolve_expression(args[2]) == UNKNOWN
        assert table.text_of(args[3]) is None

    def test_template_holes_filled(self, parse):
        """Test identifier holes in an unbound template use resolved values."""
        root = parse('var NAME = "Bash"; var V = 2; use(`The ${NAME} tool, v${V} ${other}`);')
        table = SymbolTableBuilder().build(root)
        template = next(n for n in root.walk() if n.kind == "template_string")

        assert table.resolve_expression(template) == TemplateText("The Bash tool, v2 ${...}", True)
        assert table.text_of(template) == "The Bash tool, v2 ${...}"

    def test_parameter_holes_not_filled(self, parse):
        """Test a hole naming a function parameter is not taken from the table."""
        root = parse('var NAME = "Bash"; function f(NAME) { log(`Running ${NAME} now`); }')
        table = SymbolTableBuilder().build(root)
        template = next(n for n in root.walk() if n.kind == "template_string")

        assert table.text_of(template) == "Running ${...} now"


def test_invalid_pass_cap():
    """Test that a zero pass cap is rejected."""
    with pytest.raises(ConfigurationError):
        ResolutionConfig(max_passes=0)
