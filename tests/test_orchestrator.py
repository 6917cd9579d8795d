"""Integration tests running the full analysis over the sample bundle."""

import json

import pytest

from decypher_cli.config import AnalysisConfig, ResolutionConfig
from decypher_cli.models import (
    CYCLIC,
    UNKNOWN,
    Category,
    ConfigCategory,
    Literal,
    Provenance,
    StringCategory,
    TemplateText,
)
from decypher_cli.orchestrator import AnalysisOrchestrator, report_to_dict, value_to_dict


@pytest.fixture
def report(js_parser, sample_bundle_path):
    return AnalysisOrchestrator(parser=js_parser).analyze_file(sample_bundle_path)


class TestSampleBundle:
    """End-to-end expectations for tests/fixtures/sample_bundle.js."""

    def test_function_index(self, report):
        """Test every block-bodied function is indexed once."""
        assert report.function_index.ids == [
            "anonymous_1",
            "ReadTool.prompt",
            "ReadTool.description",
            "main_loop",
            "processInput",
            "helperFormat",
            "renderOutput",
            "logError",
        ]
        assert report.stats.structural_errors == 0

    def test_symbol_values(self, report):
        """Test resolved values of the bundle's bindings."""
        symbols = report.symbols

        assert symbols.value_of("alias2") == Literal("1.0.3")
        assert symbols.value_of("loopA") == CYCLIC
        assert symbols.value_of("loopB") == CYCLIC
        assert symbols.value_of("greeting") == TemplateText("Hello 1.0.3!", False)
        assert symbols.value_of("runTool") == UNKNOWN
        assert symbols["runTool"].references == ("helperFormat",)

    def test_deferred_bindings(self, report):
        """Test names assigned inside the lazy initializer."""
        symbols = report.symbols
        qz = symbols.value_of("Qz")

        assert isinstance(qz, TemplateText)
        assert qz.has_unresolved_holes
        assert qz.text.endswith("${...}")
        assert symbols["Kp"].provenance is Provenance.DEFERRED
        assert symbols.value_of("Kp") == symbols.value_of("Hx")
        assert report.stats.deferred_blocks == 1

    def test_call_graph(self, report):
        """Test call totals and edge multiplicity."""
        graph = report.call_graph

        assert graph.total_calls == 8
        assert graph.unresolved_calls == 3
        assert graph.top_level_calls == 2
        assert graph.edge("main_loop", "renderOutput").count == 2
        assert graph.edge("renderOutput", "logError").count == 1
        assert sum(e.count for e in graph.edge_list()) == graph.total_calls

    def test_complexity(self, report):
        """Test metrics for the branching functions."""
        process = report.complexity.get("processInput")

        assert process.cyclomatic == 5
        assert process.nesting_depth == 2
        assert report.complexity.get("main_loop").cyclomatic == 2
        assert report.complexity.get("renderOutput").cyclomatic == 2
        assert report.complexity.summary["most_complex"] == "processInput"

    def test_artifacts(self, report):
        """Test the accepted artifacts and discarded candidates."""
        candidates = report.extraction.candidates

        assert [c.provenance for c in candidates] == ["ReadTool.prompt", "Qz"]
        assert candidates[0].entity == "ReadTool"
        assert candidates[0].category is Category.TOOL_DOC
        assert candidates[1].category is Category.SYSTEM
        assert report.extraction.stats["duplicates"] == 2
        assert report.extraction.stats["summaries_discarded"] == 1

    def test_modules(self, report):
        """Test module assignment covers every function."""
        modules = report.modules

        assert len(modules.assignments) == len(report.function_index)
        assert modules.module_of("main_loop") == "core"
        assert modules.by_function["main_loop"].reason == "seed"
        # aliased as runTool, which ties tools with utils; tools is declared first
        assert modules.module_of("helperFormat") == "tools"
        assert modules.module_of("ReadTool.prompt") == "tools"
        assert modules.module_of("logError") == "utils"
        assert report.stats.fallback_assignments == 4

    def test_literal_inventories(self, report):
        """Test configuration values, strings and tool definitions."""
        assert [(v.key, v.value, v.category) for v in report.config_values] == [
            ("VERSION", "1.0.3", ConfigCategory.OTHER),
        ]
        assert [s.category for s in report.strings] == [StringCategory.ERROR_MESSAGE, StringCategory.OTHER]
        assert [(t.name, t.entity) for t in report.tools] == [("Read", "ReadTool")]
        assert report.tools[0].short_description == "Read a file from disk"

    def test_code_metrics(self, report):
        """Test the whole-bundle metrics summary."""
        metrics = report.code_metrics

        assert metrics.function_count == 8
        assert metrics.total_loc == 52
        assert metrics.longest_function == "main_loop"

    def test_stats(self, report):
        """Test the aggregated statistics."""
        stats = report.stats

        assert stats.functions == 8
        assert stats.artifacts_accepted == 2
        assert stats.artifacts_rejected == stats.extraction["considered"] - 2
        assert stats.cyclic_symbols == 2
        assert stats.config_values == 1
        assert stats.interesting_strings == 2
        assert stats.tool_definitions == 1


class TestOrchestrator:
    """Tests for orchestration options and serialization."""

    def test_analyze_source(self, js_parser):
        """Test analysing an in-memory snippet."""
        report = AnalysisOrchestrator(parser=js_parser).analyze_source("function f() { g(); }")

        assert report.stats.functions == 1
        assert report.stats.unresolved_calls == 1
        assert report.source_path is None

    def test_config_reaches_symbol_builder(self, js_parser):
        """Test resolution options flow into the builder."""
        config = AnalysisConfig(resolution=ResolutionConfig(deferred_initializers=("boot",)))
        report = AnalysisOrchestrator(config, js_parser).analyze_source('boot(() => { x = "y"; });')

        assert report.symbols.value_of("x") == Literal("y")

    def test_report_to_dict_is_json_ready(self, report):
        """Test the serialized report round-trips through json."""
        data = json.loads(json.dumps(report_to_dict(report)))

        assert data["stats"]["functions"] == 8
        assert data["symbols"]["loopA"] == {
            "type": "cyclic",
            "provenance": "declaration",
            "entity": None,
            "references": ["loopB"],
        }
        assert data["call_graph"]["total_calls"] == 8
        assert len(data["modules"]["assignments"]) == 8
        assert data["artifacts"][0]["entity"] == "ReadTool"
        assert data["config_values"] == [
            {"key": "VERSION", "value": "1.0.3", "value_type": "string", "category": "other", "line": 2}
        ]
        assert data["strings"][0]["category"] == "error_message"
        assert data["strings"][0]["length"] == len("Error: ")
        assert data["tools"][0]["properties"]["is_enabled"] is True
        assert data["code_metrics"]["variable_count"] == 15

    def test_value_to_dict_rejects_other_types(self):
        """Test serializing a non-value raises."""
        with pytest.raises(TypeError):
            value_to_dict("not a value")  # type: ignore[arg-type]
