"""Orchestrator running the analysis components over one bundle."""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

from .callgraph import CallGraph, CallGraphBuilder
from .complexity import ComplexityAnalyzer, ComplexityReport
from .config import AnalysisConfig
from .extractor import ArtifactExtractor, ExtractionResult
from .function_index import FunctionIndex
from .metrics import CodeMetricsCalculator
from .models import (
    AnalysisStats,
    CodeMetrics,
    ConfigValue,
    Cyclic,
    InterestingString,
    Literal,
    Reference,
    SymbolValue,
    TemplateText,
    ToolDefinition,
    Unknown,
)
from .modules import ModuleAffinityAssigner, ModuleAssignmentResult
from .parser import JavaScriptParser
from .strings import ConfigValueExtractor, StringExtractor
from .symbols import SymbolTable, SymbolTableBuilder
from .tools import ToolDefinitionExtractor
from .tree import SyntaxNode

logger = logging.getLogger(__name__)


@dataclass
class AnalysisReport:
    function_index: FunctionIndex
    symbols: SymbolTable
    call_graph: CallGraph
    complexity: ComplexityReport
    extraction: ExtractionResult
    modules: ModuleAssignmentResult
    config_values: List[ConfigValue] = field(default_factory=list)
    strings: List[InterestingString] = field(default_factory=list)
    tools: List[ToolDefinition] = field(default_factory=list)
    code_metrics: Optional[CodeMetrics] = None
    stats: AnalysisStats = field(default_factory=AnalysisStats)
    source_path: Optional[str] = None


class AnalysisOrchestrator:
    """Parse a bundle and run every analysis in dependency order.

    Function Index and Symbol Table are built first; the call graph,
    complexity metrics, artifact extraction, literal inventories, tool
    definitions and module assignment then read them without modifying
    them.
    """

    def __init__(self, config: Optional[AnalysisConfig] = None, parser: Optional[JavaScriptParser] = None):
        self.config = config or AnalysisConfig()
        self._parser = parser

    @property
    def parser(self) -> JavaScriptParser:
        if self._parser is None:
            self._parser = JavaScriptParser()
        return self._parser

    def analyze_file(self, path: Path) -> AnalysisReport:
        root = self.parser.parse_file(path)
        report = self.analyze_tree(root)
        report.source_path = str(path)
        return report

    def analyze_source(self, source: str) -> AnalysisReport:
        return self.analyze_tree(self.parser.parse(source))

    def analyze_tree(self, root: SyntaxNode) -> AnalysisReport:
        index = FunctionIndex.from_tree(root)
        symbols = SymbolTableBuilder(self.config.resolution).build(root)
        call_graph = CallGraphBuilder(index, symbols).build(root)
        complexity = ComplexityAnalyzer(index).analyze()
        extraction = ArtifactExtractor(self.config.extraction).extract(symbols, root)
        modules = ModuleAffinityAssigner(self.config.modules, self.config.affinity).assign(
            call_graph, index.ids, symbols
        )
        config_values = ConfigValueExtractor(self.config.strings).extract(root)
        strings = StringExtractor(self.config.strings).extract(root)
        tools = ToolDefinitionExtractor(symbols, self.config.tools).extract(root)
        code_metrics = CodeMetricsCalculator(index).calculate(root)

        symbol_stats = symbols.stats
        extraction_stats = extraction.stats
        stats = AnalysisStats(
            functions=len(index),
            structural_errors=len(index.errors),
            symbols=symbol_stats["total"],
            unknown_symbols=symbol_stats["unknown"],
            cyclic_symbols=symbol_stats["cyclic"],
            resolution_passes=symbol_stats["passes"],
            deferred_blocks=symbol_stats["deferred_blocks"],
            total_calls=call_graph.total_calls,
            unresolved_calls=call_graph.unresolved_calls,
            top_level_calls=call_graph.top_level_calls,
            artifacts_accepted=extraction_stats["accepted"],
            artifacts_rejected=extraction_stats["considered"] - extraction_stats["accepted"],
            fallback_assignments=modules.stats["fallback"],
            config_values=len(config_values),
            interesting_strings=len(strings),
            tool_definitions=len(tools),
            extraction=dict(extraction_stats),
        )
        logger.info(
            "Analysis complete: %d functions, %d symbols, %d calls, %d artifacts",
            stats.functions, stats.symbols, stats.total_calls, stats.artifacts_accepted,
        )
        return AnalysisReport(
            function_index=index,
            symbols=symbols,
            call_graph=call_graph,
            complexity=complexity,
            extraction=extraction,
            modules=modules,
            config_values=config_values,
            strings=strings,
            tools=tools,
            code_metrics=code_metrics,
            stats=stats,
        )


# ===================================================================
# Serialization
# ===================================================================

def value_to_dict(value: SymbolValue) -> Dict[str, Any]:
    if isinstance(value, Literal):
        return {"type": "literal", "value": value.value}
    if isinstance(value, TemplateText):
        return {"type": "template", "value": value.text, "has_unresolved_holes": value.has_unresolved_holes}
    if isinstance(value, Reference):
        return {"type": "reference", "target": value.target}
    if isinstance(value, Cyclic):
        return {"type": "cyclic"}
    if isinstance(value, Unknown):
        return {"type": "unknown"}
    raise TypeError(f"Not a symbol value: {value!r}")


def report_to_dict(report: AnalysisReport) -> Dict[str, Any]:
    """Plain, JSON-ready view of *report*."""
    return {
        "source": report.source_path,
        "stats": asdict(report.stats),
        "functions": [
            {
                "id": f.id,
                "kind": f.kind,
                "param_count": f.param_count,
                "statement_count": f.statement_count,
                "start_line": f.body_span.start_line,
                "end_line": f.body_span.end_line,
            }
            for f in report.function_index
        ],
        "symbols": {
            name: {
                **value_to_dict(symbol.value),
                "provenance": symbol.provenance.value,
                "entity": symbol.entity,
                "references": list(symbol.references),
            }
            for name, symbol in report.symbols.items()
        },
        "call_graph": {
            "edges": [asdict(edge) for edge in report.call_graph.edge_list()],
            **report.call_graph.stats,
        },
        "complexity": {
            "metrics": [asdict(m) for m in report.complexity.metrics],
            "summary": report.complexity.summary,
        },
        "artifacts": [
            {
                "text": c.text,
                "provenance": c.provenance,
                "category": c.category.value,
                "confidence": c.confidence,
                "entity": c.entity,
                "source": c.source,
            }
            for c in report.extraction.candidates
        ],
        "modules": {
            "assignments": [asdict(a) for a in report.modules.assignments],
            "by_module": report.modules.by_module(),
        },
        "config_values": [
            {**asdict(v), "category": v.category.value} for v in report.config_values
        ],
        "strings": [
            {**asdict(s), "category": s.category.value, "length": s.length} for s in report.strings
        ],
        "tools": [asdict(t) for t in report.tools],
        "code_metrics": asdict(report.code_metrics) if report.code_metrics is not None else None,
    }
