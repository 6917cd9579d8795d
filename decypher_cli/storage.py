"""Persistence for analysis reports.

SQLite holds the structured results (functions, call edges, metrics,
artifacts, module assignments, configuration values, strings and tool
definitions) so they can be queried after the run;
:func:`write_json` dumps the same report as a single JSON document.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from dataclasses import asdict
from pathlib import Path
from typing import Any, Dict, List, Optional

from .callgraph import UNRESOLVED
from .orchestrator import AnalysisReport, report_to_dict

logger = logging.getLogger(__name__)


class AnalysisStore:
    """SQLite store for one analysed bundle."""

    def __init__(self, db_path: Path) -> None:
        self.db_path = db_path
        db_path.parent.mkdir(parents=True, exist_ok=True)
        self.conn = sqlite3.connect(str(self.db_path))
        self.conn.row_factory = sqlite3.Row
        self._init_schema()

    def close(self) -> None:
        self.conn.close()

    def __enter__(self) -> "AnalysisStore":
        return self

    def __exit__(self, *exc: Any) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Schema
    # ------------------------------------------------------------------

    def _init_schema(self) -> None:
        cur = self.conn.cursor()
        cur.execute("""
            CREATE TABLE IF NOT EXISTS functions (
                function_id     TEXT PRIMARY KEY,
                kind            TEXT NOT NULL,
                param_count     INTEGER NOT NULL,
                statement_count INTEGER NOT NULL,
                start_line      INTEGER NOT NULL,
                end_line        INTEGER NOT NULL,
                module          TEXT,
                module_reason   TEXT,
                module_score    REAL
            )
        """)
        cur.execute("""
            CREATE TABLE IF NOT EXISTS call_edges (
                caller TEXT NOT NULL,
                callee TEXT NOT NULL,
                count  INTEGER NOT NULL
            )
        """)
        cur.execute("""
            CREATE TABLE IF NOT EXISTS metrics (
                function_id     TEXT PRIMARY KEY,
                cyclomatic      INTEGER NOT NULL,
                nesting_depth   INTEGER NOT NULL,
                statement_count INTEGER NOT NULL,
                param_count     INTEGER NOT NULL
            )
        """)
        cur.execute("""
            CREATE TABLE IF NOT EXISTS artifacts (
                artifact_id INTEGER PRIMARY KEY AUTOINCREMENT,
                text        TEXT NOT NULL,
                provenance  TEXT NOT NULL,
                category    TEXT NOT NULL,
                confidence  REAL NOT NULL,
                entity      TEXT,
                source      TEXT
            )
        """)
        cur.execute("""
            CREATE TABLE IF NOT EXISTS config_values (
                key        TEXT NOT NULL,
                value      TEXT NOT NULL,
                value_type TEXT NOT NULL,
                category   TEXT NOT NULL,
                line       INTEGER NOT NULL
            )
        """)
        cur.execute("""
            CREATE TABLE IF NOT EXISTS strings (
                value       TEXT NOT NULL,
                category    TEXT NOT NULL,
                relevance   REAL NOT NULL,
                line        INTEGER NOT NULL,
                occurrences INTEGER NOT NULL
            )
        """)
        cur.execute("""
            CREATE TABLE IF NOT EXISTS tools (
                name              TEXT NOT NULL,
                entity            TEXT NOT NULL,
                short_description TEXT,
                full_prompt       TEXT,
                input_schema      TEXT,
                output_schema     TEXT,
                properties        TEXT NOT NULL,
                confidence        REAL NOT NULL
            )
        """)
        cur.execute("""
            CREATE TABLE IF NOT EXISTS metadata (
                key   TEXT PRIMARY KEY,
                value TEXT NOT NULL
            )
        """)
        cur.execute("CREATE INDEX IF NOT EXISTS idx_edges_caller ON call_edges(caller)")
        cur.execute("CREATE INDEX IF NOT EXISTS idx_edges_callee ON call_edges(callee)")
        cur.execute("CREATE INDEX IF NOT EXISTS idx_functions_module ON functions(module)")
        self.conn.commit()

    # ------------------------------------------------------------------
    # Write
    # ------------------------------------------------------------------

    def clear(self) -> None:
        cur = self.conn.cursor()
        for table in (
            "functions", "call_edges", "metrics", "artifacts",
            "config_values", "strings", "tools", "metadata",
        ):
            cur.execute(f"DELETE FROM {table}")
        self.conn.commit()

    def save_report(self, report: AnalysisReport) -> None:
        """Replace the stored results with *report*."""
        self.clear()
        assignments = report.modules.by_function
        self.conn.executemany(
            """
            INSERT INTO functions (
                function_id, kind, param_count, statement_count,
                start_line, end_line, module, module_reason, module_score
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            [
                (
                    f.id, f.kind, f.param_count, f.statement_count,
                    f.body_span.start_line, f.body_span.end_line,
                    assignments[f.id].module if f.id in assignments else None,
                    assignments[f.id].reason if f.id in assignments else None,
                    assignments[f.id].score if f.id in assignments else None,
                )
                for f in report.function_index
            ],
        )
        self.conn.executemany(
            "INSERT INTO call_edges (caller, callee, count) VALUES (?, ?, ?)",
            [(e.caller, e.callee, e.count) for e in report.call_graph.edge_list()],
        )
        self.conn.executemany(
            """
            INSERT INTO metrics (
                function_id, cyclomatic, nesting_depth, statement_count, param_count
            ) VALUES (?, ?, ?, ?, ?)
            """,
            [
                (m.function, m.cyclomatic, m.nesting_depth, m.statement_count, m.param_count)
                for m in report.complexity.metrics
            ],
        )
        self.conn.executemany(
            """
            INSERT INTO artifacts (text, provenance, category, confidence, entity, source)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            [
                (c.text, c.provenance, c.category.value, c.confidence, c.entity, c.source)
                for c in report.extraction.candidates
            ],
        )
        self.conn.executemany(
            "INSERT INTO config_values (key, value, value_type, category, line) VALUES (?, ?, ?, ?, ?)",
            [(v.key, v.value, v.value_type, v.category.value, v.line) for v in report.config_values],
        )
        self.conn.executemany(
            "INSERT INTO strings (value, category, relevance, line, occurrences) VALUES (?, ?, ?, ?, ?)",
            [(s.value, s.category.value, s.relevance, s.line, s.occurrences) for s in report.strings],
        )
        self.conn.executemany(
            """
            INSERT INTO tools (
                name, entity, short_description, full_prompt,
                input_schema, output_schema, properties, confidence
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
            [
                (
                    t.name, t.entity, t.short_description, t.full_prompt,
                    _json_or_none(t.input_schema), _json_or_none(t.output_schema),
                    json.dumps(asdict(t.properties)), t.confidence,
                )
                for t in report.tools
            ],
        )
        self.set_metadata({
            "source": report.source_path,
            "stats": asdict(report.stats),
            "code_metrics": asdict(report.code_metrics) if report.code_metrics is not None else None,
        })
        self.conn.commit()
        logger.info("Saved analysis report to %s", self.db_path)

    def set_metadata(self, payload: Dict[str, Any]) -> None:
        self.conn.executemany(
            "INSERT OR REPLACE INTO metadata (key, value) VALUES (?, ?)",
            [(key, json.dumps(value)) for key, value in payload.items()],
        )
        self.conn.commit()

    # ------------------------------------------------------------------
    # Query
    # ------------------------------------------------------------------

    def get_metadata(self) -> Dict[str, Any]:
        rows = self.conn.execute("SELECT key, value FROM metadata").fetchall()
        return {row["key"]: json.loads(row["value"]) for row in rows}

    def get_functions(self, module: Optional[str] = None) -> List[sqlite3.Row]:
        if module is None:
            return self.conn.execute("SELECT * FROM functions ORDER BY rowid").fetchall()
        return self.conn.execute(
            "SELECT * FROM functions WHERE module = ? ORDER BY rowid", (module,)
        ).fetchall()

    def callees(self, function_id: str) -> List[sqlite3.Row]:
        return self.conn.execute(
            "SELECT callee, count FROM call_edges WHERE caller = ? ORDER BY count DESC, callee",
            (function_id,),
        ).fetchall()

    def callers(self, function_id: str) -> List[sqlite3.Row]:
        return self.conn.execute(
            "SELECT caller, count FROM call_edges WHERE callee = ? ORDER BY count DESC, caller",
            (function_id,),
        ).fetchall()

    def total_calls(self) -> int:
        row = self.conn.execute("SELECT COALESCE(SUM(count), 0) AS total FROM call_edges").fetchone()
        return int(row["total"])

    def unresolved_calls(self) -> int:
        row = self.conn.execute(
            "SELECT COALESCE(SUM(count), 0) AS total FROM call_edges WHERE callee = ?",
            (UNRESOLVED,),
        ).fetchone()
        return int(row["total"])

    def top_complex(self, limit: int = 10) -> List[sqlite3.Row]:
        return self.conn.execute(
            "SELECT * FROM metrics ORDER BY cyclomatic DESC, rowid LIMIT ?", (limit,)
        ).fetchall()

    def get_artifacts(
        self, category: Optional[str] = None, min_confidence: float = 0.0
    ) -> List[sqlite3.Row]:
        query = "SELECT * FROM artifacts WHERE confidence >= ?"
        params: List[Any] = [min_confidence]
        if category is not None:
            query += " AND category = ?"
            params.append(category)
        query += " ORDER BY confidence DESC, artifact_id"
        return self.conn.execute(query, params).fetchall()

    def module_counts(self) -> Dict[str, int]:
        rows = self.conn.execute(
            "SELECT module, COUNT(*) AS n FROM functions GROUP BY module ORDER BY n DESC, module"
        ).fetchall()
        return {row["module"]: row["n"] for row in rows}

    def get_config_values(self, category: Optional[str] = None) -> List[sqlite3.Row]:
        if category is None:
            return self.conn.execute("SELECT * FROM config_values ORDER BY rowid").fetchall()
        return self.conn.execute(
            "SELECT * FROM config_values WHERE category = ? ORDER BY rowid", (category,)
        ).fetchall()

    def get_strings(
        self, category: Optional[str] = None, min_relevance: float = 0.0
    ) -> List[sqlite3.Row]:
        query = "SELECT * FROM strings WHERE relevance >= ?"
        params: List[Any] = [min_relevance]
        if category is not None:
            query += " AND category = ?"
            params.append(category)
        query += " ORDER BY relevance DESC, rowid"
        return self.conn.execute(query, params).fetchall()

    def get_tools(self) -> List[Dict[str, Any]]:
        """Tool rows with their schemas and properties decoded."""
        tools = []
        for row in self.conn.execute("SELECT * FROM tools ORDER BY rowid").fetchall():
            tool = dict(row)
            for key in ("input_schema", "output_schema", "properties"):
                if tool[key] is not None:
                    tool[key] = json.loads(tool[key])
            tools.append(tool)
        return tools

    def get_code_metrics(self) -> Optional[Dict[str, Any]]:
        return self.get_metadata().get("code_metrics")


def _json_or_none(value: Optional[Dict[str, Any]]) -> Optional[str]:
    return json.dumps(value) if value is not None else None


def write_json(report: AnalysisReport, path: Path) -> Path:
    """Write *report* as indented JSON and return the path."""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(report_to_dict(report), indent=2), encoding="utf-8")
    return path
