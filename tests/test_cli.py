"""Integration tests for CLI commands."""

import json
from pathlib import Path

import pytest
import toml
from typer.testing import CliRunner

from decypher_cli import __version__
from decypher_cli.cli import app
from decypher_cli.storage import AnalysisStore

runner = CliRunner()


@pytest.fixture(autouse=True)
def _home(isolated_home: Path) -> Path:
    """Keep every CLI run away from the real ~/.decypher."""
    return isolated_home


def test_version():
    """Test --version."""
    result = runner.invoke(app, ["--version"])

    assert result.exit_code == 0
    assert __version__ in result.stdout


class TestAnalyzeCommand:
    """Tests for 'decypher analyze'."""

    def test_analyze_summary(self, sample_bundle_path: Path):
        """Test the summary panel and degraded-results table."""
        result = runner.invoke(app, ["analyze", str(sample_bundle_path)])

        assert result.exit_code == 0
        assert "Analysis Summary" in result.stdout
        assert "8 functions" in result.stdout
        assert "1 tools" in result.stdout
        assert "Degraded results" in result.stdout
        assert "Unresolved calls" in result.stdout

    def test_analyze_with_outputs(self, sample_bundle_path: Path, temp_dir: Path):
        """Test --db and --json."""
        db = temp_dir / "out" / "analysis.db"
        report = temp_dir / "out" / "report.json"
        result = runner.invoke(
            app, ["analyze", str(sample_bundle_path), "--db", str(db), "--json", str(report)]
        )

        assert result.exit_code == 0
        assert "Saved results to" in result.stdout
        assert "Wrote JSON report to" in result.stdout
        with AnalysisStore(db) as store:
            assert store.total_calls() == 8
        assert json.loads(report.read_text(encoding="utf-8"))["stats"]["functions"] == 8

    def test_analyze_missing_file(self, temp_dir: Path):
        """Test a path that does not exist."""
        result = runner.invoke(app, ["analyze", str(temp_dir / "missing.js")])

        assert result.exit_code != 0

    def test_analyze_with_config(self, sample_bundle_path: Path, temp_dir: Path):
        """Test --config changes the analysis."""
        config = temp_dir / "strict.toml"
        config.write_text("[extraction]\nacceptance_threshold = 1.0\n", encoding="utf-8")
        result = runner.invoke(app, ["analyze", str(sample_bundle_path), "--config", str(config)])

        assert result.exit_code == 0
        assert "0 artifacts" in result.stdout

    def test_invalid_config_value(self, sample_bundle_path: Path, temp_dir: Path):
        """Test an out-of-range option is reported as a usage error."""
        config = temp_dir / "bad.toml"
        config.write_text("[resolution]\nmax_passes = 0\n", encoding="utf-8")
        result = runner.invoke(app, ["analyze", str(sample_bundle_path), "-c", str(config)])

        assert result.exit_code != 0


class TestQueryCommands:
    """Tests for the per-analysis commands."""

    def test_symbols(self, sample_bundle_path: Path):
        """Test listing symbols."""
        result = runner.invoke(app, ["symbols", str(sample_bundle_path)])

        assert result.exit_code == 0
        assert "alias2" in result.stdout
        assert "cyclic" in result.stdout

    def test_single_symbol(self, sample_bundle_path: Path):
        """Test --name filters to one symbol."""
        result = runner.invoke(app, ["symbols", str(sample_bundle_path), "--name", "VERSION"])

        assert result.exit_code == 0
        assert "1.0.3" in result.stdout
        assert "loopA" not in result.stdout

    def test_callgraph(self, sample_bundle_path: Path):
        """Test the call graph totals line."""
        result = runner.invoke(app, ["callgraph", str(sample_bundle_path)])

        assert result.exit_code == 0
        assert "Calls: 8 | Unresolved: 3 | Top-level: 2" in result.stdout

    def test_callgraph_for_function(self, sample_bundle_path: Path):
        """Test --function limits the edges shown."""
        result = runner.invoke(app, ["callgraph", str(sample_bundle_path), "-f", "helperFormat"])

        assert result.exit_code == 0
        assert "processInput" in result.stdout
        assert "renderOutput" not in result.stdout

    def test_callgraph_unknown_function(self, sample_bundle_path: Path):
        """Test an unknown function name is rejected."""
        result = runner.invoke(app, ["callgraph", str(sample_bundle_path), "-f", "nope"])

        assert result.exit_code != 0

    def test_complexity(self, sample_bundle_path: Path):
        """Test the complexity table and summary line."""
        result = runner.invoke(app, ["complexity", str(sample_bundle_path), "--top", "3"])

        assert result.exit_code == 0
        assert "processInput" in result.stdout
        assert "Average: 1.75 | Max: 5 (processInput)" in result.stdout

    def test_artifacts(self, sample_bundle_path: Path):
        """Test listing artifacts."""
        result = runner.invoke(app, ["artifacts", str(sample_bundle_path)])

        assert result.exit_code == 0
        assert "2 artifacts shown" in result.stdout

    def test_artifacts_min_confidence(self, sample_bundle_path: Path):
        """Test --min-confidence hides weaker artifacts."""
        result = runner.invoke(app, ["artifacts", str(sample_bundle_path), "--min-confidence", "0.6"])

        assert result.exit_code == 0
        assert "1 artifacts shown" in result.stdout

    def test_modules(self, sample_bundle_path: Path):
        """Test the module table."""
        result = runner.invoke(app, ["modules", str(sample_bundle_path)])

        assert result.exit_code == 0
        assert "core" in result.stdout
        assert "utils" in result.stdout

    def test_config_values(self, sample_bundle_path: Path):
        """Test listing configuration values."""
        result = runner.invoke(app, ["config-values", str(sample_bundle_path)])

        assert result.exit_code == 0
        assert "VERSION" in result.stdout
        assert "1 configuration values shown" in result.stdout

    def test_config_values_category(self, sample_bundle_path: Path):
        """Test --category filters configuration values."""
        result = runner.invoke(app, ["config-values", str(sample_bundle_path), "--category", "model"])

        assert result.exit_code == 0
        assert "0 configuration values shown" in result.stdout

    def test_strings(self, sample_bundle_path: Path):
        """Test listing interesting strings with a limit."""
        result = runner.invoke(app, ["strings", str(sample_bundle_path), "--limit", "1"])

        assert result.exit_code == 0
        assert "error_message" in result.stdout
        assert "1 strings shown" in result.stdout

    def test_tools(self, sample_bundle_path: Path):
        """Test the tool panels."""
        result = runner.invoke(app, ["tools", str(sample_bundle_path)])

        assert result.exit_code == 0
        assert "ReadTool" in result.stdout
        assert "1 tools found" in result.stdout

    def test_tools_none_found(self, temp_dir: Path):
        """Test a bundle without tool objects."""
        bundle = temp_dir / "plain.js"
        bundle.write_text("function f() { return 1; }", encoding="utf-8")
        result = runner.invoke(app, ["tools", str(bundle)])

        assert result.exit_code == 0
        assert "No tool definitions found" in result.stdout

    def test_metrics(self, sample_bundle_path: Path):
        """Test the code metrics table."""
        result = runner.invoke(app, ["metrics", str(sample_bundle_path)])

        assert result.exit_code == 0
        assert "Code Metrics" in result.stdout
        assert "main_loop (4)" in result.stdout


class TestInitConfigCommand:
    """Tests for 'decypher init-config'."""

    def test_writes_default_location(self, isolated_home: Path):
        """Test writing the config to the default path."""
        result = runner.invoke(app, ["init-config"])

        assert result.exit_code == 0
        assert "Wrote default configuration" in result.stdout
        data = toml.loads(isolated_home.read_text(encoding="utf-8"))
        assert data["resolution"]["max_passes"] == 10
        assert len(data["modules"]) == 8

    def test_refuses_overwrite(self, temp_dir: Path):
        """Test an existing file needs --force."""
        path = temp_dir / "config.toml"
        path.write_text("# mine\n", encoding="utf-8")

        refused = runner.invoke(app, ["init-config", "--path", str(path)])
        forced = runner.invoke(app, ["init-config", "--path", str(path), "--force"])

        assert refused.exit_code != 0
        assert path.read_text(encoding="utf-8") != "# mine\n"
        assert forced.exit_code == 0

    def test_written_config_is_used(self, sample_bundle_path: Path, isolated_home: Path):
        """Test analyze picks up the default config file."""
        runner.invoke(app, ["init-config"])
        result = runner.invoke(app, ["analyze", str(sample_bundle_path)])

        assert result.exit_code == 0
        assert "2 artifacts" in result.stdout
