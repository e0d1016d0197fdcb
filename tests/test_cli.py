"""
Tests for the CLI interface.
"""
import json

import pytest
import yaml
from typer.testing import CliRunner

from ai_query_optimizer.cli.main import app, EXIT_CODE_PASS, EXIT_CODE_FAIL

runner = CliRunner()


@pytest.fixture
def config_path(tmp_path):
    """Write a config that keeps usage stats in a temporary database."""
    path = tmp_path / "optimizer.yaml"
    path.write_text(yaml.dump({
        "storage": {"db_path": str(tmp_path / "stats.db")},
        "logging": {"level": "ERROR"},
    }), encoding="utf-8")
    return str(path)


class TestCLI:
    """Test CLI commands."""

    def test_no_command_prints_hint(self):
        """Test running without a command prints usage help."""
        result = runner.invoke(app, [])
        assert "Use --help" in result.output

    def test_status(self, config_path):
        """Test status reports a cold cache as a warning."""
        result = runner.invoke(app, ["status", "--config", config_path])

        assert result.exit_code == EXIT_CODE_PASS
        assert "Optimization status: warning" in result.output
        assert "Low cache hit rate" in result.output

    def test_stats_empty(self, config_path):
        """Test stats before any usage."""
        result = runner.invoke(app, ["stats", "-c", config_path])

        assert result.exit_code == EXIT_CODE_PASS
        assert "Total queries: 0" in result.output
        assert "Statistics will be available" in result.output

    def test_select(self, config_path):
        """Test select shows the chosen model."""
        result = runner.invoke(app, ["select", "Ile jest receptur w systemie?", "-c", config_path])

        assert result.exit_code == EXIT_CODE_PASS
        assert "Selected model: gpt-4o-mini" in result.output
        assert "Model Comparison" in result.output

    def test_select_high_accuracy(self, config_path):
        """Test the accuracy flag switches to a complex-tier model."""
        result = runner.invoke(app, [
            "select", "Jaki jest status produkcji?", "--high-accuracy", "-c", config_path
        ])

        assert result.exit_code == EXIT_CODE_PASS
        assert "Selected model: gpt-4o" in result.output
        assert "Complexity: complex" in result.output

    def test_benchmark_custom_queries(self, config_path):
        """Test benchmark runs the given queries."""
        result = runner.invoke(app, [
            "benchmark", "-q", "Ile jest receptur w systemie?", "-q", "Pokaż zamówienia", "-c", config_path
        ])

        assert result.exit_code == EXIT_CODE_PASS
        assert "Queries: 2/2 ok" in result.output

    def test_benchmark_default_queries(self, config_path):
        """Test benchmark falls back to the default query set."""
        result = runner.invoke(app, ["benchmark", "-c", config_path])

        assert result.exit_code == EXIT_CODE_PASS
        assert "Queries: 5/5 ok" in result.output

    def test_optimize_mock_snapshot(self, config_path, tmp_path):
        """Test optimize reports and writes the shrunk context."""
        output = tmp_path / "context.json"
        result = runner.invoke(app, [
            "optimize", "Ile jest receptur w systemie?", "-o", str(output), "-c", config_path
        ])

        assert result.exit_code == EXIT_CODE_PASS
        assert "Strategy: minimal" in result.output

        written = json.loads(output.read_text(encoding="utf-8"))
        assert written["_optimization"]["strategy"] == "minimal"
        assert set(written) == {"summary", "recipes", "_optimization"}

    def test_optimize_snapshot_file(self, config_path, tmp_path):
        """Test optimize reads a snapshot from a JSON file."""
        snapshot = tmp_path / "snapshot.json"
        snapshot.write_text(json.dumps({
            "summary": {"totalOrders": 1},
            "orders": [{"id": "ord-1", "orderDate": "2026-01-01T00:00:00", "customer": "Klient"}],
        }), encoding="utf-8")

        result = runner.invoke(app, [
            "optimize", "Pokaż zamówienia", "--data", str(snapshot), "--tier", "medium", "-c", config_path
        ])

        assert result.exit_code == EXIT_CODE_PASS
        assert "Strategy: focused" in result.output

    def test_reset_stats(self, config_path):
        """Test reset-stats succeeds."""
        result = runner.invoke(app, ["reset-stats", "-c", config_path])

        assert result.exit_code == EXIT_CODE_PASS
        assert "Usage statistics cleared" in result.output

    def test_missing_config_fails(self, tmp_path):
        """Test a missing config file exits with failure."""
        result = runner.invoke(app, ["status", "-c", str(tmp_path / "missing.yaml")])

        assert result.exit_code == EXIT_CODE_FAIL
        assert "Error:" in result.output

    def test_invalid_config_fails(self, tmp_path):
        """Test an invalid config value exits with failure."""
        path = tmp_path / "bad.yaml"
        path.write_text("cache:\n  max_size: 0\n", encoding="utf-8")

        result = runner.invoke(app, ["stats", "-c", str(path)])

        assert result.exit_code == EXIT_CODE_FAIL
        assert "max_size must be > 0" in result.output
