"""Tests for CLI commands."""

import json
from unittest.mock import patch

from typer.testing import CliRunner

from diskdive import __version__
from diskdive.cli import app
from diskdive.config import load_config

runner = CliRunner()


class TestCLI:
    def test_version(self):
        result = runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert __version__ in result.stdout

    def test_help(self):
        result = runner.invoke(app, ["--help"])
        assert result.exit_code == 0
        for command in ["explore", "scan", "protect", "unprotect", "protections"]:
            assert command in result.stdout


class TestScanCommand:
    def test_scan_lists_children(self, sample_tree):
        result = runner.invoke(app, ["scan", str(sample_tree)])
        assert result.exit_code == 0
        assert "b.txt" in result.stdout
        assert "a.txt" in result.stdout
        assert "c/" in result.stdout
        assert "400 B" in result.stdout
        assert result.stdout.index("b.txt") < result.stdout.index("a.txt")

    def test_scan_top_limits_rows(self, sample_tree):
        result = runner.invoke(app, ["scan", str(sample_tree), "--top", "1"])
        assert result.exit_code == 0
        assert "and 2 more" in result.stdout

    def test_scan_large_files(self, sample_tree):
        (sample_tree / "big.bin").write_bytes(b"x" * (2 * 1024 * 1024))
        result = runner.invoke(app, ["scan", str(sample_tree), "--threshold-mb", "1"])
        assert result.exit_code == 0
        assert "Largest Files" in result.stdout
        assert "2.0 MB" in result.stdout

    def test_scan_missing_path(self, tmp_path):
        result = runner.invoke(app, ["scan", str(tmp_path / "missing")])
        assert result.exit_code == 1
        assert "does not exist" in result.stdout

    def test_scan_file_path(self, sample_tree):
        result = runner.invoke(app, ["scan", str(sample_tree / "a.txt")])
        assert result.exit_code == 1
        assert "Not a directory" in result.stdout

    def test_bad_config(self, sample_tree, tmp_path):
        config_file = tmp_path / "config.json"
        config_file.write_text("{broken")
        result = runner.invoke(app, ["scan", str(sample_tree), "--config", str(config_file)])
        assert result.exit_code == 1
        assert "Configuration error" in result.stdout


class TestExploreCommand:
    def test_explore_starts_tui(self, sample_tree):
        with patch("diskdive.tui.run_explorer") as mock_run:
            result = runner.invoke(app, ["explore", str(sample_tree)])

        assert result.exit_code == 0
        mock_run.assert_called_once()
        args, kwargs = mock_run.call_args
        assert args[0] == str(sample_tree.resolve())
        assert kwargs["config"].dry_run is False

    def test_explore_dry_run(self, sample_tree):
        with patch("diskdive.tui.run_explorer") as mock_run:
            result = runner.invoke(app, ["explore", str(sample_tree), "--dry-run"])

        assert result.exit_code == 0
        assert mock_run.call_args.kwargs["config"].dry_run is True

    def test_explore_invalid_root(self, tmp_path):
        with patch("diskdive.tui.run_explorer") as mock_run:
            result = runner.invoke(app, ["explore", str(tmp_path / "missing")])

        assert result.exit_code == 1
        mock_run.assert_not_called()

    def test_explore_uses_config_default_root(self, sample_tree, tmp_path):
        config_file = tmp_path / "config.json"
        config_file.write_text(json.dumps({"default_root": str(sample_tree)}))

        with patch("diskdive.tui.run_explorer") as mock_run:
            result = runner.invoke(app, ["explore", "--config", str(config_file)])

        assert result.exit_code == 0
        assert mock_run.call_args.args[0] == str(sample_tree.resolve())


class TestProtectionCommands:
    def test_protect_and_unprotect(self, sample_tree, tmp_path):
        config_file = tmp_path / "config.json"
        target = sample_tree / "c"

        result = runner.invoke(app, ["protect", str(target), "--config", str(config_file)])
        assert result.exit_code == 0
        assert load_config(config_file).protected_paths == [str(target.resolve())]

        result = runner.invoke(app, ["protect", str(target), "--config", str(config_file)])
        assert result.exit_code == 0
        assert "Already protected" in result.stdout
        assert len(load_config(config_file).protected_paths) == 1

        result = runner.invoke(app, ["unprotect", str(target), "--config", str(config_file)])
        assert result.exit_code == 0
        assert load_config(config_file).protected_paths == []

    def test_unprotect_unknown_path(self, tmp_path):
        config_file = tmp_path / "config.json"
        result = runner.invoke(app, ["unprotect", str(tmp_path), "--config", str(config_file)])
        assert result.exit_code == 1
        assert "Not protected" in result.stdout

    def test_protect_missing_path(self, tmp_path):
        config_file = tmp_path / "config.json"
        result = runner.invoke(app, ["protect", str(tmp_path / "missing"), "--config", str(config_file)])
        assert result.exit_code == 1
        assert not config_file.exists()

    def test_protections_listing(self, tmp_path):
        config_file = tmp_path / "config.json"
        config_file.write_text(json.dumps({"protected_paths": ["/srv/keep"], "protected_patterns": ["*.vmdk"]}))
        result = runner.invoke(app, ["protections", "--config", str(config_file)])
        assert result.exit_code == 0
        assert "/srv/keep" in result.stdout
        assert "*.vmdk" in result.stdout

    def test_protections_empty(self, tmp_path):
        result = runner.invoke(app, ["protections", "--config", str(tmp_path / "none.json")])
        assert result.exit_code == 0
        assert "No protected paths" in result.stdout
