"""
Copyright (c) 2025 Eric C. Mumford (@heymumford)
This file is part of TMSYNC, licensed under the MIT License.
See LICENSE file for details.
"""

"""Tests for the command line interface."""

from unittest.mock import patch

import pytest
from typer.testing import CliRunner

from tmsync.cli import app
from tmsync.core.db_manager import PartitionCommitError
from tmsync.core.logging import ErrorTracker
from tmsync.sync_orchestrator import SyncReport


@pytest.mark.integration
@pytest.mark.cli
class TestCLI:
    @pytest.fixture
    def runner(self):
        """Create a CLI runner for testing."""
        return CliRunner()

    @pytest.fixture
    def db_path(self, tmp_path):
        return tmp_path / "cli.db"

    @pytest.fixture
    def zapi_env(self, monkeypatch):
        monkeypatch.setenv("TMSYNC_ZAPI_BASE_URL", "https://jira.example.com")
        monkeypatch.setenv("TMSYNC_ZAPI_API_TOKEN", "secret")

    def test_init_db_and_stats(self, runner, db_path):
        result = runner.invoke(app, ["init-db", "--db-path", str(db_path)])
        assert result.exit_code == 0, result.output
        assert "initialized successfully" in result.output
        assert db_path.exists()

        result = runner.invoke(app, ["stats", "--db-path", str(db_path)])
        assert result.exit_code == 0, result.output
        assert "execution_status" in result.output

    def test_missing_source_configuration(self, runner, db_path, monkeypatch):
        monkeypatch.delenv("TMSYNC_ZAPI_BASE_URL", raising=False)

        result = runner.invoke(app, ["sync", "zapi", "Payments", "--db-path", str(db_path)])

        assert result.exit_code == 1
        assert "TMSYNC_ZAPI_BASE_URL" in result.output

    @patch("tmsync.cli.ZapiSynchronizer")
    def test_successful_sync(self, mock_synchronizer, runner, db_path, zapi_env):
        report = SyncReport(source="zapi", project="Payments", fetched=4, merged=3)
        mock_synchronizer.return_value.error_tracker = ErrorTracker()
        mock_synchronizer.return_value.synchronize.return_value = report

        result = runner.invoke(
            app, ["sync", "zapi", "Payments", "--db-path", str(db_path), "--workers", "2"]
        )

        assert result.exit_code == 0, result.output
        assert "OK" in result.output
        assert "error(s)" not in result.output
        mock_synchronizer.return_value.synchronize.assert_called_once_with("Payments")
        config = mock_synchronizer.call_args.args[2]
        assert config.worker_count == 2

    @patch("tmsync.cli.ZapiSynchronizer")
    def test_failed_sync_exits_with_error(self, mock_synchronizer, runner, db_path, zapi_env):
        error = PartitionCommitError(1, "901", [0], ["901", "902"])
        report = SyncReport(source="zapi", project="Payments")
        report.record_failure("Payments version 1.0", error)
        tracker = ErrorTracker()
        tracker.add_error(error, context={"unit": "Payments version 1.0"}, log=False)
        mock_synchronizer.return_value.synchronize.return_value = report
        mock_synchronizer.return_value.error_tracker = tracker

        result = runner.invoke(app, ["sync", "zapi", "Payments", "--db-path", str(db_path)])

        assert result.exit_code == 1
        assert "Failed" in result.output
        assert "partition 1 failed" in result.output
        assert "1 error(s) during synchronization: PartitionCommitError x1" in result.output

    @patch("tmsync.cli.JiraSynchronizer")
    def test_jira_issue_types(self, mock_synchronizer, runner, db_path, monkeypatch):
        monkeypatch.setenv("TMSYNC_JIRA_BASE_URL", "https://jira.example.com")
        mock_synchronizer.return_value.synchronize.return_value = SyncReport(
            source="jira", project="PAY"
        )
        mock_synchronizer.return_value.error_tracker = ErrorTracker()

        result = runner.invoke(
            app,
            ["sync", "jira", "PAY", "--issue-type", "Epic", "--db-path", str(db_path)],
        )

        assert result.exit_code == 0, result.output
        config = mock_synchronizer.call_args.args[2]
        assert config.jira_issue_types == ["Epic"]
