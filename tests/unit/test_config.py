"""
Copyright (c) 2025 Eric C. Mumford (@heymumford)
This file is part of TMSYNC, licensed under the MIT License.
See LICENSE file for details.
"""

import pytest
from pydantic import ValidationError

from tmsync.core.config import (
    DEFAULT_FETCH_ATTEMPTS,
    DEFAULT_PARTITION_SIZE,
    AppConfig,
    DatabaseConfig,
    LoggingConfig,
    SourceConfig,
    SyncConfig,
    get_app_config,
    init_app_config,
)
from tmsync.secrets import EnvSecretsProvider, StaticSecretsProvider


@pytest.mark.unit
class TestSyncConfig:
    def test_defaults(self):
        config = SyncConfig()

        assert config.partition_size == DEFAULT_PARTITION_SIZE == 500
        assert config.max_fetch_attempts == DEFAULT_FETCH_ATTEMPTS == 5
        assert config.worker_count == 4
        assert config.scale_test_case_folders == []
        assert config.scale_test_run_folders == []
        assert config.jira_issue_types == ["Bug", "Story"]

    @pytest.mark.parametrize("field", ["partition_size", "max_fetch_attempts", "worker_count"])
    def test_rejects_non_positive_values(self, field):
        with pytest.raises(ValidationError):
            SyncConfig(**{field: 0})

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("TMSYNC_PARTITION_SIZE", "250")
        monkeypatch.setenv("TMSYNC_WORKER_COUNT", "8")
        monkeypatch.setenv("TMSYNC_SCALE_TEST_CASE_FOLDERS", "Regression, Smoke/ ,")
        monkeypatch.setenv("TMSYNC_JIRA_ISSUE_TYPES", "Bug")
        monkeypatch.delenv("TMSYNC_SCALE_TEST_RUN_FOLDERS", raising=False)

        config = SyncConfig.from_env()

        assert config.partition_size == 250
        assert config.worker_count == 8
        assert config.scale_test_case_folders == ["Regression", "Smoke/"]
        assert config.scale_test_run_folders == []
        assert config.jira_issue_types == ["Bug"]

    def test_from_env_overrides_win(self, monkeypatch):
        monkeypatch.setenv("TMSYNC_PARTITION_SIZE", "250")

        assert SyncConfig.from_env(partition_size=10).partition_size == 10


@pytest.mark.unit
class TestSourceConfig:
    def test_base_url_is_normalized(self):
        config = SourceConfig(name="jira", base_url="jira.example.com/")

        assert config.base_url == "https://jira.example.com"

    def test_base_url_is_required(self):
        with pytest.raises(ValidationError):
            SourceConfig(name="jira", base_url="")

    def test_from_env_reads_token_from_secrets(self, monkeypatch):
        monkeypatch.setenv("TMSYNC_SCALE_BASE_URL", "http://scale.example.com")
        monkeypatch.setenv("TMSYNC_SCALE_USERNAME", "sync-bot")
        monkeypatch.setenv("TMSYNC_SCALE_PAGE_SIZE", "50")
        secrets = StaticSecretsProvider({"scale_api_token": "s3cret"})

        config = SourceConfig.from_env("scale", secrets=secrets)

        assert config.name == "scale"
        assert config.base_url == "http://scale.example.com"
        assert config.username == "sync-bot"
        assert config.api_token == "s3cret"
        assert config.page_size == 50

    def test_from_env_with_environment_secrets(self, monkeypatch):
        monkeypatch.setenv("TMSYNC_ZAPI_BASE_URL", "https://zapi.example.com")
        monkeypatch.setenv("TMSYNC_ZAPI_API_TOKEN", "env-token")

        config = SourceConfig.from_env("zapi", secrets=EnvSecretsProvider())

        assert config.api_token == "env-token"


@pytest.mark.unit
class TestDatabaseConfig:
    def test_sqlite_connection_string(self, tmp_path):
        config = DatabaseConfig(db_type="sqlite", db_path=str(tmp_path / "sub" / "store.db"))

        assert config.get_connection_string() == f"sqlite:///{tmp_path / 'sub' / 'store.db'}"
        assert (tmp_path / "sub").is_dir()

    def test_sqlite_gets_a_default_path(self):
        assert DatabaseConfig(db_type="SQLite").db_path.endswith("tmsync_data.db")

    def test_postgresql_connection_string(self):
        config = DatabaseConfig(
            db_type="postgresql", host="db", username="sync", password="pw", database="canonical"
        )

        assert config.get_connection_string() == "postgresql+psycopg://sync:pw@db:5432/canonical"

    def test_postgresql_requires_host_user_and_database(self):
        with pytest.raises(ValidationError):
            DatabaseConfig(db_type="postgresql", host="db")

    def test_unsupported_type(self):
        with pytest.raises(ValidationError):
            DatabaseConfig(db_type="oracle")


@pytest.mark.unit
class TestAppConfig:
    def test_invalid_log_level_falls_back_to_info(self):
        assert LoggingConfig(level="verbose").level == "INFO"
        assert LoggingConfig(level="debug").get_log_level_int() == 10

    def test_init_app_config_replaces_the_global_config(self):
        config = AppConfig(debug=True, sync=SyncConfig(partition_size=42))

        assert init_app_config(config) is config
        assert get_app_config().sync.partition_size == 42
        init_app_config(AppConfig())
