"""Tests for Settings and the immutable SyncConfig."""
import dataclasses

import pytest

from jirasync.config import Settings, SyncConfig


class TestSyncConfigDefaults:
    def test_retry_constants(self):
        config = SyncConfig()
        assert config.max_attempts == 3
        assert config.backoff_base_delay == 30.0
        assert config.backoff_max_delay == 120.0
        assert config.backoff_multiplier == 2.0
        assert config.default_retry_after == 60.0

    def test_batch_defaults(self):
        config = SyncConfig()
        assert config.batch_size == 100
        assert config.memory_efficient_processing is True
        assert config.progress_logging_interval == 10
        assert config.memory_release_interval == 5

    def test_is_frozen(self):
        config = SyncConfig()
        with pytest.raises(dataclasses.FrozenInstanceError):
            config.batch_size = 5


class TestSyncConfigValidation:
    @pytest.mark.parametrize(
        "field", ["batch_size", "page_size", "max_attempts", "progress_logging_interval"]
    )
    def test_rejects_non_positive_counts(self, field):
        with pytest.raises(ValueError, match=field):
            SyncConfig(**{field: 0})

    def test_rejects_negative_delay(self):
        with pytest.raises(ValueError, match="backoff_base_delay"):
            SyncConfig(backoff_base_delay=-1.0)

    def test_rejects_shrinking_multiplier(self):
        with pytest.raises(ValueError):
            SyncConfig(backoff_multiplier=0.5)


class TestFromSettings:
    def test_copies_engine_options(self, monkeypatch):
        monkeypatch.setenv("SYNC_BATCH_SIZE", "25")
        monkeypatch.setenv("SYNC_PAGE_SIZE", "20")
        monkeypatch.setenv("SYNC_MAX_ATTEMPTS", "5")
        monkeypatch.setenv("SYNC_MEMORY_EFFICIENT_PROCESSING", "false")

        config = SyncConfig.from_settings(Settings(_env_file=None))

        assert config.batch_size == 25
        assert config.page_size == 20
        assert config.max_attempts == 5
        assert config.memory_efficient_processing is False

    def test_settings_defaults(self, monkeypatch):
        for name in ("JIRA_BASE_URL", "SYNC_CRON", "DATABASE_URL", "TELEGRAM_ALERT_CHAT_ID"):
            monkeypatch.delenv(name, raising=False)
        settings = Settings(_env_file=None)
        assert settings.jira_base_url == ""
        assert settings.sync_cron == "0 * * * *"
        assert settings.database_url.startswith("sqlite")
        assert settings.telegram_alert_chat_id is None

    def test_reads_dotenv_by_default(self):
        assert Settings.model_config["env_file"] == ".env"
        assert Settings.model_config["env_file_encoding"] == "utf-8"

    def test_env_file_values(self, tmp_path, monkeypatch):
        monkeypatch.delenv("SYNC_CRON", raising=False)
        env_file = tmp_path / ".env"
        env_file.write_text('SYNC_CRON="*/15 * * * *"\nSYNC_PAGE_SIZE=25\n', encoding="utf-8")

        settings = Settings(_env_file=env_file)

        assert settings.sync_cron == "*/15 * * * *"
        assert settings.sync_page_size == 25
