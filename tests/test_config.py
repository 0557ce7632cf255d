"""Unit tests for notifyhub.engine.config — Settings models, YAML loading, env overrides."""

import pytest

from notifyhub.engine.config import (
    KafkaConfig,
    LoggingConfig,
    Settings,
    get_settings,
    load_settings,
)
from notifyhub.engine.errors import RelayConfigError


class TestSettingsDefaults:
    def test_defaults(self):
        s = Settings()
        assert s.server.port == 3000
        assert s.kafka.enabled is True
        assert s.kafka.brokers == ["kafka:29092"]
        assert s.kafka.client_id == "notification-service"
        assert s.kafka.consumer_group_id == "notification-consumer-group"
        assert s.cache.backend == "memory"
        assert s.email.host == "smtp.gmail.com"
        assert s.email.port == 587
        assert s.email.task_created_recipient == "hr-notifications@hrm.com"
        assert s.zalo.api_url == "https://openapi.zalo.me"
        assert s.zalo.oauth_url == "https://oauth.zaloapp.com"
        assert s.zalo.webhook_verify_signature is False

    def test_invalid_environment(self):
        with pytest.raises(ValueError):
            Settings(environment="qa")

    def test_brokers_from_comma_string(self):
        cfg = KafkaConfig(brokers="a:9092, b:9092,")
        assert cfg.brokers == ["a:9092", "b:9092"]

    def test_invalid_offset_reset(self):
        with pytest.raises(ValueError):
            KafkaConfig(auto_offset_reset="middle")

    def test_log_level_normalized(self):
        assert LoggingConfig(level="debug").level == "DEBUG"

    def test_invalid_log_format(self):
        with pytest.raises(ValueError):
            LoggingConfig(format="xml")

    def test_masked_hides_secrets(self):
        s = Settings(
            secret_key="supersecret",
            email={"password": "mailpass"},
            zalo={"app_secret": "zalosecret"},
        )
        data = s.masked()
        assert data["secret_key"] == "su***"
        assert data["email"]["password"] == "ma***"
        assert data["zalo"]["app_secret"] == "za***"
        assert "zalosecret" not in str(data)

    def test_masked_empty_secret_stays_empty(self):
        assert Settings().masked()["email"]["password"] == ""


class TestLoadSettings:
    def test_load_from_yaml(self, tmp_path):
        path = tmp_path / "notifyhub.yaml"
        path.write_text(
            "environment: staging\n"
            "server:\n"
            "  port: 8080\n"
            "kafka:\n"
            "  brokers: [k1:9092, k2:9092]\n"
            "zalo:\n"
            "  group_id: g-1\n",
            encoding="utf-8",
        )
        s = load_settings(str(path), environ={})
        assert s.environment == "staging"
        assert s.server.port == 8080
        assert s.kafka.brokers == ["k1:9092", "k2:9092"]
        assert s.zalo.group_id == "g-1"

    def test_env_overrides_yaml(self, tmp_path):
        path = tmp_path / "notifyhub.yaml"
        path.write_text("server:\n  port: 8080\n", encoding="utf-8")
        s = load_settings(
            str(path),
            environ={
                "PORT": "9000",
                "KAFKA_BROKERS": "x:1,y:2",
                "KAFKA_ENABLED": "false",
                "ZALO_APP_ID": "app-42",
                "NOTIFYHUB_SECRET_KEY": "from-env",
            },
        )
        assert s.server.port == 9000
        assert s.kafka.brokers == ["x:1", "y:2"]
        assert s.kafka.enabled is False
        assert s.zalo.app_id == "app-42"
        assert s.secret_key == "from-env"

    def test_empty_env_value_ignored(self, tmp_path):
        path = tmp_path / "notifyhub.yaml"
        path.write_text("server:\n  port: 8080\n", encoding="utf-8")
        s = load_settings(str(path), environ={"PORT": ""})
        assert s.server.port == 8080

    def test_missing_explicit_file(self, tmp_path):
        with pytest.raises(RelayConfigError, match="not found"):
            load_settings(str(tmp_path / "nope.yaml"), environ={})

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "notifyhub.yaml"
        path.write_text("server: [unclosed\n", encoding="utf-8")
        with pytest.raises(RelayConfigError, match="Invalid YAML"):
            load_settings(str(path), environ={})

    def test_non_mapping_yaml(self, tmp_path):
        path = tmp_path / "notifyhub.yaml"
        path.write_text("- just\n- a list\n", encoding="utf-8")
        with pytest.raises(RelayConfigError, match="mapping"):
            load_settings(str(path), environ={})

    def test_invalid_values_raise_config_error(self, tmp_path):
        path = tmp_path / "notifyhub.yaml"
        path.write_text("cache:\n  backend: memcached\n", encoding="utf-8")
        with pytest.raises(RelayConfigError, match="Invalid configuration"):
            load_settings(str(path), environ={})

    def test_auto_discovery_without_file(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        s = load_settings(environ={"ZALO_GROUP_ID": "g-env"})
        assert s.zalo.group_id == "g-env"

    def test_get_settings_caches(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        first = get_settings()
        assert get_settings() is first
