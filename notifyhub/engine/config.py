"""
notifyhub Configuration — Load and validate notifyhub.yaml + environment overrides.

Resolution order (lowest → highest):
    1. Model defaults (match the legacy Node service defaults)
    2. notifyhub.yaml (auto-discovered from CWD upwards, or an explicit path)
    3. Environment variables (see ENV_OVERRIDES)

Usage:
    from notifyhub.engine.config import load_settings, get_settings
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator

from notifyhub.engine.errors import RelayConfigError

CONFIG_FILENAME = "notifyhub.yaml"


# ---------------------------------------------------------------------------
# Pydantic models for notifyhub.yaml
# ---------------------------------------------------------------------------

class ServerConfig(BaseModel):
    host: str = "0.0.0.0"
    port: int = 3000


class KafkaConfig(BaseModel):
    enabled: bool = True
    brokers: List[str] = Field(default_factory=lambda: ["kafka:29092"])
    client_id: str = "notification-service"
    consumer_group_id: str = "notification-consumer-group"
    auto_offset_reset: str = "latest"

    @field_validator("brokers", mode="before")
    @classmethod
    def split_brokers(cls, v: Any) -> Any:
        if isinstance(v, str):
            return [b.strip() for b in v.split(",") if b.strip()]
        return v

    @field_validator("auto_offset_reset")
    @classmethod
    def validate_offset_reset(cls, v: str) -> str:
        if v not in ("latest", "earliest"):
            raise ValueError(f"auto_offset_reset must be latest/earliest, got '{v}'")
        return v


class LoggingConfig(BaseModel):
    level: str = "INFO"
    format: str = "text"
    directory: str = ".notifyhub/logs"
    event_log_enabled: bool = False

    @field_validator("level", mode="before")
    @classmethod
    def normalize_level(cls, v: Any) -> Any:
        return v.upper() if isinstance(v, str) else v

    @field_validator("format")
    @classmethod
    def validate_format(cls, v: str) -> str:
        if v not in ("text", "json"):
            raise ValueError(f"logging format must be text/json, got '{v}'")
        return v


class CacheConfig(BaseModel):
    backend: str = "memory"
    redis_url: str = "redis://localhost:6379/0"
    redis_db: int = 0
    prefix: str = "notifyhub:"

    @field_validator("backend")
    @classmethod
    def validate_backend(cls, v: str) -> str:
        if v not in ("memory", "redis"):
            raise ValueError(f"cache backend must be memory/redis, got '{v}'")
        return v


class EmailConfig(BaseModel):
    host: str = "smtp.gmail.com"
    port: int = 587
    use_tls: bool = True
    user: str = ""
    password: str = ""
    from_address: str = "HR Management System <noreply@hrm.com>"
    task_created_recipient: str = "hr-notifications@hrm.com"
    timeout: int = 30


class ZaloConfig(BaseModel):
    app_id: str = ""
    app_secret: str = ""
    callback_url: str = "http://localhost:3000/auth/zalo/callback"
    group_id: str = ""
    api_url: str = "https://openapi.zalo.me"
    oauth_url: str = "https://oauth.zaloapp.com"
    webhook_verify_token: str = "your-verify-token"
    webhook_verify_signature: bool = False
    auto_reply_enabled: bool = False
    request_timeout: float = 10.0


class Settings(BaseModel):
    """Root model for notifyhub.yaml."""
    name: str = "notifyhub"
    environment: str = "dev"
    secret_key: str = "notifyhub-dev-key-change-in-production"

    server: ServerConfig = ServerConfig()
    kafka: KafkaConfig = KafkaConfig()
    logging: LoggingConfig = LoggingConfig()
    cache: CacheConfig = CacheConfig()
    email: EmailConfig = EmailConfig()
    zalo: ZaloConfig = ZaloConfig()

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        if v not in ("dev", "staging", "prod"):
            raise ValueError(f"environment must be dev/staging/prod, got '{v}'")
        return v

    def masked(self) -> Dict[str, Any]:
        """Settings as a dict with secrets hidden (for check-config / logs)."""
        data = self.model_dump()
        data["secret_key"] = _mask(self.secret_key)
        data["email"]["password"] = _mask(self.email.password)
        data["zalo"]["app_secret"] = _mask(self.zalo.app_secret)
        data["zalo"]["webhook_verify_token"] = _mask(self.zalo.webhook_verify_token)
        return data


def _mask(value: str) -> str:
    if not value:
        return ""
    return f"{value[:2]}***"


# ---------------------------------------------------------------------------
# Environment overrides
# ---------------------------------------------------------------------------

# ENV var → (section, field). Section None means a top-level Settings field.
ENV_OVERRIDES: Dict[str, tuple] = {
    "NOTIFYHUB_ENV": (None, "environment"),
    "NOTIFYHUB_SECRET_KEY": (None, "secret_key"),
    "HOST": ("server", "host"),
    "PORT": ("server", "port"),
    "KAFKA_ENABLED": ("kafka", "enabled"),
    "KAFKA_BROKERS": ("kafka", "brokers"),
    "KAFKA_CLIENT_ID": ("kafka", "client_id"),
    "KAFKA_CONSUMER_GROUP_ID": ("kafka", "consumer_group_id"),
    "LOG_LEVEL": ("logging", "level"),
    "LOG_FORMAT": ("logging", "format"),
    "LOG_DIR": ("logging", "directory"),
    "EVENT_LOG_ENABLED": ("logging", "event_log_enabled"),
    "CACHE_BACKEND": ("cache", "backend"),
    "REDIS_URL": ("cache", "redis_url"),
    "SMTP_HOST": ("email", "host"),
    "SMTP_PORT": ("email", "port"),
    "EMAIL_USER": ("email", "user"),
    "EMAIL_PASSWORD": ("email", "password"),
    "EMAIL_FROM": ("email", "from_address"),
    "TASK_CREATED_RECIPIENT": ("email", "task_created_recipient"),
    "ZALO_APP_ID": ("zalo", "app_id"),
    "ZALO_APP_SECRET": ("zalo", "app_secret"),
    "ZALO_CALLBACK_URL": ("zalo", "callback_url"),
    "ZALO_GROUP_ID": ("zalo", "group_id"),
    "ZALO_API_URL": ("zalo", "api_url"),
    "ZALO_OAUTH_URL": ("zalo", "oauth_url"),
    "ZALO_VERIFY_TOKEN": ("zalo", "webhook_verify_token"),
    "ZALO_WEBHOOK_VERIFY_SIGNATURE": ("zalo", "webhook_verify_signature"),
    "ZALO_AUTO_REPLY": ("zalo", "auto_reply_enabled"),
}


def _apply_env_overrides(raw: Dict[str, Any], environ: Mapping[str, str]) -> Dict[str, Any]:
    """Overlay environment variables onto the raw (yaml-derived) config dict."""
    for env_name, (section, field) in ENV_OVERRIDES.items():
        value = environ.get(env_name)
        if value is None or value == "":
            continue
        if section is None:
            raw[field] = value
        else:
            raw.setdefault(section, {})
            if not isinstance(raw[section], dict):
                raise RelayConfigError(
                    f"Config section '{section}' must be a mapping",
                    section=section,
                )
            raw[section][field] = value
    return raw


# ---------------------------------------------------------------------------
# Config Loading Functions
# ---------------------------------------------------------------------------

_settings: Optional[Settings] = None


def _find_config_file() -> Optional[Path]:
    """Find notifyhub.yaml by walking up from the current directory."""
    current = Path.cwd()
    for parent in [current, *current.parents]:
        candidate = parent / CONFIG_FILENAME
        if candidate.exists():
            return candidate
    return None


def load_settings(
    config_path: Optional[str] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> Settings:
    """
    Load and validate settings.

    Args:
        config_path: Explicit path to notifyhub.yaml. If None, auto-discovers;
            a missing file simply means defaults + environment.
        environ: Environment mapping (defaults to os.environ).

    Returns:
        Validated Settings instance.

    Raises:
        RelayConfigError: unreadable YAML or invalid values.
    """
    global _settings

    if environ is None:
        environ = os.environ

    if config_path is not None:
        path: Optional[Path] = Path(config_path)
        if not path.exists():
            raise RelayConfigError(f"Config file not found: {config_path}", path=config_path)
    else:
        path = _find_config_file()

    raw: Dict[str, Any] = {}
    if path is not None:
        try:
            with open(path, "r", encoding="utf-8") as f:
                raw = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise RelayConfigError(f"Invalid YAML in {path}: {e}", path=str(path))
        if not isinstance(raw, dict):
            raise RelayConfigError(f"{path} must contain a mapping", path=str(path))

    raw = _apply_env_overrides(raw, environ)

    try:
        _settings = Settings(**raw)
    except ValidationError as e:
        raise RelayConfigError(f"Invalid configuration: {e}", errors=e.errors())
    return _settings


def get_settings() -> Settings:
    """Get the currently loaded settings, loading if necessary."""
    global _settings
    if _settings is None:
        _settings = load_settings()
    return _settings
