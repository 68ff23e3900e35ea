"""
Application configuration via pydantic-settings.

Every section is a BaseSettings subclass with its own env prefix
(``AUTH_SECRET``, ``STORAGE_PASSWORD``, ...). Values resolve in this order:

1. explicit constructor kwargs
2. environment variables
3. ``.env`` file
4. the section of the YAML file named by ``CONFIG_PATH`` (default ``config.yaml``)

The YAML text has ``$VAR`` / ``${VAR}`` references expanded before it is
parsed, so the shipped file can point secrets at the environment without
ever containing them.
"""

from __future__ import annotations

import os
import re
from functools import lru_cache
from typing import Any, ClassVar, Optional

import yaml
from pydantic import field_validator, model_validator
from pydantic.fields import FieldInfo
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)

DEFAULT_CONFIG_PATH = "config.yaml"

_ENV_REF = re.compile(r"\$\{(\w+)\}|\$(\w+)")


def expand_env(text: str) -> str:
    """Replace $VAR / ${VAR} with the environment value; unset variables become empty."""
    return _ENV_REF.sub(lambda m: os.environ.get(m.group(1) or m.group(2), ""), text)


@lru_cache(maxsize=8)
def _read_yaml(path: str) -> dict[str, Any]:
    if not os.path.exists(path):
        return {}
    with open(path, encoding="utf-8") as fh:
        raw = fh.read()
    data = yaml.safe_load(expand_env(raw)) or {}
    if not isinstance(data, dict):
        raise ValueError(f"config file {path!r} must contain a mapping at top level")
    return data


def load_yaml_config(path: Optional[str] = None) -> dict[str, Any]:
    """Return the parsed YAML config, or an empty dict when the file is absent."""
    return _read_yaml(path or os.getenv("CONFIG_PATH", DEFAULT_CONFIG_PATH))


class YamlSectionSource(PydanticBaseSettingsSource):
    """Settings source that feeds one top-level YAML section into a settings class."""

    def __init__(self, settings_cls: type[BaseSettings], section: str) -> None:
        super().__init__(settings_cls)
        self._data: dict[str, Any] = load_yaml_config().get(section) or {}

    def get_field_value(
        self, field: FieldInfo, field_name: str
    ) -> tuple[Any, str, bool]:
        return self._data.get(field_name), field_name, False

    def __call__(self) -> dict[str, Any]:
        return {
            name: value
            for name, value in self._data.items()
            if name in self.settings_cls.model_fields and value is not None
        }


class SectionSettings(BaseSettings):
    """Base for per-section settings; subclasses name their YAML section."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    yaml_section: ClassVar[str] = ""

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            YamlSectionSource(settings_cls, cls.yaml_section),
            file_secret_settings,
        )


class AppConfig(SectionSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore", env_prefix="APP_")
    yaml_section: ClassVar[str] = "app"

    name: str = "readmeow"
    version: str = "1.0.0"
    env: str = "development"
    cors_origins: list[str] = ["*"]
    # None disables the docs UI in production
    docs_url: Optional[str] = "/docs"
    init_db: bool = False


class ServerSettings(SectionSettings):
    model_config = SettingsConfigDict(
        env_file=".env", extra="ignore", env_prefix="SERVER_"
    )
    yaml_section: ClassVar[str] = "server"

    host: str = "0.0.0.0"
    port: int = 8080
    request_timeout_seconds: float = 10.0
    # token bucket per client IP
    rate_limit: float = 10.0
    burst: int = 20
    limiter_sweep_seconds: float = 60.0
    limiter_idle_seconds: float = 900.0


class AuthSettings(SectionSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore", env_prefix="AUTH_")
    yaml_section: ClassVar[str] = "auth"

    secret: str
    issuer: str = "readmeow"
    audience: str = "readmeow-users"
    token_ttl_seconds: int = 86400
    cookie_name: str = "jwt"
    cookie_secure: bool = False

    code_ttl_seconds: int = 600
    code_attempts: int = 3

    # argon2id cost parameters
    hash_time_cost: int = 3
    hash_memory_cost: int = 65536
    hash_parallelism: int = 4

    @field_validator("secret")
    @classmethod
    def _secret_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("auth secret must not be empty")
        return value


class StorageSettings(SectionSettings):
    model_config = SettingsConfigDict(
        env_file=".env", extra="ignore", env_prefix="STORAGE_"
    )
    yaml_section: ClassVar[str] = "storage"

    # a full SQLAlchemy URL overrides the discrete fields below
    url: Optional[str] = None
    host: str = "localhost"
    port: int = 5432
    user: str = "postgres"
    password: str = ""
    database: str = "readmeow"
    ssl_mode: str = "disable"
    pool_size: int = 10
    max_overflow: int = 5
    echo: bool = False

    @property
    def dsn(self) -> str:
        if self.url:
            return self.url
        auth = self.user if not self.password else f"{self.user}:{self.password}"
        return f"postgresql+asyncpg://{auth}@{self.host}:{self.port}/{self.database}"


class CacheSettings(SectionSettings):
    model_config = SettingsConfigDict(
        env_file=".env", extra="ignore", env_prefix="CACHE_"
    )
    yaml_section: ClassVar[str] = "cache"

    url: Optional[str] = None
    host: str = "localhost"
    port: int = 6379
    user: str = ""
    password: str = ""
    db: int = 0
    default_ttl_seconds: int = 86400
    popular_ttl_seconds: int = 172800
    popular_threshold: int = 100

    @property
    def dsn(self) -> str:
        if self.url:
            return self.url
        auth = ""
        if self.password:
            auth = f"{self.user}:{self.password}@"
        return f"redis://{auth}{self.host}:{self.port}/{self.db}"


class SearchSettings(SectionSettings):
    model_config = SettingsConfigDict(
        env_file=".env", extra="ignore", env_prefix="SEARCH_"
    )
    yaml_section: ClassVar[str] = "search"

    host: str = "http://localhost:9200"
    user: str = ""
    password: str = ""
    timeout_seconds: int = 10
    bulk_page_size: int = 500
    templates_index: str = "templates"
    widgets_index: str = "widgets"


class EmailSettings(SectionSettings):
    model_config = SettingsConfigDict(
        env_file=".env", extra="ignore", env_prefix="EMAIL_"
    )
    yaml_section: ClassVar[str] = "email"

    api_url: str = "https://api.zeptomail.eu/v1.1/email"
    api_token: str = ""
    from_email: str = "noreply@readmeow.dev"
    from_name: str = "readmeow"
    timeout_seconds: float = 10.0


class SchedulerSettings(SectionSettings):
    model_config = SettingsConfigDict(
        env_file=".env", extra="ignore", env_prefix="SCHEDULER_"
    )
    yaml_section: ClassVar[str] = "scheduler"

    enabled: bool = True
    clean_codes_interval_seconds: float = 3600.0
    clean_codes_timeout_seconds: float = 30.0
    widget_bulk_interval_seconds: float = 900.0
    widget_bulk_timeout_seconds: float = 120.0
    template_bulk_interval_seconds: float = 900.0
    template_bulk_timeout_seconds: float = 120.0


class CloudStorageSettings(SectionSettings):
    model_config = SettingsConfigDict(
        env_file=".env", extra="ignore", env_prefix="CLOUDSTORAGE_"
    )
    yaml_section: ClassVar[str] = "cloudstorage"

    cloud_name: str = ""
    api_key: str = ""
    api_secret: str = ""
    timeout_seconds: float = 15.0


class LoggingSettings(SectionSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore", env_prefix="LOG_")
    yaml_section: ClassVar[str] = "logging"

    level: str = "INFO"
    format: str = "console"  # "json" in production


class SentrySettings(SectionSettings):
    model_config = SettingsConfigDict(
        env_file=".env", extra="ignore", env_prefix="SENTRY_"
    )
    yaml_section: ClassVar[str] = "sentry"

    dsn: str = ""
    send_pii: bool = False
    traces_sample_rate: float = 0.1


class AppSettings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # Sub-configs (composed via model_validator below)
    app: Optional[AppConfig] = None
    server: Optional[ServerSettings] = None
    auth: Optional[AuthSettings] = None
    storage: Optional[StorageSettings] = None
    cache: Optional[CacheSettings] = None
    search: Optional[SearchSettings] = None
    email: Optional[EmailSettings] = None
    scheduler: Optional[SchedulerSettings] = None
    cloudstorage: Optional[CloudStorageSettings] = None
    logging: Optional[LoggingSettings] = None
    sentry: Optional[SentrySettings] = None

    @model_validator(mode="after")
    def _populate_sub_configs(self) -> "AppSettings":
        if self.app is None:
            self.app = AppConfig()
        if self.server is None:
            self.server = ServerSettings()
        if self.auth is None:
            self.auth = AuthSettings()
        if self.storage is None:
            self.storage = StorageSettings()
        if self.cache is None:
            self.cache = CacheSettings()
        if self.search is None:
            self.search = SearchSettings()
        if self.email is None:
            self.email = EmailSettings()
        if self.scheduler is None:
            self.scheduler = SchedulerSettings()
        if self.cloudstorage is None:
            self.cloudstorage = CloudStorageSettings()
        if self.logging is None:
            self.logging = LoggingSettings()
        if self.sentry is None:
            self.sentry = SentrySettings()
        return self

    @property
    def is_production(self) -> bool:
        return self.app.env == "production"
