import json
import os
from functools import lru_cache
from pathlib import Path
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, HttpUrl, ValidationError, field_validator


class NightscoutConfig(BaseModel):
    enabled: bool = False
    base_url: Optional[HttpUrl] = None
    api_secret: Optional[str] = Field(default=None)
    token: Optional[str] = Field(default=None)
    timeout_seconds: int = Field(default=30, ge=1)


class ReaderConfig(BaseModel):
    target_package: str = Field(default="com.camdiab.fx.camaps")
    reading_interval_minutes: int = Field(default=5, ge=1, le=15)
    age_check_interval_minutes: int = Field(default=360, ge=15)
    age_tolerance_hours: float = Field(default=1.5, gt=0)
    min_reading_interval_seconds: int = Field(default=30, ge=0)

    # Settling delays after a simulated click; the host UI animates dialogs in.
    dialog_settle_seconds: float = Field(default=1.5, ge=0)
    menu_settle_seconds: float = Field(default=1.0, ge=0)
    graph_settle_seconds: float = Field(default=3.0, ge=0)
    graph_render_seconds: float = Field(default=1.0, ge=0)

    root_attempts: int = Field(default=3, ge=1, le=10)
    root_retry_seconds: float = Field(default=2.0, ge=0)

    graph_exploration_enabled: bool = False
    timezone: str = Field(default="Europe/Berlin")


class DisplayConfig(BaseModel):
    unit: Literal["mg/dL", "mmol/L"] = "mg/dL"
    low_threshold: int = Field(default=70, ge=40, le=400)
    high_threshold: int = Field(default=180, ge=40, le=400)


class ServerConfig(BaseModel):
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=8000, ge=1, le=65535)


class DataConfig(BaseModel):
    data_dir: Path = Field(default=Path("backend/data"))
    database_url: Optional[str] = None
    retention_days: int = Field(default=90, ge=1)

    @field_validator("data_dir", mode="before")
    def _expand_path(cls, v: str | Path) -> Path:
        return Path(v).expanduser()

    def effective_database_url(self) -> str:
        if self.database_url:
            return self.database_url
        return f"sqlite+aiosqlite:///{self.data_dir / 'readings.sqlite3'}"


class Settings(BaseModel):
    nightscout: NightscoutConfig = Field(default_factory=NightscoutConfig)
    reader: ReaderConfig = Field(default_factory=ReaderConfig)
    display: DisplayConfig = Field(default_factory=DisplayConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)
    data: DataConfig = Field(default_factory=DataConfig)

    model_config = ConfigDict(arbitrary_types_allowed=True)


DEFAULT_CONFIG_PATH = Path(os.environ.get("CONFIG_PATH", "config/config.json"))

_SECTIONS = ("nightscout", "reader", "display", "server", "data")


def _load_file_config(path: Path) -> dict[str, Any]:
    if not path.exists():
        return {}
    try:
        with path.open("r", encoding="utf-8") as fh:
            return json.load(fh)
    except json.JSONDecodeError as exc:
        raise RuntimeError(f"Invalid JSON configuration at {path}") from exc


def _env_flag(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


def _load_env() -> dict[str, Any]:
    env_config: dict[str, Any] = {}

    base_url = os.environ.get("NIGHTSCOUT_BASE_URL") or os.environ.get("NIGHTSCOUT_URL")
    if base_url:
        env_config.setdefault("nightscout", {})["base_url"] = base_url
        env_config["nightscout"].setdefault("enabled", True)

    enabled = os.environ.get("NIGHTSCOUT_ENABLED")
    if enabled:
        env_config.setdefault("nightscout", {})["enabled"] = _env_flag(enabled)

    api_secret = os.environ.get("NIGHTSCOUT_API_SECRET")
    if api_secret:
        env_config.setdefault("nightscout", {})["api_secret"] = api_secret

    token = os.environ.get("NIGHTSCOUT_TOKEN")
    if token:
        env_config.setdefault("nightscout", {})["token"] = token

    timeout = os.environ.get("NIGHTSCOUT_TIMEOUT_SECONDS")
    if timeout:
        env_config.setdefault("nightscout", {})["timeout_seconds"] = int(timeout)

    target_package = os.environ.get("TARGET_APP_PACKAGE")
    if target_package:
        env_config.setdefault("reader", {})["target_package"] = target_package

    interval = os.environ.get("READING_INTERVAL_MINUTES")
    if interval:
        env_config.setdefault("reader", {})["reading_interval_minutes"] = int(interval)

    age_interval = os.environ.get("AGE_CHECK_INTERVAL_MINUTES")
    if age_interval:
        env_config.setdefault("reader", {})["age_check_interval_minutes"] = int(age_interval)

    graph = os.environ.get("GRAPH_EXPLORATION_ENABLED")
    if graph:
        env_config.setdefault("reader", {})["graph_exploration_enabled"] = _env_flag(graph)

    tz_name = os.environ.get("READER_TIMEZONE")
    if tz_name:
        env_config.setdefault("reader", {})["timezone"] = tz_name

    unit = os.environ.get("GLUCOSE_UNIT")
    if unit:
        env_config.setdefault("display", {})["unit"] = unit

    host = os.environ.get("SERVER_HOST")
    if host:
        env_config.setdefault("server", {})["host"] = host

    port = os.environ.get("SERVER_PORT")
    if port:
        env_config.setdefault("server", {})["port"] = int(port)

    data_dir = os.environ.get("DATA_DIR")
    if data_dir:
        env_config.setdefault("data", {})["data_dir"] = data_dir

    database_url = os.environ.get("DATABASE_URL")
    if database_url:
        env_config.setdefault("data", {})["database_url"] = database_url

    return env_config


def merge_settings(env_config: dict[str, Any], file_config: dict[str, Any]) -> dict[str, Any]:
    merged: dict[str, Any] = {}
    for section in _SECTIONS:
        merged[section] = {**file_config.get(section, {}), **env_config.get(section, {})}
    return merged


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    env_config = _load_env()
    file_config = _load_file_config(DEFAULT_CONFIG_PATH)
    merged = merge_settings(env_config=env_config, file_config=file_config)
    try:
        return Settings.model_validate(merged)
    except ValidationError as exc:  # pragma: no cover
        raise RuntimeError(f"Configuration error: {exc}") from exc


__all__ = ["Settings", "get_settings", "merge_settings"]
