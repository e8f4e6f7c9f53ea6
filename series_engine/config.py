from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml

_LOGGER = logging.getLogger("series_engine.config")


def _canonical_config() -> Path:
    return Path(os.getenv("APP_CONFIG_PATH", "config/app.yml"))


def _read_config_payload(path: Optional[Path] = None, *, strict: bool) -> Dict[str, Any]:
    cfg_path = path or _canonical_config()
    if not cfg_path.exists():
        if strict:
            raise FileNotFoundError(f"Config {cfg_path} not found")
        _LOGGER.warning("Config file %s missing; returning defaults", cfg_path)
        return {}
    with cfg_path.open("r", encoding="utf-8") as handle:
        data = yaml.safe_load(handle) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Config {cfg_path} must be a mapping, got {type(data).__name__}")
    return data


def _read_env(name: str) -> Optional[str]:
    value = os.getenv(name)
    if value is None:
        return None
    text = value.strip()
    return text or None


def _str_tuple(raw: Any) -> tuple[str, ...]:
    if raw is None:
        return tuple()
    if isinstance(raw, str):
        parts = raw.replace(";", ",").split(",")
    else:
        parts = [str(entry) for entry in raw]
    return tuple(dict.fromkeys(part.strip() for part in parts if part.strip()))


@dataclass(frozen=True)
class WindowConfig:
    min_history_days: int = 90
    lag_days: int = 1

    @staticmethod
    def from_dict(payload: Mapping[str, Any]) -> "WindowConfig":
        return WindowConfig(
            min_history_days=max(int(payload.get("min_history_days", 90)), 1),
            lag_days=max(int(payload.get("lag_days", 1)), 0),
        )


@dataclass(frozen=True)
class StoreConfig:
    path: Path = Path("cache/series.sqlite")

    @staticmethod
    def from_dict(payload: Mapping[str, Any]) -> "StoreConfig":
        env_path = _read_env("SERIES_CACHE_PATH")
        return StoreConfig(path=Path(env_path or payload.get("path", "cache/series.sqlite")))


@dataclass(frozen=True)
class ProviderConfig:
    base_url: str = ""
    timeout: float = 10.0
    retries: int = 0
    backoff_seconds: float = 0.5
    page_size: int = 50
    max_span_days: int = 0
    credential_env_prefix: str = ""

    @staticmethod
    def from_dict(payload: Mapping[str, Any]) -> "ProviderConfig":
        return ProviderConfig(
            base_url=str(payload.get("base_url", "") or "").rstrip("/"),
            timeout=max(float(payload.get("timeout", 10.0)), 0.1),
            retries=max(int(payload.get("retries", 0)), 0),
            backoff_seconds=max(float(payload.get("backoff_seconds", 0.5)), 0.0),
            page_size=max(int(payload.get("page_size", 50)), 1),
            max_span_days=max(int(payload.get("max_span_days", 0)), 0),
            credential_env_prefix=str(payload.get("credential_env_prefix", "") or ""),
        )


@dataclass(frozen=True)
class LoggingConfig:
    level: str = "INFO"

    @staticmethod
    def from_dict(payload: Mapping[str, Any]) -> "LoggingConfig":
        return LoggingConfig(level=str(payload.get("level", "INFO")).upper())


@dataclass(frozen=True)
class TelemetryConfig:
    metrics_port_env: str = "METRICS_PORT"

    @staticmethod
    def from_dict(payload: Mapping[str, Any]) -> "TelemetryConfig":
        return TelemetryConfig(metrics_port_env=str(payload.get("metrics_port_env", "METRICS_PORT")))

    def metrics_port(self) -> Optional[int]:
        raw = _read_env(self.metrics_port_env)
        if raw is None:
            return None
        try:
            return int(raw)
        except ValueError:
            _LOGGER.warning("Ignoring non-numeric %s=%r", self.metrics_port_env, raw)
            return None


@dataclass(frozen=True)
class WarmJob:
    owner_id: str
    provider: str
    channels: tuple[str, ...]
    metrics: tuple[str, ...] = field(default_factory=tuple)

    @staticmethod
    def from_dict(payload: Mapping[str, Any]) -> "WarmJob":
        owner_id = str(payload.get("owner_id", "") or "").strip()
        provider = str(payload.get("provider", "") or "").strip().lower()
        if not owner_id or not provider:
            raise ValueError("warm jobs need owner_id and provider")
        return WarmJob(
            owner_id=owner_id,
            provider=provider,
            channels=_str_tuple(payload.get("channels")),
            metrics=_str_tuple(payload.get("metrics")),
        )


@dataclass(frozen=True)
class AppConfig:
    window: WindowConfig = field(default_factory=WindowConfig)
    store: StoreConfig = field(default_factory=StoreConfig)
    providers: Dict[str, ProviderConfig] = field(default_factory=dict)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    telemetry: TelemetryConfig = field(default_factory=TelemetryConfig)
    warm: tuple[WarmJob, ...] = field(default_factory=tuple)

    @staticmethod
    def from_dict(raw: Mapping[str, Any]) -> "AppConfig":
        providers = {
            str(name).strip().lower(): ProviderConfig.from_dict(section or {})
            for name, section in (raw.get("providers") or {}).items()
        }
        return AppConfig(
            window=WindowConfig.from_dict(raw.get("window") or {}),
            store=StoreConfig.from_dict(raw.get("store") or {}),
            providers=providers,
            logging=LoggingConfig.from_dict(raw.get("logging") or {}),
            telemetry=TelemetryConfig.from_dict(raw.get("telemetry") or {}),
            warm=tuple(WarmJob.from_dict(job) for job in raw.get("warm") or ()),
        )

    @staticmethod
    def load(path: Optional[str | Path] = None, *, strict: bool = True) -> "AppConfig":
        cfg_path = Path(path) if path is not None else None
        return AppConfig.from_dict(_read_config_payload(cfg_path, strict=strict))

    def provider(self, name: str) -> ProviderConfig:
        return self.providers.get(name.lower(), ProviderConfig())


class _ConfigHandle:
    def __init__(self) -> None:
        self._config: Optional[AppConfig] = None

    def _ensure(self) -> AppConfig:
        if self._config is None:
            self._config = AppConfig.load(strict=False)
        return self._config

    def reload(self) -> AppConfig:
        self._config = AppConfig.load(strict=False)
        return self._config

    def value(self) -> AppConfig:
        return self._ensure()

    def __getattr__(self, item: str):
        return getattr(self._ensure(), item)


CONFIG = _ConfigHandle()


def load_app_config(path: Optional[str | Path] = None) -> AppConfig:
    """An explicit path is loaded strictly; otherwise the shared ``CONFIG`` is used."""

    if path is not None:
        return AppConfig.load(path)
    return CONFIG.value()


__all__ = [
    "AppConfig",
    "CONFIG",
    "LoggingConfig",
    "ProviderConfig",
    "StoreConfig",
    "TelemetryConfig",
    "WarmJob",
    "WindowConfig",
    "load_app_config",
]
