from __future__ import annotations

import json
import logging
from pathlib import Path

import pytest
from prometheus_client import CollectorRegistry

from cli.warm_cache import main as warm_main
from series_engine.config import CONFIG, AppConfig, ProviderConfig, load_app_config
from series_engine.logging_utils import get_logger
from series_engine.metrics import (
    CacheMetrics,
    bind_global_metrics,
    current_metrics,
    start_http_server_if_available,
)

SAMPLE = """
window:
  min_history_days: 30
store:
  path: data/cache.sqlite
providers:
  YouTube:
    timeout: 3
    retries: 2
    credential_env_prefix: YT_
warm:
  - owner_id: acme
    provider: youtube
    channels: "UC1, UC2,UC1"
    metrics: [views, likes]
"""


def test_load_config_from_yaml(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("SERIES_CACHE_PATH", raising=False)
    path = tmp_path / "app.yml"
    path.write_text(SAMPLE, encoding="utf-8")
    cfg = AppConfig.load(path)
    assert cfg.window.min_history_days == 30
    assert cfg.window.lag_days == 1
    assert cfg.store.path == Path("data/cache.sqlite")
    yt = cfg.provider("youtube")
    assert yt.timeout == 3.0
    assert yt.retries == 2
    assert yt.credential_env_prefix == "YT_"
    assert cfg.provider("facebook") == ProviderConfig()
    assert cfg.warm[0].channels == ("UC1", "UC2")
    assert cfg.warm[0].metrics == ("views", "likes")


def test_env_overrides_and_missing_file(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("SERIES_CACHE_PATH", str(tmp_path / "env.sqlite"))
    monkeypatch.setenv("APP_CONFIG_PATH", str(tmp_path / "absent.yml"))
    with pytest.raises(FileNotFoundError):
        AppConfig.load()
    cfg = AppConfig.load(strict=False)
    assert cfg.store.path == tmp_path / "env.sqlite"
    assert cfg.window.min_history_days == 90


def test_warm_job_requires_owner_and_provider() -> None:
    with pytest.raises(ValueError):
        AppConfig.from_dict({"warm": [{"provider": "youtube"}]})


def test_cache_metrics_record_on_private_registry() -> None:
    registry = CollectorRegistry()
    metrics = CacheMetrics(registry)
    metrics.record_resolve("views", "extend", 12.5)
    metrics.record_fetch("youtube", "ok", 4)
    metrics.record_fetch("youtube", "rate_limited", 0)
    metrics.record_store_failure("replace")
    sample = registry.get_sample_value
    assert sample("series_resolve_total", {"metric": "views", "action": "extend"}) == 1.0
    assert sample("resolve_latency_ms_count", {"action": "extend"}) == 1.0
    assert sample("provider_fetch_total", {"provider": "youtube", "result": "ok"}) == 1.0
    assert sample("provider_fetch_total", {"provider": "youtube", "result": "rate_limited"}) == 1.0
    assert sample("provider_fetch_days_sum", {"provider": "youtube"}) == 4.0
    assert sample("store_failures_total", {"operation": "replace"}) == 1.0


def test_global_metrics_binding() -> None:
    bind_global_metrics(None)
    assert current_metrics() is None
    assert start_http_server_if_available(0) is False
    metrics = CacheMetrics()
    bind_global_metrics(metrics)
    try:
        assert current_metrics() is metrics
    finally:
        bind_global_metrics(None)


def test_structured_logger_binds_fields_and_masks_tokens(caplog: pytest.LogCaptureFixture) -> None:
    caplog.set_level(logging.INFO, logger="tests.structured")
    log = get_logger("tests.structured").bind(provider="youtube")
    log.log_event(logging.INFO, "resolve_action", action="create", credential="secret")
    log.log_event(logging.DEBUG, "too_chatty")
    assert len(caplog.records) == 1
    payload = json.loads(caplog.records[0].getMessage())
    assert payload["event"] == "resolve_action"
    assert payload["provider"] == "youtube"
    assert payload["action"] == "create"
    assert payload["credential"] == "***"


def test_shared_config_handle_reads_app_config_path(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    path = tmp_path / "app.yml"
    path.write_text(SAMPLE, encoding="utf-8")
    monkeypatch.setenv("APP_CONFIG_PATH", str(path))
    monkeypatch.setattr(CONFIG, "_config", None)
    assert CONFIG.value().window.min_history_days == 30
    assert CONFIG.window.min_history_days == 30
    assert load_app_config() is CONFIG.value()

    path.write_text("window:\n  min_history_days: 14\n", encoding="utf-8")
    assert CONFIG.window.min_history_days == 30
    assert CONFIG.reload().window.min_history_days == 14
    assert load_app_config().window.min_history_days == 14


def test_explicit_config_path_is_loaded_strictly(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(CONFIG, "_config", None)
    with pytest.raises(FileNotFoundError):
        load_app_config(tmp_path / "absent.yml")
    assert CONFIG._config is None


def test_warm_cli_with_no_jobs_exits_cleanly(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("METRICS_PORT", raising=False)
    path = tmp_path / "app.yml"
    path.write_text("warm: []\n", encoding="utf-8")
    try:
        assert warm_main(["--config", str(path)]) == 0
    finally:
        bind_global_metrics(None)
