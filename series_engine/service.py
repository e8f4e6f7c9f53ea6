from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Union

import pandas as pd

from series_engine.config import AppConfig, WindowConfig
from series_engine.credentials import CredentialManager, EnvCredentialManager
from series_engine.densify import to_frame
from series_engine.logging_utils import get_logger
from series_engine.metrics import CacheMetrics
from series_engine.resolver import CoverageResolver
from series_engine.shaping import Entity
from persistence.coverage_store import CoverageStore, SQLiteCoverageStore
from providers import build_adapter
from providers.base import FetchAdapter
from providers.youtube import MINE

SeriesResult = Union[List[Dict[str, Any]], List[Entity]]


class MetricSeriesService:
    """
    Read surface used by dashboards.

    Looks up the owner's credential, then serves daily metrics through the
    coverage resolver and entity listings straight from the provider.
    """

    def __init__(
        self,
        adapter: FetchAdapter,
        store: CoverageStore,
        credentials: CredentialManager,
        *,
        window: Optional[WindowConfig] = None,
        metrics: Optional[CacheMetrics] = None,
    ) -> None:
        window = window or WindowConfig()
        self.adapter = adapter
        self.store = store
        self.credentials = credentials
        self.resolver = CoverageResolver(
            adapter,
            store,
            min_history_days=window.min_history_days,
            lag_days=window.lag_days,
            metrics=metrics,
        )
        self._logger = get_logger("series_engine.service").bind(provider=adapter.name)

    @classmethod
    def from_config(
        cls,
        config: AppConfig,
        provider: str,
        *,
        credentials: Optional[CredentialManager] = None,
        store: Optional[CoverageStore] = None,
        metrics: Optional[CacheMetrics] = None,
    ) -> "MetricSeriesService":
        provider_cfg = config.provider(provider)
        adapter = build_adapter(provider, provider_cfg)
        if credentials is None:
            prefix = provider_cfg.credential_env_prefix or f"{adapter.name.upper()}_TOKEN_"
            credentials = EnvCredentialManager(prefix)
        if store is None:
            config.store.path.parent.mkdir(parents=True, exist_ok=True)
            store = SQLiteCoverageStore(config.store.path)
        return cls(adapter, store, credentials, window=config.window, metrics=metrics)

    def is_daily(self, metric: str) -> bool:
        return self.adapter.catalog.get(metric).kind.is_time_series

    async def get_metric_series(self, owner_id: str, channel_id: str, metric: str) -> SeriesResult:
        credential = self.credentials.get_credential(owner_id)
        if not self.is_daily(metric):
            return await self.resolver.fetch_entities(channel_id, metric, credential)
        values = await self.resolver.resolve(owner_id, channel_id, metric, credential)
        return [entry.to_dict() for entry in values]

    async def list_channels(self, owner_id: str) -> List[Entity]:
        credential = self.credentials.get_credential(owner_id)
        channels = await self.resolver.fetch_entities(MINE, "channels", credential)
        self._logger.log_event(logging.DEBUG, "channels_listed", owner_id=owner_id, count=len(channels))
        return channels

    async def get_metric_frame(self, owner_id: str, channel_id: str, metric: str) -> pd.DataFrame:
        if not self.is_daily(metric):
            raise ValueError(f"{metric!r} is not a daily metric")
        credential = self.credentials.get_credential(owner_id)
        values = await self.resolver.resolve(owner_id, channel_id, metric, credential)
        frame = to_frame(values)
        frame.attrs.update({"owner_id": owner_id, "channel_id": channel_id, "metric": metric})
        return frame


__all__ = ["MetricSeriesService", "SeriesResult"]
