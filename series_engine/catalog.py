from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Iterator, Mapping

from series_engine.errors import BadRequest


class MetricKind(str, Enum):
    DAILY = "daily"
    CATALOG = "catalog"
    STATISTICS = "statistics"

    @property
    def is_time_series(self) -> bool:
        return self is MetricKind.DAILY


@dataclass(frozen=True)
class MetricSpec:
    name: str
    kind: MetricKind
    # provider-side identifier, e.g. "page_impressions_unique" or "estimatedMinutesWatched"
    remote_name: str = ""

    @property
    def remote(self) -> str:
        return self.remote_name or self.name


class MetricCatalog:
    """Metrics one provider can serve, keyed by the name callers use."""

    def __init__(self, provider: str, specs: Iterable[MetricSpec]):
        self.provider = provider
        self._specs: dict[str, MetricSpec] = {}
        for spec in specs:
            if spec.name in self._specs:
                raise ValueError(f"duplicate metric {spec.name!r} for {provider}")
            self._specs[spec.name] = spec

    def get(self, metric: str) -> MetricSpec:
        spec = self._specs.get(str(metric or "").strip())
        if spec is None:
            raise BadRequest(f"Unknown {self.provider} metric: {metric!r}", provider=self.provider)
        return spec

    def __contains__(self, metric: object) -> bool:
        return metric in self._specs

    def __iter__(self) -> Iterator[MetricSpec]:
        return iter(self._specs.values())

    def names(self, kind: MetricKind | None = None) -> list[str]:
        return [spec.name for spec in self._specs.values() if kind is None or spec.kind is kind]


def daily(*names: str, remote: Mapping[str, str] | None = None) -> list[MetricSpec]:
    remote = remote or {}
    return [MetricSpec(name=name, kind=MetricKind.DAILY, remote_name=remote.get(name, "")) for name in names]


__all__ = ["MetricCatalog", "MetricKind", "MetricSpec", "daily"]
