from __future__ import annotations

import argparse
import asyncio
from collections import Counter
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional

from series_engine.catalog import MetricKind
from series_engine.config import WarmJob, load_app_config
from series_engine.errors import CredentialMissing, ProviderError, StorageFailure, Unauthorized
from series_engine.logging_utils import configure_logging, get_logger
from series_engine.metrics import CacheMetrics, bind_global_metrics, start_http_server_if_available
from series_engine.service import MetricSeriesService

ServiceFactory = Callable[[str], MetricSeriesService]

_LOG = get_logger("cli.warm_cache")


async def _job_channels(service: MetricSeriesService, job: WarmJob) -> List[str]:
    if job.channels:
        return list(job.channels)
    if "channels" not in service.adapter.catalog:
        _LOG.log_event(30, "warm_job_without_channels", owner_id=job.owner_id, provider=job.provider)
        return []
    listed = await service.list_channels(job.owner_id)
    return [str(entry["id"]) for entry in listed if entry.get("id")]


async def warm(jobs: Iterable[WarmJob], service_for: ServiceFactory) -> Dict[str, int]:
    """
    Resolve every configured owner/channel/metric so later reads hit warm records.

    A rejected or missing credential abandons the rest of that owner's job;
    transient and per-metric failures are logged and skipped.
    """

    outcome: Counter = Counter()
    services: Dict[str, MetricSeriesService] = {}
    for job in jobs:
        service = services.get(job.provider)
        if service is None:
            service = services[job.provider] = service_for(job.provider)
        metrics = list(job.metrics) or service.adapter.catalog.names(MetricKind.DAILY)
        try:
            channels = await _job_channels(service, job)
            for channel_id in channels:
                for metric in metrics:
                    try:
                        await service.get_metric_series(job.owner_id, channel_id, metric)
                    except (Unauthorized, CredentialMissing):
                        raise
                    except (ProviderError, StorageFailure) as exc:
                        outcome["failed"] += 1
                        _LOG.log_event(
                            30,
                            "warm_metric_failed",
                            owner_id=job.owner_id,
                            channel_id=channel_id,
                            metric=metric,
                            code=exc.code,
                            error=str(exc),
                        )
                    else:
                        outcome["warmed"] += 1
        except (Unauthorized, CredentialMissing) as exc:
            outcome["owners_skipped"] += 1
            _LOG.log_event(40, "warm_owner_skipped", owner_id=job.owner_id, provider=job.provider, code=exc.code, error=str(exc))
    summary = {key: int(outcome.get(key, 0)) for key in ("warmed", "failed", "owners_skipped")}
    _LOG.log_event(20, "warm_complete", **summary)
    return summary


def _parse(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Refresh cached metric series for every configured owner")
    parser.add_argument("--config", type=Path, default=None, help="Override config path (default config/app.yml)")
    parser.add_argument("--owner", dest="owners", action="append", default=[], help="Only warm these owner ids")
    parser.add_argument("--provider", default=None, help="Only warm jobs for this provider")
    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    args = _parse(argv)
    cfg = load_app_config(args.config)
    configure_logging(cfg.logging.level)
    metrics = CacheMetrics()
    bind_global_metrics(metrics)
    port = cfg.telemetry.metrics_port()
    if port is not None:
        start_http_server_if_available(port)
    jobs = [
        job
        for job in cfg.warm
        if (not args.owners or job.owner_id in args.owners) and (not args.provider or job.provider == args.provider.lower())
    ]
    summary = asyncio.run(warm(jobs, lambda provider: MetricSeriesService.from_config(cfg, provider, metrics=metrics)))
    return 1 if summary["failed"] else 0


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
