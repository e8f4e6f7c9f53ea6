from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path
from typing import List, Optional, TextIO

import pandas as pd

from series_engine.config import load_app_config
from series_engine.errors import SeriesCacheError
from series_engine.logging_utils import configure_logging
from series_engine.service import MetricSeriesService


def _parse(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Print one cached metric series as CSV")
    parser.add_argument("owner", help="Owner id whose credential is used")
    parser.add_argument("channel", help="Channel / page / account id")
    parser.add_argument("metric", help="Metric name, e.g. views or videos")
    parser.add_argument("--provider", default="youtube")
    parser.add_argument("--config", type=Path, default=None, help="Override config path (default config/app.yml)")
    return parser.parse_args(argv)


async def render(service: MetricSeriesService, owner: str, channel: str, metric: str, out: TextIO) -> int:
    if service.is_daily(metric):
        frame = await service.get_metric_frame(owner, channel, metric)
        frame.index = pd.Index(frame.index.strftime("%Y-%m-%d"), name="date")
    else:
        frame = pd.DataFrame(await service.get_metric_series(owner, channel, metric))
    frame.to_csv(out, index=service.is_daily(metric))
    return len(frame)


def main(argv: Optional[List[str]] = None) -> int:
    args = _parse(argv)
    cfg = load_app_config(args.config)
    configure_logging(cfg.logging.level)
    service = MetricSeriesService.from_config(cfg, args.provider)
    try:
        asyncio.run(render(service, args.owner, args.channel, args.metric, sys.stdout))
    except SeriesCacheError as exc:
        print(f"{exc.code}: {exc}", file=sys.stderr)
        return 2
    return 0


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
