from __future__ import annotations

from typing import Optional

import requests

from series_engine.config import ProviderConfig
from providers.base import FetchAdapter, HttpFetchAdapter, RawPayload, chunk_range
from providers.graph import GraphInsightsAdapter
from providers.youtube import YouTubeFetchAdapter

PROVIDERS = ("youtube", "facebook", "instagram")


def build_adapter(
    name: str,
    config: Optional[ProviderConfig] = None,
    *,
    session: Optional[requests.Session] = None,
) -> HttpFetchAdapter:
    key = str(name or "").strip().lower()
    if key == "youtube":
        return YouTubeFetchAdapter(session=session, config=config)
    if key in {"facebook", "instagram"}:
        return GraphInsightsAdapter(key, session=session, config=config)
    raise ValueError(f"Unknown provider: {name!r} (expected one of {', '.join(PROVIDERS)})")


__all__ = [
    "FetchAdapter",
    "GraphInsightsAdapter",
    "HttpFetchAdapter",
    "PROVIDERS",
    "RawPayload",
    "YouTubeFetchAdapter",
    "build_adapter",
    "chunk_range",
]
