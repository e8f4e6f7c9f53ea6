from __future__ import annotations

import os
import re
from typing import Mapping, Optional, Protocol

from series_engine.errors import CredentialMissing


class CredentialManager(Protocol):
    def get_credential(self, owner_id: str) -> str: ...


class StaticCredentialManager:
    """In-memory owner -> access token mapping."""

    def __init__(self, tokens: Optional[Mapping[str, str]] = None) -> None:
        self._tokens = {str(owner): str(token) for owner, token in (tokens or {}).items()}

    def set_credential(self, owner_id: str, token: str) -> None:
        self._tokens[str(owner_id)] = str(token)

    def get_credential(self, owner_id: str) -> str:
        token = self._tokens.get(str(owner_id), "").strip()
        if not token:
            raise CredentialMissing(f"no credential stored for owner {owner_id!r}", context={"owner_id": owner_id})
        return token


class EnvCredentialManager:
    """
    Reads tokens from ``<prefix><OWNER_ID>`` environment variables.

    The owner id is upper-cased and every non-alphanumeric character becomes
    ``_``, so owner ``acme-1`` with prefix ``YOUTUBE_TOKEN_`` reads
    ``YOUTUBE_TOKEN_ACME_1``.
    """

    def __init__(self, prefix: str = "SERIES_TOKEN_") -> None:
        self.prefix = prefix

    def env_name(self, owner_id: str) -> str:
        return self.prefix + re.sub(r"[^A-Za-z0-9]", "_", str(owner_id)).upper()

    def get_credential(self, owner_id: str) -> str:
        name = self.env_name(owner_id)
        token = (os.getenv(name) or "").strip()
        if not token:
            raise CredentialMissing(f"environment variable {name} is not set", context={"owner_id": owner_id})
        return token


__all__ = ["CredentialManager", "EnvCredentialManager", "StaticCredentialManager"]
