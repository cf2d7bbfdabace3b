"""TOML configuration loader for the store terminal."""

from __future__ import annotations

import os
import tomllib
from dataclasses import dataclass, field
from pathlib import Path


@dataclass
class CacheConfig:
    path: str = "data/cache.sqlite"


@dataclass
class StoreConfig:
    path: str = "data/store.sqlite"
    timeout: float = 5.0


@dataclass
class RelayConfig:
    # empty url disables the relay fallback
    url: str = ""
    timeout: float = 8.0
    health_timeout: float = 2.0
    liveness_ttl: float = 60.0


@dataclass
class SyncConfig:
    attempts: int = 2
    backoff: float = 0.5
    session_retry_cap: int = 10
    # push the local catalog into an empty store on start
    seed_empty_store: bool = True


@dataclass
class PosConfig:
    cache: CacheConfig = field(default_factory=CacheConfig)
    store: StoreConfig = field(default_factory=StoreConfig)
    relay: RelayConfig = field(default_factory=RelayConfig)
    sync: SyncConfig = field(default_factory=SyncConfig)


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name, "")
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}")


def load_config(path: str | Path | None = None) -> PosConfig:
    """Load configuration from a TOML file.

    Falls back to defaults if no path is given or the file doesn't exist.
    Paths, the relay url and timeouts can be overridden via environment
    variables (POS_CACHE_PATH, POS_STORE_PATH, POS_RELAY_URL, ...).
    """
    raw: dict = {}

    if path is None:
        path = os.environ.get("POS_CONFIG") or None
    if path is not None:
        p = Path(path)
        if p.exists():
            with open(p, "rb") as f:
                raw = tomllib.load(f)

    cch = raw.get("cache", {})
    sto = raw.get("store", {})
    rly = raw.get("relay", {})
    syn = raw.get("sync", {})

    return PosConfig(
        cache=CacheConfig(
            path=os.environ.get("POS_CACHE_PATH")
            or cch.get("path", "data/cache.sqlite"),
        ),
        store=StoreConfig(
            path=os.environ.get("POS_STORE_PATH")
            or sto.get("path", "data/store.sqlite"),
            timeout=_env_float("POS_STORE_TIMEOUT", sto.get("timeout", 5.0)),
        ),
        relay=RelayConfig(
            url=os.environ.get("POS_RELAY_URL", rly.get("url", "")),
            timeout=_env_float("POS_RELAY_TIMEOUT", rly.get("timeout", 8.0)),
            health_timeout=_env_float(
                "POS_HEALTH_TIMEOUT", rly.get("health_timeout", 2.0)
            ),
            liveness_ttl=_env_float("POS_LIVENESS_TTL", rly.get("liveness_ttl", 60.0)),
        ),
        sync=SyncConfig(
            attempts=int(syn.get("attempts", 2)),
            backoff=float(syn.get("backoff", 0.5)),
            session_retry_cap=int(syn.get("session_retry_cap", 10)),
            seed_empty_store=bool(syn.get("seed_empty_store", True)),
        ),
    )
