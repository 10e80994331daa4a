from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from fastapi import Request

from stratlab.backtest.io import CachedPriceSource, CsvPriceSource, PriceSource
from stratlab.core.config import Config


@lru_cache
def _repo_root() -> Path:
    # Assume running from repo root (uvicorn started there). Fallback to parent of this file.
    here = Path(__file__).resolve()
    for p in [Path.cwd(), here.parent.parent]:
        if (p / "config" / "default.yaml").exists():
            return p
    return Path.cwd()


@lru_cache
def _load_config() -> Config:
    return Config.load(_repo_root())


def get_config(request: Request) -> Config:
    cfg = getattr(request.app.state, "config", None)
    return cfg or _load_config()


def get_price_source(request: Request) -> PriceSource:
    src = getattr(request.app.state, "price_source", None)
    if src is not None:
        return src

    cfg = get_config(request)
    prices_dir = cfg.data.prices_dir
    if not prices_dir.is_absolute():
        prices_dir = _repo_root() / prices_dir
    # One cache per app so repeated requests for the same range skip the disk.
    src = CachedPriceSource(
        CsvPriceSource(prices_dir),
        ttl_s=cfg.data.cache_ttl_seconds,
        max_entries=cfg.data.cache_max_entries,
    )
    request.app.state.price_source = src
    return src
