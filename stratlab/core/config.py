"""stratlab.core.config

Three config surfaces only:
1) `config/default.yaml`
2) `config/user.yaml` (optional overlay, deep-merged on top)
3) Environment variables: `STRATLAB_<SECTION>__<KEY>`

Everything else is derived.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource

from stratlab.core.exceptions import ConfigError


def _deep_merge(base: dict[str, Any], overlay: dict[str, Any]) -> dict[str, Any]:
    result: dict[str, Any] = dict(base)
    for k, v in overlay.items():
        if k in result and isinstance(result[k], dict) and isinstance(v, dict):
            result[k] = _deep_merge(result[k], v)
        else:
            result[k] = v
    return result


class BacktestLimits(BaseModel):
    """Request bounds enforced by the validator."""

    min_initial_capital: float = 100.0
    max_initial_capital: float = 1_000_000.0
    min_span_days: int = 30
    # Guard against pathological requests (e.g. years of 1m bars).
    max_bars: int = 500_000

    @field_validator("max_initial_capital", mode="after")
    @classmethod
    def capital_bounds_ordered(cls, v: float, info) -> float:
        lo = float(info.data.get("min_initial_capital", 0.0))
        if v <= lo:
            raise ValueError(f"max_initial_capital must exceed min_initial_capital ({lo})")
        return v

    @field_validator("min_span_days")
    @classmethod
    def min_span_positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("min_span_days must be >= 1")
        return v


class MetricsConfig(BaseModel):
    # Annual risk-free rate as a fraction (0.02 = 2%).
    risk_free_rate: float = 0.0
    # Used when the bar spacing cannot be inferred (fewer than two bars).
    periods_per_year: int = 365


class DataConfig(BaseModel):
    prices_dir: Path = Path("data/prices")
    cache_ttl_seconds: float = 300.0
    # Distinct (symbol, start, end) ranges kept in memory at once.
    cache_max_entries: int = 64


class LoggingConfig(BaseModel):
    level: str = "INFO"
    json_output: bool = False


class ApiConfig(BaseModel):
    host: str = "127.0.0.1"
    port: int = 5050
    backtest_timeout_seconds: float = 60.0


class Config(BaseSettings):
    """Root configuration. Single source of truth."""

    config_dir: Path = Path("config")

    backtest: BacktestLimits = Field(default_factory=BacktestLimits)
    metrics: MetricsConfig = Field(default_factory=MetricsConfig)
    data: DataConfig = Field(default_factory=DataConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    api: ApiConfig = Field(default_factory=ApiConfig)

    model_config = {"env_prefix": "STRATLAB_", "env_nested_delimiter": "__"}

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        # YAML values arrive as init kwargs; env (surface 3) must still win over them.
        return env_settings, init_settings, dotenv_settings, file_secret_settings

    @classmethod
    def from_yaml(cls, path: Path) -> Config:
        if not path.exists():
            raise ConfigError(f"Config file not found: {path}")

        try:
            raw = yaml.safe_load(path.read_text()) or {}
        except yaml.YAMLError as e:
            raise ConfigError(f"Config file is not valid YAML: {path}: {e}") from e
        if not isinstance(raw, dict):
            raise ConfigError(f"Config file must contain a mapping: {path}")

        # User overlay (surface 2)
        user = path.parent / "user.yaml"
        if user.exists() and user.resolve() != path.resolve():
            try:
                user_data = yaml.safe_load(user.read_text()) or {}
            except yaml.YAMLError as e:
                raise ConfigError(f"Config overlay is not valid YAML: {user}: {e}") from e
            if not isinstance(user_data, dict):
                raise ConfigError(f"Config overlay must contain a mapping: {user}")
            raw = _deep_merge(raw, user_data)

        raw.setdefault("config_dir", path.parent)
        return cls(**raw)

    @classmethod
    def from_repo_defaults(cls, repo_root: Path | None = None) -> Config:
        root = repo_root or Path.cwd()
        return cls.from_yaml(root / "config" / "default.yaml")

    @classmethod
    def load(cls, repo_root: Path | None = None) -> Config:
        """Repo defaults when present, built-in defaults otherwise."""

        root = repo_root or Path.cwd()
        if (root / "config" / "default.yaml").exists():
            return cls.from_repo_defaults(root)
        return cls()
