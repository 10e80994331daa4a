from __future__ import annotations

import logging
import shutil
import sys
from pathlib import Path

import pytest

# uv/pytest may run without installing the project; ensure repo root is importable.
REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from stratlab.core.config import Config  # noqa: E402


@pytest.fixture()
def temp_dir(tmp_path: Path) -> Path:
    return tmp_path


@pytest.fixture()
def test_config(temp_dir: Path) -> Config:
    """Config fixture that points prices_dir to a temp directory."""

    repo_root = Path(__file__).resolve().parents[1]
    cfg_src = repo_root / "config" / "default.yaml"
    cfg_dst_dir = temp_dir / "config"
    cfg_dst_dir.mkdir(parents=True, exist_ok=True)
    shutil.copy2(cfg_src, cfg_dst_dir / "default.yaml")

    prices_dir = temp_dir / "prices"
    prices_dir.mkdir(parents=True, exist_ok=True)

    c = Config.from_yaml(cfg_dst_dir / "default.yaml")
    return c.model_copy(
        update={
            "config_dir": cfg_dst_dir,
            "data": c.data.model_copy(update={"prices_dir": prices_dir}),
        }
    )


@pytest.fixture(autouse=True)
def _reset_stratlab_logging():
    """CLI commands install handlers on the package logger; drop them between tests."""

    yield
    logger = logging.getLogger("stratlab")
    logger.handlers.clear()
    logger.propagate = True
