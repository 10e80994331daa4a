"""stratlab.core.logging

Console logging setup.

Messages are snake_case event names; context rides in ``extra``. The JSON
formatter folds those extras into the line so they survive log shipping.
"""

from __future__ import annotations

import json
import logging

from stratlab.core.config import LoggingConfig

_RESERVED = set(logging.LogRecord("", 0, "", 0, "", None, None).__dict__) | {"message", "asctime"}


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, object] = {
            "ts": self.formatTime(record, "%Y-%m-%dT%H:%M:%S%z"),
            "level": record.levelname,
            "logger": record.name,
            "event": record.getMessage(),
        }
        for k, v in record.__dict__.items():
            if k not in _RESERVED and not k.startswith("_"):
                payload[k] = v
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str, sort_keys=True)


def configure_logging(cfg: LoggingConfig | None = None) -> logging.Logger:
    """Install a single console handler on the ``stratlab`` logger."""

    cfg = cfg or LoggingConfig()
    logger = logging.getLogger("stratlab")
    logger.setLevel(getattr(logging, str(cfg.level).upper(), logging.INFO))
    logger.handlers.clear()

    handler = logging.StreamHandler()
    if cfg.json_output:
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(
            logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s", datefmt="%Y-%m-%d %H:%M:%S")
        )
    logger.addHandler(handler)
    logger.propagate = False
    return logger
