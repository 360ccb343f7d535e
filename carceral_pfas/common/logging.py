"""JSON-lines logging with a fixed field set."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

from carceral_pfas.common.constants import JSON_LOG_FIELDS
from carceral_pfas.common.fs import ensure_dir
from carceral_pfas.common.run_meta import utc_timestamp_iso


class JsonLineFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {field: getattr(record, field, None) for field in JSON_LOG_FIELDS}
        payload["timestamp"] = utc_timestamp_iso()
        payload["message"] = record.getMessage()
        if payload["status"] is None:
            payload["status"] = "error" if record.levelno >= logging.ERROR else "ok"
        return json.dumps(payload, ensure_ascii=False, default=str)


def build_logger(run_id: str, data_dir: Path, level: str = "INFO") -> logging.Logger:
    logger = logging.getLogger(f"carceral_pfas.{run_id}")
    logger.setLevel(level.upper())
    logger.handlers.clear()
    logger.propagate = False

    stream = logging.StreamHandler()
    stream.setFormatter(JsonLineFormatter())
    logger.addHandler(stream)

    log_path = data_dir / "run_meta" / f"{run_id}.log.jsonl"
    ensure_dir(log_path.parent)
    file_handler = logging.FileHandler(log_path, encoding="utf-8")
    file_handler.setFormatter(JsonLineFormatter())
    logger.addHandler(file_handler)

    return logger


def get_logger(logger: logging.Logger | None) -> logging.Logger:
    """Stage functions accept an optional logger; fall back to the package logger."""
    return logger if logger is not None else logging.getLogger("carceral_pfas")


def log_event(logger: logging.Logger, message: str, *, level: int = logging.INFO, **event_fields: Any) -> None:
    logger.log(level, message, extra=event_fields)
