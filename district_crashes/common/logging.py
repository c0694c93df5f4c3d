"""JSON logging with stable schema."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

from district_crashes.common.constants import JSON_LOG_FIELDS
from district_crashes.common.fs import ensure_dir
from district_crashes.common.time_utils import utc_timestamp_iso


class JsonLineFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {"timestamp": utc_timestamp_iso()}
        for field in JSON_LOG_FIELDS:
            if field in ("timestamp", "message"):
                continue
            payload[field] = getattr(record, field, None)
        payload["level"] = record.levelname
        payload["message"] = record.getMessage()
        return json.dumps(payload, ensure_ascii=False, default=str)


def build_logger(run_id: str, data_dir: Path | None = None, level: str = "INFO") -> logging.Logger:
    logger = logging.getLogger(f"district_crashes.{run_id}")
    logger.setLevel(level.upper())
    logger.handlers.clear()
    logger.propagate = False

    stream = logging.StreamHandler()
    stream.setFormatter(JsonLineFormatter())
    logger.addHandler(stream)

    if data_dir is not None:
        log_path = data_dir / "run_meta" / f"{run_id}.log.jsonl"
        ensure_dir(log_path.parent)
        file_handler = logging.FileHandler(log_path, encoding="utf-8")
        file_handler.setFormatter(JsonLineFormatter())
        logger.addHandler(file_handler)

    return logger


def get_stage_logger() -> logging.Logger:
    """Library-level logger used by stages when the caller passes none."""
    return logging.getLogger("district_crashes")


def log_event(logger: logging.Logger, message: str, *, level: int = logging.INFO, **event_fields: Any) -> None:
    logger.log(level, message, extra=event_fields)


def close_logger(logger: logging.Logger) -> None:
    for handler in list(logger.handlers):
        handler.close()
        logger.removeHandler(handler)
