# SPDX-License-Identifier: GPL-3.0-or-later
# Copyright (C) 2026 Manifold Contributors

"""Logging setup: JSON or plain console output, plus a separate audit stream."""

from __future__ import annotations

import logging
import logging.config
from typing import Any

from pythonjsonlogger.json import JsonFormatter

from manifold.config import Settings


class ManifoldJsonFormatter(JsonFormatter):
    def add_fields(self, log_record: dict[str, Any], record: logging.LogRecord, message_dict: dict[str, Any]) -> None:
        super().add_fields(log_record, record, message_dict)
        # time and level first, easier to scan in container logs
        ordered = {
            "time": log_record.pop("asctime", None),
            "level": log_record.pop("levelname", record.levelname),
            **log_record,
        }
        log_record.clear()
        log_record.update(ordered)


_json_formatter = {
    "()": ManifoldJsonFormatter,
    "format": "%(asctime)s %(levelname)s %(name)s %(message)s",
}


def logging_config(settings: Settings) -> dict[str, Any]:
    level = settings.log_level.upper()
    formatter = "json" if settings.log_format == "json" else "plain"
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "json": _json_formatter,
            "audit_json": _json_formatter | {"static_fields": {"audit": True}},
            "plain": {"format": "%(asctime)s %(levelname)-8s %(name)s: %(message)s"},
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "formatter": formatter,
            },
            "audit_console": {
                "class": "logging.StreamHandler",
                "formatter": "audit_json" if formatter == "json" else "plain",
            },
        },
        "root": {"level": level, "handlers": ["console"]},
        "loggers": {
            "manifold": {"handlers": ["console"], "level": level, "propagate": False},
            "manifold.audit": {"handlers": ["audit_console"], "level": level, "propagate": False},
            "uvicorn.access": {"level": "WARNING"},
        },
    }


def configure_logging(settings: Settings) -> None:
    logging.config.dictConfig(logging_config(settings))
