# crossarb/events.py
"""
Structured event emission for the orchestrator

One log line per event, `event key=value ...`, so the file handler output
can be grepped or shipped as-is.
"""

import logging
from decimal import Decimal
from enum import Enum

logger = logging.getLogger("crossarb.events")

WARNING_EVENTS = {
    "iteration_skipped",
    "leg_failed",
    "partial_execution",
    "rebalance_failed",
}
ERROR_EVENTS = {"iteration_error"}


def _format_value(value) -> str:
    if isinstance(value, Enum):
        value = value.value
    if isinstance(value, Decimal):
        return f"{value.normalize():f}" if value == value.to_integral() else str(value)
    if isinstance(value, float):
        return f"{value:.6g}"
    text = str(value)
    return f'"{text}"' if " " in text else text


class LoggingEventSink:
    """EventSink writing through the logging module"""

    def __init__(self, log: logging.Logger = logger):
        self.log = log

    def emit(self, event: str, **fields) -> None:
        if event in ERROR_EVENTS:
            level = logging.ERROR
        elif event in WARNING_EVENTS:
            level = logging.WARNING
        else:
            level = logging.INFO

        parts = " ".join(f"{key}={_format_value(value)}" for key, value in fields.items())
        self.log.log(level, f"{event} {parts}".rstrip())
