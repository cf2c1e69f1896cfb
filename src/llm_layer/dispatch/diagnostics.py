"""
Per-request verbosity for dispatcher diagnostics.

The request's error_level decides what the dispatcher says about its
progress: QUIET demotes every message to DEBUG, the other levels drop
messages below themselves and log the rest at their own level.
"""

from typing import Any

import structlog

from llm_layer.models.enums import ErrorLevel

_METHODS = {
    ErrorLevel.INFO: "info",
    ErrorLevel.WARN: "warning",
    ErrorLevel.ERROR: "error",
}


class Diagnostics:
    """structlog logger wrapper filtered by an ErrorLevel."""

    def __init__(self, error_level: ErrorLevel, logger: Any = None, **context: Any):
        self.error_level = error_level
        self._logger = (logger or structlog.get_logger("llm_layer.dispatch")).bind(**context)

    def _log(self, level: ErrorLevel, event: str, **kw: Any) -> None:
        if self.error_level == ErrorLevel.QUIET:
            self._logger.debug(event, **kw)
            return
        if ErrorLevel.get_ordinal(level) < ErrorLevel.get_ordinal(self.error_level):
            return
        getattr(self._logger, _METHODS[level])(event, **kw)

    def info(self, event: str, **kw: Any) -> None:
        self._log(ErrorLevel.INFO, event, **kw)

    def warning(self, event: str, **kw: Any) -> None:
        self._log(ErrorLevel.WARN, event, **kw)

    def error(self, event: str, **kw: Any) -> None:
        self._log(ErrorLevel.ERROR, event, **kw)
