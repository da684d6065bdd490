"""
Logging setup for the NockGate gateway.

Two console formats, selected by ``logging.format`` in the config:

  - **human** – single line, coloured when stderr is a terminal
  - **json**  – one JSON object per line, for log shippers

An optional log file always receives JSON.

Keys, signatures and addresses are long base58 runs.  Every handler
installed here carries ``Base58MaskFilter``, which cuts such runs down to
a short prefix before a record is formatted, so a full key never lands in
a log even when a caller forgets ``short()``.

Records may carry gateway context through ``extra=``; the JSON formatter
lifts ``swap_id``, ``action`` and ``step`` into top-level fields::

    logger.info("spend submitted", extra={"swap_id": swap.swap_id})
"""

from __future__ import annotations

import json
import logging
import re
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

CONTEXT_FIELDS = ("swap_id", "action", "step")

# shorter runs are note names, hashes and nonces; those stay readable
_BASE58_RUN_RE = re.compile(r"[1-9A-HJ-NP-Za-km-z]{40,}")

# third-party loggers that are noisy at INFO
_QUIET_LOGGERS = ("aiohttp.access", "asyncio")


def short(value: str, keep: int = 8) -> str:
    """Truncate a key / signature for display."""
    if len(value) <= keep:
        return value
    return value[:keep] + "…"


class Base58MaskFilter(logging.Filter):
    """Replace long base58 runs in the rendered message with ``short()``."""

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        masked = _BASE58_RUN_RE.sub(lambda m: short(m.group(0)), message)
        if masked != message:
            record.msg, record.args = masked, None
        return True


class _JSONFormatter(logging.Formatter):

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        for name in CONTEXT_FIELDS:
            value = getattr(record, name, None)
            if value is not None:
                entry[name] = value
        if record.exc_info and record.exc_info[1]:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


class _HumanFormatter(logging.Formatter):

    COLOURS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[1;31m",
    }
    RESET = "\033[0m"

    def __init__(self, colour: bool = True):
        super().__init__()
        self.colour = colour

    def format(self, record: logging.LogRecord) -> str:
        ts = datetime.fromtimestamp(record.created).strftime("%H:%M:%S")
        level = f"[{record.levelname:<7}]"
        if self.colour:
            level = f"{self.COLOURS.get(record.levelname, '')}{level}{self.RESET}"
        context = " ".join(
            f"{name}={getattr(record, name)}"
            for name in CONTEXT_FIELDS
            if getattr(record, name, None) is not None
        )
        line = f"{ts} {level} {record.name}: {record.getMessage()}"
        if context:
            line += f" ({context})"
        if record.exc_info and record.exc_info[1]:
            line += "\n" + self.formatException(record.exc_info)
        return line


def _handler(handler: logging.Handler, formatter: logging.Formatter) -> logging.Handler:
    handler.setFormatter(formatter)
    handler.addFilter(Base58MaskFilter())
    return handler


def setup_logging(
    level: str = "INFO",
    fmt: str = "human",
    log_file: Optional[str] = None,
) -> None:
    """
    Replace the root logger's handlers with the gateway's.

    Parameters
    ----------
    level : str
        Root level name; unknown names fall back to INFO.
    fmt : str
        ``"human"`` or ``"json"`` for the stderr handler.
    log_file : str, optional
        Extra JSON-lines file; parent directories are created.
    """
    root = logging.getLogger()
    root.setLevel(getattr(logging, level.upper(), logging.INFO))
    root.handlers.clear()

    if fmt == "json":
        console_fmt: logging.Formatter = _JSONFormatter()
    else:
        console_fmt = _HumanFormatter(colour=sys.stderr.isatty())
    root.addHandler(_handler(logging.StreamHandler(sys.stderr), console_fmt))

    if log_file:
        path = Path(log_file)
        path.parent.mkdir(parents=True, exist_ok=True)
        root.addHandler(_handler(logging.FileHandler(str(path)), _JSONFormatter()))

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
