from __future__ import annotations

import json
import logging
import os
import sys
from typing import Optional

from dotenv import load_dotenv

_configured = False

TEXT_FORMAT = "[%(asctime)s] %(levelname)s %(name)s | %(message)s"


class JsonHandler(logging.StreamHandler):
    """One JSON object per record, written to stdout."""
    def __init__(self, stream=None):
        super().__init__(stream=stream or sys.stdout)

    def emit(self, record: logging.LogRecord) -> None:
        try:
            obj = {
                "ts": record.created,
                "lvl": record.levelname,
                "name": record.name,
                "msg": record.getMessage(),
            }
            for k in ("filename", "lineno", "funcName"):
                obj[k] = getattr(record, k, None)
            if record.exc_info:
                obj["exc"] = logging.Formatter().formatException(record.exc_info)
            self.stream.write(json.dumps(obj, ensure_ascii=False, default=str) + "\n")
            self.flush()
        except Exception:  # pragma: no cover
            self.handleError(record)


def _parse_level(name: str) -> int:
    lvl = logging.getLevelName(name.upper())
    return lvl if isinstance(lvl, int) else logging.INFO


def setup(level: Optional[str] = None, json_mode: Optional[bool] = None, *, force: bool = False) -> None:
    """Configure the root logger.

    - Loads ``.env`` (if present) before reading the environment
    - Reads LOG_LEVEL, LOG_JSON when the arguments are None
    - Later calls are ignored unless ``force=True``
    """
    global _configured
    if _configured and not force:
        return

    load_dotenv()

    py_level = _parse_level(level or os.getenv("LOG_LEVEL", "INFO"))
    json_flag = json_mode if json_mode is not None else (os.getenv("LOG_JSON", "0") == "1")

    root = logging.getLogger()
    # drop handlers installed by earlier setup() calls only, pytest keeps its own
    for h in list(root.handlers):
        if getattr(h, "_fluxdispatch", False):
            root.removeHandler(h)
    root.setLevel(py_level)

    if json_flag:
        handler: logging.Handler = JsonHandler()
    else:
        handler = logging.StreamHandler(stream=sys.stdout)
        handler.setFormatter(logging.Formatter(fmt=TEXT_FORMAT))
    handler._fluxdispatch = True  # type: ignore[attr-defined]
    root.addHandler(handler)

    _configured = True


def get(name: str) -> logging.Logger:
    """Namespaced logger helper."""
    return logging.getLogger(name)


def set_level(level: str) -> None:
    """Adjust the root log level at runtime (e.g. during tests)."""
    logging.getLogger().setLevel(_parse_level(level))
