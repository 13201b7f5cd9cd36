"""Minimal logging helpers for prism.

* ``setup_logging`` initialises a single file handler for the root logger.
* ``bind_context`` is a no-op context manager that tags a block (model
  loads, for instance) for structured logging.
* ``get_log_path`` exposes the log file once ``setup_logging`` has run.

Library modules never configure handlers themselves; they attach a
``NullHandler`` and leave it to applications (or the CLI) to call
``setup_logging``.
"""

from __future__ import annotations

import logging
import os
import sys
import tempfile
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional

__all__ = [
    "bind_context",
    "format_event",
    "get_log_path",
    "setup_logging",
]

_configured = False
_run_dir: Optional[Path] = None
_log_path: Optional[Path] = None


def _platform_data_dir() -> Path:
    """Return a per-user writable application data directory."""
    app = "prism"
    if os.name == "nt":
        base = Path(os.getenv("LOCALAPPDATA") or os.getenv("APPDATA") or (Path.home() / "AppData" / "Local"))
        return base / app
    if sys.platform == "darwin":
        return Path.home() / "Library" / "Application Support" / app
    xdg_home = os.getenv("XDG_DATA_HOME")
    if xdg_home:
        return Path(xdg_home) / app
    return Path.home() / ".local" / "share" / app


def _default_logs_dir() -> Path:
    return _platform_data_dir() / "logs"


def get_log_path() -> Optional[Path]:
    """Expose the resolved log file path for modules that need it."""
    return _log_path


def format_event(event: str, info: dict[str, object]) -> str:
    """Render ``event key=value ...`` with keys sorted and ``None`` values dropped."""
    detail = " ".join(f"{key}={info[key]}" for key in sorted(info) if info[key] is not None)
    return f"{event} {detail}" if detail else event


def _resolve_log_path(file_env: str) -> Path:
    override = os.getenv(file_env)
    if override:
        path = Path(override).expanduser()
        path.parent.mkdir(parents=True, exist_ok=True)
        return path
    logs_dir = _default_logs_dir()
    logs_dir.mkdir(parents=True, exist_ok=True)
    return logs_dir / "prism.log"


def setup_logging(
    *,
    level_env: str = "PRISM_LOG_LEVEL",
    file_env: str = "PRISM_LOG_FILE",
) -> Path:
    """
    Configure the root logger with a single file handler.

    The handler logs WARNING and higher (or the level named by
    ``PRISM_LOG_LEVEL``) to ``prism.log`` (or the path in ``PRISM_LOG_FILE``).
    The function is idempotent: repeated calls return the previously
    configured log directory without reconfiguring.
    """
    global _configured, _run_dir, _log_path

    if _configured:
        return _run_dir if _run_dir is not None else _default_logs_dir()

    level_name = os.getenv(level_env, "WARNING").upper().strip()
    level = getattr(logging, level_name, logging.WARNING)
    if not isinstance(level, int):
        level = logging.WARNING

    handler: logging.Handler
    try:
        log_path = _resolve_log_path(file_env)
        handler = logging.FileHandler(log_path, encoding="utf-8")
    except OSError:
        log_path = Path(tempfile.gettempdir()) / "prism.log"
        handler = logging.FileHandler(log_path, encoding="utf-8")

    _log_path = log_path
    _run_dir = log_path.parent

    handler.setLevel(level)
    handler.setFormatter(logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s"))

    root = logging.getLogger()
    for existing in list(root.handlers):
        root.removeHandler(existing)
    root.addHandler(handler)
    root.setLevel(level)

    # Ultralytics prints INFO banners on every load.
    for name in ("ultralytics", "ultralytics.nn.autobackend"):
        lg = logging.getLogger(name)
        lg.handlers.clear()
        lg.setLevel(logging.ERROR)
        lg.propagate = False

    _configured = True
    return _run_dir


@contextmanager
def bind_context(**_: object) -> Iterator[None]:
    """Tag a block with key=value context; currently a no-op."""
    yield
