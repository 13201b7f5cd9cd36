"""
Process-wide settings and per-model option merging.

Settings come from the environment once per call to ``load_settings``; model
options are merged from a model's defaults and the caller's overrides into a
read-only mapping that never changes after construction.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from types import MappingProxyType
from typing import Any, Mapping, Optional, Tuple

__all__ = ["Settings", "load_settings", "merge_options", "parse_imgsz"]

_TRUTHY = {"1", "true", "yes", "on"}
_FALSY = {"0", "false", "no", "off"}

_PACKAGE_DIR = Path(__file__).resolve().parent


def _env_flag(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    value = raw.strip().lower()
    if value in _TRUTHY:
        return True
    if value in _FALSY:
        return False
    return default


def parse_imgsz(value: str) -> Tuple[int, int]:
    """Parse ``640``, ``640x512`` or ``416,320`` into ``(width, height)``."""
    text = value.strip().lower().replace(",", "x")
    parts = [p for p in text.split("x") if p]
    try:
        numbers = [int(p) for p in parts]
    except ValueError:
        raise ValueError(f"Invalid image size {value!r}; expected N or WxH.") from None
    if len(numbers) == 1:
        return numbers[0], numbers[0]
    if len(numbers) == 2:
        return numbers[0], numbers[1]
    raise ValueError(f"Invalid image size {value!r}; expected N or WxH.")


@dataclass(frozen=True)
class Settings:
    model_dir: Path
    prefer_onnx: bool = True
    small_models: bool = False
    imgsz: Tuple[int, int] = (640, 640)
    log_level: str = "WARNING"
    log_file: Optional[Path] = None


def load_settings() -> Settings:
    """Read ``PRISM_*`` environment variables into a frozen ``Settings``."""
    model_dir_env = os.getenv("PRISM_MODEL_DIR")
    model_dir = Path(model_dir_env).expanduser() if model_dir_env else _PACKAGE_DIR / "model"

    imgsz = (640, 640)
    imgsz_env = os.getenv("PRISM_IMGSZ")
    if imgsz_env:
        imgsz = parse_imgsz(imgsz_env)

    log_file_env = os.getenv("PRISM_LOG_FILE")
    return Settings(
        model_dir=model_dir,
        prefer_onnx=_env_flag("PRISM_PREFER_ONNX", True),
        small_models=_env_flag("PRISM_SMALL_MODELS", False),
        imgsz=imgsz,
        log_level=os.getenv("PRISM_LOG_LEVEL", "WARNING").strip().upper(),
        log_file=Path(log_file_env).expanduser() if log_file_env else None,
    )


def merge_options(
    defaults: Optional[Mapping[str, Any]],
    options: Optional[Mapping[str, Any]] = None,
) -> Mapping[str, Any]:
    """
    Merge *options* over *defaults* (caller wins) into a read-only mapping.

    The result is a fresh dict behind a ``MappingProxyType``, so neither the
    shared defaults nor the caller's dict can be mutated through it.
    """
    merged: dict[str, Any] = dict(defaults or {})
    if options:
        merged.update(options)
    return MappingProxyType(merged)
