"""
Weight selection and loading for the YOLO-backed model wrappers.

Every task has one ordered list of checkpoint names; the first one that
loads wins. A user override (a path or file name passed to a model) is tried
before the table. ONNX exports are only considered when onnxruntime is
importable, and ``PRISM_PREFER_ONNX=0`` moves them behind the PyTorch files.
When nothing loads the registry raises ``RuntimeError``: there is no silent
fallback to an empty model.
"""

from __future__ import annotations

import functools
import importlib
import importlib.util
import logging
import time
from pathlib import Path
from typing import Iterable, Iterator, Optional, Union

from .config import load_settings
from .logging_config import bind_context, format_event

LOGGER = logging.getLogger(__name__)
LOGGER.addHandler(logging.NullHandler())

_ERROR_TOKENS = ("error", "fail", "warn", "skip")


def _log(event: str, **info: object) -> None:
    level = logging.WARNING if any(token in event for token in _ERROR_TOKENS) else logging.DEBUG
    LOGGER.log(level, "%s", format_event(event, info))


WeightSpec = Union[str, Path]

# ────────────────────────────────────────────────────────────────
#  *** WEIGHT SELECTION TABLE ***
#  File names are resolved against the model directory at lookup time.
# ────────────────────────────────────────────────────────────────
_DETECT_LIST = [
    "yolo11x.pt",
    "yolov8x.pt",
    "yolo11s.onnx",
    "yolo11s.pt",
    "yolov8s.pt",
    "yolo11n.pt",
    "yolov8n.pt",
]

_SEGMENT_LIST = [
    "yolo11x-seg.pt",
    "yolov8x-seg.pt",
    "yolo11s-seg.onnx",
    "yolo11s-seg.pt",
    "yolo11n-seg.pt",
    "yolov8n-seg.pt",
]

_CLASSIFY_LIST = [
    "yolo11x-cls.pt",
    "yolov8x-cls.pt",
    "yolo11s-cls.pt",
    "yolo11n-cls.pt",
    "yolov8n-cls.pt",
]

_POSE_LIST = [
    "yolo11x-pose.pt",
    "yolov8x-pose.pt",
    "yolo11s-pose.pt",
    "yolo11n-pose.pt",
    "yolov8n-pose.pt",
]

# “small / fast” (live video / tiny devices)
_DETECT_SMALL_LIST = ["yolo11n.onnx", "yolo11n.pt", "yolov8n.pt"]
_SEGMENT_SMALL_LIST = ["yolo11n-seg.onnx", "yolo11n-seg.pt", "yolov8n-seg.pt"]
_CLASSIFY_SMALL_LIST = ["yolo11n-cls.pt", "yolov8n-cls.pt"]
_POSE_SMALL_LIST = ["yolo11n-pose.onnx", "yolo11n-pose.pt", "yolov8n-pose.pt"]

WEIGHT_PRIORITY: dict[str, list[str]] = {
    "detect": _DETECT_LIST,
    "segment": _SEGMENT_LIST,
    "classify": _CLASSIFY_LIST,
    "pose": _POSE_LIST,
    # small / fast
    "detect_small": _DETECT_SMALL_LIST,
    "segment_small": _SEGMENT_SMALL_LIST,
    "classify_small": _CLASSIFY_SMALL_LIST,
    "pose_small": _POSE_SMALL_LIST,
}


# ────────────────────────────────────────────────────────────────
#  Internal helpers
# ────────────────────────────────────────────────────────────────
def model_dir() -> Path:
    return load_settings().model_dir


def ort_available() -> bool:
    return importlib.util.find_spec("onnxruntime") is not None


def _priority_paths(key: str, directory: Path) -> list[Path]:
    return [directory / name for name in WEIGHT_PRIORITY.get(key, [])]


def _resolve_override(override: WeightSpec, directory: Path) -> Path:
    """Bare file names live in the model directory; anything else is a path."""
    path = Path(override).expanduser()
    if not path.is_absolute() and path.parent == Path(".") and not path.exists():
        return directory / path
    return path


def _candidate_weights(
    task: str,
    *,
    small: bool,
    override: Optional[WeightSpec],
) -> Iterator[Path]:
    """
    Yield candidate weight paths in preference order, de-duplicated.

    Order rules:
        - User override (if provided) first.
        - Preferred size list (small vs. regular), then the regular list.
        - ONNX entries are dropped without onnxruntime and deferred when ONNX
          is not preferred.
    """
    settings = load_settings()
    directory = settings.model_dir
    prefer_onnx = settings.prefer_onnx
    ort_ok = ort_available()
    _log("weights.select.start", task=task, small=small, prefer_onnx=int(prefer_onnx), ort=int(ort_ok))

    seen: set[str] = set()
    ordered: list[Path] = []

    def _add(path: Path) -> None:
        key = str(path).lower()
        if key in seen:
            return
        seen.add(key)
        ordered.append(path)

    def _extend(paths: Iterable[Path]) -> None:
        deferred: list[Path] = []
        for p in paths:
            if p.suffix.lower() == ".onnx":
                if not ort_ok:
                    _log("weights.select.skip", task=task, weight=p.name, reason="onnxruntime unavailable")
                    continue
                if not prefer_onnx:
                    deferred.append(p)
                    continue
            _add(p)
        for p in deferred:
            _add(p)

    if override is not None:
        _add(_resolve_override(override, directory))

    if small:
        _extend(_priority_paths(f"{task}_small", directory))
    _extend(_priority_paths(task, directory))

    yield from ordered


def _resolve_yolo_class() -> Optional[type]:
    """
    Import ``ultralytics.YOLO`` lazily so tests can install a fake
    ``ultralytics`` module before the first load.
    """
    try:
        mod = importlib.import_module("ultralytics")
    except ImportError:
        return None
    return getattr(mod, "YOLO", None)


@functools.lru_cache(maxsize=None)
def _load(weight: Path, *, task: str) -> Optional[object]:
    """Cached ``YOLO(path, task=...)``; ``None`` when the file is absent."""
    yolo_cls = _resolve_yolo_class()
    if yolo_cls is None:
        raise RuntimeError("ultralytics is not installed; `pip install ultralytics`.")
    if not weight.exists():
        _log("weights.load.skip", task=task, weight=str(weight), reason="missing")
        return None

    with bind_context(model_task=task, weight_path=str(weight)):
        start = time.perf_counter()
        try:
            model = yolo_cls(str(weight), task=task)
        except TypeError:
            model = yolo_cls(str(weight))
        elapsed_ms = (time.perf_counter() - start) * 1000.0
    _log("weights.load.success", task=task, weight=str(weight), ms=f"{elapsed_ms:.1f}")
    return model


def _require(model: Optional[object], task: str) -> object:
    """Abort loudly when no weight is available."""
    if model is None:
        raise RuntimeError(f"[model_registry] no weight available for task '{task}' in {model_dir()}")
    return model


def _load_with_fallback(task: str, *, small: bool, override: Optional[WeightSpec]) -> object:
    candidates = list(_candidate_weights(task, small=small, override=override))
    last_exc: Optional[Exception] = None
    reasons: list[str] = []

    for idx, weight in enumerate(candidates):
        try:
            model = _load(weight, task=task)
        except Exception as exc:
            last_exc = exc
            reasons.append(f"{weight.name}: {type(exc).__name__}: {exc}")
            _log("weights.select.fail", task=task, weight=str(weight), index=idx, reason=f"{type(exc).__name__}: {exc}")
            continue
        if model is not None:
            _log("weights.select.hit", task=task, weight=str(weight), index=idx)
            return model
        reasons.append(f"{weight.name}: missing")

    _log("weights.select.fail_all", task=task, reasons="; ".join(reasons) or "no-candidates")
    if last_exc is not None:
        raise RuntimeError(
            f"[model_registry] failed to load any weight for task '{task}'. Last error: {last_exc}"
        ) from last_exc
    return _require(None, task)


# ────────────────────────────────────────────────────────────────
#  Public helpers
# ────────────────────────────────────────────────────────────────
def pick_weight(task: str, *, small: bool = False) -> Optional[Path]:
    """First existing weight for *task* (small list first when asked), or ``None``."""
    for path in _candidate_weights(task, small=small, override=None):
        if path.exists():
            return path
    return None


def candidate_weights(
    task: str,
    *,
    small: bool = False,
    override: Optional[WeightSpec] = None,
) -> list[Path]:
    return list(_candidate_weights(task, small=small, override=override))


def load_detector(*, small: bool = False, override: Optional[WeightSpec] = None) -> object:
    return _load_with_fallback("detect", small=small, override=override)


def load_segmenter(*, small: bool = False, override: Optional[WeightSpec] = None) -> object:
    return _load_with_fallback("segment", small=small, override=override)


def load_classifier(*, small: bool = False, override: Optional[WeightSpec] = None) -> object:
    return _load_with_fallback("classify", small=small, override=override)


def load_pose(*, small: bool = False, override: Optional[WeightSpec] = None) -> object:
    return _load_with_fallback("pose", small=small, override=override)


LOADERS = {
    "detect": load_detector,
    "segment": load_segmenter,
    "classify": load_classifier,
    "pose": load_pose,
}

__all__ = [
    "LOADERS",
    "WEIGHT_PRIORITY",
    "candidate_weights",
    "load_classifier",
    "load_detector",
    "load_pose",
    "load_segmenter",
    "model_dir",
    "ort_available",
    "pick_weight",
]
