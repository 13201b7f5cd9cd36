"""Shared plumbing for the YOLO-backed model wrappers."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Dict, Mapping, Optional, Type

import numpy as np

from .. import model_registry as mr
from ..arguments import ArgSeparator
from ..config import load_settings
from ..imaging import wrap
from ..lifecycle import MediaModel, create_class
from ..logging_config import format_event
from ._results import first_result

LOGGER = logging.getLogger(__name__)
LOGGER.addHandler(logging.NullHandler())

# shared by every task; each model adds its own keys
BASE_DEFAULTS: Dict[str, Any] = {
    "model": None,
    "small": None,
    "imgsz": None,
    "iou": 0.45,
}


def registry_loader(task: str) -> Callable[[Mapping[str, Any]], Any]:
    """Loader for ``create_class``: registry lookup off the event loop."""

    async def load(config: Mapping[str, Any]) -> Any:
        small = config.get("small")
        if small is None:
            small = load_settings().small_models
        loader = mr.LOADERS[task]
        return await asyncio.to_thread(loader, small=bool(small), override=config.get("model"))

    load.__name__ = f"load_{task}"
    return load


def yolo_class(task: str, defaults: Mapping[str, Any]) -> Type[MediaModel]:
    return create_class(registry_loader(task), {**BASE_DEFAULTS, **defaults})


def to_bgr(image: Any) -> np.ndarray:
    """Any image source → contiguous BGR uint8, the layout Ultralytics expects for arrays."""
    rgb = wrap(image).to_tensor()
    if rgb.dtype != np.uint8:
        rgb = np.clip(np.rint(rgb * 255.0), 0, 255).astype(np.uint8) if np.issubdtype(rgb.dtype, np.floating) else rgb.astype(np.uint8)
    if rgb.shape[2] == 1:
        rgb = np.repeat(rgb, 3, axis=2)
    return np.ascontiguousarray(rgb[:, :, 2::-1])


class YoloModel:
    """
    Mixin for ``create_class`` products that run ``instance.predict``.

    A string argument to the constructor names the weights; a number goes to
    ``number_option`` (confidence threshold unless a model says otherwise).
    """

    number_option: Optional[str] = "threshold"
    task: str = "detect"

    def options_from_args(self, args: ArgSeparator) -> Mapping[str, Any]:
        options: Dict[str, Any] = dict(args.options or {})
        if args.string is not None:
            options.setdefault("model", args.string)
        if args.number is not None and self.number_option:
            options.setdefault(self.number_option, args.number)
        return options

    async def predict(self, image: Any, config: Mapping[str, Any], **extra: Any) -> Any:
        """Run the loaded YOLO model on *image* in a worker thread; returns the first result."""
        bgr = to_bgr(image)
        imgsz = config.get("imgsz") or load_settings().imgsz[0]
        kwargs: Dict[str, Any] = {"imgsz": imgsz, "verbose": False, **extra}
        LOGGER.debug("%s", format_event("predict.start", {"task": self.task, "shape": bgr.shape}))
        instance = getattr(self, "instance")
        results = await asyncio.to_thread(instance.predict, bgr, **kwargs)
        return first_result(results)
