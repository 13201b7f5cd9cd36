"""
prism.models.runner: one media source, interchangeable image models.

    runner = ImageModelRunner().get_media(frame)
    boxes = await runner.detect("object")      # default model for the type
    runner.use_model(my_model)
    labels = await runner.classify()

A model is anything exposing ``name``, ``event``, ``default_options`` and one
or more task callables ``task(media, options)`` (sync or async). Each finished
task emits the model's ``event`` with the result.
"""

from __future__ import annotations

import inspect
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Mapping, Optional

from ..config import merge_options
from ..errors import MissingArgumentError, UnsupportedSourceError, UnsupportedTaskError
from ..events import EventEmitter
from ..image_utils import IMAGE_SOURCE_DESCRIPTION, get_image_element
from ..logging_config import format_event

__all__ = ["DEFAULT_MODELS", "TASKS", "ImageModel", "ImageModelRunner"]

LOGGER = logging.getLogger(__name__)
LOGGER.addHandler(logging.NullHandler())

TASKS = ("classify", "detect", "generate", "stylize", "segment")

TaskFn = Callable[[Any, Mapping[str, Any]], Any]


@dataclass
class ImageModel:
    name: str
    event: str
    default_options: Mapping[str, Any] = field(default_factory=dict)
    classify: Optional[TaskFn] = None
    detect: Optional[TaskFn] = None
    generate: Optional[TaskFn] = None
    stylize: Optional[TaskFn] = None
    segment: Optional[TaskFn] = None


async def _object_model(options: Mapping[str, Any]) -> ImageModel:
    from .object_detector import ObjectDetector

    detector = await ObjectDetector(dict(options)).ready
    return ImageModel("ObjectDetector", "detect", detector.config, detect=lambda media, opts: detector.detect(media, opts))


async def _pose_model(options: Mapping[str, Any]) -> ImageModel:
    from .posenet import PoseNet

    net = await PoseNet(dict(options)).ready
    return ImageModel("PoseNet", "pose", net.config, detect=lambda media, opts: net.pose(media, opts))


async def _body_model(options: Mapping[str, Any]) -> ImageModel:
    from .body_segmenter import BodySegmenter

    seg = await BodySegmenter(dict(options)).ready
    return ImageModel("BodySegmenter", "segment", seg.config, segment=lambda media, opts: seg.segment(media, opts))


DEFAULT_MODELS: Dict[str, Dict[str, Callable[[Mapping[str, Any]], Awaitable[ImageModel]]]] = {
    "detect": {"object": _object_model, "pose": _pose_model},
    "segment": {"body": _body_model},
}


class ImageModelRunner(EventEmitter):
    def __init__(self, model: Optional[Any] = None, options: Optional[Mapping[str, Any]] = None) -> None:
        super().__init__()
        self.model = model
        self.options: Mapping[str, Any] = merge_options(options)
        self.media: Any = None

    def use_model(self, model: Any) -> "ImageModelRunner":
        self.model = model
        return self

    def get_media(self, media: Any) -> "ImageModelRunner":
        image = get_image_element(media)
        if image is None:
            raise UnsupportedSourceError(f"Invalid media {type(media).__name__}. Expected {IMAGE_SOURCE_DESCRIPTION}.")
        self.media = image
        return self

    async def _execute(self, task: str) -> Any:
        if self.media is None:
            raise MissingArgumentError("image", f"No image found. You must call get_media() before calling {task}().")
        if self.model is None:
            raise MissingArgumentError("model", f"No model found. You must call use_model() before calling {task}().")
        fn = getattr(self.model, task, None)
        name = getattr(self.model, "name", type(self.model).__name__)
        if fn is None:
            raise UnsupportedTaskError(f"Current model {name} does not support task '{task}'.")
        options = merge_options(getattr(self.model, "default_options", None), self.options)
        result = fn(self.media, options)
        if inspect.isawaitable(result):
            result = await result
        self.emit(getattr(self.model, "event", task), result)
        return result

    async def _with_default(self, task: str, kind: Optional[str]) -> Any:
        if self.model is None and kind is not None:
            factories = DEFAULT_MODELS.get(task, {})
            factory = factories.get(kind)
            if factory is None:
                known = ", ".join(sorted(factories)) or "none"
                raise UnsupportedTaskError(f"No default {task} model for type '{kind}' (known: {known}).")
            self.use_model(await factory(self.options))
            LOGGER.info("%s", format_event("runner.default_model", {"task": task, "type": kind, "model": self.model.name}))
        return await self._execute(task)

    async def classify(self) -> Any:
        return await self._execute("classify")

    async def generate(self) -> Any:
        return await self._execute("generate")

    async def stylize(self) -> Any:
        return await self._execute("stylize")

    async def detect(self, detection_type: Optional[str] = None) -> Any:
        return await self._with_default("detect", detection_type)

    async def segment(self, segmentation_type: Optional[str] = None) -> Any:
        return await self._with_default("segment", segmentation_type)
