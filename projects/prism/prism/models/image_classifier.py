"""Whole-image classification; results are the top-K labels by confidence."""

from __future__ import annotations

from typing import Any, Dict, List, Mapping

from ..lifecycle import create_factory
from ._results import topk_from_probs
from ._yolo import YoloModel, yolo_class

__all__ = ["DEFAULTS", "ImageClassifier", "image_classifier"]

DEFAULTS: Dict[str, Any] = {"topk": 3}


class ImageClassifier(YoloModel, yolo_class("classify", DEFAULTS)):  # type: ignore[misc]
    """
    ``classify(image?, topk?, callback?)`` → ``[{label, confidence}, ...]``.

    A number passed to the constructor or to ``classify`` is the number of
    labels returned. Emits ``"classify"``.
    """

    task = "classify"
    number_option = "topk"

    def __init__(self, *args: Any) -> None:
        super().__init__(*args)
        self.classify = self._make_image_method(self._classify, "classify", number_option="topk")

    async def _classify(self, image: Any, config: Mapping[str, Any]) -> List[Dict[str, Any]]:
        res = await self.predict(image, config)
        probs = getattr(res, "probs", None) if res is not None else None
        if probs is None:
            return []
        names = getattr(res, "names", None) or getattr(self.instance, "names", None)
        return topk_from_probs(probs, names=names, k=int(config["topk"]))


image_classifier = create_factory(ImageClassifier)
