"""Person segmentation on YOLO instance-segmentation weights."""

from __future__ import annotations

from typing import Any, Dict, Mapping

from ..imaging import wrap
from ..lifecycle import create_factory
from ._results import segments_from_result
from ._yolo import YoloModel, yolo_class

__all__ = ["DEFAULTS", "BodySegmenter", "body_segmenter"]

DEFAULTS: Dict[str, Any] = {
    "threshold": 0.25,
    "mask_threshold": 0.5,
    "labels": ("person",),
}


class BodySegmenter(YoloModel, yolo_class("segment", DEFAULTS)):  # type: ignore[misc]
    """
    ``segment(image?, options?, callback?)`` → ``{mask, background_mask, segments}``.

    Only ``labels`` (people by default) are kept; pass ``{"labels": None}`` for
    every class. Emits ``"segment"``.
    """

    task = "segment"

    def __init__(self, *args: Any) -> None:
        super().__init__(*args)
        self.segment = self._make_image_method(self._segment, "segment", number_option="threshold")

    async def _segment(self, image: Any, config: Mapping[str, Any]) -> Dict[str, Any]:
        wrapper = wrap(image)
        res = await self.predict(image, config, conf=float(config["threshold"]), iou=float(config["iou"]))
        return segments_from_result(
            res,
            width=wrapper.get_width(),
            height=wrapper.get_height(),
            labels=config.get("labels"),
            threshold=float(config["mask_threshold"]),
        )


body_segmenter = create_factory(BodySegmenter)
