"""
Object detection with YOLO boxes.

    detector = await object_detector()                # or ObjectDetector(video, cb)
    results = await detector.detect(image)            # [{label, confidence, x, ...}]

Every finished ``detect`` also emits ``"detect"`` with the result list.
"""

from __future__ import annotations

from typing import Any, Dict, List, Mapping

from ..imaging import wrap
from ..lifecycle import create_factory
from ._results import detections_from_result
from ._yolo import YoloModel, yolo_class

__all__ = ["DEFAULTS", "ObjectDetector", "object_detector"]

DEFAULTS: Dict[str, Any] = {
    "threshold": 0.25,
    "max_detections": 300,
    "labels": None,
}


class ObjectDetector(YoloModel, yolo_class("detect", DEFAULTS)):  # type: ignore[misc]
    task = "detect"

    def __init__(self, *args: Any) -> None:
        super().__init__(*args)
        self.detect = self._make_image_method(self._detect, "detect", number_option="threshold")

    async def _detect(self, image: Any, config: Mapping[str, Any]) -> List[Dict[str, Any]]:
        wrapper = wrap(image)
        res = await self.predict(
            image,
            config,
            conf=float(config["threshold"]),
            iou=float(config["iou"]),
            max_det=int(config["max_detections"]),
        )
        detections = detections_from_result(res, wrapper.get_width(), wrapper.get_height())
        labels = config.get("labels")
        if labels:
            wanted = {str(label).lower() for label in labels}
            detections = [d for d in detections if d["label"].lower() in wanted]
        return detections


object_detector = create_factory(ObjectDetector)
