"""
Human pose estimation on YOLO pose weights.

Results follow the PoseNet layout: each entry has a ``pose`` (score,
``keypoints`` list and one ``{x, y, confidence}`` entry per named part) and a
``skeleton`` of connected keypoint pairs.

With a bound video, ``start()`` keeps estimating frame after frame and
publishes every result on ``"pose"`` until ``stop()`` or the end of the video.
"""

from __future__ import annotations

import asyncio
import logging
import re
from typing import Any, Dict, List, Mapping, Optional

from ..arguments import ArgSeparator
from ..image_ops import flip_image
from ..lifecycle import create_factory
from ..logging_config import format_event
from ._results import poses_from_result
from ._yolo import YoloModel, yolo_class

__all__ = ["DEFAULTS", "PoseNet", "pose_net", "to_detection_type"]

LOGGER = logging.getLogger(__name__)
LOGGER.addHandler(logging.NullHandler())

SINGLE = "single-person"
MULTI = "multi-person"

DEFAULTS: Dict[str, Any] = {
    "detection_type": MULTI,
    "min_confidence": 0.5,
    "score_threshold": 0.25,
    "max_pose_detections": 5,
    "flip_horizontal": False,
}


def to_detection_type(text: Optional[str]) -> Optional[str]:
    """Map any text containing "single"/"multi" to a detection type; ``None`` otherwise."""
    if not text:
        return None
    if re.search("single", text, re.IGNORECASE):
        return SINGLE
    if re.search("multi", text, re.IGNORECASE):
        return MULTI
    return None


class PoseNet(YoloModel, yolo_class("pose", DEFAULTS)):  # type: ignore[misc]
    task = "pose"
    number_option = "min_confidence"

    def __init__(self, *args: Any) -> None:
        super().__init__(*args)
        self._loop_task: Optional[asyncio.Task[None]] = None
        self.single_pose = self._make_image_method(self._single, "pose", number_option="min_confidence")
        self.multi_pose = self._make_image_method(self._multi, "pose", number_option="min_confidence")

    @property
    def detection_type(self) -> str:
        return to_detection_type(self.config.get("detection_type")) or MULTI

    def options_from_args(self, args: ArgSeparator) -> Mapping[str, Any]:
        # a "single"/"multiple" string picks the decoding mode, any other string names weights
        options = dict(args.options or {})
        mode = to_detection_type(args.string)
        if mode is not None:
            options.setdefault("detection_type", mode)
        elif args.string is not None:
            options.setdefault("model", args.string)
        if args.number is not None:
            options.setdefault("min_confidence", args.number)
        return options

    def pose(self, *args: Any) -> "asyncio.Task[Any]":
        """Estimate with the configured detection type."""
        method = self.single_pose if self.detection_type == SINGLE else self.multi_pose
        return method(*args)

    async def _estimate(self, image: Any, config: Mapping[str, Any], single: bool) -> List[Dict[str, Any]]:
        if config["flip_horizontal"]:
            # mirrored input gives mirrored keypoints
            image = await flip_image(image)
        res = await self.predict(
            image,
            config,
            conf=float(config["score_threshold"]),
            iou=float(config["iou"]),
            max_det=1 if single else int(config["max_pose_detections"]),
        )
        return poses_from_result(
            res,
            min_confidence=float(config["min_confidence"]),
            max_poses=1 if single else int(config["max_pose_detections"]),
        )

    async def _single(self, image: Any, config: Mapping[str, Any]) -> List[Dict[str, Any]]:
        return await self._estimate(image, config, single=True)

    async def _multi(self, image: Any, config: Mapping[str, Any]) -> List[Dict[str, Any]]:
        return await self._estimate(image, config, single=False)

    # ────────────────────────────────────────────────────────────
    #  continuous estimation on the bound video
    # ────────────────────────────────────────────────────────────
    @property
    def running(self) -> bool:
        return self._loop_task is not None and not self._loop_task.done()

    def start(self, max_frames: Optional[int] = None) -> "asyncio.Task[None]":
        """Estimate on every frame of the bound video until it ends; results arrive as ``"pose"`` events."""
        if self.video is None:
            raise ValueError("start() needs a video bound in the constructor.")
        if not self.running:
            self._loop_task = asyncio.ensure_future(self._run_loop(max_frames))
        assert self._loop_task is not None
        return self._loop_task

    async def _run_loop(self, max_frames: Optional[int]) -> None:
        assert self.video is not None
        frames = 0
        while max_frames is None or frames < max_frames:
            await self.pose()
            if self.video.ended:
                break
            frames += 1
        LOGGER.debug("%s", format_event("pose.loop.done", {"frames": frames}))

    async def stop(self) -> None:
        task, self._loop_task = self._loop_task, None
        if task is None or task.done():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass


pose_net = create_factory(PoseNet)
