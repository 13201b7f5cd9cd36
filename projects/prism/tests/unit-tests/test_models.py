from __future__ import annotations

import asyncio
import sys
from pathlib import Path
from typing import Any, List

import numpy as np
import pytest

import prism.model_registry as mr
from prism.errors import MissingArgumentError, UnsupportedSourceError, UnsupportedTaskError
from prism.imaging import wrap
from prism.media import SyntheticCapture, VideoElement
from prism.models import (
    BodySegmenter,
    ImageClassifier,
    ImageModel,
    ImageModelRunner,
    ObjectDetector,
    PoseNet,
    image_classifier,
    object_detector,
)
from prism.models._results import first_result
from prism.models._yolo import to_bgr
from prism.models.posenet import MULTI, SINGLE, to_detection_type


def test_to_bgr_swaps_channels(rgb_array) -> None:
    bgr = to_bgr(rgb_array)
    assert bgr.flags["C_CONTIGUOUS"]
    assert bgr[0, 0].tolist() == [0, 0, 200]
    grey = to_bgr(np.full((2, 2), 0.5, dtype=np.float32))
    assert grey.shape == (2, 2, 3) and grey.dtype == np.uint8


# ────────────────────────────── detection ──────────────────────────────
async def test_detect_returns_sorted_boxes(fake_ultralytics, pil_image) -> None:
    detector = await ObjectDetector().ready
    seen: List[Any] = []
    detector.on("detect", seen.append)

    results = await detector.detect(pil_image)

    assert [r["label"] for r in results] == ["dog", "person"]
    top = results[0]
    assert top["confidence"] == pytest.approx(0.9)
    assert (top["x"], top["y"], top["width"], top["height"]) == (0.0, 0.0, 4.0, 3.0)
    assert top["normalized"]["width"] == pytest.approx(0.5)
    assert seen == [results]

    call = detector.instance.calls[-1]
    assert call["shape"] == (6, 8, 3)
    assert call["conf"] == pytest.approx(0.25)
    assert call["verbose"] is False


async def test_detect_threshold_from_constructor_and_call(fake_ultralytics, pil_image) -> None:
    detector = await ObjectDetector(0.6).ready
    assert detector.config["threshold"] == 0.6
    await detector.detect(pil_image, 0.8)
    assert detector.instance.calls[-1]["conf"] == pytest.approx(0.8)
    assert detector.config["threshold"] == 0.6


async def test_detect_label_filter(fake_ultralytics, pil_image) -> None:
    detector = await ObjectDetector({"labels": ["Person"]}).ready
    results = await detector.detect(pil_image)
    assert [r["label"] for r in results] == ["person"]


async def test_detect_accepts_an_image_wrapper(fake_ultralytics, pil_image) -> None:
    detector = await ObjectDetector().ready
    results = await detector.detect(wrap(pil_image))
    assert [r["label"] for r in results] == ["dog", "person"]
    assert detector.instance.calls[-1]["shape"] == (6, 8, 3)


def test_first_result_takes_the_head_of_any_sequence() -> None:
    assert first_result(None) is None
    assert first_result([]) is None
    assert first_result(iter(["a", "b"])) == "a"


async def test_string_argument_names_the_weights(fake_ultralytics, model_dir: Path) -> None:
    (model_dir / "custom.pt").write_text("x", encoding="utf-8")
    detector = await ObjectDetector("custom.pt").ready
    assert detector.instance.weight == str(model_dir / "custom.pt")
    assert detector.model.weight == str(model_dir / "custom.pt")


async def test_detect_on_bound_video(fake_ultralytics, video) -> None:
    detector = await ObjectDetector(video).ready
    results = await detector.detect()
    assert detector.instance.calls[-1]["shape"] == (24, 32, 3)
    assert results[0]["normalized"]["width"] == pytest.approx(0.5)


async def test_factory_with_callback_returns_instance(fake_ultralytics, pil_image) -> None:
    outcomes: List[Any] = []
    detector = object_detector(lambda err, model: outcomes.append((err, model)))
    assert isinstance(detector, ObjectDetector)
    await detector.ready
    assert outcomes == [(None, detector)]
    classifier = await image_classifier({"topk": 1})
    assert isinstance(classifier, ImageClassifier)


async def test_missing_ultralytics_fails_ready(monkeypatch: pytest.MonkeyPatch, model_dir: Path) -> None:
    (model_dir / "yolo11n.pt").write_text("x", encoding="utf-8")
    monkeypatch.setitem(sys.modules, "ultralytics", None)
    monkeypatch.setattr(mr, "ort_available", lambda: False)
    mr._load.cache_clear()
    errors: List[Any] = []
    detector = ObjectDetector(lambda err, model: errors.append(err))
    with pytest.raises(RuntimeError, match="ultralytics is not installed"):
        await detector.ready
    assert isinstance(errors[0], RuntimeError)
    assert detector.model_ready is False


# ────────────────────────────── classification ──────────────────────────────
async def test_classify_topk(fake_ultralytics, pil_image) -> None:
    classifier = await ImageClassifier().ready
    results = await classifier.classify(pil_image)
    assert [r["label"] for r in results] == ["dog", "bicycle", "person"]
    assert results[0]["confidence"] == pytest.approx(0.7)
    assert [r["label"] for r in await classifier.classify(pil_image, 1)] == ["dog"]


async def test_classify_number_in_constructor_is_topk(fake_ultralytics, pil_image) -> None:
    classifier = await ImageClassifier(2).ready
    assert len(await classifier.classify(pil_image)) == 2


# ────────────────────────────── pose ──────────────────────────────
def test_detection_type_parsing() -> None:
    assert to_detection_type("Single Pose") == SINGLE
    assert to_detection_type("multiple") == MULTI
    assert to_detection_type("yolo11n-pose.pt") is None
    assert to_detection_type(None) is None


async def test_multi_pose_layout(fake_ultralytics, pil_image) -> None:
    net = await PoseNet().ready
    poses = await net.multi_pose(pil_image)

    assert len(poses) == 2
    best = poses[0]
    assert best["pose"]["score"] == pytest.approx(0.9)
    assert best["pose"]["nose"] == pytest.approx({"x": 5.0, "y": 0.0, "confidence": 0.9})
    assert len(best["pose"]["keypoints"]) == 17
    assert best["pose"]["keypoints"][5]["part"] == "leftShoulder"
    assert len(best["skeleton"]) == 16
    # the weaker pose has a low-confidence nose, dropping two edges
    assert len(poses[1]["skeleton"]) == 14


async def test_single_pose_and_flip(fake_ultralytics) -> None:
    image = np.zeros((6, 8, 3), dtype=np.uint8)
    image[:, 0] = (255, 0, 0)
    plain = await PoseNet("single").ready
    net = await PoseNet("single", {"flip_horizontal": True}).ready
    assert net.detection_type == SINGLE

    poses = await net.pose(image)
    assert len(poses) == 1
    assert net.instance.calls[-1]["max_det"] == 1
    # the model sees the mirrored frame: the red column moved to the right edge, in BGR
    seen = net.instance.last_source
    assert seen[0, -1].tolist() == [0, 0, 255]
    assert seen[0, 0].tolist() == [0, 0, 0]

    assert poses == await plain.pose(image)
    assert plain.instance.last_source[0, 0].tolist() == [0, 0, 255]


async def test_pose_min_confidence_trims_skeleton(fake_ultralytics, pil_image) -> None:
    net = await PoseNet(0.95).ready
    assert net.config["min_confidence"] == 0.95
    poses = await net.pose(pil_image)
    assert all(p["skeleton"] == [] for p in poses)


async def test_pose_loop_on_video(fake_ultralytics, video) -> None:
    net = await PoseNet(video).ready
    frames: List[Any] = []
    net.on("pose", frames.append)
    await net.start(max_frames=3)
    assert len(frames) == 3
    assert not net.running
    await net.stop()


async def test_pose_loop_ends_with_the_video(fake_ultralytics, caplog: pytest.LogCaptureFixture) -> None:
    video = VideoElement(capture=SyntheticCapture(size=(32, 24), frames=3))
    net = await PoseNet(video).ready
    frames: List[Any] = []
    net.on("pose", frames.append)

    with caplog.at_level("WARNING", logger="prism.media"):
        task = net.start()
        await asyncio.wait_for(task, timeout=5)

    assert task.done() and not net.running
    assert video.ended
    assert video.frames_read == 3
    # three fresh frames plus one pass over the last frame when the read fails
    assert len(frames) == 4
    stale = [r for r in caplog.records if "video.frame.stale" in r.getMessage()]
    assert len(stale) == 1


async def test_pose_loop_stop_cancels(fake_ultralytics, video) -> None:
    net = await PoseNet(video).ready
    task = net.start()
    assert net.running
    assert net.start() is task
    await net.stop()
    assert task.cancelled() or task.done()
    assert not net.running


async def test_pose_loop_needs_video(fake_ultralytics) -> None:
    net = await PoseNet().ready
    with pytest.raises(ValueError):
        net.start()


# ────────────────────────────── segmentation ──────────────────────────────
async def test_segment_keeps_people_by_default(fake_ultralytics, pil_image) -> None:
    seg = await BodySegmenter().ready
    result = await seg.segment(pil_image)
    assert result["mask"].shape == (6, 8)
    assert result["mask"].dtype == np.uint8
    assert [s["label"] for s in result["segments"]] == ["person"]
    assert result["mask"].any()
    np.testing.assert_array_equal(result["background_mask"], 255 - result["mask"])


async def test_segment_every_label(fake_ultralytics, pil_image) -> None:
    seg = await BodySegmenter().ready
    result = await seg.segment({"labels": None}, pil_image)
    assert sorted(s["label"] for s in result["segments"]) == ["dog", "person"]


# ────────────────────────────── runner ──────────────────────────────
async def test_runner_default_detector(fake_ultralytics, pil_image) -> None:
    runner = ImageModelRunner().get_media(pil_image)
    emitted: List[Any] = []
    runner.on("detect", emitted.append)
    results = await runner.detect("object")
    assert results[0]["label"] == "dog"
    assert emitted == [results]
    assert runner.model.name == "ObjectDetector"


async def test_runner_default_segmenter_and_pose(fake_ultralytics, pil_image) -> None:
    runner = ImageModelRunner().get_media(pil_image)
    assert (await runner.segment("body"))["segments"][0]["label"] == "person"
    poses = await ImageModelRunner().get_media(pil_image).detect("pose")
    assert len(poses) == 2


async def test_runner_errors(pil_image) -> None:
    runner = ImageModelRunner()
    with pytest.raises(MissingArgumentError, match="get_media"):
        await runner.classify()
    with pytest.raises(UnsupportedSourceError, match="Invalid media"):
        runner.get_media(object())
    runner.get_media(pil_image)
    with pytest.raises(MissingArgumentError, match="use_model"):
        await runner.stylize()
    with pytest.raises(UnsupportedTaskError, match="No default detect model for type 'banana'"):
        await runner.detect("banana")

    runner.use_model(ImageModel("Labels", "classify", classify=lambda media, opts: ["cat"]))
    with pytest.raises(UnsupportedTaskError, match="does not support task 'generate'") as info:
        await runner.generate()
    assert isinstance(info.value, NotImplementedError)


async def test_runner_merges_options_and_awaits(pil_image) -> None:
    seen: List[Any] = []

    async def stylize(media, opts):
        seen.append(dict(opts))
        return "styled"

    model = ImageModel("Style", "stylized", {"strength": 1, "size": 256}, stylize=stylize)
    runner = ImageModelRunner(model, {"strength": 3}).get_media(pil_image)
    events: List[Any] = []
    runner.on("stylized", events.append)
    assert await runner.stylize() == "styled"
    assert seen == [{"strength": 3, "size": 256}]
    assert events == ["styled"]
