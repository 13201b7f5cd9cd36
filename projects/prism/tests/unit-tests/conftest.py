# projects/prism/tests/unit-tests/conftest.py
from __future__ import annotations

import sys
import types
from pathlib import Path
from typing import Any, Dict, List, Optional

import numpy as np
import pytest
from PIL import Image

import prism.model_registry as mr
from prism.media import ImageData, SyntheticCapture, VideoElement

NAMES: Dict[int, str] = {0: "person", 1: "bicycle", 2: "dog"}


def _ns(**kw: Any) -> types.SimpleNamespace:
    return types.SimpleNamespace(**kw)


def fake_result(task: str, shape: tuple[int, int]) -> types.SimpleNamespace:
    """A YOLO-like ``Results`` object for *task* on an image of (h, w)."""
    h, w = shape
    if task == "classify":
        return _ns(names=NAMES, probs=_ns(data=np.array([0.1, 0.2, 0.7], dtype=np.float32)))
    boxes = _ns(
        xyxy=np.array([[10, 20, 50, 80], [0, 0, w / 2, h / 2]], dtype=np.float32),
        conf=np.array([0.6, 0.9], dtype=np.float32),
        cls=np.array([0, 2], dtype=np.float32),
    )
    if task == "detect":
        return _ns(names=NAMES, boxes=boxes)
    if task == "pose":
        xy = np.stack([np.stack([np.arange(17, dtype=np.float32) + i, np.arange(17, dtype=np.float32) * 2], axis=1) for i in (0, 5)])
        conf = np.full((2, 17), 0.9, dtype=np.float32)
        conf[0, 0] = 0.1
        return _ns(names=NAMES, boxes=boxes, keypoints=_ns(xy=xy, conf=conf))
    if task == "segment":
        masks = np.zeros((2, h // 2, w // 2), dtype=np.float32)
        masks[0, : h // 4, : w // 4] = 1.0
        masks[1, h // 4 :, w // 4 :] = 1.0
        return _ns(names=NAMES, boxes=boxes, masks=_ns(data=masks))
    raise AssertionError(task)


class DummyYOLO:
    instances: List["DummyYOLO"] = []

    def __init__(self, weight: str, task: Optional[str] = None) -> None:
        self.weight = weight
        self.task = task or "detect"
        self.names = NAMES
        self.model = _ns(name="inner", weight=weight)
        self.calls: List[Dict[str, Any]] = []
        self.last_source: Optional[np.ndarray] = None
        DummyYOLO.instances.append(self)

    def predict(self, source: Any, **kwargs: Any) -> List[Any]:
        arr = np.asarray(source)
        self.calls.append({"shape": arr.shape, **kwargs})
        self.last_source = arr
        return [fake_result(self.task, arr.shape[:2])]


@pytest.fixture
def model_dir(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    d = tmp_path / "model"
    d.mkdir()
    monkeypatch.setenv("PRISM_MODEL_DIR", str(d))
    monkeypatch.delenv("PRISM_SMALL_MODELS", raising=False)
    monkeypatch.delenv("PRISM_PREFER_ONNX", raising=False)
    return d


@pytest.fixture
def fake_ultralytics(monkeypatch: pytest.MonkeyPatch, model_dir: Path) -> type:
    """Install a fake ``ultralytics`` module and one weight file per task."""
    for name in ("yolo11n.pt", "yolo11n-cls.pt", "yolo11n-pose.pt", "yolo11n-seg.pt"):
        (model_dir / name).write_text("x", encoding="utf-8")
    monkeypatch.setitem(sys.modules, "ultralytics", types.SimpleNamespace(YOLO=DummyYOLO))
    monkeypatch.setattr(mr, "ort_available", lambda: False)
    DummyYOLO.instances = []
    mr._load.cache_clear()
    yield DummyYOLO
    mr._load.cache_clear()


@pytest.fixture
def rgb_array() -> np.ndarray:
    arr = np.zeros((6, 8, 3), dtype=np.uint8)
    arr[..., 0] = 200
    arr[2:4, 3:5] = (10, 20, 30)
    return arr


@pytest.fixture
def pil_image(rgb_array: np.ndarray) -> Image.Image:
    return Image.fromarray(rgb_array)


@pytest.fixture
def image_data() -> ImageData:
    data = np.arange(10 * 5 * 4, dtype=np.uint8)
    return ImageData(10, 5, data)


@pytest.fixture
def video() -> VideoElement:
    return VideoElement(capture=SyntheticCapture(size=(32, 24), frames=50), width=320, height=240)
