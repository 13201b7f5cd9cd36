"""
Conversions from Ultralytics ``Results`` objects to plain result dicts.

Only attribute access is used (``boxes.xyxy``, ``probs.data``,
``keypoints.xy``, ``masks.data``), so anything shaped like a YOLO result
works, including the light fakes used in tests.
"""

from __future__ import annotations

from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple, Union, cast

import numpy as np
from PIL import Image

try:
    import cv2  # type: ignore
except Exception:  # pragma: no cover
    cv2 = None  # type: ignore

Names = Union[Mapping[int, str], Sequence[str], None]

# COCO 17-keypoint order
PART_NAMES: Tuple[str, ...] = (
    "nose",
    "leftEye",
    "rightEye",
    "leftEar",
    "rightEar",
    "leftShoulder",
    "rightShoulder",
    "leftElbow",
    "rightElbow",
    "leftWrist",
    "rightWrist",
    "leftHip",
    "rightHip",
    "leftKnee",
    "rightKnee",
    "leftAnkle",
    "rightAnkle",
)

COCO_EDGES: List[Tuple[int, int]] = [
    (0, 1), (1, 3), (0, 2), (2, 4),     # head/ears/eyes
    (5, 7), (7, 9), (6, 8), (8, 10),    # arms
    (5, 6), (5, 11), (6, 12),           # shoulders→hips
    (11, 12), (11, 13), (13, 15), (12, 14), (14, 16),  # legs
]


def as_numpy(value: Any, dtype: Any = np.float32) -> np.ndarray:
    """torch tensor / list / ndarray → ndarray."""
    v = getattr(value, "data", value) if not isinstance(value, np.ndarray) else value
    if hasattr(v, "cpu"):
        v = v.cpu().numpy()
    return np.asarray(v, dtype=dtype)


def name_for(names: Names, idx: int) -> str:
    if isinstance(names, Mapping):
        return str(cast(Mapping[int, str], names).get(idx, idx))
    if isinstance(names, (list, tuple)):
        return str(names[idx]) if 0 <= idx < len(names) else str(idx)
    return str(idx)


def first_result(results: Any) -> Optional[Any]:
    if results is None:
        return None
    seq = list(results)
    return seq[0] if seq else None


def detections_from_result(res: Any, width: int, height: int, names: Names = None) -> List[Dict[str, Any]]:
    """Boxes as ``{label, confidence, x, y, width, height, normalized}``."""
    boxes = getattr(res, "boxes", None) if res is not None else None
    if boxes is None:
        return []
    xyxy = as_numpy(boxes.xyxy).reshape(-1, 4)
    conf = as_numpy(boxes.conf).reshape(-1)
    cls = as_numpy(boxes.cls).reshape(-1).astype(int)
    names = names if names is not None else getattr(res, "names", None)

    out: List[Dict[str, Any]] = []
    for (x1, y1, x2, y2), score, cid in zip(xyxy, conf, cls):
        x, y = float(x1), float(y1)
        w, h = float(x2 - x1), float(y2 - y1)
        out.append(
            {
                "label": name_for(names, int(cid)),
                "confidence": float(score),
                "x": x,
                "y": y,
                "width": w,
                "height": h,
                "normalized": {
                    "x": x / width if width else 0.0,
                    "y": y / height if height else 0.0,
                    "width": w / width if width else 0.0,
                    "height": h / height if height else 0.0,
                },
            }
        )
    out.sort(key=lambda d: d["confidence"], reverse=True)
    return out


def topk_from_probs(probs_obj: Any, *, names: Names, k: int) -> List[Dict[str, Any]]:
    """Top-K ``{label, confidence}`` sorted by confidence."""
    vec = as_numpy(probs_obj).reshape(-1)
    idx = np.argsort(-vec, kind="stable")[: max(1, int(k))]
    return [{"label": name_for(names, int(i)), "confidence": float(vec[int(i)])} for i in idx]


def _keypoint(part: str, x: float, y: float, score: float) -> Dict[str, Any]:
    return {"part": part, "position": {"x": x, "y": y}, "score": score}


def poses_from_result(
    res: Any,
    *,
    min_confidence: float,
    max_poses: Optional[int] = None,
) -> List[Dict[str, Any]]:
    """
    Keypoints as pose dicts: ``pose`` carries ``score``, ``keypoints`` and one
    ``{x, y, confidence}`` entry per part; ``skeleton`` lists connected pairs
    whose both ends reach *min_confidence*.
    """
    kp_obj = getattr(res, "keypoints", None) if res is not None else None
    if kp_obj is None:
        return []
    pts = as_numpy(getattr(kp_obj, "xy", None) if getattr(kp_obj, "xy", None) is not None else kp_obj.data)
    if pts.ndim != 3 or pts.shape[0] == 0:
        return []
    conf_attr = getattr(kp_obj, "conf", None)
    conf = as_numpy(conf_attr) if conf_attr is not None else np.ones(pts.shape[:2], dtype=np.float32)
    boxes = getattr(res, "boxes", None)
    box_conf = as_numpy(boxes.conf).reshape(-1) if boxes is not None else None

    poses: List[Dict[str, Any]] = []
    for i in range(pts.shape[0]):
        keypoints = []
        for j in range(pts.shape[1]):
            x, y = float(pts[i, j, 0]), float(pts[i, j, 1])
            part = PART_NAMES[j] if j < len(PART_NAMES) else f"part{j}"
            keypoints.append(_keypoint(part, x, y, float(conf[i, j])))

        if box_conf is not None and i < box_conf.size:
            score = float(box_conf[i])
        else:
            score = float(np.mean(conf[i])) if conf.size else 0.0

        pose: Dict[str, Any] = {"score": score, "keypoints": keypoints}
        for kp in keypoints:
            pose[kp["part"]] = {"x": kp["position"]["x"], "y": kp["position"]["y"], "confidence": kp["score"]}

        skeleton: List[List[Dict[str, Any]]] = []
        if len(keypoints) == len(PART_NAMES):
            for a, b in COCO_EDGES:
                if keypoints[a]["score"] >= min_confidence and keypoints[b]["score"] >= min_confidence:
                    skeleton.append([keypoints[a], keypoints[b]])
        poses.append({"pose": pose, "skeleton": skeleton})

    poses.sort(key=lambda p: p["pose"]["score"], reverse=True)
    if max_poses is not None:
        poses = poses[: max(0, int(max_poses))]
    return poses


def _resize_mask(mask: np.ndarray, width: int, height: int) -> np.ndarray:
    if mask.shape[1] == width and mask.shape[0] == height:
        return mask
    if cv2 is not None:
        return cv2.resize(mask, (width, height), interpolation=cv2.INTER_LINEAR)
    return np.asarray(Image.fromarray(mask).resize((width, height)), dtype=np.float32)


def segments_from_result(
    res: Any,
    *,
    width: int,
    height: int,
    labels: Optional[Sequence[str]] = None,
    threshold: float = 0.5,
) -> Dict[str, Any]:
    """
    Instance masks resized to the input, plus their union.

    ``mask`` is H×W uint8 (255 inside any kept instance); ``background_mask``
    is its complement.
    """
    union = np.zeros((height, width), dtype=np.uint8)
    segments: List[Dict[str, Any]] = []
    masks_obj = getattr(res, "masks", None) if res is not None else None
    if masks_obj is not None:
        data = as_numpy(masks_obj)
        if data.ndim == 2:
            data = data[np.newaxis, ...]
        boxes = getattr(res, "boxes", None)
        conf = as_numpy(boxes.conf).reshape(-1) if boxes is not None else np.ones(len(data), dtype=np.float32)
        cls = as_numpy(boxes.cls).reshape(-1).astype(int) if boxes is not None else np.zeros(len(data), dtype=int)
        names = getattr(res, "names", None)
        wanted = {label.lower() for label in labels} if labels else None

        for idx, raw in enumerate(data):
            label = name_for(names, int(cls[idx])) if idx < cls.size else "object"
            if wanted is not None and label.lower() not in wanted:
                continue
            inst = (_resize_mask(np.asarray(raw, dtype=np.float32), width, height) >= threshold).astype(np.uint8) * 255
            union = np.maximum(union, inst)
            segments.append(
                {
                    "label": label,
                    "confidence": float(conf[idx]) if idx < conf.size else 1.0,
                    "mask": inst,
                }
            )
    return {"mask": union, "background_mask": 255 - union, "segments": segments}
