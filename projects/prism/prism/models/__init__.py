"""YOLO-backed models with the flexible-argument, callback-or-await convention."""

from .body_segmenter import BodySegmenter, body_segmenter
from .image_classifier import ImageClassifier, image_classifier
from .object_detector import ObjectDetector, object_detector
from .posenet import PoseNet, pose_net
from .runner import ImageModel, ImageModelRunner

__all__ = [
    "BodySegmenter",
    "ImageClassifier",
    "ImageModel",
    "ImageModelRunner",
    "ObjectDetector",
    "PoseNet",
    "body_segmenter",
    "image_classifier",
    "object_detector",
    "pose_net",
]
