"""
Recognition of image sources.

Predicates for each concrete representation plus the adapter step that turns
element wrappers (objects exposing ``elt`` or ``canvas``) into the element
they carry. Both the argument classifier and the image normalizer go through
``unwrap_source`` exactly once before their own dispatch.
"""

from __future__ import annotations

import numbers
from typing import Any, Optional

import numpy as np
from PIL import Image

from .media import Canvas, VideoElement

__all__ = [
    "IMAGE_SOURCE_DESCRIPTION",
    "get_image_element",
    "is_canvas",
    "is_image_data",
    "is_image_element",
    "is_pil_image",
    "is_tensor",
    "is_video",
    "unwrap_source",
]

IMAGE_SOURCE_DESCRIPTION = (
    "a PIL image, Canvas, VideoElement, ImageData, numpy array of rank 2 or 3, "
    "or an object exposing one of those on .elt / .canvas"
)

_MAX_UNWRAP_DEPTH = 8


def is_video(obj: Any) -> bool:
    return isinstance(obj, VideoElement)


def is_canvas(obj: Any) -> bool:
    return isinstance(obj, Canvas)


def is_pil_image(obj: Any) -> bool:
    return isinstance(obj, Image.Image)


def is_image_element(obj: Any) -> bool:
    """Canvas, still image or video."""
    return is_canvas(obj) or is_pil_image(obj) or is_video(obj)


def is_tensor(obj: Any) -> bool:
    return isinstance(obj, np.ndarray)


def is_image_data(obj: Any) -> bool:
    """
    ``prism.media.ImageData`` or any object with integer ``width``/``height``
    and a byte buffer ``data``. Mappings never qualify: those are options.
    """
    if obj is None or isinstance(obj, (dict, Image.Image, np.ndarray)) or is_image_element(obj):
        return False
    width = getattr(obj, "width", None)
    height = getattr(obj, "height", None)
    data = getattr(obj, "data", None)
    if not isinstance(width, numbers.Integral) or not isinstance(height, numbers.Integral):
        return False
    if isinstance(width, bool) or isinstance(height, bool):
        return False
    if isinstance(data, np.ndarray):
        return data.dtype == np.uint8
    return isinstance(data, (bytes, bytearray, memoryview))


def unwrap_source(obj: Any) -> Any:
    """
    Adapter step: follow ``.canvas`` (when it holds a Canvas) and ``.elt``
    until a concrete representation is reached.
    """
    current = obj
    for _ in range(_MAX_UNWRAP_DEPTH):
        if current is None or isinstance(current, (str, bytes, np.ndarray, Image.Image)) or is_image_element(current):
            return current
        canvas = getattr(current, "canvas", None)
        if is_canvas(canvas):
            return canvas
        if hasattr(current, "elt"):
            current = current.elt
            continue
        return current
    return current


def get_image_element(obj: Any) -> Optional[Any]:
    """
    Return the normalized image source carried by *obj*, or ``None`` when
    *obj* is not image-capable. Tensors must have rank 2 or 3.
    """
    source = unwrap_source(obj)
    if is_image_element(source):
        return source
    if is_tensor(source):
        return source if source.ndim in (2, 3) else None
    if is_image_data(source):
        return source
    return None
