# projects/prism/prism/__init__.py
"""
Lightweight package init.

Ultralytics is never imported here; the model wrappers load it lazily on
first use.

Exports:
    __version__ : best-effort package version (falls back to "0+unknown")
    the argument, image and lifecycle helpers most callers need
"""

from __future__ import annotations

from importlib.metadata import PackageNotFoundError
from importlib.metadata import version as _pkg_version

from .arguments import ArgSeparator, handle_arguments
from .callbacks import deliver
from .errors import (
    InvalidArgumentError,
    MediaLoadError,
    MissingArgumentError,
    PrismError,
    UnsupportedSourceError,
    UnsupportedTaskError,
)
from .imaging import ImageWrapper, to_blob, to_canvas, to_data_url, to_image, to_image_data, to_pixels, to_tensor, wrap
from .lifecycle import AroundModel, AsyncModel, create_class, create_factory, create_model_wrapper
from .media import Blob, Canvas, ImageData, MediaWrapper, VideoElement, next_frame

__all__ = [
    "__version__",
    "AroundModel",
    "ArgSeparator",
    "AsyncModel",
    "Blob",
    "Canvas",
    "ImageData",
    "ImageWrapper",
    "InvalidArgumentError",
    "MediaLoadError",
    "MediaWrapper",
    "MissingArgumentError",
    "PrismError",
    "UnsupportedSourceError",
    "UnsupportedTaskError",
    "VideoElement",
    "create_class",
    "create_factory",
    "create_model_wrapper",
    "deliver",
    "handle_arguments",
    "next_frame",
    "to_blob",
    "to_canvas",
    "to_data_url",
    "to_image",
    "to_image_data",
    "to_pixels",
    "to_tensor",
    "wrap",
]


def _detect_version() -> str:
    """Try both "prism-ml" and "prism_ml", since metadata names may vary in CI."""
    for dist in ("prism-ml", "prism_ml"):
        try:
            return _pkg_version(dist)
        except PackageNotFoundError:
            continue
    return "0+unknown"


__version__ = _detect_version()
