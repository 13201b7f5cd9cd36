# projects/prism/prism/imaging.py
"""
prism.imaging: uniform conversions between image representations.

Contract
────────
wrap(source) -> ImageWrapper

Dispatch (first match wins, after ``unwrap_source`` resolved ``.canvas`` /
``.elt`` wrappers):

  numpy array rank 2/3   → TensorWrapper     (other ranks raise)
  Canvas                 → CanvasWrapper     (already rasterized)
  PIL image / video      → ElementWrapper    (drawn onto a private canvas)
  ImageData-like         → ImageDataWrapper
  anything else          → UnsupportedSourceError

Every wrapper answers ``get_width()``/``get_height()`` and ``to_tensor()``
synchronously; ``to_canvas``, ``to_data``, ``to_pixels``, ``to_blob``,
``to_data_url`` and ``to_image`` are coroutines. The first canvas (and, for
tensors, the first pixel buffer) is cached on the wrapper and reused by every
later conversion; concurrent first requests share one materialization.
"""

from __future__ import annotations

import abc
import asyncio
import inspect
import io
from typing import Any, Awaitable, Optional, Union

import numpy as np
from PIL import Image

from .errors import MediaLoadError, UnsupportedSourceError
from .image_utils import (
    IMAGE_SOURCE_DESCRIPTION,
    is_canvas,
    is_image_data,
    is_pil_image,
    is_tensor,
    is_video,
    unwrap_source,
)
from .media import Blob, Canvas, ImageData, VideoElement, array_to_rgba, rgba_from_image_data

__all__ = [
    "CanvasWrapper",
    "ElementWrapper",
    "ImageDataWrapper",
    "ImageWrapper",
    "TensorWrapper",
    "to_blob",
    "to_canvas",
    "to_data_url",
    "to_image",
    "to_image_data",
    "to_pixels",
    "to_tensor",
    "wrap",
]


class ImageWrapper(abc.ABC):
    """Base class; pixel-level conversions go through the cached canvas."""

    def __init__(self, source: Any) -> None:
        self.internal = source
        self._canvas: Optional[Canvas] = None
        self._canvas_task: Optional[asyncio.Future[Canvas]] = None

    @property
    def elt(self) -> Any:
        """The wrapped source, so argument classification sees through a wrapper."""
        return self.internal

    @abc.abstractmethod
    def get_width(self) -> int: ...

    @abc.abstractmethod
    def get_height(self) -> int: ...

    @abc.abstractmethod
    def to_tensor(self) -> np.ndarray: ...

    @abc.abstractmethod
    def create_canvas(self) -> Union[Canvas, Awaitable[Canvas]]: ...

    async def _build_canvas(self) -> Canvas:
        canvas = self.create_canvas()
        if inspect.isawaitable(canvas):
            canvas = await canvas
        return canvas

    async def to_canvas(self) -> Canvas:
        if self._canvas is not None:
            return self._canvas
        if self._canvas_task is None:
            self._canvas_task = asyncio.ensure_future(self._build_canvas())
        try:
            canvas = await self._canvas_task
        except Exception:
            self._canvas_task = None
            raise
        if self._canvas is None:
            self._canvas = canvas
        return self._canvas

    async def to_blob(self, mime: Optional[str] = None) -> Blob:
        canvas = await self.to_canvas()
        return await asyncio.to_thread(canvas.to_blob, mime)

    async def to_data(self) -> Any:
        canvas = await self.to_canvas()
        return canvas.get_image_data(0, 0, self.get_width(), self.get_height())

    async def to_pixels(self) -> Any:
        data = await self.to_data()
        return data.data

    async def to_data_url(self, mime: Optional[str] = None) -> str:
        return (await self.to_blob(mime)).to_data_url()

    async def to_image(self, mime: Optional[str] = None) -> Image.Image:
        blob = await self.to_blob(mime)
        image = Image.open(io.BytesIO(blob.data))
        image.load()
        return image

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.get_width()}x{self.get_height()})"


def _tensor_to_rgba(tensor: np.ndarray) -> np.ndarray:
    if tensor.ndim == 3 and tensor.shape[2] not in (1, 3, 4):
        raise UnsupportedSourceError(
            f"Tensor depth must be 1, 3 or 4 to convert to pixels, got {tensor.shape[2]}."
        )
    return np.ascontiguousarray(array_to_rgba(tensor))


class TensorWrapper(ImageWrapper):
    """Rank-2 (grey) or rank-3 (H×W×C) numpy array."""

    internal: np.ndarray

    def __init__(self, source: np.ndarray) -> None:
        super().__init__(source)
        self._pixels: Optional[np.ndarray] = None
        self._pixels_task: Optional[asyncio.Future[np.ndarray]] = None

    def get_width(self) -> int:
        return int(self.internal.shape[1])

    def get_height(self) -> int:
        return int(self.internal.shape[0])

    def to_tensor(self) -> np.ndarray:
        if self.internal.ndim == 2:
            return self.internal.reshape(self.get_height(), self.get_width(), 1)
        return self.internal

    async def _load_pixels(self) -> np.ndarray:
        # host-side conversion can be slow on large arrays
        rgba = await asyncio.to_thread(_tensor_to_rgba, self.internal)
        if self._canvas is None:
            self._canvas = Canvas.from_rgba(rgba)
        return rgba.reshape(-1)

    async def to_pixels(self) -> np.ndarray:
        if self._pixels is not None:
            return self._pixels
        if self._pixels_task is None:
            self._pixels_task = asyncio.ensure_future(self._load_pixels())
        try:
            pixels = await self._pixels_task
        except Exception:
            self._pixels_task = None
            raise
        self._pixels = pixels
        return pixels

    async def to_data(self) -> ImageData:
        return ImageData(self.get_width(), self.get_height(), await self.to_pixels())

    async def create_canvas(self) -> Canvas:
        await self.to_pixels()
        assert self._canvas is not None
        return self._canvas


class ImageDataWrapper(ImageWrapper):
    def get_width(self) -> int:
        return int(self.internal.width)

    def get_height(self) -> int:
        return int(self.internal.height)

    def to_tensor(self) -> np.ndarray:
        return np.ascontiguousarray(rgba_from_image_data(self.internal)[:, :, :3])

    async def to_data(self) -> Any:
        return self.internal

    async def to_pixels(self) -> Any:
        return self.internal.data

    def create_canvas(self) -> Canvas:
        canvas = Canvas(self.get_width(), self.get_height())
        canvas.put_image_data(self.internal)
        return canvas


class ElementWrapper(ImageWrapper):
    """Still image (PIL) or video element."""

    def is_video(self) -> bool:
        return isinstance(self.internal, VideoElement)

    def get_width(self) -> int:
        # videos report the decoded frame size, not the display size
        return int(self.internal.video_width if self.is_video() else self.internal.width)

    def get_height(self) -> int:
        return int(self.internal.video_height if self.is_video() else self.internal.height)

    def to_tensor(self) -> np.ndarray:
        if self.is_video():
            frame = self.internal.current_frame
            if frame is None:
                raise MediaLoadError("Video element has no decoded frame yet; await load() first.")
            return frame.copy()
        return np.array(self.internal.convert("RGB"), dtype=np.uint8)

    def create_canvas(self) -> Canvas:
        canvas = Canvas(self.get_width(), self.get_height())
        canvas.draw_image(self.internal)
        return canvas

    async def to_image(self, mime: Optional[str] = None) -> Image.Image:
        if is_pil_image(self.internal):
            return self.internal
        return await super().to_image(mime)


class CanvasWrapper(ElementWrapper):
    def get_width(self) -> int:
        return self.internal.width

    def get_height(self) -> int:
        return self.internal.height

    def to_tensor(self) -> np.ndarray:
        return self.internal.pixels[:, :, :3].copy()

    def create_canvas(self) -> Canvas:
        return self.internal


def wrap(image: Any) -> ImageWrapper:
    """Resolve *image* to exactly one backing representation."""
    if isinstance(image, ImageWrapper):
        return image
    source = unwrap_source(image)
    if is_tensor(source):
        if source.ndim not in (2, 3):
            raise UnsupportedSourceError(
                f"Expected a tensor of rank 2 or 3, got rank {source.ndim} (shape {source.shape!r})."
            )
        return TensorWrapper(source)
    if is_canvas(source):
        return CanvasWrapper(source)
    if is_pil_image(source) or is_video(source):
        return ElementWrapper(source)
    if is_image_data(source):
        return ImageDataWrapper(source)
    raise UnsupportedSourceError(
        f"Invalid image type {type(image).__name__}. Expected {IMAGE_SOURCE_DESCRIPTION}."
    )


def to_tensor(image: Any) -> np.ndarray:
    return wrap(image).to_tensor()


async def to_canvas(image: Any) -> Canvas:
    return await wrap(image).to_canvas()


async def to_blob(image: Any, mime: Optional[str] = None) -> Blob:
    return await wrap(image).to_blob(mime)


async def to_image_data(image: Any) -> Any:
    return await wrap(image).to_data()


async def to_pixels(image: Any) -> Any:
    return await wrap(image).to_pixels()


async def to_data_url(image: Any, mime: Optional[str] = None) -> str:
    return await wrap(image).to_data_url(mime)


async def to_image(image: Any, mime: Optional[str] = None) -> Image.Image:
    return await wrap(image).to_image(mime)
