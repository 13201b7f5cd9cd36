# projects/prism/prism/media.py
"""
Media primitives that image-based models consume.

* ``Canvas``        : mutable RGBA raster (numpy-backed) that other sources are
                      drawn onto before pixel-level conversions.
* ``ImageData``     : explicit ``width``/``height`` plus a flat RGBA byte buffer.
* ``Blob``          : encoded image bytes plus their mime type.
* ``VideoElement``  : a frame source (``cv2.VideoCapture`` or anything with a
                      ``read()`` method) with decode-readiness state.
* ``MediaWrapper``  : uniform ``load()``/``is_ready`` access to a video element.

Frames coming out of a capture are BGR (OpenCV convention) and are stored as
RGB; every raster handed to callers is RGB or RGBA.
"""

from __future__ import annotations

import asyncio
import base64
import io
import logging
import math
import threading
from dataclasses import dataclass
from typing import Any, Optional, Protocol, Tuple, Union

import numpy as np
from PIL import Image

try:
    import cv2  # type: ignore
except Exception:  # pragma: no cover
    cv2 = None  # type: ignore

from .errors import MediaLoadError, UnsupportedSourceError
from .logging_config import format_event

__all__ = [
    "Blob",
    "Canvas",
    "Capture",
    "ImageData",
    "MediaWrapper",
    "SyntheticCapture",
    "VideoElement",
    "array_to_rgba",
    "decode_frame",
    "encode_rgba",
    "next_frame",
    "rgba_array",
    "rgba_from_image_data",
]

LOGGER = logging.getLogger(__name__)
LOGGER.addHandler(logging.NullHandler())


def _log(event: str, **info: object) -> None:
    LOGGER.debug("%s", format_event(event, info))


# ────────────────────────────────────────────────────────────────
#  Encoding
# ────────────────────────────────────────────────────────────────
DEFAULT_MIME = "image/png"

_MIME_FORMATS = {
    "image/png": "PNG",
    "image/jpeg": "JPEG",
    "image/jpg": "JPEG",
    "image/webp": "WEBP",
    "image/bmp": "BMP",
}


def _resolve_mime(mime: Optional[str]) -> Tuple[str, str]:
    """Unknown or missing types fall back to PNG, as browsers do."""
    key = (mime or DEFAULT_MIME).strip().lower()
    fmt = _MIME_FORMATS.get(key)
    if fmt is None:
        return DEFAULT_MIME, "PNG"
    return key, fmt


def encode_rgba(rgba: np.ndarray, mime: Optional[str] = None) -> "Blob":
    """Encode an (H, W, 4) uint8 raster with Pillow."""
    resolved, fmt = _resolve_mime(mime)
    pil = Image.fromarray(np.ascontiguousarray(rgba, dtype=np.uint8))
    if fmt in {"JPEG", "BMP"}:
        pil = pil.convert("RGB")
    buf = io.BytesIO()
    pil.save(buf, format=fmt)
    return Blob(buf.getvalue(), resolved)


@dataclass(frozen=True)
class Blob:
    data: bytes
    type: str = DEFAULT_MIME

    @property
    def size(self) -> int:
        return len(self.data)

    def to_data_url(self) -> str:
        payload = base64.b64encode(self.data).decode("ascii")
        return f"data:{self.type};base64,{payload}"


# ────────────────────────────────────────────────────────────────
#  ImageData
# ────────────────────────────────────────────────────────────────
def _as_byte_array(data: Any) -> np.ndarray:
    if isinstance(data, (bytes, bytearray, memoryview)):
        return np.frombuffer(data, dtype=np.uint8)
    arr = np.asarray(data, dtype=np.uint8)
    return arr if arr.ndim == 1 else arr.reshape(-1)


class ImageData:
    """Width, height and a flat RGBA buffer of ``width * height * 4`` bytes."""

    def __init__(self, width: int, height: int, data: Any = None) -> None:
        self.width = int(width)
        self.height = int(height)
        expected = self.width * self.height * 4
        if data is None:
            self.data = np.zeros(expected, dtype=np.uint8)
        else:
            self.data = _as_byte_array(data)
        if self.data.size != expected:
            raise ValueError(
                f"ImageData buffer holds {self.data.size} bytes; "
                f"{self.width}x{self.height} RGBA needs {expected}."
            )

    def __repr__(self) -> str:
        return f"ImageData(width={self.width}, height={self.height})"


def rgba_from_image_data(image_data: Any) -> np.ndarray:
    """View an ImageData-like object as an (H, W, 4) array."""
    width, height = int(image_data.width), int(image_data.height)
    flat = _as_byte_array(image_data.data)
    if flat.size != width * height * 4:
        raise UnsupportedSourceError(
            f"ImageData buffer of {flat.size} bytes does not match {width}x{height} RGBA."
        )
    return flat.reshape(height, width, 4)


def _to_u8(arr: np.ndarray) -> np.ndarray:
    if arr.dtype == np.uint8:
        return arr
    if np.issubdtype(arr.dtype, np.floating):
        return np.clip(np.rint(arr * 255.0), 0, 255).astype(np.uint8)
    return np.clip(arr, 0, 255).astype(np.uint8)


def array_to_rgba(arr: np.ndarray) -> np.ndarray:
    """Grey, grey+depth-1, RGB or RGBA array → (H, W, 4) uint8."""
    a = _to_u8(np.asarray(arr))
    if a.ndim == 3 and a.shape[2] == 1:
        a = a[:, :, 0]
    if a.ndim == 2:
        alpha = np.full(a.shape, 255, dtype=np.uint8)
        return np.dstack([a, a, a, alpha])
    if a.ndim == 3 and a.shape[2] == 3:
        alpha = np.full(a.shape[:2], 255, dtype=np.uint8)
        return np.dstack([a, alpha])
    if a.ndim == 3 and a.shape[2] == 4:
        return a
    raise UnsupportedSourceError(f"Unsupported pixel array shape {a.shape!r}; expected HxW, HxWx1, HxWx3 or HxWx4.")


def rgba_array(source: Any) -> np.ndarray:
    """Rasterize a drawable source (canvas, PIL image, video, ndarray, ImageData) to RGBA."""
    if isinstance(source, Canvas):
        return source.pixels
    if isinstance(source, Image.Image):
        return np.asarray(source.convert("RGBA"))
    if isinstance(source, VideoElement):
        frame = source.current_frame
        if frame is None:
            raise MediaLoadError("Video element has no decoded frame yet; await load() first.")
        return array_to_rgba(frame)
    if isinstance(source, np.ndarray):
        return array_to_rgba(source)
    if all(hasattr(source, attr) for attr in ("width", "height", "data")):
        return rgba_from_image_data(source)
    raise UnsupportedSourceError(f"Cannot draw object of type {type(source).__name__}.")


def _resize(rgba: np.ndarray, width: int, height: int) -> np.ndarray:
    if rgba.shape[1] == width and rgba.shape[0] == height:
        return rgba
    if cv2 is not None:
        return cv2.resize(rgba, (width, height), interpolation=cv2.INTER_LINEAR)
    return np.asarray(Image.fromarray(rgba).resize((width, height), Image.BILINEAR))


# ────────────────────────────────────────────────────────────────
#  Canvas
# ────────────────────────────────────────────────────────────────
class Canvas:
    """
    Mutable RGBA raster.

    Resizing (assigning ``width`` or ``height``) clears the buffer, matching
    the HTML canvas. Drawing replaces pixels; there is no alpha compositing.
    """

    def __init__(self, width: int = 300, height: int = 150) -> None:
        self._pixels = np.zeros((max(0, int(height)), max(0, int(width)), 4), dtype=np.uint8)

    @classmethod
    def from_rgba(cls, rgba: np.ndarray) -> "Canvas":
        canvas = cls(rgba.shape[1], rgba.shape[0])
        canvas._pixels[...] = array_to_rgba(rgba)
        return canvas

    @property
    def width(self) -> int:
        return int(self._pixels.shape[1])

    @width.setter
    def width(self, value: int) -> None:
        self._pixels = np.zeros((self.height, max(0, int(value)), 4), dtype=np.uint8)

    @property
    def height(self) -> int:
        return int(self._pixels.shape[0])

    @height.setter
    def height(self, value: int) -> None:
        self._pixels = np.zeros((max(0, int(value)), self.width, 4), dtype=np.uint8)

    @property
    def pixels(self) -> np.ndarray:
        """The live (H, W, 4) buffer."""
        return self._pixels

    def _blit(self, rgba: np.ndarray, x: int, y: int) -> None:
        h, w = rgba.shape[:2]
        x0, y0 = max(0, x), max(0, y)
        x1, y1 = min(self.width, x + w), min(self.height, y + h)
        if x0 >= x1 or y0 >= y1:
            return
        self._pixels[y0:y1, x0:x1] = rgba[y0 - y:y1 - y, x0 - x:x1 - x]

    def draw_image(
        self,
        source: Any,
        x: int = 0,
        y: int = 0,
        width: Optional[int] = None,
        height: Optional[int] = None,
    ) -> None:
        rgba = rgba_array(source)
        if width is not None or height is not None:
            rgba = _resize(rgba, int(width or rgba.shape[1]), int(height or rgba.shape[0]))
        self._blit(rgba, int(x), int(y))

    def put_image_data(self, image_data: Any, x: int = 0, y: int = 0) -> None:
        self._blit(rgba_from_image_data(image_data), int(x), int(y))

    def get_image_data(
        self,
        x: int = 0,
        y: int = 0,
        width: Optional[int] = None,
        height: Optional[int] = None,
    ) -> ImageData:
        w = self.width if width is None else int(width)
        h = self.height if height is None else int(height)
        region = np.zeros((h, w, 4), dtype=np.uint8)
        x0, y0 = max(0, x), max(0, y)
        x1, y1 = min(self.width, x + w), min(self.height, y + h)
        if x0 < x1 and y0 < y1:
            region[y0 - y:y1 - y, x0 - x:x1 - x] = self._pixels[y0:y1, x0:x1]
        return ImageData(w, h, region.reshape(-1))

    def to_pil(self) -> Image.Image:
        return Image.fromarray(self._pixels.copy())

    def to_blob(self, mime: Optional[str] = None) -> Blob:
        return encode_rgba(self._pixels, mime)

    def to_data_url(self, mime: Optional[str] = None) -> str:
        return self.to_blob(mime).to_data_url()

    def __repr__(self) -> str:
        return f"Canvas(width={self.width}, height={self.height})"


# ────────────────────────────────────────────────────────────────
#  Video
# ────────────────────────────────────────────────────────────────
class Capture(Protocol):
    def read(self) -> Tuple[bool, Any]: ...
    def release(self) -> None: ...


def decode_frame(frame: Any) -> np.ndarray:
    """Turn a BGR / BGRA / grey capture frame into contiguous RGB uint8."""
    arr = _to_u8(np.asarray(frame))
    if arr.ndim == 3 and arr.shape[2] == 1:
        arr = arr[:, :, 0]
    if arr.ndim == 2:
        return np.ascontiguousarray(np.dstack([arr, arr, arr]))
    if arr.ndim == 3 and arr.shape[2] in (3, 4):
        return np.ascontiguousarray(arr[:, :, 2::-1])
    raise MediaLoadError(f"Unsupported frame shape {arr.shape!r}")


class SyntheticCapture:
    """Deterministic moving-gradient capture; great for CI/headless."""

    def __init__(self, size: Tuple[int, int] = (640, 480), frames: Optional[int] = None) -> None:
        self.w, self.h = int(size[0]), int(size[1])
        self._limit = frames
        self._n = 0
        _log("video.synthetic", size=f"{self.w}x{self.h}", frames=frames)

    def isOpened(self) -> bool:  # noqa: N802 - mirrors cv2.VideoCapture
        return True

    def read(self) -> Tuple[bool, Optional[np.ndarray]]:
        if self._limit is not None and self._n >= self._limit:
            return False, None
        phase = self._n / 30.0
        y = np.linspace(0, 255, self.h, dtype=np.uint8)[:, None]
        x = np.linspace(0, 255, self.w, dtype=np.uint8)[None, :]
        base = ((y.astype(np.uint16) + x) // 2).astype(np.uint8)
        g = ((base.astype(np.int16) + int((math.sin(phase) + 1) * 64)) % 256).astype(np.uint8)
        r = ((base.astype(np.int16) + int((math.cos(phase * 0.7) + 1) * 64)) % 256).astype(np.uint8)
        self._n += 1
        return True, np.dstack([base, g, r])

    def release(self) -> None:
        return


class VideoElement:
    """
    A video source with HTML-media-like readiness.

    ``width``/``height`` are display hints only; the decoded frame size is
    ``video_width``/``video_height`` (0 until the first frame arrives).
    ``ended`` turns true once the capture stops returning frames.
    """

    HAVE_NOTHING = 0
    HAVE_METADATA = 1
    HAVE_CURRENT_DATA = 2
    HAVE_FUTURE_DATA = 3
    HAVE_ENOUGH_DATA = 4

    def __init__(
        self,
        src: Union[str, int, None] = None,
        *,
        capture: Optional[Capture] = None,
        width: int = 0,
        height: int = 0,
    ) -> None:
        if src is None and capture is None:
            raise ValueError("VideoElement needs a src or a capture.")
        self.src = src
        self.width = int(width)
        self.height = int(height)
        self.ready_state = self.HAVE_NOTHING
        self._capture = capture
        self._frame: Optional[np.ndarray] = None
        self._frames_read = 0
        self.ended = False
        self._lock = threading.Lock()

    def _open(self) -> Capture:
        if self._capture is None:
            if cv2 is None:
                raise MediaLoadError("OpenCV is required to open video sources.")
            cap = cv2.VideoCapture(self.src)
            if not cap.isOpened():
                cap.release()
                raise MediaLoadError(f"Error loading media file {self.src}")
            self._capture = cap
            _log("video.open", src=self.src)
        if self.ready_state < self.HAVE_METADATA:
            self.ready_state = self.HAVE_METADATA
        return self._capture

    @property
    def current_frame(self) -> Optional[np.ndarray]:
        return self._frame

    @property
    def frames_read(self) -> int:
        return self._frames_read

    @property
    def video_width(self) -> int:
        return 0 if self._frame is None else int(self._frame.shape[1])

    @property
    def video_height(self) -> int:
        return 0 if self._frame is None else int(self._frame.shape[0])

    def grab(self) -> bool:
        """Decode the next frame; ``False`` when the source is exhausted."""
        with self._lock:
            ok, frame = self._open().read()
            if not ok or frame is None:
                self.ended = True
                return False
            self._frame = decode_frame(frame)
            self._frames_read += 1
            self.ready_state = self.HAVE_ENOUGH_DATA
            return True

    async def load(self) -> "VideoElement":
        """Resolve once a frame is available; decoding runs off the event loop."""
        if self.ready_state >= self.HAVE_CURRENT_DATA:
            return self
        ok = await asyncio.to_thread(self.grab)
        if not ok:
            raise MediaLoadError(f"Error loading media file {self.src if self.src is not None else '<capture>'}")
        return self

    def release(self) -> None:
        cap = self._capture
        if cap is not None:
            cap.release()
        self._capture = None
        self.ready_state = self.HAVE_NOTHING
        self.ended = False

    def __repr__(self) -> str:
        return f"VideoElement(src={self.src!r}, ready_state={self.ready_state})"


class MediaWrapper:
    """
    Central place for video interactions.

    The element lives on ``elt`` so the argument classifier unwraps a
    ``MediaWrapper`` back to its video element.
    """

    def __init__(self, element: Any) -> None:
        while hasattr(element, "elt"):
            element = element.elt
        self.elt = element

    @property
    def is_ready(self) -> bool:
        return int(getattr(self.elt, "ready_state", 0)) >= VideoElement.HAVE_CURRENT_DATA

    @property
    def ended(self) -> bool:
        return bool(getattr(self.elt, "ended", False))

    async def load(self) -> "MediaWrapper":
        if self.is_ready:
            return self
        loader = getattr(self.elt, "load", None)
        if loader is None:
            raise MediaLoadError(f"{type(self.elt).__name__} cannot be loaded as media.")
        await loader()
        return self


async def next_frame(video: Optional[VideoElement] = None) -> Optional[VideoElement]:
    """
    Yield one event-loop tick, then decode a fresh frame from *video*.

    An exhausted source keeps its last frame and sets ``video.ended``; the
    warning is logged only on the first miss.
    """
    await asyncio.sleep(0)
    if video is None:
        return None
    already_ended = getattr(video, "ended", False)
    if not await asyncio.to_thread(video.grab) and not already_ended:
        LOGGER.warning("%s", format_event("video.frame.stale", {"src": video.src, "frames": video.frames_read}))
    return video
