"""
Small raster transforms built on top of ``prism.imaging``.

Models reach for these when preparing input: draw a source onto a canvas,
or mirror it (PoseNet's ``flip_horizontal``).
"""

from __future__ import annotations

from typing import Any

import numpy as np

from .image_utils import is_canvas, unwrap_source
from .imaging import wrap
from .media import Canvas

__all__ = ["draw_to_canvas", "flip_image"]


async def draw_to_canvas(source: Any) -> Canvas:
    """Existing canvases are returned as-is; everything else is rasterized."""
    unwrapped = unwrap_source(source)
    if is_canvas(unwrapped):
        return unwrapped
    return await wrap(unwrapped).to_canvas()


async def flip_image(source: Any) -> Canvas:
    """Horizontal mirror of *source* on a new canvas."""
    canvas = await draw_to_canvas(source)
    return Canvas.from_rgba(np.ascontiguousarray(canvas.pixels[:, ::-1]))
