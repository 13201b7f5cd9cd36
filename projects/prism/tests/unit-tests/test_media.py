from __future__ import annotations

import base64

import numpy as np
import pytest

from prism.errors import MediaLoadError
from prism.media import (
    Blob,
    Canvas,
    ImageData,
    MediaWrapper,
    SyntheticCapture,
    VideoElement,
    decode_frame,
    next_frame,
)


class _ListCapture:
    def __init__(self, frames):
        self.frames = list(frames)
        self.released = False

    def read(self):
        if not self.frames:
            return False, None
        return True, self.frames.pop(0)

    def release(self) -> None:
        self.released = True


def test_image_data_validates_buffer_length() -> None:
    assert ImageData(2, 2).data.size == 16
    with pytest.raises(ValueError, match="needs 16"):
        ImageData(2, 2, bytes(15))


def test_canvas_resize_clears_and_draws(pil_image) -> None:
    canvas = Canvas(4, 4)
    canvas.draw_image(pil_image, 0, 0, 4, 4)
    assert canvas.pixels[..., 3].min() == 255
    canvas.width = 5
    assert canvas.width == 5 and canvas.pixels.max() == 0


def test_canvas_put_and_get_image_data_clip_to_bounds() -> None:
    canvas = Canvas(3, 3)
    patch = ImageData(2, 2, np.full(16, 9, dtype=np.uint8))
    canvas.put_image_data(patch, 2, 2)
    assert canvas.pixels[2, 2].tolist() == [9, 9, 9, 9]
    region = canvas.get_image_data(1, 1, 3, 3)
    assert (region.width, region.height) == (3, 3)
    arr = region.data.reshape(3, 3, 4)
    assert arr[1, 1].tolist() == [9, 9, 9, 9]
    assert arr[2, 2].tolist() == [0, 0, 0, 0]


def test_blob_data_url_round_trip() -> None:
    blob = Blob(b"abc", "image/png")
    assert blob.size == 3
    url = blob.to_data_url()
    assert base64.b64decode(url.split(",", 1)[1]) == b"abc"


def test_decode_frame_converts_bgr_and_grey() -> None:
    bgr = np.zeros((1, 1, 3), dtype=np.uint8)
    bgr[0, 0] = (1, 2, 3)
    assert decode_frame(bgr)[0, 0].tolist() == [3, 2, 1]
    assert decode_frame(np.full((2, 2), 7, dtype=np.uint8)).shape == (2, 2, 3)
    with pytest.raises(MediaLoadError):
        decode_frame(np.zeros((2, 2, 2), dtype=np.uint8))


def test_synthetic_capture_is_deterministic() -> None:
    a, b = SyntheticCapture((8, 4)), SyntheticCapture((8, 4))
    ok_a, fa = a.read()
    ok_b, fb = b.read()
    assert ok_a and ok_b
    np.testing.assert_array_equal(fa, fb)
    assert fa.shape == (4, 8, 3)
    limited = SyntheticCapture((2, 2), frames=1)
    assert limited.read()[0] and not limited.read()[0]


def test_video_needs_a_source() -> None:
    with pytest.raises(ValueError):
        VideoElement()


async def test_video_load_sets_ready_state(video) -> None:
    assert video.ready_state == VideoElement.HAVE_NOTHING
    assert (video.video_width, video.video_height) == (0, 0)
    await video.load()
    assert video.ready_state == VideoElement.HAVE_ENOUGH_DATA
    assert video.frames_read == 1
    await video.load()
    assert video.frames_read == 1


async def test_video_load_fails_on_empty_source() -> None:
    element = VideoElement(capture=_ListCapture([]))
    with pytest.raises(MediaLoadError, match="Error loading media file"):
        await element.load()


async def test_next_frame_advances_and_keeps_last_frame(caplog: pytest.LogCaptureFixture) -> None:
    frames = [np.full((2, 2, 3), i, dtype=np.uint8) for i in (1, 2)]
    element = VideoElement(capture=_ListCapture(frames))
    await element.load()
    assert element.current_frame[0, 0, 0] == 1
    await next_frame(element)
    assert element.current_frame[0, 0, 0] == 2
    assert not element.ended
    with caplog.at_level("WARNING", logger="prism.media"):
        await next_frame(element)
        await next_frame(element)
    assert element.current_frame[0, 0, 0] == 2
    assert element.ended and MediaWrapper(element).ended
    # warned once, not on every exhausted read
    assert sum("video.frame.stale" in r.getMessage() for r in caplog.records) == 1
    assert await next_frame() is None


async def test_media_wrapper_unwraps_and_loads(video) -> None:
    wrapper = MediaWrapper(MediaWrapper(video))
    assert wrapper.elt is video
    assert not wrapper.is_ready
    assert await wrapper.load() is wrapper
    assert wrapper.is_ready


def test_release_resets_state() -> None:
    capture = _ListCapture([np.zeros((1, 1, 3), dtype=np.uint8)])
    element = VideoElement(capture=capture)
    element.grab()
    element.release()
    assert capture.released
    assert element.ready_state == VideoElement.HAVE_NOTHING
