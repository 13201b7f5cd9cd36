# projects/prism/prism/cli.py
"""
Command line front end.

    prism detect  photo.jpg --conf 0.4
    prism classify photo.jpg --topk 5
    prism pose    photo.jpg --small
    prism segment photo.jpg

Each command loads one image, runs the matching model and prints the result
as JSON on stdout. Masks are summarised (shape and coverage) rather than
dumped.
"""

from __future__ import annotations

import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, Optional

import numpy as np
import typer
from PIL import Image, UnidentifiedImageError

from .logging_config import format_event, get_log_path, setup_logging

LOGGER = logging.getLogger(__name__)

_IS_WINDOWS = sys.platform.startswith("win")
_HELP_NAMES = ["-h", "--help"] + (["/?"] if _IS_WINDOWS else [])

app = typer.Typer(
    add_completion=False,
    rich_markup_mode="rich",
    context_settings={"help_option_names": _HELP_NAMES},
    help="Run prism models on an image and print JSON results.",
)


def _load_image(path: Path) -> Image.Image:
    if not path.exists():
        raise typer.BadParameter(f"{path} does not exist.", param_hint="IMAGE")
    try:
        with Image.open(path) as im:
            return im.convert("RGB")
    except UnidentifiedImageError:
        raise typer.BadParameter(f"{path} is not a readable image.", param_hint="IMAGE") from None


def _jsonable(value: Any) -> Any:
    if isinstance(value, np.ndarray):
        return {"shape": list(value.shape), "coverage": round(float(np.count_nonzero(value)) / max(1, value.size), 4)}
    if isinstance(value, dict):
        return {k: _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    if isinstance(value, np.generic):
        return value.item()
    return value


def _options(model: Optional[str], small: bool, **extra: Any) -> Dict[str, Any]:
    options: Dict[str, Any] = {"small": small, **{k: v for k, v in extra.items() if v is not None}}
    if model:
        options["model"] = model
    return options


def _run(job: Callable[[], Awaitable[Any]]) -> None:
    setup_logging()
    try:
        result = asyncio.run(job())
    except RuntimeError as exc:
        LOGGER.error("%s", format_event("cli.fail", {"error": exc}))
        typer.echo(f"Error: {exc}", err=True)
        log_path = get_log_path()
        if log_path is not None:
            typer.echo(f"See log: {log_path}", err=True)
        raise typer.Exit(code=1) from None
    typer.echo(json.dumps(_jsonable(result), indent=2))


_MODEL_OPT = typer.Option(None, "--model", "-m", help="Weight file name or path (tried before the built-in list)")
_SMALL_OPT = typer.Option(False, "--small/--no-small", "--fast", help="Prefer nano weights")


@app.command()
def detect(
    image: Path = typer.Argument(..., help="Image file"),
    model: Optional[str] = _MODEL_OPT,
    conf: float = typer.Option(0.25, "--conf", help="Confidence threshold 0-1"),
    small: bool = _SMALL_OPT,
) -> None:
    """Object detection boxes."""
    from .models import ObjectDetector

    picture = _load_image(image)

    async def job() -> Any:
        detector = await ObjectDetector(_options(model, small, threshold=conf)).ready
        return await detector.detect(picture)

    _run(job)


@app.command()
def classify(
    image: Path = typer.Argument(..., help="Image file"),
    model: Optional[str] = _MODEL_OPT,
    topk: int = typer.Option(3, "--topk", min=1, help="Number of labels"),
    small: bool = _SMALL_OPT,
) -> None:
    """Top-K image labels."""
    from .models import ImageClassifier

    picture = _load_image(image)

    async def job() -> Any:
        classifier = await ImageClassifier(_options(model, small, topk=topk)).ready
        return await classifier.classify(picture)

    _run(job)


@app.command()
def pose(
    image: Path = typer.Argument(..., help="Image file"),
    model: Optional[str] = _MODEL_OPT,
    conf: float = typer.Option(0.5, "--conf", help="Minimum keypoint confidence for the skeleton"),
    single: bool = typer.Option(False, "--single", help="Only the most confident pose"),
    small: bool = _SMALL_OPT,
) -> None:
    """Human pose keypoints."""
    from .models import PoseNet

    picture = _load_image(image)

    async def job() -> Any:
        net = await PoseNet(_options(model, small, min_confidence=conf)).ready
        return await (net.single_pose(picture) if single else net.multi_pose(picture))

    _run(job)


@app.command()
def segment(
    image: Path = typer.Argument(..., help="Image file"),
    model: Optional[str] = _MODEL_OPT,
    conf: float = typer.Option(0.25, "--conf", help="Confidence threshold 0-1"),
    small: bool = _SMALL_OPT,
) -> None:
    """Person segmentation masks."""
    from .models import BodySegmenter

    picture = _load_image(image)

    async def job() -> Any:
        segmenter = await BodySegmenter(_options(model, small, threshold=conf)).ready
        return await segmenter.segment(picture)

    _run(job)


def main() -> None:  # pragma: no cover
    app()


if __name__ == "__main__":  # pragma: no cover
    main()
