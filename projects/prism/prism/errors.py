# projects/prism/prism/errors.py
"""
Exception taxonomy shared by the argument classifier, the image normalizer and
the model lifecycle.

Loader and inference failures are NOT wrapped here: whatever the underlying
pretrained model raises reaches the caller unchanged.
"""

from __future__ import annotations

from typing import Any, Optional, Sequence

__all__ = [
    "PrismError",
    "InvalidArgumentError",
    "MissingArgumentError",
    "UnsupportedSourceError",
    "MediaLoadError",
    "UnsupportedTaskError",
]


class PrismError(Exception):
    """Root of every error raised by prism itself."""


class InvalidArgumentError(PrismError, TypeError):
    """An argument could not be assigned to any slot."""

    def __init__(self, arg: Any, accepted: Sequence[str] = (), index: Optional[int] = None) -> None:
        where = "." if index is None else f" in position {index} (zero-indexed)."
        lines = [
            f"Invalid argument{where}",
            f"Received value: {arg!r}.",
        ]
        if accepted:
            lines.append("Argument must be one of the following types:")
            lines.extend(f"  {item}" for item in accepted)
        super().__init__("\n".join(lines))
        self.arg = arg
        self.index = index
        self.accepted = tuple(accepted)


class MissingArgumentError(PrismError, ValueError):
    """A mandatory slot was never filled."""

    def __init__(self, slot: str, message: Optional[str] = None) -> None:
        super().__init__(message or f"An argument for {slot} must be provided.")
        self.slot = slot


class UnsupportedSourceError(PrismError, TypeError):
    """An image source matched none of the recognized representations."""


class MediaLoadError(PrismError, RuntimeError):
    """A media element never produced a decodable frame."""


class UnsupportedTaskError(PrismError, NotImplementedError):
    """The selected model has no implementation for the requested task."""
