# projects/prism/prism/arguments.py
"""
Argument classification for flexible call signatures.

Model constructors and inference methods accept their optional arguments in
any order: ``ObjectDetector(video, {"threshold": 0.5}, on_ready)`` and
``ObjectDetector(on_ready, video)`` mean the same thing. ``ArgSeparator``
sorts a raw argument list into named slots with an ordered rule table.

Rule order (first match wins for a single argument)
────────────────────────────────────────────────────
  1. string    ``str``
  2. number    ``int`` / ``float`` / numpy scalar (never ``bool``)
  3. callback  any callable
  4. array     ``list`` / ``tuple`` / ndarray whose rank is not 2 or 3
  5. image     any recognized image source; videos also fill video + audio
  6. options   any mapping, kept by identity

Across arguments the last one wins; each override is logged at WARNING.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, Optional, Sequence, Tuple

import numpy as np

from .errors import InvalidArgumentError, MissingArgumentError
from .image_utils import IMAGE_SOURCE_DESCRIPTION, get_image_element, is_video
from .logging_config import format_event

__all__ = [
    "ArgSeparator",
    "ArgumentRule",
    "DEFAULT_RULES",
    "NO_MATCH",
    "SLOTS",
    "classify_arguments",
    "handle_arguments",
    "model_name_rule",
    "model_path_rule",
]

LOGGER = logging.getLogger(__name__)
LOGGER.addHandler(logging.NullHandler())

SLOTS: Tuple[str, ...] = ("string", "number", "callback", "array", "image", "video", "audio", "options")


class _NoMatch:
    __slots__ = ()

    def __repr__(self) -> str:
        return "NO_MATCH"

    def __bool__(self) -> bool:
        return False


NO_MATCH: Any = _NoMatch()


def _no_extra(_: Any) -> Tuple[str, ...]:
    return ()


@dataclass(frozen=True)
class ArgumentRule:
    """
    One row of the classification table.

    ``match`` returns the value to store, or ``NO_MATCH``. ``extra_slots``
    names further slots the same stored value fills.
    """

    slot: str
    description: str
    match: Callable[[Any], Any]
    extra_slots: Callable[[Any], Tuple[str, ...]] = field(default=_no_extra)


def _match_string(arg: Any) -> Any:
    return arg if isinstance(arg, str) else NO_MATCH


def _match_number(arg: Any) -> Any:
    if isinstance(arg, bool):
        return NO_MATCH
    return arg if isinstance(arg, (int, float, np.number)) else NO_MATCH


def _match_callback(arg: Any) -> Any:
    return arg if callable(arg) else NO_MATCH


def _match_array(arg: Any) -> Any:
    if isinstance(arg, (list, tuple)):
        return arg
    if isinstance(arg, np.ndarray) and arg.ndim not in (2, 3):
        return arg
    return NO_MATCH


def _match_image(arg: Any) -> Any:
    element = get_image_element(arg)
    return NO_MATCH if element is None else element


def _video_slots(value: Any) -> Tuple[str, ...]:
    return ("video", "audio") if is_video(value) else ()


def _match_options(arg: Any) -> Any:
    return arg if isinstance(arg, Mapping) else NO_MATCH


DEFAULT_RULES: Tuple[ArgumentRule, ...] = (
    ArgumentRule("string", "string", _match_string),
    ArgumentRule("number", "number", _match_number),
    ArgumentRule("callback", "function", _match_callback),
    ArgumentRule("array", "list, tuple or numpy array not of rank 2 or 3", _match_array),
    ArgumentRule("image", IMAGE_SOURCE_DESCRIPTION, _match_image, _video_slots),
    ArgumentRule("options", "options mapping", _match_options),
)


def model_name_rule(accepted_names: Iterable[str]) -> ArgumentRule:
    """Fill ``model_name`` with a string from *accepted_names* (case-insensitive)."""
    names = {name.lower(): name for name in accepted_names}

    def _match(arg: Any) -> Any:
        if isinstance(arg, str) and arg.lower() in names:
            return names[arg.lower()]
        return NO_MATCH

    return ArgumentRule("model_name", "one of: " + ", ".join(sorted(names.values())), _match)


def model_path_rule(extension: str = ".json") -> ArgumentRule:
    """Fill ``model_path`` with a string ending in *extension*."""
    suffix = extension.lower()

    def _match(arg: Any) -> Any:
        if isinstance(arg, str) and arg.lower().endswith(suffix):
            return arg
        return NO_MATCH

    return ArgumentRule("model_path", f"path ending in {extension}", _match)


class ArgSeparator:
    """
    Sort ``*args`` into slots.

    >>> ArgSeparator("yolo", 0.5).string
    'yolo'
    """

    def __init__(self, *args: Any, rules: Sequence[ArgumentRule] = DEFAULT_RULES) -> None:
        self.rules: Tuple[ArgumentRule, ...] = tuple(rules)
        self.string: Optional[str] = None
        self.number: Optional[float] = None
        self.callback: Optional[Callable[..., Any]] = None
        self.array: Any = None
        self.image: Any = None
        self.video: Any = None
        self.audio: Any = None
        self.options: Optional[Mapping[str, Any]] = None
        self._extra: Dict[str, Any] = {}
        for index, arg in enumerate(args):
            self.add_arg(arg, index)

    @classmethod
    def from_args(cls, *args: Any, rules: Sequence[ArgumentRule] = DEFAULT_RULES) -> "ArgSeparator":
        return cls(*args, rules=rules)

    def __getattr__(self, name: str) -> Any:
        # only reached for custom slots
        extra = self.__dict__.get("_extra")
        if extra is not None and name in extra:
            return extra[name]
        raise AttributeError(name)

    def _set(self, slot: str, value: Any, index: Optional[int]) -> None:
        if self.has(slot):
            LOGGER.warning(
                "%s",
                format_event(
                    "argument.override",
                    {"slot": slot, "index": index, "old": type(self.get(slot)).__name__, "new": type(value).__name__},
                ),
            )
        if slot in SLOTS:
            setattr(self, slot, value)
        else:
            self._extra[slot] = value

    def add_arg(self, arg: Any, index: Optional[int] = None) -> "ArgSeparator":
        """Classify one argument; ``None`` and unmatched falsy values are skipped."""
        if arg is None:
            return self
        for rule in self.rules:
            value = rule.match(arg)
            if value is NO_MATCH:
                continue
            self._set(rule.slot, value, index)
            for slot in rule.extra_slots(value):
                self._set(slot, value, index)
            return self
        # an omitted optional positional (False) is not an error
        if not arg:
            return self
        raise InvalidArgumentError(arg, [rule.description for rule in self.rules], index)

    def has(self, slot: str) -> bool:
        return self.get(slot) is not None

    def get(self, slot: str, default: Any = None) -> Any:
        if slot in SLOTS:
            value = self.__dict__.get(slot)
        else:
            value = self._extra.get(slot)
        return default if value is None else value

    def require(self, slot: str, message: Optional[str] = None) -> "ArgSeparator":
        if not self.has(slot):
            raise MissingArgumentError(slot, message)
        return self

    def to_dict(self) -> Dict[str, Any]:
        filled = {slot: self.__dict__[slot] for slot in SLOTS if self.__dict__.get(slot) is not None}
        filled.update((slot, value) for slot, value in self._extra.items() if value is not None)
        return filled

    def __repr__(self) -> str:
        inner = ", ".join(f"{slot}={type(value).__name__}" for slot, value in self.to_dict().items())
        return f"ArgSeparator({inner})"


def handle_arguments(*args: Any) -> ArgSeparator:
    """Chainable entry point: ``handle_arguments(*args).require("image")``."""
    return ArgSeparator(*args)


def classify_arguments(rules: Sequence[ArgumentRule], *args: Any) -> Dict[str, Any]:
    """Run a custom rule table over *args* and return the filled slots."""
    return ArgSeparator(*args, rules=rules).to_dict()
