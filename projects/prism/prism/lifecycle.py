# projects/prism/prism/lifecycle.py
"""
prism.lifecycle: load-once model wrappers with flexible call signatures.

Lifecycle
─────────
    constructed ──► loading (``ready`` pending) ──► ready (``model_ready``)
                                    └──────────────► failed (``ready`` raises)

* ``ready`` is an ``asyncio.Task`` that settles exactly once and resolves to
  the instance itself. Loading starts in the constructor, so instances must
  be created while an event loop is running.
* Every async operation reports through both channels: the returned task and,
  when one was passed, a ``callback(error, result)``.
* Inference methods built with ``MediaModel._make_image_method`` wait for
  ``ready``, then for a fresh video frame, and only then run. Concurrent calls
  are not serialized; each one awaits independently.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from typing import Any, Awaitable, Callable, Dict, Mapping, Optional, Type

from .arguments import ArgSeparator
from .callbacks import Callback, deliver
from .config import merge_options
from .events import EventEmitter
from .logging_config import format_event
from .media import MediaWrapper, next_frame

__all__ = [
    "AroundModel",
    "AsyncModel",
    "MediaModel",
    "NO_IMAGE_MESSAGE",
    "create_class",
    "create_factory",
    "create_model_wrapper",
]

LOGGER = logging.getLogger(__name__)
LOGGER.addHandler(logging.NullHandler())

NO_IMAGE_MESSAGE = (
    "No image or video found. An image must be provided if no video was set in the constructor."
)


def _log(event: str, **info: object) -> None:
    LOGGER.debug("%s", format_event(event, info))


def _require_loop(owner: str) -> asyncio.AbstractEventLoop:
    try:
        return asyncio.get_running_loop()
    except RuntimeError:
        raise RuntimeError(
            f"{owner} starts loading on construction and must be created inside a running event loop "
            "(for example from a coroutine run with asyncio.run)."
        ) from None


def _mark_retrieved(task: "asyncio.Future[Any]") -> None:
    # awaiting callers still see the exception; this only silences the
    # "exception was never retrieved" report for callback-only users
    if not task.cancelled():
        task.exception()


def _spawn(awaitable: Awaitable[Any], callback: Optional[Callback] = None) -> "asyncio.Task[Any]":
    task = asyncio.ensure_future(deliver(awaitable, callback))
    task.add_done_callback(_mark_retrieved)
    return task


async def _resolve(value: Any) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value


class AsyncModel(EventEmitter):
    """
    Base class for models that load asynchronously.

    Subclasses implement ``load_model()`` (sync or async) and may override
    ``default_config()``. After a successful load ``instance`` holds the
    loaded value and ``model`` its ``model`` attribute, or the value itself
    when it has none. The ``"ready"`` event fires once with the instance.
    """

    def __init__(self, options: Optional[Mapping[str, Any]] = None, callback: Optional[Callback] = None) -> None:
        super().__init__()
        _require_loop(type(self).__name__)
        self.config: Mapping[str, Any] = merge_options(self.default_config(), options)
        self.model_ready = False
        self.model: Any = None
        self.instance: Any = None
        self.ready: "asyncio.Task[Any]" = _spawn(self._init(), callback)

    def default_config(self) -> Mapping[str, Any]:
        return {}

    def load_model(self) -> Any:
        raise NotImplementedError

    async def _init(self) -> "AsyncModel":
        name = type(self).__name__
        _log("model.load.start", model=name)
        try:
            loaded = await _resolve(self.load_model())
        except Exception as exc:
            LOGGER.error("%s", format_event("model.load.fail", {"model": name, "error": f"{type(exc).__name__}: {exc}"}))
            raise
        self.instance = loaded
        self.model = getattr(loaded, "model", loaded)
        self.model_ready = True
        _log("model.load.ready", model=name)
        self.emit("ready", self)
        return self


class MediaModel(AsyncModel):
    """
    Model bound to an optional video, built by ``create_class``.

    The constructor takes ``(video?, options?, callback?)`` in any order;
    every other classified argument stays available on ``args``.
    """

    _loader: Callable[[Mapping[str, Any]], Any]
    _defaults: Mapping[str, Any] = merge_options({})

    def __init__(self, *args: Any) -> None:
        self.args = ArgSeparator(*args)
        self.video: Optional[MediaWrapper] = MediaWrapper(self.args.video) if self.args.video is not None else None
        super().__init__(self.options_from_args(self.args), self.args.callback)

    def options_from_args(self, args: ArgSeparator) -> Optional[Mapping[str, Any]]:
        """Caller options for the merged config; subclasses may map other slots in."""
        return args.options

    def default_config(self) -> Mapping[str, Any]:
        return self._defaults

    def load_model(self) -> Any:
        return type(self)._loader(self.config)

    def _make_image_method(
        self,
        inner: Callable[[Any, Mapping[str, Any]], Any],
        event_name: Optional[str] = None,
        number_option: Optional[str] = None,
    ) -> Callable[..., "asyncio.Task[Any]"]:
        """
        Wrap ``inner(image, config)`` into ``method(image?, options?, number?, callback?)``.

        Arguments are classified immediately, so invalid ones raise at call
        time. Per-call options (and a number, stored under *number_option*)
        are merged over the instance config for that call only.
        """

        def method(*args: Any) -> "asyncio.Task[Any]":
            call = ArgSeparator(*args)
            if not call.has("image") and self.video is not None:
                call.add_arg(self.video)

            overrides: Dict[str, Any] = dict(call.options or {})
            if number_option and call.number is not None:
                overrides[number_option] = call.number
            config = merge_options(self.config, overrides) if overrides else self.config

            async def run() -> Any:
                # raised inside the task so the callback sees it too
                call.require("image", NO_IMAGE_MESSAGE)
                await self.ready
                image = call.image
                if call.video is not None:
                    media = MediaWrapper(call.video)
                    if media.is_ready:
                        await next_frame(call.video)
                    else:
                        # load() decodes the first frame
                        await media.load()
                result = await _resolve(inner(image, config))
                if event_name:
                    self.emit(event_name, result)
                return result

            return _spawn(run(), call.callback)

        method.__name__ = getattr(inner, "__name__", "method").lstrip("_") or "method"
        return method


def create_class(
    loader: Callable[[Mapping[str, Any]], Any],
    default_options: Optional[Mapping[str, Any]] = None,
) -> Type[MediaModel]:
    """
    Build a ``MediaModel`` subclass around *loader*.

    ``loader(config)`` receives the merged, read-only config and may be a
    plain function or a coroutine function.
    """
    defaults = merge_options(default_options)
    return type(
        "MediaModel",
        (MediaModel,),
        {"_loader": staticmethod(loader), "_defaults": defaults, "__module__": __name__},
    )


def create_factory(cls: Type[AsyncModel]) -> Callable[..., Any]:
    """
    ``factory(*args)`` returns the instance when a callback is among *args*,
    otherwise the ``ready`` task (which resolves to the instance).
    """

    def factory(*args: Any) -> Any:
        has_callback = any(callable(arg) and not isinstance(arg, type) for arg in args)
        instance = cls(*args)
        return instance if has_callback else instance.ready

    factory.__name__ = f"create_{cls.__name__}"
    factory.__doc__ = cls.__doc__
    return factory


class _LoadedWrapper:
    """Shared state for wrappers whose loading is driven by an outside awaitable."""

    def __init__(self) -> None:
        self.model_ready = False
        self.model: Any = None
        self.instance: Any = None
        self.ready: "asyncio.Task[Any]"

    def _adopt(self, result: Any) -> Any:
        self.instance = result
        self.model = getattr(result, "model", None)
        self.model_ready = True
        return self

    def __getattr__(self, name: str) -> Any:
        instance = self.__dict__.get("instance")
        if instance is None:
            raise AttributeError(name)
        return getattr(instance, name)


def create_model_wrapper(creator: Callable[..., Any]) -> type:
    """
    Class form of a creator function: ``Wrapper(*args, callback?)`` calls
    ``creator(*args)`` (sync or async) and exposes ``ready``/``model_ready``/
    ``model``. A trailing callable is taken as the callback.
    """

    class ModelWrapper(_LoadedWrapper):
        def __init__(self, *args: Any) -> None:
            super().__init__()
            _require_loop(creator.__name__)
            callback: Optional[Callback] = None
            if args and callable(args[-1]):
                callback = args[-1]
                args = args[:-1]

            async def build() -> Any:
                return self._adopt(await _resolve(creator(*args)))

            self.ready = _spawn(build(), callback)

    ModelWrapper.__name__ = ModelWrapper.__qualname__ = f"{creator.__name__}_wrapper"
    return ModelWrapper


class AroundModel(_LoadedWrapper):
    """Wrap a load that is already in flight."""

    def __init__(self, awaitable: Awaitable[Any], callback: Optional[Callback] = None) -> None:
        super().__init__()
        _require_loop(type(self).__name__)

        async def settle() -> Any:
            return self._adopt(await awaitable)

        self.ready = _spawn(settle(), callback)
