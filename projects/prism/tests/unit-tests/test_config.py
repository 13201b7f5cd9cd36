from __future__ import annotations

from pathlib import Path

import pytest

from prism.config import load_settings, merge_options, parse_imgsz
from prism.logging_config import format_event


@pytest.mark.parametrize(
    "text,expected",
    [("640", (640, 640)), ("640x512", (640, 512)), ("416,320", (416, 320)), (" 320X240 ", (320, 240))],
)
def test_parse_imgsz(text: str, expected: tuple) -> None:
    assert parse_imgsz(text) == expected


@pytest.mark.parametrize("text", ["abc", "1x2x3", ""])
def test_parse_imgsz_rejects_garbage(text: str) -> None:
    with pytest.raises(ValueError):
        parse_imgsz(text)


def test_settings_from_environment(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("PRISM_MODEL_DIR", str(tmp_path))
    monkeypatch.setenv("PRISM_PREFER_ONNX", "off")
    monkeypatch.setenv("PRISM_SMALL_MODELS", "yes")
    monkeypatch.setenv("PRISM_IMGSZ", "320x240")
    monkeypatch.setenv("PRISM_LOG_LEVEL", "debug")
    s = load_settings()
    assert s.model_dir == tmp_path
    assert s.prefer_onnx is False
    assert s.small_models is True
    assert s.imgsz == (320, 240)
    assert s.log_level == "DEBUG"


def test_settings_defaults(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in ("PRISM_MODEL_DIR", "PRISM_PREFER_ONNX", "PRISM_SMALL_MODELS", "PRISM_IMGSZ", "PRISM_LOG_FILE"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("PRISM_SMALL_MODELS", "maybe")
    s = load_settings()
    assert s.model_dir.name == "model"
    assert s.prefer_onnx is True
    assert s.small_models is False
    assert s.imgsz == (640, 640)
    assert s.log_file is None


def test_merge_options_is_read_only_and_isolated() -> None:
    defaults = {"a": 1, "b": 2}
    options = {"b": 3}
    merged = merge_options(defaults, options)
    assert dict(merged) == {"a": 1, "b": 3}
    with pytest.raises(TypeError):
        merged["a"] = 9  # type: ignore[index]
    options["b"] = 4
    assert merged["b"] == 3
    assert defaults == {"a": 1, "b": 2}
    assert dict(merge_options(None)) == {}


def test_format_event_sorts_and_drops_none() -> None:
    assert format_event("x", {"b": 2, "a": 1, "c": None}) == "x a=1 b=2"
    assert format_event("bare", {}) == "bare"
