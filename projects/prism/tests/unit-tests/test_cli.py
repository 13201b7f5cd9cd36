from __future__ import annotations

import json
from pathlib import Path

import pytest
from typer.testing import CliRunner

import prism.cli as cli_mod

runner = CliRunner()


@pytest.fixture(autouse=True)
def _no_log_files(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(cli_mod, "setup_logging", lambda: None)


@pytest.fixture
def image_file(tmp_path: Path, pil_image) -> Path:
    path = tmp_path / "frame.png"
    pil_image.save(path)
    return path


def test_detect_prints_json(fake_ultralytics, image_file: Path) -> None:
    result = runner.invoke(cli_mod.app, ["detect", str(image_file), "--conf", "0.4"])
    assert result.exit_code == 0, result.output
    data = json.loads(result.stdout)
    assert data[0]["label"] == "dog"
    assert fake_ultralytics.instances[-1].calls[-1]["conf"] == pytest.approx(0.4)


def test_classify_topk(fake_ultralytics, image_file: Path) -> None:
    result = runner.invoke(cli_mod.app, ["classify", str(image_file), "--topk", "2", "--fast"])
    assert result.exit_code == 0, result.output
    assert [r["label"] for r in json.loads(result.stdout)] == ["dog", "bicycle"]


def test_pose_single(fake_ultralytics, image_file: Path) -> None:
    result = runner.invoke(cli_mod.app, ["pose", str(image_file), "--single"])
    assert result.exit_code == 0, result.output
    poses = json.loads(result.stdout)
    assert len(poses) == 1 and "nose" in poses[0]["pose"]


def test_segment_summarises_masks(fake_ultralytics, image_file: Path) -> None:
    result = runner.invoke(cli_mod.app, ["segment", str(image_file)])
    assert result.exit_code == 0, result.output
    data = json.loads(result.stdout)
    assert data["mask"]["shape"] == [6, 8]
    assert 0.0 < data["mask"]["coverage"] < 1.0
    assert data["segments"][0]["mask"]["shape"] == [6, 8]


def test_missing_file_is_a_usage_error(tmp_path: Path) -> None:
    result = runner.invoke(cli_mod.app, ["detect", str(tmp_path / "nope.png")])
    assert result.exit_code == 2


def test_no_weights_exits_with_error(fake_ultralytics, model_dir: Path, image_file: Path) -> None:
    for weight in model_dir.iterdir():
        weight.unlink()
    result = runner.invoke(cli_mod.app, ["detect", str(image_file)])
    assert result.exit_code == 1
    assert "no weight available" in result.output


def test_help_lists_commands() -> None:
    result = runner.invoke(cli_mod.app, ["--help"])
    assert result.exit_code == 0
    for command in ("detect", "classify", "pose", "segment"):
        assert command in result.output


def test_error_points_at_log_file(
    fake_ultralytics, model_dir: Path, image_file: Path, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    for weight in model_dir.iterdir():
        weight.unlink()
    log_file = tmp_path / "prism.log"
    monkeypatch.setattr(cli_mod, "get_log_path", lambda: log_file)
    result = runner.invoke(cli_mod.app, ["detect", str(image_file)])
    assert result.exit_code == 1
    assert "See log:" in result.output
