from __future__ import annotations

import json
from pathlib import Path

from typer.testing import CliRunner

import highlight_clipper.cli as cli
from highlight_clipper.errors import EnvironmentFailureError
from highlight_clipper.pipeline import build_context
from tests.conftest import FakeEngine, FakeProber, showinfo_log, silence_log


class _MissingFFmpeg:
    async def execute(self, args: list[str]):
        raise EnvironmentFailureError("ffmpeg executable was not found at 'ffmpeg'. Install FFmpeg so it is available on PATH.")


def _use_fakes(monkeypatch, settings, engine) -> None:
    monkeypatch.setattr(cli, "_bootstrap", lambda _: settings)
    monkeypatch.setattr(
        cli,
        "build_context",
        lambda resolved: build_context(resolved, engine=engine, prober=FakeProber(90.0), run_id="cli"),
    )


def test_run_command_prints_clean_error_without_traceback(tmp_path: Path, monkeypatch, settings) -> None:
    vod_path = tmp_path / "sample.mkv"
    vod_path.write_bytes(b"data")
    _use_fakes(monkeypatch, settings, _MissingFFmpeg())

    result = CliRunner().invoke(cli.app, ["run", str(vod_path)])

    assert result.exit_code == 1
    assert "[1/8] Probe media..." in result.output
    assert "[1/8] Probe media failed" in result.output
    assert "Error: ffmpeg executable was not found" in result.output
    assert "Traceback" not in result.output


def test_run_command_shows_progress_for_all_stages(tmp_path: Path, monkeypatch, settings) -> None:
    vod_path = tmp_path / "sample.mkv"
    vod_path.write_bytes(b"data")
    engine = FakeEngine(
        logs={
            "silencedetect": silence_log((40.0, 45.0)),
            "showinfo": showinfo_log(12.0, 50.0),
        }
    )
    _use_fakes(monkeypatch, settings, engine)

    result = CliRunner().invoke(cli.app, ["run", str(vod_path), "--top-k", "2", "--basename", "final"])

    assert result.exit_code == 0
    assert "[1/8] Probe media..." in result.output
    assert "[8/8] Export outputs done" in result.output
    assert '"status": "ok"' in result.output
    assert (settings.pipeline.output_dir / "final.json").exists()
    assert (settings.pipeline.output_dir / "final.csv").exists()


def test_run_command_rejects_missing_video(tmp_path: Path, monkeypatch, settings) -> None:
    _use_fakes(monkeypatch, settings, FakeEngine())

    result = CliRunner().invoke(cli.app, ["run", str(tmp_path / "absent.mp4")])

    assert result.exit_code == 1
    assert "Error: Video file not found" in result.output


def test_score_command_selects_from_analysis_file(tmp_path: Path, monkeypatch, settings) -> None:
    analysis = tmp_path / "analysis.json"
    analysis.write_text(
        json.dumps({"speech_sections": [[0, 30], [100, 130]], "scene_times": [105, 110]}),
        encoding="utf-8",
    )
    monkeypatch.setattr(cli, "_bootstrap", lambda _: settings)

    result = CliRunner().invoke(cli.app, ["score", str(analysis), "--top-k", "1"])

    assert result.exit_code == 0
    assert json.loads(result.stdout) == [{"start": 100.0, "duration": 30.0}]


def test_cleanup_command_sweeps_leftover_scratch(monkeypatch, settings) -> None:
    leftover = settings.pipeline.scratch_dir / "run_old" / "clip_1.mp4"
    leftover.parent.mkdir(parents=True)
    leftover.write_bytes(b"x")
    monkeypatch.setattr(cli, "_bootstrap", lambda _: settings)

    result = CliRunner().invoke(cli.app, ["cleanup"])

    assert result.exit_code == 0
    assert '"removed": 1' in result.output
    assert not leftover.exists()


def test_detect_speech_prints_clamped_intervals(tmp_path: Path, monkeypatch, settings) -> None:
    vod_path = tmp_path / "sample.mkv"
    vod_path.write_bytes(b"data")
    engine = FakeEngine(
        logs={
            "volumedetect": "[Parsed_volumedetect_0 @ 0x1] mean_volume: -22.0 dB",
            "silencedetect": silence_log((10.0, 12.0)),
        }
    )
    _use_fakes(monkeypatch, settings, engine)

    result = CliRunner().invoke(cli.app, ["detect", "speech", str(vod_path)])

    assert result.exit_code == 0
    payload = json.loads(result.stdout[result.stdout.index("{") :])
    assert payload["mean_volume_db"] == -22.0
    assert payload["speech_sections"] == [[0.0, 10.0], [12.0, 90.0]]


def test_config_show_prints_resolved_settings(monkeypatch, settings) -> None:
    monkeypatch.setattr(cli, "_bootstrap", lambda _: settings)

    result = CliRunner().invoke(cli.app, ["config", "show"])

    assert result.exit_code == 0
    assert json.loads(result.stdout)["weights"] == {"speech": 1.0, "scene": 2.5, "balance_penalty": 0.0}
