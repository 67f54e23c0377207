from __future__ import annotations

import math
from pathlib import Path

import numpy as np
import pandas as pd
import pytest
from typer.testing import CliRunner

from thermonode.cli import app
from thermonode.node.linearize import linearize
from thermonode.node.sensors import ReplaySensor, SensorFault
from thermonode.replay import load_replay_csv, summarize


def write_samples(path: Path, with_gap: bool = True) -> Path:
    df = pd.DataFrame(
        {
            "internal_c": [24.0, 24.5, np.nan if with_gap else 25.0, 25.0],
            "probe_c": [100.0, 110.0, 120.0, 130.0],
            "vcc": [3.3, 3.29, 3.3, 3.31],
        }
    )
    df.to_csv(path, index=False)
    return path


def test_load_replay_csv(tmp_path: Path) -> None:
    data = load_replay_csv(write_samples(tmp_path / "run.csv"))
    assert len(data) == 4
    assert data.vcc is not None
    assert math.isnan(data.internal[2])


def test_load_replay_requires_columns(tmp_path: Path) -> None:
    path = tmp_path / "bad.csv"
    pd.DataFrame({"probe_c": [1.0]}).to_csv(path, index=False)
    with pytest.raises(ValueError):
        load_replay_csv(path)


def test_replay_sensor_cycles_and_reports_gaps(tmp_path: Path) -> None:
    sensor = ReplaySensor.from_csv(write_samples(tmp_path / "run.csv"))
    samples = [sensor.read() for _ in range(5)]
    assert samples[0].internal == 24.0
    assert samples[1].vcc == 3.29
    assert not samples[2].is_valid
    assert samples[4] == samples[0]


def test_replay_sensor_without_loop_faults_at_end(tmp_path: Path) -> None:
    sensor = ReplaySensor.from_csv(write_samples(tmp_path / "run.csv"), loop=False)
    for _ in range(4):
        sensor.read()
    with pytest.raises(SensorFault):
        sensor.read()


def test_summarize_skips_faults(tmp_path: Path) -> None:
    summary = summarize(load_replay_csv(write_samples(tmp_path / "run.csv")))
    assert summary.samples == 4
    assert summary.faults == 1
    expected = [linearize(24.0, 100.0), linearize(24.5, 110.0), linearize(25.0, 130.0)]
    assert np.isclose(summary.mean_c, np.mean(expected))
    assert summary.min_internal_c == 24.0
    assert summary.max_internal_c == 25.0


def test_cli_replay_stats_and_linearize(tmp_path: Path) -> None:
    runner = CliRunner()
    result = runner.invoke(app, ["replay-stats", "--in", str(write_samples(tmp_path / "run.csv"))])
    assert result.exit_code == 0, result.output
    assert "Samples: 4 (faults: 1)" in result.output

    result = runner.invoke(app, ["linearize", "--internal", "25", "--raw", "25.5"])
    assert result.exit_code == 0, result.output
    assert result.output.strip() == "25.50"

    result = runner.invoke(app, ["linearize", "--internal", "25", "--raw", "2000"])
    assert result.exit_code == 1
