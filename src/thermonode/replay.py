"""Loading of recorded raw thermocouple samples for replay and offline checks."""
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import numpy as np
import pandas as pd

from .node.linearize import linearize

REQUIRED_COLUMNS = {"internal_c", "probe_c"}
OPTIONAL_COLUMNS = {"vcc"}


@dataclass(frozen=True)
class ReplayData:
    """Raw amplifier samples in recording order."""

    dataframe: pd.DataFrame
    internal: np.ndarray
    probe: np.ndarray
    vcc: Optional[np.ndarray]

    def __len__(self) -> int:
        return int(self.internal.size)


@dataclass(frozen=True)
class ReplaySummary:
    samples: int
    faults: int
    mean_c: float
    min_c: float
    max_c: float
    min_internal_c: float
    max_internal_c: float


def load_replay_csv(path: str | Path) -> ReplayData:
    """Load raw samples from *path*.

    Parameters
    ----------
    path:
        CSV file with `internal_c` and `probe_c` columns and an optional `vcc`
        column. Empty cells are kept as NaN and read back as sensor faults.
    """

    path = Path(path)
    if not path.exists():  # pragma: no cover
        raise FileNotFoundError(path)

    df = pd.read_csv(path)
    missing = REQUIRED_COLUMNS - set(df.columns)
    if missing:
        raise ValueError(f"Missing required columns: {sorted(missing)}")
    if df.empty:
        raise ValueError("Replay file contains no samples")

    df = df.reset_index(drop=True)
    internal = pd.to_numeric(df["internal_c"], errors="coerce").to_numpy(dtype=float)
    probe = pd.to_numeric(df["probe_c"], errors="coerce").to_numpy(dtype=float)
    vcc = pd.to_numeric(df["vcc"], errors="coerce").to_numpy(dtype=float) if "vcc" in df.columns else None

    return ReplayData(dataframe=df, internal=internal, probe=probe, vcc=vcc)


def summarize(data: ReplayData) -> ReplaySummary:
    """Linearize every sample and summarise the usable ones."""

    compensated = np.array(
        [
            linearize(internal, probe) if not (np.isnan(internal) or np.isnan(probe)) else np.nan
            for internal, probe in zip(data.internal, data.probe)
        ],
        dtype=float,
    )
    valid = ~np.isnan(compensated)
    if not valid.any():
        raise ValueError("Replay file contains no usable samples")
    good = compensated[valid]
    internal = data.internal[valid]
    return ReplaySummary(
        samples=int(compensated.size),
        faults=int((~valid).sum()),
        mean_c=float(good.mean()),
        min_c=float(good.min()),
        max_c=float(good.max()),
        min_internal_c=float(internal.min()),
        max_internal_c=float(internal.max()),
    )
