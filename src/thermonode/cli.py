"""Command line interface for the thermonode package."""
from __future__ import annotations

from pathlib import Path

import typer

from .node.linearize import is_out_of_range, linearize
from .node.runner import app as node_app
from .replay import load_replay_csv, summarize

app = typer.Typer(context_settings={"help_option_names": ["-h", "--help"]})
app.add_typer(node_app, name="node")


@app.command("linearize")
def linearize_cmd(
    internal: float = typer.Option(..., "--internal", help="Cold-junction temperature (°C)."),
    raw: float = typer.Option(..., "--raw", help="Amplifier probe temperature (°C)."),
) -> None:
    """Apply Type K cold-junction compensation to a single reading."""

    value = linearize(internal, raw)
    if is_out_of_range(value):
        typer.echo("out of range")
        raise typer.Exit(code=1)
    typer.echo(f"{value:.2f}")


@app.command("replay-stats")
def replay_stats(
    input_path: Path = typer.Option(..., "--in", help="Recorded samples CSV.", exists=True, readable=True),
) -> None:
    """Summarise a recorded sample file after compensation."""

    try:
        summary = summarize(load_replay_csv(input_path))
    except ValueError as exc:
        raise typer.BadParameter(str(exc), param_hint="--in") from exc
    typer.echo(f"Samples: {summary.samples} (faults: {summary.faults})")
    typer.echo(f"Mean: {summary.mean_c:.2f} C")
    typer.echo(f"Range: {summary.min_c:.2f} .. {summary.max_c:.2f} C")
    typer.echo(f"Cold junction: {summary.min_internal_c:.2f} .. {summary.max_internal_c:.2f} C")


def run() -> None:
    app()


if __name__ == "__main__":  # pragma: no cover
    run()
