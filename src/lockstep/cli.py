from __future__ import annotations

import logging
from pathlib import Path

import typer

from .config import HarnessConfig, parse_duration, parse_seed
from .errors import HarnessError, SubprocessError

app = typer.Typer(add_completion=False)

_LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


@app.callback()
def cmd_root(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="enable debug logging"),
) -> None:
    """Differential testing of libpkmn against Pokemon Showdown."""
    logging.basicConfig(level=logging.DEBUG if verbose else logging.INFO, format=_LOG_FORMAT)


def _config(**overrides: object) -> HarnessConfig:
    try:
        return HarnessConfig.from_env(**overrides)
    except ValueError as exc:
        typer.echo(f"invalid configuration: {exc}", err=True)
        raise typer.Exit(code=1) from exc


@app.command("replay")
def cmd_replay(
    target: str = typer.Argument(..., help="input log path, or the hex seed of a dumped failure (e.g. 0x1A2B...)"),
    logs_dir: Path | None = typer.Option(None, help="failure artifacts directory (default: ./logs)"),
) -> None:
    """Replay a recorded input log in both engines, failing on the first divergence."""
    from .runner import BridgeEngines, replay
    from .showdown import ShowdownBridge

    config = _config(logs_dir=logs_dir)
    try:
        with ShowdownBridge(config.bridge_command) as bridge:
            outcome = replay(target, factory=BridgeEngines(bridge, config), config=config)
    except (HarnessError, ValueError, OSError) as exc:
        typer.echo(f"replay failed: {exc}", err=True)
        raise typer.Exit(code=1) from exc
    typer.echo(f"{outcome.result} after {outcome.rounds} rounds")


@app.command("explore")
def cmd_explore(
    gen: int = typer.Option(1, "--gen", min=1, max=1, help="generation to test"),
    seed: str | None = typer.Option(None, "--seed", help="root seed a,b,c,d or 0x... (default: random)"),
    cycles: int | None = typer.Option(None, "--cycles", min=1, help="battles per batch (default: 10, or 1 with --duration)"),
    duration: str | None = typer.Option(None, "--duration", help="keep running batches for this long (e.g. 90, 30s, 5m, 2h)"),
    max_failures: int = typer.Option(1, "--max-failures", min=1, help="stop after this many failed battles"),
    logs_dir: Path | None = typer.Option(None, help="failure artifacts directory (default: ./logs)"),
) -> None:
    """Play seeded random battles in lockstep, dumping artifacts for any divergence."""
    from .prng import PRNG, seed_hex
    from .runner import BridgeEngines, explore
    from .showdown import ShowdownBridge

    try:
        root = PRNG(parse_seed(seed)) if seed else PRNG.generate()
        duration_seconds = parse_duration(duration) if duration else None
    except ValueError as exc:
        typer.echo(str(exc), err=True)
        raise typer.Exit(code=1) from exc

    config = _config(logs_dir=logs_dir).with_run_limits(
        cycles=cycles,
        duration_seconds=duration_seconds,
        max_failures=max_failures,
    )
    typer.echo(f"root seed {','.join(str(v) for v in root.seed)} ({seed_hex(root.seed)})", err=True)
    try:
        with ShowdownBridge(config.bridge_command) as bridge:
            summary = explore(gen=gen, root=root, factory=BridgeEngines(bridge, config), config=config)
    except (HarnessError, OSError) as exc:
        typer.echo(f"explore failed: {exc}", err=True)
        raise typer.Exit(code=1) from exc

    typer.echo(f"{summary.battles} battles, {summary.failures} failures in {summary.elapsed_seconds:.1f}s")
    if not summary.ok:
        raise typer.Exit(code=1)


@app.command("fuzz")
def cmd_fuzz(
    mode: str = typer.Argument(..., help="pkmn|showdown"),
    gen: int = typer.Argument(..., help="generation"),
    duration: str = typer.Argument(..., help="fuzz duration (e.g. 30s, 5m)"),
    seed: int | None = typer.Argument(None, help="fuzzer seed"),
    out: Path | None = typer.Option(None, "--out", help="write the failure report here instead of stdout"),
) -> None:
    """Run `zig build fuzz` and render its trace if the engine panics."""
    from .fuzz import run_fuzz

    if mode not in ("pkmn", "showdown"):
        typer.echo(f"mode must be either 'pkmn' or 'showdown', received {mode!r}", err=True)
        raise typer.Exit(code=1)

    config = _config()
    try:
        failure = run_fuzz(mode, gen, duration, seed, config=config)  # type: ignore[arg-type]
    except SubprocessError as exc:
        if exc.stderr:
            typer.echo(exc.stderr, err=True)
        typer.echo(f"fuzz failed: {exc}", err=True)
        raise typer.Exit(code=1) from exc
    except ValueError as exc:
        typer.echo(str(exc), err=True)
        raise typer.Exit(code=1) from exc

    if failure is None:
        return
    typer.echo(failure.stderr or failure.error, err=True)
    report = failure.report()
    if out is None:
        typer.echo(report)
    else:
        out.parent.mkdir(parents=True, exist_ok=True)
        out.write_text(report, encoding="utf-8")
        typer.echo(f"wrote {out}", err=True)
    raise typer.Exit(code=1)


@app.command("decode")
def cmd_decode(
    trace: Path = typer.Argument(..., help="binary trace file (fuzz stdout)"),
    gen: int = typer.Option(1, "--gen", help="generation"),
    showdown: bool = typer.Option(False, "--showdown/--pkmn", help="trace was produced with -Dshowdown"),
    html: bool = typer.Option(False, "--html", help="render an HTML report instead of text"),
) -> None:
    """Decode a binary frame trace and print its frames."""
    from pkbin.frames import decode_frames

    from .fuzz import decode_trace

    try:
        data = trace.read_bytes()
        if html:
            typer.echo(decode_trace(gen, data, showdown=showdown))
            return
        stream = decode_frames(gen, data, showdown=showdown)
    except (OSError, ValueError) as exc:
        typer.echo(f"decode failed: {exc}", err=True)
        raise typer.Exit(code=1) from exc

    typer.echo(f"seed 0x{stream.seed:016X}, {len(stream)} frames")
    for line in stream.initial:
        typer.echo(f"  {line}")
    for idx, frame in enumerate(stream.frames):
        typer.echo(f"frame {idx}: {frame.result} ({frame.c1}, {frame.c2}) turn {frame.snapshot.turn}")
        for line in frame.lines:
            typer.echo(f"  {line}")


def main(argv: list[str] | None = None) -> None:
    app(prog_name="lockstep", args=argv)


if __name__ == "__main__":
    main()
