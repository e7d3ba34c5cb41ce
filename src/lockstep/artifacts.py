from __future__ import annotations

import logging
import os
import sys
import traceback
from dataclasses import dataclass
from pathlib import Path
from typing import IO, Sequence

from .input_log import InputLog
from .prng import Seed, seed_hex
from .report import FrameLike, render_report, strip_ansi

logger = logging.getLogger(__name__)

INPUT_LOG_LINK = "input.log"
NATIVE_REPORT_LINK = "pkmn.html"
REFERENCE_REPORT_LINK = "showdown.html"


@dataclass(frozen=True, slots=True)
class FailureArtifacts:
    input_log: Path
    native_report: Path
    reference_report: Path


def box(text: str) -> str:
    bar = "─" * (len(text) + 2)
    return f"╭{bar}╮\n│ {text} │\n╰{bar}╯"


def symlink(target: Path, link: Path) -> Path:
    """Point `link` at `target` (same directory), replacing whatever was there."""
    link.unlink(missing_ok=True)
    link.symlink_to(target.name)
    return link


def describe_error(error: BaseException | str) -> str:
    if isinstance(error, BaseException):
        text = "".join(traceback.format_exception(type(error), error, error.__traceback__))
    else:
        text = str(error)
    return strip_ansi(text)


def _pretty(path: Path, *, color: bool) -> str:
    rel = os.path.relpath(path, Path.cwd())
    return f"\x1b[36m{rel}\x1b[0m" if color else rel


def dump_failure(
    logs_dir: Path,
    *,
    gen: int,
    error: BaseException | str,
    seed: Seed,
    input_log: InputLog,
    native: Sequence[FrameLike],
    reference: Sequence[FrameLike],
    native_pending: FrameLike | None = None,
    reference_pending: FrameLike | None = None,
    stream: IO[str] | None = None,
) -> FailureArtifacts | None:
    """Write the input log and both engine reports for a failed battle.

    Files are named by the battle seed (`0x<HEX>.input.log`, `.pkmn.html`, `.showdown.html`) and
    the stable `input.log`/`pkmn.html`/`showdown.html` links are repointed at them. Never raises:
    problems while capturing are logged so the caller's original error is the one that surfaces.
    """
    out = stream if stream is not None else sys.stderr
    try:
        logs_dir = Path(logs_dir)
        logs_dir.mkdir(parents=True, exist_ok=True)
        color = bool(getattr(out, "isatty", lambda: False)())
        text = describe_error(error)
        hexed = seed_hex(seed)

        input_path = input_log.write(logs_dir / f"{hexed}.input.log")
        symlink(input_path, logs_dir / INPUT_LOG_LINK)
        print("", file=out)
        print(box(f"lockstep replay {os.path.relpath(input_path, Path.cwd())}"), file=out)

        native_path = logs_dir / f"{hexed}.pkmn.html"
        native_path.write_text(
            render_report(
                f"libpkmn gen{int(gen)} {hexed}",
                error=text,
                seed=seed,
                frames=native,
                partial=native_pending,
            ),
            encoding="utf-8",
        )
        link = symlink(native_path, logs_dir / NATIVE_REPORT_LINK)
        print(f" ◦ libpkmn: {_pretty(link, color=color)} -> {_pretty(native_path, color=color)}", file=out)

        reference_path = logs_dir / f"{hexed}.showdown.html"
        reference_path.write_text(
            render_report(
                f"Pokémon Showdown gen{int(gen)} {hexed}",
                error=text,
                seed=seed,
                frames=reference,
                partial=reference_pending,
            ),
            encoding="utf-8",
        )
        link = symlink(reference_path, logs_dir / REFERENCE_REPORT_LINK)
        print(f" ◦ Pokémon Showdown: {_pretty(link, color=color)} -> {_pretty(reference_path, color=color)}\n", file=out)
    except Exception:
        logger.exception("failed to capture failure artifacts for seed %s", tuple(seed))
        return None
    return FailureArtifacts(input_log=input_path, native_report=native_path, reference_report=reference_path)
