"""Runs the native engine's `zig build fuzz` target and decodes its trace on a crash.

With `-Dtrace` the fuzzer streams a frame buffer to stdout as it plays; when it panics, stderr
carries the panic message and stdout holds everything up to the failing round.
"""

from __future__ import annotations

import logging
import subprocess
from dataclasses import dataclass
from typing import Callable, Literal

from pkbin.frames import FrameStream, decode_frames

from .config import HarnessConfig, parse_duration
from .errors import SubprocessError
from .prng import seed_from_int
from .report import render_report

logger = logging.getLogger(__name__)

PANIC_MARKER = "panic: "

FuzzMode = Literal["pkmn", "showdown"]
Runner = Callable[..., subprocess.CompletedProcess]


@dataclass(frozen=True, slots=True)
class FuzzFailure:
    gen: int
    showdown: bool
    error: str
    returncode: int
    stream: FrameStream
    stderr: str = ""

    def report(self) -> str:
        return render_report(
            f"libpkmn gen{self.gen} fuzz failure",
            error=self.error,
            seed=seed_from_int(self.stream.seed),
            frames=self.stream.frames,
            initial=self.stream.initial,
        )


def fuzz_command(
    mode: FuzzMode,
    gen: int,
    duration: str,
    seed: int | None = None,
    *,
    zig: str = "zig",
) -> list[str]:
    if mode not in ("pkmn", "showdown"):
        raise ValueError(f"mode must be either 'pkmn' or 'showdown', got {mode!r}")
    parse_duration(duration)
    args = [str(zig), "build", "fuzz", "-Dtrace"]
    if mode == "showdown":
        args.append("-Dshowdown")
    args.extend(["--", str(int(gen)), str(duration)])
    if seed is not None:
        args.append(str(int(seed)))
    return args


def run_fuzz(
    mode: FuzzMode,
    gen: int,
    duration: str,
    seed: int | None = None,
    *,
    config: HarnessConfig | None = None,
    run: Runner = subprocess.run,
) -> FuzzFailure | None:
    """Run the fuzzer; `None` on a clean exit, a decoded `FuzzFailure` on a panic."""
    config = config if config is not None else HarnessConfig()
    args = fuzz_command(mode, gen, duration, seed, zig=config.zig)
    logger.info("running %s", " ".join(args))
    try:
        proc = run(args, capture_output=True, check=False)
    except OSError as exc:
        raise SubprocessError(f"failed to run {args[0]!r}: {exc}") from exc

    if proc.returncode == 0:
        return None

    stderr = bytes(proc.stderr or b"").decode("utf-8", errors="replace")
    stdout = bytes(proc.stdout or b"")
    panic = stderr.find(PANIC_MARKER)
    if panic < 0:
        raise SubprocessError(f"fuzz exited with status {proc.returncode}", returncode=proc.returncode, stderr=stderr)
    if not stdout:
        raise SubprocessError(
            f"fuzz panicked without trace output (status {proc.returncode})",
            returncode=proc.returncode,
            stderr=stderr,
        )

    showdown = mode == "showdown"
    stream = decode_frames(gen, stdout, showdown=showdown)
    logger.info("decoded %d frames from fuzz trace", len(stream))
    return FuzzFailure(
        gen=int(gen),
        showdown=showdown,
        error=stderr[panic:],
        returncode=int(proc.returncode),
        stream=stream,
        stderr=stderr,
    )


def decode_trace(gen: int, data: bytes, *, showdown: bool, error: str = "") -> str:
    """Render a saved fuzz trace (`zig build fuzz` stdout) as an HTML report."""
    stream = decode_frames(gen, data, showdown=showdown)
    return render_report(
        f"libpkmn gen{int(gen)} trace",
        error=error,
        seed=seed_from_int(stream.seed),
        frames=stream.frames,
        initial=stream.initial,
    )
