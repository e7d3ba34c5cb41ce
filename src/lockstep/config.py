from __future__ import annotations

import os
import re
import shlex
from dataclasses import dataclass, replace
from pathlib import Path

from .prng import Seed, seed_from_int

DEFAULT_LOGS_DIR = Path("logs")
DEFAULT_BRIDGE_COMMAND: tuple[str, ...] = ("node", "bridge.js")
DEFAULT_NATIVE_LIBRARY = "libpkmn-showdown"
DEFAULT_MAX_CHOICE_ATTEMPTS = 100

_DURATION_RE = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*([smh]?)\s*$")
_DURATION_UNITS = {"": 1.0, "s": 1.0, "m": 60.0, "h": 3600.0}


@dataclass(frozen=True, slots=True)
class HarnessConfig:
    logs_dir: Path = DEFAULT_LOGS_DIR
    bridge_command: tuple[str, ...] = DEFAULT_BRIDGE_COMMAND
    native_library: str = DEFAULT_NATIVE_LIBRARY
    max_choice_attempts: int = DEFAULT_MAX_CHOICE_ATTEMPTS
    cycles: int = 10
    max_failures: int = 1
    duration_seconds: float = 0.0
    zig: str = "zig"

    def __post_init__(self) -> None:
        if int(self.max_choice_attempts) < 1:
            raise ValueError(f"max_choice_attempts must be >= 1, got {self.max_choice_attempts}")
        if int(self.cycles) < 1:
            raise ValueError(f"cycles must be >= 1, got {self.cycles}")
        if int(self.max_failures) < 1:
            raise ValueError(f"max_failures must be >= 1, got {self.max_failures}")
        if float(self.duration_seconds) < 0:
            raise ValueError(f"duration must not be negative, got {self.duration_seconds}")

    @classmethod
    def from_env(cls, **overrides: object) -> "HarnessConfig":
        """Defaults, then `LOCKSTEP_*` environment overrides, then explicit keyword overrides."""
        values: dict[str, object] = {}
        logs_dir = os.environ.get("LOCKSTEP_LOGS_DIR")
        if logs_dir:
            values["logs_dir"] = Path(logs_dir).expanduser()
        bridge = os.environ.get("LOCKSTEP_BRIDGE")
        if bridge:
            values["bridge_command"] = tuple(shlex.split(bridge))
        library = os.environ.get("LOCKSTEP_LIBPKMN")
        if library:
            values["native_library"] = str(library)
        zig = os.environ.get("LOCKSTEP_ZIG")
        if zig:
            values["zig"] = str(zig)
        values.update({key: value for key, value in overrides.items() if value is not None})
        return cls(**values)  # type: ignore[arg-type]

    def with_run_limits(
        self,
        *,
        cycles: int | None = None,
        duration_seconds: float | None = None,
        max_failures: int | None = None,
    ) -> "HarnessConfig":
        duration = self.duration_seconds if duration_seconds is None else float(duration_seconds)
        if cycles is None:
            cycles = 1 if duration else self.cycles
        return replace(
            self,
            cycles=int(cycles),
            duration_seconds=duration,
            max_failures=self.max_failures if max_failures is None else int(max_failures),
        )


def parse_duration(text: str | float | int) -> float:
    """Seconds from `90`, `30s`, `5m` or `2h`."""
    if isinstance(text, (int, float)):
        if text < 0:
            raise ValueError(f"duration must not be negative: {text}")
        return float(text)
    match = _DURATION_RE.match(str(text))
    if match is None:
        raise ValueError(f"invalid duration: {text!r} (expected e.g. 90, 30s, 5m, 2h)")
    return float(match.group(1)) * _DURATION_UNITS[match.group(2)]


def parse_seed(text: str) -> Seed:
    """Parse `a,b,c,d` (four u16 values) or a `0x`-prefixed 64-bit seed."""
    raw = str(text).strip()
    if raw.lower().startswith("0x"):
        try:
            return seed_from_int(int(raw, 16))
        except ValueError as exc:
            raise ValueError(f"invalid seed: {text!r}") from exc
    parts = [part.strip() for part in raw.split(",")]
    if len(parts) != 4:
        raise ValueError(f"seed must have four comma-separated values, got {text!r}")
    try:
        values = tuple(int(part, 0) for part in parts)
    except ValueError as exc:
        raise ValueError(f"invalid seed: {text!r}") from exc
    if any(not 0 <= value <= 0xFFFF for value in values):
        raise ValueError(f"seed values must be u16, got {text!r}")
    return values  # type: ignore[return-value]
