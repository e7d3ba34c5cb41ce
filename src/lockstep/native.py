"""cffi (ABI mode) binding over libpkmn built with `-Dshowdown -Dtrace`.

The library is opened lazily, once per path. A `NativeBattle` owns a copy of the battle bytes and a
reusable log buffer; `update` returns the Result byte and the raw log bytes written by that call.
"""

from __future__ import annotations

import logging
import os
from functools import lru_cache
from pathlib import Path

import cffi

from pkbin.choice import Choice, ChoiceKind, Player, Result
from pkbin.layout import snapshot_size

from .errors import HarnessError

logger = logging.getLogger(__name__)

LOG_BUFFER_SIZE = 512
MAX_CHOICES = 9

_ffi = cffi.FFI()
_ffi.cdef("""
    typedef struct { uint8_t bytes[384]; } pkmn_gen1_battle;
    typedef uint8_t pkmn_result;
    typedef uint8_t pkmn_choice;
    typedef uint8_t pkmn_choice_kind;
    typedef uint8_t pkmn_player;

    pkmn_result pkmn_gen1_battle_update(
        pkmn_gen1_battle *battle,
        pkmn_choice c1,
        pkmn_choice c2,
        uint8_t *buf,
        size_t len
    );
    uint8_t pkmn_gen1_battle_choices(
        pkmn_gen1_battle *battle,
        pkmn_player player,
        pkmn_choice_kind request,
        pkmn_choice out[],
        size_t len
    );
    bool pkmn_error(pkmn_result result);
""")


class NativeError(HarnessError):
    pass


def _candidates(name: str) -> list[str]:
    path = Path(name)
    if path.suffix or path.is_absolute() or os.sep in name:
        return [str(path)]
    return [f"{name}.so", f"{name}.dylib", f"{name}.dll", name, str(Path.cwd() / "zig-out" / "lib" / f"{name}.so")]


@lru_cache(maxsize=None)
def load_library(name: str):
    """Open `name` (a path, or a bare library name searched in the usual places)."""
    errors: list[str] = []
    for candidate in _candidates(str(name)):
        try:
            lib = _ffi.dlopen(candidate)
        except OSError as exc:
            errors.append(f"{candidate}: {exc}")
            continue
        logger.debug("loaded native library %s", candidate)
        return lib
    searched = "\n  ".join(errors)
    raise NativeError(f"could not load {name!r}. Tried:\n  {searched}\nSet LOCKSTEP_LIBPKMN to the library path.")


class NativeBattle:
    """One gen 1 battle driven through libpkmn."""

    def __init__(self, data: bytes, *, gen: int = 1, library: str = "libpkmn-showdown") -> None:
        if int(gen) != 1:
            raise NativeError(f"unsupported gen: {gen}")
        size = snapshot_size(gen)
        if len(data) != size:
            raise NativeError(f"battle must be {size} bytes, got {len(data)}")
        self.gen = int(gen)
        self._lib = load_library(library)
        self._battle = _ffi.new("pkmn_gen1_battle *")
        _ffi.memmove(self._battle, bytes(data), size)
        self._log = _ffi.new(f"uint8_t[{LOG_BUFFER_SIZE}]")
        self._choices = _ffi.new(f"pkmn_choice[{MAX_CHOICES}]")

    def to_bytes(self) -> bytes:
        return bytes(_ffi.buffer(self._battle, snapshot_size(self.gen)))

    def update(self, c1: Choice, c2: Choice) -> tuple[Result, bytes]:
        _ffi.memmove(self._log, b"\x00" * LOG_BUFFER_SIZE, LOG_BUFFER_SIZE)
        raw = self._lib.pkmn_gen1_battle_update(self._battle, c1.encode(), c2.encode(), self._log, LOG_BUFFER_SIZE)
        if self._lib.pkmn_error(raw):
            raise NativeError(f"pkmn_gen1_battle_update failed (result=0x{int(raw):02x})")
        return Result.decode(int(raw)), bytes(_ffi.buffer(self._log, LOG_BUFFER_SIZE))

    def choices(self, player: Player, request: ChoiceKind) -> list[Choice]:
        count = self._lib.pkmn_gen1_battle_choices(
            self._battle,
            0 if player == "p1" else 1,
            int(request),
            self._choices,
            MAX_CHOICES,
        )
        return [Choice.decode(int(self._choices[idx])) for idx in range(int(count))]
