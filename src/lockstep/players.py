from __future__ import annotations

from typing import Any, Mapping, Protocol, Sequence

from .prng import PRNG, Seed


class Player(Protocol):
    def choose(self, request: Mapping[str, Any]) -> str: ...


def _fainted(pokemon: Mapping[str, Any]) -> bool:
    return str(pokemon.get("condition", "")).endswith(" fnt")


def bench_slots(request: Mapping[str, Any]) -> list[int]:
    """1-based party slots that can be switched in."""
    side = request.get("side") or {}
    pokemon: Sequence[Mapping[str, Any]] = side.get("pokemon") or []
    return [idx for idx, mon in enumerate(pokemon, start=1) if not mon.get("active") and not _fainted(mon)]


def move_slots(request: Mapping[str, Any]) -> list[int]:
    active = request.get("active") or []
    if not active:
        return []
    moves: Sequence[Mapping[str, Any]] = active[0].get("moves") or []
    return [idx for idx, move in enumerate(moves, start=1) if not move.get("disabled")]


class RandomPlayer:
    """Seeded random decision-maker reading Showdown request JSON.

    Only moves the request itself marks as disabled are avoided, so candidates can still be
    rejected by the simulator; callers retry with the refreshed request.
    """

    def __init__(self, seed: Seed, *, move: float = 0.7) -> None:
        if not 0.0 <= float(move) <= 1.0:
            raise ValueError(f"move probability must be within [0, 1], got {move}")
        self.prng = PRNG(seed)
        self.move = float(move)

    def choose(self, request: Mapping[str, Any]) -> str:
        if request.get("wait"):
            return "pass"

        bench = bench_slots(request)
        force = request.get("forceSwitch")
        if force and any(force):
            return f"switch {self.prng.sample(bench)}" if bench else "pass"

        moves = move_slots(request)
        active = (request.get("active") or [{}])[0]
        trapped = bool(active.get("trapped") or active.get("maybeTrapped"))
        can_switch = bool(bench) and not trapped
        if moves and (not can_switch or self.prng.random_chance(int(round(self.move * 100)), 100)):
            return f"move {self.prng.sample(moves)}"
        if can_switch:
            return f"switch {self.prng.sample(bench)}"
        return "move 1"
