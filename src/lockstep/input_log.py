"""Showdown input logs: the textual record used to replay a battle.

    >start {"formatid":"gen1customgame","seed":[1,2,3,4]}
    >player p1 {"name":"Bot 1","team":"..."}
    >player p2 {"name":"Bot 2","team":"..."}
    >p1 move 1
    >p2 switch 3
    ...

Decisions always come in `p1`/`p2` pairs, one pair per round, with explicit `pass` entries.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from pathlib import Path

import msgspec

from pkbin.choice import PLAYERS, Player

from .errors import InputLogError
from .prng import Seed

_GEN_RE = re.compile(r"^gen(\d)")
_START = ">start "
_PLAYER = ">player "


class StartSpec(msgspec.Struct, forbid_unknown_fields=True):
    formatid: str
    seed: list[int]


class PlayerSpec(msgspec.Struct, omit_defaults=True):
    name: str
    team: str = ""


def format_for(gen: int) -> str:
    return f"gen{int(gen)}customgame"


def gen_of(formatid: str) -> int:
    match = _GEN_RE.match(str(formatid))
    if match is None:
        raise InputLogError(f"cannot infer generation from format {formatid!r}")
    return int(match.group(1))


@dataclass(slots=True)
class InputLog:
    start: StartSpec
    p1: PlayerSpec
    p2: PlayerSpec
    decisions: list[tuple[str, str]] = field(default_factory=list)

    @classmethod
    def create(cls, gen: int, seed: Seed, p1: PlayerSpec, p2: PlayerSpec) -> "InputLog":
        return cls(StartSpec(formatid=format_for(gen), seed=[int(v) for v in seed]), p1, p2)

    @property
    def gen(self) -> int:
        return gen_of(self.start.formatid)

    @property
    def seed(self) -> Seed:
        if len(self.start.seed) != 4:
            raise InputLogError(f"expected a four-value seed, got {self.start.seed!r}")
        return tuple(int(v) for v in self.start.seed)  # type: ignore[return-value]

    @property
    def rounds(self) -> int:
        return len(self.decisions)

    def player(self, player: Player) -> PlayerSpec:
        return self.p1 if player == "p1" else self.p2

    def choices(self, round_index: int) -> tuple[str, str]:
        """Recorded choice text for `round_index` (1-based, matching frame numbering)."""
        if not 1 <= int(round_index) <= len(self.decisions):
            raise InputLogError(f"no recorded decisions for round {round_index} (log has {len(self.decisions)})")
        return self.decisions[int(round_index) - 1]

    def append(self, p1: str, p2: str) -> None:
        self.decisions.append((str(p1), str(p2)))

    def lines(self) -> list[str]:
        out = [
            _START + msgspec.json.encode(self.start).decode("utf-8"),
            _PLAYER + "p1 " + msgspec.json.encode(self.p1).decode("utf-8"),
            _PLAYER + "p2 " + msgspec.json.encode(self.p2).decode("utf-8"),
        ]
        for p1, p2 in self.decisions:
            out.append(f">p1 {p1}")
            out.append(f">p2 {p2}")
        return out

    def to_text(self) -> str:
        return "\n".join(self.lines())

    def write(self, path: Path) -> Path:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(self.to_text(), encoding="utf-8")
        return path


def _decode(payload: str, type_: type, what: str):
    try:
        return msgspec.json.decode(payload.encode("utf-8"), type=type_)
    except msgspec.DecodeError as exc:
        raise InputLogError(f"invalid {what}: {exc}") from exc


def parse_input_log(text: str) -> InputLog:
    lines = [line for line in str(text).splitlines() if line.strip()]
    if len(lines) < 3:
        raise InputLogError(f"input log needs a start line and two player lines, got {len(lines)} lines")
    if not lines[0].startswith(_START):
        raise InputLogError(f"expected {_START.strip()!r} on line 1, got {lines[0]!r}")
    start = _decode(lines[0][len(_START) :], StartSpec, "start spec")
    gen_of(start.formatid)

    specs: dict[str, PlayerSpec] = {}
    for lineno, (player, line) in enumerate(zip(PLAYERS, lines[1:3]), start=2):
        prefix = f"{_PLAYER}{player} "
        if not line.startswith(prefix):
            raise InputLogError(f"expected {prefix.strip()!r} on line {lineno}, got {line!r}")
        specs[player] = _decode(line[len(prefix) :], PlayerSpec, f"{player} spec")

    body = lines[3:]
    if len(body) % 2:
        raise InputLogError(f"decisions must come in p1/p2 pairs, got {len(body)} lines")
    decisions: list[tuple[str, str]] = []
    for idx in range(0, len(body), 2):
        pair = []
        for player, line in zip(PLAYERS, body[idx : idx + 2]):
            prefix = f">{player} "
            if not line.startswith(prefix):
                raise InputLogError(f"expected {prefix.strip()!r} on line {idx + 4 + len(pair)}, got {line!r}")
            pair.append(line[len(prefix) :].strip())
        decisions.append((pair[0], pair[1]))

    return InputLog(start=start, p1=specs["p1"], p2=specs["p2"], decisions=decisions)


def load_input_log(path: Path) -> InputLog:
    return parse_input_log(Path(path).read_text(encoding="utf-8"))
