"""Decoder for the engine's binary protocol log.

Each entry is a one-byte tag followed by a fixed payload (some reasons carry one extra byte or
ident). A round's log ends with a single `0x00` byte, so the only way to find where a log region
ends is to decode it entry by entry; `LogCursor` keeps that offset bookkeeping explicit.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import IntEnum
from typing import Callable, Iterator

from .choice import PLAYERS, Player
from .data import Lookup, UnknownIdError, lookup
from .layout import BattleSnapshot, TruncatedBufferError, status_name


class ProtocolDecodeError(ValueError):
    pass


class ArgType(IntEnum):
    NONE = 0
    LAST_STILL = 1
    LAST_MISS = 2
    MOVE = 3
    SWITCH = 4
    CANT = 5
    FAINT = 6
    TURN = 7
    WIN = 8
    TIE = 9
    DAMAGE = 10
    HEAL = 11
    STATUS = 12
    CURE_STATUS = 13
    BOOST = 14
    CLEAR_ALL_BOOST = 15
    FAIL = 16
    MISS = 17
    HIT_COUNT = 18
    PREPARE = 19
    MUST_RECHARGE = 20
    ACTIVATE = 21
    FIELD_ACTIVATE = 22
    START = 23
    END = 24
    OHKO = 25
    CRIT = 26
    SUPER_EFFECTIVE = 27
    RESISTED = 28
    IMMUNE = 29
    TRANSFORM = 30


@dataclass(frozen=True, slots=True)
class ParsedLine:
    """One protocol entry: a tag, positional args and `[key]value` named args."""

    tag: str
    args: tuple[str, ...] = ()
    # Hashed by tag and args only; equality still compares kwargs.
    kwargs: dict[str, str] = field(default_factory=dict, hash=False)

    def __str__(self) -> str:
        parts = [self.tag, *self.args]
        parts.extend(f"[{key}]{value}" if value == "" else f"[{key}] {value}" for key, value in self.kwargs.items())
        return "|" + "|".join(parts)


@dataclass(slots=True)
class Names:
    """Resolves player names and party species for rendering idents.

    Party species are indexed by original team position, which is what the engine's idents encode.
    """

    p1: str = "Player 1"
    p2: str = "Player 2"
    teams: dict[str, tuple[str, ...]] = field(default_factory=lambda: {"p1": (), "p2": ()})

    def player(self, player: Player) -> str:
        return self.p1 if player == "p1" else self.p2

    def pokemon(self, player: Player, index: int) -> str:
        team = self.teams.get(player, ())
        if 1 <= int(index) <= len(team):
            return team[int(index) - 1]
        return f"#{int(index)}"

    def refresh(self, battle: BattleSnapshot) -> None:
        for player in PLAYERS:
            self.teams[player] = tuple(mon.species for mon in battle.side(player).pokemon)


_CANT_REASONS = ("slp", "frz", "par", "partiallytrapped", "flinch", "Disable", "recharge", "nopp")
_CANT_DISABLE = 5
_DAMAGE_FROM = (None, "psn", "brn", "confusion", "Leech Seed", "Recoil")
_DAMAGE_RECOIL_OF = 5
_HEAL_SILENT = 1
_HEAL_DRAIN = 2
_STATUS_SILENT = 1
_STATUS_FROM = 2
_CURE_REASONS = ("msg", "silent")
_BOOST_STATS = ("atk", "def", "spe", "spa", "spd", "accuracy", "evasion")
_FAIL_REASONS = (None, "slp", "psn", "brn", "frz", "par", "tox", "move: Substitute")
_ACTIVATE_REASONS = ("Bide", "confusion", "move: Haze", "move: Mist", "move: Struggle", "Substitute", "move: Splash")
_ACTIVATE_SUBSTITUTE = 5
_START_REASONS = (
    "Bide",
    "confusion",
    "confusion",
    "focusenergy",
    "move: Leech Seed",
    "Light Screen",
    "Mist",
    "Reflect",
    "Substitute",
    "typechange",
    "Disable",
    "Mimic",
)
_START_FATIGUE = 2
_START_TYPECHANGE = 9
_START_DISABLE = 10
_START_MIMIC = 11
_END_REASONS = (
    ("Disable", False),
    ("confusion", False),
    ("move: Bide", False),
    ("Substitute", False),
    ("Disable", True),
    ("confusion", True),
    ("mist", True),
    ("focusenergy", True),
    ("leechseed", True),
    ("Toxic counter", True),
    ("lightscreen", True),
    ("reflect", True),
)


def _pick(table: tuple, reason: int, what: str):
    if not 0 <= int(reason) < len(table):
        raise ProtocolDecodeError(f"unknown {what} reason: {reason}")
    return table[int(reason)]


class LogCursor:
    """Position-tracking reader over one log region.

    `next()` returns entries one at a time and `None` once the terminator has been consumed;
    `consumed` is the number of bytes read so far (terminator included), which callers use to
    locate whatever follows the region.
    """

    def __init__(self, data: bytes, offset: int = 0, *, gen: int = 1, names: Names | None = None) -> None:
        self._data = data
        self._start = int(offset)
        self._pos = int(offset)
        self._lookup: Lookup = lookup(gen)
        self._names = names if names is not None else Names()
        self._done = False

    @property
    def offset(self) -> int:
        return self._pos

    @property
    def consumed(self) -> int:
        return self._pos - self._start

    @property
    def done(self) -> bool:
        return self._done

    def _need(self, count: int, what: str) -> None:
        available = len(self._data) - self._pos
        if available < count:
            raise TruncatedBufferError(what, needed=count, available=max(0, available), offset=self._pos)

    def _u8(self) -> int:
        self._need(1, "protocol log")
        value = self._data[self._pos]
        self._pos += 1
        return int(value)

    def _i8(self) -> int:
        value = self._u8()
        return value - 0x100 if value >= 0x80 else value

    def _u16(self) -> int:
        self._need(2, "protocol log")
        value = int.from_bytes(bytes(self._data[self._pos : self._pos + 2]), "little")
        self._pos += 2
        return value

    def _peek(self) -> int | None:
        if self._pos >= len(self._data):
            return None
        return int(self._data[self._pos])

    def _ident(self) -> str:
        byte = self._u8()
        if byte == 0:
            return ""
        player: Player = "p2" if byte & 0x08 else "p1"
        return f"{player}a: {self._names.pokemon(player, byte & 0x07)}"

    def _move(self) -> str:
        num = self._u8()
        try:
            return self._lookup.move(num)
        except UnknownIdError as exc:
            raise ProtocolDecodeError(str(exc)) from exc

    def _species(self) -> str:
        num = self._u8()
        try:
            return self._lookup.species(num)
        except UnknownIdError as exc:
            raise ProtocolDecodeError(str(exc)) from exc

    def _hp_status(self) -> str:
        hp = self._u16()
        max_hp = self._u16()
        status = status_name(self._u8())
        if hp == 0:
            return "0 fnt"
        return f"{hp}/{max_hp} {status}" if status else f"{hp}/{max_hp}"

    def next(self) -> ParsedLine | None:
        if self._done:
            return None
        tag = self._u8()
        if tag == ArgType.NONE:
            self._done = True
            return None
        handler = _HANDLERS.get(tag)
        if handler is None:
            raise ProtocolDecodeError(f"unknown protocol tag 0x{tag:02x} at offset {self._pos - 1}")
        return handler(self)

    def drain(self) -> list[ParsedLine]:
        out: list[ParsedLine] = []
        while (line := self.next()) is not None:
            out.append(line)
        return out

    # Handlers ---------------------------------------------------------------

    def _read_move(self) -> ParsedLine:
        source = self._ident()
        move = self._move()
        target = self._ident()
        reason = self._u8()
        kwargs: dict[str, str] = {}
        if reason == 1:
            kwargs["from"] = self._move()
        elif reason != 0:
            raise ProtocolDecodeError(f"unknown move reason: {reason}")
        # [still]/[miss] markers trail the move they modify.
        while (nxt := self._peek()) in (ArgType.LAST_STILL, ArgType.LAST_MISS):
            self._pos += 1
            kwargs["still" if nxt == ArgType.LAST_STILL else "miss"] = ""
        return ParsedLine("move", (source, move, target), kwargs)

    def _read_switch(self) -> ParsedLine:
        ident = self._ident()
        species = self._species()
        level = self._u8()
        details = species if level == 100 else f"{species}, L{level}"
        return ParsedLine("switch", (ident, details, self._hp_status()))

    def _read_cant(self) -> ParsedLine:
        ident = self._ident()
        reason = self._u8()
        label = _pick(_CANT_REASONS, reason, "cant")
        if reason == _CANT_DISABLE:
            return ParsedLine("cant", (ident, label, self._move()))
        return ParsedLine("cant", (ident, label))

    def _read_turn(self) -> ParsedLine:
        return ParsedLine("turn", (str(self._u16()),))

    def _read_win(self) -> ParsedLine:
        player = self._u8()
        if player not in (0, 1):
            raise ProtocolDecodeError(f"invalid winning player: {player}")
        return ParsedLine("win", (self._names.player(PLAYERS[player]),))

    def _read_damage(self) -> ParsedLine:
        ident = self._ident()
        hp_status = self._hp_status()
        reason = self._u8()
        source = _pick(_DAMAGE_FROM, reason, "damage")
        kwargs: dict[str, str] = {}
        if source is not None:
            kwargs["from"] = source
        if reason == _DAMAGE_RECOIL_OF:
            kwargs["of"] = self._ident()
        return ParsedLine("-damage", (ident, hp_status), kwargs)

    def _read_heal(self) -> ParsedLine:
        ident = self._ident()
        hp_status = self._hp_status()
        reason = self._u8()
        kwargs: dict[str, str] = {}
        if reason == _HEAL_SILENT:
            kwargs["silent"] = ""
        elif reason == _HEAL_DRAIN:
            kwargs["from"] = "drain"
            kwargs["of"] = self._ident()
        elif reason != 0:
            raise ProtocolDecodeError(f"unknown heal reason: {reason}")
        return ParsedLine("-heal", (ident, hp_status), kwargs)

    def _read_status(self) -> ParsedLine:
        ident = self._ident()
        status = status_name(self._u8()) or ""
        reason = self._u8()
        kwargs: dict[str, str] = {}
        if reason == _STATUS_SILENT:
            kwargs["silent"] = ""
        elif reason == _STATUS_FROM:
            kwargs["from"] = f"move: {self._move()}"
        elif reason != 0:
            raise ProtocolDecodeError(f"unknown status reason: {reason}")
        return ParsedLine("-status", (ident, status), kwargs)

    def _read_cure_status(self) -> ParsedLine:
        ident = self._ident()
        status = status_name(self._u8()) or ""
        key = _pick(_CURE_REASONS, self._u8(), "curestatus")
        return ParsedLine("-curestatus", (ident, status), {key: ""})

    def _read_boost(self) -> ParsedLine:
        ident = self._ident()
        stat = _pick(_BOOST_STATS, self._u8(), "boost")
        num = self._i8()
        tag = "-boost" if num >= 0 else "-unboost"
        return ParsedLine(tag, (ident, stat, str(abs(num))))

    def _read_fail(self) -> ParsedLine:
        ident = self._ident()
        label = _pick(_FAIL_REASONS, self._u8(), "fail")
        return ParsedLine("-fail", (ident,) if label is None else (ident, label))

    def _read_idents(self, tag: str, count: int) -> ParsedLine:
        return ParsedLine(tag, tuple(self._ident() for _ in range(count)))

    def _read_hit_count(self) -> ParsedLine:
        ident = self._ident()
        return ParsedLine("-hitcount", (ident, str(self._u8())))

    def _read_prepare(self) -> ParsedLine:
        ident = self._ident()
        return ParsedLine("-prepare", (ident, self._move()))

    def _read_activate(self) -> ParsedLine:
        ident = self._ident()
        reason = self._u8()
        label = _pick(_ACTIVATE_REASONS, reason, "activate")
        kwargs = {"damage": ""} if reason == _ACTIVATE_SUBSTITUTE else {}
        return ParsedLine("-activate", (ident, label), kwargs)

    def _read_start(self) -> ParsedLine:
        ident = self._ident()
        reason = self._u8()
        label = _pick(_START_REASONS, reason, "start")
        if reason == _START_TYPECHANGE:
            packed = self._u8()
            types = {self._lookup.type(packed & 0x0F), self._lookup.type((packed >> 4) & 0x0F)}
            return ParsedLine("-start", (ident, label, "/".join(sorted(types))), {"from": "move: Conversion"})
        if reason in (_START_DISABLE, _START_MIMIC):
            return ParsedLine("-start", (ident, label, self._move()))
        kwargs = {"fatigue": ""} if reason == _START_FATIGUE else {}
        return ParsedLine("-start", (ident, label), kwargs)

    def _read_end(self) -> ParsedLine:
        ident = self._ident()
        label, silent = _pick(_END_REASONS, self._u8(), "end")
        return ParsedLine("-end", (ident, label), {"silent": ""} if silent else {})

    def _read_immune(self) -> ParsedLine:
        ident = self._ident()
        reason = self._u8()
        if reason not in (0, 1):
            raise ProtocolDecodeError(f"unknown immune reason: {reason}")
        return ParsedLine("-immune", (ident,), {"ohko": ""} if reason == 1 else {})


def _stray_marker(cursor: LogCursor) -> ParsedLine:
    raise ProtocolDecodeError(f"[still]/[miss] marker without a preceding move at offset {cursor.offset - 1}")


_HANDLERS: dict[int, Callable[[LogCursor], ParsedLine]] = {
    ArgType.LAST_STILL: _stray_marker,
    ArgType.LAST_MISS: _stray_marker,
    ArgType.MOVE: LogCursor._read_move,
    ArgType.SWITCH: LogCursor._read_switch,
    ArgType.CANT: LogCursor._read_cant,
    ArgType.FAINT: lambda c: c._read_idents("faint", 1),
    ArgType.TURN: LogCursor._read_turn,
    ArgType.WIN: LogCursor._read_win,
    ArgType.TIE: lambda c: ParsedLine("tie"),
    ArgType.DAMAGE: LogCursor._read_damage,
    ArgType.HEAL: LogCursor._read_heal,
    ArgType.STATUS: LogCursor._read_status,
    ArgType.CURE_STATUS: LogCursor._read_cure_status,
    ArgType.BOOST: LogCursor._read_boost,
    ArgType.CLEAR_ALL_BOOST: lambda c: ParsedLine("-clearallboost"),
    ArgType.FAIL: LogCursor._read_fail,
    ArgType.MISS: lambda c: c._read_idents("-miss", 2),
    ArgType.HIT_COUNT: LogCursor._read_hit_count,
    ArgType.PREPARE: LogCursor._read_prepare,
    ArgType.MUST_RECHARGE: lambda c: c._read_idents("-mustrecharge", 1),
    ArgType.ACTIVATE: LogCursor._read_activate,
    ArgType.FIELD_ACTIVATE: lambda c: ParsedLine("-fieldactivate", ("move: Pay Day",)),
    ArgType.START: LogCursor._read_start,
    ArgType.END: LogCursor._read_end,
    ArgType.OHKO: lambda c: ParsedLine("-ohko"),
    ArgType.CRIT: lambda c: c._read_idents("-crit", 1),
    ArgType.SUPER_EFFECTIVE: lambda c: c._read_idents("-supereffective", 1),
    ArgType.RESISTED: lambda c: c._read_idents("-resisted", 1),
    ArgType.IMMUNE: LogCursor._read_immune,
    ArgType.TRANSFORM: lambda c: c._read_idents("-transform", 2),
}


def iter_log(
    data: bytes,
    offset: int = 0,
    *,
    gen: int = 1,
    names: Names | None = None,
) -> Iterator[ParsedLine]:
    """Lazily decode one log region. Single use; restart from `offset` to decode again."""
    cursor = LogCursor(data, offset, gen=gen, names=names)
    while (line := cursor.next()) is not None:
        yield line


def parse_log(data: bytes, offset: int = 0, *, gen: int = 1, names: Names | None = None) -> tuple[list[ParsedLine], int]:
    """Decode one log region, returning its entries and the bytes consumed (terminator included)."""
    cursor = LogCursor(data, offset, gen=gen, names=names)
    lines = cursor.drain()
    return lines, cursor.consumed
