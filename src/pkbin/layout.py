from __future__ import annotations

from dataclasses import dataclass
from typing import Final, Mapping

from construct import Array, Byte, Bytes, Int16ul, Int64ul, Struct
from construct.core import ConstructError

from .choice import PLAYERS, Player
from .data import Lookup, UnknownIdError, lookup

SNAPSHOT_SIZES: Final[Mapping[int, int]] = {1: 384}

STAT_NAMES: Final[tuple[str, ...]] = ("hp", "atk", "def", "spe", "spc")
BOOST_NAMES: Final[tuple[str, ...]] = ("atk", "def", "spe", "spc", "accuracy", "evasion")

VOLATILE_FLAGS: Final[tuple[str, ...]] = (
    "bide",
    "thrashing",
    "multihit",
    "flinch",
    "charging",
    "binding",
    "invulnerable",
    "confusion",
    "mist",
    "focusenergy",
    "substitute",
    "recharging",
    "rage",
    "leechseed",
    "toxic",
    "lightscreen",
    "reflect",
    "transform",
)

# (name, width) for the packed fields following the flag bits in the volatiles word.
_VOLATILE_FIELDS: Final[tuple[tuple[str, int], ...]] = (
    ("state", 16),
    ("substitute", 8),
    ("transform", 4),
    ("disable_duration", 4),
    ("disable_move", 3),
    ("attacks", 3),
    ("confusion", 3),
    ("toxic", 5),
)

STATUS_SLEEP_MASK: Final[int] = 0b0000_0111
STATUS_PSN: Final[int] = 1 << 3
STATUS_BRN: Final[int] = 1 << 4
STATUS_FRZ: Final[int] = 1 << 5
STATUS_PAR: Final[int] = 1 << 6
STATUS_SELF: Final[int] = 1 << 7


class TruncatedBufferError(ValueError):
    """Raised when a buffer ends before a fixed-size region it must contain."""

    def __init__(self, what: str, *, needed: int, available: int, offset: int = 0) -> None:
        super().__init__(f"truncated {what} at offset {offset}: need {needed} bytes, have {available}")
        self.what = what
        self.needed = int(needed)
        self.available = int(available)
        self.offset = int(offset)


_STATS = Struct(
    "hp" / Int16ul,
    "atk" / Int16ul,
    "def" / Int16ul,
    "spe" / Int16ul,
    "spc" / Int16ul,
)

_MOVE_SLOT = Struct(
    "id" / Byte,
    "pp" / Byte,
)

GEN1_POKEMON = Struct(
    "stats" / _STATS,
    "moves" / Array(4, _MOVE_SLOT),
    "hp" / Int16ul,
    "status" / Byte,
    "species" / Byte,
    "types" / Byte,
    "level" / Byte,
)

GEN1_ACTIVE = Struct(
    "stats" / _STATS,
    "species" / Byte,
    "types" / Byte,
    "boosts" / Bytes(4),
    "volatiles" / Int64ul,
    "moves" / Array(4, _MOVE_SLOT),
)

GEN1_SIDE = Struct(
    "pokemon" / Array(6, GEN1_POKEMON),
    "active" / GEN1_ACTIVE,
    "order" / Bytes(6),
    "last_selected_move" / Byte,
    "last_used_move" / Byte,
)

GEN1_BATTLE = Struct(
    "sides" / Array(2, GEN1_SIDE),
    "turn" / Int16ul,
    "last_damage" / Int16ul,
    "last_selected_indexes" / Bytes(2),
    "rng" / Bytes(10),
)

_LAYOUTS: Final[Mapping[int, Struct]] = {1: GEN1_BATTLE}


def snapshot_size(gen: int) -> int:
    try:
        return int(SNAPSHOT_SIZES[int(gen)])
    except KeyError:
        raise ValueError(f"unsupported gen: {gen}") from None


def battle_struct(gen: int) -> Struct:
    try:
        return _LAYOUTS[int(gen)]
    except KeyError:
        raise ValueError(f"unsupported gen: {gen}") from None


@dataclass(frozen=True, slots=True)
class MoveSlot:
    move: str
    pp: int


@dataclass(frozen=True, slots=True)
class Volatiles:
    flags: frozenset[str] = frozenset()
    state: int = 0
    substitute: int = 0
    transform: int = 0
    disable_duration: int = 0
    disable_move: int = 0
    attacks: int = 0
    confusion: int = 0
    toxic: int = 0

    def __contains__(self, flag: object) -> bool:
        return flag in self.flags


@dataclass(frozen=True, slots=True)
class PokemonSnapshot:
    species: str
    types: tuple[str, str]
    level: int
    hp: int
    status: str | None
    sleep: int
    self_sleep: bool
    stats: dict[str, int]
    moves: tuple[MoveSlot, ...]
    position: int

    @property
    def fainted(self) -> bool:
        return int(self.hp) == 0


@dataclass(frozen=True, slots=True)
class ActiveSnapshot:
    species: str
    types: tuple[str, str]
    stats: dict[str, int]
    boosts: dict[str, int]
    volatiles: Volatiles
    moves: tuple[MoveSlot, ...]


@dataclass(frozen=True, slots=True)
class SideSnapshot:
    pokemon: tuple[PokemonSnapshot, ...]
    """Party members in their original team order."""
    active: ActiveSnapshot | None
    order: tuple[int, ...]
    last_selected_move: str | None
    last_used_move: str | None

    def party(self) -> tuple[PokemonSnapshot, ...]:
        """Party members in their current slot order."""
        return tuple(self.pokemon[idx - 1] for idx in self.order if idx)


@dataclass(frozen=True, slots=True)
class BattleSnapshot:
    gen: int
    sides: tuple[SideSnapshot, SideSnapshot]
    turn: int
    last_damage: int
    last_selected_indexes: tuple[int, int]
    prng: tuple[int, ...]

    def side(self, player: Player) -> SideSnapshot:
        return self.sides[PLAYERS.index(player)]

    def foe(self, player: Player) -> SideSnapshot:
        return self.sides[1 - PLAYERS.index(player)]


def status_name(byte: int) -> str | None:
    byte = int(byte)
    if byte & STATUS_SLEEP_MASK:
        return "slp"
    if byte & STATUS_PSN:
        return "psn"
    if byte & STATUS_BRN:
        return "brn"
    if byte & STATUS_FRZ:
        return "frz"
    if byte & STATUS_PAR:
        return "par"
    return None


def _signed_nibble(value: int) -> int:
    value &= 0x0F
    return value - 16 if value >= 8 else value


def decode_boosts(raw: bytes) -> dict[str, int]:
    out: dict[str, int] = {}
    for idx, name in enumerate(BOOST_NAMES):
        byte = raw[idx // 2]
        out[name] = _signed_nibble(byte if idx % 2 == 0 else byte >> 4)
    return out


def decode_volatiles(word: int) -> Volatiles:
    word = int(word)
    flags = frozenset(name for bit, name in enumerate(VOLATILE_FLAGS) if word & (1 << bit))
    shift = len(VOLATILE_FLAGS)
    values: dict[str, int] = {}
    for name, width in _VOLATILE_FIELDS:
        values[name] = (word >> shift) & ((1 << width) - 1)
        shift += width
    return Volatiles(flags=flags, **values)


def decode_seed(rng: bytes, *, showdown: bool) -> tuple[int, ...]:
    """Showdown mode stores a 64-bit LCG state as a LE u64; expose it as four u16 chunks, high first."""
    if showdown:
        state = int.from_bytes(bytes(rng[:8]), "little")
        return tuple((state >> shift) & 0xFFFF for shift in (48, 32, 16, 0))
    return tuple(int(b) for b in rng)


def _types(lk: Lookup, packed: int) -> tuple[str, str]:
    return (lk.type(int(packed) & 0x0F), lk.type((int(packed) >> 4) & 0x0F))


def _moves(lk: Lookup, raw: list) -> tuple[MoveSlot, ...]:
    return tuple(MoveSlot(move=lk.move(int(slot.id)), pp=int(slot.pp)) for slot in raw if int(slot.id))


def _move_or_none(lk: Lookup, num: int) -> str | None:
    return lk.move(num) if int(num) else None


def _decode_side(lk: Lookup, raw) -> SideSnapshot:
    order = tuple(int(b) for b in raw.order)
    positions = {idx: slot + 1 for slot, idx in enumerate(order) if idx}
    pokemon: list[PokemonSnapshot] = []
    for idx, mon in enumerate(raw.pokemon, start=1):
        if not int(mon.species):
            continue
        pokemon.append(
            PokemonSnapshot(
                species=lk.species(int(mon.species)),
                types=_types(lk, int(mon.types)),
                level=int(mon.level),
                hp=int(mon.hp),
                status=status_name(int(mon.status)),
                sleep=int(mon.status) & STATUS_SLEEP_MASK,
                self_sleep=bool(int(mon.status) & STATUS_SELF),
                stats={name: int(mon.stats[name]) for name in STAT_NAMES},
                moves=_moves(lk, mon.moves),
                position=positions.get(idx, idx),
            )
        )

    active: ActiveSnapshot | None = None
    if order and order[0] and int(raw.active.species):
        act = raw.active
        active = ActiveSnapshot(
            species=lk.species(int(act.species)),
            types=_types(lk, int(act.types)),
            stats={name: int(act.stats[name]) for name in STAT_NAMES},
            boosts=decode_boosts(bytes(act.boosts)),
            volatiles=decode_volatiles(int(act.volatiles)),
            moves=_moves(lk, act.moves),
        )

    return SideSnapshot(
        pokemon=tuple(pokemon),
        active=active,
        order=order,
        last_selected_move=_move_or_none(lk, int(raw.last_selected_move)),
        last_used_move=_move_or_none(lk, int(raw.last_used_move)),
    )


def decode_battle(gen: int, data: bytes, *, showdown: bool = True, offset: int = 0) -> BattleSnapshot:
    """Decode one fixed-size battle snapshot starting at `offset`.

    Raises `TruncatedBufferError` when fewer than `snapshot_size(gen)` bytes are available; a short
    buffer never produces a partial snapshot.
    """

    size = snapshot_size(gen)
    available = len(data) - int(offset)
    if available < size:
        raise TruncatedBufferError("battle snapshot", needed=size, available=max(0, available), offset=offset)

    lk = lookup(gen)
    chunk = bytes(data[int(offset) : int(offset) + size])
    try:
        raw = battle_struct(gen).parse(chunk)
        sides = (_decode_side(lk, raw.sides[0]), _decode_side(lk, raw.sides[1]))
    except ConstructError as exc:
        raise ValueError(f"invalid gen{gen} battle snapshot: {exc}") from exc
    except UnknownIdError as exc:
        raise ValueError(f"invalid gen{gen} battle snapshot: {exc}") from exc

    return BattleSnapshot(
        gen=int(gen),
        sides=sides,
        turn=int(raw.turn),
        last_damage=int(raw.last_damage),
        last_selected_indexes=(int(raw.last_selected_indexes[0]), int(raw.last_selected_indexes[1])),
        prng=decode_seed(bytes(raw.rng), showdown=showdown),
    )
