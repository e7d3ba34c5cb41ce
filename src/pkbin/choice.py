from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum
from typing import Literal, TypeAlias

Player: TypeAlias = Literal["p1", "p2"]
PLAYERS: tuple[Player, Player] = ("p1", "p2")

CHOICE_DATA_MAX = 0x3F


class ChoiceKind(IntEnum):
    PASS = 0
    MOVE = 1
    SWITCH = 2

    @property
    def label(self) -> str:
        return self.name.lower()


class ResultKind(IntEnum):
    NONE = 0
    WIN = 1
    LOSE = 2
    TIE = 3
    ERROR = 4

    @property
    def terminal(self) -> bool:
        return self in (ResultKind.WIN, ResultKind.LOSE, ResultKind.TIE)


class ChoiceCodecError(ValueError):
    pass


@dataclass(frozen=True, slots=True)
class Choice:
    """A single decision for one player.

    Byte layout is `data << 2 | kind`: the low two bits hold the kind and the upper six bits hold the
    payload (move slot 1-4 or party slot 2-6; 0 lets the engine pick).
    """

    kind: ChoiceKind = ChoiceKind.PASS
    data: int = 0

    def __post_init__(self) -> None:
        if not 0 <= int(self.data) <= CHOICE_DATA_MAX:
            raise ChoiceCodecError(f"choice data out of range: {self.data}")

    @classmethod
    def pass_(cls) -> "Choice":
        return cls(ChoiceKind.PASS, 0)

    @classmethod
    def move(cls, slot: int = 0) -> "Choice":
        return cls(ChoiceKind.MOVE, int(slot))

    @classmethod
    def switch(cls, slot: int) -> "Choice":
        return cls(ChoiceKind.SWITCH, int(slot))

    @classmethod
    def decode(cls, byte: int) -> "Choice":
        byte = int(byte)
        if not 0 <= byte <= 0xFF:
            raise ChoiceCodecError(f"choice byte out of range: {byte}")
        kind_raw = byte & 0b11
        try:
            kind = ChoiceKind(kind_raw)
        except ValueError as exc:
            raise ChoiceCodecError(f"unknown choice kind {kind_raw} in byte 0x{byte:02x}") from exc
        return cls(kind, byte >> 2)

    def encode(self) -> int:
        return (int(self.data) << 2) | int(self.kind)

    @classmethod
    def parse(cls, text: str) -> "Choice":
        """Parse Showdown choice text (`pass`, `move 2`, `switch 3`)."""
        parts = str(text).strip().split()
        if not parts:
            raise ChoiceCodecError("empty choice")
        head = parts[0].lower()
        if head == "pass":
            if len(parts) != 1:
                raise ChoiceCodecError(f"unexpected choice payload: {text!r}")
            return cls.pass_()
        if head not in ("move", "switch"):
            raise ChoiceCodecError(f"unknown choice: {text!r}")
        data = 0
        if len(parts) > 1:
            try:
                data = int(parts[1])
            except ValueError as exc:
                raise ChoiceCodecError(f"choice payload must be a slot number: {text!r}") from exc
        return cls(ChoiceKind.MOVE if head == "move" else ChoiceKind.SWITCH, data)

    def __str__(self) -> str:
        if self.kind == ChoiceKind.PASS:
            return "pass"
        return f"{self.kind.label} {int(self.data)}"


@dataclass(frozen=True, slots=True)
class Result:
    """Outcome of one `update`, plus the pending request kind for each side.

    Byte layout is `kind | p1 << 4 | p2 << 6`.
    """

    kind: ResultKind = ResultKind.NONE
    p1: ChoiceKind = ChoiceKind.PASS
    p2: ChoiceKind = ChoiceKind.PASS

    @classmethod
    def decode(cls, byte: int) -> "Result":
        byte = int(byte)
        if not 0 <= byte <= 0xFF:
            raise ChoiceCodecError(f"result byte out of range: {byte}")
        try:
            kind = ResultKind(byte & 0x0F)
            p1 = ChoiceKind((byte >> 4) & 0b11)
            p2 = ChoiceKind((byte >> 6) & 0b11)
        except ValueError as exc:
            raise ChoiceCodecError(f"invalid result byte 0x{byte:02x}") from exc
        return cls(kind, p1, p2)

    def encode(self) -> int:
        return int(self.kind) | (int(self.p1) << 4) | (int(self.p2) << 6)

    def request(self, player: Player) -> ChoiceKind:
        return self.p1 if player == "p1" else self.p2

    @property
    def terminal(self) -> bool:
        return self.kind.terminal

    def __str__(self) -> str:
        if self.kind == ResultKind.NONE:
            return f"({self.p1.label}, {self.p2.label})"
        return self.kind.name.lower()


def choice_allowed(choice: Choice, request: ChoiceKind) -> bool:
    """Whether `choice` has the kind a side's pending `request` calls for."""
    if request == ChoiceKind.PASS:
        return choice.kind == ChoiceKind.PASS
    if request == ChoiceKind.SWITCH:
        return choice.kind == ChoiceKind.SWITCH
    return choice.kind in (ChoiceKind.MOVE, ChoiceKind.SWITCH)
