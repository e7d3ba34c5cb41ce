from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Protocol

from pkbin.choice import Choice, ChoiceKind, Player, Result, ResultKind
from pkbin.layout import BattleSnapshot, decode_battle
from pkbin.protocol import Names, ParsedLine, parse_log

from .errors import BridgeError
from .input_log import PlayerSpec, format_for
from .native import NativeBattle
from .prng import Seed
from .showdown import (
    BattleState,
    Choices,
    Choose,
    Encode,
    MakeChoices,
    ShowdownBridge,
    Start,
)
from .text import parse_chunk


@dataclass(frozen=True, slots=True)
class RoundOutput:
    result: Result
    seed: Seed
    snapshot: BattleSnapshot | None = None
    lines: tuple[ParsedLine, ...] = ()
    chunk: str | None = None


@dataclass(frozen=True, slots=True)
class Frame:
    """One captured round for one engine. Frame 0 is the battle start."""

    result: Result
    c1: Choice
    c2: Choice
    seed: Seed
    snapshot: BattleSnapshot | None = None
    lines: tuple[ParsedLine, ...] = ()
    chunk: str | None = None

    @classmethod
    def from_output(cls, output: RoundOutput, c1: Choice, c2: Choice) -> "Frame":
        return cls(
            result=output.result,
            c1=c1,
            c2=c2,
            seed=output.seed,
            snapshot=output.snapshot,
            lines=output.lines,
            chunk=output.chunk,
        )


class Engine(Protocol):
    @property
    def seed(self) -> Seed: ...

    def start(self) -> RoundOutput: ...

    def submit(self, c1: Choice, c2: Choice) -> RoundOutput: ...

    def legal_choices(self, player: Player) -> list[Choice]: ...


class NativeEngine:
    """The engine under test: libpkmn battle bytes decoded with `pkbin`."""

    def __init__(self, battle: NativeBattle, *, names: Names | None = None) -> None:
        self._battle = battle
        self.gen = battle.gen
        self._names = names if names is not None else Names()
        self._result = Result()
        self._snapshot = decode_battle(self.gen, battle.to_bytes(), showdown=True)
        self._names.refresh(self._snapshot)

    @classmethod
    def create(
        cls,
        bridge: ShowdownBridge,
        *,
        gen: int,
        seed: Seed,
        p1: PlayerSpec,
        p2: PlayerSpec,
        library: str,
    ) -> "NativeEngine":
        reply = bridge.request(Encode(formatid=format_for(gen), seed=list(seed), p1=p1, p2=p2))
        if reply.battle is None:
            raise BridgeError("bridge returned no encoded battle")
        battle = NativeBattle(reply.battle, gen=gen, library=library)
        return cls(battle, names=Names(p1=p1.name, p2=p2.name))

    @property
    def seed(self) -> Seed:
        return self._snapshot.prng  # type: ignore[return-value]

    @property
    def snapshot(self) -> BattleSnapshot:
        return self._snapshot

    def start(self) -> RoundOutput:
        return self.submit(Choice.pass_(), Choice.pass_())

    def submit(self, c1: Choice, c2: Choice) -> RoundOutput:
        result, log = self._battle.update(c1, c2)
        self._result = result
        self._snapshot = decode_battle(self.gen, self._battle.to_bytes(), showdown=True)
        self._names.refresh(self._snapshot)
        lines, _ = parse_log(log, gen=self.gen, names=self._names)
        return RoundOutput(result=result, seed=self.seed, snapshot=self._snapshot, lines=tuple(lines))

    def legal_choices(self, player: Player) -> list[Choice]:
        return self._battle.choices(player, self._result.request(player))


_REQUEST_KINDS = {"move": ChoiceKind.MOVE, "switch": ChoiceKind.SWITCH}


def to_result(state: BattleState, p1_name: str) -> Result:
    """Classify a Showdown battle state the way the native engine reports Results."""
    kind = ResultKind.NONE
    if state.ended:
        if not state.winner:
            kind = ResultKind.TIE
        elif state.winner == p1_name:
            kind = ResultKind.WIN
        else:
            kind = ResultKind.LOSE
    return Result(
        kind=kind,
        p1=_REQUEST_KINDS.get(state.request_state.get("p1", ""), ChoiceKind.PASS),
        p2=_REQUEST_KINDS.get(state.request_state.get("p2", ""), ChoiceKind.PASS),
    )


class ReferenceEngine:
    """Pokemon Showdown, driven through the bridge.

    Players are added before the battle starts so both engines consume the PRNG in the same order.
    """

    def __init__(self, bridge: ShowdownBridge, *, gen: int, seed: Seed, p1: PlayerSpec, p2: PlayerSpec) -> None:
        self._bridge = bridge
        self.gen = int(gen)
        self._spec = Start(formatid=format_for(gen), seed=list(seed), p1=p1, p2=p2)
        self._p1_name = p1.name
        self._state: BattleState | None = None

    def _apply(self, state: BattleState | None) -> BattleState:
        if state is None:
            raise BridgeError("bridge reply carried no battle state")
        self._state = state
        return state

    def _output(self, state: BattleState) -> RoundOutput:
        return RoundOutput(
            result=to_result(state, self._p1_name),
            seed=tuple(int(v) for v in state.seed),  # type: ignore[arg-type]
            lines=tuple(parse_chunk(state.chunk)),
            chunk=state.chunk,
        )

    @property
    def state(self) -> BattleState:
        if self._state is None:
            raise BridgeError("reference battle has not started")
        return self._state

    @property
    def seed(self) -> Seed:
        return tuple(int(v) for v in self.state.seed)  # type: ignore[return-value]

    @property
    def ended(self) -> bool:
        return bool(self.state.ended)

    def start(self) -> RoundOutput:
        reply = self._bridge.request(self._spec)
        return self._output(self._apply(reply.state))

    def active_request(self, player: Player) -> dict[str, Any] | None:
        request = self.state.requests.get(player)
        return request if isinstance(request, dict) else None

    def legal_choice_texts(self, player: Player) -> list[str]:
        reply = self._bridge.request(Choices(player=player))
        return list(reply.choices or [])

    def legal_choices(self, player: Player) -> list[Choice]:
        return [Choice.parse(text) for text in self.legal_choice_texts(player)]

    def choose(self, player: Player, choice: str) -> bool:
        """Submit one side's choice; a rejected choice refreshes that side's active request."""
        reply = self._bridge.request(Choose(player=player, choice=str(choice)))
        if reply.state is not None:
            self._apply(reply.state)
        return bool(reply.accepted)

    def make_choices(self, p1: str, p2: str) -> RoundOutput:
        reply = self._bridge.request(MakeChoices(p1=str(p1), p2=str(p2)))
        return self._output(self._apply(reply.state))

    def submit(self, c1: Choice, c2: Choice) -> RoundOutput:
        return self.make_choices(str(c1), str(c2))
