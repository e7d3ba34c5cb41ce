from __future__ import annotations

from pathlib import Path
from typing import Any

from pkbin.choice import Choice, ChoiceKind, Result, ResultKind

from lockstep.config import HarnessConfig
from lockstep.engines import RoundOutput
from lockstep.input_log import InputLog, PlayerSpec
from lockstep.prng import PRNG, seed_hex
from lockstep.runner import explore, replay, resolve_input_log

_PENDING = Result(ResultKind.NONE, ChoiceKind.MOVE, ChoiceKind.MOVE)


class _Engine:
    def __init__(self, seed: tuple[int, int, int, int], final: Result) -> None:
        self.outputs = [RoundOutput(_PENDING, seed), RoundOutput(final, seed)]
        self.idx = 0

    @property
    def seed(self) -> tuple[int, int, int, int]:
        return self.outputs[self.idx].seed

    @property
    def ended(self) -> bool:
        return self.idx == 1

    def start(self) -> RoundOutput:
        return self.outputs[0]

    def submit(self, c1: Choice, c2: Choice) -> RoundOutput:
        self.idx = 1
        return self.outputs[1]

    def make_choices(self, p1: str, p2: str) -> RoundOutput:
        return self.submit(Choice.parse(p1), Choice.parse(p2))

    def legal_choices(self, player: str) -> list[Choice]:
        return [Choice.move(1)]

    def active_request(self, player: str) -> dict[str, Any]:
        return {"active": [{"moves": [{"move": "Tackle"}]}], "side": {"pokemon": []}}

    def legal_choice_texts(self, player: str) -> list[str]:
        return ["move 1"]

    def choose(self, player: str, choice: str) -> bool:
        return False


class _Factory:
    def __init__(self, *, native_result: Result = Result(ResultKind.TIE)) -> None:
        self.native_result = native_result
        self.battles: list[tuple[int, tuple[int, ...], PlayerSpec, PlayerSpec]] = []
        self.teams: list[tuple[int, ...]] = []

    def engines(self, *, gen: int, seed, p1: PlayerSpec, p2: PlayerSpec):
        self.battles.append((gen, tuple(seed), p1, p2))
        return _Engine(tuple(seed), Result(ResultKind.TIE)), _Engine(tuple(seed), self.native_result)

    def team(self, *, gen: int, seed) -> str:
        self.teams.append(tuple(seed))
        return f"team-{len(self.teams)}"


def test_explore_runs_a_batch(tmp_path: Path) -> None:
    factory = _Factory()
    config = HarnessConfig(logs_dir=tmp_path, cycles=3)

    summary = explore(gen=1, root=PRNG((1, 2, 3, 4)), factory=factory, config=config)

    assert summary.ok
    assert summary.battles == 3
    assert summary.failures == 0
    assert factory.battles[0][1] == (1, 2, 3, 4)
    assert len({battle[1] for battle in factory.battles}) == 3
    assert factory.battles[0][2] == PlayerSpec(name="Bot 1", team="team-1")
    assert factory.battles[0][3] == PlayerSpec(name="Bot 2", team="team-2")
    assert list(tmp_path.iterdir()) == []


def test_explore_is_reproducible_from_the_root_seed(tmp_path: Path) -> None:
    config = HarnessConfig(logs_dir=tmp_path, cycles=2)
    a, b = _Factory(), _Factory()
    explore(gen=1, root=PRNG((5, 6, 7, 8)), factory=a, config=config)
    explore(gen=1, root=PRNG((5, 6, 7, 8)), factory=b, config=config)
    assert a.battles == b.battles
    assert a.teams == b.teams


def test_explore_stops_at_max_failures(tmp_path: Path) -> None:
    factory = _Factory(native_result=Result(ResultKind.WIN))
    config = HarnessConfig(logs_dir=tmp_path, cycles=5, max_failures=2)

    summary = explore(gen=1, root=PRNG((1, 2, 3, 4)), factory=factory, config=config)

    assert not summary.ok
    assert summary.battles == 2
    assert summary.failures == 2
    second = seed_hex(factory.battles[1][1])
    assert (tmp_path / f"{second}.input.log").is_file()
    assert (tmp_path / "input.log").resolve() == (tmp_path / f"{second}.input.log").resolve()


def test_explore_repeats_batches_for_the_duration(tmp_path: Path) -> None:
    ticks = iter(range(0, 100, 4))
    config = HarnessConfig(logs_dir=tmp_path, cycles=1, duration_seconds=10)

    summary = explore(gen=1, root=PRNG((1, 2, 3, 4)), factory=_Factory(), config=config, clock=lambda: next(ticks))

    assert summary.battles == 3
    assert summary.elapsed_seconds == 16


def test_resolve_input_log(tmp_path: Path) -> None:
    dumped = tmp_path / "0xABC.input.log"
    dumped.write_text("", encoding="utf-8")
    assert resolve_input_log("0xABC", tmp_path) == dumped
    assert resolve_input_log("some/other.log", tmp_path) == Path("some/other.log")


def test_replay_by_seed(tmp_path: Path) -> None:
    recorded = InputLog.create(1, (0, 0, 0x0A, 0xBC), PlayerSpec(name="Bot 1", team="x"), PlayerSpec(name="Bot 2", team="y"))
    recorded.append("move 1", "move 1")
    recorded.write(tmp_path / "0xABC.input.log")
    factory = _Factory()

    outcome = replay("0xABC", factory=factory, config=HarnessConfig(logs_dir=tmp_path))

    assert outcome.tie
    assert outcome.rounds == 1
    assert factory.battles == [(1, (0, 0, 0x0A, 0xBC), recorded.p1, recorded.p2)]
    assert outcome.input_log.decisions == recorded.decisions
    assert outcome.input_log is not recorded
