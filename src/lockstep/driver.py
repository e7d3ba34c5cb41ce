"""Lockstep driver: plays one battle in both engines and checks them round by round.

    Setup -> AwaitingChoices -> Applying -> Comparing -> (AwaitingChoices | Terminated)

Any failure escapes as an exception. In exploratory mode the frames captured so far (including the
partially recorded round) are written out as failure artifacts first.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Mapping, Protocol

from pkbin.choice import PLAYERS, Choice, ChoiceCodecError, Player as Side, Result, ResultKind, choice_allowed
from pkbin.layout import BattleSnapshot
from pkbin.protocol import ParsedLine

from .artifacts import FailureArtifacts, dump_failure
from .config import HarnessConfig
from .engines import Engine, Frame, RoundOutput
from .errors import DivergenceError, IllegalChoiceError
from .input_log import InputLog
from .normalize import compare_chunk
from .players import Player
from .prng import Seed
from .sync import ChoiceOracle, Synchronizer

logger = logging.getLogger(__name__)


class DriverState(Enum):
    SETUP = "setup"
    AWAITING_CHOICES = "awaiting_choices"
    APPLYING = "applying"
    COMPARING = "comparing"
    TERMINATED = "terminated"


class Reference(Engine, ChoiceOracle, Protocol):
    @property
    def ended(self) -> bool: ...

    def make_choices(self, p1: str, p2: str) -> RoundOutput: ...


@dataclass(slots=True)
class PendingFrame:
    """The round in progress; filled in field by field so a mid-round failure can still be reported."""

    c1: Choice | None = None
    c2: Choice | None = None
    result: Result | None = None
    seed: Seed | None = None
    snapshot: BattleSnapshot | None = None
    lines: tuple[ParsedLine, ...] | None = None
    chunk: str | None = None

    def fill(self, output: RoundOutput) -> None:
        self.result = output.result
        self.seed = output.seed
        self.snapshot = output.snapshot
        self.lines = output.lines
        self.chunk = output.chunk

    def freeze(self) -> Frame:
        if self.c1 is None or self.c2 is None or self.result is None or self.seed is None:
            raise ValueError("pending frame is incomplete")
        output = RoundOutput(
            result=self.result,
            seed=self.seed,
            snapshot=self.snapshot,
            lines=self.lines or (),
            chunk=self.chunk,
        )
        return Frame.from_output(output, self.c1, self.c2)

    @property
    def empty(self) -> bool:
        return self.c1 is None and self.result is None


@dataclass(slots=True)
class History:
    native: list[Frame] = field(default_factory=list)
    reference: list[Frame] = field(default_factory=list)
    native_pending: PendingFrame = field(default_factory=PendingFrame)
    reference_pending: PendingFrame = field(default_factory=PendingFrame)


@dataclass(frozen=True, slots=True)
class BattleOutcome:
    result: Result
    rounds: int
    native: tuple[Frame, ...]
    reference: tuple[Frame, ...]
    input_log: InputLog

    @property
    def tie(self) -> bool:
        return self.result.kind == ResultKind.TIE


def _check_seeds(native: Seed, reference: Seed, *, round_index: int) -> None:
    if tuple(native) != tuple(reference):
        raise DivergenceError(f"seed mismatch: native={tuple(native)} reference={tuple(reference)}", round_index=round_index)


def _parse_choice(text: str, side: Side, round_index: int) -> Choice:
    try:
        return Choice.parse(text)
    except ChoiceCodecError as exc:
        raise IllegalChoiceError(str(exc), player=side, round_index=round_index) from exc


class LockstepDriver:
    def __init__(
        self,
        *,
        reference: Reference,
        native: Engine,
        synchronizer: Synchronizer,
        input_log: InputLog,
    ) -> None:
        self.reference = reference
        self.native = native
        self.sync = synchronizer
        self.input_log = input_log
        self.gen = input_log.gen
        self.state = DriverState.SETUP
        self.history = History()
        self.rounds = 0
        self.native_result = Result()

    def setup(self) -> Result:
        self.state = DriverState.SETUP
        history = self.history
        passed = Choice.pass_()

        history.reference_pending = PendingFrame(c1=passed, c2=passed)
        reference = self.reference.start()
        history.reference_pending.fill(reference)
        history.reference.append(history.reference_pending.freeze())
        history.reference_pending = PendingFrame()

        history.native_pending = PendingFrame(c1=passed, c2=passed)
        native = self.native.start()
        history.native_pending.fill(native)
        history.native.append(history.native_pending.freeze())
        history.native_pending = PendingFrame()

        if native.result.kind != ResultKind.NONE:
            raise DivergenceError(f"native battle start returned {native.result}", round_index=0)
        self.native_result = native.result
        compare_chunk(self.gen, reference.lines, native.lines, round_index=0)
        _check_seeds(native.seed, reference.seed, round_index=0)
        return native.result

    def step(self) -> Result:
        self.rounds += 1
        round_index = self.rounds
        history = self.history

        self.state = DriverState.AWAITING_CHOICES
        p1, p2 = self.sync.choices(round_index)
        c1 = _parse_choice(p1, "p1", round_index)
        c2 = _parse_choice(p2, "p2", round_index)
        history.reference_pending = PendingFrame(c1=c1, c2=c2)
        history.native_pending = PendingFrame(c1=c1, c2=c2)

        self.state = DriverState.APPLYING
        reference = self.reference.make_choices(p1, p2)
        self.input_log.append(p1, p2)
        history.reference_pending.fill(reference)
        history.reference.append(history.reference_pending.freeze())
        history.reference_pending = PendingFrame()

        for side, choice in zip(PLAYERS, (c1, c2)):
            if not choice_allowed(choice, self.native_result.request(side)):
                raise IllegalChoiceError(
                    f"{choice} does not answer the native {self.native_result.request(side).label} request",
                    player=side,
                    round_index=round_index,
                )
            if choice not in self.native.legal_choices(side):
                raise IllegalChoiceError(f"{choice} is not legal for the native engine", player=side, round_index=round_index)
        native = self.native.submit(c1, c2)
        history.native_pending.fill(native)
        history.native.append(history.native_pending.freeze())
        history.native_pending = PendingFrame()
        self.native_result = native.result

        self.state = DriverState.COMPARING
        if native.result != reference.result:
            raise DivergenceError(
                f"result mismatch: native={native.result} reference={reference.result}",
                round_index=round_index,
            )
        compare_chunk(self.gen, reference.lines, native.lines, round_index=round_index)
        _check_seeds(native.seed, reference.seed, round_index=round_index)
        return native.result

    def run(self) -> BattleOutcome:
        result = self.setup()
        while not self.reference.ended:
            if result.terminal:
                raise DivergenceError(f"native battle ended with {result} but reference continues", round_index=self.rounds)
            result = self.step()

        self.state = DriverState.TERMINATED
        if not result.terminal:
            raise DivergenceError(f"reference battle ended but native result is {result}", round_index=self.rounds)
        _check_seeds(self.native.seed, self.reference.seed, round_index=self.rounds)
        logger.info("battle %s finished after %d rounds: %s", self.input_log.start.seed, self.rounds, result)
        return BattleOutcome(
            result=result,
            rounds=self.rounds,
            native=tuple(self.history.native),
            reference=tuple(self.history.reference),
            input_log=self.input_log,
        )


def play(
    *,
    reference: Reference,
    native: Engine,
    log: InputLog,
    players: Mapping[Side, Player] | None = None,
    recorded: InputLog | None = None,
    config: HarnessConfig | None = None,
) -> BattleOutcome:
    """Play one battle in lockstep.

    `log` holds the start and player specs and receives each committed decision pair. Pass either
    `players` (exploratory) or `recorded` (replay). Exploratory failures are dumped to
    `config.logs_dir` before the original error propagates.
    """
    config = config if config is not None else HarnessConfig()
    synchronizer = Synchronizer(
        reference,
        players=players,
        input_log=recorded,
        max_attempts=config.max_choice_attempts,
    )
    driver = LockstepDriver(reference=reference, native=native, synchronizer=synchronizer, input_log=log)
    try:
        return driver.run()
    except Exception as exc:
        if players is not None:
            try:
                capture_failure(config.logs_dir, driver, exc)
            except Exception:
                logger.exception("failed to capture failure artifacts after %s", type(exc).__name__)
        raise


def capture_failure(logs_dir: Path, driver: LockstepDriver, error: BaseException) -> FailureArtifacts | None:
    history = driver.history
    return dump_failure(
        logs_dir,
        gen=driver.gen,
        error=error,
        seed=driver.input_log.seed,
        input_log=driver.input_log,
        native=history.native,
        reference=history.reference,
        native_pending=None if history.native_pending.empty else history.native_pending,
        reference_pending=None if history.reference_pending.empty else history.reference_pending,
    )
