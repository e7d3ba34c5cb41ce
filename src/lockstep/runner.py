from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Protocol

from .config import HarnessConfig
from .driver import BattleOutcome, Reference, play
from .engines import Engine, NativeEngine, ReferenceEngine
from .errors import BridgeError, HarnessError
from .input_log import InputLog, PlayerSpec, format_for, load_input_log
from .players import RandomPlayer
from .prng import PRNG, BattleSeeds, Seed, seed_hex
from .showdown import ShowdownBridge, Team

logger = logging.getLogger(__name__)


class EngineFactory(Protocol):
    def engines(self, *, gen: int, seed: Seed, p1: PlayerSpec, p2: PlayerSpec) -> tuple[Reference, Engine]: ...

    def team(self, *, gen: int, seed: Seed) -> str: ...


class BridgeEngines:
    """Builds both engines for a battle on top of one shared bridge process."""

    def __init__(self, bridge: ShowdownBridge, config: HarnessConfig) -> None:
        self.bridge = bridge
        self.config = config

    def engines(self, *, gen: int, seed: Seed, p1: PlayerSpec, p2: PlayerSpec) -> tuple[Reference, Engine]:
        reference = ReferenceEngine(self.bridge, gen=gen, seed=seed, p1=p1, p2=p2)
        native = NativeEngine.create(
            self.bridge,
            gen=gen,
            seed=seed,
            p1=p1,
            p2=p2,
            library=self.config.native_library,
        )
        return reference, native

    def team(self, *, gen: int, seed: Seed) -> str:
        reply = self.bridge.request(Team(formatid=format_for(gen), seed=list(seed)))
        if reply.team is None:
            raise BridgeError("bridge returned no team")
        return reply.team


@dataclass(frozen=True, slots=True)
class RunSummary:
    battles: int
    failures: int
    elapsed_seconds: float

    @property
    def ok(self) -> bool:
        return self.failures == 0


def resolve_input_log(target: str | Path, logs_dir: Path) -> Path:
    """`target` may be a path or the hex seed of a previously dumped failure."""
    candidate = Path(logs_dir) / f"{target}.input.log"
    if candidate.is_file():
        return candidate
    return Path(target)


def replay(target: str | Path, *, factory: EngineFactory, config: HarnessConfig | None = None) -> BattleOutcome:
    """Replay a recorded input log strictly; any divergence propagates."""
    config = config if config is not None else HarnessConfig()
    path = resolve_input_log(target, config.logs_dir)
    recorded = load_input_log(path)
    logger.info("replaying %s (%d rounds)", path, recorded.rounds)
    reference, native = factory.engines(gen=recorded.gen, seed=recorded.seed, p1=recorded.p1, p2=recorded.p2)
    log = InputLog(start=recorded.start, p1=recorded.p1, p2=recorded.p2)
    return play(reference=reference, native=native, log=log, recorded=recorded, config=config)


def explore(
    *,
    gen: int,
    root: PRNG,
    factory: EngineFactory,
    config: HarnessConfig | None = None,
    clock: Callable[[], float] = time.monotonic,
) -> RunSummary:
    """Play seeded random battles until `cycles` (repeated for `duration_seconds`) or `max_failures`."""
    config = config if config is not None else HarnessConfig()
    started = clock()
    battles = 0
    failures = 0

    def summary() -> RunSummary:
        return RunSummary(battles=battles, failures=failures, elapsed_seconds=clock() - started)

    while True:
        for _ in range(config.cycles):
            seeds = BattleSeeds(root)
            battles += 1
            try:
                p1 = PlayerSpec(name="Bot 1", team=factory.team(gen=gen, seed=seeds.p1_team))
                p2 = PlayerSpec(name="Bot 2", team=factory.team(gen=gen, seed=seeds.p2_team))
                reference, native = factory.engines(gen=gen, seed=seeds.battle, p1=p1, p2=p2)
                outcome = play(
                    reference=reference,
                    native=native,
                    log=InputLog.create(gen, seeds.battle, p1, p2),
                    players={"p1": RandomPlayer(seeds.p1_player), "p2": RandomPlayer(seeds.p2_player)},
                    config=config,
                )
            except (HarnessError, ValueError) as exc:
                failures += 1
                logger.error("battle %s failed: %s", seed_hex(seeds.battle), exc)
                if failures >= config.max_failures:
                    return summary()
                continue
            logger.info("battle %s: %s after %d rounds", seed_hex(seeds.battle), outcome.result, outcome.rounds)
        # Checked only between batches, never mid-battle.
        if clock() - started >= config.duration_seconds:
            break
    return summary()
