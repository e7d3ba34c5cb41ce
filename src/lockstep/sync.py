from __future__ import annotations

import logging
from typing import Any, Mapping, Protocol

from pkbin.choice import PLAYERS, Player as Side

from .config import DEFAULT_MAX_CHOICE_ATTEMPTS
from .errors import ChoiceSynchronizationError, IllegalChoiceError
from .input_log import InputLog
from .players import Player

logger = logging.getLogger(__name__)

PASS = "pass"


class ChoiceOracle(Protocol):
    """The reference-engine surface the synchronizer needs."""

    def active_request(self, player: Side) -> Mapping[str, Any] | None: ...

    def legal_choice_texts(self, player: Side) -> list[str]: ...

    def choose(self, player: Side, choice: str) -> bool: ...


def _waiting(request: Mapping[str, Any] | None) -> bool:
    return request is None or bool(request.get("wait"))


class Synchronizer:
    """Produces one agreed choice per side per round.

    Replay mode reads recorded decisions from `input_log`; exploratory mode asks `players` and
    retries against the reference engine until a legal choice comes back.
    """

    def __init__(
        self,
        reference: ChoiceOracle,
        *,
        players: Mapping[Side, Player] | None = None,
        input_log: InputLog | None = None,
        max_attempts: int = DEFAULT_MAX_CHOICE_ATTEMPTS,
    ) -> None:
        if (players is None) == (input_log is None):
            raise ValueError("exactly one of players or input_log is required")
        if int(max_attempts) < 1:
            raise ValueError(f"max_attempts must be >= 1, got {max_attempts}")
        self.reference = reference
        self.players = players
        self.input_log = input_log
        self.max_attempts = int(max_attempts)

    @property
    def replaying(self) -> bool:
        return self.input_log is not None

    def legal(self, side: Side) -> list[str]:
        if _waiting(self.reference.active_request(side)):
            return [PASS]
        return self.reference.legal_choice_texts(side)

    def choices(self, round_index: int) -> tuple[str, str]:
        if self.input_log is not None:
            return self._replayed(round_index)
        p1, p2 = (self._explore(side, round_index) for side in PLAYERS)
        return p1, p2

    def _replayed(self, round_index: int) -> tuple[str, str]:
        assert self.input_log is not None
        recorded = self.input_log.choices(round_index)
        for side, choice in zip(PLAYERS, recorded):
            legal = self.legal(side)
            if choice not in legal:
                raise IllegalChoiceError(
                    f"recorded choice {choice!r} is not legal (legal: {', '.join(legal) or 'none'})",
                    player=side,
                    round_index=round_index,
                )
        return recorded

    def _explore(self, side: Side, round_index: int) -> str:
        assert self.players is not None
        request = self.reference.active_request(side)
        if _waiting(request):
            return PASS
        assert request is not None

        player = self.players[side]
        candidate = player.choose(request)
        for attempt in range(1, self.max_attempts + 1):
            legal = self.reference.legal_choice_texts(side)
            if candidate in legal:
                if attempt > 1:
                    logger.debug("round %d %s: settled on %r after %d attempts", round_index, side, candidate, attempt)
                return candidate
            if attempt == self.max_attempts:
                break
            # Submitting the rejected choice is what makes the reference refresh its request.
            if self.reference.choose(side, candidate):
                raise ChoiceSynchronizationError(
                    f"round {round_index} {side}: reference accepted {candidate!r} which is not in its legal set"
                )
            request = self.reference.active_request(side)
            if request is None:
                raise ChoiceSynchronizationError(f"round {round_index} {side}: request vanished after rejected choice")
            candidate = player.choose(request)
        raise ChoiceSynchronizationError(
            f"round {round_index} {side}: no legal choice after {self.max_attempts} attempts (last: {candidate!r})"
        )
