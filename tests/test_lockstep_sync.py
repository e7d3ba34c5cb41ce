from __future__ import annotations

from typing import Any, Mapping

import pytest

from lockstep.errors import ChoiceSynchronizationError, IllegalChoiceError
from lockstep.input_log import InputLog, PlayerSpec
from lockstep.sync import Synchronizer

_MOVE_REQUEST = {"active": [{"moves": []}], "side": {"pokemon": []}}


class _Oracle:
    def __init__(
        self,
        *,
        legal: dict[str, list[str]],
        requests: dict[str, Any] | None = None,
        accept_illegal: bool = False,
        drop_request: bool = False,
    ) -> None:
        self.legal = legal
        self.requests = requests if requests is not None else {"p1": dict(_MOVE_REQUEST), "p2": dict(_MOVE_REQUEST)}
        self.accept_illegal = accept_illegal
        self.drop_request = drop_request
        self.chosen: list[tuple[str, str]] = []

    def active_request(self, player: str) -> Mapping[str, Any] | None:
        return self.requests.get(player)

    def legal_choice_texts(self, player: str) -> list[str]:
        return list(self.legal.get(player, []))

    def choose(self, player: str, choice: str) -> bool:
        self.chosen.append((player, choice))
        if self.drop_request:
            self.requests[player] = None
            return False
        if self.accept_illegal:
            return True
        # A rejection annotates the request, like Showdown's updated request.
        self.requests[player] = {**self.requests[player], "rejected": choice}
        return False


class _Scripted:
    def __init__(self, *choices: str) -> None:
        self.choices = list(choices)
        self.seen: list[Mapping[str, Any]] = []

    def choose(self, request: Mapping[str, Any]) -> str:
        self.seen.append(request)
        return self.choices.pop(0) if len(self.choices) > 1 else self.choices[0]


def _log(*decisions: tuple[str, str]) -> InputLog:
    log = InputLog.create(1, (1, 2, 3, 4), PlayerSpec(name="Bot 1"), PlayerSpec(name="Bot 2"))
    for p1, p2 in decisions:
        log.append(p1, p2)
    return log


def test_retries_until_a_legal_choice() -> None:
    oracle = _Oracle(legal={"p1": ["move 1", "move 2"], "p2": ["move 1"]})
    p1 = _Scripted("move 4", "move 3", "move 2")
    sync = Synchronizer(oracle, players={"p1": p1, "p2": _Scripted("move 1")})

    assert sync.choices(1) == ("move 2", "move 1")
    assert oracle.chosen == [("p1", "move 4"), ("p1", "move 3")]
    # Each retry sees the refreshed request.
    assert p1.seen[1]["rejected"] == "move 4"
    assert p1.seen[2]["rejected"] == "move 3"


def test_gives_up_after_max_attempts() -> None:
    oracle = _Oracle(legal={"p1": ["move 1"], "p2": ["move 1"]})
    sync = Synchronizer(oracle, players={"p1": _Scripted("move 4"), "p2": _Scripted("move 1")}, max_attempts=3)

    with pytest.raises(ChoiceSynchronizationError, match="no legal choice after 3 attempts"):
        sync.choices(7)
    assert len(oracle.chosen) == 2


def test_accepted_illegal_choice_is_an_error() -> None:
    oracle = _Oracle(legal={"p1": ["move 1"], "p2": ["move 1"]}, accept_illegal=True)
    sync = Synchronizer(oracle, players={"p1": _Scripted("move 4"), "p2": _Scripted("move 1")})
    with pytest.raises(ChoiceSynchronizationError, match="accepted 'move 4'"):
        sync.choices(1)


def test_vanished_request_is_an_error() -> None:
    oracle = _Oracle(legal={"p1": ["move 1"], "p2": ["move 1"]}, drop_request=True)
    sync = Synchronizer(oracle, players={"p1": _Scripted("move 4"), "p2": _Scripted("move 1")})
    with pytest.raises(ChoiceSynchronizationError, match="request vanished"):
        sync.choices(1)


def test_waiting_side_passes_without_asking_the_player() -> None:
    oracle = _Oracle(
        legal={"p1": ["switch 2"], "p2": []},
        requests={"p1": dict(_MOVE_REQUEST), "p2": {"wait": True}},
    )
    p2 = _Scripted("move 1")
    sync = Synchronizer(oracle, players={"p1": _Scripted("switch 2"), "p2": p2})

    assert sync.choices(1) == ("switch 2", "pass")
    assert p2.seen == []
    assert sync.legal("p2") == ["pass"]


def test_replay_returns_recorded_choices() -> None:
    oracle = _Oracle(
        legal={"p1": ["move 1", "switch 2"], "p2": []},
        requests={"p1": dict(_MOVE_REQUEST), "p2": None},
    )
    sync = Synchronizer(oracle, input_log=_log(("switch 2", "pass")))
    assert sync.replaying
    assert sync.choices(1) == ("switch 2", "pass")
    assert oracle.chosen == []


def test_replay_illegal_choice_reports_round() -> None:
    oracle = _Oracle(legal={"p1": ["move 1"], "p2": ["move 1"]})
    sync = Synchronizer(oracle, input_log=_log(("move 1", "move 1"), ("move 3", "move 1")))

    sync.choices(1)
    with pytest.raises(IllegalChoiceError) as excinfo:
        sync.choices(2)
    assert excinfo.value.round_index == 2
    assert excinfo.value.player == "p1"
    assert str(excinfo.value).startswith("round 2: p1: recorded choice 'move 3' is not legal")


@pytest.mark.parametrize("kwargs", [{}, {"players": {}, "input_log": _log()}])
def test_requires_exactly_one_source(kwargs: dict) -> None:
    with pytest.raises(ValueError):
        Synchronizer(_Oracle(legal={}), **kwargs)
