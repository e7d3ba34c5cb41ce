from __future__ import annotations

import pytest

from pkbin.choice import (
    CHOICE_DATA_MAX,
    Choice,
    ChoiceCodecError,
    ChoiceKind,
    Result,
    ResultKind,
    choice_allowed,
)


def test_choice_byte_roundtrip_covers_every_kind_and_payload() -> None:
    for kind in ChoiceKind:
        for data in range(CHOICE_DATA_MAX + 1):
            choice = Choice(kind, data)
            assert Choice.decode(choice.encode()) == choice


def test_result_byte_roundtrip_covers_every_kind_and_request() -> None:
    for kind in ResultKind:
        for p1 in ChoiceKind:
            for p2 in ChoiceKind:
                result = Result(kind, p1, p2)
                assert Result.decode(result.encode()) == result


def test_choice_byte_layout() -> None:
    assert Choice.move(2).encode() == 0b0000_1001
    assert Choice.switch(3).encode() == 0b0000_1110
    assert Choice.pass_().encode() == 0
    assert Result(ResultKind.NONE, ChoiceKind.MOVE, ChoiceKind.SWITCH).encode() == 0b1001_0000


def test_choice_decode_rejects_unknown_kind() -> None:
    with pytest.raises(ChoiceCodecError):
        Choice.decode(0b11)


def test_result_decode_rejects_unknown_kind() -> None:
    with pytest.raises(ChoiceCodecError):
        Result.decode(0x0F)


def test_choice_text_roundtrip() -> None:
    assert Choice.parse("move 2") == Choice.move(2)
    assert Choice.parse(" switch 4 ") == Choice.switch(4)
    assert Choice.parse("pass") == Choice.pass_()
    assert str(Choice.move(1)) == "move 1"
    assert str(Choice.pass_()) == "pass"


@pytest.mark.parametrize("text", ["", "run", "move x", "pass 1"])
def test_choice_parse_rejects_malformed_text(text: str) -> None:
    with pytest.raises(ChoiceCodecError):
        Choice.parse(text)


def test_choice_allowed_follows_pending_request() -> None:
    assert choice_allowed(Choice.pass_(), ChoiceKind.PASS)
    assert not choice_allowed(Choice.move(1), ChoiceKind.PASS)
    assert choice_allowed(Choice.switch(2), ChoiceKind.SWITCH)
    assert not choice_allowed(Choice.move(1), ChoiceKind.SWITCH)
    assert choice_allowed(Choice.move(1), ChoiceKind.MOVE)
    assert choice_allowed(Choice.switch(2), ChoiceKind.MOVE)
    assert not choice_allowed(Choice.pass_(), ChoiceKind.MOVE)
