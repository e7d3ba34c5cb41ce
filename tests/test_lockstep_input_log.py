from __future__ import annotations

from pathlib import Path

import pytest

from lockstep.errors import InputLogError
from lockstep.input_log import InputLog, PlayerSpec, format_for, gen_of, load_input_log, parse_input_log

_TEXT = "\n".join(
    [
        '>start {"formatid":"gen1customgame","seed":[1,2,3,4]}',
        '>player p1 {"name":"Bot 1","team":"Pikachu|||-|thunderbolt|||||||"}',
        '>player p2 {"name":"Bot 2","team":"Onix|||-|tackle|||||||"}',
        ">p1 move 1",
        ">p2 move 1",
        ">p1 switch 2",
        ">p2 pass",
    ]
)


def test_parse_input_log() -> None:
    log = parse_input_log(_TEXT)
    assert log.gen == 1
    assert log.seed == (1, 2, 3, 4)
    assert log.p1.name == "Bot 1"
    assert log.player("p2").team.startswith("Onix")
    assert log.rounds == 2
    assert log.choices(1) == ("move 1", "move 1")
    assert log.choices(2) == ("switch 2", "pass")


def test_round_trips_through_text() -> None:
    assert parse_input_log(_TEXT).to_text() == _TEXT


def test_create_append_write(tmp_path: Path) -> None:
    log = InputLog.create(1, (0, 0, 0, 7), PlayerSpec(name="Bot 1"), PlayerSpec(name="Bot 2"))
    log.append("move 2", "switch 3")

    path = log.write(tmp_path / "nested" / "battle.input.log")

    assert path.read_text(encoding="utf-8").splitlines() == [
        '>start {"formatid":"gen1customgame","seed":[0,0,0,7]}',
        '>player p1 {"name":"Bot 1"}',
        '>player p2 {"name":"Bot 2"}',
        ">p1 move 2",
        ">p2 switch 3",
    ]
    assert load_input_log(path).choices(1) == ("move 2", "switch 3")


def test_choices_out_of_range() -> None:
    log = parse_input_log(_TEXT)
    with pytest.raises(InputLogError):
        log.choices(0)
    with pytest.raises(InputLogError):
        log.choices(3)


def test_format_and_gen() -> None:
    assert format_for(1) == "gen1customgame"
    assert gen_of("gen1customgame") == 1
    with pytest.raises(InputLogError):
        gen_of("customgame")


@pytest.mark.parametrize(
    "text",
    [
        ">start {}",
        '>player p1 {"name":"a"}\n>player p2 {"name":"b"}\n>start {"formatid":"gen1customgame","seed":[1,2,3,4]}',
        '>start {"formatid":"gen1customgame","seed":[1,2,3,4],"extra":1}\n>player p1 {"name":"a"}\n>player p2 {"name":"b"}',
        '>start {"formatid":"gen1customgame","seed":[1,2,3,4]}\n>player p2 {"name":"a"}\n>player p1 {"name":"b"}',
        '>start {"formatid":"gen1customgame","seed":[1,2,3,4]}\n>player p1 {"name":"a"}\n>player p2 {"name":"b"}\n>p1 move 1',
        '>start {"formatid":"gen1customgame","seed":[1,2,3,4]}\n>player p1 {"name":"a"}\n>player p2 {"name":"b"}\n>p2 move 1\n>p1 move 1',
    ],
)
def test_rejects_malformed_logs(text: str) -> None:
    with pytest.raises(InputLogError):
        parse_input_log(text)


def test_seed_must_have_four_values() -> None:
    log = parse_input_log('>start {"formatid":"gen1customgame","seed":[1,2]}\n>player p1 {"name":"a"}\n>player p2 {"name":"b"}')
    with pytest.raises(InputLogError):
        _ = log.seed
