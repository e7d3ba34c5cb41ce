from __future__ import annotations

import pytest

from pkbin.protocol import ParsedLine

from lockstep.errors import DivergenceError
from lockstep.normalize import FILTER, compare_chunk, fix_hp_status, normalize_line
from lockstep.text import parse_chunk


def _lines(*text: str) -> list[ParsedLine]:
    return parse_chunk(list(text))


def test_fix_hp_status_only_before_gen3() -> None:
    assert fix_hp_status(1, "55/100 tox") == "55/100 psn"
    assert fix_hp_status(2, "55/100 tox") == "55/100 psn"
    assert fix_hp_status(3, "55/100 tox") == "55/100 tox"
    assert fix_hp_status(1, "55/100 par") == "55/100 par"


@pytest.mark.parametrize("tag", ["upkeep", "t:", "gametype", "player", "", "-message", "split"])
def test_filtered_tags_are_dropped(tag: str) -> None:
    assert tag in FILTER
    assert normalize_line(1, ParsedLine(tag, ("x",))) is None


def test_move_from_dropped_when_native_lacks_it() -> None:
    line = ParsedLine("move", ("p1a: Pikachu", "Thrash", "p2a: Onix"), {"from": "lockedmove"})
    native = ParsedLine("move", ("p1a: Pikachu", "Thrash", "p2a: Onix"))
    assert normalize_line(1, line, native) == native
    assert normalize_line(1, line, ParsedLine("move", native.args, {"from": "lockedmove"})) == line


def test_damage_status_string_and_attribution() -> None:
    line = ParsedLine("-damage", ("p1a: Pikachu", "50/100 tox"), {"from": "psn", "of": "p2a: Onix"})
    assert normalize_line(1, line) == ParsedLine("-damage", ("p1a: Pikachu", "50/100 psn"), {"from": "psn"})


@pytest.mark.parametrize("source", ["drain", "Recoil"])
def test_drain_and_recoil_keep_attribution(source: str) -> None:
    line = ParsedLine("-heal", ("p1a: Pikachu", "70/100"), {"from": source, "of": "p2a: Onix"})
    assert normalize_line(1, line) == line


def test_switch_details_hp_status() -> None:
    line = ParsedLine("switch", ("p2a: Onix", "Onix", "80/100 tox"))
    assert normalize_line(1, line).args[2] == "80/100 psn"


def test_silent_poison_is_skipped() -> None:
    line = ParsedLine("-status", ("p1a: Pikachu", "psn"), {"silent": ""})
    assert normalize_line(1, line) is None


def test_silent_non_poison_is_a_divergence() -> None:
    expected = [ParsedLine("-status", ("p1a: Pikachu", "par"), {"silent": ""})]
    with pytest.raises(DivergenceError) as excinfo:
        compare_chunk(1, expected, [], round_index=4)
    assert excinfo.value.round_index == 4
    assert str(excinfo.value).startswith("round 4: entry 0: unexpected silent status")


def test_status_tox_reported_as_psn() -> None:
    assert normalize_line(1, ParsedLine("-status", ("p1a: Pikachu", "tox"))).args == ("p1a: Pikachu", "psn")
    assert normalize_line(1, ParsedLine("-curestatus", ("p1a: Pikachu", "tox"), {"msg": ""})).args[1] == "psn"


def test_normalize_is_idempotent() -> None:
    lines = _lines(
        "|move|p1a: Pikachu|Thunderbolt|p2a: Onix|[from] lockedmove",
        "|-damage|p2a: Onix|0 tox|[from] psn|[of] p1a: Pikachu",
        "|-status|p2a: Onix|tox",
        "|switch|p2a: Onix|Onix|100/100 tox",
    )
    for line in lines:
        once = normalize_line(1, line)
        assert normalize_line(1, once) == once


def test_compare_chunk_counts_matching_entries() -> None:
    expected = _lines(
        "|",
        "|t:|1700000000",
        "|move|p1a: Pikachu|Thunderbolt|p2a: Onix",
        "|-supereffective|p2a: Onix",
        "|-damage|p2a: Onix|0 fnt",
        "|faint|p2a: Onix",
        "|upkeep",
        "|win|Bot 1",
    )
    actual = _lines(
        "|move|p1a: Pikachu|Thunderbolt|p2a: Onix",
        "|-supereffective|p2a: Onix",
        "|-damage|p2a: Onix|0 fnt",
        "|faint|p2a: Onix",
        "|win|Bot 1",
    )
    assert compare_chunk(1, expected, actual, round_index=2) == 5


def test_mismatch_carries_round_and_entry() -> None:
    expected = _lines("|turn|1", "|-damage|p2a: Onix|40/100")
    actual = _lines("|turn|1", "|-damage|p2a: Onix|41/100")
    with pytest.raises(DivergenceError) as excinfo:
        compare_chunk(1, expected, actual, round_index=3)
    assert excinfo.value.round_index == 3
    assert "round 3: entry 1: expected |-damage|p2a: Onix|40/100, got |-damage|p2a: Onix|41/100" == str(excinfo.value)


def test_native_log_ending_early_is_a_divergence() -> None:
    with pytest.raises(DivergenceError, match="native log ended"):
        compare_chunk(1, _lines("|turn|1", "|turn|2"), _lines("|turn|1"))


def test_extra_native_entries_are_a_divergence() -> None:
    with pytest.raises(DivergenceError, match=r"unexpected native entries: \|turn\|2"):
        compare_chunk(1, _lines("|turn|1"), _lines("|turn|1", "|turn|2"))
