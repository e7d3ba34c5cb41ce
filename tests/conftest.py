from __future__ import annotations

import sys
from pathlib import Path

import pytest


def pytest_addoption(parser: pytest.Parser) -> None:
    parser.addoption(
        "--run-native",
        action="store_true",
        default=False,
        help="run tests that load libpkmn (set LOCKSTEP_LIBPKMN) and start the Showdown bridge",
    )


def pytest_configure(config: pytest.Config) -> None:
    # Ensure the local `src/` tree wins over any other editable install that may exist
    # (e.g. a different git worktree pointing at the same project).
    src_dir = Path(__file__).resolve().parents[1] / "src"
    src_str = str(src_dir)
    if src_str not in sys.path:
        sys.path.insert(0, src_str)
    config.addinivalue_line("markers", "native: tests needing libpkmn and the Showdown bridge (opt-in)")


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    if config.getoption("--run-native"):
        return
    skip_native = pytest.mark.skip(reason="use --run-native to run tests against libpkmn and the Showdown bridge")
    for item in items:
        if "native" in item.keywords:
            item.add_marker(skip_native)


def _gen1_pokemon(species: int, *, level: int, hp: int, status: int, moves: list[tuple[int, int]]) -> dict:
    slots = [{"id": move, "pp": pp} for move, pp in moves] + [{"id": 0, "pp": 0}] * (4 - len(moves))
    return {
        "stats": {"hp": hp, "atk": 100, "def": 100, "spe": 100, "spc": 100},
        "moves": slots,
        "hp": hp,
        "status": status,
        "species": species,
        "types": 0,
        "level": level,
    }


def _gen1_side(team: list[tuple[str, int]], *, hp: int, status: int) -> dict:
    from pkbin.data import lookup

    lk = lookup(1)
    moves = [(lk.move_id("Thunderbolt"), 15), (lk.move_id("Tackle"), 35)]
    pokemon = [
        _gen1_pokemon(lk.species_id(name), level=level, hp=hp, status=status if idx == 0 else 0, moves=moves)
        for idx, (name, level) in enumerate(team)
    ]
    pokemon += [_gen1_pokemon(0, level=0, hp=0, status=0, moves=[])] * (6 - len(pokemon))
    lead = pokemon[0]
    return {
        "pokemon": pokemon,
        "active": {
            "stats": dict(lead["stats"]),
            "species": lead["species"],
            "types": 0,
            "boosts": bytes([0x1F, 0x00, 0x00, 0x00]),
            "volatiles": 0,
            "moves": lead["moves"],
        },
        "order": bytes(list(range(1, len(team) + 1)) + [0] * (6 - len(team))),
        "last_selected_move": 0,
        "last_used_move": 0,
    }


@pytest.fixture
def gen1_battle():
    """Builder for 384-byte gen 1 battle snapshots."""
    from pkbin.layout import GEN1_BATTLE

    def build(
        p1: list[tuple[str, int]] | None = None,
        p2: list[tuple[str, int]] | None = None,
        *,
        turn: int = 0,
        rng: int = 0,
        hp: int = 100,
        p1_status: int = 0,
    ) -> bytes:
        return GEN1_BATTLE.build(
            {
                "sides": [
                    _gen1_side(p1 or [("Pikachu", 50)], hp=hp, status=p1_status),
                    _gen1_side(p2 or [("Onix", 100)], hp=hp, status=0),
                ],
                "turn": turn,
                "last_damage": 0,
                "last_selected_indexes": bytes(2),
                "rng": int(rng).to_bytes(8, "little") + bytes(2),
            }
        )

    return build
