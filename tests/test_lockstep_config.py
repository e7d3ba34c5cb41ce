from __future__ import annotations

from pathlib import Path

import pytest

from lockstep.config import (
    DEFAULT_BRIDGE_COMMAND,
    DEFAULT_LOGS_DIR,
    HarnessConfig,
    parse_duration,
    parse_seed,
)


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in ("LOCKSTEP_LOGS_DIR", "LOCKSTEP_BRIDGE", "LOCKSTEP_LIBPKMN", "LOCKSTEP_ZIG"):
        monkeypatch.delenv(name, raising=False)


def test_defaults() -> None:
    config = HarnessConfig.from_env()
    assert config.logs_dir == DEFAULT_LOGS_DIR
    assert config.bridge_command == DEFAULT_BRIDGE_COMMAND
    assert config.cycles == 10
    assert config.max_failures == 1
    assert config.duration_seconds == 0.0


def test_env_overrides(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("LOCKSTEP_LOGS_DIR", str(tmp_path / "out"))
    monkeypatch.setenv("LOCKSTEP_BRIDGE", "node --stack-size=4096 'my bridge.js'")
    monkeypatch.setenv("LOCKSTEP_LIBPKMN", "/opt/libpkmn-showdown.so")
    monkeypatch.setenv("LOCKSTEP_ZIG", "/opt/zig/zig")

    config = HarnessConfig.from_env()

    assert config.logs_dir == tmp_path / "out"
    assert config.bridge_command == ("node", "--stack-size=4096", "my bridge.js")
    assert config.native_library == "/opt/libpkmn-showdown.so"
    assert config.zig == "/opt/zig/zig"


def test_explicit_overrides_win_and_none_is_ignored(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("LOCKSTEP_LOGS_DIR", str(tmp_path / "env"))
    assert HarnessConfig.from_env(logs_dir=tmp_path / "cli").logs_dir == tmp_path / "cli"
    assert HarnessConfig.from_env(logs_dir=None).logs_dir == tmp_path / "env"


@pytest.mark.parametrize(
    "kwargs",
    [{"max_choice_attempts": 0}, {"cycles": 0}, {"max_failures": 0}, {"duration_seconds": -1.0}],
)
def test_validation(kwargs: dict) -> None:
    with pytest.raises(ValueError):
        HarnessConfig(**kwargs)


def test_run_limits() -> None:
    base = HarnessConfig()
    assert base.with_run_limits().cycles == 10
    assert base.with_run_limits(duration_seconds=60).cycles == 1
    assert base.with_run_limits(cycles=3, duration_seconds=60).cycles == 3
    assert base.with_run_limits(max_failures=4).max_failures == 4


@pytest.mark.parametrize(
    ("text", "seconds"),
    [("90", 90.0), ("30s", 30.0), ("5m", 300.0), ("2h", 7200.0), ("1.5m", 90.0), (12, 12.0)],
)
def test_parse_duration(text: str | int, seconds: float) -> None:
    assert parse_duration(text) == seconds


@pytest.mark.parametrize("text", ["", "5d", "m", "-3s"])
def test_parse_duration_rejects(text: str) -> None:
    with pytest.raises(ValueError):
        parse_duration(text)


def test_parse_seed() -> None:
    assert parse_seed("1,2,3,4") == (1, 2, 3, 4)
    assert parse_seed(" 1, 2, 3, 0xFFFF ") == (1, 2, 3, 0xFFFF)
    assert parse_seed("0x0001000200030004") == (1, 2, 3, 4)


@pytest.mark.parametrize("text", ["1,2,3", "1,2,3,65536", "a,b,c,d", "0xZZ"])
def test_parse_seed_rejects(text: str) -> None:
    with pytest.raises(ValueError):
        parse_seed(text)
