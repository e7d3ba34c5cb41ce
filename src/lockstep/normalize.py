"""Reconciles known, accepted differences between the reference and native protocol output.

Rules, applied in order to each reference entry:

- tags in `FILTER` carry nothing the native engine emits and are dropped;
- `move` loses `[from]` when the native entry at the same position has none (the native engine
  cannot always reconstruct the cause);
- before Gen 3, `tox` in HP/status strings is reported as `psn` (Toxic is a volatile there);
- status damage and healing do not attribute `[of]` natively unless it is drain or recoil;
- a silent `-status` on switch-in is a reference artifact and must be `psn`;
- `-status`/`-curestatus` report `tox` as `psn`.
"""

from __future__ import annotations

import logging
from typing import Final, Sequence

from pkbin.protocol import ParsedLine

from .errors import DivergenceError

logger = logging.getLogger(__name__)

FILTER: Final[frozenset[str]] = frozenset(
    {
        "",
        "t:",
        "gametype",
        "gen",
        "tier",
        "rule",
        "rated",
        "seed",
        "title",
        "player",
        "teamsize",
        "teampreview",
        "clearpoke",
        "poke",
        "start",
        "upkeep",
        "done",
        "request",
        "split",
        "debug",
        "chat",
        "c",
        "c:",
        "j",
        "J",
        "join",
        "l",
        "L",
        "leave",
        "n",
        "N",
        "name",
        "inactive",
        "inactiveoff",
        "-message",
        "-hint",
        "message",
        "html",
        "raw",
        "badge",
    }
)

_HP_ARG: Final[dict[str, int]] = {"switch": 2, "drag": 2, "-damage": 1, "-heal": 1}
_ATTRIBUTED_SOURCES: Final[frozenset[str]] = frozenset({"drain", "Recoil"})


def fix_hp_status(gen: int, hp_status: str) -> str:
    if int(gen) < 3 and hp_status.endswith("tox"):
        return hp_status[:-3] + "psn"
    return hp_status


def normalize_line(gen: int, line: ParsedLine, actual: ParsedLine | None = None) -> ParsedLine | None:
    """Normalize one reference entry against the native entry at the same position.

    Returns `None` when the entry has no native counterpart and should be skipped.
    """
    tag = line.tag
    if tag in FILTER:
        return None

    args = list(line.args)
    kwargs = dict(line.kwargs)

    if tag == "move":
        if "from" in kwargs and (actual is None or "from" not in actual.kwargs):
            del kwargs["from"]
    elif tag in _HP_ARG:
        idx = _HP_ARG[tag]
        if idx < len(args):
            args[idx] = fix_hp_status(gen, args[idx])
        if tag in ("-damage", "-heal") and "from" in kwargs and kwargs["from"] not in _ATTRIBUTED_SOURCES:
            kwargs.pop("of", None)
    elif tag in ("-status", "-curestatus"):
        status = args[1] if len(args) > 1 else ""
        if tag == "-status" and "silent" in kwargs:
            if status != "psn":
                raise DivergenceError(f"unexpected silent status: {line}")
            return None
        if status == "tox":
            args[1] = "psn"

    return ParsedLine(tag, tuple(args), kwargs)


def compare_chunk(
    gen: int,
    expected: Sequence[ParsedLine],
    actual: Sequence[ParsedLine],
    *,
    round_index: int | None = None,
) -> int:
    """Check reference entries against native entries; returns the number of entries compared.

    Raises `DivergenceError` on the first mismatch, or when either side has entries left over.
    """
    idx = 0
    for position, line in enumerate(expected):
        native = actual[idx] if idx < len(actual) else None
        try:
            normalized = normalize_line(gen, line, native)
        except DivergenceError as exc:
            raise DivergenceError(f"entry {position}: {exc}", round_index=round_index) from exc
        if normalized is None:
            continue
        if native is None:
            raise DivergenceError(
                f"entry {position}: native log ended, expected {normalized}",
                round_index=round_index,
            )
        if normalized != native:
            raise DivergenceError(
                f"entry {position}: expected {normalized}, got {native}",
                round_index=round_index,
            )
        idx += 1

    if idx < len(actual):
        extra = ", ".join(str(line) for line in actual[idx:])
        raise DivergenceError(f"unexpected native entries: {extra}", round_index=round_index)
    logger.debug("round %s: %d entries match", round_index, idx)
    return idx
