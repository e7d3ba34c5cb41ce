"""Self-contained HTML reports of one engine's frame history."""

from __future__ import annotations

import html
import re
from typing import Iterable, Protocol, Sequence

from pkbin.choice import Choice, Result
from pkbin.layout import BattleSnapshot, SideSnapshot
from pkbin.protocol import ParsedLine

from .prng import Seed, seed_hex

ANSI_RE = re.compile(r"[\u001b\u009b][\[()#;?]*(?:[0-9]{1,4}(?:;[0-9]{0,4})*)?[0-9A-ORZcf-nqry=><]")

_STYLE = """
body { font-family: ui-monospace, monospace; margin: 2em; background: #fafafa; color: #222; }
pre.error { background: #fee; border: 1px solid #c99; padding: 1em; white-space: pre-wrap; }
section.frame { border-top: 1px solid #ccc; padding: 0.5em 0; }
section.partial { border-top: 2px dashed #c66; }
table { border-collapse: collapse; margin: 0.5em 0; }
td, th { border: 1px solid #ddd; padding: 0.1em 0.5em; text-align: left; }
ol.log { margin: 0.25em 0; }
.fnt { color: #999; text-decoration: line-through; }
"""


class FrameLike(Protocol):
    result: Result | None
    c1: Choice | None
    c2: Choice | None
    snapshot: BattleSnapshot | None
    lines: tuple[ParsedLine, ...] | None


def strip_ansi(text: str) -> str:
    return ANSI_RE.sub("", str(text))


def _esc(value: object) -> str:
    return html.escape(str(value), quote=True)


def _side_rows(label: str, side: SideSnapshot) -> list[str]:
    rows: list[str] = []
    for mon in side.party():
        active = side.active is not None and mon.position == 1
        boosts = ""
        if active and side.active is not None:
            boosts = " ".join(f"{k}{v:+d}" for k, v in side.active.boosts.items() if v)
            flags = ", ".join(sorted(side.active.volatiles.flags))
            if flags:
                boosts = f"{boosts} [{flags}]".strip()
        cls = ' class="fnt"' if mon.fainted else ""
        rows.append(
            f"<tr{cls}><td>{_esc(label)}</td><td>{mon.position}</td><td>{_esc(mon.species)}"
            f"{' *' if active else ''}</td><td>L{mon.level}</td><td>{mon.hp}/{mon.stats['hp']}</td>"
            f"<td>{_esc(mon.status or '')}</td><td>{_esc(', '.join(f'{m.move} ({m.pp})' for m in mon.moves))}</td>"
            f"<td>{_esc(boosts)}</td></tr>"
        )
    return rows


def snapshot_table(battle: BattleSnapshot) -> str:
    rows = ["<tr><th>side</th><th>slot</th><th>species</th><th>lvl</th><th>hp</th><th>status</th><th>moves</th><th>active</th></tr>"]
    for label, side in zip(("p1", "p2"), battle.sides):
        rows.extend(_side_rows(label, side))
    return f"<p>turn {battle.turn}, last damage {battle.last_damage}</p><table>{''.join(rows)}</table>"


def _log_list(lines: Iterable[ParsedLine]) -> str:
    items = "".join(f"<li>{_esc(line)}</li>" for line in lines)
    return f'<ol class="log">{items}</ol>' if items else "<p><em>(empty log)</em></p>"


def render_frame(index: int | str, frame: FrameLike, *, partial: bool = False) -> str:
    parts = [f'<section class="frame{" partial" if partial else ""}">']
    parts.append(f"<h2>{'partial ' if partial else ''}frame {_esc(index)}</h2>")
    head = []
    if frame.result is not None:
        head.append(f"result <b>{_esc(frame.result)}</b>")
    if frame.c1 is not None and frame.c2 is not None:
        head.append(f"choices <b>{_esc(frame.c1)}</b> / <b>{_esc(frame.c2)}</b>")
    seed = getattr(frame, "seed", None)
    if seed is not None:
        head.append(f"seed {_esc(tuple(seed))}")
    if head:
        parts.append(f"<p>{' &middot; '.join(head)}</p>")
    if frame.snapshot is not None:
        parts.append(snapshot_table(frame.snapshot))
    chunk = getattr(frame, "chunk", None)
    if chunk is not None:
        parts.append(f"<pre>{_esc(chunk)}</pre>")
    elif frame.lines is not None:
        parts.append(_log_list(frame.lines))
    parts.append("</section>")
    return "\n".join(parts)


def render_report(
    title: str,
    *,
    error: str,
    seed: Seed | None,
    frames: Sequence[FrameLike],
    partial: FrameLike | None = None,
    initial: Sequence[ParsedLine] | None = None,
) -> str:
    body = [f"<h1>{_esc(title)}</h1>"]
    if seed is not None:
        body.append(f"<p>seed <code>{_esc(seed_hex(seed))}</code> {_esc(tuple(seed))}</p>")
    if error:
        body.append(f'<pre class="error">{_esc(strip_ansi(error))}</pre>')
    if initial:
        body.append(f'<section class="frame"><h2>initial log</h2>{_log_list(initial)}</section>')
    for idx, frame in enumerate(frames):
        body.append(render_frame(idx, frame))
    if partial is not None:
        body.append(render_frame(len(frames), partial, partial=True))
    return (
        "<!doctype html>\n<html><head><meta charset=\"utf-8\">"
        f"<title>{_esc(title)}</title><style>{_STYLE}</style></head>\n<body>\n"
        + "\n".join(body)
        + "\n</body></html>\n"
    )
