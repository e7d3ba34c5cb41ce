"""Frame-stream decoding for the engine's trace output.

Layout: `[seed u64 LE][initial log length u8][initial log]` followed by records of
`[result u8][c1 u8][c2 u8][snapshot][log ... 0x00]`. Log regions are variable length, so each record
boundary is only known after decoding the previous record's log.
"""

from __future__ import annotations

from dataclasses import dataclass

from construct import Byte, Int64ul, Struct

from .choice import Choice, Result
from .layout import BattleSnapshot, TruncatedBufferError, decode_battle, snapshot_size
from .protocol import LogCursor, Names, ParsedLine

HEADER = Struct(
    "seed" / Int64ul,
    "log_len" / Byte,
)
HEADER_SIZE = HEADER.sizeof()
RECORD_PREFIX_SIZE = 3


@dataclass(frozen=True, slots=True)
class Frame:
    result: Result
    c1: Choice
    c2: Choice
    snapshot: BattleSnapshot
    lines: tuple[ParsedLine, ...]


@dataclass(frozen=True, slots=True)
class FrameStream:
    gen: int
    seed: int
    initial: tuple[ParsedLine, ...]
    frames: tuple[Frame, ...]

    def __len__(self) -> int:
        return len(self.frames)


def decode_frames(gen: int, data: bytes, *, showdown: bool = True, names: Names | None = None) -> FrameStream:
    size = snapshot_size(gen)
    data = bytes(data)
    if len(data) < HEADER_SIZE:
        raise TruncatedBufferError("frame header", needed=HEADER_SIZE, available=len(data))

    header = HEADER.parse(data[:HEADER_SIZE])
    offset = HEADER_SIZE
    log_len = int(header.log_len)
    if len(data) - offset < log_len:
        raise TruncatedBufferError("initial log", needed=log_len, available=len(data) - offset, offset=offset)

    names = names if names is not None else Names()
    initial: tuple[ParsedLine, ...] = ()
    if log_len:
        # Bounded by `log_len`; a terminator inside the region ends it early.
        cursor = LogCursor(data[: offset + log_len], offset, gen=gen, names=names)
        lines: list[ParsedLine] = []
        while cursor.offset < offset + log_len and (line := cursor.next()) is not None:
            lines.append(line)
        initial = tuple(lines)
    offset += log_len

    frames: list[Frame] = []
    while offset < len(data):
        remaining = len(data) - offset
        if remaining < RECORD_PREFIX_SIZE + size:
            raise TruncatedBufferError("frame record", needed=RECORD_PREFIX_SIZE + size, available=remaining, offset=offset)
        result = Result.decode(data[offset])
        c1 = Choice.decode(data[offset + 1])
        c2 = Choice.decode(data[offset + 2])
        offset += RECORD_PREFIX_SIZE

        snapshot = decode_battle(gen, data, showdown=showdown, offset=offset)
        offset += size
        names.refresh(snapshot)

        cursor = LogCursor(data, offset, gen=gen, names=names)
        record_lines = tuple(cursor.drain())
        offset += cursor.consumed

        frames.append(Frame(result=result, c1=c1, c2=c2, snapshot=snapshot, lines=record_lines))

    return FrameStream(gen=int(gen), seed=int(header.seed), initial=initial, frames=tuple(frames))
