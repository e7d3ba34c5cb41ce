from __future__ import annotations

from typing import Iterable, Iterator

from pkbin.protocol import ParsedLine


def parse_line(line: str) -> ParsedLine:
    """Parse one Showdown protocol line (`|tag|arg|...|[key] value`)."""
    if not line.startswith("|"):
        return ParsedLine("", (line,), {})
    parts = line[1:].split("|")
    tag, args = parts[0], parts[1:]
    kwargs: dict[str, str] = {}
    while args:
        last = args[-1]
        close = last.find("]")
        if not last.startswith("[") or close <= 1:
            break
        kwargs[last[1:close]] = last[close + 1 :].strip()
        args.pop()
    return ParsedLine(tag, tuple(args), kwargs)


def iter_chunk(chunk: str | Iterable[str]) -> Iterator[ParsedLine]:
    lines = chunk.split("\n") if isinstance(chunk, str) else list(chunk)
    idx = 0
    while idx < len(lines):
        line = lines[idx]
        idx += 1
        if not line:
            continue
        if line.startswith("|split|"):
            # Secret (omniscient) line follows; the public copy after it is dropped.
            if idx < len(lines):
                yield parse_line(lines[idx])
            idx += 2
            continue
        yield parse_line(line)


def parse_chunk(chunk: str | Iterable[str]) -> list[ParsedLine]:
    return list(iter_chunk(chunk))
