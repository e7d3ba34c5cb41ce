"""Client for the Pokemon Showdown bridge process.

The bridge is a long-lived subprocess (by default `node bridge.js`) holding one `Battle`. Requests
and replies are msgspec JSON payloads, each framed with a 4-byte big-endian length prefix on the
bridge's stdin/stdout. Everything the harness needs from Showdown (team generation, the initial
native battle encoding, requests, choice validation) goes through this channel.
"""

from __future__ import annotations

import logging
import subprocess
import tempfile
from pathlib import Path
from typing import IO, Any, Sequence, TypeAlias

import msgspec

from .errors import BridgeError
from .input_log import PlayerSpec

logger = logging.getLogger(__name__)

_FRAME_LEN_BYTES = 4


class Start(msgspec.Struct, tag_field="type", tag="start", forbid_unknown_fields=True):
    formatid: str
    seed: list[int]
    p1: PlayerSpec
    p2: PlayerSpec


class Choose(msgspec.Struct, tag_field="type", tag="choose", forbid_unknown_fields=True):
    player: str
    choice: str


class MakeChoices(msgspec.Struct, tag_field="type", tag="make_choices", forbid_unknown_fields=True):
    p1: str
    p2: str


class Choices(msgspec.Struct, tag_field="type", tag="choices", forbid_unknown_fields=True):
    player: str


class Team(msgspec.Struct, tag_field="type", tag="team", forbid_unknown_fields=True):
    formatid: str
    seed: list[int]


class Encode(msgspec.Struct, tag_field="type", tag="encode", forbid_unknown_fields=True):
    formatid: str
    seed: list[int]
    p1: PlayerSpec
    p2: PlayerSpec


BridgeRequest: TypeAlias = Start | Choose | MakeChoices | Choices | Team | Encode


class BattleState(msgspec.Struct, forbid_unknown_fields=True):
    seed: list[int]
    ended: bool = False
    winner: str | None = None
    request_state: dict[str, str] = msgspec.field(default_factory=dict)
    requests: dict[str, Any] = msgspec.field(default_factory=dict)
    chunk: str = ""
    """Debug log written since the previous state; the bridge clears its log after reporting it."""


class BridgeReply(msgspec.Struct, forbid_unknown_fields=True):
    ok: bool = True
    error: str = ""
    state: BattleState | None = None
    accepted: bool | None = None
    choices: list[str] | None = None
    team: str | None = None
    battle: bytes | None = None
    input_log: list[str] | None = None


def encode_frame(payload: bytes) -> bytes:
    return int(len(payload)).to_bytes(_FRAME_LEN_BYTES, byteorder="big", signed=False) + payload


def read_exact(stream: IO[bytes], count: int) -> bytes:
    chunks: list[bytes] = []
    remaining = int(count)
    while remaining > 0:
        chunk = stream.read(remaining)
        if not chunk:
            raise EOFError("unexpected EOF while reading bridge frame")
        chunks.append(chunk)
        remaining -= len(chunk)
    return b"".join(chunks)


def write_request(stream: IO[bytes], request: BridgeRequest) -> None:
    stream.write(encode_frame(msgspec.json.encode(request)))
    stream.flush()


def read_reply(stream: IO[bytes]) -> BridgeReply:
    header = read_exact(stream, _FRAME_LEN_BYTES)
    frame_len = int.from_bytes(header, byteorder="big", signed=False)
    return msgspec.json.decode(read_exact(stream, frame_len), type=BridgeReply)


class ShowdownBridge:
    """One bridge subprocess. Usable as a context manager; `close` is idempotent."""

    def __init__(self, command: Sequence[str], *, cwd: Path | None = None) -> None:
        self.command = tuple(str(part) for part in command)
        self._stderr = tempfile.TemporaryFile()
        try:
            self._proc: subprocess.Popen[bytes] | None = subprocess.Popen(
                list(self.command),
                stdin=subprocess.PIPE,
                stdout=subprocess.PIPE,
                stderr=self._stderr,
                cwd=None if cwd is None else str(cwd),
            )
        except OSError as exc:
            self._stderr.close()
            raise BridgeError(f"failed to start bridge {' '.join(self.command)!r}: {exc}") from exc
        logger.debug("started bridge pid=%s: %s", self._proc.pid, " ".join(self.command))

    def __enter__(self) -> "ShowdownBridge":
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()

    def _stderr_text(self) -> str:
        self._stderr.seek(0)
        return self._stderr.read().decode("utf-8", errors="replace")

    def request(self, request: BridgeRequest) -> BridgeReply:
        proc = self._proc
        if proc is None or proc.stdin is None or proc.stdout is None:
            raise BridgeError("bridge is closed")
        try:
            write_request(proc.stdin, request)
            reply = read_reply(proc.stdout)
        except (OSError, EOFError, msgspec.DecodeError) as exc:
            returncode = proc.poll()
            raise BridgeError(
                f"bridge failed during {type(request).__name__.lower()} request: {exc}",
                returncode=returncode,
                stderr=self._stderr_text(),
            ) from exc
        if not reply.ok:
            raise BridgeError(f"bridge rejected {type(request).__name__.lower()} request: {reply.error}")
        return reply

    def close(self) -> None:
        proc = self._proc
        if proc is None:
            return
        self._proc = None
        if proc.stdin is not None:
            proc.stdin.close()
        try:
            proc.wait(timeout=5.0)
        except subprocess.TimeoutExpired:
            logger.warning("bridge pid=%s did not exit; killing it", proc.pid)
            proc.kill()
            proc.wait()
        if proc.stdout is not None:
            proc.stdout.close()
        self._stderr.close()
