from __future__ import annotations

from typing import Literal


class HarnessError(Exception):
    pass


class ChoiceSynchronizationError(HarnessError):
    """The exploratory player and the reference engine could not agree on a legal choice."""


class DivergenceError(HarnessError):
    """The two engines produced observably different output."""

    def __init__(self, message: str, *, round_index: int | None = None) -> None:
        if round_index is not None:
            message = f"round {int(round_index)}: {message}"
        super().__init__(message)
        self.round_index = None if round_index is None else int(round_index)


class IllegalChoiceError(DivergenceError):
    def __init__(
        self,
        message: str,
        *,
        player: Literal["p1", "p2"],
        round_index: int | None = None,
    ) -> None:
        super().__init__(f"{player}: {message}", round_index=round_index)
        self.player = player


class SubprocessError(HarnessError):
    def __init__(self, message: str, *, returncode: int | None = None, stderr: str = "") -> None:
        super().__init__(message)
        self.returncode = returncode
        self.stderr = str(stderr)


class BridgeError(SubprocessError):
    pass


class InputLogError(ValueError):
    pass
