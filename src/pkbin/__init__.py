from __future__ import annotations

__all__ = [
    "choice",
    "data",
    "frames",
    "layout",
    "protocol",
]
