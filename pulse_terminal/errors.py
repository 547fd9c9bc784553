from __future__ import annotations

from typing import Optional


class FetchError(Exception):
    """A fetch that produced no usable data (transport failure, timeout, bad status)."""

    def __init__(self, cause: str, *, target: str = "", preview: Optional[str] = None) -> None:
        self.cause = cause
        self.target = target
        self.preview = preview
        super().__init__(self.describe())

    def describe(self) -> str:
        parts = [self.cause]
        if self.target:
            parts.insert(0, f"{self.target}:")
        if self.preview:
            parts.append(f"head={self.preview!r}")
        return " ".join(parts)


class DecodeError(FetchError):
    """The upstream answered but the payload had the wrong shape."""
