"""Sequential reader over command-line tokens."""

from __future__ import annotations

from collections.abc import Sequence


class ArgReader:
    def __init__(self, tokens: Sequence[str]) -> None:
        self._tokens = list(tokens)
        self._index = 0
        self._last: str | None = None

    def next(self) -> str | None:
        """Return the next token, or None once the tokens are exhausted."""
        if self._index >= len(self._tokens):
            return None
        self._last = self._tokens[self._index]
        self._index += 1
        return self._last

    def last(self) -> str | None:
        """Return the token most recently returned by ``next``."""
        return self._last
