"""Immutable read cursor over one APRS-IS line.

Every parse step takes a cursor and returns a new one, so decoding never
shares mutable position state with the session that produced the line.
"""

from dataclasses import dataclass, replace
from typing import Optional


@dataclass(frozen=True)
class ParseCursor:
    """A line of text and an offset into it."""
    line: str
    offset: int = 0

    @property
    def at_end(self) -> bool:
        return self.offset >= len(self.line)

    @property
    def remaining(self) -> int:
        return max(0, len(self.line) - self.offset)

    def peek(self) -> Optional[str]:
        """Character at the cursor, or None at end of line."""
        if self.at_end:
            return None
        return self.line[self.offset]

    def advance(self, n: int = 1) -> "ParseCursor":
        return replace(self, offset=self.offset + n)

    def rewind(self, n: int = 1) -> "ParseCursor":
        return replace(self, offset=max(0, self.offset - n))

    def take(self, length: int) -> tuple[str, "ParseCursor"]:
        """Return up to `length` characters and the cursor past them.

        The returned text is shorter than `length` only at end of line; the
        cursor always advances by `length` so fixed-width layouts stay aligned.
        """
        text = self.line[self.offset:self.offset + length]
        return text, self.advance(length)

    def take_char(self) -> tuple[Optional[str], "ParseCursor"]:
        """Return the character at the cursor (None at end) and advance one."""
        return self.peek(), self.advance(1)

    def text_before(self, char: str) -> Optional[str]:
        """Text from the cursor up to (not including) `char`, or None."""
        idx = self.line.find(char, self.offset)
        if idx < 0:
            return None
        return self.line[self.offset:idx]

    def after(self, char: str) -> Optional["ParseCursor"]:
        """Cursor just past the next `char`, or None if there is none."""
        idx = self.line.find(char, self.offset)
        if idx < 0:
            return None
        return replace(self, offset=idx + 1)
