#!/usr/bin/env python3
import bisect
from typing import Optional, Tuple, List

Position = Tuple[int, int]
Range = Tuple[Position, Position]

class TextDocument:
    """Line-indexed view over a document's full text.

    Lines are split on '\\n' only so offsets stay valid against the original
    text. Positions are zero-based (line, column) pairs.
    """

    def __init__(self, text: str):
        self.text = text or ""
        self.lines: List[str] = self.text.split('\n')
        self._starts: List[int] = []
        offset = 0
        for line in self.lines:
            self._starts.append(offset)
            offset += len(line) + 1

    @property
    def line_count(self) -> int:
        return len(self.lines)

    def _clamp_line(self, line: int) -> int:
        return max(0, min(line, len(self.lines) - 1))

    def line_at(self, line: int) -> str:
        return self.lines[self._clamp_line(line)]

    def line_end(self, line: int) -> int:
        """End-of-line column, not counting a trailing carriage return."""
        text = self.line_at(line)
        return len(text) - 1 if text.endswith('\r') else len(text)

    def offset_at(self, position: Position) -> int:
        line, col = position
        line = self._clamp_line(line)
        col = max(0, min(col, len(self.lines[line])))
        return self._starts[line] + col

    def position_at(self, offset: int) -> Position:
        # An offset sitting on a newline belongs to the end of the line before it.
        offset = max(0, min(offset, len(self.text)))
        line = bisect.bisect_right(self._starts, offset) - 1
        return line, offset - self._starts[line]

    def line_of(self, offset: int) -> int:
        return self.position_at(offset)[0]

    def full_line_range(self, start_line: int, end_line: int) -> Range:
        start_line, end_line = self._clamp_line(start_line), self._clamp_line(end_line)
        if end_line < start_line: start_line, end_line = end_line, start_line
        return (start_line, 0), (end_line, self.line_end(end_line))

    def clamp_range(self, rng: Range) -> Range:
        start, end = self.offset_at(rng[0]), self.offset_at(rng[1])
        if end < start: start, end = end, start
        return self.position_at(start), self.position_at(end)

    def get_text(self, rng: Optional[Range] = None) -> str:
        if rng is None: return self.text
        start, end = self.offset_at(rng[0]), self.offset_at(rng[1])
        if end < start: start, end = end, start
        return self.text[start:end]
