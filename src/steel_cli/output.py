"""Scrolling command output shown under the wizard."""

from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional


@dataclass(frozen=True)
class OutputLine:
    text: str
    at: Optional[datetime] = None

    def display(self, timestamps: bool = True) -> str:
        if timestamps and self.at is not None:
            return f"[{self.at:%H:%M:%S}] {self.text}"
        return self.text


class OutputLog:
    """Append-only list of output lines with a bounded scroll cursor.

    ``offset`` is the index of the bottom-most visible line and always stays
    within ``[0, max(0, len - 1)]``. While ``follow`` is set the cursor tracks
    the newest line; scrolling up releases it, scrolling back to the end
    re-engages it.
    """

    def __init__(self):
        self._lines: list[OutputLine] = []
        self.offset = 0
        self.follow = True
        self._on_append: Optional[Callable[[], None]] = None

    def attach_refresh(self, cb):
        self._on_append = cb

    def __len__(self):
        return len(self._lines)

    @property
    def lines(self) -> tuple:
        return tuple(self._lines)

    def append(self, text: str, stamp: bool = True):
        for part in (text.splitlines() or [""]):
            self._lines.append(OutputLine(part, datetime.now() if stamp else None))
        if self.follow:
            self.offset = self._last_index()
        if self._on_append:
            self._on_append()

    def clear(self):
        self._lines.clear()
        self.offset = 0
        self.follow = True

    def scroll_up(self, amount: int = 1):
        self.offset = max(0, self.offset - amount)
        if self.offset < self._last_index():
            self.follow = False

    def scroll_down(self, amount: int = 1):
        self.offset = min(self._last_index(), self.offset + amount)
        if self.offset >= self._last_index():
            self.follow = True

    def _last_index(self) -> int:
        return max(0, len(self._lines) - 1)
