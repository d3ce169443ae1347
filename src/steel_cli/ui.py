"""Terminal surface: rendering, key input and the poll/tick/redraw loop."""

import logging
import os
import queue
import sys
import threading
from typing import Callable, Optional

import readchar
from rich.console import Console, Group
from rich.live import Live
from rich.panel import Panel
from rich.table import Table
from rich.text import Text
from rich.tree import Tree

from .render_model import RenderModel
from .wizard import Action, KeyEvent

logger = logging.getLogger(__name__)


_STEP_SYMBOLS = {
    "done": "[green]●[/green]",
    "pending": "[green dim]○[/green dim]",
    "running": "[cyan]○[/cyan]",
    "error": "[red]●[/red]",
}


def step_line(label: str, status: str, detail: str = "") -> str:
    symbol = _STEP_SYMBOLS.get(status, " ")
    detail = detail.strip()
    if status == "pending":
        text = f"{label} ({detail})" if detail else label
        return f"{symbol} [bright_black]{text}[/bright_black]"
    suffix = f" [bright_black]({detail})[/bright_black]" if detail else ""
    return f"{symbol} [white]{label}[/white]{suffix}"


def step_tree(title: str, steps) -> Tree:
    """Status-circle tree for ``(label, status, detail)`` triples."""
    tree = Tree(f"[cyan]{title}[/cyan]", guide_style="grey50")
    for label, status, detail in steps:
        tree.add(step_line(label, status, detail))
    return tree


class StepTracker:
    """Tool check results keyed by command, redrawn through an attached callback."""

    def __init__(self, title: str):
        self.title = title
        self._steps: dict[str, list] = {}  # key -> [label, status, detail]
        self._refresh_cb = None

    def attach_refresh(self, cb):
        self._refresh_cb = cb

    def add(self, key: str, label: str):
        self._steps.setdefault(key, [label, "pending", ""])
        self._maybe_refresh()

    def start(self, key: str, detail: str = ""):
        self._update(key, "running", detail)

    def complete(self, key: str, detail: str = ""):
        self._update(key, "done", detail)

    def error(self, key: str, detail: str = ""):
        self._update(key, "error", detail)

    def _update(self, key: str, status: str, detail: str):
        step = self._steps.setdefault(key, [key, status, ""])
        step[1] = status
        if detail:
            step[2] = detail
        self._maybe_refresh()

    def _maybe_refresh(self):
        if self._refresh_cb:
            self._refresh_cb()

    def render(self):
        return step_tree(self.title, (tuple(step) for step in self._steps.values()))


def output_window(lines: tuple, offset: int, height: int) -> tuple:
    """The ``height`` lines ending at ``offset`` (the bottom-most visible line)."""
    if not lines or height <= 0:
        return ()
    end = min(offset, len(lines) - 1) + 1
    return lines[max(0, end - height):end]


def render(model: RenderModel, height: int = 24):
    """Turn a render model into a rich renderable sized for ``height`` rows."""
    top = [Text(model.status, style="bold")]

    if model.dependencies:
        deps = Table.grid(padding=(0, 2))
        deps.add_column(style="white")
        deps.add_column()
        for dep in model.dependencies:
            mark = "[green]✓[/green]" if dep.satisfied else "[red]✗[/red]"
            detail = dep.detected_version or ("..." if dep.satisfied else dep.message)
            deps.add_row(dep.name, f"{mark} [bright_black]{detail}[/bright_black]")
        top.append(deps)

    for line in model.notice:
        top.append(Text(line, style="yellow bold", justify="center"))

    if model.input is not None:
        top.append(Text(f"{model.input.label}: {model.input.value}█", style="yellow"))
        top.append(Text(model.input.hint, style="bright_black"))

    if model.menu is not None:
        top.append(Text(model.menu.title, style="bold"))
        top.append(Text(model.menu.hint, style="bright_black"))
        for i, item in enumerate(model.menu.items):
            if i == model.menu.selected:
                top.append(Text(f"▶ {item}", style="yellow bold"))
            else:
                top.append(Text(f"  {item}"))

    if model.progress is not None:
        top.append(Text(model.progress.heading, style="blue bold"))
        for detail in model.progress.details:
            top.append(Text(detail))
        top.append(step_tree("Progress", ((label, status, "") for label, status in model.progress.steps)))

    used = _rows(top)
    output_height = max(3, height - used - 6)
    visible = output_window(model.output, model.output_offset, output_height)
    indicators = []
    if model.output and model.output_offset + 1 > output_height:
        indicators.append("↑ More above")
    if model.output and model.output_offset < len(model.output) - 1:
        indicators.append("↓ More below")
    subtitle = " ".join(indicators) + " (PgUp/PgDn to scroll)" if indicators else None
    output = Panel(
        Text("\n".join(visible)),
        title="Command Output",
        subtitle=subtitle,
        height=output_height + 2,
        border_style="bright_black",
    )

    return Panel(
        Group(*top, output, Text(model.help, style="bright_black")),
        title=f"[bold]{model.title}[/bold]",
        border_style="cyan",
    )


def _rows(renderables) -> int:
    rows = 0
    for r in renderables:
        if isinstance(r, Tree):
            rows += 1 + len(r.children)
        elif isinstance(r, Table):
            rows += r.row_count
        else:
            rows += 1
    return rows


_KEYMAP = {
    readchar.key.UP: KeyEvent(Action.UP),
    readchar.key.DOWN: KeyEvent(Action.DOWN),
    readchar.key.ENTER: KeyEvent(Action.CONFIRM),
    readchar.key.LF: KeyEvent(Action.CONFIRM),
    readchar.key.ESC: KeyEvent(Action.CANCEL),
    readchar.key.ESC + readchar.key.ESC: KeyEvent(Action.CANCEL),
    readchar.key.CTRL_C: KeyEvent(Action.CANCEL),
    readchar.key.BACKSPACE: KeyEvent(Action.DELETE),
    readchar.key.CTRL_H: KeyEvent(Action.DELETE),
    readchar.key.PAGE_UP: KeyEvent(Action.SCROLL_UP),
    readchar.key.PAGE_DOWN: KeyEvent(Action.SCROLL_DOWN),
}


def translate_key(key: str) -> Optional[KeyEvent]:
    """Map a raw key from readchar to a logical wizard action."""
    if key in _KEYMAP:
        return _KEYMAP[key]
    if len(key) == 1 and key.isprintable():
        return KeyEvent(Action.CHAR, key)
    return None


class KeyReader:
    """Reads keys on a daemon thread so the loop can poll with a timeout."""

    def __init__(self, read_key: Callable[[], str] = readchar.readkey):
        self._read_key = read_key
        self._events: queue.Queue = queue.Queue()
        self._stopped = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def start(self):
        if self._thread is None:
            self._thread = threading.Thread(target=self._run, name="steel-keys", daemon=True)
            self._thread.start()

    def stop(self):
        self._stopped.set()

    def _run(self):
        while not self._stopped.is_set():
            try:
                key = self._read_key()
            except KeyboardInterrupt:
                key = readchar.key.CTRL_C
            event = translate_key(key)
            if event is not None:
                self._events.put(event)

    def poll(self, timeout: float) -> Optional[KeyEvent]:
        try:
            return self._events.get(timeout=timeout)
        except queue.Empty:
            return None

    def drain(self) -> list:
        events = []
        while True:
            try:
                events.append(self._events.get_nowait())
            except queue.Empty:
                return events


_RESET_SCREEN = b"\x1b[?1049l\x1b[?25h"


class TerminalState:
    """Remembers the tty mode at startup so any exit path can put it back."""

    def __init__(self, console: Console, out_fd: Optional[int] = None):
        self.console = console
        self._saved = None
        self._termios = None
        if os.name != "nt" and sys.stdin.isatty():
            import termios

            self._termios = termios
            self._saved = termios.tcgetattr(sys.stdin.fileno())
        if out_fd is None and sys.__stdout__ is not None:
            try:
                out_fd = sys.__stdout__.fileno()
            except (OSError, ValueError):
                out_fd = None
        self._out_fd = out_fd

    def _restore_mode(self):
        if self._saved is not None:
            self._termios.tcsetattr(sys.stdin.fileno(), self._termios.TCSADRAIN, self._saved)

    def restore(self):
        self._restore_mode()
        self.console.set_alt_screen(False)
        self.console.show_cursor(True)

    def emergency_restore(self):
        """Crash-path restore: tty mode plus raw escape codes written to the fd, bypassing the console."""
        if self._saved is not None:
            try:
                self._restore_mode()
            except (self._termios.error, OSError):
                pass
        if self._out_fd is not None:
            try:
                os.write(self._out_fd, _RESET_SCREEN)
            except OSError:
                pass


def run_loop(wizard, console: Console, keys) -> int:
    """Poll keys, tick the wizard once, redraw; until the wizard terminates."""

    def frame():
        return render(wizard.render_model(), console.size.height)

    with Live(frame(), console=console, screen=True, auto_refresh=False, transient=True) as live:
        def redraw():
            live.update(frame(), refresh=True)

        wizard.attach_refresh(redraw)
        keys.start()
        try:
            while not wizard.finished:
                event = keys.poll(wizard.settings.poll_interval)
                pending = ([event] if event is not None else []) + keys.drain()
                for event in pending:
                    wizard.handle_event(event)
                    if wizard.finished:
                        break
                if not wizard.finished:
                    wizard.tick()
                redraw()
        finally:
            keys.stop()
            wizard.attach_refresh(None)
            wizard.shutdown()
    logger.info("wizard finished with exit code %s", wizard.exit_code)
    return wizard.exit_code
