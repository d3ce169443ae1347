"""Process-wide cleanup for crashes and termination signals."""

import _thread
import logging
import os
import signal
import sys
import threading
from typing import Callable

logger = logging.getLogger(__name__)

_SIGNALS = tuple(
    getattr(signal, name) for name in ("SIGTERM", "SIGHUP") if hasattr(signal, name)
)


class CrashGuard:
    """Runs registered cleanup actions when the process dies abnormally.

    Hooks ``sys.excepthook``, ``threading.excepthook`` and SIGTERM/SIGHUP.
    The action list is an immutable tuple replaced on every change, so the
    crash path reads it without taking a lock. Actions run once, in
    registration order; after that the crash continues to terminate the
    process (previous excepthook, or the signal's default disposition).
    """

    def __init__(self):
        self._actions: tuple = ()
        self._fired = False
        self._installed = False
        self._previous_excepthook = None
        self._previous_thread_hook = None
        self._previous_signals: dict = {}

    @property
    def fired(self) -> bool:
        return self._fired

    def add(self, action: Callable[[], None]) -> None:
        self._actions = self._actions + (action,)

    def remove(self, action: Callable[[], None]) -> None:
        self._actions = tuple(a for a in self._actions if a is not action)

    def fire(self) -> None:
        if self._fired:
            return
        self._fired = True
        for action in self._actions:
            try:
                action()
            except Exception:
                # the remaining actions still run
                pass

    def install(self) -> "CrashGuard":
        if self._installed:
            return self
        self._previous_excepthook = sys.excepthook
        sys.excepthook = self._excepthook
        self._previous_thread_hook = threading.excepthook
        threading.excepthook = self._thread_excepthook
        if threading.current_thread() is threading.main_thread():
            for signum in _SIGNALS:
                self._previous_signals[signum] = signal.signal(signum, self._on_signal)
        self._installed = True
        logger.debug("crash guard installed")
        return self

    def uninstall(self) -> None:
        if not self._installed:
            return
        sys.excepthook = self._previous_excepthook or sys.__excepthook__
        threading.excepthook = self._previous_thread_hook or threading.__excepthook__
        for signum, previous in self._previous_signals.items():
            signal.signal(signum, previous if previous is not None else signal.SIG_DFL)
        self._previous_signals = {}
        self._installed = False

    def __enter__(self):
        return self.install()

    def __exit__(self, exc_type, exc, tb):
        # An exception leaving the guarded block is a crash unless it is a plain exit
        if exc_type is not None and not issubclass(exc_type, SystemExit):
            self.fire()
        self.uninstall()
        return False

    def _excepthook(self, exc_type, exc, tb):
        self.fire()
        (self._previous_excepthook or sys.__excepthook__)(exc_type, exc, tb)

    def _thread_excepthook(self, args):
        self.fire()
        (self._previous_thread_hook or threading.__excepthook__)(args)
        # A dead helper thread takes the whole wizard down with it
        _thread.interrupt_main()

    def _on_signal(self, signum, frame):
        self.fire()
        signal.signal(signum, signal.SIG_DFL)
        os.kill(os.getpid(), signum)
