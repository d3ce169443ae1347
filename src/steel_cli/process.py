"""Run external commands, streaming their output line by line."""

import logging
import os
import queue
import shlex
import subprocess
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Mapping, Optional, Sequence

from .errors import NonZeroExit, SpawnFailed

logger = logging.getLogger(__name__)

LineSink = Callable[[str], None]

_STDOUT = "stdout"
_STDERR = "stderr"


@dataclass
class CommandOutput:
    command: str
    returncode: int
    stdout: str = ""
    stderr: str = ""
    lines: list[str] = field(default_factory=list)

    @property
    def combined(self) -> str:
        return "\n".join(self.lines)


def _pump(stream, name: str, lines: queue.Queue) -> None:
    """Push every line of ``stream`` onto ``lines``, then a ``None`` end marker."""
    try:
        for line in iter(stream.readline, ""):
            lines.put((name, line.rstrip("\r\n")))
    finally:
        stream.close()
        lines.put((name, None))


class ProcessRunner:
    """Spawns one child at a time and blocks until it exits.

    stdout and stderr are drained by two independent reader threads into a
    single queue; the calling thread forwards each line to the sink as it
    arrives. Lines of one stream keep their order, but the interleaving of
    stdout lines with stderr lines is best-effort only.
    """

    def run(
        self,
        command: str,
        args: Sequence[str] = (),
        sink: Optional[LineSink] = None,
        env: Optional[Mapping[str, str]] = None,
        cwd: Optional[Path] = None,
    ) -> CommandOutput:
        argv = [command, *args]
        display = shlex.join(argv)
        child_env = None
        if env:
            child_env = os.environ.copy()
            child_env.update(env)

        logger.debug("run: %s (cwd=%s)", display, cwd or ".")
        try:
            proc = subprocess.Popen(
                argv,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                encoding="utf-8",
                errors="replace",
                env=child_env,
                cwd=cwd,
            )
        except OSError as e:
            logger.info("spawn failed: %s (%s)", display, e)
            raise SpawnFailed(display, e.strerror or str(e)) from e

        lines: queue.Queue = queue.Queue()
        readers = [
            threading.Thread(target=_pump, args=(proc.stdout, _STDOUT, lines), daemon=True),
            threading.Thread(target=_pump, args=(proc.stderr, _STDERR, lines), daemon=True),
        ]
        for reader in readers:
            reader.start()

        captured: dict[str, list[str]] = {_STDOUT: [], _STDERR: []}
        combined: list[str] = []
        try:
            open_streams = len(readers)
            while open_streams:
                name, line = lines.get()
                if line is None:
                    open_streams -= 1
                    continue
                captured[name].append(line)
                combined.append(line)
                if sink is not None:
                    sink(line)
            returncode = proc.wait()
        finally:
            if proc.poll() is None:
                proc.kill()
                proc.wait()
        for reader in readers:
            reader.join(timeout=1)

        output = CommandOutput(
            command=display,
            returncode=returncode,
            stdout="\n".join(captured[_STDOUT]),
            stderr="\n".join(captured[_STDERR]),
            lines=combined,
        )
        logger.debug("exit %s: %s", returncode, display)
        if returncode != 0:
            raise NonZeroExit(display, returncode, output.stderr)
        return output
