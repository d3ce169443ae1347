"""
Shared test fixtures and configuration.
"""

import shlex
from pathlib import Path

import pytest

from steel_cli.config import Settings
from steel_cli.errors import NonZeroExit, SpawnFailed
from steel_cli.process import CommandOutput


class FakeRunner:
    """Stands in for ProcessRunner: records every call and replays scripted results.

    ``responses`` maps an argv tuple (or its first N words) to one of:
      - a string: returned as stdout, each line also sent to the sink
      - an exception instance: raised
      - a callable taking (argv, cwd, env): called, its return treated as above
    Anything unscripted succeeds with no output.
    """

    def __init__(self, responses=None):
        self.responses = dict(responses or {})
        self.calls = []

    def run(self, command, args=(), sink=None, env=None, cwd=None):
        argv = (command, *args)
        self.calls.append({"argv": argv, "env": dict(env or {}), "cwd": cwd})
        response = self._lookup(argv)
        if callable(response) and not isinstance(response, Exception):
            response = response(argv, cwd, env)
        if isinstance(response, Exception):
            raise response
        text = response or ""
        lines = text.splitlines()
        if sink is not None:
            for line in lines:
                sink(line)
        return CommandOutput(shlex.join(argv), 0, stdout=text, lines=lines)

    def _lookup(self, argv):
        for size in range(len(argv), 0, -1):
            if argv[:size] in self.responses:
                return self.responses[argv[:size]]
        return None

    @property
    def argvs(self):
        return [call["argv"] for call in self.calls]


def missing(command: str) -> SpawnFailed:
    return SpawnFailed(command, "No such file or directory")


def failing(command: str, status: int = 1, stderr: str = "") -> NonZeroExit:
    return NonZeroExit(command, status, stderr)


HEALTHY_TOOLS = {
    ("git", "--version"): "git version 2.43.0",
    ("rustc", "--version"): "rustc 1.81.0 (eeb90cda1 2024-09-04)",
    ("forge", "--version"): "forge 0.2.0 (5ac78a9 2024-07-31T00:18:49.813640000Z)",
    ("cargo", "risczero", "--version"): "cargo-risczero 1.2.1",
}


@pytest.fixture
def fake_runner() -> FakeRunner:
    """A runner with every required tool installed at a supported version."""
    return FakeRunner(HEALTHY_TOOLS)


@pytest.fixture
def base_dir(tmp_path: Path) -> Path:
    """Return a temporary directory projects are created in."""
    path = tmp_path / "projects"
    path.mkdir()
    return path


@pytest.fixture
def settings(base_dir: Path) -> Settings:
    """Settings pointing at a temp base dir, with no waiting anywhere."""
    return Settings(
        base_dir=base_dir,
        ready_retries=3,
        ready_delay=0,
        poll_interval=0,
        probe_interval=0,
        timestamps=False,
    )


@pytest.fixture
def project_root() -> Path:
    """Return the project root directory."""
    return Path(__file__).parent.parent
