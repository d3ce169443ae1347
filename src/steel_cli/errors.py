"""Exception taxonomy shared by the runner, pipeline, supervisor and wizard."""


class SteelError(Exception):
    """Base class for every error raised by steel-cli."""


class ProcessError(SteelError):
    """An external command could not be run to a successful end."""


class SpawnFailed(ProcessError):
    def __init__(self, command: str, reason: str = ""):
        self.command = command
        self.reason = reason
        detail = f": {reason}" if reason else ""
        super().__init__(f"Failed to start '{command}'{detail}")


class NonZeroExit(ProcessError):
    def __init__(self, command: str, status: int, stderr: str = ""):
        self.command = command
        self.status = status
        self.stderr = stderr
        message = f"'{command}' exited with status {status}"
        last_line = stderr.strip().splitlines()[-1] if stderr.strip() else ""
        if last_line:
            message += f" ({last_line})"
        super().__init__(message)


class NotReady(ProcessError):
    """The background service did not pass its readiness check in time."""


class FilesystemConflict(SteelError):
    def __init__(self, path):
        self.path = path
        super().__init__(f"Directory '{path}' already exists")


class StepError(SteelError):
    """A pipeline step failed for a reason other than a process error."""
