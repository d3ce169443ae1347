"""Start, health-check and reliably stop the local test chain."""

import logging
import os
import signal
import ssl
import subprocess
import time
from pathlib import Path
from typing import Callable, Optional, Sequence

import httpx
import truststore

from .errors import NonZeroExit, NotReady, SpawnFailed
from .process import ProcessRunner

logger = logging.getLogger(__name__)

ssl_context = truststore.SSLContext(ssl.PROTOCOL_TLS_CLIENT)

_KILL = getattr(signal, "SIGKILL", signal.SIGTERM)


def make_http_client(verify_tls: bool = True) -> httpx.Client:
    return httpx.Client(verify=ssl_context if verify_tls else False)


def rpc_ready_check(url: str, client: Optional[httpx.Client] = None, timeout: float = 1.0) -> Callable[[], bool]:
    """Build a readiness check that asks the chain for its block number."""
    payload = {"jsonrpc": "2.0", "method": "eth_blockNumber", "params": [], "id": 1}
    http = client or make_http_client()

    def check() -> bool:
        try:
            response = http.post(url, json=payload, timeout=timeout)
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            logger.debug("readiness check %s: %s", url, e)
            return False
        if response.status_code != 200:
            logger.debug("readiness check %s: HTTP %s", url, response.status_code)
            return False
        try:
            return "result" in response.json()
        except ValueError:
            return False

    return check


class ServiceSupervisor:
    """Owns at most one background service process.

    Termination is two-pronged: the held handle is terminated directly, and
    a kill-by-name command (``pkill anvil``) always follows, which also
    catches instances whose handle was lost (an earlier crashed run, a
    handle dropped on an error path).
    """

    def __init__(
        self,
        command: Sequence[str],
        ready_check: Callable[[], bool],
        termination_command: Sequence[str] = (),
        runner: Optional[ProcessRunner] = None,
        retries: int = 10,
        delay: float = 0.5,
        grace: float = 3.0,
        log_path: Optional[Path] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.command = tuple(command)
        self.ready_check = ready_check
        self.termination_command = tuple(termination_command)
        self.runner = runner or ProcessRunner()
        self.retries = retries
        self.delay = delay
        self.grace = grace
        self.log_path = log_path
        self._sleep = sleep
        self._handle: Optional[subprocess.Popen] = None
        # Plain int copy of the handle's pid for the crash path
        self._pid: Optional[int] = None

    @property
    def name(self) -> str:
        return Path(self.command[0]).name if self.command else "service"

    @property
    def pid(self) -> Optional[int]:
        return self._pid

    @property
    def running(self) -> bool:
        return self._handle is not None and self._handle.poll() is None

    def is_ready(self) -> bool:
        return bool(self.ready_check())

    def start(self) -> None:
        """Spawn the service and wait until it answers its readiness check."""
        self.broad_terminate()
        self._release_handle()

        logger.info("starting %s", " ".join(self.command))
        log_file = open(self.log_path, "ab") if self.log_path else None
        try:
            self._handle = subprocess.Popen(
                list(self.command),
                stdin=subprocess.DEVNULL,
                stdout=log_file or subprocess.DEVNULL,
                stderr=subprocess.STDOUT if log_file else subprocess.DEVNULL,
            )
        except OSError as e:
            raise SpawnFailed(" ".join(self.command), e.strerror or str(e)) from e
        finally:
            if log_file:
                log_file.close()
        self._pid = self._handle.pid

        for attempt in range(1, self.retries + 1):
            returncode = self._handle.poll()
            if returncode is not None:
                raise NotReady(f"{self.name} exited with status {returncode} before becoming ready")
            if self.is_ready():
                logger.info("%s ready after %d attempt(s)", self.name, attempt)
                return
            self._sleep(self.delay)
        raise NotReady(f"Failed to start {self.name}: not ready after {self.retries} attempts")

    def stop(self) -> None:
        """Terminate the held handle (if any), then always issue the broad kill."""
        self._release_handle()
        self.broad_terminate()

    def broad_terminate(self) -> None:
        if not self.termination_command:
            return
        command, *args = self.termination_command
        try:
            self.runner.run(command, args)
        except NonZeroExit as e:
            # pkill exits 1 when nothing matched
            logger.debug("broad terminate: %s", e)
        except SpawnFailed as e:
            logger.warning("broad terminate unavailable: %s", e)

    def emergency_stop(self) -> None:
        """Crash-path stop: no locks, no runner threads, nothing that can raise."""
        pid = self._pid
        if pid is not None:
            try:
                os.kill(pid, _KILL)
            except OSError:
                pass
        if self.termination_command:
            try:
                subprocess.run(
                    list(self.termination_command),
                    stdin=subprocess.DEVNULL,
                    stdout=subprocess.DEVNULL,
                    stderr=subprocess.DEVNULL,
                    timeout=5,
                )
            except (OSError, subprocess.SubprocessError):
                pass

    def _release_handle(self) -> None:
        handle, self._handle = self._handle, None
        self._pid = None
        if handle is None:
            return
        if handle.poll() is None:
            logger.info("stopping %s (pid %s)", self.name, handle.pid)
            handle.terminate()
            try:
                handle.wait(timeout=self.grace)
            except subprocess.TimeoutExpired:
                handle.kill()
                handle.wait()


def build_supervisor(settings, runner: Optional[ProcessRunner] = None) -> ServiceSupervisor:
    """Supervisor for the local chain described by ``settings``."""
    return ServiceSupervisor(
        settings.service_command,
        rpc_ready_check(settings.rpc_url, make_http_client(settings.verify_tls)),
        termination_command=settings.broad_kill_command,
        runner=runner,
        retries=settings.ready_retries,
        delay=settings.ready_delay,
        log_path=settings.service_log,
    )
