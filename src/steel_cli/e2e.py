"""End-to-end test run of a generated project against a local chain."""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Optional

from .config import Settings
from .errors import StepError

logger = logging.getLogger(__name__)


def _discard(_line: str) -> None:
    pass


@dataclass
class E2EEnvironment:
    """Variables handed to the validation script; never exported to os.environ."""

    rpc_url: str
    wallet_address: str
    wallet_private_key: str = field(repr=False)
    bonsai_api_url: str = ""
    bonsai_api_key: Optional[str] = field(default=None, repr=False)

    @classmethod
    def from_settings(cls, settings: Settings, credential: Optional[str] = None) -> "E2EEnvironment":
        return cls(
            rpc_url=settings.rpc_url,
            wallet_address=settings.wallet_address,
            wallet_private_key=settings.wallet_private_key,
            bonsai_api_url=settings.bonsai_api_url,
            bonsai_api_key=credential,
        )

    def as_env(self) -> dict[str, str]:
        env = {
            "ETH_RPC_URL": self.rpc_url,
            "ETH_WALLET_ADDRESS": self.wallet_address,
            "ETH_WALLET_PRIVATE_KEY": self.wallet_private_key,
        }
        if self.bonsai_api_url:
            env["BONSAI_API_URL"] = self.bonsai_api_url
        if self.bonsai_api_key:
            env["BONSAI_API_KEY"] = self.bonsai_api_key
        return env


@dataclass(frozen=True)
class E2EPhase:
    id: str
    description: str


PHASES = (
    E2EPhase("prepare", "Preparing environment"),
    E2EPhase("start-service", "Starting local Ethereum chain"),
    E2EPhase("validate", "Running end-to-end test"),
    E2EPhase("cleanup", "Cleaning up"),
)


class E2ERun:
    """One invocation of the end-to-end test, executed a phase at a time.

    ``cleanup`` stops the supervisor and runs at most once per run, whether
    it is reached as the last phase or called after a failed phase.
    """

    phases = PHASES

    def __init__(
        self,
        workspace: Path,
        environment: E2EEnvironment,
        supervisor,
        runner,
        settings: Settings,
        log: Callable[[str], None] = _discard,
        status: Callable[[str], None] = _discard,
    ):
        self.workspace = workspace
        self.environment = environment
        self.supervisor = supervisor
        self.runner = runner
        self.settings = settings
        self.log = log
        self.status = status
        self.env: dict[str, str] = {}
        self.cleaned_up = False

    def __len__(self):
        return len(self.phases)

    def run_phase(self, index: int) -> None:
        phase = self.phases[index]
        logger.info("e2e phase %d/%d: %s", index + 1, len(self.phases), phase.id)
        {
            "prepare": self.prepare,
            "start-service": self.start_service,
            "validate": self.run_validation,
            "cleanup": self.cleanup,
        }[phase.id]()

    def prepare(self) -> None:
        if not self.workspace.is_dir():
            raise StepError(f"Project directory '{self.workspace}' not found")
        self.env = dict(self.environment.as_env())
        self.env["RUST_LOG"] = self.settings.rust_log
        self.status("Environment variables set, starting Anvil...")

    def start_service(self) -> None:
        self.status("Starting local Ethereum chain...")
        self.supervisor.start()
        self.status("✓ Local Ethereum chain started")
        self.log("✓ Local Ethereum chain started")

    def run_validation(self) -> None:
        script = self.workspace / self.settings.e2e_script
        if not script.is_file():
            raise StepError(f"Test script '{self.settings.e2e_script}' not found in {self.workspace}")

        self.status("Running end-to-end test...")
        self.log(f"Changing to project directory: {self.workspace.name}")
        self._run("Building project to generate contracts...", "cargo", "build")
        self._run("Compiling Solidity contracts...", "forge", "build")
        self._run("Running end-to-end test script...", "bash", self.settings.e2e_script)
        self.status("✓ End-to-end test completed successfully")

    def cleanup(self) -> None:
        if self.cleaned_up:
            return
        self.cleaned_up = True
        self.status("Cleaning up...")
        self.supervisor.stop()
        self.env = {}
        self.status("✓ Cleanup completed")
        self.log("✓ Cleanup completed")

    def _run(self, description: str, command: str, *args: str):
        self.status(description)
        self.log(f"$ {command} {' '.join(args)}".rstrip())
        return self.runner.run(command, args, sink=self.log, env=self.env, cwd=self.workspace)
