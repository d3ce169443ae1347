"""Settings for the wizard and the CLI option/environment resolution."""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

APP_NAME = "steel-cli"

TEMPLATE_REPO = "https://github.com/risc0/risc0-ethereum.git"
TEMPLATE_BRANCH = "release-1.3"
TEMPLATE_SUBTREE = "examples/erc20-counter"

# (name, url, branch) added under lib/ of the new workspace
SUBMODULES = (
    ("forge-std", "https://github.com/foundry-rs/forge-std", None),
    ("openzeppelin-contracts", "https://github.com/OpenZeppelin/openzeppelin-contracts", None),
    ("risc0-ethereum", "https://github.com/risc0/risc0-ethereum", TEMPLATE_BRANCH),
)

# Anvil's first default dev account
DEV_WALLET_ADDRESS = "0xf39Fd6e51aad88F6F4ce6aB8827279cffFb92266"
DEV_WALLET_PRIVATE_KEY = "0xac0974bec39a17e36ba4a6b4d238ff944bacb478cbed5efcae784d7bf4f2ff80"


def _bonsai_api_key(cli_key: str | None = None) -> str | None:
    """Return sanitized Bonsai API key (cli arg takes precedence) or None."""
    return ((cli_key or os.getenv("BONSAI_API_KEY") or "").strip()) or None


def _log_level(debug: bool = False) -> str:
    """DEBUG when requested on the command line, else STEEL_LOG_LEVEL, else INFO."""
    if debug:
        return "DEBUG"
    return (os.getenv("STEEL_LOG_LEVEL") or "INFO").strip().upper()


@dataclass
class Settings:
    base_dir: Path = field(default_factory=Path.cwd)

    template_repo: str = TEMPLATE_REPO
    template_branch: str = TEMPLATE_BRANCH
    template_subtree: str = TEMPLATE_SUBTREE
    submodules: tuple = SUBMODULES
    dependency_repo: str = "https://github.com/risc0/risc0-ethereum"
    dependency_branch: str = TEMPLATE_BRANCH

    rpc_url: str = "http://localhost:8545"
    wallet_address: str = DEV_WALLET_ADDRESS
    wallet_private_key: str = DEV_WALLET_PRIVATE_KEY
    bonsai_api_url: str = "https://api.bonsai.xyz"
    bonsai_api_key: Optional[str] = None
    credential_required: bool = True
    rust_log: str = "info,risc0_steel=debug"
    e2e_script: str = "e2e-test.sh"

    service_command: tuple = ("anvil",)
    broad_kill_command: tuple = ("pkill", "anvil")
    service_log: Optional[Path] = None
    ready_retries: int = 10
    ready_delay: float = 0.5
    verify_tls: bool = True

    poll_interval: float = 0.016
    probe_interval: float = 1.0
    timestamps: bool = True

    def workspace(self, project_name: str) -> Path:
        return self.base_dir / project_name
