"""Detect the external tools the wizard needs."""

import logging
import re
from dataclasses import dataclass
from typing import Optional

from .errors import ProcessError

logger = logging.getLogger(__name__)

VERSION_RE = re.compile(r"\d+\.\d+\.\d+")


@dataclass(frozen=True)
class ToolSpec:
    name: str
    command: str
    args: tuple = ("--version",)
    # Required version prefix, e.g. "1.2." accepts 1.2.0 and 1.2.5
    constraint: Optional[str] = None
    install_hint: str = ""


@dataclass(frozen=True)
class DependencyStatus:
    name: str
    constraint: Optional[str]
    detected_version: Optional[str]
    found: bool
    satisfied: bool
    message: str
    install_hint: str = ""


REQUIRED_TOOLS = (
    ToolSpec("Git", "git", install_hint="https://git-scm.com/downloads"),
    ToolSpec("Rust", "rustc", install_hint="https://www.rust-lang.org/tools/install"),
    ToolSpec("Foundry", "forge", install_hint="https://book.getfoundry.sh/getting-started/installation"),
    ToolSpec(
        "RISC0",
        "cargo",
        args=("risczero", "--version"),
        constraint="1.2.",
        install_hint="https://dev.risczero.com/api/zkvm/install",
    ),
)


def parse_version(text: str) -> Optional[str]:
    match = VERSION_RE.search(text or "")
    return match.group(0) if match else None


def probe(spec: ToolSpec, runner) -> DependencyStatus:
    """Run the version query for ``spec`` and judge the answer.

    A missing executable and a failing version query (e.g. ``cargo`` present
    without the ``risczero`` plugin) both count as "not found"; a found tool
    with a version outside the constraint counts as "unsupported".
    """
    try:
        output = runner.run(spec.command, spec.args)
    except ProcessError as e:
        logger.info("probe %s: not found (%s)", spec.name, e)
        hint = f" Visit: {spec.install_hint}" if spec.install_hint else ""
        return DependencyStatus(
            name=spec.name,
            constraint=spec.constraint,
            detected_version=None,
            found=False,
            satisfied=False,
            message=f"{spec.name} not found.{hint}",
            install_hint=spec.install_hint,
        )

    version = parse_version(output.stdout) or parse_version(output.combined)
    if spec.constraint is None or (version is not None and version.startswith(spec.constraint)):
        detail = f" ({version})" if version else ""
        logger.info("probe %s: ok%s", spec.name, detail)
        return DependencyStatus(
            name=spec.name,
            constraint=spec.constraint,
            detected_version=version,
            found=True,
            satisfied=True,
            message=f"{spec.name} is installed{detail}",
            install_hint=spec.install_hint,
        )

    logger.info("probe %s: unsupported version %s (need %sx)", spec.name, version, spec.constraint)
    return DependencyStatus(
        name=spec.name,
        constraint=spec.constraint,
        detected_version=version,
        found=True,
        satisfied=False,
        message=f"Unsupported {spec.name} version {version or 'unknown'}, {spec.constraint}x is required",
        install_hint=spec.install_hint,
    )


def probe_all(specs, runner) -> list[DependencyStatus]:
    return [probe(spec, runner) for spec in specs]
