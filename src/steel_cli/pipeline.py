"""The ordered installation steps that turn a template checkout into a project."""

import logging
import shlex
import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional

from .config import Settings
from .errors import FilesystemConflict, SteelError, StepError
from .manifests import rewrite_foundry_config, rewrite_remappings, update_manifests

logger = logging.getLogger(__name__)


def _discard(_line: str) -> None:
    pass


@dataclass
class StepContext:
    """What a step action may touch: the workspace, the runner and the output sinks."""

    workspace: Path
    settings: Settings
    runner: object
    log: Callable[[str], None] = _discard
    status: Callable[[str], None] = _discard

    def run(self, description: str, command: str, *args: str, cwd: Optional[Path] = None):
        self.status(description)
        self.log(f"$ {shlex.join([command, *args])}")
        return self.runner.run(command, args, sink=self.log, cwd=cwd or self.workspace)


@dataclass(frozen=True)
class PipelineStep:
    id: str
    description: str
    action: Callable[[StepContext], None]
    details: tuple = ()


@dataclass(frozen=True)
class PipelineState:
    index: int = 0
    done: bool = False
    error: Optional[str] = None
    failed_step: Optional[str] = None

    @property
    def failed(self) -> bool:
        return self.error is not None

    @property
    def halted(self) -> bool:
        return self.done or self.failed


class StepPipeline:
    """Runs one step per ``advance`` call, strictly in order.

    A failed or finished state is returned untouched, so a step never runs
    again after it succeeded and nothing runs after a failure. Recovering
    from a failure means building a new pipeline over a fresh workspace.
    """

    def __init__(self, steps, context: StepContext):
        self.steps = tuple(steps)
        self.context = context

    def __len__(self):
        return len(self.steps)

    def current(self, state: PipelineState) -> Optional[PipelineStep]:
        if state.halted or state.index >= len(self.steps):
            return None
        return self.steps[state.index]

    def advance(self, state: PipelineState) -> PipelineState:
        step = self.current(state)
        if step is None:
            return state

        logger.info("step %d/%d: %s", state.index + 1, len(self.steps), step.id)
        try:
            step.action(self.context)
        except (SteelError, OSError) as e:
            logger.error("step %s failed: %s", step.id, e)
            return PipelineState(index=state.index, error=str(e), failed_step=step.id)

        next_index = state.index + 1
        return PipelineState(index=next_index, done=next_index >= len(self.steps))


# Step actions

def clone_template(ctx: StepContext) -> None:
    s = ctx.settings
    if ctx.workspace.exists():
        raise FilesystemConflict(ctx.workspace)
    ctx.workspace.parent.mkdir(parents=True, exist_ok=True)
    ctx.run(
        f"Cloning repository into '{ctx.workspace.name}'...",
        "git", "clone",
        "-b", s.template_branch,
        s.template_repo,
        str(ctx.workspace),
        "--single-branch",
        "--depth", "1",
        cwd=ctx.workspace.parent,
    )


def narrow_checkout(ctx: StepContext) -> None:
    subtree = ctx.settings.template_subtree
    ctx.run("Setting up sparse checkout...", "git", "sparse-checkout", "set", subtree)
    ctx.run("Checking out files...", "git", "checkout")
    if not (ctx.workspace / subtree).is_dir():
        raise StepError(f"{subtree} directory not found after checkout")


def restructure(ctx: StepContext) -> None:
    """Lift the example subtree to the workspace root, dropping the rest of the template."""
    root = ctx.workspace
    subtree = root / ctx.settings.template_subtree
    ctx.status("Setting up project structure...")
    ctx.log("Moving template files to root directory...")

    lifted = root / f".{subtree.name}.lift"
    subtree.rename(lifted)
    shutil.rmtree(root / Path(ctx.settings.template_subtree).parts[0])

    # Template top-level files (README, Cargo.toml of the monorepo, ...) go away
    for entry in root.iterdir():
        if entry.is_file() or entry.is_symlink():
            entry.unlink()

    for entry in lifted.iterdir():
        target = root / entry.name
        if target.exists():
            raise StepError(f"Cannot move '{entry.name}' to the project root: already exists")
        entry.rename(target)
    lifted.rmdir()

    ctx.log("✓ Project structure set up successfully")


def update_dependencies(ctx: StepContext) -> None:
    s = ctx.settings
    ctx.status("Configuring dependencies...")
    ctx.log("Updating Cargo.toml files with git dependencies...")
    for path, rewrite in update_manifests(ctx.workspace, s.dependency_repo, s.dependency_branch):
        relative = path.relative_to(ctx.workspace)
        if rewrite.unreadable:
            ctx.log(f"Warning: left {relative} unchanged (not valid UTF-8)")
        for name in rewrite.ambiguous:
            ctx.log(f"Warning: left {name} unchanged in {relative} (unrecognised declaration)")
        if rewrite.changed:
            ctx.log(f"Updated dependencies in: {relative}")
    ctx.log("✓ All Cargo.toml files have been updated with git dependencies.")


def _rewrite_file(path: Path, rewrite: Callable[[Optional[str]], str], ctx: StepContext) -> None:
    try:
        existing = path.read_text(encoding="utf-8") if path.exists() else None
    except UnicodeDecodeError as e:
        raise StepError(f"{path.name} is not valid UTF-8") from e
    path.write_text(rewrite(existing), encoding="utf-8")
    verb = "Updated" if existing is not None else "Created"
    ctx.log(f"✓ {verb} {path.name}")


def init_submodules(ctx: StepContext) -> None:
    root = ctx.workspace
    ctx.log("Starting Forge setup (this may take a few minutes)...")

    shutil.rmtree(root / ".git", ignore_errors=True)
    ctx.run("Initializing git repository...", "git", "init")
    (root / "lib").mkdir(exist_ok=True)

    total = len(ctx.settings.submodules)
    for i, (name, url, branch) in enumerate(ctx.settings.submodules, start=1):
        ctx.log(f"Adding {name} ({i}/{total})...")
        branch_args = ["-b", branch] if branch else []
        ctx.run(f"Cloning {name}...", "git", "submodule", "add", *branch_args, url, f"lib/{name}")

    ctx.log("Updating submodules recursively (this may take a while)...")
    ctx.run("Updating submodules...", "git", "submodule", "update", "--init", "--recursive", "--quiet")
    ctx.run("Resetting git index...", "git", "reset")

    _rewrite_file(root / "remappings.txt", rewrite_remappings, ctx)
    _rewrite_file(root / "foundry.toml", rewrite_foundry_config, ctx)
    ctx.log("Forge setup completed successfully")


INSTALL_STEPS = (
    PipelineStep(
        "clone",
        "Downloading Template",
        clone_template,
        ("Downloading RISC0 Ethereum template", "Using the release branch only"),
    ),
    PipelineStep(
        "sparse",
        "Extracting ERC20 Counter Example",
        narrow_checkout,
        ("Configuring repository for minimal download", "Extracting ERC20 counter example code"),
    ),
    PipelineStep(
        "restructure",
        "Setting Up Project Structure",
        restructure,
        ("Moving files to root directory", "Creating standard project layout"),
    ),
    PipelineStep(
        "dependencies",
        "Configuring Dependencies",
        update_dependencies,
        ("Updating Rust package dependencies", "Setting up RISC0 and Ethereum integrations"),
    ),
    PipelineStep(
        "forge",
        "Installing Forge Components",
        init_submodules,
        (
            "Setting up Foundry development environment",
            "Installing OpenZeppelin contracts",
            "Configuring RISC0 Ethereum components",
        ),
    ),
)


def build_install_pipeline(settings: Settings, workspace: Path, runner, log=_discard, status=_discard) -> StepPipeline:
    context = StepContext(workspace=workspace, settings=settings, runner=runner, log=log, status=status)
    return StepPipeline(INSTALL_STEPS, context)
