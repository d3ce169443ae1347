"""Snapshot of everything the screen shows, built from the wizard's state."""

from dataclasses import dataclass
from typing import Optional

from .e2e import PHASES
from .wizard import (
    OVERWRITE_MENU,
    TEST_MENU,
    AwaitingCredential,
    AwaitingProjectName,
    ConfirmingOverwrite,
    InstallFailed,
    Installing,
    InstallSucceeded,
    ProbingDependencies,
    RunningTest,
    SelectingTest,
    Terminated,
)

TITLE = "Steel App Creator"
MASK = "•"


@dataclass(frozen=True)
class MenuModel:
    title: str
    items: tuple
    selected: int
    hint: str = "Use ↑↓ arrows to select, Enter to confirm:"


@dataclass(frozen=True)
class ProgressModel:
    heading: str
    details: tuple
    # (label, status) with status one of pending/running/done/error
    steps: tuple


@dataclass(frozen=True)
class InputModel:
    label: str
    value: str
    hint: str


@dataclass(frozen=True)
class RenderModel:
    title: str
    state: str
    status: str
    dependencies: tuple = ()
    input: Optional[InputModel] = None
    menu: Optional[MenuModel] = None
    progress: Optional[ProgressModel] = None
    notice: tuple = ()
    output: tuple = ()
    output_offset: int = 0
    help: str = "Esc: exit   PgUp/PgDn: scroll output"


def _step_statuses(labels, current: int, failed: bool) -> tuple:
    steps = []
    for i, label in enumerate(labels):
        if i < current:
            status = "done"
        elif i == current:
            status = "error" if failed else "running"
        else:
            status = "pending"
        steps.append((label, status))
    return tuple(steps)


def _install_progress(wizard, failed: bool) -> Optional[ProgressModel]:
    pipeline = wizard.pipeline
    if pipeline is None or wizard.pipeline_state is None:
        return None
    index = min(wizard.pipeline_state.index, len(pipeline) - 1)
    step = pipeline.steps[index]
    return ProgressModel(
        heading=f"Step {index + 1}/{len(pipeline)}: {step.description}",
        details=tuple(f"• {d}" for d in step.details),
        steps=_step_statuses([s.description for s in pipeline.steps], index, failed),
    )


def build_render_model(wizard) -> RenderModel:
    """Pure function of the wizard's current fields; reads, never mutates."""
    state = wizard.state
    timestamps = wizard.settings.timestamps
    base = dict(
        title=TITLE,
        state=type(state).__name__,
        status=wizard.status_message,
        output=tuple(line.display(timestamps) for line in wizard.output.lines),
        output_offset=wizard.output.offset,
    )

    if isinstance(state, ProbingDependencies):
        return RenderModel(**base, dependencies=wizard.dependencies)

    if isinstance(state, AwaitingProjectName):
        return RenderModel(
            **base,
            input=InputModel("Project name", wizard.project_name, "Press Enter when done, Esc to exit"),
        )

    if isinstance(state, ConfirmingOverwrite):
        return RenderModel(
            **base,
            notice=(f"Directory '{wizard.project_name}' already exists!",),
            menu=MenuModel("Directory already exists", OVERWRITE_MENU, wizard.menu_index),
        )

    if isinstance(state, Installing):
        return RenderModel(**base, progress=_install_progress(wizard, failed=False))

    if isinstance(state, InstallFailed):
        return RenderModel(
            **base,
            progress=_install_progress(wizard, failed=True),
            notice=(f"Installation failed: {state.error}", "Press Esc to exit"),
            help="Esc/Enter: exit",
        )

    if isinstance(state, InstallSucceeded):
        return RenderModel(
            **base,
            notice=(
                "✨ Success! ✨",
                f"Project '{wizard.project_name}' has been created successfully!",
                ">>> PRESS ENTER TO CONTINUE <<<",
            ),
        )

    if isinstance(state, SelectingTest):
        return RenderModel(**base, menu=MenuModel("End-to-End Test Menu", TEST_MENU, wizard.menu_index))

    if isinstance(state, AwaitingCredential):
        return RenderModel(
            **base,
            input=InputModel(
                "Bonsai API Key",
                MASK * len(wizard.credential),
                "Press Enter to continue, Esc to exit",
            ),
            notice=(
                "Please enter your Bonsai API key to proceed with the end-to-end test.",
                "This key is required to authenticate with the Bonsai service.",
            ),
        )

    if isinstance(state, RunningTest):
        return RenderModel(
            **base,
            progress=ProgressModel(
                heading=f"Phase {state.phase_index + 1}/{len(PHASES)}: {PHASES[state.phase_index].description}",
                details=(),
                steps=_step_statuses([p.description for p in PHASES], state.phase_index, False),
            ),
        )

    if isinstance(state, Terminated):
        return RenderModel(**base)

    raise TypeError(f"unknown wizard state {state!r}")
