"""The wizard: a state machine driven by key events and ticks.

Every state is a small frozen dataclass; ``Wizard.state`` holds exactly one
of them and only ``Wizard.transition`` replaces it. Key events go through
one handler per state, and each ``tick`` performs at most one unit of
blocking work (a probe cycle, a pipeline step, a test phase).
"""

import logging
import shutil
import time
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Callable, Optional, Union

from .config import Settings
from .e2e import E2EEnvironment, E2ERun
from .errors import SteelError
from .output import OutputLog
from .pipeline import PipelineState, StepPipeline, build_install_pipeline
from .probe import REQUIRED_TOOLS, DependencyStatus, probe_all
from .process import ProcessRunner
from .supervisor import build_supervisor

logger = logging.getLogger(__name__)


# States

@dataclass(frozen=True)
class ProbingDependencies:
    pass


@dataclass(frozen=True)
class AwaitingProjectName:
    pass


@dataclass(frozen=True)
class ConfirmingOverwrite:
    pass


@dataclass(frozen=True)
class Installing:
    step_index: int


@dataclass(frozen=True)
class InstallFailed:
    error: str


@dataclass(frozen=True)
class InstallSucceeded:
    pass


@dataclass(frozen=True)
class SelectingTest:
    pass


@dataclass(frozen=True)
class AwaitingCredential:
    pass


@dataclass(frozen=True)
class RunningTest:
    phase_index: int


@dataclass(frozen=True)
class Terminated:
    exit_code: int = 0


WizardState = Union[
    ProbingDependencies,
    AwaitingProjectName,
    ConfirmingOverwrite,
    Installing,
    InstallFailed,
    InstallSucceeded,
    SelectingTest,
    AwaitingCredential,
    RunningTest,
    Terminated,
]


# Input

class Action(str, Enum):
    CONFIRM = "confirm"
    CANCEL = "cancel"
    UP = "up"
    DOWN = "down"
    CHAR = "char"
    DELETE = "delete"
    SCROLL_UP = "scroll_up"
    SCROLL_DOWN = "scroll_down"


@dataclass(frozen=True)
class KeyEvent:
    action: Action
    char: str = ""


OVERWRITE_MENU = ("Go to testing toolbox", "Continue (overwrite)", "Exit")
TEST_MENU = ("Run end-to-end test with Anvil", "Exit")


class Wizard:
    def __init__(
        self,
        settings: Settings,
        runner: Optional[ProcessRunner] = None,
        supervisor=None,
        tools=REQUIRED_TOOLS,
        pipeline_factory: Callable[..., StepPipeline] = build_install_pipeline,
        clock: Callable[[], float] = time.monotonic,
        project_name: str = "",
    ):
        self.settings = settings
        self.runner = runner or ProcessRunner()
        self.supervisor = supervisor or build_supervisor(settings, self.runner)
        self.tools = tuple(tools)
        self.pipeline_factory = pipeline_factory
        self._clock = clock

        self.state: WizardState = ProbingDependencies()
        self.status_message = "Checking dependencies..."
        self.output = OutputLog()
        self.dependencies: tuple[DependencyStatus, ...] = ()
        self.project_name = project_name
        self.credential = ""
        self.menu_index = 0
        self.pipeline: Optional[StepPipeline] = None
        self.pipeline_state: Optional[PipelineState] = None
        self.test_run: Optional[E2ERun] = None
        self.failure: Optional[str] = None

        self._next_probe_at = 0.0
        self._service_used = False
        self._refresh: Optional[Callable[[], None]] = None

        self._event_handlers = {
            ProbingDependencies: self._on_passive_event,
            AwaitingProjectName: self._on_project_name_event,
            ConfirmingOverwrite: self._on_confirm_overwrite_event,
            Installing: self._on_passive_event,
            InstallFailed: self._on_install_failed_event,
            InstallSucceeded: self._on_install_succeeded_event,
            SelectingTest: self._on_select_test_event,
            AwaitingCredential: self._on_credential_event,
            RunningTest: self._on_passive_event,
            Terminated: self._on_terminated_event,
        }
        self._tick_handlers = {
            ProbingDependencies: self._tick_probe,
            Installing: self._tick_install,
            RunningTest: self._tick_test,
        }

    # -- public surface --------------------------------------------------

    @property
    def finished(self) -> bool:
        return isinstance(self.state, Terminated)

    @property
    def exit_code(self) -> int:
        return self.state.exit_code if isinstance(self.state, Terminated) else 0

    @property
    def workspace(self) -> Path:
        return self.settings.workspace(self.project_name.strip())

    def attach_refresh(self, cb: Optional[Callable[[], None]]) -> None:
        """Called whenever output streams in while a tick is blocked."""
        self._refresh = cb
        self.output.attach_refresh(cb)

    def transition(self, new_state: WizardState, status: Optional[str] = None) -> None:
        old = self.state
        if type(old) is not type(new_state):
            logger.info("state %s -> %s", type(old).__name__, type(new_state).__name__)
        if isinstance(new_state, ProbingDependencies):
            self._next_probe_at = 0.0
        if isinstance(new_state, (ConfirmingOverwrite, SelectingTest)) and type(old) is not type(new_state):
            self.menu_index = 0
        if isinstance(new_state, AwaitingCredential):
            self.credential = ""
        self.state = new_state
        if status is not None:
            self.status_message = status

    def handle_event(self, event: KeyEvent) -> None:
        if event.action is Action.SCROLL_UP:
            self.output.scroll_up()
            return
        if event.action is Action.SCROLL_DOWN:
            self.output.scroll_down()
            return
        self._event_handlers[type(self.state)](event)

    def tick(self) -> None:
        handler = self._tick_handlers.get(type(self.state))
        if handler is not None:
            handler()

    def shutdown(self) -> None:
        """End-of-session cleanup; safe to call more than once."""
        if self.test_run is not None:
            self.test_run.cleanup()
            self.test_run = None
        if self._service_used:
            self.supervisor.stop()

    def render_model(self):
        from .render_model import build_render_model

        return build_render_model(self)

    # -- event handlers, one per state ------------------------------------

    def _terminate(self, exit_code: int = 0) -> None:
        self.transition(Terminated(exit_code))

    def _on_passive_event(self, event: KeyEvent) -> None:
        if event.action is Action.CANCEL:
            self._terminate()

    def _on_terminated_event(self, event: KeyEvent) -> None:
        pass

    def _on_project_name_event(self, event: KeyEvent) -> None:
        if event.action is Action.CANCEL:
            self._terminate()
        elif event.action is Action.CHAR:
            if event.char.isprintable():
                self.project_name += event.char
        elif event.action is Action.DELETE:
            self.project_name = self.project_name[:-1]
        elif event.action is Action.CONFIRM:
            self._submit_project_name()

    def _submit_project_name(self) -> None:
        name = self.project_name.strip()
        if not name:
            return
        if name in (".", "..") or "/" in name or "\\" in name:
            self.status_message = "Project name must be a plain directory name"
            return
        self.project_name = name
        if self.workspace.exists():
            self.transition(ConfirmingOverwrite(), "Directory exists. Overwrite?")
        else:
            self._begin_install()

    def _move_menu(self, event: KeyEvent, size: int) -> bool:
        if event.action is Action.UP:
            self.menu_index = max(0, self.menu_index - 1)
            return True
        if event.action is Action.DOWN:
            self.menu_index = min(size - 1, self.menu_index + 1)
            return True
        return False

    def _on_confirm_overwrite_event(self, event: KeyEvent) -> None:
        if self._move_menu(event, len(OVERWRITE_MENU)):
            return
        if event.action is Action.CANCEL:
            self._terminate()
        elif event.action is Action.CONFIRM:
            if self.menu_index == 0:
                self._enter_test_menu()
            elif self.menu_index == 1:
                self._overwrite_and_install()
            else:
                self._terminate()

    def _on_install_failed_event(self, event: KeyEvent) -> None:
        if event.action in (Action.CANCEL, Action.CONFIRM):
            self._terminate(1)

    def _on_install_succeeded_event(self, event: KeyEvent) -> None:
        if event.action is Action.CONFIRM:
            self._enter_test_menu()
        elif event.action is Action.CANCEL:
            self._terminate()

    def _on_select_test_event(self, event: KeyEvent) -> None:
        if self._move_menu(event, len(TEST_MENU)):
            return
        if event.action is Action.CANCEL:
            self._terminate()
        elif event.action is Action.CONFIRM:
            if self.menu_index == 0:
                preset = self.settings.bonsai_api_key
                if self.settings.credential_required and not preset:
                    self.transition(AwaitingCredential(), "Please enter your Bonsai API key")
                else:
                    self._begin_test(preset)
            else:
                self._terminate()

    def _on_credential_event(self, event: KeyEvent) -> None:
        if event.action is Action.CANCEL:
            self.credential = ""
            self._terminate()
        elif event.action is Action.CHAR:
            if event.char.isprintable():
                self.credential += event.char
        elif event.action is Action.DELETE:
            self.credential = self.credential[:-1]
        elif event.action is Action.CONFIRM and self.credential:
            credential, self.credential = self.credential, ""
            self._begin_test(credential)

    # -- transitions with side effects --------------------------------------

    def _set_status(self, message: str) -> None:
        self.status_message = message
        if self._refresh:
            self._refresh()

    def _enter_test_menu(self) -> None:
        self.output.clear()
        self.transition(SelectingTest(), "Select test to run:")

    def _overwrite_and_install(self) -> None:
        workspace = self.workspace
        self.output.append(f"Removing existing directory '{self.project_name}'...")
        try:
            if workspace.is_dir() and not workspace.is_symlink():
                shutil.rmtree(workspace)
            else:
                workspace.unlink()
        except OSError as e:
            self._fail_install(f"Could not remove '{workspace}': {e}")
            return
        self._begin_install()

    def _begin_install(self) -> None:
        self.pipeline = self.pipeline_factory(
            self.settings,
            self.workspace,
            self.runner,
            log=self.output.append,
            status=self._set_status,
        )
        self.pipeline_state = PipelineState()
        self.transition(Installing(0), f"Installing project '{self.project_name}'...")

    def _fail_install(self, error: str) -> None:
        self.failure = error
        self.output.append(f"Error: {error}")
        self.transition(InstallFailed(error), f"Error: {error}\nPress Esc to exit")

    def _begin_test(self, credential: Optional[str]) -> None:
        environment = E2EEnvironment.from_settings(self.settings, credential)
        self.test_run = E2ERun(
            self.workspace,
            environment,
            self.supervisor,
            self.runner,
            self.settings,
            log=self.output.append,
            status=self._set_status,
        )
        self._service_used = True
        self.transition(RunningTest(0), "Starting end-to-end test...")

    # -- tick handlers ---------------------------------------------------

    def _tick_probe(self) -> None:
        now = self._clock()
        if now < self._next_probe_at:
            return
        self.dependencies = tuple(probe_all(self.tools, self.runner))
        self._next_probe_at = now + self.settings.probe_interval

        unsatisfied = [d for d in self.dependencies if not d.satisfied]
        if unsatisfied:
            self.status_message = f"✗ {unsatisfied[0].message}"
        else:
            self.transition(AwaitingProjectName(), "Enter project name (press Enter when done):")

    def _tick_install(self) -> None:
        state = self.pipeline.advance(self.pipeline_state)
        self.pipeline_state = state
        if state.failed:
            self._fail_install(state.error)
        elif state.done:
            self.transition(
                InstallSucceeded(), f"✓ Project '{self.project_name}' created successfully!"
            )
        else:
            self.transition(Installing(state.index))

    def _tick_test(self) -> None:
        run = self.test_run
        index = self.state.phase_index
        try:
            run.run_phase(index)
        except (SteelError, OSError) as e:
            logger.error("e2e phase %s failed: %s", run.phases[index].id, e)
            self.output.append(f"Error: {e}")
            run.cleanup()
            self.test_run = None
            self.transition(SelectingTest(), f"Error: {e}")
            return

        if index + 1 < len(run):
            self.transition(RunningTest(index + 1))
        else:
            self.test_run = None
            self.transition(SelectingTest())
