"""Error types and user-facing error reporting for Tandem."""

import logging
import os
import sys
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING

from rich.console import Console

if TYPE_CHECKING:
    from .config import TandemConfig

logger = logging.getLogger(__name__)
console = Console()


class ErrorCategory(Enum):
    """Categories of errors for better user experience."""

    CONFIGURATION = "configuration"
    FILESYSTEM = "filesystem"
    WATCH = "watch"
    STAGE = "stage"
    PROCESS = "process"
    SYSTEM = "system"
    USER_INPUT = "user_input"


class TandemError(Exception):
    """Base exception for Tandem with enhanced user experience."""

    def __init__(
        self,
        message: str,
        category: ErrorCategory,
        *,
        solution: str | None = None,
        details: str | None = None,
        recoverable: bool = True,
        log_level: int = logging.ERROR,
        original_error: Exception | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category
        self.solution = solution
        self.details = details
        self.recoverable = recoverable
        self.log_level = log_level
        self.original_error = original_error

    def display_to_user(self) -> None:
        """Display error to user with helpful context."""
        category_styles = {
            ErrorCategory.CONFIGURATION: ("⚙️", "yellow"),
            ErrorCategory.FILESYSTEM: ("📁", "red"),
            ErrorCategory.WATCH: ("👁️", "red"),
            ErrorCategory.STAGE: ("🔨", "red"),
            ErrorCategory.PROCESS: ("💻", "red"),
            ErrorCategory.SYSTEM: ("💻", "red"),
            ErrorCategory.USER_INPUT: ("⌨️", "yellow"),
        }

        emoji, color = category_styles.get(self.category, ("❌", "red"))

        console.print(
            f"\n{emoji} [{color} bold]{self.category.value.title()} Error[/{color} bold]",
        )
        console.print(f"[{color}]{self.message}[/{color}]")

        if self.details:
            console.print(f"\n[dim]Details:[/dim] {self.details}")

        if self.solution:
            console.print(f"\n[green]💡 Solution:[/green] {self.solution}")

        if self.recoverable:
            console.print(
                "\n[dim]This error may be temporary. You can try again.[/dim]",
            )
        else:
            console.print(
                "\n[dim]This error requires intervention before continuing.[/dim]",
            )

        if self.original_error:
            logger.log(
                self.log_level,
                "%s: %s",
                self.category.value,
                self.message,
                exc_info=self.original_error,
            )
        else:
            logger.log(self.log_level, "%s: %s", self.category.value, self.message)


class ConfigurationError(TandemError):
    """Configuration-related errors."""

    def __init__(self, message: str, *, config_path: Path | None = None, **kwargs):
        solution = kwargs.pop("solution", None)
        if not solution and config_path:
            solution = f"Check your configuration file at {config_path}"
        super().__init__(
            message,
            ErrorCategory.CONFIGURATION,
            solution=solution,
            **kwargs,
        )


class CoordinationError(TandemError):
    """The coordination directory or a marker could not be written."""

    def __init__(self, message: str, *, path: Path | None = None, **kwargs):
        self.path = path
        solution = kwargs.pop(
            "solution",
            "Check the working directory exists and is writable",
        )
        kwargs.setdefault("recoverable", False)
        super().__init__(
            message,
            ErrorCategory.FILESYSTEM,
            solution=solution,
            **kwargs,
        )


class WatchError(TandemError):
    """The filesystem watch could not be established."""

    def __init__(self, message: str, **kwargs):
        solution = kwargs.pop(
            "solution",
            "Check inotify limits (fs.inotify.max_user_watches) and directory permissions",
        )
        kwargs.setdefault("recoverable", False)
        super().__init__(message, ErrorCategory.WATCH, solution=solution, **kwargs)


class StageScriptError(TandemError):
    """A stage runner is missing or not executable."""

    def __init__(self, script_path: Path, reason: str, **kwargs):
        self.script_path = script_path
        self.reason = reason
        solution = kwargs.pop(
            "solution",
            f"Create {script_path.name} in the working directory and run 'chmod +x' on it",
        )
        super().__init__(
            f"Stage runner {script_path} {reason}",
            ErrorCategory.STAGE,
            solution=solution,
            **kwargs,
        )


class StageLaunchError(TandemError):
    """The operating system refused to start a stage runner."""

    def __init__(self, script_path: Path, original_error: Exception, **kwargs):
        self.script_path = script_path
        super().__init__(
            f"Failed to start {script_path}: {original_error}",
            ErrorCategory.PROCESS,
            original_error=original_error,
            details=kwargs.pop("details", None),
            solution=kwargs.pop(
                "solution",
                "Check the runner has a valid interpreter line and permissions",
            ),
            **kwargs,
        )


class StageBusyError(TandemError):
    """A stage start was requested while another stage process is live."""

    def __init__(self, running: str, **kwargs):
        super().__init__(
            f"A stage process is already running: {running}",
            ErrorCategory.PROCESS,
            log_level=logging.WARNING,
            **kwargs,
        )


def handle_error(
    error: Exception,
    *,
    category: ErrorCategory | None = None,
    **kwargs,
) -> None:
    """Convert generic exceptions to TandemError and display to user."""
    if isinstance(error, TandemError):
        error.display_to_user()
        return

    if category is None:
        if isinstance(error, FileNotFoundError | PermissionError):
            category = ErrorCategory.FILESYSTEM
        elif isinstance(error, ValueError):
            category = ErrorCategory.USER_INPUT
        else:
            category = ErrorCategory.SYSTEM

    tandem_error = TandemError(
        message=str(error) or "An unexpected error occurred",
        category=category,
        original_error=error,
        **kwargs,
    )
    tandem_error.display_to_user()


def check_stage_runner(script_path: Path) -> StageScriptError | None:
    """Return an error if the runner cannot be executed, else None."""
    if not script_path.is_file():
        return StageScriptError(script_path, "does not exist")
    if not os.access(script_path, os.X_OK):
        return StageScriptError(script_path, "is not executable")
    return None


def check_stage_runners(config: "TandemConfig", work_dir: Path) -> list[StageScriptError]:
    """Check both stage runners and return the problems found."""
    from .coordination.markers import Stage

    errors = []
    for stage in Stage:
        error = check_stage_runner(config.runner_path(work_dir, stage))
        if error:
            errors.append(error)
    return errors


def graceful_exit(exit_code: int = 1) -> None:
    """Exit gracefully with helpful message."""
    if exit_code == 0:
        console.print("\n[green]✨ Tandem stopped cleanly[/green]")
    else:
        console.print("\n[red]Tandem encountered errors and had to stop[/red]")
        console.print("[dim]Check the logs above for details on what went wrong[/dim]")

    sys.exit(exit_code)
