"""Configuration management for Tandem."""

from pathlib import Path

import tomli
from pydantic import BaseModel, Field, field_validator

from .coordination.markers import Stage


class TandemConfig(BaseModel):
    """Main configuration for Tandem."""

    # Coordination layout (relative to the working directory)
    coordination_dir_name: str = Field(default=".orchestration-coordination")

    # Stage runner executables (relative to the working directory)
    dev_runner: str = Field(default="dev-stage-runner")
    review_runner: str = Field(default="review-stage-runner")

    # Logging - file logging is disabled unless a directory is set
    log_dir: Path | None = None

    # Notifications
    ntfy_topic: str | None = None
    ntfy_request_timeout: int = Field(default=10)  # 10 seconds

    # Demo sequence (seconds)
    demo_initial_delay: float = Field(default=1.0)
    demo_step_delay: float = Field(default=3.0)

    @field_validator("log_dir", mode="before")
    @classmethod
    def expand_paths(cls, v: Path | str | None) -> Path | None:
        """Expand user home directory in paths."""
        if v is None:
            return None
        if isinstance(v, str):
            v = Path(v)
        return v.expanduser().resolve()

    @field_validator("coordination_dir_name", "dev_runner", "review_runner")
    @classmethod
    def bare_name(cls, v: str) -> str:
        """Names are resolved against the working directory, so no separators."""
        if not v or "/" in v or "\\" in v or v in (".", ".."):
            msg = f"'{v}' must be a plain file name"
            raise ValueError(msg)
        return v

    @field_validator("demo_initial_delay", "demo_step_delay")
    @classmethod
    def non_negative(cls, v: float) -> float:
        if v < 0:
            msg = "delay must not be negative"
            raise ValueError(msg)
        return v

    def coordination_dir(self, work_dir: Path) -> Path:
        """Directory holding the trigger markers for a working directory."""
        return work_dir / self.coordination_dir_name

    def runner_path(self, work_dir: Path, stage: Stage) -> Path:
        """Path of the external program that runs a stage."""
        name = self.dev_runner if stage is Stage.DEV else self.review_runner
        return work_dir / name

    def ensure_directories(self) -> None:
        """Create required directories if they don't exist."""
        if self.log_dir:
            self.log_dir.mkdir(parents=True, exist_ok=True)


def load_config(config_path: Path | None = None) -> TandemConfig:
    """Load configuration from file or defaults."""
    if config_path is None:
        # Check common config locations (user config first)
        possible_paths = [
            Path.home() / ".config" / "tandem" / "config.toml",  # User config
            Path.cwd() / "tandem.toml",  # Current directory
        ]

        for path in possible_paths:
            if path.exists():
                config_path = path
                break

    if config_path and config_path.exists():
        with open(config_path, "rb") as f:
            config_data = tomli.load(f)
        return TandemConfig(**config_data)
    # Use defaults
    return TandemConfig()


def create_sample_config(path: Path) -> None:
    """Create a sample configuration file."""
    sample_config = """# Tandem Configuration
# ====================
# Every setting is optional; the values below are the defaults.

# ============================================================================
# WORKFLOW LAYOUT
# ============================================================================

# Directory (inside the working directory) holding the trigger markers
coordination_dir_name = ".orchestration-coordination"

# Stage runner executables, resolved inside the working directory
dev_runner = "dev-stage-runner"                   # Started on task-ready.trigger
review_runner = "review-stage-runner"             # Started on dev-complete.trigger

# ============================================================================
# LOGGING & NOTIFICATIONS
# ============================================================================

# log_dir = "~/.local/share/tandem/logs"          # Enables tandem.log file output
# ntfy_topic = "https://ntfy.sh/your_topic"       # Stage start/failure notifications
ntfy_request_timeout = 10                         # Notification request timeout (seconds)

# ============================================================================
# DEMO SEQUENCE (tandem start --demo)
# ============================================================================

demo_initial_delay = 1.0                          # Seconds before task-ready is written
demo_step_delay = 3.0                             # Seconds between the following markers
"""

    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w") as f:
        f.write(sample_config)
