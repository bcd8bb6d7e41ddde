"""Click context object for sharing state across commands."""

from __future__ import annotations

from typing import TYPE_CHECKING

import click

from canaryctl.config import CanaryCtlConfig, ProfileConfig, get_default_config
from canaryctl.core.output import OutputFormat, OutputFormatter
from canaryctl.core.logging import LogLevel, setup_logging, StructuredLogger

if TYPE_CHECKING:
    from canaryctl.deploy.engine import RolloutEngine
    from canaryctl.deploy.operator import RolloutOperator


class CanaryCtlContext:
    """Shared context object for canaryctl commands.

    This object is passed through Click's context mechanism and provides
    access to configuration, the rollout engine and output utilities.
    """

    def __init__(
        self,
        config: CanaryCtlConfig | None = None,
        profile: str | None = None,
        output_format: OutputFormat | None = None,
        verbose: int = 0,
        quiet: bool = False,
        color: bool = True,
        engine: RolloutEngine | None = None,
    ):
        # Load or use provided config
        self._config = config or get_default_config()
        self._profile_name = profile or "default"

        # Output settings (CLI overrides config)
        self._output_format = output_format or self._config.global_settings.output_format
        self._verbose = verbose
        self._quiet = quiet
        self._color = color

        # Determine log level from verbosity
        if verbose >= 2:
            log_level = LogLevel.DEBUG
        elif verbose >= 1:
            log_level = LogLevel.INFO
        elif quiet:
            log_level = LogLevel.ERROR
        else:
            log_level = self._config.global_settings.verbosity

        # Setup logging
        setup_logging(log_level, rich_output=color)
        self._logger = StructuredLogger("context")

        # Output formatter
        self._output = OutputFormatter(
            format=self._output_format,
            color=color,
            quiet=quiet,
        )

        # Lazy-loaded engine
        self._engine: RolloutEngine | None = engine
        self._operator: RolloutOperator | None = None

    @property
    def config(self) -> CanaryCtlConfig:
        """Get the loaded configuration."""
        return self._config

    @property
    def profile(self) -> ProfileConfig:
        """Get the current profile configuration."""
        return self._config.get_profile(self._profile_name)

    @property
    def profile_name(self) -> str:
        """Get the current profile name."""
        return self._profile_name

    @property
    def output(self) -> OutputFormatter:
        """Get the output formatter."""
        return self._output

    @property
    def output_format(self) -> OutputFormat:
        """Get the output format."""
        return self._output_format

    @property
    def verbose(self) -> int:
        """Get verbosity level."""
        return self._verbose

    @property
    def quiet(self) -> bool:
        """Check if quiet mode is enabled."""
        return self._quiet

    @property
    def logger(self) -> StructuredLogger:
        """Get the context logger."""
        return self._logger

    @property
    def engine(self) -> RolloutEngine:
        """Get or create the rollout engine for the current profile."""
        if self._engine is None:
            from canaryctl.deploy.engine import RolloutEngine

            self._engine = RolloutEngine.from_profile(self.profile)
        return self._engine

    @property
    def operator(self) -> RolloutOperator:
        """Get or create the rollout operator."""
        if self._operator is None:
            from canaryctl.deploy.operator import RolloutOperator

            self._operator = RolloutOperator(self.engine)
        return self._operator

    def confirm(self, message: str, default: bool = False) -> bool:
        """Ask for user confirmation unless destructive prompts are disabled."""
        if not self._config.global_settings.confirm_destructive:
            return True
        return self._output.confirm(message, default)


# Click decorator for passing context
pass_context = click.make_pass_decorator(CanaryCtlContext, ensure=True)
