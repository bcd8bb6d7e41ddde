"""Main CLI entry point for canaryctl."""

import sys
from typing import Any

import click
from rich.console import Console

from canaryctl import __version__
from canaryctl.config import load_config
from canaryctl.core.context import CanaryCtlContext
from canaryctl.core.output import OutputFormat
from canaryctl.core.exceptions import CanaryCtlError, ConfigError


CONTEXT_SETTINGS = {
    "help_option_names": ["-h", "--help"],
    "max_content_width": 120,
}


class OutputFormatType(click.ParamType):
    """Custom Click parameter type for output format."""

    name = "format"

    def convert(
        self,
        value: Any,
        param: click.Parameter | None,
        ctx: click.Context | None,
    ) -> OutputFormat:
        if isinstance(value, OutputFormat):
            return value
        try:
            return OutputFormat(value.lower())
        except ValueError:
            self.fail(
                f"Invalid format '{value}'. Choose from: table, json, yaml, raw",
                param,
                ctx,
            )


OUTPUT_FORMAT = OutputFormatType()


def print_version(ctx: click.Context, param: click.Parameter, value: bool) -> None:
    """Print version and exit."""
    if not value or ctx.resilient_parsing:
        return
    console = Console()
    console.print(f"canaryctl version {__version__}")
    ctx.exit()


@click.group(context_settings=CONTEXT_SETTINGS)
@click.option(
    "-p",
    "--profile",
    metavar="NAME",
    envvar="CANARYCTL_PROFILE",
    help="Configuration profile to use",
)
@click.option(
    "-o",
    "--output",
    "output_format",
    type=OUTPUT_FORMAT,
    metavar="FORMAT",
    help="Output format: table, json, yaml, raw",
)
@click.option(
    "-v",
    "--verbose",
    count=True,
    help="Increase verbosity (-v for info, -vv for debug)",
)
@click.option(
    "-q",
    "--quiet",
    is_flag=True,
    help="Suppress non-essential output",
)
@click.option(
    "--no-color",
    is_flag=True,
    help="Disable colored output",
)
@click.option(
    "-c",
    "--config",
    "config_file",
    type=click.Path(exists=True),
    metavar="FILE",
    envvar="CANARYCTL_CONFIG",
    help="Path to config file",
)
@click.option(
    "--version",
    is_flag=True,
    callback=print_version,
    expose_value=False,
    is_eager=True,
    help="Show version and exit",
)
@click.pass_context
def cli(
    ctx: click.Context,
    profile: str | None,
    output_format: OutputFormat | None,
    verbose: int,
    quiet: bool,
    no_color: bool,
    config_file: str | None,
) -> None:
    """CanaryCtl - progressive canary rollouts with health-gated promotion.

    Shifts traffic to a canary in steps, checks its health at every step
    and promotes or rolls back automatically.

    \b
    Examples:
        canaryctl canary create --name web-v2 --target web --image repo/web:2.0
        canaryctl canary start abc123
        canaryctl canary run abc123
        canaryctl canary status abc123

    \b
    Configuration:
        ~/.canaryctl/config.yaml    User configuration
        ./canaryctl.yaml            Project configuration
        CANARYCTL_*                 Environment variables
    """
    try:
        # Load configuration
        config = load_config(config_file)
        config.get_profile(profile)

        # Create context
        ctx.obj = CanaryCtlContext(
            config=config,
            profile=profile,
            output_format=output_format,
            verbose=verbose,
            quiet=quiet,
            color=not no_color,
        )

    except ConfigError as e:
        console = Console(stderr=True)
        console.print(f"[red]Configuration error:[/red] {e}")
        sys.exit(1)


# Import and register command groups
def register_commands() -> None:
    """Register all command groups."""
    from canaryctl.commands.canary import canary
    from canaryctl.commands.template import template

    cli.add_command(canary)
    cli.add_command(template)


# Register commands
register_commands()


@cli.command()
@click.pass_context
def config(ctx: click.Context) -> None:
    """Show current configuration."""
    canary_ctx: CanaryCtlContext = ctx.obj
    profile = canary_ctx.profile
    config_data = {
        "profile": canary_ctx.profile_name,
        "output_format": canary_ctx.output_format.value,
        "verbose": canary_ctx.verbose,
        "state": {
            "backend": profile.state.backend,
            "state_dir": str(profile.state.get_state_dir()),
            "lock_timeout": profile.state.lock_timeout,
        },
        "metrics": {
            "provider": profile.metrics.provider,
            "prometheus_url": profile.metrics.prometheus.get_url(),
        },
        "traffic": {
            "controller": profile.traffic.controller,
            "replicas": profile.traffic.replicas,
        },
        "k8s": {
            "context": profile.k8s.get_context(),
            "namespace": profile.k8s.get_namespace(),
        },
        "advisory": {
            "enabled": profile.advisory.enabled,
            "provider": profile.advisory.provider,
            "model_id": profile.advisory.model_id,
            "aws_region": profile.aws.get_region(),
        },
        "defaults": profile.defaults.model_dump(),
    }
    canary_ctx.output.print_data(config_data, title="Current Configuration")


def main() -> None:
    """Main entry point."""
    try:
        cli()
    except CanaryCtlError as e:
        console = Console(stderr=True)
        console.print(f"[red]Error:[/red] {e}")
        sys.exit(1)
    except KeyboardInterrupt:
        console = Console(stderr=True)
        console.print("\n[yellow]Interrupted[/yellow]")
        sys.exit(130)


if __name__ == "__main__":
    main()
