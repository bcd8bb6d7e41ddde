"""Template command group."""

from typing import Any

import click

from canaryctl.core.context import pass_context, CanaryCtlContext
from canaryctl.core.exceptions import CanaryCtlError
from canaryctl.core.output import format_timestamp
from canaryctl.deploy import CanaryTemplate, TemplateRequest


def template_row(template: CanaryTemplate) -> dict[str, Any]:
    def pct(value: Any) -> str:
        return f"{value}%" if value is not None else "-"

    return {
        "id": template.id,
        "name": template.name,
        "split": template.traffic_split_type.value,
        "initial": pct(template.initial_percent),
        "increment": pct(template.increment_percent),
        "default": "yes" if template.is_default else "",
        "created": format_timestamp(template.created_at),
    }


@click.group()
@pass_context
def template(ctx: CanaryCtlContext) -> None:
    """Rollout templates - reusable rollout defaults.

    \b
    Examples:
        canaryctl template create --name cautious --initial 5 --increment 5
        canaryctl template list
        canaryctl canary create --template abc123 --name web-v2 --target web --image repo/web:2.0
    """
    pass


@template.command("create")
@click.option("--name", required=True, help="Template name")
@click.option("--description", default="", help="Description")
@click.option("--split-type", "traffic_split_type", type=click.Choice(["percentage", "header", "cookie"]), default="percentage", help="Traffic split type")
@click.option("--initial", "initial_percent", type=int, default=None, help="Initial canary percent")
@click.option("--increment", "increment_percent", type=int, default=None, help="Percent added per step")
@click.option("--interval", "increment_interval_minutes", type=int, default=None, help="Minutes between steps")
@click.option("--error-rate-threshold", type=float, default=None, help="Max canary error rate (%)")
@click.option("--latency-threshold", "latency_threshold_ms", type=float, default=None, help="Max canary latency (ms)")
@click.option("--success-rate-threshold", type=float, default=None, help="Min success rate to advance (%)")
@click.option("--auto-rollback/--no-auto-rollback", "auto_rollback_enabled", default=None, help="Roll back automatically on failed checks")
@click.option("--manual-approval/--no-manual-approval", "require_manual_approval", default=None, help="Wait for approval before final promotion")
@click.option("--default", "is_default", is_flag=True, help="Apply when no template is given")
@pass_context
def create(ctx: CanaryCtlContext, **options: Any) -> None:
    """Create a rollout template."""
    try:
        request = TemplateRequest.model_validate(
            {k: v for k, v in options.items() if v is not None}
        )
        created = ctx.engine.create_template(request)
        ctx.output.print_success(f"Created template {created.id} ({created.name})")
    except CanaryCtlError as e:
        ctx.output.print_error(f"Failed to create template: {e}")
        raise click.Abort()
    except ValueError as e:
        ctx.output.print_error(f"Invalid template: {e}")
        raise click.Abort()


@template.command("list")
@pass_context
def list_templates(ctx: CanaryCtlContext) -> None:
    """List templates."""
    try:
        templates = ctx.engine.list_templates()
        if not templates:
            ctx.output.print_info("No templates found")
            return

        ctx.output.print_data([template_row(t) for t in templates], title="Templates")
    except CanaryCtlError as e:
        ctx.output.print_error(f"Failed to list templates: {e}")
        raise click.Abort()


@template.command("show")
@click.argument("template_id")
@pass_context
def show(ctx: CanaryCtlContext, template_id: str) -> None:
    """Show a template."""
    try:
        data = ctx.engine.get_template(template_id).to_dict()
        ctx.output.print_data(data, title=f"Template {template_id}")
    except CanaryCtlError as e:
        ctx.output.print_error(f"Failed to get template: {e}")
        raise click.Abort()


@template.command("delete")
@click.argument("template_id")
@click.option("-y", "--yes", is_flag=True, help="Skip confirmation")
@pass_context
def delete(ctx: CanaryCtlContext, template_id: str, yes: bool) -> None:
    """Delete a template."""
    try:
        if not yes and not ctx.confirm(f"Delete template {template_id}?"):
            ctx.output.print_info("Cancelled")
            return

        ctx.engine.delete_template(template_id)
        ctx.output.print_success(f"Template {template_id} deleted")
    except CanaryCtlError as e:
        ctx.output.print_error(f"Failed to delete template: {e}")
        raise click.Abort()
