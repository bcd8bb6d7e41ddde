"""Canary command group."""

from typing import Any

import click

from canaryctl.core.context import pass_context, CanaryCtlContext
from canaryctl.core.exceptions import CanaryCtlError
from canaryctl.core.output import format_duration, format_percent_bar, format_timestamp
from canaryctl.deploy import (
    Deployment,
    DeploymentRequest,
    DeploymentStatus,
    MetricsRecord,
    ProgressResult,
    RollbackRecord,
    RollbackTrigger,
    Step,
)


def deployment_row(dep: Deployment) -> dict[str, Any]:
    return {
        "id": dep.id,
        "name": dep.name,
        "namespace": dep.namespace,
        "target": dep.target_deployment,
        "status": dep.status.value,
        "canary": f"{dep.current_canary_percent}%",
        "created": format_timestamp(dep.created_at),
    }


def step_row(step: Step) -> dict[str, Any]:
    return {
        "step": step.step_number,
        "target": f"{step.target_percent}%",
        "status": step.status.value,
        "started": format_timestamp(step.started_at),
        "completed": format_timestamp(step.completed_at),
    }


def metrics_row(record: MetricsRecord) -> dict[str, Any]:
    snap = record.snapshot
    return {
        "recorded": format_timestamp(record.recorded_at),
        "step": record.step_number if record.step_number is not None else "-",
        "canary": f"{record.canary_percent}%",
        "error_rate": f"{snap.canary_error_rate:.2f}%",
        "latency": f"{snap.canary_avg_latency_ms:.0f}ms",
        "pods": f"{snap.canary_healthy_pods}/{snap.canary_total_pods}",
        "result": record.analysis_result.value,
    }


def rollback_row(record: RollbackRecord) -> dict[str, Any]:
    return {
        "id": record.id,
        "trigger": record.trigger.value,
        "status": record.status.value,
        "canary_at": f"{record.canary_percent_at_rollback}%",
        "step_at": record.step_at_rollback if record.step_at_rollback is not None else "-",
        "reason": record.reason,
        "by": record.initiated_by,
        "created": format_timestamp(record.created_at),
    }


def print_progress_result(ctx: CanaryCtlContext, result: ProgressResult) -> None:
    if ctx.output.structured:
        ctx.output.print_data(result.to_dict())
        return

    dep = result.deployment
    ctx.output.print(
        f"[bold]{result.outcome.value}[/bold] {dep.id} {format_percent_bar(dep.current_canary_percent)} "
        f"({dep.status.value})"
    )
    if result.message:
        ctx.output.print(f"  {result.message}")
    if result.analysis:
        for reason in result.analysis.reasons:
            ctx.output.print(f"  - {reason}", style="dim")
    if result.advisory:
        ctx.output.print_panel(result.advisory, title="Advisory", style="yellow")


@click.group()
@pass_context
def canary(ctx: CanaryCtlContext) -> None:
    """Canary rollouts - create, progress, promote, rollback.

    \b
    Examples:
        canaryctl canary create --name web-v2 --target web --image repo/web:2.0
        canaryctl canary start abc123
        canaryctl canary progress abc123
        canaryctl canary run abc123 --interval 30
        canaryctl canary rollback abc123 --reason "error spike"
    """
    pass


@canary.command("create")
@click.option("--name", required=True, help="Rollout name")
@click.option("--target", "target_deployment", required=True, help="Kubernetes deployment receiving the canary")
@click.option("--image", "canary_image", required=True, help="Canary container image")
@click.option("-n", "--namespace", default=None, help="Namespace")
@click.option("--cluster", default=None, help="Cluster name")
@click.option("--canary-version", default=None, help="Canary version label")
@click.option("--stable-image", default=None, help="Stable container image")
@click.option("--stable-version", default=None, help="Stable version label")
@click.option("--template", "template_id", default=None, help="Template id to start from")
@click.option("--split-type", "traffic_split_type", type=click.Choice(["percentage", "header", "cookie"]), default=None, help="Traffic split type")
@click.option("--initial", "initial_percent", type=int, default=None, help="Initial canary percent")
@click.option("--target-percent", type=int, default=None, help="Final canary percent")
@click.option("--increment", "increment_percent", type=int, default=None, help="Percent added per step")
@click.option("--interval", "increment_interval_minutes", type=int, default=None, help="Minutes between steps")
@click.option("--error-rate-threshold", type=float, default=None, help="Max canary error rate (%)")
@click.option("--latency-threshold", "latency_threshold_ms", type=float, default=None, help="Max canary latency (ms)")
@click.option("--success-rate-threshold", type=float, default=None, help="Min success rate to advance (%)")
@click.option("--min-healthy-pods", type=int, default=None, help="Min healthy canary pods")
@click.option("--auto-rollback/--no-auto-rollback", "auto_rollback_enabled", default=None, help="Roll back automatically on failed checks")
@click.option("--rollback-on-error-rate/--no-rollback-on-error-rate", default=None, help="Error rate breaches trigger rollback")
@click.option("--rollback-on-latency/--no-rollback-on-latency", default=None, help="Latency breaches trigger rollback")
@click.option("--rollback-on-pod-failure/--no-rollback-on-pod-failure", default=None, help="Unhealthy pods trigger rollback")
@click.option("--manual-approval/--no-manual-approval", "require_manual_approval", default=None, help="Wait for approval before final promotion")
@click.option("--git-commit", default=None, help="Git commit of the canary")
@click.option("--git-branch", default=None, help="Git branch of the canary")
@click.option("--pr-url", "pull_request_url", default=None, help="Pull request URL")
@click.option("--created-by", default="cli", help="Author recorded on the rollout")
@pass_context
def create(ctx: CanaryCtlContext, **options: Any) -> None:
    """Create a pending canary rollout and plan its steps.

    \b
    Examples:
        canaryctl canary create --name web-v2 --target web --image repo/web:2.0
        canaryctl canary create --name web-v2 --target web --image repo/web:2.0 \\
            --initial 5 --increment 15 --manual-approval
    """
    try:
        request = DeploymentRequest.model_validate(
            {k: v for k, v in options.items() if v is not None}
        )
        deployment = ctx.engine.controller.create(request)
        steps = ctx.engine.controller.steps(deployment.id)

        if ctx.output.structured:
            ctx.output.print_data(deployment.to_dict())
            return

        ladder = " -> ".join(f"{s.target_percent}%" for s in steps)
        ctx.output.print_success(f"Created canary deployment {deployment.id}")
        ctx.output.print(f"  Steps: {ladder}")
        ctx.output.print_info(f"Use 'canaryctl canary start {deployment.id}' to begin")

    except CanaryCtlError as e:
        ctx.output.print_error(f"Failed to create deployment: {e}")
        raise click.Abort()
    except ValueError as e:
        ctx.output.print_error(f"Invalid deployment request: {e}")
        raise click.Abort()


@canary.command("start")
@click.argument("deployment_id")
@pass_context
def start(ctx: CanaryCtlContext, deployment_id: str) -> None:
    """Start a pending (or paused) rollout.

    \b
    Examples:
        canaryctl canary start abc123
    """
    try:
        deployment = ctx.engine.controller.start(deployment_id)
        ctx.output.print_success(
            f"Started {deployment_id} at {deployment.current_canary_percent}% canary traffic"
        )
    except CanaryCtlError as e:
        ctx.output.print_error(f"Failed to start deployment: {e}")
        raise click.Abort()


@canary.command("progress")
@click.argument("deployment_id")
@pass_context
def progress(ctx: CanaryCtlContext, deployment_id: str) -> None:
    """Run one analysis cycle and advance, hold, promote or roll back.

    Automatic rollbacks are carried through: stable traffic is restored
    and the rollback is completed.

    \b
    Examples:
        canaryctl canary progress abc123
    """
    try:
        result = ctx.operator.tick(deployment_id)
        print_progress_result(ctx, result)
    except CanaryCtlError as e:
        ctx.output.print_error(f"Failed to progress deployment: {e}")
        raise click.Abort()


@canary.command("run")
@click.argument("deployment_id")
@click.option("--interval", type=float, default=None, help="Seconds between cycles (default: rollout interval)")
@click.option("--max-cycles", type=int, default=None, help="Stop after this many cycles")
@pass_context
def run(
    ctx: CanaryCtlContext,
    deployment_id: str,
    interval: float | None,
    max_cycles: int | None,
) -> None:
    """Drive a rollout until it is promoted, rolled back or waits for approval.

    \b
    Examples:
        canaryctl canary run abc123
        canaryctl canary run abc123 --interval 30 --max-cycles 20
    """
    try:
        results = ctx.operator.run(
            deployment_id,
            interval=interval,
            max_cycles=max_cycles,
            on_tick=lambda result: print_progress_result(ctx, result),
        )
        final = results[-1].deployment if results else ctx.engine.controller.get(deployment_id)
        ctx.output.print_info(
            f"Stopped after {len(results)} cycles, deployment is {final.status.value}"
        )
    except CanaryCtlError as e:
        ctx.output.print_error(f"Rollout loop failed: {e}")
        raise click.Abort()


@canary.command("promote")
@click.argument("deployment_id")
@click.option("-y", "--yes", is_flag=True, help="Skip confirmation")
@pass_context
def promote(ctx: CanaryCtlContext, deployment_id: str, yes: bool) -> None:
    """Promote a canary to stable, skipping any remaining steps.

    \b
    Examples:
        canaryctl canary promote abc123
    """
    try:
        if not yes and not ctx.confirm(f"Promote deployment {deployment_id} to 100%?"):
            ctx.output.print_info("Cancelled")
            return

        ctx.engine.controller.promote(deployment_id)
        ctx.output.print_success(f"Deployment {deployment_id} promoted")
    except CanaryCtlError as e:
        ctx.output.print_error(f"Promote failed: {e}")
        raise click.Abort()


@canary.command("pause")
@click.argument("deployment_id")
@pass_context
def pause(ctx: CanaryCtlContext, deployment_id: str) -> None:
    """Pause a running rollout at its current traffic split."""
    try:
        deployment = ctx.engine.controller.pause(deployment_id)
        ctx.output.print_success(
            f"Paused {deployment_id} at {deployment.current_canary_percent}% canary traffic"
        )
    except CanaryCtlError as e:
        ctx.output.print_error(f"Pause failed: {e}")
        raise click.Abort()


@canary.command("resume")
@click.argument("deployment_id")
@pass_context
def resume(ctx: CanaryCtlContext, deployment_id: str) -> None:
    """Resume a paused rollout."""
    try:
        ctx.engine.controller.resume(deployment_id)
        ctx.output.print_success(f"Resumed {deployment_id}")
    except CanaryCtlError as e:
        ctx.output.print_error(f"Resume failed: {e}")
        raise click.Abort()


@canary.command("cancel")
@click.argument("deployment_id")
@click.option("-y", "--yes", is_flag=True, help="Skip confirmation")
@pass_context
def cancel(ctx: CanaryCtlContext, deployment_id: str, yes: bool) -> None:
    """Cancel a rollout and restore all traffic to stable."""
    try:
        if not yes and not ctx.confirm(f"Cancel deployment {deployment_id}?"):
            ctx.output.print_info("Cancelled")
            return

        ctx.engine.controller.cancel(deployment_id)
        ctx.output.print_success(f"Deployment {deployment_id} cancelled")
    except CanaryCtlError as e:
        ctx.output.print_error(f"Cancel failed: {e}")
        raise click.Abort()


@canary.command("rollback")
@click.argument("deployment_id")
@click.option("--reason", required=True, help="Why the rollout is rolled back")
@click.option("--initiated-by", default=None, help="Actor recorded on the rollback")
@click.option("--no-complete", is_flag=True, help="Only open the rollback; finish it with complete-rollback")
@click.option("-y", "--yes", is_flag=True, help="Skip confirmation")
@pass_context
def rollback(
    ctx: CanaryCtlContext,
    deployment_id: str,
    reason: str,
    initiated_by: str | None,
    no_complete: bool,
    yes: bool,
) -> None:
    """Roll a rollout back to the stable version.

    \b
    Examples:
        canaryctl canary rollback abc123 --reason "checkout errors"
        canaryctl canary rollback abc123 --reason "manual drain" --no-complete
    """
    try:
        if not yes and not ctx.confirm(f"Rollback deployment {deployment_id}?"):
            ctx.output.print_info("Cancelled")
            return

        if no_complete:
            record = ctx.engine.rollbacks.initiate(
                deployment_id, reason, trigger=RollbackTrigger.MANUAL, initiated_by=initiated_by
            )
            ctx.output.print_success(f"Rollback {record.id} initiated for {deployment_id}")
            ctx.output.print_info(f"Use 'canaryctl canary complete-rollback {record.id}' when traffic is restored")
            return

        record = ctx.operator.rollback(deployment_id, reason, initiated_by=initiated_by)
        if record.error_message:
            ctx.output.print_error(f"Rollback {record.id} failed: {record.error_message}")
            raise click.Abort()
        ctx.output.print_success(f"Deployment {deployment_id} rolled back ({record.id})")
    except CanaryCtlError as e:
        ctx.output.print_error(f"Rollback failed: {e}")
        raise click.Abort()


@canary.command("complete-rollback")
@click.argument("rollback_id")
@click.option("--failed", is_flag=True, help="Mark the rollback as failed")
@click.option("--error-message", default=None, help="Failure detail")
@pass_context
def complete_rollback(
    ctx: CanaryCtlContext,
    rollback_id: str,
    failed: bool,
    error_message: str | None,
) -> None:
    """Close an in-progress rollback."""
    try:
        record = ctx.engine.rollbacks.complete(
            rollback_id, success=not failed, error_message=error_message
        )
        ctx.output.print_success(f"Rollback {rollback_id} {record.status.value}")
    except CanaryCtlError as e:
        ctx.output.print_error(f"Failed to complete rollback: {e}")
        raise click.Abort()


@canary.command("status")
@click.argument("deployment_id")
@pass_context
def status(ctx: CanaryCtlContext, deployment_id: str) -> None:
    """Show rollout status and steps.

    \b
    Examples:
        canaryctl canary status abc123
        canaryctl -o json canary status abc123
    """
    try:
        deployment = ctx.engine.controller.get(deployment_id)
        steps = ctx.engine.controller.steps(deployment_id)

        if ctx.output.structured:
            data = deployment.to_dict()
            data["steps"] = [s.to_dict() for s in steps]
            ctx.output.print_data(data)
            return

        duration = deployment.duration_seconds
        ctx.output.print_data(
            {
                "id": deployment.id,
                "name": deployment.name,
                "namespace": deployment.namespace,
                "target": deployment.target_deployment,
                "canary_image": deployment.canary_image,
                "status": deployment.status.value,
                "message": deployment.status_message,
                "traffic": format_percent_bar(deployment.current_canary_percent),
                "thresholds": (
                    f"errors<={deployment.error_rate_threshold:g}% "
                    f"latency<={deployment.latency_threshold_ms:g}ms "
                    f"pods>={deployment.min_healthy_pods}"
                ),
                "auto_rollback": deployment.auto_rollback_enabled,
                "manual_approval": deployment.require_manual_approval,
                "duration": format_duration(duration) if duration is not None else "-",
                "error": deployment.error_message or "-",
            },
            title=f"Deployment {deployment.id}",
        )
        ctx.output.print_data([step_row(s) for s in steps], title="Steps")
    except CanaryCtlError as e:
        ctx.output.print_error(f"Failed to get status: {e}")
        raise click.Abort()


@canary.command("list")
@click.option("--status", "status_filter", type=click.Choice([s.value for s in DeploymentStatus]), default=None, help="Filter by status")
@click.option("-n", "--namespace", default=None, help="Filter by namespace")
@click.option("--limit", default=20, help="Max results")
@pass_context
def list_deployments(
    ctx: CanaryCtlContext,
    status_filter: str | None,
    namespace: str | None,
    limit: int,
) -> None:
    """List canary rollouts, newest first."""
    try:
        deployments = ctx.engine.controller.list_deployments(
            status=DeploymentStatus(status_filter) if status_filter else None,
            namespace=namespace,
            limit=limit,
        )
        if not deployments:
            ctx.output.print_info("No deployments found")
            return

        ctx.output.print_data([deployment_row(d) for d in deployments], title="Canary Deployments")
    except CanaryCtlError as e:
        ctx.output.print_error(f"Failed to list deployments: {e}")
        raise click.Abort()


@canary.command("steps")
@click.argument("deployment_id")
@pass_context
def steps(ctx: CanaryCtlContext, deployment_id: str) -> None:
    """Show the step ladder of a rollout."""
    try:
        rows = [step_row(s) for s in ctx.engine.controller.steps(deployment_id)]
        ctx.output.print_data(rows, title="Steps")
    except CanaryCtlError as e:
        ctx.output.print_error(f"Failed to get steps: {e}")
        raise click.Abort()


@canary.command("metrics")
@click.argument("deployment_id")
@click.option("--limit", default=20, help="Max records")
@pass_context
def metrics(ctx: CanaryCtlContext, deployment_id: str, limit: int) -> None:
    """Show recorded analysis cycles, newest first."""
    try:
        records = ctx.engine.recorder.history(deployment_id, limit=limit)
        if not records:
            ctx.output.print_info("No metrics recorded yet")
            return

        if ctx.output.structured:
            ctx.output.print_data([r.to_dict() for r in records])
        else:
            ctx.output.print_data([metrics_row(r) for r in records], title="Metrics")
    except CanaryCtlError as e:
        ctx.output.print_error(f"Failed to get metrics: {e}")
        raise click.Abort()


@canary.command("rollbacks")
@click.argument("deployment_id")
@pass_context
def rollbacks(ctx: CanaryCtlContext, deployment_id: str) -> None:
    """Show rollback history of a rollout."""
    try:
        records = ctx.engine.rollbacks.history(deployment_id)
        if not records:
            ctx.output.print_info("No rollbacks recorded")
            return

        ctx.output.print_data([rollback_row(r) for r in records], title="Rollbacks")
    except CanaryCtlError as e:
        ctx.output.print_error(f"Failed to get rollbacks: {e}")
        raise click.Abort()


@canary.command("analyze")
@click.argument("deployment_id")
@click.option("--advise", is_flag=True, help="Ask the advisor about degraded results")
@pass_context
def analyze(ctx: CanaryCtlContext, deployment_id: str, advise: bool) -> None:
    """Analyze current canary health without changing anything."""
    try:
        analysis = ctx.engine.controller.analyze(deployment_id)
        data = analysis.to_dict()

        advisory = None
        if advise and analysis.needs_advisory:
            deployment = ctx.engine.controller.get(deployment_id)
            advisory = ctx.engine.controller.advise(deployment, analysis)

        if ctx.output.structured:
            data["advisory"] = advisory
            ctx.output.print_data(data)
            return

        snap = analysis.snapshot
        ctx.output.print_data(
            {
                "result": analysis.analysis_result.value,
                "healthy": analysis.is_healthy,
                "should_rollback": analysis.should_rollback,
                "should_advance": analysis.should_advance,
                "error_rate": f"{snap.canary_error_rate:.2f}% (stable {snap.stable_error_rate:.2f}%)",
                "latency": f"{snap.canary_avg_latency_ms:.0f}ms (stable {snap.stable_avg_latency_ms:.0f}ms)",
                "pods": f"{snap.canary_healthy_pods}/{snap.canary_total_pods}",
                "reasons": "; ".join(analysis.reasons),
            },
            title="Canary Analysis",
        )
        if advisory:
            ctx.output.print_panel(advisory, title="Advisory", style="yellow")
    except CanaryCtlError as e:
        ctx.output.print_error(f"Analysis failed: {e}")
        raise click.Abort()


@canary.command("delete")
@click.argument("deployment_id")
@click.option("-y", "--yes", is_flag=True, help="Skip confirmation")
@pass_context
def delete(ctx: CanaryCtlContext, deployment_id: str, yes: bool) -> None:
    """Delete a pending or finished rollout with its history."""
    try:
        if not yes and not ctx.confirm(f"Delete deployment {deployment_id} and its history?"):
            ctx.output.print_info("Cancelled")
            return

        ctx.engine.controller.delete(deployment_id)
        ctx.output.print_success(f"Deployment {deployment_id} deleted")
    except CanaryCtlError as e:
        ctx.output.print_error(f"Delete failed: {e}")
        raise click.Abort()
