import json
import logging

import typer

from existinfra.plan.recipe import NodeType, build_upgrade_plan
from existinfra.plan.resources import PkgType

logger = logging.getLogger("existinfra.commands.plan")

app = typer.Typer(help="Build and inspect plans without running them.")


def render_text(plan) -> str:
    lines = []
    for i, (name, resource) in enumerate(plan, start=1):
        deps = plan.dependencies(name)
        lines.append(f"{i}. {name} [{resource.kind}]" + (f" <- {', '.join(deps)}" if deps else ""))
        for key, value in resource.state().to_dict().items():
            lines.append(f"     {key}: {value}")
    return "\n".join(lines)


def render(plan, output_format: str) -> str:
    if output_format == "json":
        return json.dumps(plan.to_dict(), indent=2)
    if output_format == "dot":
        return plan.to_dot()
    if output_format == "text":
        return render_text(plan)
    raise typer.BadParameter(f"unknown format {output_format!r}, expected text, json or dot")


@app.command("upgrade")
def upgrade_plan(
    version: str = typer.Option(..., "--version", "-v", help="Target Kubernetes version, e.g. v1.15.3"),
    pkg_type: PkgType = typer.Option(PkgType.RPM, "--pkg-type", "-p", help="Package manager family"),
    node_type: NodeType = typer.Option(NodeType.WORKER, "--node-type", "-t", help="Role of the node"),
    output_format: str = typer.Option("text", "--format", "-o", help="Output format: text, json or dot"),
):
    """Show the plan upgrading a node to VERSION."""
    plan = build_upgrade_plan(pkg_type, version, node_type)
    typer.echo(render(plan, output_format))
