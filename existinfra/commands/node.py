import json
import logging
from typing import Optional

import typer

from existinfra.config import get_settings
from existinfra.models import Node
from existinfra.modules import DryRunRunner, RunnerPool
from existinfra.plan import Context, PlanExecutor
from existinfra.plan.recipe import NodeType, build_upgrade_plan
from existinfra.plan.resources import OSFacts, PkgType

logger = logging.getLogger("existinfra.commands.node")

app = typer.Typer(help="Run plans against a single node.")


def _node(host, user, port, key, name=None, node_type=NodeType.WORKER, pkg_type=PkgType.RPM) -> Node:
    settings = get_settings()
    return Node(
        name=name or host,
        host=host,
        node_type=node_type,
        pkg_type=pkg_type,
        user=user or settings.ssh.user,
        port=port or settings.ssh.port,
        ssh_key_path=key,
    )


@app.command("facts")
def node_facts(
    host: str = typer.Option(..., "--host", "-H", help="Node address"),
    user: Optional[str] = typer.Option(None, "--user", "-u", help="SSH user"),
    port: Optional[int] = typer.Option(None, "--port", help="SSH port"),
    key: Optional[str] = typer.Option(None, "--key", "-k", help="SSH private key"),
    timeout: float = typer.Option(60, "--timeout", help="Overall timeout in seconds"),
):
    """Gather OS facts (machine ID, system UUID, SELinux, container) from a node."""
    pool = RunnerPool(get_settings())
    runner = pool.get_runner(_node(host, user, port, key))
    ctx = Context.background().with_timeout(timeout)
    try:
        facts = OSFacts.gather(ctx, runner)
        status, mode = facts.get_selinux_status(ctx)
        result = {
            "host": host,
            **facts.state().to_dict(),
            "SELinuxStatus": status.name.lower(),
            "SELinuxMode": mode.name.lower(),
            "containerVM": facts.is_os_in_container_vm(ctx),
        }
    except Exception as e:
        logger.error(f"Failed to gather facts from {host}: {e}")
        raise typer.Exit(code=1)
    finally:
        pool.close_all()
    typer.echo(json.dumps(result, indent=2))


@app.command("upgrade")
def node_upgrade(
    host: str = typer.Option(..., "--host", "-H", help="Node address"),
    version: str = typer.Option(..., "--version", "-v", help="Target Kubernetes version, e.g. v1.15.3"),
    pkg_type: PkgType = typer.Option(PkgType.RPM, "--pkg-type", "-p", help="Package manager family"),
    node_type: NodeType = typer.Option(NodeType.WORKER, "--node-type", "-t", help="Role of the node"),
    user: Optional[str] = typer.Option(None, "--user", "-u", help="SSH user"),
    port: Optional[int] = typer.Option(None, "--port", help="SSH port"),
    key: Optional[str] = typer.Option(None, "--key", "-k", help="SSH private key"),
    rollback: Optional[bool] = typer.Option(None, "--rollback/--no-rollback", help="Undo applied steps on failure"),
    timeout: Optional[float] = typer.Option(None, "--timeout", help="Overall timeout in seconds"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Print the commands without running them"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation prompt"),
):
    """Upgrade the Kubernetes components of a node to VERSION."""
    settings = get_settings()
    node = _node(host, user, port, key, node_type=node_type, pkg_type=pkg_type)
    plan = build_upgrade_plan(node.pkg_type, version, node.node_type)

    if not yes and not dry_run:
        typer.confirm(f"Upgrade {node.name} ({node.node_type.value}) to {version}?", abort=True)

    pool = None
    if dry_run:
        runner = DryRunRunner(name=f"dry-run:{node.name}")
    else:
        pool = RunnerPool(settings)
        runner = pool.get_runner(node)

    executor = PlanExecutor(
        max_workers=settings.executor.max_workers,
        rollback=settings.executor.rollback if rollback is None else rollback,
    )
    ctx = Context.background()
    if timeout:
        ctx = ctx.with_timeout(timeout)
    try:
        record = executor.execute(plan, ctx, runner)
    finally:
        if pool is not None:
            pool.close_all()

    typer.echo(json.dumps(record.summary(), indent=2))
    if record.failed:
        raise typer.Exit(code=1)
