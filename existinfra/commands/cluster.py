import logging
from typing import Optional

import typer
from kubernetes import client

from existinfra.config import get_settings
from existinfra.controllers import ExistingInfraClusterReconciler, ReconcileError
from existinfra.utils.kube import load_kubeconfig

logger = logging.getLogger("existinfra.commands.cluster")

app = typer.Typer(help="Reconcile ExistingInfraCluster objects.")


def _reconciler(kubeconfig: Optional[str], in_cluster: bool) -> ExistingInfraClusterReconciler:
    source = load_kubeconfig(kubeconfig, in_cluster=in_cluster)
    logger.info(f"Using Kubernetes configuration from {source}")
    return ExistingInfraClusterReconciler(
        client.CustomObjectsApi(),
        settings=get_settings().controller,
        core_api=client.CoreV1Api(),
    )


@app.command("reconcile")
def reconcile_cluster(
    name: str = typer.Option(..., "--name", "-n", help="ExistingInfraCluster name"),
    namespace: Optional[str] = typer.Option(None, "--namespace", help="Namespace of the object"),
    kubeconfig: Optional[str] = typer.Option(None, "--kubeconfig", help="Path to kubeconfig"),
    in_cluster: bool = typer.Option(False, "--in-cluster", help="Use the in-cluster service account"),
):
    """Reconcile one ExistingInfraCluster once."""
    reconciler = _reconciler(kubeconfig, in_cluster)
    namespace = namespace or reconciler.settings.namespace
    try:
        result = reconciler.reconcile(namespace, name)
    except ReconcileError as e:
        logger.error(f"Reconciliation of {namespace}/{name} failed: {e}")
        raise typer.Exit(code=1)
    typer.echo(f"{namespace}/{name}: ready={result.ready}" + (f" ({result.reason})" if result.reason else ""))


@app.command("watch")
def watch_clusters(
    namespace: Optional[str] = typer.Option(None, "--namespace", help="Namespace to watch"),
    kubeconfig: Optional[str] = typer.Option(None, "--kubeconfig", help="Path to kubeconfig"),
    in_cluster: bool = typer.Option(False, "--in-cluster", help="Use the in-cluster service account"),
):
    """Watch ExistingInfraClusters and reconcile them as they change."""
    reconciler = _reconciler(kubeconfig, in_cluster)
    try:
        reconciler.run(namespace)
    except KeyboardInterrupt:
        reconciler.stop()
        typer.echo("Stopped.")
