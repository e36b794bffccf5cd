"""Reconciliation of ExistingInfraCluster objects.

The reconciler decides *when* node plans run; it does not build or execute
them itself. On the first reconciliation of a cluster it marks the object
with a "creating" annotation (an optimistic concurrency update, so that
concurrent reconciliations start initialisation at most once) and then
calls the initialisation hooks.
"""
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

from kubernetes import client, watch
from kubernetes.client.exceptions import ApiException

from existinfra.config import ControllerConfig
from existinfra.utils import RetryError, retry_on_conflict
from existinfra.utils.kube import is_conflict, is_not_found

logger = logging.getLogger("existinfra.controllers.cluster")

LOCAL_CONTROLLER = "wks.weave.works/local-controller"
CREATING = "wks.weave.works/is-creating"
PAUSED = "cluster.x-k8s.io/paused"

CLUSTER_API_GROUP = "cluster.x-k8s.io"

Hook = Callable[[Dict[str, Any]], None]


class ReconcileError(Exception):
    """A reconciliation could not complete."""


class AnnotationUpdateError(ReconcileError):
    def __init__(self, cluster: str, key: str):
        super().__init__(f"Failed to set annotation: {key} for cluster: {cluster}")
        self.cluster = cluster
        self.key = key


@dataclass
class ReconcileResult:
    ready: bool = False
    reason: str = ""


def _noop_hook(eic: Dict[str, Any]) -> None:
    logger.debug("No hook configured for %s", eic["metadata"]["name"])


def is_paused(cluster: Dict[str, Any], eic: Dict[str, Any]) -> bool:
    """Whether the owning Cluster or the ExistingInfraCluster is paused."""
    if (cluster.get("spec") or {}).get("paused"):
        return True
    for obj in (cluster, eic):
        if PAUSED in ((obj.get("metadata") or {}).get("annotations") or {}):
            return True
    return False


class ExistingInfraClusterReconciler:
    """Reconciles ExistingInfraCluster custom objects."""

    def __init__(
        self,
        api: client.CustomObjectsApi,
        settings: Optional[ControllerConfig] = None,
        core_api: Optional[client.CoreV1Api] = None,
        setup_git_dir: Hook = _noop_hook,
        setup_initial_workload: Hook = _noop_hook,
        sleep: Optional[Callable[[float], None]] = None,
    ):
        self.api = api
        self.settings = settings or ControllerConfig()
        self.core_api = core_api
        self.setup_git_dir = setup_git_dir
        self.setup_initial_workload = setup_initial_workload
        self._sleep = sleep
        self._watch: Optional[watch.Watch] = None

    def _get(self, namespace: str, name: str) -> Dict[str, Any]:
        s = self.settings
        return self.api.get_namespaced_custom_object(s.group, s.version, namespace, s.plural, name)

    def reconcile(self, namespace: str, name: str) -> ReconcileResult:
        """Bring one ExistingInfraCluster up to date.

        Raises:
            ReconcileError: the object is being deleted, or an update failed
            ApiException: the API server returned an unexpected error
        """
        log = logging.LoggerAdapter(logger, {"cluster": f"{namespace}/{name}"})
        try:
            eic = self._get(namespace, name)
        except ApiException as e:
            if is_not_found(e):
                return ReconcileResult(reason="not found")
            raise

        annotations = eic["metadata"].get("annotations") or {}
        if LOCAL_CONTROLLER not in annotations and CREATING not in annotations:
            self.set_cluster_annotation(namespace, name, CREATING, "true")
            self.setup_git_dir(eic)
            self.setup_initial_workload(eic)

        cluster = self.get_owner_cluster(namespace, eic)
        if cluster is None:
            log.info("Cluster controller has not yet set ownerReferences on %s", name)
            return ReconcileResult(reason="no owner")

        if is_paused(cluster, eic):
            log.info("ExistingInfraCluster %s or linked Cluster is marked as paused. Won't reconcile", name)
            return ReconcileResult(reason="paused")

        if eic["metadata"].get("deletionTimestamp"):
            self.record_event(cluster, "Normal", "Delete", f"Deleted cluster {cluster['metadata']['name']}")
            raise ReconcileError("deleting an ExistingInfraCluster is not implemented")

        s = self.settings
        try:
            self.api.patch_namespaced_custom_object_status(
                s.group, s.version, namespace, s.plural, name, {"status": {"ready": True}}
            )
        except ApiException as e:
            log.error("failed to patch ExistingInfraCluster %s: %s", name, e)
            raise
        return ReconcileResult(ready=True)

    def get_owner_cluster(self, namespace: str, eic: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """Return the Cluster object owning ``eic``, or None if it has no owner yet."""
        for ref in eic["metadata"].get("ownerReferences") or []:
            group, _, version = ref.get("apiVersion", "").rpartition("/")
            if ref.get("kind") == "Cluster" and group == CLUSTER_API_GROUP:
                return self.api.get_namespaced_custom_object(
                    group, version, namespace, "clusters", ref["name"]
                )
        return None

    def set_cluster_annotation(self, namespace: str, name: str, key: str, value: str) -> None:
        """Set an annotation with a read-modify-write retried on conflicts."""
        s = self.settings

        def mutate(obj: Dict[str, Any]) -> None:
            metadata = obj.setdefault("metadata", {})
            if metadata.get("annotations") is None:
                metadata["annotations"] = {}
            metadata["annotations"][key] = value

        def write(obj: Dict[str, Any]) -> Dict[str, Any]:
            return self.api.replace_namespaced_custom_object(s.group, s.version, namespace, s.plural, name, obj)

        kwargs = {"sleep": self._sleep} if self._sleep is not None else {}
        try:
            retry_on_conflict(
                read=lambda: self._get(namespace, name),
                mutate=mutate,
                write=write,
                is_conflict=is_conflict,
                attempts=s.conflict_retries,
                delay=s.retry_delay,
                **kwargs,
            )
        except (RetryError, ApiException) as e:
            logger.error("failed to update annotation %s of cluster %s: %s", key, name, e)
            raise AnnotationUpdateError(name, key) from e

    def record_event(self, obj: Dict[str, Any], event_type: str, reason: str, message: str) -> None:
        """Log an event and, with a core API client, record it on ``obj``."""
        if event_type == "Warning":
            logger.warning(message)
        elif event_type == "Normal":
            logger.info(message)
        else:
            logger.debug(message)

        if self.core_api is None:
            return
        metadata = obj["metadata"]
        event = client.CoreV1Event(
            metadata=client.V1ObjectMeta(generate_name=f"{metadata['name']}.", namespace=metadata.get("namespace")),
            involved_object=client.V1ObjectReference(
                api_version=obj.get("apiVersion"),
                kind=obj.get("kind"),
                name=metadata["name"],
                namespace=metadata.get("namespace"),
                uid=metadata.get("uid"),
            ),
            reason=reason,
            message=message,
            type=event_type,
        )
        try:
            self.core_api.create_namespaced_event(metadata.get("namespace") or "default", event)
        except ApiException as e:
            logger.warning("failed to record event %s: %s", reason, e)

    def handle_event(self, event: Dict[str, Any]) -> Optional[ReconcileResult]:
        """Reconcile the object of a watch event; errors are logged, never raised."""
        if event.get("type") == "DELETED":
            return None
        metadata = (event.get("object") or {}).get("metadata") or {}
        namespace = metadata.get("namespace") or self.settings.namespace
        name = metadata.get("name")
        if not name:
            return None
        try:
            return self.reconcile(namespace, name)
        except Exception as e:
            logger.error("Reconciliation of %s/%s failed: %s", namespace, name, e, exc_info=logger.isEnabledFor(logging.DEBUG))
            return None

    def run(self, namespace: Optional[str] = None, timeout_seconds: Optional[int] = None) -> None:
        """Watch ExistingInfraClusters and reconcile every change until stopped."""
        s = self.settings
        namespace = namespace or s.namespace
        self._watch = watch.Watch()
        logger.info("Watching %s in namespace %s", s.plural, namespace)
        kwargs = {"timeout_seconds": timeout_seconds} if timeout_seconds else {}
        for event in self._watch.stream(
            self.api.list_namespaced_custom_object, s.group, s.version, namespace, s.plural, **kwargs
        ):
            self.handle_event(event)

    def stop(self) -> None:
        if self._watch is not None:
            self._watch.stop()
