from typing import List, Optional

from kubernetes import client, config
from kubernetes.client.rest import ApiException

from .exceptions import SmartUpdateError
from .models import (
    CONFIG_REPLSET_NAME, LABEL_REPLSET, ClusterTopology, ContainerStatus, LabelSelector, Member, WorkloadGroup,
)
from .utils import wrap_error

CR_GROUP = 'psmdb.percona.com'
CR_VERSION = 'v1'
CR_PLURAL = 'perconaservermongodbs'
BACKUP_PLURAL = 'perconaservermongodbbackups'

# livenessProbe.initialDelaySeconds the cluster resource defaults to.
DEFAULT_WAIT_LIMIT = 60


def _load_k8s_config() -> None:
    try:
        config.load_incluster_config()
    except config.ConfigException:
        config.load_kube_config()


def member_from_pod(pod) -> Member:
    metadata = pod.metadata
    status = getattr(pod, 'status', None)
    containers = [
        ContainerStatus(name=c.name, ready=bool(c.ready))
        for c in (getattr(status, 'container_statuses', None) or [])
    ]
    return Member(
        name=metadata.name,
        namespace=metadata.namespace or 'default',
        labels=dict(getattr(metadata, 'labels', None) or {}),
        phase=getattr(status, 'phase', None) or '',
        containers=containers,
    )


def group_from_statefulset(sts, size: Optional[int] = None, wait_limit: int = 0) -> WorkloadGroup:
    labels = dict(getattr(sts.metadata, 'labels', None) or {})
    status = sts.status
    replicas = status.replicas or 0
    return WorkloadGroup(
        name=sts.metadata.name,
        replset=labels.get(LABEL_REPLSET, ''),
        target_revision=status.update_revision or '',
        size=replicas if size is None else size,
        replicas=replicas,
        ready_replicas=status.ready_replicas or 0,
        updated_replicas=status.updated_replicas or 0,
        wait_limit=wait_limit,
        labels=labels,
        annotations=dict(getattr(sts.metadata, 'annotations', None) or {}),
    )


def _initial_delay(spec: Optional[dict]) -> int:
    liveness = (spec or {}).get('livenessProbe') or {}
    return int(liveness.get('initialDelaySeconds') or DEFAULT_WAIT_LIMIT)


class KubeClient:
    """Wrapper around the core, apps and custom-object APIs the update touches.

    Instantiate with injected API objects for tests, or with none to load the
    in-cluster config (falling back to the local kubeconfig).
    """
    def __init__(self, namespace: str, core_api=None, apps_api=None, custom_api=None):
        self.namespace = namespace
        if core_api is None or apps_api is None or custom_api is None:
            _load_k8s_config()
        self.v1 = core_api or client.CoreV1Api()
        self.apps = apps_api or client.AppsV1Api()
        self.custom = custom_api or client.CustomObjectsApi()

    def list_pods(self, selector: LabelSelector) -> List[Member]:
        with wrap_error('get pod list', selector=selector.as_selector_string()):
            pods = self.v1.list_namespaced_pod(namespace=self.namespace, label_selector=selector.as_selector_string())
        return [member_from_pod(p) for p in pods.items]

    def get_pod(self, name: str) -> Optional[Member]:
        """Return the pod, or None while it is being recreated."""
        try:
            pod = self.v1.read_namespaced_pod(name=name, namespace=self.namespace)
        except ApiException as e:
            if e.status == 404:
                return None
            raise SmartUpdateError(f'get pod: {e}', {'pod': name}) from e
        return member_from_pod(pod)

    def delete_pod(self, name: str) -> None:
        with wrap_error('delete pod', pod=name):
            self.v1.delete_namespaced_pod(name=name, namespace=self.namespace)

    def read_statefulset(self, name: str, size: Optional[int] = None, wait_limit: int = 0) -> Optional[WorkloadGroup]:
        try:
            sts = self.apps.read_namespaced_stateful_set(name=name, namespace=self.namespace)
        except ApiException as e:
            if e.status == 404:
                return None
            raise SmartUpdateError(f'get statefulset {self.namespace}/{name}: {e}') from e
        return group_from_statefulset(sts, size=size, wait_limit=wait_limit)

    def list_statefulsets(self, selector: LabelSelector) -> List[WorkloadGroup]:
        with wrap_error('failed to get statefulset list'):
            result = self.apps.list_namespaced_stateful_set(
                namespace=self.namespace, label_selector=selector.as_selector_string())
        return [group_from_statefulset(s) for s in result.items]

    def read_cluster(self, name: str) -> dict:
        with wrap_error(f'get cluster {self.namespace}/{name}'):
            return self.custom.get_namespaced_custom_object(
                group=CR_GROUP, version=CR_VERSION, namespace=self.namespace, plural=CR_PLURAL, name=name)

    def patch_cluster_status(self, name: str, body: dict):
        return self.custom.patch_namespaced_custom_object_status(
            group=CR_GROUP, version=CR_VERSION, namespace=self.namespace, plural=CR_PLURAL, name=name, body=body)

    def list_backups(self) -> List[dict]:
        result = self.custom.list_namespaced_custom_object(
            group=CR_GROUP, version=CR_VERSION, namespace=self.namespace, plural=BACKUP_PLURAL)
        return result.get('items', [])

    def read_secret(self, name: str) -> dict:
        with wrap_error(f'get secret {self.namespace}/{name}'):
            secret = self.v1.read_namespaced_secret(name=name, namespace=self.namespace)
        return dict(secret.data or {})

    def load_topology(self, name: str) -> ClusterTopology:
        """Build the cluster topology from the custom resource and its statefulsets.

        Statefulsets not created yet are left out; they have nothing to update.
        """
        cr = self.read_cluster(name)
        spec = cr.get('spec') or {}
        sharding = spec.get('sharding') or {}
        sharding_enabled = bool(sharding.get('enabled'))

        replsets = list(spec.get('replsets') or [])
        if sharding_enabled and sharding.get('configsvrReplSet'):
            replsets.insert(0, {**sharding['configsvrReplSet'], 'name': CONFIG_REPLSET_NAME})

        groups: List[WorkloadGroup] = []
        for rs in replsets:
            wait_limit = _initial_delay(rs)
            candidates = [(f"{name}-{rs['name']}", rs.get('size', 0))]
            arbiter = rs.get('arbiter') or {}
            if arbiter.get('enabled'):
                candidates.append((f"{name}-{rs['name']}-arbiter", arbiter.get('size', 0)))
            non_voting = rs.get('nonvoting') or {}
            if non_voting.get('enabled'):
                candidates.append((f"{name}-{rs['name']}-nv", non_voting.get('size', 0)))
            for sts_name, size in candidates:
                group = self.read_statefulset(sts_name, size=int(size or 0), wait_limit=wait_limit)
                if group is not None:
                    groups.append(group)

        if sharding_enabled:
            mongos = sharding.get('mongos') or {}
            group = self.read_statefulset(f'{name}-mongos', size=int(mongos.get('size') or 0),
                                          wait_limit=_initial_delay(mongos))
            if group is not None:
                groups.append(group)

        return ClusterTopology(
            name=name,
            namespace=self.namespace,
            cr_version=spec.get('crVersion', ''),
            update_strategy=spec.get('updateStrategy', ''),
            sharding_enabled=sharding_enabled,
            unmanaged=bool(spec.get('unmanaged')),
            groups=groups,
        )

