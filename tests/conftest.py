"""In-memory stand-ins for the platform and the database used across the tests."""

from contextlib import contextmanager
from typing import Dict, List, Optional

import pytest

from mongodb_smart_update.config import Config
from mongodb_smart_update.models import (
    LABEL_COMPONENT, LABEL_INSTANCE, LABEL_MANAGED_BY, LABEL_NAME, LABEL_PART_OF, LABEL_REPLSET, LABEL_REVISION,
    SMART_UPDATE_STRATEGY, ClusterTopology, ContainerStatus, Member, WorkloadGroup,
)
from mongodb_smart_update.orchestrator import SmartUpdateOrchestrator

CLUSTER = 'my-cluster'
OLD = 'rev-old'
NEW = 'rev-new'

HEALTH_CONTAINER = {'mongod': 'mongod', 'cfg': 'mongod', 'arbiter': 'mongod-arbiter',
                    'nonVoting': 'mongod-nv', 'mongos': 'mongos'}


def group_labels(replset: Optional[str], component: str) -> Dict[str, str]:
    labels = {
        LABEL_NAME: 'percona-server-mongodb',
        LABEL_INSTANCE: CLUSTER,
        LABEL_MANAGED_BY: 'percona-server-mongodb-operator',
        LABEL_PART_OF: 'percona-server-mongodb',
        LABEL_COMPONENT: component,
    }
    if replset:
        labels[LABEL_REPLSET] = replset
    return labels


def make_member(name: str, revision: str = OLD, replset: Optional[str] = 'rs0', component: str = 'mongod',
                phase: str = 'Running', ready: bool = True) -> Member:
    labels = group_labels(replset, component)
    labels[LABEL_REVISION] = revision
    containers = [ContainerStatus(HEALTH_CONTAINER[component], ready), ContainerStatus('backup-agent', True)]
    return Member(name=name, namespace='default', labels=labels, phase=phase, containers=containers)


def make_group(replset: Optional[str] = 'rs0', component: str = 'mongod', size: int = 3, target: str = NEW,
               ready: Optional[int] = None, wait_limit: int = 5, name: Optional[str] = None,
               annotations: Optional[dict] = None) -> WorkloadGroup:
    if name is None:
        suffix = {'arbiter': '-arbiter', 'nonVoting': '-nv'}.get(component, '')
        name = f'{CLUSTER}-{replset or component}{suffix}'
    return WorkloadGroup(
        name=name,
        replset=replset or '',
        target_revision=target,
        size=size,
        replicas=size,
        ready_replicas=size if ready is None else ready,
        updated_replicas=0,
        wait_limit=wait_limit,
        labels=group_labels(replset, component),
        annotations=annotations or {},
    )


def make_cluster(groups: List[WorkloadGroup], sharding: bool = False, version: str = '1.15.0',
                 strategy: str = SMART_UPDATE_STRATEGY) -> ClusterTopology:
    return ClusterTopology(name=CLUSTER, namespace='default', cr_version=version, update_strategy=strategy,
                           sharding_enabled=sharding, groups=groups)


class FakeKube:
    """Pods and statefulsets kept in dicts.

    A deleted pod is missing for one read, then comes back on ``recreate_revision``
    (running and ready) unless its name is in ``stuck``.
    """
    def __init__(self, events: List[tuple], recreate_revision: str = NEW):
        self.events = events
        self.pods: Dict[str, Member] = {}
        self.statefulsets: Dict[str, WorkloadGroup] = {}
        self.recreate_revision = recreate_revision
        self.stuck = set()
        self.pending = set()
        self.deleted: List[str] = []
        self.status_patches: List[dict] = []
        self.backups: List[dict] = []
        self.secrets: Dict[str, dict] = {}

    def add_pods(self, *members: Member):
        for m in members:
            self.pods[m.name] = m

    def add_groups(self, *groups: WorkloadGroup):
        for g in groups:
            self.statefulsets[g.name] = g

    def list_pods(self, selector):
        return [m for m in self.pods.values() if selector.matches(m.labels)]

    def get_pod(self, name):
        if name in self.pending:
            self.pending.discard(name)
            old = self.pods[name]
            if name in self.stuck:
                self.pods[name] = Member(name=name, labels=dict(old.labels), phase='Pending', containers=[])
            else:
                labels = {**old.labels, LABEL_REVISION: self.recreate_revision}
                containers = [ContainerStatus(c.name, True) for c in old.containers]
                self.pods[name] = Member(name=name, labels=labels, phase='Running', containers=containers)
            return None
        return self.pods.get(name)

    def delete_pod(self, name):
        self.events.append(('delete', name))
        self.deleted.append(name)
        self.pending.add(name)

    def read_statefulset(self, name, size=None, wait_limit=0):
        return self.statefulsets.get(name)

    def list_statefulsets(self, selector):
        return [g for g in self.statefulsets.values() if selector.matches(g.labels)]

    def patch_cluster_status(self, name, body):
        self.status_patches.append(body)

    def list_backups(self):
        return self.backups

    def read_secret(self, name):
        return self.secrets[name]


class FakeSession:
    def __init__(self, client, host):
        self.client = client
        self.host = host

    def balancer_mode(self):
        return self.client.balancer_mode

    def stop_balancer(self):
        self.client.events.append(('balancer-stop', self.host))
        self.client.balancer_mode = 'off'


class FakeRoleClient:
    """Answers role queries from the ``primaries`` set of pod names.

    ``role_changes`` maps a pod name to the primaries seen once that pod has
    been deleted, which stands in for an election during the pass.
    """
    def __init__(self, events: List[tuple], primaries=()):
        self.events = events
        self.primaries = set(primaries)
        self.role_changes: Dict[str, set] = {}
        self.step_down_error: Optional[Exception] = None
        self.balancer_mode = 'full'
        self.failing = set()
        self.step_downs: List[bool] = []
        self.queried: List[str] = []

    def member_host(self, cluster, group, member):
        return member.name

    def mongos_host(self, cluster):
        return f'{cluster.name}-mongos'

    def cluster_host(self, cluster):
        return self.mongos_host(cluster), None

    def is_primary(self, host):
        self.queried.append(host)
        for pod in [p for p in self.role_changes if ('delete', p) in self.events]:
            self.primaries = set(self.role_changes.pop(pod))
        if host in self.failing:
            raise ConnectionError(f'{host} unreachable')
        return host in self.primaries

    def step_down(self, cluster, group, members, force):
        self.events.append(('step-down', group.name, force))
        self.step_downs.append(force)
        if self.step_down_error is not None:
            raise self.step_down_error

    @contextmanager
    def connect(self, host, replica_set=None):
        yield FakeSession(self, host)


class FakeBackups:
    def __init__(self, running=False):
        self.running = running
        self.calls = 0

    def is_backup_running(self, cluster):
        self.calls += 1
        return self.running


class FakeJobs:
    def __init__(self, active=False):
        self.active = active
        self.calls = 0

    def has_active_jobs(self, cluster, exclude_pitr_lock=True):
        self.calls += 1
        return self.active


class RecordingSleep:
    def __init__(self):
        self.calls: List[float] = []

    def __call__(self, seconds):
        self.calls.append(seconds)


@pytest.fixture
def events():
    return []


@pytest.fixture
def kube(events):
    return FakeKube(events)


@pytest.fixture
def role_client(events):
    return FakeRoleClient(events)


@pytest.fixture
def backups():
    return FakeBackups()


@pytest.fixture
def jobs():
    return FakeJobs()


@pytest.fixture
def sleep():
    return RecordingSleep()


@pytest.fixture
def cfg():
    return Config(
        namespace='default',
        cluster_name=CLUSTER,
        users_secret=f'{CLUSTER}-secrets',
        mongo_port=27017,
        mongo_connect_timeout_ms=1000,
        cluster_domain='svc.cluster.local',
        poll_interval=1.0,
        max_workers=1,
        min_version='1.4.0',
        step_down_secs=60,
    )


@pytest.fixture
def orchestrator(cfg, kube, role_client, backups, jobs, sleep):
    return SmartUpdateOrchestrator(cfg=cfg, kube=kube, role_client=role_client, backups=backups, jobs=jobs,
                                   sleep=sleep)
