from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Mapping, Optional

LABEL_NAME = 'app.kubernetes.io/name'
LABEL_INSTANCE = 'app.kubernetes.io/instance'
LABEL_REPLSET = 'app.kubernetes.io/replset'
LABEL_COMPONENT = 'app.kubernetes.io/component'
LABEL_MANAGED_BY = 'app.kubernetes.io/managed-by'
LABEL_PART_OF = 'app.kubernetes.io/part-of'
LABEL_REVISION = 'controller-revision-hash'

SELECTOR_KEYS = (LABEL_NAME, LABEL_INSTANCE, LABEL_REPLSET, LABEL_COMPONENT, LABEL_MANAGED_BY, LABEL_PART_OF)

COMPONENT_ARBITER = 'arbiter'
COMPONENT_NON_VOTING = 'nonVoting'
COMPONENT_MONGOS = 'mongos'

CONFIG_REPLSET_NAME = 'cfg'
SMART_UPDATE_STRATEGY = 'SmartUpdate'
ANNOTATION_RESTORE_IN_PROGRESS = 'percona.com/restore-in-progress'

# Containers whose readiness gates a restart, one per member role. Sidecars
# (backup agent, log collector) are never listed here.
HEALTH_CONTAINERS = ('mongod', 'mongod-arbiter', 'mongod-nv', 'mongos')

POD_RUNNING = 'Running'


@dataclass
class LabelSelector:
    """Ordered label key -> expected value matcher."""
    labels: Dict[str, str] = field(default_factory=dict)

    def matches(self, labels: Optional[Mapping[str, str]]) -> bool:
        labels = labels or {}
        return all(labels.get(k) == v for k, v in self.labels.items())

    def with_label(self, key: str, value: str) -> 'LabelSelector':
        return LabelSelector({**self.labels, key: value})

    def as_selector_string(self) -> str:
        return ','.join(f'{k}={v}' for k, v in self.labels.items())


@dataclass
class ContainerStatus:
    name: str
    ready: bool


@dataclass
class Member:
    name: str
    namespace: str = 'default'
    labels: Dict[str, str] = field(default_factory=dict)
    phase: str = ''
    containers: List[ContainerStatus] = field(default_factory=list)
    host: Optional[str] = None

    @property
    def revision(self) -> str:
        return self.labels.get(LABEL_REVISION, '')

    @property
    def component(self) -> Optional[str]:
        return self.labels.get(LABEL_COMPONENT)

    @property
    def replset(self) -> Optional[str]:
        return self.labels.get(LABEL_REPLSET)

    def is_healthy(self) -> bool:
        """True when the member's main database container reports ready."""
        ready = False
        for container in self.containers:
            if container.name in HEALTH_CONTAINERS:
                ready = container.ready
        return ready


@dataclass
class WorkloadGroup:
    """One statefulset: a replset, its arbiter/non-voting part, cfg or mongos."""
    name: str
    replset: str
    target_revision: str = ''
    size: int = 0
    replicas: int = 0
    ready_replicas: int = 0
    updated_replicas: int = 0
    wait_limit: int = 0
    labels: Dict[str, str] = field(default_factory=dict)
    annotations: Dict[str, str] = field(default_factory=dict)

    @property
    def component(self) -> Optional[str]:
        return self.labels.get(LABEL_COMPONENT)

    @property
    def is_mongos(self) -> bool:
        return self.component == COMPONENT_MONGOS

    @property
    def is_config_server(self) -> bool:
        return self.replset == CONFIG_REPLSET_NAME and not self.is_mongos

    @property
    def restore_in_progress(self) -> bool:
        return ANNOTATION_RESTORE_IN_PROGRESS in self.annotations

    def selector(self) -> LabelSelector:
        return LabelSelector({k: self.labels[k] for k in SELECTOR_KEYS if k in self.labels})


@dataclass
class ClusterTopology:
    name: str
    namespace: str = 'default'
    cr_version: str = ''
    update_strategy: str = SMART_UPDATE_STRATEGY
    sharding_enabled: bool = False
    unmanaged: bool = False
    groups: List[WorkloadGroup] = field(default_factory=list)

    def config_server_group(self) -> Optional[WorkloadGroup]:
        for g in self.groups:
            if g.is_config_server and g.component not in (COMPONENT_ARBITER, COMPONENT_NON_VOTING):
                return g
        return None

    def group_for(self, replset: Optional[str], component: Optional[str]) -> Optional[WorkloadGroup]:
        for g in self.groups:
            if g.replset == replset and g.component == component:
                return g
        return None

    def ordered_groups(self) -> List[WorkloadGroup]:
        """Config servers first, then shard replsets, then the routing tier.

        Declaration order is kept inside each bucket.
        """
        cfg = [g for g in self.groups if g.is_config_server]
        mongos = [g for g in self.groups if g.is_mongos]
        shards = [g for g in self.groups if not g.is_config_server and not g.is_mongos]
        return cfg + shards + mongos


class Veto(Enum):
    REPLICAS_NOT_READY = 'replicas-not-ready'
    BACKUP_ACTIVE = 'backup-active'
    RESTORE_OR_ACTIVE_JOB = 'restore-or-active-job'
    DEPENDENT_GROUP_NOT_CONVERGED = 'dependent-group-not-converged'


@dataclass
class GateDecision:
    proceed: bool
    applicable: bool = True
    veto: Optional[Veto] = None
    reason: str = ''

    @classmethod
    def go(cls) -> 'GateDecision':
        return cls(proceed=True)

    @classmethod
    def not_applicable(cls, reason: str) -> 'GateDecision':
        return cls(proceed=False, applicable=False, reason=reason)

    @classmethod
    def hold(cls, veto: Veto, reason: str) -> 'GateDecision':
        return cls(proceed=False, veto=veto, reason=reason)


class RestartState(Enum):
    STALE = 'stale'
    DELETING = 'deleting'
    WAITING_HEALTHY = 'waiting-healthy'
    CONVERGED = 'converged'
    TIMED_OUT = 'timed-out'


class PassOutcome(Enum):
    UPDATED = 'updated'
    NOT_APPLICABLE = 'not-applicable'
    UP_TO_DATE = 'up-to-date'
    HELD = 'held'


@dataclass
class GroupResult:
    group: str
    outcome: PassOutcome
    veto: Optional[Veto] = None
    restarted: List[str] = field(default_factory=list)
    stepped_down: bool = False
