from .exceptions import SmartUpdateError
from .logging_ import get_logger
from .models import SMART_UPDATE_STRATEGY, ClusterTopology, GateDecision, Veto, WorkloadGroup
from .revision import is_group_stale
from .utils import version_at_least, wrap_error

MIN_SMART_UPDATE_VERSION = '1.4.0'


class SafetyGate:
    """Decides whether a workload group may be restarted right now.

    Checks run in a fixed precedence and stop at the first failing one, so
    the cheap local checks keep the backup and job lookups from running
    while replicas are still coming up. Nothing is remembered between calls:
    a held update proceeds on the first call after the condition clears.
    """
    def __init__(self, kube, backups, jobs, min_version: str = MIN_SMART_UPDATE_VERSION):
        self.kube = kube
        self.backups = backups
        self.jobs = jobs
        self.min_version = min_version
        self.logger = get_logger('safety-gate')

    def applicable(self, cluster: ClusterTopology) -> GateDecision:
        if cluster.update_strategy != SMART_UPDATE_STRATEGY:
            return GateDecision.not_applicable(f'update strategy is {cluster.update_strategy!r}')
        if not version_at_least(cluster.cr_version, self.min_version):
            return GateDecision.not_applicable(f'cluster version {cluster.cr_version!r} is below {self.min_version}')
        return GateDecision.go()

    def can_proceed(self, cluster: ClusterTopology, group: WorkloadGroup) -> GateDecision:
        decision = self.applicable(cluster)
        if not decision.applicable:
            return decision

        if group.ready_replicas < group.replicas:
            return self._hold(group, Veto.REPLICAS_NOT_READY, 'waiting for all replicas are ready')

        with wrap_error('failed to check active backups', group=group.name):
            backup_running = self.backups.is_backup_running(cluster)
        if backup_running:
            return self._hold(group, Veto.BACKUP_ACTIVE, 'waiting for running backups to be finished')

        with wrap_error('failed to check active jobs', group=group.name):
            has_active_jobs = self.jobs.has_active_jobs(cluster, exclude_pitr_lock=True)
        # a restore restarts pods itself, so its own lock must not block it
        exempt = group.restore_in_progress and not group.is_mongos
        if has_active_jobs and not exempt:
            return self._hold(group, Veto.RESTORE_OR_ACTIVE_JOB, 'waiting for active jobs to be finished')

        if cluster.sharding_enabled and not group.is_config_server and not group.is_mongos:
            if self.config_servers_stale(cluster):
                return self._hold(group, Veto.DEPENDENT_GROUP_NOT_CONVERGED, 'waiting for config RS update')

        return GateDecision.go()

    def config_servers_stale(self, cluster: ClusterTopology) -> bool:
        cfg = cluster.config_server_group()
        if cfg is None:
            return False
        where = f'{cluster.namespace}/{cfg.name}'
        with wrap_error(f'get config statefulset {where}'):
            current = self.kube.read_statefulset(cfg.name, size=cfg.size, wait_limit=cfg.wait_limit)
        if current is None:
            raise SmartUpdateError(f'get config statefulset {where}: not found', {'group': cfg.name})
        cfg = current
        with wrap_error('get cfg pod list'):
            members = self.kube.list_pods(cfg.selector())
        return is_group_stale(cfg, members)

    def _hold(self, group: WorkloadGroup, veto: Veto, reason: str) -> GateDecision:
        self.logger.info("can't start/continue 'SmartUpdate'", group=group.name, veto=veto.value, reason=reason)
        return GateDecision.hold(veto, reason)
