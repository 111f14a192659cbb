from typing import Iterable

from .logging_ import get_logger
from .models import ClusterTopology
from .utils import wrap_error

ACTIVE_BACKUP_STATES = ('requested', 'waiting', 'running')

LOCK_COLLECTIONS = ('pbmLock', 'pbmLockOp')
PITR_LOCK_TYPE = 'pitr'


def _belongs_to(backup: dict, cluster_name: str) -> bool:
    spec = backup.get('spec') or {}
    return (spec.get('clusterName') or spec.get('psmdbCluster')) == cluster_name


class BackupMonitor:
    """Answers whether a backup custom resource is in flight for the cluster."""
    def __init__(self, kube):
        self.kube = kube
        self.logger = get_logger('backup-monitor')

    def is_backup_running(self, cluster: ClusterTopology) -> bool:
        with wrap_error('list backups', cluster=cluster.name):
            backups = self.kube.list_backups()
        for b in backups:
            if not _belongs_to(b, cluster.name):
                continue
            state = (b.get('status') or {}).get('state', '')
            if state in ACTIVE_BACKUP_STATES:
                self.logger.debug("Backup in progress", cluster=cluster.name,
                                  backup=(b.get('metadata') or {}).get('name'), state=state)
                return True
        return False


class JobMonitor:
    """Reads the backup agent's lock collections to find jobs in progress.

    A lock of type ``pitr`` only marks continuous oplog capture, which a
    restart does not disturb, so it is skipped when ``exclude_pitr_lock`` is
    set.
    """
    def __init__(self, role_client):
        self.role_client = role_client
        self.logger = get_logger('job-monitor')

    def active_locks(self, cluster: ClusterTopology, exclude_pitr_lock: bool = True) -> Iterable[dict]:
        host, replica_set = self.role_client.cluster_host(cluster)
        locks = []
        with self.role_client.connect(host, replica_set=replica_set) as session:
            for collection in LOCK_COLLECTIONS:
                locks.extend(session.find(collection, {}))
        if exclude_pitr_lock:
            locks = [lock for lock in locks if lock.get('type') != PITR_LOCK_TYPE]
        return locks

    def has_active_jobs(self, cluster: ClusterTopology, exclude_pitr_lock: bool = True) -> bool:
        with wrap_error('check active jobs', cluster=cluster.name):
            locks = list(self.active_locks(cluster, exclude_pitr_lock=exclude_pitr_lock))
        if locks:
            self.logger.debug("Active jobs found", cluster=cluster.name,
                              jobs=[lock.get('type') for lock in locks])
        return bool(locks)
