from .logging_ import get_logger
from .models import LABEL_INSTANCE, ClusterTopology, LabelSelector
from .revision import is_group_stale
from .utils import wrap_error


class ConvergenceChecker:
    """Cluster-wide check that every statefulset runs its target revision."""
    def __init__(self, kube):
        self.kube = kube
        self.logger = get_logger('convergence-checker')

    def all_groups_converged(self, cluster: ClusterTopology) -> bool:
        groups = self.kube.list_statefulsets(LabelSelector({LABEL_INSTANCE: cluster.name}))
        for group in groups:
            with wrap_error(f'failed to get statefulset {group.name} pods'):
                members = self.kube.list_pods(LabelSelector(dict(group.labels)))
            if group.updated_replicas < group.replicas or is_group_stale(group, members):
                self.logger.info("StatefulSet is not up to date", sts=group.name,
                                 updated=group.updated_replicas, replicas=group.replicas)
                return False
        return True
