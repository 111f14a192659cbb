from datetime import datetime, timezone

from .logging_ import get_logger
from .models import ClusterTopology
from .utils import wrap_error

STATE_INITIALIZING = 'initializing'


class StatusUpdater:
    """Reports smart update progress on the cluster resource status."""
    def __init__(self, kube_client):
        self.kube = kube_client
        self.logger = get_logger('status-updater')

    def build_payload(self, state: str) -> dict:
        return {
            'status': {
                'state': state,
                'smartUpdate': {
                    'lastProgress': datetime.now(timezone.utc).isoformat(),
                },
            }
        }

    def report_initializing(self, cluster: ClusterTopology) -> None:
        body = self.build_payload(STATE_INITIALIZING)
        with wrap_error('update status', cluster=cluster.name):
            self.kube.patch_cluster_status(cluster.name, body)
        self.logger.debug("Cluster status updated", cluster=cluster.name, state=STATE_INITIALIZING)
