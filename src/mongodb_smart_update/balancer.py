from .logging_ import get_logger
from .models import ClusterTopology
from .utils import wrap_error

BALANCER_OFF = 'off'


class BalancerGate:
    """Suspends chunk balancing while config servers restart.

    Turning the balancer back on belongs to the surrounding reconciler once
    the cluster is ready again; nothing here re-enables it.
    """
    def __init__(self, role_client):
        self.role_client = role_client
        self.logger = get_logger('balancer-gate')

    def suspend(self, cluster: ClusterTopology) -> bool:
        """Stop the balancer unless it is already off. Returns True if it was stopped."""
        with wrap_error('failed to stop balancer', cluster=cluster.name):
            with self.role_client.connect(self.role_client.mongos_host(cluster)) as session:
                mode = session.balancer_mode()
                if mode == BALANCER_OFF:
                    self.logger.info("Balancer already disabled", cluster=cluster.name)
                    return False
                session.stop_balancer()
        self.logger.info("Balancer disabled", cluster=cluster.name, previous_mode=mode)
        return True
