from .logging_ import get_logger
from .orchestrator import SmartUpdateOrchestrator
from .config import Config, load_from_env
from .convergence import ConvergenceChecker
from .gate import SafetyGate
from .restart import RestartCoordinator
from .revision import is_group_stale
from .topology import PrimaryLocator
from .exceptions import SmartUpdateError, PodWaitTimeout


def setup_logging(name: str = __name__, cluster: str = None, namespace: str = None):
    """Returns a configured structured logger."""
    return get_logger(name, cluster=cluster, namespace=namespace)


__all__ = [
    'SmartUpdateOrchestrator', 'ConvergenceChecker', 'SafetyGate', 'RestartCoordinator', 'PrimaryLocator',
    'is_group_stale', 'Config', 'load_from_env', 'setup_logging', 'SmartUpdateError', 'PodWaitTimeout',
]
