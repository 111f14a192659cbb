from dataclasses import dataclass
import os


@dataclass
class Config:
    namespace: str
    cluster_name: str
    users_secret: str
    mongo_port: int
    mongo_connect_timeout_ms: int
    cluster_domain: str
    poll_interval: float
    max_workers: int
    min_version: str
    step_down_secs: int


def load_from_env() -> Config:
    """Load configuration from environment variables with sensible defaults."""
    cluster = os.environ.get('CLUSTER_NAME', 'my-cluster-name')
    return Config(
        namespace=os.environ.get('NAMESPACE') or os.environ.get('DEFAULT_NAMESPACE', 'default'),
        cluster_name=cluster,
        users_secret=os.environ.get('USERS_SECRET', f'{cluster}-secrets'),
        mongo_port=int(os.environ.get('MONGO_PORT', '27017')),
        mongo_connect_timeout_ms=int(os.environ.get('MONGO_CONNECT_TIMEOUT_MS', '5000')),
        cluster_domain=os.environ.get('CLUSTER_DOMAIN', 'svc.cluster.local'),
        poll_interval=float(os.environ.get('POLL_INTERVAL', '1.0')),
        max_workers=int(os.environ.get('MAX_WORKERS', '3')),
        min_version=os.environ.get('MIN_SMART_UPDATE_VERSION', '1.4.0'),
        step_down_secs=int(os.environ.get('STEP_DOWN_SECS', '60')),
    )
