import base64
from dataclasses import dataclass

from .exceptions import CredentialsError

ROLE_DATABASE_ADMIN = 'databaseAdmin'
ROLE_CLUSTER_ADMIN = 'clusterAdmin'
ROLE_USER_ADMIN = 'userAdmin'
ROLE_CLUSTER_MONITOR = 'clusterMonitor'
ROLE_BACKUP = 'backup'

# Secret keys holding (user, password) for each system role.
ROLE_KEYS = {
    ROLE_DATABASE_ADMIN: ('MONGODB_DATABASE_ADMIN_USER', 'MONGODB_DATABASE_ADMIN_PASSWORD'),
    ROLE_CLUSTER_ADMIN: ('MONGODB_CLUSTER_ADMIN_USER', 'MONGODB_CLUSTER_ADMIN_PASSWORD'),
    ROLE_USER_ADMIN: ('MONGODB_USER_ADMIN_USER', 'MONGODB_USER_ADMIN_PASSWORD'),
    ROLE_CLUSTER_MONITOR: ('MONGODB_CLUSTER_MONITOR_USER', 'MONGODB_CLUSTER_MONITOR_PASSWORD'),
    ROLE_BACKUP: ('MONGODB_BACKUP_USER', 'MONGODB_BACKUP_PASSWORD'),
}


@dataclass
class Credentials:
    username: str
    password: str

    def __repr__(self) -> str:
        return f"Credentials(username={self.username!r}, password='***')"


def _decode(value) -> str:
    if not value:
        return ''
    return base64.b64decode(value).decode('utf-8')


def get_credentials(kube, secret_name: str, role: str) -> Credentials:
    """Read the user/password pair for a system role from the users Secret."""
    if role not in ROLE_KEYS:
        raise CredentialsError(f'not implemented for role: {role}')
    data = kube.read_secret(secret_name)
    user_key, password_key = ROLE_KEYS[role]
    creds = Credentials(username=_decode(data.get(user_key)), password=_decode(data.get(password_key)))
    if not creds.username or not creds.password:
        raise CredentialsError(f"can't find credentials for role {role}", {'secret': secret_name})
    return creds
