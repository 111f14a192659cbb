from contextlib import contextmanager
from typing import Iterable, Optional, Tuple

import pymongo
from pymongo.errors import AutoReconnect, ConnectionFailure, NotPrimaryError, ServerSelectionTimeoutError

from .credentials import Credentials
from .exceptions import SmartUpdateError
from .logging_ import get_logger
from .models import COMPONENT_ARBITER, COMPONENT_NON_VOTING, ClusterTopology, Member, WorkloadGroup
from .utils import retry_with_backoff


class RoleSession:
    """One open connection used for role queries and administrative commands."""
    def __init__(self, client, host: str):
        self.client = client
        self.host = host

    def query_role(self) -> bool:
        """Return True when the connected server is the writable primary."""
        reply = self.client.admin.command('hello')
        if 'isWritablePrimary' in reply:
            return bool(reply['isWritablePrimary'])
        return bool(reply.get('ismaster', False))

    def request_step_down(self, force: bool, step_down_secs: int = 60) -> None:
        try:
            self.client.admin.command('replSetStepDown', step_down_secs, force=force)
        except ServerSelectionTimeoutError:
            # no primary was reachable, so nothing stepped down
            raise
        except (AutoReconnect, NotPrimaryError):
            # the server closes every connection once it steps down
            pass

    def balancer_mode(self) -> str:
        reply = self.client.admin.command('balancerStatus')
        return reply.get('mode', '')

    def stop_balancer(self) -> None:
        self.client.admin.command('balancerStop')

    def find(self, collection: str, query: dict) -> list:
        return list(self.client.admin[collection].find(query))


class MongoRoleClient:
    """Opens scoped pymongo connections to cluster members.

    ``mongo_client_factory`` defaults to ``pymongo.MongoClient`` and may be
    injected for tests. Every connection is closed on every exit path; a
    failed close is logged and never fails the caller.
    """
    def __init__(self, credentials: Optional[Credentials] = None, port: int = 27017,
                 connect_timeout_ms: int = 5000, cluster_domain: str = 'svc.cluster.local',
                 mongo_client_factory=None, step_down_secs: int = 60):
        self.credentials = credentials
        self.port = port
        self.connect_timeout_ms = connect_timeout_ms
        self.cluster_domain = cluster_domain
        self.factory = mongo_client_factory or pymongo.MongoClient
        self.step_down_secs = step_down_secs
        self.logger = get_logger('mongo-role-client')

    def _client_kwargs(self) -> dict:
        kwargs = dict(
            serverSelectionTimeoutMS=self.connect_timeout_ms,
            connectTimeoutMS=self.connect_timeout_ms,
            socketTimeoutMS=self.connect_timeout_ms,
        )
        if self.credentials is not None:
            kwargs.update(username=self.credentials.username, password=self.credentials.password)
        return kwargs

    @contextmanager
    def connect(self, host: str, replica_set: Optional[str] = None):
        """Yield a ``RoleSession`` for ``host``; direct unless ``replica_set`` is given."""
        kwargs = self._client_kwargs()
        if replica_set:
            kwargs['replicaSet'] = replica_set
        else:
            kwargs['directConnection'] = True
        client = self.factory(host=host, port=self.port, **kwargs)
        try:
            yield RoleSession(client, host)
        finally:
            try:
                client.close()
            except Exception as e:
                self.logger.warning("failed to close connection", host=host, error=str(e),
                                    error_type=type(e).__name__)

    def member_host(self, cluster: ClusterTopology, group: WorkloadGroup, member: Member) -> str:
        if member.host:
            return member.host
        return f'{member.name}.{cluster.name}-{group.replset}.{cluster.namespace}.{self.cluster_domain}'

    def replset_hosts(self, cluster: ClusterTopology, group: WorkloadGroup, members: Iterable[Member]) -> str:
        return ','.join(f'{self.member_host(cluster, group, m)}:{self.port}' for m in members)

    def mongos_host(self, cluster: ClusterTopology) -> str:
        return f'{cluster.name}-mongos.{cluster.namespace}.{self.cluster_domain}'

    def cluster_host(self, cluster: ClusterTopology) -> Tuple[str, Optional[str]]:
        """Host and replset name reaching the whole cluster's data.

        Sharded clusters go through mongos; otherwise the first replset's
        headless service is used as the seed.
        """
        if cluster.sharding_enabled:
            return self.mongos_host(cluster), None
        for group in cluster.groups:
            if not group.is_mongos and group.component not in (COMPONENT_ARBITER, COMPONENT_NON_VOTING):
                return f'{cluster.name}-{group.replset}.{cluster.namespace}.{self.cluster_domain}', group.replset
        raise SmartUpdateError(f'no replset found for cluster {cluster.name}')

    @retry_with_backoff(exceptions=(ConnectionFailure,))
    def is_primary(self, host: str) -> bool:
        with self.connect(host) as session:
            return session.query_role()

    def step_down(self, cluster: ClusterTopology, group: WorkloadGroup, members: Iterable[Member], force: bool) -> None:
        """Ask the replset primary to step down; pymongo routes to it through the seed list."""
        hosts = self.replset_hosts(cluster, group, members)
        with self.connect(hosts, replica_set=group.replset) as session:
            session.request_step_down(force, self.step_down_secs)
