from typing import List, Optional
from concurrent.futures import ThreadPoolExecutor, as_completed

from .exceptions import AmbiguousPrimaryError, SmartUpdateError
from .logging_ import get_logger
from .models import ClusterTopology, Member, WorkloadGroup


class PrimaryLocator:
    """Find which member of a workload group currently holds the primary role.

    Role queries are read-only, so they fan out over a small thread pool.
    No member answering primary means the primary lives outside the visible
    pods (an externally hosted member) and ``None`` is returned.
    """
    def __init__(self, role_client, max_workers: int = 3):
        self.role_client = role_client
        self.max_workers = max_workers
        self.logger = get_logger('primary-locator')

    def is_primary(self, cluster: ClusterTopology, group: WorkloadGroup, member: Member) -> bool:
        """Ask one member for its role right now."""
        try:
            return bool(self.role_client.is_primary(self.role_client.member_host(cluster, group, member)))
        except Exception as e:
            raise SmartUpdateError(f'is pod primary: {member.name}: {e}',
                                   {'group': group.name, 'pod': member.name}) from e

    def find_primary(self, cluster: ClusterTopology, group: WorkloadGroup, members: List[Member]) -> Optional[Member]:
        if not members:
            return None

        primaries: List[Member] = []
        with ThreadPoolExecutor(max_workers=max(1, self.max_workers)) as executor:
            future_to_member = {
                executor.submit(self.role_client.is_primary, self.role_client.member_host(cluster, group, m)): m
                for m in members
            }
            for future in as_completed(future_to_member):
                member = future_to_member[future]
                try:
                    res = future.result()
                except Exception as e:
                    self.logger.error("Role query failed", group=group.name, pod=member.name,
                                      error=str(e), error_type=type(e).__name__)
                    raise SmartUpdateError(f'is pod primary: {member.name}: {e}',
                                           {'group': group.name, 'pod': member.name}) from e
                if res:
                    primaries.append(member)

        if len(primaries) > 1:
            names = sorted(m.name for m in primaries)
            raise AmbiguousPrimaryError(f'more than one primary reported: {", ".join(names)}',
                                        {'group': group.name, 'pods': names})

        if not primaries:
            self.logger.info("No local primary found, assuming external primary", group=group.name)
            return None

        self.logger.info("Primary located", group=group.name, pod=primaries[0].name)
        return primaries[0]
