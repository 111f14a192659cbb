from typing import Iterable

from .models import Member, WorkloadGroup


def is_group_stale(group: WorkloadGroup, members: Iterable[Member]) -> bool:
    """Report whether any member of the group's own component runs an old revision.

    An empty target revision means the platform has not computed one yet,
    which is never treated as stale. Members of another component (arbiter
    pods listed next to data-bearing ones) are skipped: each component has
    its own statefulset and its own revision.
    """
    if not group.target_revision:
        return False

    for member in members:
        if member.component != group.component:
            continue
        if member.revision != group.target_revision:
            return True
    return False
