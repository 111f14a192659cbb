import time
from typing import Callable, Optional

from .exceptions import PodWaitTimeout
from .logging_ import get_logger
from .models import POD_RUNNING, ClusterTopology, Member, RestartState
from .utils import wrap_error


def is_converged(member: Optional[Member], target_revision: str) -> bool:
    return (
        member is not None
        and member.phase == POD_RUNNING
        and member.revision == target_revision
        and member.is_healthy()
    )


class RestartCoordinator:
    """Restart one member and wait until its replacement is healthy.

    Moves a member through STALE -> DELETING -> WAITING_HEALTHY -> CONVERGED.
    A member already on the target revision skips the deletion. The wait is
    a fixed-interval poll bounded by ``wait_limit`` attempts; running out of
    attempts raises ``PodWaitTimeout``.

    ``sleep`` is injectable so tests can drive the loop with a fake clock.
    """
    def __init__(self, kube, status, sleep: Callable[[float], None] = time.sleep, poll_interval: float = 1.0):
        self.kube = kube
        self.status = status
        self.sleep = sleep
        self.poll_interval = poll_interval
        self.logger = get_logger('restart-coordinator')

    def _transition(self, member: Member, state: RestartState) -> RestartState:
        self.logger.debug("Restart state changed", pod=member.name, state=state.value)
        return state

    def apply_and_wait(self, cluster: ClusterTopology, member: Member, target_revision: str,
                       wait_limit: int) -> RestartState:
        self._transition(member, RestartState.STALE)
        if member.revision == target_revision:
            self.logger.info("Pod already updated", pod=member.name, revision=target_revision)
        else:
            self._transition(member, RestartState.DELETING)
            with wrap_error('delete pod', pod=member.name):
                self.kube.delete_pod(member.name)

        self._transition(member, RestartState.WAITING_HEALTHY)
        with wrap_error('wait pod restart', pod=member.name):
            return self._wait_healthy(cluster, member, target_revision, wait_limit)

    def _wait_healthy(self, cluster: ClusterTopology, member: Member, target_revision: str,
                      wait_limit: int) -> RestartState:
        snapshot = member
        for attempt in range(wait_limit):
            self.sleep(self.poll_interval)

            current = self.kube.get_pod(member.name)
            if current is not None:
                snapshot = current

            # reported on every attempt so a long restart is visible before it ends
            self.status.report_initializing(cluster)

            if is_converged(current, target_revision):
                self.logger.info("Pod started", pod=member.name, attempt=attempt + 1)
                return self._transition(member, RestartState.CONVERGED)

        self._transition(member, RestartState.TIMED_OUT)
        self.logger.error("Pod did not become ready in time", pod=member.name, wait_limit=wait_limit,
                          phase=snapshot.phase, revision=snapshot.revision)
        raise PodWaitTimeout(member.name, wait_limit)
