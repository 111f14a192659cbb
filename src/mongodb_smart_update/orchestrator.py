import time
from typing import List

from .backup import BackupMonitor, JobMonitor
from .balancer import BalancerGate
from .config import load_from_env
from .convergence import ConvergenceChecker
from .credentials import ROLE_CLUSTER_ADMIN, get_credentials
from .exceptions import SmartUpdateError
from .gate import SafetyGate
from .kube import KubeClient
from .logging_ import get_logger
from .models import (
    COMPONENT_ARBITER, COMPONENT_NON_VOTING, SMART_UPDATE_STRATEGY, ClusterTopology, GroupResult, Member,
    PassOutcome, WorkloadGroup,
)
from .mongo import MongoRoleClient
from .restart import RestartCoordinator
from .revision import is_group_stale
from .topology import PrimaryLocator
from .updater import StatusUpdater
from .utils import sort_members_descending, wrap_error


class SmartUpdateOrchestrator:
    """Drives the smart update of one cluster, one workload group at a time.

    Holds no state between passes: whether work remains is read back from
    the pods' revision labels every time, so a pass that fails or is held
    simply resumes on the next call.
    """
    def __init__(self, cfg=None, kube=None, role_client=None, backups=None, jobs=None, status=None,
                 sleep=time.sleep, logger=None):
        self.cfg = cfg or load_from_env()
        self.logger = logger or get_logger('smart-update', cluster=self.cfg.cluster_name, namespace=self.cfg.namespace)
        self.kube = kube or KubeClient(self.cfg.namespace)
        if role_client is None:
            credentials = get_credentials(self.kube, self.cfg.users_secret, ROLE_CLUSTER_ADMIN)
            role_client = MongoRoleClient(
                credentials=credentials,
                port=self.cfg.mongo_port,
                connect_timeout_ms=self.cfg.mongo_connect_timeout_ms,
                cluster_domain=self.cfg.cluster_domain,
                step_down_secs=self.cfg.step_down_secs,
            )
        self.role_client = role_client
        self.status = status or StatusUpdater(self.kube)
        self.gate = SafetyGate(self.kube, backups or BackupMonitor(self.kube), jobs or JobMonitor(role_client),
                               min_version=self.cfg.min_version)
        self.locator = PrimaryLocator(role_client, max_workers=self.cfg.max_workers)
        self.balancer = BalancerGate(role_client)
        self.restarter = RestartCoordinator(self.kube, self.status, sleep=sleep, poll_interval=self.cfg.poll_interval)
        self.convergence = ConvergenceChecker(self.kube)

    def run(self) -> bool:
        """Load the configured cluster and run one pass. Returns False on failure."""
        try:
            cluster = self.kube.load_topology(self.cfg.cluster_name)
            results = self.run_pass(cluster)
        except SmartUpdateError as e:
            self.logger.error("Smart update pass failed", cluster=self.cfg.cluster_name, error=str(e),
                              error_type=type(e).__name__, context=e.context)
            return False
        self.logger.info("Smart update pass finished", cluster=cluster.name,
                         groups={r.group: r.outcome.value for r in results})
        return True

    def check_convergence(self) -> bool:
        cluster = self.kube.load_topology(self.cfg.cluster_name)
        return self.convergence.all_groups_converged(cluster)

    def run_pass(self, cluster: ClusterTopology) -> List[GroupResult]:
        """Update every group in dependency order; the first error aborts the pass."""
        results = []
        for group in cluster.ordered_groups():
            with wrap_error(f'smart update {group.name}', group=group.name):
                results.append(self.update_group(cluster, group))
        return results

    def update_group(self, cluster: ClusterTopology, group: WorkloadGroup) -> GroupResult:
        if group.is_mongos:
            return self.update_mongos(cluster, group)

        if group.size == 0 or cluster.update_strategy != SMART_UPDATE_STRATEGY:
            return GroupResult(group.name, PassOutcome.NOT_APPLICABLE)

        members = self.kube.list_pods(group.selector())
        if not is_group_stale(group, members):
            return GroupResult(group.name, PassOutcome.UP_TO_DATE)

        decision = self.gate.can_proceed(cluster, group)
        if not decision.applicable:
            self.logger.debug("Smart update not applicable", group=group.name, reason=decision.reason)
            return GroupResult(group.name, PassOutcome.NOT_APPLICABLE)
        if not decision.proceed:
            return GroupResult(group.name, PassOutcome.HELD, veto=decision.veto)

        self.logger.info("StatefulSet is changed, starting smart update", name=group.name)
        result = GroupResult(group.name, PassOutcome.UPDATED)

        if group.is_config_server:
            self.balancer.suspend(cluster)

        ordered = sort_members_descending(members)
        primary = self.locator.find_primary(cluster, group, ordered)

        # roles are re-read right before every restart: an election during the
        # pass moves the deferred member to whoever holds the primary role now
        pending = [m for m in ordered if primary is None or m.name != primary.name]
        role_changes = 0
        while pending:
            member = pending.pop(0)
            if self.locator.is_primary(cluster, group, member):
                role_changes += 1
                if role_changes > len(ordered):
                    raise SmartUpdateError('primary keeps moving, giving up this pass', {'group': group.name})
                self.logger.info("Primary moved, deferring pod", pod=member.name,
                                 previous=primary.name if primary is not None else None)
                if primary is not None:
                    pending.append(primary)
                primary = member
                continue
            self.logger.info("apply changes to secondary pod", pod=member.name)
            target = self._target_revision(cluster, group, member)
            with wrap_error('failed to apply changes', pod=member.name):
                self.restarter.apply_and_wait(cluster, member, target, group.wait_limit)
            result.restarted.append(member.name)

        # an external primary has no pod here, so there is nothing to step down
        if primary is not None and group.component != COMPONENT_NON_VOTING:
            if primary.revision == group.target_revision:
                self.logger.info("Primary already updated, no step down needed", pod=primary.name)
            elif not self.locator.is_primary(cluster, group, primary):
                self.logger.info("Pod is no longer primary, no step down needed", pod=primary.name)
            else:
                force = group.size == 1
                self.logger.info("doing step down...", group=group.name, force=force)
                with wrap_error('failed to do step down', group=group.name):
                    self.role_client.step_down(cluster, group, ordered, force)
                result.stepped_down = True

            self.logger.info("apply changes to primary pod", pod=primary.name)
            with wrap_error('failed to apply changes', pod=primary.name):
                self.restarter.apply_and_wait(cluster, primary, group.target_revision, group.wait_limit)
            result.restarted.append(primary.name)

        self.logger.info("smart update finished for statefulset", statefulset=group.name)
        return result

    def update_mongos(self, cluster: ClusterTopology, group: WorkloadGroup) -> GroupResult:
        """Routing tier: no roles, every pod restarted in turn."""
        if group.size == 0 or cluster.update_strategy != SMART_UPDATE_STRATEGY:
            return GroupResult(group.name, PassOutcome.NOT_APPLICABLE)

        with wrap_error('get mongos pods'):
            members = self.kube.list_pods(group.selector())
        if not is_group_stale(group, members):
            return GroupResult(group.name, PassOutcome.UP_TO_DATE)

        decision = self.gate.can_proceed(cluster, group)
        if not decision.applicable:
            return GroupResult(group.name, PassOutcome.NOT_APPLICABLE)
        if not decision.proceed:
            return GroupResult(group.name, PassOutcome.HELD, veto=decision.veto)

        self.logger.info("StatefulSet is changed, starting smart update", name=group.name)
        result = GroupResult(group.name, PassOutcome.UPDATED)
        for member in sort_members_descending(members):
            with wrap_error('failed to apply changes', pod=member.name):
                self.restarter.apply_and_wait(cluster, member, group.target_revision, group.wait_limit)
            result.restarted.append(member.name)

        self.logger.info("smart update finished for mongos statefulset", statefulset=group.name)
        return result

    def _target_revision(self, cluster: ClusterTopology, group: WorkloadGroup, member: Member) -> str:
        """Arbiter pods listed with their replset follow the arbiter statefulset's revision."""
        if member.component != COMPONENT_ARBITER or group.component == COMPONENT_ARBITER:
            return group.target_revision
        arbiter = cluster.group_for(member.replset, COMPONENT_ARBITER)
        if arbiter is None:
            raise SmartUpdateError(f'failed to get arbiter statefulset for replset {member.replset}',
                                   {'pod': member.name})
        return arbiter.target_revision
