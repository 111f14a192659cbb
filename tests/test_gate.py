import pytest

from mongodb_smart_update.exceptions import SmartUpdateError
from mongodb_smart_update.gate import SafetyGate
from mongodb_smart_update.models import ANNOTATION_RESTORE_IN_PROGRESS, Veto

from conftest import FakeBackups, FakeJobs, NEW, OLD, make_cluster, make_group, make_member


def gate_for(kube, backups=None, jobs=None):
    return SafetyGate(kube, backups or FakeBackups(), jobs or FakeJobs())


def test_proceeds_when_everything_is_clear(kube):
    group = make_group()
    decision = gate_for(kube).can_proceed(make_cluster([group]), group)
    assert decision.proceed is True
    assert decision.veto is None


@pytest.mark.parametrize('cluster_kwargs', [
    {'strategy': 'RollingUpdate'},
    {'strategy': 'OnDelete'},
    {'version': '1.3.0'},
    {'version': ''},
])
def test_not_applicable_is_distinct_from_a_veto(kube, cluster_kwargs):
    group = make_group()
    backups = FakeBackups(running=True)
    decision = gate_for(kube, backups=backups).can_proceed(make_cluster([group], **cluster_kwargs), group)
    assert decision.proceed is False
    assert decision.applicable is False
    assert decision.veto is None
    assert backups.calls == 0


def test_replicas_not_ready_wins_over_backup_active(kube):
    group = make_group(ready=2)
    backups = FakeBackups(running=True)
    decision = gate_for(kube, backups=backups).can_proceed(make_cluster([group]), group)
    assert decision.veto is Veto.REPLICAS_NOT_READY
    assert backups.calls == 0


def test_backup_active_short_circuits_job_check(kube):
    group = make_group()
    jobs = FakeJobs(active=True)
    decision = gate_for(kube, backups=FakeBackups(running=True), jobs=jobs).can_proceed(make_cluster([group]), group)
    assert decision.veto is Veto.BACKUP_ACTIVE
    assert jobs.calls == 0


def test_active_job_holds_update(kube):
    group = make_group()
    decision = gate_for(kube, jobs=FakeJobs(active=True)).can_proceed(make_cluster([group]), group)
    assert decision.veto is Veto.RESTORE_OR_ACTIVE_JOB


def test_restore_in_progress_exempts_active_jobs(kube):
    group = make_group(annotations={ANNOTATION_RESTORE_IN_PROGRESS: 'true'})
    decision = gate_for(kube, jobs=FakeJobs(active=True)).can_proceed(make_cluster([group]), group)
    assert decision.proceed is True


def test_restore_in_progress_does_not_exempt_backup(kube):
    group = make_group(annotations={ANNOTATION_RESTORE_IN_PROGRESS: 'true'})
    decision = gate_for(kube, backups=FakeBackups(running=True)).can_proceed(make_cluster([group]), group)
    assert decision.veto is Veto.BACKUP_ACTIVE


def test_restore_in_progress_does_not_exempt_mongos(kube):
    group = make_group(replset=None, component='mongos', annotations={ANNOTATION_RESTORE_IN_PROGRESS: 'true'})
    decision = gate_for(kube, jobs=FakeJobs(active=True)).can_proceed(make_cluster([group], sharding=True), group)
    assert decision.veto is Veto.RESTORE_OR_ACTIVE_JOB


def test_shard_waits_for_stale_config_servers(kube):
    cfg = make_group(replset='cfg', component='cfg')
    shard = make_group()
    kube.add_groups(cfg, shard)
    kube.add_pods(make_member('my-cluster-cfg-0', revision=OLD, replset='cfg', component='cfg'))
    decision = gate_for(kube).can_proceed(make_cluster([cfg, shard], sharding=True), shard)
    assert decision.veto is Veto.DEPENDENT_GROUP_NOT_CONVERGED


def test_shard_proceeds_once_config_servers_converged(kube):
    cfg = make_group(replset='cfg', component='cfg')
    shard = make_group()
    kube.add_groups(cfg, shard)
    kube.add_pods(make_member('my-cluster-cfg-0', revision=NEW, replset='cfg', component='cfg'))
    decision = gate_for(kube).can_proceed(make_cluster([cfg, shard], sharding=True), shard)
    assert decision.proceed is True


def test_config_server_group_is_not_held_by_itself(kube):
    cfg = make_group(replset='cfg', component='cfg')
    kube.add_groups(cfg)
    kube.add_pods(make_member('my-cluster-cfg-0', revision=OLD, replset='cfg', component='cfg'))
    decision = gate_for(kube).can_proceed(make_cluster([cfg], sharding=True), cfg)
    assert decision.proceed is True


def test_backup_lookup_failure_is_wrapped(kube):
    class Broken:
        def is_backup_running(self, cluster):
            raise RuntimeError('api down')

    group = make_group()
    with pytest.raises(SmartUpdateError, match='failed to check active backups: api down'):
        SafetyGate(kube, Broken(), FakeJobs()).can_proceed(make_cluster([group]), group)


def test_missing_config_statefulset_is_an_error(kube):
    cfg = make_group(replset='cfg', component='cfg')
    shard = make_group()
    kube.add_groups(shard)
    kube.add_pods(make_member('my-cluster-cfg-0', revision=NEW, replset='cfg', component='cfg'))
    with pytest.raises(SmartUpdateError, match='get config statefulset default/my-cluster-cfg: not found'):
        gate_for(kube).can_proceed(make_cluster([cfg, shard], sharding=True), shard)
