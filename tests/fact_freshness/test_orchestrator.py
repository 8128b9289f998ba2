import pytest

from src.functions.fact_freshness.core.contracts.config import OrchestratorConfig
from src.functions.fact_freshness.core.contracts.resolution import ClusterProposal, MemberUpdate, ValueProposal
from src.functions.fact_freshness.core.errors import DueWorkUnavailableError, ExternalServiceError
from src.functions.fact_freshness.core.orchestration.cascade_coordinator import CascadeCoordinator
from src.functions.fact_freshness.core.orchestration.orchestrator import FreshnessOrchestrator
from src.functions.fact_freshness.core.orchestration.single_fact_coordinator import SingleFactCoordinator
from tests.fact_freshness.fakes import NOW, FakeResolver, FakeStore, make_cluster, make_fact


def _orchestrator(store, resolver, **config):
    cfg = OrchestratorConfig(**config)
    clock = lambda: NOW  # noqa: E731
    return FreshnessOrchestrator(
        store=store,
        cascade=CascadeCoordinator(store=store, resolver=resolver, config=cfg, clock=clock),
        single=SingleFactCoordinator(store=store, resolver=resolver, config=cfg, clock=clock),
        config=cfg,
        clock=clock,
    )


def _mixed_store():
    primary = make_fact("p", "$1", cluster_id="c1", primary=True)
    member = make_fact("m", "$2", cluster_id="c1")
    cluster = make_cluster("c1", [primary, member], name="Prices")
    facts = [make_fact("ok", "10"), make_fact("empty", "20"), make_fact("broken", "30")]
    store = FakeStore([primary, member, *facts], [cluster])
    resolver = FakeResolver()
    resolver.cluster_results["c1"] = ClusterProposal(
        success=True,
        updates=[MemberUpdate("p", "$1", "$1.5"), MemberUpdate("m", "$2", "$2.5")],
        confidence_label="medium",
    )
    resolver.fact_results["ok"] = ValueProposal(success=True, updated_value="11")
    resolver.fact_results["empty"] = ValueProposal(success=False, no_data=True, error="No data available")
    resolver.fact_results["broken"] = ExternalServiceError("timeout", stage="value_resolution")
    return store, resolver


def test_run_isolates_failures_and_counts_consistently():
    store, resolver = _mixed_store()

    report = _orchestrator(store, resolver).run()

    assert report.success
    assert report.processed == report.successful + report.failed + report.skipped
    assert report.successful == 3
    assert report.skipped == 1
    assert report.failed == 1
    assert report.clusters == 1
    assert report.single_facts == 3
    assert [error.item_id for error in report.errors] == ["broken"]
    assert report.errors[0].stage == "value_resolution"
    assert store.maintenance_runs == 1
    body = report.to_dict()
    assert body["summary"]["processed"] == 5
    assert body["breakdown"] == {"clusters": 1, "single_facts": 3}


def test_clusters_are_processed_before_single_facts():
    store, resolver = _mixed_store()

    _orchestrator(store, resolver).run()

    assert resolver.cluster_calls[0][0] == "c1"
    assert store.update_calls[:2] in (["p", "m"], ["m", "p"])


def test_empty_run_reports_no_updates_due():
    store = FakeStore([make_fact("later", due_in_minutes=60)])

    report = _orchestrator(store, FakeResolver()).run()

    assert report.success
    assert report.message == "No updates due"
    assert report.processed == 0
    assert report.success_rate == 100.0


def test_due_work_failure_is_fatal():
    store = FakeStore()
    store.fail_due_reads = DueWorkUnavailableError("database offline")

    with pytest.raises(DueWorkUnavailableError):
        _orchestrator(store, FakeResolver()).run()


def test_dry_run_skips_maintenance():
    store, resolver = _mixed_store()

    report = _orchestrator(store, resolver, dry_run=True).run()

    assert store.maintenance_runs == 0
    assert report.maintenance == {"skipped": True}
    assert store.records == []


def test_manual_fact_trigger_routes_clustered_fact_to_cluster():
    store, resolver = _mixed_store()

    report = _orchestrator(store, resolver).trigger_fact("m")

    assert resolver.cluster_calls == [("c1", "p", "manual")]
    assert report.clusters == 1
    assert store.facts["m"].current_value == "$2.5"


def test_manual_trigger_ignores_due_time():
    fact = make_fact("later", "5", due_in_minutes=120)
    store = FakeStore([fact])
    resolver = FakeResolver()
    resolver.fact_results["later"] = ValueProposal(success=True, updated_value="6")

    report = _orchestrator(store, resolver).trigger_fact("later")

    assert report.successful == 1
    assert resolver.fact_calls == [("later", "manual")]
    assert store.records[0].method == "manual"


def test_manual_trigger_of_unknown_cluster_fails_report():
    report = _orchestrator(FakeStore(), FakeResolver()).trigger_cluster("missing")

    assert not report.success
    assert report.failed == 1
    assert report.errors[0].stage == "lookup"


def test_failed_cluster_resolution_mutates_no_member_and_reports_one_error():
    members = [
        make_fact("a", "1", cluster_id="c9", primary=True),
        make_fact("b", "2", cluster_id="c9"),
        make_fact("c", "3", cluster_id="c9"),
    ]
    store = FakeStore(members, [make_cluster("c9", members)])
    resolver = FakeResolver()
    resolver.cluster_results["c9"] = ExternalServiceError("resolver offline", stage="value_resolution")

    report = _orchestrator(store, resolver).run()

    assert [(error.item_type, error.item_id) for error in report.errors] == [("cluster", "c9")]
    assert report.failed == 1
    for fact in members:
        stored = store.facts[fact.id]
        assert (stored.current_value, stored.next_due, stored.refresh_count) == (
            fact.current_value,
            fact.next_due,
            fact.refresh_count,
        )
