from dataclasses import replace
from datetime import timedelta

import pytest

from src.functions.fact_freshness.core.contracts.config import OrchestratorConfig
from src.functions.fact_freshness.core.contracts.resolution import ClusterProposal, MemberUpdate
from src.functions.fact_freshness.core.errors import ExternalServiceError, ParseFailure, PersistenceError
from src.functions.fact_freshness.core.orchestration.cascade_coordinator import CascadeCoordinator
from tests.fact_freshness.fakes import NOW, FakeResolver, FakeStore, make_cluster, make_fact


def _cluster_fixture():
    members = [
        make_fact("btc", "$50,000", cluster_id="c1", primary=True, cadence=60),
        make_fact("eth", "$3,000", cluster_id="c1", cadence=240),
        make_fact("ratio", "16.7x", cluster_id="c1", cadence=1440),
    ]
    cluster = make_cluster("c1", members)
    return members, cluster


def _proposal():
    return ClusterProposal(
        success=True,
        updates=[
            MemberUpdate("btc", "$50,000", "$60,000"),
            MemberUpdate("eth", "$3,000", "$3,500"),
            MemberUpdate("ratio", "16.7x", "17.1x"),
        ],
        source="https://prices.example.com",
        confidence_label="high",
        reasoning="Fetched latest prices",
    )


def _coordinator(store, resolver, **config):
    return CascadeCoordinator(
        store=store,
        resolver=resolver,
        config=OrchestratorConfig(max_workers=config.pop("max_workers", 3), **config),
        clock=lambda: NOW,
    )


def test_successful_cluster_updates_every_member_with_shared_next_due():
    members, cluster = _cluster_fixture()
    store = FakeStore(members, [cluster])
    resolver = FakeResolver()
    resolver.cluster_results["c1"] = _proposal()

    outcome = _coordinator(store, resolver).process(cluster)

    assert outcome.status == "updated"
    assert outcome.facts_updated == 3
    assert outcome.new_value == "$60,000"
    assert store.facts["btc"].current_value == "$60,000"
    assert store.facts["eth"].current_value == "$3,500"
    assert store.facts["ratio"].current_value == "17.1x"

    expected_due = NOW + timedelta(minutes=60)
    assert {fact.next_due for fact in store.facts.values()} == {expected_due}
    assert all(fact.refresh_count == 4 for fact in store.facts.values())
    assert all(fact.confidence == 0.9 for fact in store.facts.values())

    assert len(store.records) == 3
    assert {record.cluster_id for record in store.records} == {"c1"}
    assert all(record.validation_status == "approved" for record in store.records)
    assert store.records[0].metadata["cluster_changes"][0]["fact_id"] == "btc"
    assert store.touched == ["c1"]


def test_member_write_failure_leaves_no_member_mutated():
    members, cluster = _cluster_fixture()
    before = {fact.id: (fact.current_value, fact.next_due, fact.refresh_count) for fact in members}
    store = FakeStore(members, [cluster])
    store.fail_update_for.add("ratio")
    resolver = FakeResolver()
    resolver.cluster_results["c1"] = _proposal()

    with pytest.raises(PersistenceError):
        _coordinator(store, resolver).process(cluster)

    after = {fact.id: (fact.current_value, fact.next_due, fact.refresh_count) for fact in store.facts.values()}
    assert after == before
    assert store.records == []
    assert store.touched == []


def test_history_failure_rolls_back_member_writes():
    members, cluster = _cluster_fixture()
    store = FakeStore(members, [cluster])
    store.fail_history = True
    resolver = FakeResolver()
    resolver.cluster_results["c1"] = _proposal()

    with pytest.raises(PersistenceError):
        _coordinator(store, resolver).process(cluster)

    assert [store.facts[fact.id].current_value for fact in members] == ["$50,000", "$3,000", "16.7x"]
    assert store.facts["btc"].next_due == members[0].next_due


def test_update_for_non_member_is_rejected_before_any_write():
    members, cluster = _cluster_fixture()
    store = FakeStore(members, [cluster])
    resolver = FakeResolver()
    proposal = _proposal()
    proposal.updates.append(MemberUpdate("stranger", "1", "2"))
    resolver.cluster_results["c1"] = proposal

    with pytest.raises(ParseFailure):
        _coordinator(store, resolver).process(cluster)

    assert store.update_calls == []
    assert store.facts["btc"].next_due == members[0].next_due


def test_resolution_failure_releases_the_lease():
    members, cluster = _cluster_fixture()
    store = FakeStore(members, [cluster])
    resolver = FakeResolver()
    resolver.cluster_results["c1"] = ExternalServiceError("service down", stage="value_resolution")

    with pytest.raises(ExternalServiceError):
        _coordinator(store, resolver).process(cluster)

    assert store.facts["btc"].next_due == members[0].next_due
    assert store.records == []


def test_lost_lease_skips_cluster_without_resolution():
    members, cluster = _cluster_fixture()
    store = FakeStore(members, [cluster])
    store.steal_claims.add("btc")
    resolver = FakeResolver()

    outcome = _coordinator(store, resolver).process(cluster)

    assert outcome.status == "skipped"
    assert resolver.cluster_calls == []
    assert store.records == []


def test_dry_run_resolves_but_writes_nothing():
    members, cluster = _cluster_fixture()
    store = FakeStore(members, [cluster])
    resolver = FakeResolver()
    resolver.cluster_results["c1"] = _proposal()

    outcome = _coordinator(store, resolver, dry_run=True).process(cluster, method="manual")

    assert outcome.status == "updated"
    assert outcome.reason == "dry run"
    assert resolver.cluster_calls == [("c1", "btc", "manual")]
    assert store.update_calls == []
    assert store.records == []


def test_members_left_out_of_proposal_still_share_next_due():
    members, cluster = _cluster_fixture()
    store = FakeStore(members, [cluster])
    resolver = FakeResolver()
    resolver.cluster_results["c1"] = ClusterProposal(
        success=True,
        updates=[MemberUpdate("eth", "$3,000", "$3,500"), MemberUpdate("ratio", "16.7x", "14.3x")],
        confidence_label="high",
    )

    outcome = _coordinator(store, resolver).process(cluster)

    assert outcome.status == "updated"
    assert outcome.facts_updated == 2
    assert outcome.new_value is None
    assert {fact.next_due for fact in store.facts.values()} == {NOW + timedelta(minutes=60)}
    assert store.facts["btc"].current_value == "$50,000"
    assert store.facts["btc"].refresh_count == 3
    assert store.facts["btc"].last_refreshed == NOW
    assert sorted(record.fact_id for record in store.records) == ["eth", "ratio"]


def test_lease_taken_over_during_resolution_drops_the_result():
    members, cluster = _cluster_fixture()
    store = FakeStore(members, [cluster])
    resolver = FakeResolver()
    resolver.cluster_results["c1"] = _proposal()
    other_lease = NOW + timedelta(minutes=10)

    def other_run_claims(_):
        store.facts["btc"] = replace(store.facts["btc"], next_due=other_lease)

    resolver.on_resolve = other_run_claims

    outcome = _coordinator(store, resolver).process(cluster)

    assert outcome.status == "skipped"
    assert store.records == []
    assert store.touched == []
    assert store.update_calls == ["btc"]
    assert [store.facts[fact.id].current_value for fact in members] == ["$50,000", "$3,000", "16.7x"]
    assert store.facts["btc"].next_due == other_lease
