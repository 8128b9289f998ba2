from datetime import timedelta

import pytest

from src.functions.fact_freshness.core.contracts.config import SupabaseSettings
from src.functions.fact_freshness.core.contracts.facts import UpdateRecord
from src.functions.fact_freshness.core.db.fact_store import FactStore
from src.functions.fact_freshness.core.errors import (
    DueWorkUnavailableError,
    LeaseLost,
    NotFoundError,
    PersistenceError,
)
from tests.fact_freshness.fakes import NOW


class _FakeQuery:
    def __init__(self, client, table):
        self._client = client
        self.table = table
        self.calls = []

    def __getattr__(self, name):
        def record(*args, **kwargs):
            self.calls.append((name, args, kwargs))
            return self

        return record

    def execute(self):
        self._client.executed.append(self)
        result = self._client.responses.pop(0) if self._client.responses else []
        if isinstance(result, Exception):
            raise result
        return type("Resp", (), {"data": result})()


class _FakeSupabaseClient:
    def __init__(self, responses=None):
        self.responses = list(responses or [])
        self.executed = []

    def table(self, name):
        return _FakeQuery(self, name)

    def rpc(self, name, params):
        query = _FakeQuery(self, f"rpc:{name}")
        query.calls.append(("rpc", (name, params), {}))
        return query


def _store(responses=None):
    settings = SupabaseSettings(url="https://project.supabase.co", key="service-role-key")
    client = _FakeSupabaseClient(responses)
    return FactStore(settings, client=client), client


FACT_ROW = {
    "id": "f1",
    "article_id": "art-1",
    "pulse_type": "crypto",
    "specific_type": "bitcoin_price",
    "current_value": "$50,000",
    "update_frequency": 5,
    "next_update": "2025-03-01T11:00:00Z",
    "update_count": 2,
    "confidence_score": 0.9,
    "update_priority": 3,
    "is_active": True,
}


def test_fetch_due_facts_filters_unclustered_due_rows():
    store, client = _store([[FACT_ROW]])

    facts = store.fetch_due_facts(NOW)

    assert [fact.id for fact in facts] == ["f1"]
    assert facts[0].cadence_minutes == 15
    query = client.executed[0]
    assert query.table == "pulses"
    assert ("is_", ("semantic_cluster_id", "null"), {}) in query.calls
    assert ("lte", ("next_update", NOW.isoformat()), {}) in query.calls


def test_fetch_due_clusters_builds_cluster_with_primary():
    row = {
        "id": "c1",
        "cluster_name": "Crypto prices",
        "cluster_type": "comparison",
        "update_priority": 4,
        "primary_pulse_id": "f1",
        "pulses": [{**FACT_ROW, "is_primary_in_cluster": True}],
    }
    store, _ = _store([[row]])

    clusters = store.fetch_due_clusters(NOW)

    assert clusters[0].primary.id == "f1"
    assert clusters[0].primary.cluster_id == "c1"
    assert clusters[0].integrity_problem() is None


def test_due_read_failure_is_fatal_error():
    store, _ = _store([RuntimeError("connection refused")])

    with pytest.raises(DueWorkUnavailableError):
        store.fetch_due_facts(NOW)


def test_get_fact_raises_not_found():
    store, _ = _store([[]])

    with pytest.raises(NotFoundError):
        store.get_fact("missing")


def test_update_with_no_matching_row_is_persistence_error():
    store, _ = _store([[]])

    with pytest.raises(PersistenceError):
        store.update_fact("f1", {"current_value": "x"})


def test_claim_compares_observed_next_update():
    store, client = _store([[{"id": "f1"}], []])
    observed = NOW - timedelta(minutes=5)
    until = NOW + timedelta(minutes=5)

    assert store.claim_fact("f1", observed, until) is True
    assert store.claim_fact("f1", None, until) is False

    first, second = client.executed
    assert ("eq", ("next_update", observed.isoformat()), {}) in first.calls
    assert ("is_", ("next_update", "null"), {}) in second.calls


def test_insert_update_records_writes_history_rows():
    store, client = _store([[{"id": "h1"}]])
    record = UpdateRecord(fact_id="f1", previous_value="$1", new_value="$2", source="feed", created_at=NOW)

    store.insert_update_records([record])

    query = client.executed[0]
    assert query.table == "pulse_updates"
    name, args, _ = query.calls[0]
    assert name == "insert"
    assert args[0][0]["pulse_id"] == "f1"
    assert args[0][0]["outcome"] == "updated"


def test_maintenance_never_raises():
    store, _ = _store([RuntimeError("cache table missing"), []])

    summary = store.run_maintenance(NOW)

    assert summary["cache_cleanup"].startswith("failed")
    assert summary["stats_refresh"] == "ok"


def test_guarded_update_requires_the_lease_to_still_be_held():
    until = NOW + timedelta(minutes=5)
    store, client = _store([[]])

    with pytest.raises(LeaseLost):
        store.update_fact("f1", {"current_value": "x"}, lease_until=until)

    assert ("eq", ("next_update", until.isoformat()), {}) in client.executed[0].calls


@pytest.mark.parametrize(
    "read",
    [
        lambda store: store.get_fact("f1"),
        lambda store: store.get_cluster("c1"),
        lambda store: store.fetch_cluster_members("c1"),
        lambda store: store.fetch_article("a1"),
        lambda store: store.fetch_pending_updates("a1"),
    ],
)
def test_lookup_failures_surface_as_persistence_errors(read):
    store, _ = _store([RuntimeError("connection reset")])

    with pytest.raises(PersistenceError) as excinfo:
        read(store)

    assert excinfo.value.stage == "persistence"
