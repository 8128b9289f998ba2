from src.functions.fact_freshness.core.contracts.run_report import ItemOutcome
from src.functions.fact_freshness.core.errors import PersistenceError
from src.functions.fact_freshness.core.monitoring.run_reporter import RunReporter


def test_counters_stay_consistent():
    reporter = RunReporter()
    reporter.record_success(ItemOutcome(item_type="cluster", item_id="c1", status="updated", facts_updated=3))
    reporter.record_success(ItemOutcome(item_type="single_fact", item_id="f1", status="updated"))
    reporter.record_skip(ItemOutcome(item_type="single_fact", item_id="f2", status="skipped", reason="no data"))
    reporter.record_failure("cluster", "c2", PersistenceError("write rejected"))

    report = reporter.build(message="done", config_snapshot={"dry_run": False})

    assert report.processed == 6
    assert report.processed == report.successful + report.failed + report.skipped
    assert (report.successful, report.skipped, report.failed) == (4, 1, 1)
    assert (report.clusters, report.single_facts) == (2, 2)
    assert report.success_rate == 66.7
    assert report.errors[0].retryable
    assert report.errors[0].exception_type == "PersistenceError"
    assert report.end_time is not None


def test_failure_from_plain_exception_uses_general_stage():
    reporter = RunReporter()
    reporter.record_failure("single_fact", "f1", KeyError("id"))

    body = reporter.build().to_dict()

    assert body["errors"][0]["stage"] == "general"
    assert body["details"][0]["status"] == "failed"
