import itertools

from src.functions.fact_freshness.core.contracts.staging import ClusterUpdate, FactUpdate
from src.functions.fact_freshness.core.staging.draft_assembler import assemble_draft, expand_updates, order_updates


def test_bitcoin_price_and_change_are_both_replaced():
    content = "Bitcoin is $50,000 today and up 2%."
    updates = [FactUpdate("$50,000", "$52,000"), FactUpdate("up 2%", "up 5%")]

    assert assemble_draft(content, updates) == "Bitcoin is $52,000 today and up 5%."


def test_assembly_is_independent_of_input_order():
    content = "BTC at $50,000, ETH at $3,000, ratio 16.7x versus $3,000 last week."
    updates = [
        FactUpdate("$50,000", "$60,000"),
        FactUpdate("$3,000", "$3,500"),
        FactUpdate("16.7x", "17.1x"),
        FactUpdate("not present", "ignored"),
    ]

    results = {assemble_draft(content, list(order)) for order in itertools.permutations(updates)}

    assert results == {"BTC at $60,000, ETH at $3,500, ratio 17.1x versus $3,500 last week."}


def test_later_values_are_replaced_first_and_absent_values_last():
    content = "first A then B"
    ordered = order_updates(content, [FactUpdate("A", "1"), FactUpdate("missing", "2"), FactUpdate("B", "3")])

    assert [update.original_value for update in ordered] == ["B", "A", "missing"]


def test_cluster_updates_are_flattened_and_blank_pairs_dropped():
    cluster = ClusterUpdate(
        cluster_id="c1",
        updates=[FactUpdate("$1", "$2", fact_id="a"), FactUpdate("", "$5", fact_id="b")],
    )

    flattened = expand_updates([FactUpdate("x", "y")], [cluster])

    assert [(update.original_value, update.updated_value) for update in flattened] == [("$1", "$2"), ("x", "y")]
    assert assemble_draft("pay $1 for x", cluster_updates=[cluster], fact_updates=[FactUpdate("x", "y")]) == "pay $2 for y"


def test_no_updates_returns_original_content():
    assert assemble_draft("unchanged text") == "unchanged text"
