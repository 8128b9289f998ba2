"""Apply pending fact and cluster updates to article content."""

from __future__ import annotations

from typing import Iterable, List, Sequence, Tuple

from ..contracts.staging import ClusterUpdate, FactUpdate


def expand_updates(
    fact_updates: Iterable[FactUpdate] = (),
    cluster_updates: Iterable[ClusterUpdate] = (),
) -> List[FactUpdate]:
    """Flatten cluster updates into member pairs and drop pairs with nothing to replace."""

    combined: List[FactUpdate] = []
    for cluster in cluster_updates:
        combined.extend(cluster.updates)
    combined.extend(fact_updates)
    return [update for update in combined if update.original_value and update.updated_value]


def order_updates(content: str, updates: Sequence[FactUpdate]) -> List[FactUpdate]:
    """Sort updates so the value found furthest into *content* is replaced first.

    Values absent from the content go last. Ties break on the value text so the
    result does not depend on input order.
    """

    def sort_key(update: FactUpdate) -> Tuple[int, int, str, str]:
        position = content.find(update.original_value)
        if position < 0:
            return (1, 0, update.original_value, update.updated_value)
        return (0, -position, update.original_value, update.updated_value)

    return sorted(updates, key=sort_key)


def assemble_draft(
    original_content: str,
    fact_updates: Iterable[FactUpdate] = (),
    cluster_updates: Iterable[ClusterUpdate] = (),
) -> str:
    """Return *original_content* with every update applied as a literal replace-all."""

    draft = original_content
    for update in order_updates(original_content, expand_updates(fact_updates, cluster_updates)):
        draft = draft.replace(update.original_value, update.updated_value)
    return draft
