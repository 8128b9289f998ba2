"""Results returned by the value resolution service."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from .facts import confidence_score


@dataclass(slots=True)
class ValueProposal:
    """Proposed new value for a single fact.

    ``no_data`` is the service's explicit "nothing available" signal; it is
    not a failure and must leave the fact untouched.
    """

    success: bool
    updated_value: Optional[str] = None
    source: Optional[str] = None
    confidence_label: str = "low"
    validated: bool = False
    no_data: bool = False
    error: Optional[str] = None
    reasoning: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def confidence(self) -> float:
        return confidence_score(self.confidence_label)


@dataclass(slots=True)
class MemberUpdate:
    """One member's old/new value pair inside a cluster proposal."""

    fact_id: str
    original_value: Optional[str]
    updated_value: str


@dataclass(slots=True)
class ClusterProposal:
    """Proposed new values for every changed member of a cluster."""

    success: bool
    updates: List[MemberUpdate] = field(default_factory=list)
    source: Optional[str] = None
    confidence_label: str = "low"
    error: Optional[str] = None
    reasoning: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def confidence(self) -> float:
        return confidence_score(self.confidence_label)

    def update_for(self, fact_id: str) -> Optional[MemberUpdate]:
        for update in self.updates:
            if update.fact_id == fact_id:
                return update
        return None
