"""HTTP client for the value resolution service."""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, List, Mapping, Optional, Protocol, Sequence

import httpx

from ..categories import profile_for
from ..contracts.config import ServiceEndpointConfig
from ..contracts.facts import Cluster, Fact
from ..contracts.resolution import ClusterProposal, MemberUpdate, ValueProposal
from ..errors import ExternalServiceError, ParseFailure

logger = logging.getLogger(__name__)

_CONFIDENCE_LABELS = {"low", "medium", "high"}


class ValueResolver(Protocol):
    """Anything that can propose new values for facts and clusters."""

    def resolve_fact(self, fact: Fact, *, method: str = "scheduled") -> ValueProposal: ...

    def resolve_cluster(
        self,
        cluster: Cluster,
        primary: Fact,
        members: Sequence[Fact],
        *,
        method: str = "scheduled",
    ) -> ClusterProposal: ...


def _pick(payload: Mapping[str, Any], *keys: str) -> Any:
    """Return the first present key, accepting camelCase and snake_case spellings."""

    for key in keys:
        if key in payload and payload[key] is not None:
            return payload[key]
    return None


def _confidence_label(value: Any) -> str:
    label = str(value or "").strip().lower()
    return label if label in _CONFIDENCE_LABELS else "low"


def _fact_context(fact: Fact, method: str) -> Dict[str, object]:
    profile = profile_for(fact.category)
    return {
        "pulseId": fact.id,
        "pulseType": fact.category.value,
        "specificType": fact.subtype,
        "currentValue": fact.current_value,
        "surroundingText": fact.context_text(),
        "staticPrefix": fact.static_prefix,
        "staticSuffix": fact.static_suffix,
        "articleContext": fact.article_context,
        "promptTemplate": fact.prompt_template,
        "updateFrequency": fact.cadence_minutes,
        "route": profile.route.value,
        "updateMethod": method,
    }


class ValueResolutionClient:
    """Encapsulates outbound calls to the value resolution endpoint."""

    def __init__(
        self,
        endpoint: ServiceEndpointConfig,
        *,
        http_client: Optional[httpx.Client] = None,
    ) -> None:
        self._endpoint = endpoint
        # Per-request timeouts apply; only the connect phase is bounded here
        timeout = httpx.Timeout(None, connect=5.0)
        self._http = http_client or httpx.Client(timeout=timeout)

    def resolve_fact(self, fact: Fact, *, method: str = "scheduled") -> ValueProposal:
        """Ask the service for a fresh value of a single fact."""

        data = self._post_json("value_resolution", _fact_context(fact, method))
        metadata = _pick(data, "metadata") or {}
        error = _pick(data, "error")

        if not data.get("success"):
            if _pick(data, "fallback", "noData", "no_data"):
                return ValueProposal(
                    success=False,
                    no_data=True,
                    error=str(error or "No data available"),
                    source=_pick(data, "source"),
                    metadata=dict(metadata) if isinstance(metadata, Mapping) else {},
                )
            raise ExternalServiceError(
                f"Value resolution failed for fact {fact.id}: {error or 'unknown error'}",
                stage="value_resolution",
            )

        updated = _pick(data, "updatedValue", "updated_value")
        if not isinstance(updated, str) or not updated.strip():
            raise ParseFailure(
                f"Value resolution returned no updated value for fact {fact.id}",
                stage="value_resolution",
                raw=json.dumps(data, default=str)[:2000],
            )

        validation = _pick(data, "validation") or {}
        validated = bool(_pick(validation, "isValid", "is_valid")) if isinstance(validation, Mapping) else False
        return ValueProposal(
            success=True,
            updated_value=updated.strip(),
            source=_pick(data, "source"),
            confidence_label=_confidence_label(_pick(data, "confidence")),
            validated=validated,
            reasoning=_pick(data, "reasoning"),
            metadata=dict(metadata) if isinstance(metadata, Mapping) else {},
        )

    def resolve_cluster(
        self,
        cluster: Cluster,
        primary: Fact,
        members: Sequence[Fact],
        *,
        method: str = "scheduled",
    ) -> ClusterProposal:
        """Ask the service for consistent new values for every member of *cluster*."""

        payload = _fact_context(primary, method)
        payload.update(
            {
                "clusterId": cluster.id,
                "clusterName": cluster.name,
                "clusterType": cluster.relation_type,
                "semanticRule": cluster.semantic_rule,
                "triggerPulseId": primary.id,
                "members": [
                    {
                        "pulseId": member.id,
                        "pulseType": member.category.value,
                        "specificType": member.subtype,
                        "currentValue": member.current_value,
                        "surroundingText": member.context_text(),
                        "isPrimary": member.id == primary.id,
                    }
                    for member in members
                ],
            }
        )
        data = self._post_json("value_resolution", payload)
        if not data.get("success"):
            raise ExternalServiceError(
                f"Cluster resolution failed for {cluster.id}: {_pick(data, 'error') or 'unknown error'}",
                stage="value_resolution",
            )

        raw_updates = _pick(data, "updates")
        if not isinstance(raw_updates, list):
            raise ParseFailure(
                f"Cluster resolution for {cluster.id} returned no update list",
                stage="value_resolution",
                raw=json.dumps(data, default=str)[:2000],
            )
        if not raw_updates:
            raise ExternalServiceError(
                f"Cluster resolution for {cluster.id} returned an empty update list",
                stage="value_resolution",
            )

        updates: List[MemberUpdate] = []
        for item in raw_updates:
            if not isinstance(item, Mapping):
                raise ParseFailure(f"Malformed member update in cluster {cluster.id}", stage="value_resolution")
            fact_id = _pick(item, "pulseId", "pulse_id", "factId", "fact_id")
            updated = _pick(item, "updatedValue", "updated_value")
            if not fact_id or not isinstance(updated, str):
                raise ParseFailure(
                    f"Member update in cluster {cluster.id} is missing an id or value",
                    stage="value_resolution",
                    raw=json.dumps(item, default=str)[:2000],
                )
            original = _pick(item, "originalValue", "original_value")
            updates.append(
                MemberUpdate(
                    fact_id=str(fact_id),
                    original_value=str(original) if original is not None else None,
                    updated_value=updated.strip(),
                )
            )

        metadata = _pick(data, "metadata") or {}
        return ClusterProposal(
            success=True,
            updates=updates,
            source=_pick(data, "source"),
            confidence_label=_confidence_label(_pick(data, "confidence")),
            reasoning=_pick(data, "reasoning"),
            metadata=dict(metadata) if isinstance(metadata, Mapping) else {},
        )

    def close(self) -> None:
        self._http.close()

    def _post_json(self, stage: str, payload: Dict[str, object]) -> Dict[str, Any]:
        resolved_url = str(self._endpoint.url)
        try:
            response = self._http.post(
                resolved_url,
                headers=self._endpoint.build_headers(),
                json=payload,
                timeout=self._endpoint.timeout_seconds,
            )
        except httpx.TimeoutException as exc:
            raise ExternalServiceError(f"Request to {resolved_url} timed out", stage=stage, retryable=True) from exc
        except httpx.HTTPError as exc:  # pragma: no cover - network runtime
            raise ExternalServiceError(f"HTTP error calling {resolved_url}: {exc}", stage=stage, retryable=True) from exc

        try:
            data = response.json()
        except json.JSONDecodeError as exc:
            if response.status_code >= 400:
                raise ExternalServiceError(
                    f"{resolved_url} returned status {response.status_code}: {response.text}",
                    stage=stage,
                    retryable=response.status_code >= 500,
                ) from exc
            raise ParseFailure(f"Invalid JSON response from {resolved_url}", stage=stage, raw=response.text[:2000]) from exc

        if not isinstance(data, dict):
            raise ParseFailure("Unexpected response payload type", stage=stage, raw=response.text[:2000])
        if response.status_code >= 400 and not data.get("fallback") and not data.get("noData"):
            raise ExternalServiceError(
                f"{resolved_url} returned status {response.status_code}: {data.get('error') or response.text}",
                stage=stage,
                retryable=response.status_code >= 500,
            )
        return data
