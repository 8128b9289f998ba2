"""Supabase-backed persistence for facts, clusters and update history."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, List, Optional

from src.shared.db.connection import SupabaseConfig as SharedSupabaseConfig
from src.shared.db.connection import get_supabase_client

from ..contracts.config import SupabaseSettings
from ..contracts.facts import Article, Cluster, Fact, UpdateRecord
from ..errors import DueWorkUnavailableError, LeaseLost, NotFoundError, PersistenceError

logger = logging.getLogger(__name__)

_FACT_COLUMNS = (
    "id,article_id,pulse_type,specific_type,selected_text,current_value,static_prefix,"
    "static_suffix,surrounding_sentences,article_context,prompt_template,update_frequency,"
    "last_updated,next_update,update_count,update_priority,source_url,semantic_cluster_id,"
    "is_primary_in_cluster,confidence_score,is_active"
)
_CLUSTER_COLUMNS = (
    "id,cluster_name,cluster_type,update_priority,semantic_rule,primary_pulse_id,"
    "is_active,updated_at"
)
_CACHE_RETENTION = timedelta(days=1)


def _rows(response: Any) -> List[Dict[str, Any]]:
    return [row for row in (getattr(response, "data", None) or []) if row]


def _read(query: Any, action: str) -> Any:
    try:
        return query.execute()
    except Exception as exc:  # noqa: BLE001
        raise PersistenceError(f"Failed to {action}: {exc}") from exc


class FactStore:
    """Thin wrapper around the Supabase SDK exposing the fact store operations."""

    def __init__(self, settings: SupabaseSettings, *, client: Any = None) -> None:
        self.settings = settings
        self._client = client

    @property
    def client(self):
        """Return the underlying Supabase client, creating it on demand."""

        if self._client is None:
            config = SharedSupabaseConfig(
                url=str(self.settings.url),
                key=self.settings.key,
                schema=self.settings.db_schema,
            )
            self._client = get_supabase_client(config)
        return self._client

    def _facts(self):
        return self.client.table(self.settings.fact_table)

    # ------------------------------------------------------------------
    # Due-work reads
    # ------------------------------------------------------------------

    def fetch_due_clusters(self, now: datetime) -> List[Cluster]:
        """Return active clusters whose active primary fact is due."""

        try:
            response = (
                self.client.table(self.settings.cluster_table)
                .select(f"{_CLUSTER_COLUMNS},{self.settings.fact_table}!inner({_FACT_COLUMNS})")
                .eq("is_active", True)
                .eq(f"{self.settings.fact_table}.is_active", True)
                .eq(f"{self.settings.fact_table}.is_primary_in_cluster", True)
                .lte(f"{self.settings.fact_table}.next_update", now.isoformat())
                .order("update_priority", desc=True)
                .execute()
            )
        except Exception as exc:  # noqa: BLE001
            raise DueWorkUnavailableError(f"Failed to fetch due clusters: {exc}") from exc
        return [Cluster.from_row(self._normalise_join(row)) for row in _rows(response)]

    def fetch_due_facts(self, now: datetime) -> List[Fact]:
        """Return active unclustered facts whose next-due time has passed."""

        try:
            response = (
                self._facts()
                .select(_FACT_COLUMNS)
                .eq("is_active", True)
                .is_("semantic_cluster_id", "null")
                .lte("next_update", now.isoformat())
                .order("update_priority", desc=True)
                .execute()
            )
        except Exception as exc:  # noqa: BLE001
            raise DueWorkUnavailableError(f"Failed to fetch due facts: {exc}") from exc
        return [Fact.from_row(row) for row in _rows(response)]

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def get_fact(self, fact_id: str) -> Fact:
        response = _read(self._facts().select(_FACT_COLUMNS).eq("id", fact_id).limit(1), f"read fact {fact_id}")
        rows = _rows(response)
        if not rows:
            raise NotFoundError("fact", fact_id)
        return Fact.from_row(rows[0])

    def get_cluster(self, cluster_id: str) -> Cluster:
        """Return a cluster with its primary fact attached, regardless of due-ness."""

        response = _read(
            self.client.table(self.settings.cluster_table)
            .select(f"{_CLUSTER_COLUMNS},{self.settings.fact_table}({_FACT_COLUMNS})")
            .eq("id", cluster_id)
            .limit(1),
            f"read cluster {cluster_id}",
        )
        rows = _rows(response)
        if not rows:
            raise NotFoundError("cluster", cluster_id)
        return Cluster.from_row(self._normalise_join(rows[0]))

    def fetch_cluster_members(self, cluster_id: str) -> List[Fact]:
        response = _read(
            self._facts().select(_FACT_COLUMNS).eq("semantic_cluster_id", cluster_id).order("id"),
            f"read members of cluster {cluster_id}",
        )
        return [Fact.from_row(row) for row in _rows(response)]

    def fetch_article(self, article_id: str) -> Article:
        response = _read(
            self.client.table(self.settings.article_table).select("*").eq("id", article_id).limit(1),
            f"read article {article_id}",
        )
        rows = _rows(response)
        if not rows:
            raise NotFoundError("article", article_id)
        return Article.from_row(rows[0])

    def fetch_pending_updates(self, article_id: str) -> List[UpdateRecord]:
        """Return pending, applied update records for facts of *article_id*, oldest first."""

        response = _read(
            self.client.table(self.settings.history_table)
            .select(f"*,{self.settings.fact_table}!inner(article_id)")
            .eq(f"{self.settings.fact_table}.article_id", article_id)
            .eq("validation_status", "pending")
            .eq("outcome", "updated")
            .order("created_at"),
            f"read pending updates for article {article_id}",
        )
        return [UpdateRecord.from_row(row) for row in _rows(response)]

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def update_fact(self, fact_id: str, fields: Dict[str, Any], *, lease_until: Optional[datetime] = None) -> None:
        """Write *fields* to one fact row; raise PersistenceError if nothing changed.

        With *lease_until* the write only lands while the row still carries that
        lease, and LeaseLost is raised when another run has taken it over.
        """

        query = self._facts().update(fields).eq("id", fact_id)
        if lease_until is not None:
            query = query.eq("next_update", lease_until.isoformat())
        try:
            response = query.execute()
        except Exception as exc:  # noqa: BLE001
            raise PersistenceError(f"Failed to update fact {fact_id}: {exc}") from exc
        if not _rows(response):
            if lease_until is not None:
                raise LeaseLost(fact_id)
            raise PersistenceError(f"Fact {fact_id} was not updated (row missing)")

    def restore_fact(self, snapshot: Fact) -> None:
        """Write back the mutable fields captured in *snapshot*."""

        self.update_fact(
            snapshot.id,
            {
                "current_value": snapshot.current_value,
                "last_updated": snapshot.last_refreshed.isoformat() if snapshot.last_refreshed else None,
                "next_update": snapshot.next_due.isoformat() if snapshot.next_due else None,
                "update_count": snapshot.refresh_count,
                "confidence_score": snapshot.confidence,
                "source_url": snapshot.source_url,
            },
        )

    def claim_fact(self, fact_id: str, observed_next_due: Optional[datetime], lease_until: datetime) -> bool:
        """Compare-and-swap ``next_update`` from the observed value to *lease_until*.

        Returns False when another writer changed the row first.
        """

        query = self._facts().update({"next_update": lease_until.isoformat()}).eq("id", fact_id)
        if observed_next_due is None:
            query = query.is_("next_update", "null")
        else:
            query = query.eq("next_update", observed_next_due.isoformat())
        try:
            response = query.execute()
        except Exception as exc:  # noqa: BLE001
            raise PersistenceError(f"Failed to claim fact {fact_id}: {exc}") from exc
        return bool(_rows(response))

    def release_fact(self, fact_id: str, lease_until: datetime, restore_to: Optional[datetime]) -> bool:
        """Undo a claim, only if the lease is still ours."""

        payload = {"next_update": restore_to.isoformat() if restore_to else None}
        try:
            response = (
                self._facts()
                .update(payload)
                .eq("id", fact_id)
                .eq("next_update", lease_until.isoformat())
                .execute()
            )
        except Exception as exc:  # noqa: BLE001
            logger.warning("Failed to release lease on fact %s: %s", fact_id, exc)
            return False
        return bool(_rows(response))

    def touch_cluster(self, cluster_id: str, at: datetime) -> None:
        try:
            (
                self.client.table(self.settings.cluster_table)
                .update({"updated_at": at.isoformat()})
                .eq("id", cluster_id)
                .execute()
            )
        except Exception as exc:  # noqa: BLE001
            raise PersistenceError(f"Failed to stamp cluster {cluster_id}: {exc}") from exc

    def insert_update_records(self, records: Iterable[UpdateRecord]) -> None:
        """Append history rows in one batch."""

        payload = [record.to_row() for record in records]
        if not payload:
            return
        try:
            self.client.table(self.settings.history_table).insert(payload).execute()
        except Exception as exc:  # noqa: BLE001
            raise PersistenceError(f"Failed to insert {len(payload)} update record(s): {exc}") from exc

    def insert_update_record(self, record: UpdateRecord) -> None:
        self.insert_update_records([record])

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    def run_maintenance(self, now: datetime) -> Dict[str, object]:
        """Expire stale cache rows and refresh article statistics; never raises."""

        summary: Dict[str, object] = {"cache_cleanup": "ok", "stats_refresh": "ok"}
        cutoff = (now - _CACHE_RETENTION).isoformat()
        try:
            self.client.table(self.settings.cache_table).delete().lt("expires_at", cutoff).execute()
        except Exception as exc:  # noqa: BLE001
            logger.warning("Cache cleanup failed: %s", exc)
            summary["cache_cleanup"] = f"failed: {exc}"
        try:
            self.client.rpc(self.settings.stats_function, {}).execute()
        except Exception as exc:  # noqa: BLE001
            logger.warning("Article stats refresh failed: %s", exc)
            summary["stats_refresh"] = f"failed: {exc}"
        return summary

    def _normalise_join(self, row: Dict[str, Any]) -> Dict[str, Any]:
        """Expose the joined fact rows under the key Cluster.from_row expects."""

        joined = row.get(self.settings.fact_table)
        if self.settings.fact_table == "pulses" or joined is None:
            return row
        normalised = dict(row)
        normalised["pulses"] = joined
        return normalised
