"""
Signal Clustering.

Groups delivered signals by domain within a 4 hour creation window so digests can
present "4 competitive signals" instead of four rows. Clusters hold at most 5 signals.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any, Callable, Iterable

from ..core.formatters import get_utc_now
from ..core.logging import get_logger
from .models import URGENCY_ORDER, Domain, IntelligentSignal, NotificationCluster, Urgency, make_id

logger = get_logger(__name__)

CLUSTER_WINDOW = timedelta(hours=4)
MAX_CLUSTER_SIZE = 5


def _is_valid(signal: Any) -> bool:
    return isinstance(signal, IntelligentSignal) and isinstance(signal.sis, int)


def cluster_urgency(signals: Iterable[IntelligentSignal]) -> Urgency:
    """Most urgent member urgency; digest when no member has one."""
    best = len(URGENCY_ORDER) - 1
    for signal in signals:
        if signal is None or signal.urgency is None:
            continue
        best = min(best, signal.urgency.order)
    return URGENCY_ORDER[best]


def cluster_title(count: int, domain: Domain) -> str:
    return f"{count} {domain.value.lower()} signals"


class ClusterBuilder:
    """Finds, creates and extends notification clusters."""

    def __init__(self, clock: Callable[[], datetime] = get_utc_now) -> None:
        self._clock = clock

    def find_or_create_cluster(
        self,
        signal: IntelligentSignal,
        existing: list[NotificationCluster],
    ) -> NotificationCluster | None:
        """
        Find the cluster a signal should join.

        Only the most recent cluster for the signal's domain inside the window is
        considered; it qualifies while it has fewer than MAX_CLUSTER_SIZE members.

        Returns:
            The joinable cluster, or None when a new one must be started
        """
        now = self._clock()
        recent = [
            c
            for c in existing
            if c.domain == signal.domain and now - c.created_at < CLUSTER_WINDOW
        ]
        if not recent:
            return None

        latest = max(recent, key=lambda c: c.created_at)
        return latest if latest.size < MAX_CLUSTER_SIZE else None

    def create_cluster(
        self,
        signals: list[IntelligentSignal] | None,
        domain: Domain,
    ) -> NotificationCluster | None:
        """
        Build a cluster from signals.

        Returns:
            None for an empty input or when no signal is valid
        """
        if not signals:
            return None

        valid = [s for s in signals if _is_valid(s)]
        if not valid:
            return None

        now = self._clock()
        return NotificationCluster(
            id=make_id("cluster", now),
            title=cluster_title(len(valid), domain),
            domain=domain,
            signals=valid,
            top_sis=max(s.sis for s in valid),
            urgency=cluster_urgency(valid),
            created_at=now,
        )

    def assign(
        self,
        signal: IntelligentSignal,
        clusters: list[NotificationCluster],
    ) -> NotificationCluster | None:
        """
        Add a delivered signal to its cluster, starting one when needed.

        Mutates `clusters` and stamps the signal's cluster_id/cluster_count.
        """
        cluster = self.find_or_create_cluster(signal, clusters)
        if cluster is None:
            cluster = self.create_cluster([signal], signal.domain)
            if cluster is None:
                return None
            clusters.append(cluster)
        else:
            cluster.signals.append(signal)
            cluster.top_sis = max(cluster.top_sis, signal.sis)
            cluster.urgency = cluster_urgency(cluster.signals)
            cluster.title = cluster_title(cluster.size, cluster.domain)

        signal.cluster_id = cluster.id
        signal.cluster_count = cluster.size
        logger.debug("Signal %s joined %s (%d)", signal.id, cluster.id, cluster.size)
        return cluster

    def build_digest(self, signals: list[IntelligentSignal]) -> list[NotificationCluster]:
        """
        Group signals into domain clusters for digest presentation.

        Signals are taken in descending SIS order; clusters are returned by top SIS.
        """
        by_domain: dict[Domain, list[IntelligentSignal]] = {}
        for signal in sorted((s for s in signals if _is_valid(s)), key=lambda s: -s.sis):
            by_domain.setdefault(signal.domain, []).append(signal)

        digest: list[NotificationCluster] = []
        for domain, members in by_domain.items():
            for start in range(0, len(members), MAX_CLUSTER_SIZE):
                cluster = self.create_cluster(members[start : start + MAX_CLUSTER_SIZE], domain)
                if cluster is not None:
                    digest.append(cluster)

        digest.sort(key=lambda c: c.top_sis, reverse=True)
        return digest
