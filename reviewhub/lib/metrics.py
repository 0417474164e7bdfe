"""
Prometheus-compatible metrics for observability.

Tracks:
- Review sync results (inserted / updated)
- Approvals (single / bulk)
- Cache hits, misses and backend errors
- Channel fetches by data source (api / fixture / builtin)

Usage:
    from reviewhub.lib.metrics import get_metrics_collector

    metrics = get_metrics_collector()
    metrics.increment_cache("hit", namespace="analytics")

    # Export for Prometheus
    prometheus_output = metrics.export_prometheus()
"""

from typing import Dict, Tuple
from threading import Lock


class MetricsCollector:
    """
    Prometheus-style metrics collector.

    Counters:
    - reviews_synced_total: Reviews written by sync (labels: result)
    - reviews_approved_total: Reviews approved (labels: mode)
    - cache_requests_total: Cache lookups (labels: namespace, result)
    - channel_fetch_total: Channel fetches (labels: channel, source)

    Thread-safe for concurrent increments.
    """

    def __init__(self):
        self._lock = Lock()

        # Counters: key = (metric_name, labels_tuple), value = count
        self._counters: Dict[Tuple[str, Tuple[Tuple[str, str], ...]], int] = {}

    def _get_counter_key(self, metric_name: str, labels: Dict[str, str]) -> Tuple[str, Tuple[Tuple[str, str], ...]]:
        """Generate unique key for counter with sorted labels."""
        sorted_labels = tuple(sorted(labels.items()))
        return (metric_name, sorted_labels)

    def _increment(self, metric_name: str, labels: Dict[str, str], amount: int = 1):
        key = self._get_counter_key(metric_name, labels)
        with self._lock:
            self._counters[key] = self._counters.get(key, 0) + amount

    def _get_value(self, metric_name: str, labels: Dict[str, str]) -> int:
        key = self._get_counter_key(metric_name, labels)
        with self._lock:
            return self._counters.get(key, 0)

    # ===== Review Metrics =====

    def increment_synced(self, result: str, amount: int = 1):
        """
        Increment synced reviews counter.

        Args:
            result: inserted or updated
            amount: Increment amount (default 1)
        """
        if amount <= 0:
            return
        self._increment("reviews_synced_total", {"result": result.lower()}, amount)

    def increment_approved(self, mode: str = "single", amount: int = 1):
        """Increment approvals counter (mode: single, bulk, update)."""
        if amount <= 0:
            return
        self._increment("reviews_approved_total", {"mode": mode.lower()}, amount)

    # ===== Cache Metrics =====

    def increment_cache(self, result: str, namespace: str = "default", amount: int = 1):
        """
        Increment cache lookups counter.

        Args:
            result: hit, miss or error
            namespace: Key prefix the lookup belongs to (reviews, analytics)
            amount: Increment amount
        """
        labels = {
            "namespace": namespace.lower(),
            "result": result.lower(),
        }
        self._increment("cache_requests_total", labels, amount)

    # ===== Channel Metrics =====

    def increment_channel_fetch(self, source: str, channel: str = "hostaway", amount: int = 1):
        """Increment channel fetches by where the data came from."""
        labels = {
            "channel": channel.lower(),
            "source": source.lower(),
        }
        self._increment("channel_fetch_total", labels, amount)

    # ===== Export =====

    def export_prometheus(self) -> str:
        """
        Export all metrics in Prometheus text format.

        Returns:
            Prometheus-compatible text output
        """
        output_lines = []

        metrics_by_name: Dict[str, list] = {}
        with self._lock:
            for (metric_name, labels_tuple), value in self._counters.items():
                metrics_by_name.setdefault(metric_name, []).append((dict(labels_tuple), value))

        for metric_name in sorted(metrics_by_name.keys()):
            help_text = self._get_help_text(metric_name)
            output_lines.append(f"# HELP {metric_name} {help_text}")
            output_lines.append(f"# TYPE {metric_name} counter")

            for labels_dict, value in sorted(metrics_by_name[metric_name], key=lambda x: str(x[0])):
                labels_str = ",".join([f'{k}="{v}"' for k, v in sorted(labels_dict.items())])
                output_lines.append(f"{metric_name}{{{labels_str}}} {value}")

            output_lines.append("")  # Blank line between metrics

        return "\n".join(output_lines)

    def _get_help_text(self, metric_name: str) -> str:
        help_texts = {
            "reviews_synced_total": "Total number of reviews written by channel sync",
            "reviews_approved_total": "Total number of reviews approved for public display",
            "cache_requests_total": "Total number of cache lookups by result",
            "channel_fetch_total": "Total number of channel fetches by data source",
        }
        return help_texts.get(metric_name, "Counter metric")

    def get_counter_value(self, metric_name: str, labels: Dict[str, str]) -> int:
        """
        Get current value of a specific counter.

        Args:
            metric_name: Name of the metric
            labels: Label filters

        Returns:
            Current counter value
        """
        return self._get_value(metric_name, labels)

    def reset_all(self):
        """Reset all counters (for testing)."""
        with self._lock:
            self._counters.clear()


# Global singleton instance
_metrics_collector: MetricsCollector | None = None
_metrics_lock = Lock()


def get_metrics_collector() -> MetricsCollector:
    """
    Get global metrics collector singleton.

    Returns:
        MetricsCollector instance
    """
    global _metrics_collector
    if _metrics_collector is None:
        with _metrics_lock:
            if _metrics_collector is None:
                _metrics_collector = MetricsCollector()
    return _metrics_collector


def reset_metrics():
    """Reset global metrics collector (for testing)."""
    global _metrics_collector
    with _metrics_lock:
        if _metrics_collector is not None:
            _metrics_collector.reset_all()
