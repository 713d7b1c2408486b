"""
Prometheus-compatible metrics for observability.

Tracks ledger activity:
- Purchases recorded (created vs. updated customers)
- Duplicate-creation conflicts and how they were resolved
- Rejected purchases by reason
- Ranking requests

Usage:
    from loyalty_ledger.lib.metrics import get_metrics_collector
    
    metrics = get_metrics_collector()
    metrics.increment_purchases(outcome="created")
    metrics.increment_conflicts(resolution="retried")
    
    # Export for Prometheus
    prometheus_output = metrics.export_prometheus()
"""

from typing import Dict, Tuple
from threading import Lock


class MetricsCollector:
    """
    Prometheus-style metrics collector for the ledger.
    
    Counters:
    - purchases_recorded_total: Applied purchases (labels: outcome)
    - purchase_conflicts_total: Duplicate-creation conflicts (labels: resolution)
    - purchase_rejections_total: Purchases refused before storage (labels: reason)
    - ranking_requests_total: Rankings computed (labels: filtered)
    
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
        """Thread-safe increment of counter."""
        key = self._get_counter_key(metric_name, labels)
        with self._lock:
            self._counters[key] = self._counters.get(key, 0) + amount
    
    def _get_value(self, metric_name: str, labels: Dict[str, str]) -> int:
        """Get current value of counter."""
        key = self._get_counter_key(metric_name, labels)
        with self._lock:
            return self._counters.get(key, 0)
    
    # ===== Purchase Metrics =====
    
    def increment_purchases(self, outcome: str, amount: int = 1):
        """
        Increment recorded purchases counter.
        
        Args:
            outcome: "created" for a new customer, "updated" for an existing one
            amount: Increment amount (default 1)
        """
        self._increment("purchases_recorded_total", {"outcome": outcome.lower()}, amount)
    
    def increment_conflicts(self, resolution: str, amount: int = 1):
        """Increment duplicate-creation conflicts (retried or surfaced)."""
        self._increment("purchase_conflicts_total", {"resolution": resolution.lower()}, amount)
    
    def increment_rejections(self, reason: str, amount: int = 1):
        """Increment purchases rejected by validation or storage failure."""
        self._increment("purchase_rejections_total", {"reason": reason.lower()}, amount)
    
    # ===== Ranking Metrics =====
    
    def increment_rankings(self, filtered: bool, amount: int = 1):
        """Increment ranking requests, split by whether a date filter was applied."""
        self._increment("ranking_requests_total", {"filtered": str(filtered).lower()}, amount)
    
    # ===== Export =====
    
    def export_prometheus(self) -> str:
        """
        Export all metrics in Prometheus text format.
        
        Returns:
            Prometheus-compatible text output
        """
        output_lines = []
        
        # Group counters by metric name
        metrics_by_name: Dict[str, list] = {}
        with self._lock:
            for (metric_name, labels_tuple), value in self._counters.items():
                if metric_name not in metrics_by_name:
                    metrics_by_name[metric_name] = []
                metrics_by_name[metric_name].append((dict(labels_tuple), value))
        
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
        """Get help text for metric."""
        help_texts = {
            "purchases_recorded_total": "Total number of purchases applied to customer aggregates",
            "purchase_conflicts_total": "Total number of concurrent duplicate-creation conflicts",
            "purchase_rejections_total": "Total number of purchases rejected before commit",
            "ranking_requests_total": "Total number of customer rankings computed",
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
