"""
Ledger Metrics for lockrelease

Prometheus metrics for schedule creation, releases and checkpoint writes.
"""

from prometheus_client import REGISTRY, Counter, Gauge


class LedgerMetrics:
    """Metrics for schedule and checkpoint operations."""

    def __init__(self, registry=None):
        self.registry = registry or REGISTRY

        # Schedule metrics
        self.schedules_created = Counter(
            'lockrelease_schedules_created_total',
            'Total number of release schedules created',
            ['asset'],
            registry=self.registry
        )

        self.schedule_failures = Counter(
            'lockrelease_schedule_failures_total',
            'Schedule creations rejected',
            ['reason'],
            registry=self.registry
        )

        self.amount_locked = Counter(
            'lockrelease_amount_locked_total',
            'Total units locked into schedules (as received)',
            ['asset'],
            registry=self.registry
        )

        self.transfer_shortfall = Counter(
            'lockrelease_transfer_shortfall_total',
            'Units requested but not received at schedule creation',
            ['asset'],
            registry=self.registry
        )

        # Release metrics
        self.releases = Counter(
            'lockrelease_releases_total',
            'Successful release operations',
            ['asset'],
            registry=self.registry
        )

        self.amount_released = Counter(
            'lockrelease_amount_released_total',
            'Total units released to recipients',
            ['asset'],
            registry=self.registry
        )

        self.release_failures = Counter(
            'lockrelease_release_failures_total',
            'Release operations rejected',
            ['reason'],
            registry=self.registry
        )

        # Checkpoint metrics
        self.checkpoint_writes = Counter(
            'lockrelease_checkpoint_writes_total',
            'Checkpoint ledger writes',
            ['operation'],
            registry=self.registry
        )

        self.checkpoint_clock = Gauge(
            'lockrelease_checkpoint_clock',
            'Latest marker observed by the checkpoint ledger',
            registry=self.registry
        )


_ledger_metrics_instance = None


def get_ledger_metrics(registry=None):
    """Get or create singleton ledger metrics instance."""
    global _ledger_metrics_instance
    if _ledger_metrics_instance is None:
        _ledger_metrics_instance = LedgerMetrics(registry=registry)
    return _ledger_metrics_instance
