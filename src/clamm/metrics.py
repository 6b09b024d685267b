"""
Concentrated Liquidity Pool Metrics

Prometheus metrics for swaps, liquidity management, fee accrual and
pool health. A pool without a PoolMetrics instance records nothing.
"""

from prometheus_client import REGISTRY, Counter, Gauge, Histogram


class PoolMetrics:
    """Metrics for concentrated liquidity pool operations."""

    def __init__(self, registry=None):
        self.registry = registry or REGISTRY

        # Swap metrics
        self.swaps_total = Counter(
            'clamm_swaps_total',
            'Total number of swaps executed',
            ['pool', 'direction'],
            registry=self.registry
        )

        self.swap_volume = Counter(
            'clamm_swap_volume_total',
            'Total swap input volume in base units',
            ['pool', 'token'],
            registry=self.registry
        )

        self.swap_latency = Histogram(
            'clamm_swap_latency_seconds',
            'Swap execution latency',
            buckets=[0.0005, 0.001, 0.005, 0.01, 0.05, 0.1, 0.5],
            registry=self.registry
        )

        self.ticks_crossed = Histogram(
            'clamm_swap_ticks_crossed',
            'Initialized ticks crossed per swap',
            buckets=[0, 1, 2, 5, 10, 25, 50, 100],
            registry=self.registry
        )

        # Fee metrics
        self.fees_collected = Counter(
            'clamm_fees_collected_total',
            'Total LP fees credited to fee growth',
            ['pool', 'token'],
            registry=self.registry
        )

        self.protocol_fees = Counter(
            'clamm_protocol_fees_total',
            'Total fees routed to the protocol ledger',
            ['pool', 'token'],
            registry=self.registry
        )

        self.flash_loans = Counter(
            'clamm_flash_loans_total',
            'Flash loans repaid',
            ['pool'],
            registry=self.registry
        )

        # Liquidity metrics
        self.liquidity_added = Counter(
            'clamm_liquidity_added_total',
            'Total liquidity minted into positions',
            ['pool'],
            registry=self.registry
        )

        self.liquidity_removed = Counter(
            'clamm_liquidity_removed_total',
            'Total liquidity burned from positions',
            ['pool'],
            registry=self.registry
        )

        self.active_liquidity = Gauge(
            'clamm_active_liquidity',
            'In-range liquidity',
            ['pool'],
            registry=self.registry
        )

        self.staked_liquidity = Gauge(
            'clamm_staked_liquidity',
            'In-range staked liquidity',
            ['pool'],
            registry=self.registry
        )

        self.current_tick = Gauge(
            'clamm_current_tick',
            'Current pool tick',
            ['pool'],
            registry=self.registry
        )

        # Failure metrics
        self.operation_failures = Counter(
            'clamm_operation_failures_total',
            'Rejected pool operations',
            ['pool', 'operation', 'error'],
            registry=self.registry
        )

        self.reward_query_failures = Counter(
            'clamm_reward_query_failures_total',
            'Reward emission source queries that failed',
            ['pool'],
            registry=self.registry
        )


# Singleton instance
_pool_metrics_instance = None


def get_pool_metrics(registry=None):
    """Get or create singleton pool metrics instance."""
    global _pool_metrics_instance
    if _pool_metrics_instance is None:
        _pool_metrics_instance = PoolMetrics(registry=registry)
    return _pool_metrics_instance
