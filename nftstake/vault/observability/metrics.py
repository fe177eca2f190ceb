# MIT License
# Copyright (c) 2025 Hashborn

"""
Prometheus Metrics Exporter

Exports vault metrics in Prometheus format.

Metrics:
- Deposited / exiting token counts
- Current reward rate, checkpoint count, pause flag
- Operation and failure counters per action
- Total rewards paid out
"""

from prometheus_client import Counter, Gauge, CollectorRegistry

# Create registry for metrics
metrics_registry = CollectorRegistry()

# ═══════════════════════════════════════════════════════════════════
# CUSTODY METRICS
# ═══════════════════════════════════════════════════════════════════

tokens_deposited = Gauge(
    'nftstake_tokens_deposited',
    'Number of tokens currently accruing rewards',
    registry=metrics_registry
)

tokens_exiting = Gauge(
    'nftstake_tokens_exiting',
    'Number of tokens in the unbonding period',
    registry=metrics_registry
)

# ═══════════════════════════════════════════════════════════════════
# RATE METRICS
# ═══════════════════════════════════════════════════════════════════

reward_rate = Gauge(
    'nftstake_reward_rate',
    'Reward rate currently in force (per time unit per token)',
    registry=metrics_registry
)

rate_checkpoints = Gauge(
    'nftstake_rate_checkpoints',
    'Number of recorded rate checkpoints',
    registry=metrics_registry
)

paused = Gauge(
    'nftstake_paused',
    'Whether staking is paused (1) or open (0)',
    registry=metrics_registry
)

# ═══════════════════════════════════════════════════════════════════
# OPERATION METRICS
# ═══════════════════════════════════════════════════════════════════

operations_total = Counter(
    'nftstake_operations_total',
    'Total number of successful vault operations',
    ['action'],
    registry=metrics_registry
)

operation_failures_total = Counter(
    'nftstake_operation_failures_total',
    'Total number of rejected vault operations',
    ['action', 'error'],
    registry=metrics_registry
)

rewards_paid_total = Counter(
    'nftstake_rewards_paid_total',
    'Total reward amount paid out',
    registry=metrics_registry
)


# ═══════════════════════════════════════════════════════════════════
# HELPER FUNCTIONS
# ═══════════════════════════════════════════════════════════════════

def record_operation(action: str) -> None:
    operations_total.labels(action=action).inc()


def record_failure(action: str, error: str) -> None:
    operation_failures_total.labels(action=action, error=error).inc()


def record_payout(amount: int) -> None:
    if amount > 0:
        rewards_paid_total.inc(amount)


def update_metrics(controller):
    """
    Update all gauges from controller state.
    Called when metrics are scraped. Counters are updated as operations happen.

    Args:
        controller: StakingController instance
    """
    from ...protocol.types.common import DepositState

    tokens_deposited.set(controller.registry.count_by_state(DepositState.DEPOSITED))
    tokens_exiting.set(controller.registry.count_by_state(DepositState.EXITING))

    reward_rate.set(controller.ledger.current_rate)
    rate_checkpoints.set(len(controller.ledger))
    paused.set(1 if controller.is_paused() else 0)
