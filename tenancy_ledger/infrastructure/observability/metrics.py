"""Prometheus metrics for allocations, settlements, notifications and removals"""

from decimal import Decimal

from prometheus_client import Counter, Histogram

# Allocation metrics
allocation_counter = Counter(
    "tenancy_allocations_total",
    "Payment events allocated to ledgers",
    ["flow"],  # monthly | extra | deposit | correction | final_period | clearance
)

allocated_amount_counter = Counter(
    "tenancy_allocated_amount_total",
    "Money applied to charge lines",
    ["flow"],
)

overpay_amount_counter = Counter(
    "tenancy_overpay_amount_total",
    "Money held as overpay after allocation",
    ["flow"],
)

payment_amount_histogram = Histogram(
    "tenancy_payment_amount",
    "Incoming payment amounts",
    ["flow"],
    buckets=[500, 1000, 2500, 5000, 10000, 25000, 50000, 100000],
)

# Exit metrics
settlement_counter = Counter(
    "tenancy_settlements_total",
    "Exit clearance settlements",
    ["outcome"],  # cleared | deficit
)

removal_counter = Counter(
    "tenancy_removals_total",
    "Tenant removals",
    ["trigger", "outcome"],  # trigger: manual | scheduled; outcome: removed | deferred
)

# Conflict metrics
conflict_counter = Counter(
    "tenancy_concurrency_conflicts_total",
    "Units of work aborted by concurrent writers",
)

# Notification metrics
notification_latency_histogram = Histogram(
    "notification_latency_seconds",
    "Mail webhook response time",
    buckets=[0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
)

notification_failure_counter = Counter(
    "notification_failures_total",
    "Failed notification deliveries",
)

# Service health
request_duration_histogram = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency",
    ["method", "endpoint", "status"],
)


def record_allocation(flow: str, amount: Decimal, applied: Decimal, overpay: Decimal) -> None:
    """Record one payment event and where its money went"""
    allocation_counter.labels(flow=flow).inc()
    payment_amount_histogram.labels(flow=flow).observe(float(amount))
    allocated_amount_counter.labels(flow=flow).inc(float(applied))
    if overpay > 0:
        overpay_amount_counter.labels(flow=flow).inc(float(overpay))


def record_settlement(cleared: bool) -> None:
    settlement_counter.labels(outcome="cleared" if cleared else "deficit").inc()
