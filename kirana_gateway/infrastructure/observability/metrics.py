"""Prometheus metrics for ledger activity, deliveries, invoicing and notifications"""

from prometheus_client import Counter, Histogram

# Ledger metrics
credit_transaction_counter = Counter(
    "kirana_credit_transactions_total",
    "Credit ledger transactions",
    ["type", "outcome"],  # outcome: applied | rejected
)

credit_score_histogram = Histogram(
    "kirana_credit_score",
    "Credit scores computed",
    buckets=[40, 60, 70, 80, 90, 100],
)

# Delivery metrics
delivery_status_counter = Counter(
    "kirana_delivery_status_changes_total",
    "Delivery status transitions",
    ["status"],
)

# Invoice metrics
invoice_generated_counter = Counter(
    "kirana_invoices_generated_total",
    "Invoices created",
    ["source"],  # manual | subscription
)

invoice_generation_failures_counter = Counter(
    "kirana_invoice_generation_failures_total",
    "Auto-invoices that failed after delivery completion",
)

# Notification metrics
notification_latency_histogram = Histogram(
    "notification_latency_seconds",
    "WhatsApp API response time",
    buckets=[0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
)

notification_failure_counter = Counter(
    "notification_failures_total",
    "Failed WhatsApp notification attempts",
)

# Service health
request_duration_histogram = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency",
    ["method", "endpoint", "status"],
)


def record_credit_transaction(transaction_type: str, applied: bool) -> None:
    outcome = "applied" if applied else "rejected"
    credit_transaction_counter.labels(type=transaction_type, outcome=outcome).inc()


def record_credit_score(score: int) -> None:
    credit_score_histogram.observe(score)
