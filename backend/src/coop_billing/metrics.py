"""Business metrics for Prometheus monitoring."""
from prometheus_client import Counter

# Seat metrics
seats_assigned_total = Counter(
    "seats_assigned_total",
    "Total premium seats assigned to members",
    labelnames=["seat_type"],  # paid, sponsored
)

seats_unassigned_total = Counter(
    "seats_unassigned_total",
    "Total premium seats released by members",
    labelnames=["seat_type"],
)

# Invoice and payment metrics
invoices_created_total = Counter(
    "invoices_created_total",
    "Total invoices created",
    labelnames=["purpose"],  # seat_purchase, plan_change
)

payments_confirmed_total = Counter(
    "payments_confirmed_total",
    "Total payments confirmed",
    labelnames=["purpose"],
)

payment_amount_total = Counter(
    "payment_amount_total",
    "Total confirmed payment amount in billing currency units",
    labelnames=["currency"],
)

# Subscription metrics
subscriptions_provisioned_total = Counter(
    "subscriptions_provisioned_total",
    "Total subscriptions created on first access",
)

trials_expired_total = Counter(
    "trials_expired_total",
    "Total trial subscriptions paused after their trial window ended",
)
