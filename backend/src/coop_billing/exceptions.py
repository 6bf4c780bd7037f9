"""Billing domain errors.

All of them subclass ValueError so API handlers that already translate
ValueError keep working; the subclasses only sharpen the HTTP status.
"""


class BillingError(ValueError):
    """Base class for billing failures surfaced to callers."""

    code = "billing_error"


class NotFoundError(BillingError):
    """A referenced organization, member, invoice, payment or template is absent."""

    code = "not_found"


class PreconditionFailedError(BillingError):
    """The request is well-formed but the current state forbids it."""

    code = "precondition_failed"


class ConflictError(BillingError):
    """A concurrent transaction kept winning the race for the same rows."""

    code = "concurrent_update"


class LedgerImmutableError(BillingError):
    """Seat ledger entries are append-only."""

    code = "ledger_immutable"
