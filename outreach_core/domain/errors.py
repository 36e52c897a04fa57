"""Exception hierarchy for webhook ingestion and analytics."""

from typing import Optional, Sequence


class ResolutionError(Exception):
    """A webhook call that can never resolve; retrying will not help."""

    retryable = False


class UnknownAccount(ResolutionError):
    """No account is provisioned for the routing key in the call's path."""

    def __init__(self, routing_key: str):
        self.routing_key = routing_key
        super().__init__(
            f"Account with routing key {routing_key} not found. "
            "Accounts must be provisioned before they receive webhooks."
        )


class MissingRequiredField(ResolutionError):
    """The payload lacks one or more fields needed to resolve it."""

    def __init__(self, fields: Sequence[str]):
        self.fields = list(fields)
        super().__init__(f"Invalid webhook payload: missing {', '.join(self.fields)}")


class PayloadTooLarge(ResolutionError):
    """The serialized payload exceeds the configured ceiling."""

    def __init__(self, size: int, limit: int):
        self.size = size
        self.limit = limit
        super().__init__(f"Webhook payload too large: {size} bytes (max {limit} bytes)")


class DeliveryFailed(Exception):
    """A delivery that was abandoned after its attempt budget.

    Wraps the last underlying error; ``__cause__`` is set to it as well.
    """

    def __init__(
        self,
        original: BaseException,
        attempts: int,
        correlation_id: str,
        severity: str,
        archive_id: Optional[int] = None,
        notification_id: Optional[int] = None,
    ):
        self.original = original
        self.attempts = attempts
        self.correlation_id = correlation_id
        self.severity = severity
        self.archive_id = archive_id
        self.notification_id = notification_id
        super().__init__(str(original))


class AnalyticsTimeout(Exception):
    """An analytics query ran past the caller's deadline."""


class NotFoundError(Exception):
    """A referenced record does not exist."""
