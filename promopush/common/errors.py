"""Error taxonomy for the push delivery core."""


class PushCoreError(Exception):
    """Base class for all push core failures."""


class ValidationError(PushCoreError):
    """Malformed subscription or payload; rejected immediately and never retried."""


class NotFoundError(PushCoreError):
    """Referenced row does not exist."""


class DeliveryError(PushCoreError):
    """One push transport attempt failed."""


class TransientDeliveryError(DeliveryError):
    """Network failure, transport 5xx, timeout or quota; eligible for retry."""


class PermanentDeliveryError(DeliveryError):
    """Endpoint unregistered or gone; the subscription should be removed."""


class AggregationError(PushCoreError):
    """Delivery log row that cannot be folded into an analytics snapshot."""


class InvalidTransitionError(PushCoreError, ValueError):
    """Retry intent status change not allowed by the state machine."""
