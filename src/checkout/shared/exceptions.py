"""Domain exceptions shared across the checkout context.

They extend Protean's ValidationError so command handlers and the FastAPI
exception handlers treat them as client errors with a ``{field: [msg]}``
payload.
"""

from protean.exceptions import ValidationError


class InvalidAmount(ValidationError):
    """A refund amount is not positive or exceeds the order total."""


class StateConflictError(ValidationError):
    """The requested transition is not allowed from the current state."""
