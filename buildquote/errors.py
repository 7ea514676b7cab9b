"""
Domain errors raised by the engine and the project service.

Routers translate these into HTTP responses. Planner failures and dangling
catalog references are never raised; they degrade to a logged no-op or a
zero contribution.
"""


class NotFoundError(LookupError):
    """Project, element, product result or summary does not resolve."""


class RuleViolationError(ValueError):
    """A business precondition failed."""


class PermissionDeniedError(RuleViolationError):
    """The acting user may not perform this action."""
