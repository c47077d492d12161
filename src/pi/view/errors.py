"""Exception types raised by the view runtime.

Only :class:`ConfigValidationError` and :class:`UnhandledMessageError` are
meant to reach callers.  The others are raised internally and recovered at
the node that failed.
"""

from __future__ import annotations


class ViewError(Exception):
    """Base class for every error raised by ``pi.view``."""


class ExpressionError(ViewError):
    """A ``{{ }}`` expression failed to compile or evaluate."""

    def __init__(self, message: str, expression: str = "") -> None:
        super().__init__(message)
        self.expression = expression


class RenderError(ViewError):
    """A component's ``render`` call failed."""

    def __init__(self, node_id: str, cause: BaseException) -> None:
        super().__init__(f"{node_id}: {cause}")
        self.node_id = node_id
        self.cause = cause


class UnknownComponentTypeError(ViewError):
    """A node references a component type with no registered factory."""

    def __init__(self, component_type: str) -> None:
        super().__init__(f"unknown component type: {component_type}")
        self.component_type = component_type


class ConfigValidationError(ViewError):
    """The declarative tree is structurally invalid.

    ``errors`` holds one ``"path: message"`` string per problem found.
    """

    def __init__(self, errors: list[str]) -> None:
        summary = "; ".join(errors[:5])
        if len(errors) > 5:
            summary += f" (+{len(errors) - 5} more)"
        super().__init__(f"invalid view config: {summary}")
        self.errors = list(errors)


class UnhandledMessageError(ViewError, TypeError):
    """A message type has no entry in the runtime's dispatch table."""

    def __init__(self, message: object) -> None:
        super().__init__(f"no handler for message type {type(message).__name__}")
        self.message = message
