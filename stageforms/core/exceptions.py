"""
Engine-wide exception hierarchy.

Every store raises one of these types so that the orchestration layer and
the CLI can map failures to user-facing messages in a single place
(see ``stageforms.utils.errors``).

Usage:
    from stageforms.core.exceptions import NotFoundError, ValidationError

    raise NotFoundError(resource="Stage", resource_id="42", scope="category=1")
    raise ValidationError("Stage name is required", details={"name": "blank"})
"""


class NotFoundError(Exception):
    """Raised when a category, stage, field or version id does not exist.

    Args:
        resource: Human-readable record name (e.g. "Stage", "FormVersion").
        resource_id: The id that was looked up.
        scope: Optional owning scope, e.g. the category the stage was searched in.
    """

    def __init__(
        self,
        resource: str,
        resource_id: str | None = None,
        scope: str | None = None,
    ) -> None:
        self.resource = resource
        self.resource_id = resource_id
        self.scope = scope
        msg = f"{resource}"
        if resource_id is not None:
            msg += f" id={resource_id}"
        msg += " not found"
        if scope is not None:
            msg += f" ({scope})"
        super().__init__(msg)


class ValidationError(Exception):
    """Raised when input is well-formed but violates a business rule.

    Blank stage names, unknown field types, out-of-range reorder indices.

    Args:
        message: Human-readable explanation of what failed.
        details: Optional field-level breakdown, keyed by attribute name.
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class EmptyFormError(Exception):
    """Raised when publishing a stage, registration step or registration
    form whose field list is empty.

    Nothing is written when this is raised.
    """

    def __init__(
        self, stage_id: str, stage_name: str | None = None, kind: str = "stage"
    ) -> None:
        self.stage_id = stage_id
        self.stage_name = stage_name
        label = stage_name or stage_id
        super().__init__(f"Cannot publish an empty form for {kind} {label!r}")


class ConflictError(Exception):
    """Raised when a stored document changed since this session read it.

    Args:
        key: Key-value document key.
        expected: Revision the session read.
        actual: Revision currently stored.
    """

    def __init__(self, key: str, expected: int, actual: int) -> None:
        self.key = key
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Document {key!r} was modified by another session "
            f"(read revision {expected}, stored revision {actual})"
        )


class StorageCorruptError(Exception):
    """Raised when a stored document cannot be decoded.

    Never escapes the repository: it is logged and replaced by an empty
    collection.
    """

    def __init__(self, key: str, reason: str) -> None:
        self.key = key
        self.reason = reason
        super().__init__(f"Stored document {key!r} is unreadable: {reason}")


class SessionStateError(Exception):
    """Raised when a builder-session action is not allowed in the current state."""

    def __init__(self, action: str, state: str, reason: str | None = None) -> None:
        msg = f"Cannot '{action}' while {state}"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)
        self.action = action
        self.state = state
        self.reason = reason
