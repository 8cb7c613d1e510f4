"""Standardised CLI error payloads.

Usage
-----
    from stageforms.utils.errors import error_payload, exit_code_for, E

    payload = error_payload(exc)          # {"error": "...", "code": "ERR_NOT_FOUND"}
    raise click.exceptions.Exit(exit_code_for(payload["code"]))
"""

from __future__ import annotations

from stageforms.core.exceptions import (
    ConflictError,
    EmptyFormError,
    NotFoundError,
    SessionStateError,
    ValidationError,
)


# ── Error code constants ──────────────────────────────────────────────
class E:
    """Machine-readable error code constants.

    Convention:
     • ERR_  prefix for every engine error
    """

    # Validation
    VALIDATION_INVALID = "ERR_VALIDATION_INVALID"
    EMPTY_FORM = "ERR_EMPTY_FORM"

    # Not-found
    NOT_FOUND = "ERR_NOT_FOUND"

    # Conflict
    CONFLICT_REVISION = "ERR_CONFLICT_REVISION"
    CONFLICT_STATE = "ERR_CONFLICT_STATE"

    # Server
    INTERNAL = "ERR_INTERNAL"


# ── Default exit-code mapping ─────────────────────────────────────────
# 2 is left to click for usage errors
_DEFAULT_EXIT: dict[str, int] = {
    E.VALIDATION_INVALID: 3,
    E.EMPTY_FORM: 3,
    E.NOT_FOUND: 4,
    E.CONFLICT_REVISION: 5,
    E.CONFLICT_STATE: 5,
    E.INTERNAL: 1,
}

_CODE_FOR_TYPE: tuple[tuple[type, str], ...] = (
    (NotFoundError, E.NOT_FOUND),
    (EmptyFormError, E.EMPTY_FORM),
    (ValidationError, E.VALIDATION_INVALID),
    (ConflictError, E.CONFLICT_REVISION),
    (SessionStateError, E.CONFLICT_STATE),
)


def code_for(exc: Exception) -> str:
    for exc_type, code in _CODE_FOR_TYPE:
        if isinstance(exc, exc_type):
            return code
    return E.INTERNAL


def exit_code_for(code: str) -> int:
    return _DEFAULT_EXIT.get(code, 1)


def error_payload(exc: Exception, *, details: dict | None = None) -> dict:
    """Return the standard JSON error body for ``exc``.

    Parameters
    ----------
    exc : Exception
        Engine exception (``stageforms.core.exceptions``) or anything else,
        which maps to ``E.INTERNAL``.
    details : dict, optional
        Extra structured payload. Defaults to ``exc.details`` for
        validation errors.

    Returns
    -------
    dict
        ``{"error": message, "code": code}`` plus ``details`` when present.
    """
    code = code_for(exc)
    message = str(exc) if code != E.INTERNAL else "Internal error"

    body: dict = {
        "error": message,
        "code": code,
    }
    details = details or getattr(exc, "details", None)
    if details:
        body["details"] = details
    return body
