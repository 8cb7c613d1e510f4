"""Check a filled-in form against a stage's field schema.

Returns ``{field_id: message}``; an empty dict means the data is valid.
Label and button fields carry no value and are skipped.
"""

from __future__ import annotations

import re
from typing import Any

from stageforms.models.form_schema import FieldType, FormField


def _is_blank(value: Any) -> bool:
    if value is None or value is False:
        return True
    if isinstance(value, str):
        return value.strip() == ""
    if isinstance(value, (list, tuple, dict)):
        return len(value) == 0
    return False


def _check_number(field: FormField, value: Any) -> str | None:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return f"{field.label} must be a number"
    bounds = field.validation
    if bounds is None:
        return None
    if bounds.min is not None and number < bounds.min:
        return f"{field.label} must be at least {bounds.min:g}"
    if bounds.max is not None and number > bounds.max:
        return f"{field.label} must be at most {bounds.max:g}"
    return None


def _check_pattern(field: FormField, value: Any) -> str | None:
    pattern = field.validation.pattern if field.validation else None
    if not pattern:
        return None
    try:
        matched = re.fullmatch(pattern, str(value)) is not None
    except re.error:
        return None
    return None if matched else f"{field.label} has an invalid format"


def _check_choice(field: FormField, value: Any) -> str | None:
    if field.options is None or value in field.options:
        return None
    return f"{field.label} must be one of the listed options"


def validate_submission(fields: list[FormField] | None, data: dict) -> dict[str, str]:
    errors: dict[str, str] = {}
    for field in fields or []:
        if field.is_display_only:
            continue
        value = data.get(field.id)

        if _is_blank(value):
            if field.required:
                errors[field.id] = f"{field.label} is required"
            continue

        if field.type == FieldType.NUMBER:
            message = _check_number(field, value)
        elif field.type in (FieldType.SELECT, FieldType.RADIO):
            message = _check_choice(field, value)
        else:
            message = None
        message = message or _check_pattern(field, value)
        if message:
            errors[field.id] = message
    return errors
