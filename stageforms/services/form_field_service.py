"""
Form Field Store — the ordered field list of one stage draft.

Functions here mutate the Stage object they are given (the builder
session's editable copy, or a registration step) and never persist;
committing is the caller's job.
"""

import logging

from stageforms.core.exceptions import NotFoundError, ValidationError
from stageforms.models.form_schema import (
    DISPLAY_ONLY_TYPES,
    OPTION_TYPES,
    FieldType,
    FieldValidation,
    FormField,
    Stage,
    new_id,
)
from stageforms.services.ordering import ItemRect, pointer_is_above, resolve_insertion_index

logger = logging.getLogger(__name__)

DEFAULT_OPTIONS = ("Option 1", "Option 2")

_MUTABLE_ATTRS = ("type", "label", "placeholder", "required", "options", "validation")


def _field_type(value) -> FieldType:
    try:
        return FieldType(value)
    except ValueError:
        allowed = ", ".join(t.value for t in FieldType)
        raise ValidationError(
            f"type must be one of: {allowed}", details={"type": str(value)}
        ) from None


def _fields(stage: Stage) -> list[FormField]:
    if stage.form_fields is None:
        stage.form_fields = []
    return stage.form_fields


def _index_of(stage: Stage, field_id: str) -> int:
    for index, field in enumerate(_fields(stage)):
        if field.id == field_id:
            return index
    raise NotFoundError("FormField", field_id, scope=f"stage={stage.id}")


def build_field(field_type) -> FormField:
    """New field with the type's default label, placeholder and options."""
    kind = _field_type(field_type)
    if kind == FieldType.LABEL:
        label, placeholder = "New Label", None
    elif kind == FieldType.BUTTON:
        label, placeholder = "Submit", None
    else:
        label, placeholder = f"New {kind.value} Field", f"Enter {kind.value}"
    return FormField(
        id=new_id("field"),
        type=kind,
        label=label,
        placeholder=placeholder,
        required=False,
        options=list(DEFAULT_OPTIONS) if kind in OPTION_TYPES else None,
    )


def add_field(stage: Stage, field_type) -> FormField:
    """Append a default field of ``field_type`` to the stage draft."""
    field = build_field(field_type)
    _fields(stage).append(field)
    logger.debug("Field added stage=%s field=%s type=%s", stage.id, field.id, field.type.value)
    return field


def update_field(stage: Stage, field_id: str, updates: dict) -> FormField:
    """Merge ``updates`` into the field with ``field_id``.

    Unknown attributes are ignored. An unknown ``field_id`` raises
    NotFoundError rather than silently doing nothing.
    """
    field = _fields(stage)[_index_of(stage, field_id)]

    changes = {}
    for attr in _MUTABLE_ATTRS:
        if attr not in updates:
            continue
        value = updates[attr]
        if attr == "type":
            value = _field_type(value)
        elif attr == "label":
            value = (value or "").strip()
            if not value:
                raise ValidationError("label cannot be empty", details={"label": "blank"})
        elif attr == "required":
            value = bool(value)
        elif attr == "options":
            if value is not None and not isinstance(value, (list, tuple)):
                raise ValidationError(
                    "options must be a list", details={"options": type(value).__name__}
                )
            value = [str(o) for o in value] if value is not None else None
        elif attr == "validation" and isinstance(value, dict):
            value = FieldValidation.from_dict(value)
        changes[attr] = value

    for attr, value in changes.items():
        setattr(field, attr, value)

    if field.type in DISPLAY_ONLY_TYPES:
        field.required = False

    logger.debug("Field updated stage=%s field=%s", stage.id, field_id)
    return field


def delete_field(stage: Stage, field_id: str) -> None:
    _index_of(stage, field_id)
    stage.form_fields = [f for f in _fields(stage) if f.id != field_id]
    logger.debug("Field deleted stage=%s field=%s", stage.id, field_id)


def reorder_field(
    stage: Stage,
    dragged_field_id: str,
    drop_index: int,
    pointer_y: float,
    item_rect: ItemRect,
) -> list[FormField]:
    """Drop ``dragged_field_id`` over the field at ``drop_index``.

    The pointer position against the target's midpoint decides between
    inserting above or below it.
    """
    fields = list(_fields(stage))
    source_index = _index_of(stage, dragged_field_id)
    if source_index == drop_index:
        return fields

    insert_above = pointer_is_above(pointer_y, item_rect)
    dragged = fields.pop(source_index)
    target = resolve_insertion_index(source_index, drop_index, insert_above, length=len(fields))
    fields.insert(target, dragged)
    stage.form_fields = fields
    return fields
