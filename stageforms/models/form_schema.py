"""Form-engine records: categories, stages, registration steps, form fields
and the published versions of each.

These are the documents stored under the ``projectTypes``,
``formVersions_<categoryId>``, ``stepFormVersions_<categoryId>_<stepId>`` and
``registrationFormVersions_<categoryId>`` keys. Python attributes are snake_case; the
stored JSON keeps the camelCase layout of the key-value namespace.
"""

from __future__ import annotations

import copy
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any


class FieldType(str, Enum):
    TEXT = "text"
    EMAIL = "email"
    NUMBER = "number"
    DATE = "date"
    FILE = "file"
    SELECT = "select"
    TEXTAREA = "textarea"
    CHECKBOX = "checkbox"
    RADIO = "radio"
    LABEL = "label"
    BUTTON = "button"


# Types that render without an input value
DISPLAY_ONLY_TYPES = frozenset([FieldType.LABEL, FieldType.BUTTON])
# Types whose ``options`` list is meaningful
OPTION_TYPES = frozenset([FieldType.SELECT, FieldType.RADIO])


def utcnow_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def new_id(prefix: str | None = None) -> str:
    token = uuid.uuid4().hex
    return f"{prefix}-{token}" if prefix else token


@dataclass
class FieldValidation:
    """Optional bounds attached to a field."""
    min: float | None = None
    max: float | None = None
    pattern: str | None = None

    def to_dict(self) -> dict:
        return {
            key: value
            for key, value in (("min", self.min), ("max", self.max), ("pattern", self.pattern))
            if value is not None
        }

    @classmethod
    def from_dict(cls, data: dict | None) -> FieldValidation | None:
        if not data:
            return None
        return cls(min=data.get("min"), max=data.get("max"), pattern=data.get("pattern"))


@dataclass
class FormField:
    """One typed input descriptor in a stage's form."""
    id: str
    type: FieldType
    label: str
    placeholder: str | None = None
    required: bool = False
    options: list[str] | None = None
    validation: FieldValidation | None = None

    @property
    def is_display_only(self) -> bool:
        return self.type in DISPLAY_ONLY_TYPES

    def to_dict(self) -> dict:
        data: dict[str, Any] = {
            "id": self.id,
            "type": self.type.value,
            "label": self.label,
            "required": self.required,
        }
        if self.placeholder is not None:
            data["placeholder"] = self.placeholder
        if self.options is not None:
            data["options"] = list(self.options)
        if self.validation is not None:
            data["validation"] = self.validation.to_dict()
        return data

    @classmethod
    def from_dict(cls, data: dict) -> FormField:
        options = data.get("options")
        return cls(
            id=str(data["id"]),
            type=FieldType(data["type"]),
            label=data.get("label", ""),
            placeholder=data.get("placeholder"),
            required=bool(data.get("required", False)),
            options=list(options) if options is not None else None,
            validation=FieldValidation.from_dict(data.get("validation")),
        )


def copy_fields(fields: list[FormField] | None) -> list[FormField]:
    """Deep copy of a field list; snapshots never share objects with drafts."""
    return copy.deepcopy(list(fields or []))


@dataclass
class Stage:
    """One ordered step of a category's workflow."""
    id: str
    name: str
    order: int
    form_fields: list[FormField] | None = None

    def to_dict(self) -> dict:
        data: dict[str, Any] = {"id": self.id, "name": self.name, "order": self.order}
        if self.form_fields is not None:
            data["formFields"] = [f.to_dict() for f in self.form_fields]
        return data

    @classmethod
    def from_dict(cls, data: dict) -> Stage:
        fields = data.get("formFields")
        return cls(
            id=str(data["id"]),
            name=data["name"],
            order=int(data["order"]),
            form_fields=[FormField.from_dict(f) for f in fields] if fields is not None else None,
        )


@dataclass
class RegistrationStep:
    """One page of a category's multi-step registration form."""
    id: str
    name: str
    order: int
    form_fields: list[FormField] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "order": self.order,
            "fields": [f.to_dict() for f in self.form_fields],
        }

    @classmethod
    def from_dict(cls, data: dict) -> RegistrationStep:
        return cls(
            id=str(data["id"]),
            name=data["name"],
            order=int(data["order"]),
            form_fields=[FormField.from_dict(f) for f in data.get("fields") or []],
        )


@dataclass
class ProjectCategory:
    """A named class of work that owns an ordered list of stages."""
    id: str
    name: str
    description: str | None = None
    stages: list[Stage] = field(default_factory=list)
    created_at: str = field(default_factory=utcnow_iso)
    updated_at: str = field(default_factory=utcnow_iso)
    registration_steps: list[RegistrationStep] | None = None
    # Flattened step fields, kept for readers of the single-list layout
    registration_form: list[FormField] | None = None

    def touch(self) -> None:
        self.updated_at = utcnow_iso()

    def find_stage(self, stage_id: str) -> Stage | None:
        return next((s for s in self.stages if s.id == stage_id), None)

    def find_step(self, step_id: str) -> RegistrationStep | None:
        return next((s for s in self.registration_steps or [] if s.id == step_id), None)

    def to_dict(self) -> dict:
        data: dict[str, Any] = {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "stages": [s.to_dict() for s in self.stages],
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }
        if self.registration_steps is not None:
            data["registrationSteps"] = [s.to_dict() for s in self.registration_steps]
        if self.registration_form is not None:
            data["registrationForm"] = [f.to_dict() for f in self.registration_form]
        return data

    @classmethod
    def from_dict(cls, data: dict) -> ProjectCategory:
        now = utcnow_iso()
        steps = data.get("registrationSteps")
        form = data.get("registrationForm")
        return cls(
            id=str(data["id"]),
            name=data["name"],
            description=data.get("description"),
            stages=[Stage.from_dict(s) for s in data.get("stages") or []],
            created_at=data.get("createdAt") or now,
            updated_at=data.get("updatedAt") or now,
            registration_steps=(
                [RegistrationStep.from_dict(s) for s in steps] if steps is not None else None
            ),
            registration_form=(
                [FormField.from_dict(f) for f in form] if form is not None else None
            ),
        )


@dataclass
class FormVersion:
    """Immutable snapshot of a stage's field list at publish time."""
    id: str
    version: int
    stage_id: str
    stage_name: str
    form_fields: list[FormField]
    published_at: str = field(default_factory=utcnow_iso)
    published_by: str | None = None
    is_active: bool = False

    def to_dict(self) -> dict:
        data: dict[str, Any] = {
            "id": self.id,
            "version": self.version,
            "stageId": self.stage_id,
            "stageName": self.stage_name,
            "formFields": [f.to_dict() for f in self.form_fields],
            "publishedAt": self.published_at,
            "isActive": self.is_active,
        }
        if self.published_by is not None:
            data["publishedBy"] = self.published_by
        return data

    @classmethod
    def from_dict(cls, data: dict) -> FormVersion:
        return cls(
            id=str(data["id"]),
            version=int(data["version"]),
            stage_id=str(data["stageId"]),
            stage_name=data.get("stageName", ""),
            form_fields=[FormField.from_dict(f) for f in data.get("formFields") or []],
            published_at=data.get("publishedAt") or utcnow_iso(),
            published_by=data.get("publishedBy"),
            is_active=bool(data.get("isActive", False)),
        )


@dataclass
class RegistrationVersion:
    """Published snapshot of one registration step, or of the whole form.

    Step snapshots carry ``step_id``/``step_name``; whole-form snapshots hold
    every step's fields flattened in step order and leave both unset.
    """
    id: str
    version: int
    form_fields: list[FormField]
    published_at: str = field(default_factory=utcnow_iso)
    published_by: str | None = None
    is_active: bool = False
    step_id: str | None = None
    step_name: str | None = None

    def to_dict(self) -> dict:
        data: dict[str, Any] = {
            "id": self.id,
            "version": self.version,
            "formFields": [f.to_dict() for f in self.form_fields],
            "publishedAt": self.published_at,
            "isActive": self.is_active,
        }
        if self.published_by is not None:
            data["publishedBy"] = self.published_by
        if self.step_id is not None:
            data["stepId"] = self.step_id
            data["stepName"] = self.step_name
        return data

    @classmethod
    def from_dict(cls, data: dict) -> RegistrationVersion:
        step_id = data.get("stepId")
        return cls(
            id=str(data["id"]),
            version=int(data["version"]),
            form_fields=[FormField.from_dict(f) for f in data.get("formFields") or []],
            published_at=data.get("publishedAt") or utcnow_iso(),
            published_by=data.get("publishedBy"),
            is_active=bool(data.get("isActive", False)),
            step_id=str(step_id) if step_id is not None else None,
            step_name=data.get("stepName"),
        )
