"""
Registration Form Store — the multi-step registration form of a category.

Each category carries ``registration_steps``: ordered pages, each holding
its own field list. The flattened field list of all steps is mirrored into
``registration_form`` on every write.

Versioning works at two levels:

    stepFormVersions_<categoryId>_<stepId>   one step's published snapshots
    registrationFormVersions_<categoryId>    whole-form snapshots

Unlike the stage builder there is no draft: step and field edits are
persisted as soon as they are made.

Usage:
    service = RegistrationService(FormRepository(SqlKeyValueBackend()))
    step = service.add_step("2")
    service.add_field("2", step.id, "text")
    service.publish_step("2", step.id, published_by="alice")
"""

from __future__ import annotations

import logging

from stageforms.core.exceptions import EmptyFormError, NotFoundError, ValidationError
from stageforms.models.form_schema import (
    FieldType,
    FormField,
    ProjectCategory,
    RegistrationStep,
    RegistrationVersion,
    copy_fields,
    new_id,
)
from stageforms.services import audit_events, form_field_service
from stageforms.services.audit_events import AuditNotifier, NullAuditNotifier
from stageforms.services.ordering import (
    DIRECTIONS,
    ItemRect,
    relocate,
    renumber,
    sort_by_order,
    swap_with_neighbor,
)
from stageforms.services.repository import FormRepository
from stageforms.services.stage_service import clean_name

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Default steps
# ---------------------------------------------------------------------------


def _select(field_id, label, placeholder, options, required=True):
    return FormField(
        id=field_id,
        type=FieldType.SELECT,
        label=label,
        placeholder=placeholder,
        required=required,
        options=list(options),
    )


def _input(field_id, field_type, label, placeholder, required=True):
    return FormField(
        id=field_id, type=field_type, label=label, placeholder=placeholder, required=required
    )


def _upload(field_id, label, what, required=True):
    return _input(field_id, FieldType.FILE, label, f"Upload {what}", required=required)


def default_registration_steps() -> list[RegistrationStep]:
    """The four-step template a category starts with."""
    project = [
        _select(
            "field-project-classification", "Project Classification",
            "Select project classification",
            (
                "Commodity Transport Infrastructure",
                "Irrigation Facilities",
                "Production Facilities (Crops)",
                "Production Facilities (Livestock)",
                "Post-harvest and Production Facilities (Fisheries)",
            ),
        ),
        _select(
            "field-project-type", "Project Type", "Select project type",
            (
                "Road Construction", "Bridge Construction", "Irrigation System",
                "Warehouse Construction", "Processing Facility", "Storage Facility",
            ),
        ),
        _input("field-project-title", FieldType.TEXT, "Project Title", "Enter project title"),
        _input(
            "field-project-description", FieldType.TEXTAREA, "Project Description",
            "Enter project description",
        ),
    ]
    budget = [
        _input(
            "field-calendar-days", FieldType.NUMBER, "Calendar Days", "Enter number of days"
        ),
        _select(
            "field-prexc-program", "Prexc Program", "Select Prexc program",
            ("AMEFIP", "Rice Program", "Corn Program", "Livestock Program", "Fisheries Program"),
        ),
        _select(
            "field-prexc-sub-program", "Prexc Sub Program", "Select Prexc sub program",
            (
                "AMEFIP Sub-Program 1", "Rice Sub-Program 1", "Corn Sub-Program 1",
                "Livestock Sub-Program 1", "Fisheries Sub-Program 1",
            ),
        ),
        _select(
            "field-budget-process", "Budget Process", "Select budget process",
            ("Regular Budget", "Special Budget", "Emergency Budget", "Supplementary Budget"),
        ),
        _select(
            "field-proposed-fund-source", "Proposed Fund Source", "Select proposed fund source",
            (
                "Fund Source Test 1", "Fund Source Test 2", "Fund Source Test 3",
                "National Budget", "Local Budget",
            ),
        ),
        _select(
            "field-source-agency", "Source Agency", "Select source agency",
            ("DA-OSEC", "DA-BAR", "DA-BAI", "DA-BFAR", "DA-BSWM"),
        ),
        _select(
            "field-banner-program", "Banner Program", "Select banner program",
            (
                "Livestock and Fisheries", "Coconut Farm and Industry", "Bayanihan",
                "Plant, Plant, Plant", "Kadiwa",
            ),
        ),
        _select(
            "field-funding-year", "Funding Year", "Select funding year",
            ("2024", "2025", "2026", "2027"),
        ),
        _input("field-amount", FieldType.NUMBER, "Amount", "Enter amount"),
    ]
    # Options come from the location directory at render time
    location = [_select("field-location", "Location", "Select location (PSGC API)", ())]
    documents = [
        _upload("field-letter-of-intent", "Letter of Intent", "letter of intent"),
        _upload("field-validation-report", "Validation Report", "validation report"),
        _upload("field-fs", "FS (Feasibility Study)", "FS document"),
        _upload("field-ded", "DED (Detailed Engineering Design)", "DED document"),
        _upload("field-program-of-work", "Program of Work", "program of work document"),
        _upload("field-right-of-way-docs", "Right of Way Docs", "right of way documents", False),
        _upload("field-geotagged-photos", "Geotagged Photos", "geotagged photos", False),
        _upload("field-other-documents", "Other Documents", "other documents", False),
    ]
    return [
        RegistrationStep(id="step-1", name="Project Information", order=1, form_fields=project),
        RegistrationStep(id="step-2", name="Budget Source", order=2, form_fields=budget),
        RegistrationStep(id="step-3", name="Location", order=3, form_fields=location),
        RegistrationStep(id="step-4", name="Document Upload", order=4, form_fields=documents),
    ]


def flatten_steps(steps: list[RegistrationStep]) -> list[FormField]:
    """Every step's fields, in step order."""
    return [f for step in sort_by_order(steps) for f in copy_fields(step.form_fields)]


def _activate(versions: list[RegistrationVersion], version_id: str | None) -> None:
    for version in versions:
        version.is_active = version.id == version_id


def _next_version(versions: list[RegistrationVersion]) -> int:
    return max((v.version for v in versions), default=0) + 1


class RegistrationService:
    """Steps, step fields and published versions of the registration form."""

    def __init__(self, repository: FormRepository, notifier: AuditNotifier | None = None):
        self._repository = repository
        self._notifier = notifier or NullAuditNotifier()

    # ── Internal helpers ─────────────────────────────────────────────────

    def _load(self, category_id: str) -> ProjectCategory:
        """Category with its steps, filling in the default steps when none exist."""
        category = self._repository.get_category(category_id)
        if not category.registration_steps:
            category.registration_steps = default_registration_steps()
            self._commit(category, category.registration_steps, None)
            logger.info("Default registration steps created category=%s", category.id)
        return category

    def _get_step(self, category: ProjectCategory, step_id: str) -> RegistrationStep:
        step = category.find_step(str(step_id))
        if step is None:
            raise NotFoundError("RegistrationStep", str(step_id), scope=f"category={category.id}")
        return step

    def _commit(
        self,
        category: ProjectCategory,
        steps: list[RegistrationStep],
        resource_id: str | None,
    ) -> list[RegistrationStep]:
        category.registration_steps = renumber(steps)
        category.registration_form = flatten_steps(category.registration_steps)
        category.touch()
        self._repository.put_category(category)
        if resource_id is not None:
            self._notifier.notify(audit_events.REGISTRATION_STEPS_SAVED, category.id, resource_id)
        return category.registration_steps

    def _edit_step(self, category_id: str, step_id: str, edit):
        category = self._load(category_id)
        step = self._get_step(category, step_id)
        result = edit(step)
        self._commit(category, sort_by_order(category.registration_steps), step.id)
        return result

    # ── Steps ────────────────────────────────────────────────────────────

    def list_steps(self, category_id: str) -> list[RegistrationStep]:
        return sort_by_order(self._load(category_id).registration_steps)

    def get_step(self, category_id: str, step_id: str) -> RegistrationStep:
        return self._get_step(self._load(category_id), step_id)

    def add_step(self, category_id: str, name: str | None = None) -> RegistrationStep:
        """Append an empty step, named ``Step N+1`` unless ``name`` is given."""
        category = self._load(category_id)
        steps = sort_by_order(category.registration_steps)
        step = RegistrationStep(
            id=new_id("step"),
            name=clean_name(name) if name is not None else f"Step {len(steps) + 1}",
            order=len(steps) + 1,
        )
        steps.append(step)
        self._commit(category, steps, step.id)
        logger.info("Registration step added category=%s step=%s", category.id, step.id)
        return step

    def rename_step(self, category_id: str, step_id: str, name: str) -> RegistrationStep:
        name = clean_name(name)

        def rename(step):
            step.name = name
            return step

        return self._edit_step(category_id, step_id, rename)

    def delete_step(self, category_id: str, step_id: str) -> list[RegistrationStep]:
        """Remove a step; the remaining steps are renumbered 1..N-1.

        Its published versions stay in storage under the step's key.
        """
        category = self._load(category_id)
        self._get_step(category, step_id)
        remaining = [
            s for s in sort_by_order(category.registration_steps) if s.id != str(step_id)
        ]
        steps = self._commit(category, remaining, str(step_id))
        logger.info("Registration step deleted category=%s step=%s", category.id, step_id)
        return steps

    def move_step(self, category_id: str, step_id: str, direction: str) -> list[RegistrationStep]:
        if direction not in DIRECTIONS:
            raise ValidationError(
                f"direction must be one of: {', '.join(DIRECTIONS)}",
                details={"direction": direction},
            )
        category = self._load(category_id)
        step = self._get_step(category, step_id)
        steps = sort_by_order(category.registration_steps)
        moved = swap_with_neighbor(steps, steps.index(step), direction)
        if moved == steps:
            return steps
        return self._commit(category, moved, step.id)

    def reorder_steps(
        self, category_id: str, from_index: int, to_index: int
    ) -> list[RegistrationStep]:
        """Drag-and-drop relocation of a step by zero-based position."""
        category = self._load(category_id)
        steps = sort_by_order(category.registration_steps)
        try:
            reordered = relocate(steps, from_index, to_index)
        except IndexError as exc:
            raise ValidationError(
                str(exc), details={"from_index": from_index, "to_index": to_index}
            ) from exc
        if from_index == to_index:
            return steps
        return self._commit(category, reordered, steps[from_index].id)

    # ── Step fields ──────────────────────────────────────────────────────

    def add_field(self, category_id: str, step_id: str, field_type) -> FormField:
        return self._edit_step(
            category_id, step_id, lambda step: form_field_service.add_field(step, field_type)
        )

    def update_field(
        self, category_id: str, step_id: str, field_id: str, updates: dict
    ) -> FormField:
        return self._edit_step(
            category_id,
            step_id,
            lambda step: form_field_service.update_field(step, field_id, updates),
        )

    def delete_field(self, category_id: str, step_id: str, field_id: str) -> list[FormField]:
        def delete(step):
            form_field_service.delete_field(step, field_id)
            return step.form_fields

        return self._edit_step(category_id, step_id, delete)

    def reorder_field(
        self,
        category_id: str,
        step_id: str,
        dragged_field_id: str,
        drop_index: int,
        pointer_y: float,
        item_rect: ItemRect,
    ) -> list[FormField]:
        return self._edit_step(
            category_id,
            step_id,
            lambda step: form_field_service.reorder_field(
                step, dragged_field_id, drop_index, pointer_y, item_rect
            ),
        )

    # ── Step versions ────────────────────────────────────────────────────

    def publish_step(
        self, category_id: str, step_id: str, published_by: str | None = None
    ) -> RegistrationVersion:
        """Snapshot one step's fields as its next active version.

        Raises:
            EmptyFormError: If the step has no fields; nothing is written.
            ConflictError: If another session saved the category or the
                step's history first; neither is written.
        """
        category = self._load(category_id)
        step = self._get_step(category, step_id)
        fields = copy_fields(step.form_fields)
        if not fields:
            raise EmptyFormError(step.id, step.name, kind="registration step")

        with self._repository.batch():
            versions = self._repository.load_step_versions(category.id, step.id)
            version = RegistrationVersion(
                id=new_id("version"),
                version=_next_version(versions),
                form_fields=fields,
                published_by=published_by,
                step_id=step.id,
                step_name=step.name,
            )
            versions.append(version)
            _activate(versions, version.id)
            self._repository.save_step_versions(category.id, step.id, versions)
            self._commit(category, sort_by_order(category.registration_steps), None)

        self._notifier.notify(audit_events.REGISTRATION_STEP_PUBLISHED, category.id, version.id)
        logger.info(
            "Registration step published category=%s step=%s version=%s",
            category.id, step.id, version.version,
        )
        return version

    def list_step_versions(self, category_id: str, step_id: str) -> list[RegistrationVersion]:
        """Published versions of one step, most recent first."""
        versions = self._repository.load_step_versions(str(category_id), str(step_id))
        return sorted(versions, key=lambda v: v.version, reverse=True)

    def rollback_step(
        self, category_id: str, step_id: str, version_id: str
    ) -> RegistrationVersion:
        """Mark a step version active and restore its fields onto the step."""
        category = self._load(category_id)
        step = self._get_step(category, step_id)

        with self._repository.batch():
            versions = self._repository.load_step_versions(category.id, step.id)
            target = next((v for v in versions if v.id == version_id), None)
            if target is None:
                raise NotFoundError("RegistrationVersion", version_id, scope=f"step={step.id}")
            _activate(versions, target.id)
            self._repository.save_step_versions(category.id, step.id, versions)
            step.form_fields = copy_fields(target.form_fields)
            self._commit(category, sort_by_order(category.registration_steps), None)

        self._notifier.notify(audit_events.REGISTRATION_STEP_ROLLED_BACK, category.id, target.id)
        logger.info(
            "Registration step rolled back category=%s step=%s version=%s",
            category.id, step.id, target.version,
        )
        return target

    # ── Whole-form versions ──────────────────────────────────────────────

    def publish_form(
        self, category_id: str, published_by: str | None = None
    ) -> RegistrationVersion:
        """Snapshot every step's fields, flattened in step order.

        Raises:
            EmptyFormError: If no step has any field.
        """
        category = self._load(category_id)
        fields = flatten_steps(category.registration_steps)
        if not fields:
            raise EmptyFormError(category.id, category.name, kind="category")

        with self._repository.batch():
            versions = self._repository.load_registration_versions(category.id)
            version = RegistrationVersion(
                id=new_id("version"),
                version=_next_version(versions),
                form_fields=fields,
                published_by=published_by,
            )
            versions.append(version)
            _activate(versions, version.id)
            self._repository.save_registration_versions(category.id, versions)
            self._commit(category, sort_by_order(category.registration_steps), None)

        self._notifier.notify(audit_events.REGISTRATION_FORM_PUBLISHED, category.id, version.id)
        logger.info(
            "Registration form published category=%s version=%s", category.id, version.version
        )
        return version

    def list_form_versions(self, category_id: str) -> list[RegistrationVersion]:
        """Whole-form versions, most recent first."""
        versions = self._repository.load_registration_versions(str(category_id))
        return sorted(versions, key=lambda v: v.version, reverse=True)

    def get_active_form_version(self, category_id: str) -> RegistrationVersion | None:
        return next((v for v in self.list_form_versions(category_id) if v.is_active), None)

    def rollback_form(self, category_id: str, version_id: str) -> RegistrationVersion:
        """Mark a whole-form version active and restore it as ``registration_form``.

        The per-step field lists are left alone; a whole-form snapshot does
        not record which step each field came from.
        """
        category = self._load(category_id)

        with self._repository.batch():
            versions = self._repository.load_registration_versions(category.id)
            target = next((v for v in versions if v.id == version_id), None)
            if target is None:
                raise NotFoundError(
                    "RegistrationVersion", version_id, scope=f"category={category.id}"
                )
            _activate(versions, target.id)
            self._repository.save_registration_versions(category.id, versions)
            category.registration_form = copy_fields(target.form_fields)
            category.touch()
            self._repository.put_category(category)

        self._notifier.notify(audit_events.REGISTRATION_FORM_ROLLED_BACK, category.id, target.id)
        logger.info(
            "Registration form rolled back category=%s version=%s", category.id, target.version
        )
        return target
